"""Tests for running transfer queues."""

import threading

import pytest

from termxfer.errors import HostConnectionError, HostIOError, TransferAborted
from termxfer.transfer import (
    CancelPolicy,
    ConflictChoice,
    ConflictPolicy,
    TaskStatus,
    TransferDirection,
    TransferEngine,
    TransferOptions,
)
from conftest import write_tree
from support import MemoryBridge


def _upload(local_bridge, remote, paths, destination="/uploads", **kwargs):
    engine = TransferEngine(local_bridge, remote, **kwargs)
    entries = [local_bridge.stat(path) for path in paths]
    queue = engine.enqueue(entries, destination, TransferDirection.UPLOAD)
    return engine, queue


@pytest.fixture
def remote():
    bridge = MemoryBridge().add_dir("/uploads")
    bridge.connect()
    return bridge


@pytest.fixture
def project(local_root):
    write_tree(local_root, {"project/a.txt": b"x" * 10, "project/sub/b.txt": b"y" * 20})
    return str(local_root / "project")


class TestHappyPath:
    def test_tree_is_copied_and_progress_reaches_one(self, local_bridge, remote, project) -> None:
        snapshots = []
        engine, queue = _upload(local_bridge, remote, [project], on_progress=snapshots.append)

        report = engine.run(queue)

        assert report.ok
        assert len(report.completed) == 4
        assert remote.files["/uploads/project/a.txt"] == b"x" * 10
        assert remote.files["/uploads/project/sub/b.txt"] == b"y" * 20
        assert snapshots[-1].ratio == 1.0
        assert snapshots[-1].percent == 100
        assert engine.progress.processed_bytes == 30

    def test_file_shrinking_after_enqueue_still_completes(
        self, local_bridge, remote, project, local_root
    ) -> None:
        engine, queue = _upload(local_bridge, remote, [project])
        write_tree(local_root, {"project/a.txt": b"x" * 4})

        report = engine.run(queue)

        assert report.ok
        assert remote.files["/uploads/project/a.txt"] == b"x" * 4
        assert engine.progress.total_bytes == 30
        assert engine.progress.ratio == 1.0

    def test_existing_directory_is_reused(self, local_bridge, remote, project) -> None:
        remote.add_dir("/uploads/project/sub")
        engine, queue = _upload(local_bridge, remote, [project])

        report = engine.run(queue)

        assert report.ok
        assert not report.failed

    def test_task_callback_sees_every_transition(self, local_bridge, remote, project) -> None:
        seen = []
        engine, queue = _upload(
            local_bridge, remote, [project], on_task=lambda t: seen.append((t.destination, t.status))
        )

        engine.run(queue)

        assert ("/uploads/project/a.txt", TaskStatus.IN_PROGRESS) in seen
        assert ("/uploads/project/a.txt", TaskStatus.DONE) in seen


class TestConflicts:
    def _existing(self, remote):
        remote.add_file("/uploads/project/a.txt", b"old", mtime=42.0)

    def test_skip_all_leaves_destination_untouched(self, local_bridge, remote, project) -> None:
        self._existing(remote)
        engine, queue = _upload(local_bridge, remote, [project])

        report = engine.run(queue, ConflictPolicy.SKIP_ALL)

        assert [t.destination for t in report.skipped] == ["/uploads/project/a.txt"]
        assert remote.files["/uploads/project/a.txt"] == b"old"
        assert remote.mtimes["/uploads/project/a.txt"] == 42.0
        assert engine.progress.ratio == 1.0

    def test_overwrite_all_replaces(self, local_bridge, remote, project) -> None:
        self._existing(remote)
        engine, queue = _upload(local_bridge, remote, [project])

        engine.run(queue, ConflictPolicy.OVERWRITE_ALL)

        assert remote.files["/uploads/project/a.txt"] == b"x" * 10

    def test_resume_skips_same_size(self, local_bridge, remote, project) -> None:
        remote.add_file("/uploads/project/a.txt", b"z" * 10)
        remote.add_file("/uploads/project/sub/b.txt", b"short")
        engine, queue = _upload(local_bridge, remote, [project])

        report = engine.run(queue, ConflictPolicy.RESUME_IF_SAME_SIZE)

        assert remote.files["/uploads/project/a.txt"] == b"z" * 10
        assert remote.files["/uploads/project/sub/b.txt"] == b"y" * 20
        assert [t.destination for t in report.skipped] == ["/uploads/project/a.txt"]

    def test_rename_new_keeps_both(self, local_bridge, remote, project) -> None:
        self._existing(remote)
        remote.add_file("/uploads/project/a (1).txt", b"older")
        engine, queue = _upload(local_bridge, remote, [project])

        engine.run(queue, ConflictPolicy.RENAME_NEW)

        assert remote.files["/uploads/project/a.txt"] == b"old"
        assert remote.files["/uploads/project/a (2).txt"] == b"x" * 10

    def test_ask_once_prompts_a_single_time(self, local_bridge, remote, project) -> None:
        remote.add_file("/uploads/project/a.txt", b"1")
        remote.add_file("/uploads/project/sub/b.txt", b"2")
        asked = []

        def prompt(task, existing):
            asked.append(task.destination)
            return ConflictChoice.OVERWRITE

        engine, queue = _upload(local_bridge, remote, [project], prompt=prompt)
        engine.run(queue, ConflictPolicy.ASK_ONCE)

        assert asked == ["/uploads/project/a.txt"]
        assert remote.files["/uploads/project/sub/b.txt"] == b"y" * 20

    def test_prompt_each_asks_every_time(self, local_bridge, remote, project) -> None:
        remote.add_file("/uploads/project/a.txt", b"1")
        remote.add_file("/uploads/project/sub/b.txt", b"2")
        answers = iter([ConflictChoice.SKIP, ConflictChoice.OVERWRITE])

        engine, queue = _upload(local_bridge, remote, [project], prompt=lambda t, e: next(answers))
        report = engine.run(queue, ConflictPolicy.PROMPT_EACH)

        assert remote.files["/uploads/project/a.txt"] == b"1"
        assert remote.files["/uploads/project/sub/b.txt"] == b"y" * 20
        assert len(report.skipped) == 1

    def test_conflict_without_prompt_is_skipped(self, local_bridge, remote, project) -> None:
        self._existing(remote)
        engine, queue = _upload(local_bridge, remote, [project])

        report = engine.run(queue, ConflictPolicy.PROMPT_EACH)

        assert [t.destination for t in report.skipped] == ["/uploads/project/a.txt"]
        assert report.completed

    def test_directory_in_the_way_fails_the_file(self, local_bridge, remote, project) -> None:
        remote.add_dir("/uploads/project/a.txt")
        engine, queue = _upload(local_bridge, remote, [project])

        report = engine.run(queue, ConflictPolicy.OVERWRITE_ALL)

        assert [t.destination for t in report.failed] == ["/uploads/project/a.txt"]


class TestCancel:
    def _cancelling_engine(self, local_bridge, remote, local_root, policy):
        write_tree(local_root, {"big.bin": b"0123456789" * 4, "later.bin": b"abc"})
        cancel = threading.Event()
        engine, queue = _upload(
            local_bridge,
            remote,
            [str(local_root / "big.bin"), str(local_root / "later.bin")],
            options=TransferOptions(chunk_size=4, cancel_policy=policy),
            cancel_event=cancel,
            on_progress=lambda snapshot: cancel.set(),
        )
        return engine, queue

    def test_partial_file_is_deleted(self, local_bridge, remote, local_root) -> None:
        engine, queue = self._cancelling_engine(
            local_bridge, remote, local_root, CancelPolicy.DELETE_PARTIAL
        )

        report = engine.run(queue)

        assert report.cancelled
        assert not report.ok
        assert "/uploads/big.bin" not in remote.files
        assert [t.reason for t in report.failed] == ["cancelled"]
        assert [t.destination for t in report.unreached] == ["/uploads/later.bin"]
        assert queue.tasks[1].status == TaskStatus.QUEUED

    def test_partial_file_is_kept(self, local_bridge, remote, local_root) -> None:
        engine, queue = self._cancelling_engine(
            local_bridge, remote, local_root, CancelPolicy.KEEP_PARTIAL
        )

        engine.run(queue)

        assert remote.files["/uploads/big.bin"] == b"0123"

    def test_cancel_before_start_reaches_nothing(self, local_bridge, remote, project) -> None:
        engine, queue = _upload(local_bridge, remote, [project])
        engine.cancel()

        report = engine.run(queue)

        assert report.cancelled
        assert len(report.unreached) == 4
        assert not remote.files


class TestErrors:
    def test_io_error_fails_only_that_task(self, local_bridge, remote, project) -> None:
        remote.fail("open_write", HostIOError("disk full"))
        engine, queue = _upload(local_bridge, remote, [project])

        report = engine.run(queue)

        assert [t.destination for t in report.failed] == ["/uploads/project/a.txt"]
        assert remote.files["/uploads/project/sub/b.txt"] == b"y" * 20
        assert engine.progress.ratio == 1.0

    def test_connection_loss_is_retried_once(self, local_bridge, remote, project) -> None:
        remote.fail("open_write", HostConnectionError("channel closed"))
        engine, queue = _upload(local_bridge, remote, [project])

        report = engine.run(queue)

        assert report.ok
        assert remote.connects == 2
        assert remote.files["/uploads/project/a.txt"] == b"x" * 10
        assert engine.progress.processed_bytes == 30

    def test_repeated_connection_loss_aborts_the_run(self, local_bridge, remote, project) -> None:
        remote.fail(
            "open_write",
            HostConnectionError("channel closed"),
            HostConnectionError("still closed"),
        )
        engine, queue = _upload(local_bridge, remote, [project])

        with pytest.raises(TransferAborted) as info:
            engine.run(queue)

        report = info.value.report
        assert [t.destination for t in report.failed] == ["/uploads/project/a.txt"]
        assert [t.destination for t in report.unreached] == ["/uploads/project/sub/b.txt"]
        assert len(report.completed) == 2
