"""Tests for pushing watched local changes to the remote."""

import os

import pytest

from termxfer.sync import AutoSync
from termxfer.sync.watcher import ChangeKind, FileChange
from conftest import write_tree
from support import MemoryBridge


@pytest.fixture
def remote():
    bridge = MemoryBridge().add_dir("/site")
    bridge.connect()
    return bridge


@pytest.fixture
def autosync(local_root, local_bridge, remote):
    sync = AutoSync(local_bridge, remote, debounce_ms=60000)
    sync.local_root = str(local_root)
    sync.remote_root = "/site"
    return sync


class TestApply:
    def test_changed_file_is_uploaded_into_missing_parents(self, autosync, remote, local_root) -> None:
        write_tree(local_root, {"css/main.css": b"body{}"})

        report = autosync.apply([FileChange(ChangeKind.CHANGED, str(local_root / "css" / "main.css"))])

        assert report.ok
        assert remote.files["/site/css/main.css"] == b"body{}"

    def test_existing_remote_file_is_overwritten_without_prompt(self, autosync, remote, local_root) -> None:
        remote.add_file("/site/index.html", b"old")
        write_tree(local_root, {"index.html": b"new"})

        autosync.apply([FileChange(ChangeKind.CHANGED, str(local_root / "index.html"))])

        assert remote.files["/site/index.html"] == b"new"

    def test_removed_file_is_removed_remotely(self, autosync, remote, local_root) -> None:
        remote.add_file("/site/old.txt", b"x")

        autosync.apply([FileChange(ChangeKind.REMOVED, str(local_root / "old.txt"))])

        assert "/site/old.txt" not in remote.files

    def test_removing_an_absent_file_is_ignored(self, autosync, local_root) -> None:
        report = autosync.apply([FileChange(ChangeKind.REMOVED, str(local_root / "never.txt"))])

        assert report.ok

    def test_move_is_mirrored_as_rename(self, autosync, remote, local_root) -> None:
        remote.add_file("/site/a.txt", b"data")
        write_tree(local_root, {"b.txt": b"data"})

        autosync.apply(
            [FileChange(ChangeKind.MOVED, str(local_root / "a.txt"), str(local_root / "b.txt"))]
        )

        assert "/site/a.txt" not in remote.files
        assert remote.files["/site/b.txt"] == b"data"

    def test_move_of_unknown_file_uploads_new_name(self, autosync, remote, local_root) -> None:
        write_tree(local_root, {"b.txt": b"fresh"})

        autosync.apply(
            [FileChange(ChangeKind.MOVED, str(local_root / "a.txt"), str(local_root / "b.txt"))]
        )

        assert remote.files["/site/b.txt"] == b"fresh"

    def test_move_out_of_root_removes(self, autosync, remote, local_root, tmp_path) -> None:
        remote.add_file("/site/a.txt", b"data")

        autosync.apply(
            [FileChange(ChangeKind.MOVED, str(local_root / "a.txt"), str(tmp_path / "a.txt"))]
        )

        assert "/site/a.txt" not in remote.files

    def test_changes_outside_root_are_ignored(self, autosync, remote, tmp_path) -> None:
        write_tree(tmp_path, {"elsewhere.txt": b"x"})

        report = autosync.apply([FileChange(ChangeKind.CHANGED, str(tmp_path / "elsewhere.txt"))])

        assert report.ok
        assert not remote.files

    def test_report_callback(self, local_bridge, remote, local_root) -> None:
        reports = []
        sync = AutoSync(local_bridge, remote, on_report=reports.append)
        sync.local_root = str(local_root)
        sync.remote_root = "/site"
        write_tree(local_root, {"x.txt": b"1"})

        sync.apply([FileChange(ChangeKind.CHANGED, os.path.join(str(local_root), "x.txt"))])

        assert len(reports) == 1
        assert len(reports[0].completed) == 1


class TestWatch:
    def test_watch_replaces_previous_session(self, autosync, local_root, tmp_path) -> None:
        class Observer:
            daemon = False

            def schedule(self, *args, **kwargs):
                pass

            def start(self):
                pass

            def stop(self):
                pass

            def join(self, timeout=None):
                pass

        first = autosync.watch(str(local_root), "/site", observer_factory=Observer)
        second = autosync.watch(str(tmp_path), "/other", observer_factory=Observer)

        assert not first.running
        assert second.running
        assert autosync.watching
        assert autosync.remote_root == "/other"

        autosync.unwatch()
        assert not autosync.watching

    def test_submit_receives_batches(self, local_bridge, remote, local_root) -> None:
        submitted = []
        sync = AutoSync(local_bridge, remote, submit=submitted.append)
        sync.local_root = str(local_root)
        sync.remote_root = "/site"
        write_tree(local_root, {"x.txt": b"1"})

        sync._on_changes([FileChange(ChangeKind.CHANGED, str(local_root / "x.txt"))])

        assert len(submitted) == 1
        assert not remote.files
        submitted[0]()
        assert remote.files["/site/x.txt"] == b"1"
