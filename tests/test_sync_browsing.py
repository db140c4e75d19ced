"""Tests for synchronized browsing between the two panes."""

import os

import pytest

from termxfer.errors import HostIOError, NotFoundError
from termxfer.explorer import ExplorerSession
from termxfer.sync import SyncBrowser
from support import MemoryBridge


@pytest.fixture
def panes(local_root, local_bridge):
    (local_root / "a" / "b").mkdir(parents=True)
    (local_root / "c").mkdir()
    remote_bridge = MemoryBridge().add_dir("/srv/a").add_dir("/srv/c")
    remote_bridge.connect()

    local = ExplorerSession(local_bridge)
    local.open(str(local_root))
    remote = ExplorerSession(remote_bridge)
    remote.open("/srv")
    sync = SyncBrowser(local, remote)
    sync.enable()
    return local, remote, sync


class TestFollow:
    def test_remote_follows_local(self, panes, local_root) -> None:
        local, remote, sync = panes

        warning = sync.navigate_local(str(local_root / "a"))

        assert warning is None
        assert remote.cwd == "/srv/a"
        assert sync.enabled

    def test_parent_navigation_is_followed(self, panes, local_root) -> None:
        local, remote, sync = panes
        sync.navigate_local(str(local_root / "a"))

        local.go_to_parent()
        sync.follow()

        assert remote.cwd == "/srv"

    def test_missing_remote_decouples_without_failing_local(self, panes, local_root) -> None:
        local, remote, sync = panes
        sync.navigate_local(str(local_root / "a"))

        warning = sync.navigate_local(str(local_root / "a" / "b"))

        assert warning is not None
        assert "/srv/a/b" in warning
        assert local.cwd == os.path.join(str(local_root), "a", "b")
        assert remote.cwd == "/srv/a"
        assert not sync.enabled
        assert sync.pending_directory == "/srv/a/b"

    def test_decoupled_panes_stop_following(self, panes, local_root) -> None:
        local, remote, sync = panes
        sync.navigate_local(str(local_root / "a" / "b"))

        assert sync.navigate_local(str(local_root / "c")) is None
        assert remote.cwd == "/srv"

    def test_leaving_the_root_decouples(self, panes, tmp_path) -> None:
        local, remote, sync = panes

        warning = sync.navigate_local(str(tmp_path))

        assert "outside the synchronized root" in warning
        assert not sync.enabled
        assert remote.cwd == "/srv"

    def test_other_errors_decouple(self, panes, local_root) -> None:
        local, remote, sync = panes
        remote.bridge.fail("stat", HostIOError("protocol error"))

        warning = sync.navigate_local(str(local_root / "c"))

        assert "protocol error" in warning
        assert sync.pending_directory is None
        assert remote.cwd == "/srv"

    def test_follow_target_leaves_the_panes_alone(self, panes, local_root) -> None:
        local, remote, sync = panes

        assert sync.follow_target(str(local_root / "a")) == ("/srv/a", None)
        assert sync.follow_target(str(local_root)) == (None, None)
        assert remote.cwd == "/srv"
        assert sync.enabled

    def test_follow_failed_records_missing_directory(self, panes) -> None:
        local, remote, sync = panes

        warning = sync.follow_failed("/srv/new", NotFoundError("gone", "/srv/new"))

        assert "/srv/new" in warning
        assert sync.pending_directory == "/srv/new"
        assert not sync.enabled


class TestPendingDirectory:
    def test_create_pending_directory_recouples(self, panes, local_root) -> None:
        local, remote, sync = panes
        sync.navigate_local(str(local_root / "a" / "b"))

        created = sync.create_pending_directory()

        assert created == "/srv/a/b"
        assert "/srv/a/b" in remote.bridge.dirs
        assert remote.cwd == "/srv/a/b"
        assert sync.enabled
        assert sync.pending_directory is None

    def test_nothing_pending_raises(self, panes) -> None:
        _, _, sync = panes

        with pytest.raises(NotFoundError):
            sync.create_pending_directory()


class TestToggle:
    def test_toggle_takes_current_directories_as_roots(self, panes, local_root) -> None:
        local, remote, sync = panes
        assert sync.toggle() is False
        local.enter_directory(str(local_root / "c"))
        remote.enter_directory("/srv/a")

        assert sync.toggle() is True
        assert sync.local_root == str(local_root / "c")
        assert sync.remote_root == "/srv/a"
        assert sync.remote_path_for(str(local_root / "c" / "x")) == "/srv/a/x"
