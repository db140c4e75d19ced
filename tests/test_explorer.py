"""Tests for explorer sessions."""

import pytest

from termxfer.errors import HostError, NotFoundError, PermissionDeniedError
from termxfer.explorer import ExplorerSession, SortDirection, SortKey
from termxfer.explorer.session import HISTORY_LIMIT
from termxfer.host.models import Entry, EntryKind
from termxfer.explorer.sorting import sort_entries
from support import MemoryBridge


@pytest.fixture
def bridge():
    memory = (
        MemoryBridge()
        .add_file("/home/user/notes.txt", b"12345", mtime=30.0)
        .add_file("/home/user/archive.zip", b"1", mtime=10.0)
        .add_file("/home/user/.profile", b"abc", mtime=20.0)
        .add_dir("/home/user/docs")
        .add_dir("/home/user/Zeta")
    )
    memory.connect()
    return memory


@pytest.fixture
def session(bridge):
    explorer = ExplorerSession(bridge)
    explorer.open("/home/user")
    return explorer


def _names(entries):
    return [e.name for e in entries]


class TestNavigation:
    def test_open_lists_directory(self, session) -> None:
        assert session.cwd == "/home/user"
        assert _names(session.visible_entries()) == ["docs", "Zeta", "archive.zip", "notes.txt"]

    def test_enter_relative_and_back(self, session) -> None:
        session.enter_directory("docs")
        assert session.cwd == "/home/user/docs"

        assert session.go_back() is True
        assert session.cwd == "/home/user"
        assert session.go_back() is False

    def test_parent(self, session) -> None:
        session.go_to_parent()

        assert session.cwd == "/home"

    def test_failed_navigation_leaves_state(self, session) -> None:
        session.select("/home/user/notes.txt")
        before = (session.cwd, list(session.state.entries), set(session.state.selection))

        with pytest.raises(NotFoundError):
            session.enter_directory("missing")
        with pytest.raises(NotFoundError):
            session.enter_directory("notes.txt")

        assert (session.cwd, session.state.entries, session.state.selection) == before
        assert session.state.history == []

    def test_permission_error_propagates(self, session, bridge) -> None:
        bridge.fail("list_dir", PermissionDeniedError("denied", "/home/user/docs"))

        with pytest.raises(PermissionDeniedError):
            session.enter_directory("docs")
        assert session.cwd == "/home/user"

    def test_failed_back_keeps_history(self, session, bridge) -> None:
        session.enter_directory("docs")
        bridge.fail("stat", NotFoundError("gone"))

        with pytest.raises(NotFoundError):
            session.go_back()
        assert session.state.history == ["/home/user"]

    def test_history_is_bounded(self, session) -> None:
        for _ in range(HISTORY_LIMIT + 10):
            session.enter_directory("/home/user/docs")
            session.enter_directory("/home/user")

        assert len(session.state.history) == HISTORY_LIMIT

    def test_refresh_keeps_surviving_selection(self, session, bridge) -> None:
        session.select("/home/user/notes.txt")
        session.select("/home/user/archive.zip")
        del bridge.files["/home/user/archive.zip"]

        session.refresh()

        assert session.state.selection == {"/home/user/notes.txt"}

    def test_reading_does_not_touch_the_state(self, session, bridge) -> None:
        listing = session.read_directory("/home/user/docs")

        assert listing.path == "/home/user/docs"
        assert session.cwd == "/home/user"

        session.show(listing)
        assert session.cwd == "/home/user/docs"
        assert session.state.history == ["/home/user"]

    def test_stale_listing_is_not_shown_as_refresh(self, session) -> None:
        listing = session.read_listing("/home/user")
        session.enter_directory("docs")

        assert session.show_refresh(listing) is False
        assert session.cwd == "/home/user/docs"
        assert session.state.entries == []


class TestView:
    def test_hidden_toggle(self, session) -> None:
        assert session.toggle_hidden() is True
        assert ".profile" in _names(session.visible_entries())

    def test_filter(self, session) -> None:
        session.set_filter("*.txt")
        assert _names(session.visible_entries()) == ["notes.txt"]

        session.set_filter("")
        assert len(session.visible_entries()) == 4

    def test_sort_by_size_descending_keeps_directories_first(self, session) -> None:
        session.set_sort(SortKey.SIZE, SortDirection.DESCENDING)

        assert _names(session.visible_entries())[2:] == ["notes.txt", "archive.zip"]
        assert set(_names(session.visible_entries())[:2]) == {"docs", "Zeta"}

    def test_sort_by_modified_without_grouping(self) -> None:
        entries = [
            Entry("/b", "b", EntryKind.FILE, mtime=2.0),
            Entry("/d", "d", EntryKind.DIRECTORY, mtime=3.0),
            Entry("/a", "a", EntryKind.FILE, mtime=1.0),
        ]

        ordered = sort_entries(entries, SortKey.MODIFIED, group_dirs_first=False)

        assert _names(ordered) == ["a", "b", "d"]

    def test_sort_by_type(self) -> None:
        entries = [
            Entry("/x.txt", "x.txt", EntryKind.FILE),
            Entry("/y.py", "y.py", EntryKind.FILE),
            Entry("/README", "README", EntryKind.FILE),
        ]

        assert _names(sort_entries(entries, SortKey.TYPE)) == ["README", "y.py", "x.txt"]


class TestSelection:
    def test_select_ignores_unknown_paths(self, session) -> None:
        session.select("/elsewhere")
        assert session.state.selection == set()

    def test_toggle_and_select_all(self, session) -> None:
        notes = session.entry_by_name("notes.txt")
        session.toggle_selection(notes)
        assert session.selected_entries() == [notes]
        session.toggle_selection(notes)
        assert session.selected_entries() == []

        session.select_all()
        assert "/home/user/.profile" not in session.state.selection
        assert len(session.state.selection) == 4

        session.clear_selection()
        assert session.state.selection == set()

    def test_navigation_clears_selection(self, session) -> None:
        session.select_all()
        session.enter_directory("docs")
        assert session.state.selection == set()


class TestFileOperations:
    def test_make_dir_and_create_file(self, session, bridge) -> None:
        assert session.make_dir("new") == "/home/user/new"
        assert session.create_file("empty.txt") == "/home/user/empty.txt"

        assert "/home/user/new" in bridge.dirs
        assert bridge.files["/home/user/empty.txt"] == b""
        assert session.entry_by_name("new") is not None

    def test_create_existing_file_fails(self, session) -> None:
        with pytest.raises(HostError):
            session.create_file("notes.txt")

    def test_rename_in_place_and_move(self, session, bridge) -> None:
        notes = session.entry_by_name("notes.txt")
        assert session.rename_entry(notes, "todo.txt") == "/home/user/todo.txt"

        todo = session.entry_by_name("todo.txt")
        assert session.rename_entry(todo, "docs/todo.txt") == "/home/user/docs/todo.txt"
        assert bridge.files["/home/user/docs/todo.txt"] == b"12345"

    def test_delete_attempts_every_entry(self, session, bridge) -> None:
        bridge.add_file("/home/user/docs/inner.txt", b"x")
        bridge.fail("remove", PermissionDeniedError("denied", "/home/user/archive.zip"))
        entries = [session.entry_by_name("archive.zip"), session.entry_by_name("docs")]

        with pytest.raises(PermissionDeniedError):
            session.delete_entries(entries)

        assert "/home/user/archive.zip" in bridge.files
        assert "/home/user/docs" not in bridge.dirs
        assert session.entry_by_name("docs") is None

    def test_find_walks_breadth_first(self, session, bridge) -> None:
        bridge.add_file("/home/user/docs/deep/report.txt", b"r")
        bridge.add_link("/home/user/docs/loop", "/home/user")

        found = session.find("*.txt")

        assert [e.path for e in found] == ["/home/user/notes.txt", "/home/user/docs/deep/report.txt"]

    def test_find_respects_limit(self, session) -> None:
        assert len(session.find("*", limit=2)) == 2
