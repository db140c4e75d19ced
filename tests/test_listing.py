"""Tests for textual directory listing parsers."""

import stat
from datetime import datetime

from termxfer.host.listing import mode_from_permissions, parse_list_line, parse_mlsd_facts
from termxfer.host.models import EntryKind

NOW = datetime(2024, 6, 15, 12, 0)


class TestParseListLine:
    def test_regular_file_with_time(self) -> None:
        row = parse_list_line("-rw-r--r--    1 user  group   1234 Mar  5 14:30 report final.txt", NOW)

        assert row.name == "report final.txt"
        assert row.kind == EntryKind.FILE
        assert row.size == 1234
        assert row.mtime == datetime(2024, 3, 5, 14, 30).timestamp()
        assert stat.S_IMODE(row.mode) == 0o644

    def test_future_date_belongs_to_last_year(self) -> None:
        row = parse_list_line("-rw-r--r-- 1 u g 1 Dec 24 10:00 gift", NOW)

        assert row.mtime == datetime(2023, 12, 24, 10, 0).timestamp()

    def test_directory_with_year(self) -> None:
        row = parse_list_line("drwxr-xr-x 2 u g 4096 Jan 01 2020 docs", NOW)

        assert row.kind == EntryKind.DIRECTORY
        assert row.size == 0
        assert row.mtime == datetime(2020, 1, 1).timestamp()

    def test_symlink_target(self) -> None:
        row = parse_list_line("lrwxrwxrwx 1 u g 7 Jan 01 2020 current -> v1.2.3", NOW)

        assert row.kind == EntryKind.SYMLINK
        assert row.name == "current"
        assert row.symlink_target == "v1.2.3"

    def test_headers_and_dot_entries_are_skipped(self) -> None:
        assert parse_list_line("total 12", NOW) is None
        assert parse_list_line("drwxr-xr-x 2 u g 4096 Jan 01 2020 .", NOW) is None
        assert parse_list_line("drwxr-xr-x 2 u g 4096 Jan 01 2020 ..", NOW) is None
        assert parse_list_line("garbage line that has many words in it ok", NOW) is None

    def test_setuid_and_sticky_bits(self) -> None:
        mode = mode_from_permissions("drwxrwxrwt")

        assert stat.S_ISDIR(mode)
        assert mode & stat.S_IXOTH
        assert mode_from_permissions("rw-") is None


class TestParseMlsdFacts:
    def test_file(self) -> None:
        row = parse_mlsd_facts(
            "data.csv", {"type": "file", "size": "99", "modify": "20240102030405.123", "unix.mode": "0640"}
        )

        assert row.kind == EntryKind.FILE
        assert row.size == 99
        assert row.mtime == datetime(2024, 1, 2, 3, 4, 5).timestamp()
        assert stat.S_IMODE(row.mode) == 0o640

    def test_directory_and_links(self) -> None:
        assert parse_mlsd_facts("src", {"type": "dir", "size": "4096"}).size == 0
        assert parse_mlsd_facts("ln", {"type": "OS.unix=slink:/x"}).kind == EntryKind.SYMLINK

    def test_current_and_parent_are_skipped(self) -> None:
        assert parse_mlsd_facts(".", {"type": "cdir"}) is None
        assert parse_mlsd_facts("..", {"type": "pdir"}) is None
