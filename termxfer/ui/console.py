"""Line-oriented front end driving the application controller."""

import cmd
import getpass
import logging
import shlex
from typing import List

from ..errors import CredentialLocked, TermxferError
from ..explorer.sorting import SortDirection, SortKey
from ..host.models import Entry
from ..host.params import ConnectionProfile, parse_address
from ..transfer.models import ConflictChoice
from .controller import AppController, ConflictQuestion
from .state import Pane

logger = logging.getLogger(__name__)

_CHOICES = {
    "o": ConflictChoice.OVERWRITE,
    "s": ConflictChoice.SKIP,
    "r": ConflictChoice.RESUME,
    "n": ConflictChoice.RENAME,
}


def format_size(size: int) -> str:
    """Format a byte count for listings."""
    value = float(size)
    for unit in ("B", "K", "M", "G", "T"):
        if value < 1024 or unit == "T":
            return f"{value:.0f}{unit}" if unit == "B" else f"{value:.1f}{unit}"
        value /= 1024
    return f"{size}B"


def format_entry(entry: Entry, selected: bool = False) -> str:
    """Format one listing row."""
    marker = "*" if selected else " "
    name = entry.name + ("/" if entry.is_dir else "")
    if entry.is_symlink and entry.symlink_target:
        name += f" -> {entry.symlink_target}"
    when = entry.mtime_datetime.strftime("%Y-%m-%d %H:%M") if entry.mtime else " " * 16
    return f"{marker} {entry.permissions or '-' * 10:10} {format_size(entry.size):>8} {when} {name}"


class Console(cmd.Cmd):
    """Two-pane shell: plain commands act on the remote pane, ``l``-prefixed ones locally."""

    intro = "termxfer: type 'help' for commands."

    def __init__(self, controller: AppController, stdin=None, stdout=None) -> None:
        super().__init__(stdin=stdin, stdout=stdout)
        if stdin is not None:
            self.use_rawinput = False
        self.controller = controller
        self.state = controller.state
        controller.conflict_handler = self._on_conflict

    # -- helpers

    @property
    def prompt(self) -> str:
        remote = self.state.remote
        where = f"{remote.bridge.describe()}:{remote.cwd}" if remote else "(not connected)"
        sync = " [sync]" if self.state.sync is not None and self.state.sync.enabled else ""
        return f"{where}{sync}> "

    def _print(self, text: str = "") -> None:
        self.stdout.write(text + "\n")

    def _wait(self) -> None:
        try:
            self.controller.run_until_idle()
        except KeyboardInterrupt:
            self._print("Cancelling...")
            self.controller.cancel_transfer()
            self.controller.run_until_idle()
        for notification in self.state.pop_notifications():
            self._print(f"[{notification.level}] {notification.text}")

    def _pane_session(self, pane: Pane):
        session = self.state.session(pane)
        if session is None:
            self._print("Not connected.")
        return session

    def _resolve_entries(self, pane: Pane, names: List[str]) -> List[Entry]:
        session = self._pane_session(pane)
        if session is None:
            return []
        if not names:
            return session.selected_entries()
        entries = []
        for name in names:
            entry = session.entry_by_name(name)
            if entry is None:
                self._print(f"No such entry: {name}")
            else:
                entries.append(entry)
        return entries

    def _on_conflict(self, question: ConflictQuestion) -> None:
        existing = question.existing
        text = (
            f"{question.task.destination} exists ({format_size(existing.size)}). "
            "[o]verwrite, [s]kip, [r]esume, re[n]ame? "
        )
        if self.use_rawinput:
            answer = input(text)
        else:
            self.stdout.write(text)
            self.stdout.flush()
            answer = self.stdin.readline()
        self.controller.answer_conflict(_CHOICES.get(answer.strip().lower()[:1]))

    def onecmd(self, line: str) -> bool:
        try:
            return super().onecmd(line)
        except (TermxferError, RuntimeError, ValueError, KeyError) as exc:
            logger.debug("Command %r failed", line, exc_info=True)
            self._print(f"error: {exc}")
            return False

    def emptyline(self) -> bool:
        self._wait()
        return False

    # -- connection

    def do_connect(self, arg: str) -> None:
        """connect ADDRESS: connect to [protocol://][user@]host[:port][/path]."""
        config = self.state.config
        profile = parse_address(arg.strip(), config.default_protocol, config.ssh_config_path)
        if profile.protocol.is_ssh or profile.username:
            secret = getpass.getpass("Password (empty for keys/agent): ")
            profile.secret = secret or None
        self._connect(profile)

    def _connect(self, profile: ConnectionProfile) -> None:
        self.controller.connect(profile)
        self._wait()

    def do_open(self, arg: str) -> None:
        """open BOOKMARK: connect through a saved bookmark."""
        name = arg.strip()
        try:
            self.controller.connect_bookmark(name)
        except CredentialLocked as exc:
            self._print(str(exc))
            self.controller.connect_bookmark(name, getpass.getpass("Password: "))
        self._wait()

    def do_disconnect(self, arg: str) -> None:
        """disconnect: close the remote connection."""
        self.controller.disconnect()
        self._wait()

    def do_bookmarks(self, arg: str) -> None:
        """bookmarks: list saved bookmarks and recent connections."""
        store = self.state.bookmarks
        for name in store.names():
            bookmark = store.get(name)
            flag = " (locked)" if bookmark.locked else ""
            self._print(f"  {name}: {bookmark.profile.display_address}{flag}")
        recents = store.recents()
        if recents:
            self._print("recent:")
            for profile in recents:
                self._print(f"  {profile.display_address}")

    def do_bookmark(self, arg: str) -> None:
        """bookmark add NAME | bookmark rm NAME: save the current connection or delete one."""
        parts = shlex.split(arg)
        if len(parts) != 2 or parts[0] not in ("add", "rm"):
            self._print("usage: bookmark add NAME | bookmark rm NAME")
            return
        action, name = parts
        if action == "rm":
            self.state.bookmarks.delete_bookmark(name)
            return
        remote = self._pane_session(Pane.REMOTE)
        if remote is not None:
            self.state.bookmarks.add_bookmark(name, remote.bridge.profile)

    # -- listing and navigation

    def _list(self, pane: Pane) -> None:
        session = self._pane_session(pane)
        if session is None:
            return
        self._print(f"{session.cwd}:")
        for entry in session.visible_entries():
            self._print(format_entry(entry, entry.path in session.state.selection))

    def do_ls(self, arg: str) -> None:
        """ls: list the remote directory."""
        self._list(Pane.REMOTE)

    def do_lls(self, arg: str) -> None:
        """lls: list the local directory."""
        self._list(Pane.LOCAL)

    def do_cd(self, arg: str) -> None:
        """cd PATH: change the remote directory (.. for parent, - for back)."""
        self._navigate(Pane.REMOTE, arg.strip())

    def do_lcd(self, arg: str) -> None:
        """lcd PATH: change the local directory; the remote follows when synchronized."""
        self._navigate(Pane.LOCAL, arg.strip())

    def _navigate(self, pane: Pane, path: str) -> None:
        if path == "-":
            self.controller.go_back(pane)
        elif path == "..":
            self.controller.go_to_parent(pane)
        else:
            self.controller.navigate(pane, path or "/")
        self._wait()

    def do_pwd(self, arg: str) -> None:
        """pwd: print both working directories."""
        remote = self.state.remote
        self._print(f"local:  {self.state.local.cwd}")
        self._print(f"remote: {remote.cwd if remote else '-'}")

    def do_refresh(self, arg: str) -> None:
        """refresh: re-list both panes."""
        self.controller.refresh(Pane.LOCAL)
        if self.state.remote is not None:
            self.controller.refresh(Pane.REMOTE)
        self._wait()

    # -- presentation and selection

    def do_sort(self, arg: str) -> None:
        """sort KEY [desc]: sort both panes by name, modified, size or type."""
        parts = arg.split()
        if not parts:
            self._print("usage: sort name|modified|size|type [desc]")
            return
        key = SortKey(parts[0].lower())
        direction = SortDirection.DESCENDING if parts[1:] == ["desc"] else SortDirection.ASCENDING
        for pane in (Pane.LOCAL, Pane.REMOTE):
            if self.state.session(pane) is not None:
                self.controller.set_sort(pane, key, direction)

    def do_filter(self, arg: str) -> None:
        """filter [GLOB]: show only matching names in both panes; no argument clears."""
        for pane in (Pane.LOCAL, Pane.REMOTE):
            if self.state.session(pane) is not None:
                self.controller.set_filter(pane, arg.strip() or None)

    def do_hidden(self, arg: str) -> None:
        """hidden: toggle hidden files in both panes."""
        for pane in (Pane.LOCAL, Pane.REMOTE):
            if self.state.session(pane) is not None:
                shown = self.controller.toggle_hidden(pane)
        self._print(f"hidden files {'shown' if shown else 'hidden'}")

    def do_select(self, arg: str) -> None:
        """select NAME...: toggle remote selection (* selects all)."""
        self._select(Pane.REMOTE, shlex.split(arg))

    def do_lselect(self, arg: str) -> None:
        """lselect NAME...: toggle local selection (* selects all)."""
        self._select(Pane.LOCAL, shlex.split(arg))

    def _select(self, pane: Pane, names: List[str]) -> None:
        session = self._pane_session(pane)
        if session is None:
            return
        if names == ["*"]:
            session.select_all()
            return
        if not names:
            session.clear_selection()
            return
        for entry in self._resolve_entries(pane, names):
            session.toggle_selection(entry)

    # -- file operations

    def do_get(self, arg: str) -> None:
        """get [NAME...]: download names (or the remote selection) to the local directory."""
        self._transfer(Pane.REMOTE, shlex.split(arg))

    def do_put(self, arg: str) -> None:
        """put [NAME...]: upload names (or the local selection) to the remote directory."""
        self._transfer(Pane.LOCAL, shlex.split(arg))

    def _transfer(self, pane: Pane, names: List[str]) -> None:
        entries = self._resolve_entries(pane, names)
        if not entries:
            self._print("Nothing to transfer.")
            return
        self.controller.start_transfer(pane, entries)
        self._wait()

    def do_cancel(self, arg: str) -> None:
        """cancel: stop the running transfer."""
        self.controller.cancel_transfer()

    def do_mkdir(self, arg: str) -> None:
        """mkdir NAME: create a remote directory."""
        self.controller.make_dir(Pane.REMOTE, arg.strip())
        self._wait()

    def do_lmkdir(self, arg: str) -> None:
        """lmkdir NAME: create a local directory."""
        self.controller.make_dir(Pane.LOCAL, arg.strip())
        self._wait()

    def do_touch(self, arg: str) -> None:
        """touch NAME: create an empty remote file."""
        self.controller.create_file(Pane.REMOTE, arg.strip())
        self._wait()

    def do_rm(self, arg: str) -> None:
        """rm NAME...: delete remote entries (directories recursively)."""
        self._delete(Pane.REMOTE, shlex.split(arg))

    def do_lrm(self, arg: str) -> None:
        """lrm NAME...: delete local entries (directories recursively)."""
        self._delete(Pane.LOCAL, shlex.split(arg))

    def _delete(self, pane: Pane, names: List[str]) -> None:
        entries = self._resolve_entries(pane, names)
        if entries:
            self.controller.delete(pane, entries)
            self._wait()

    def do_mv(self, arg: str) -> None:
        """mv NAME NEW: rename a remote entry."""
        self._rename(Pane.REMOTE, shlex.split(arg))

    def do_lmv(self, arg: str) -> None:
        """lmv NAME NEW: rename a local entry."""
        self._rename(Pane.LOCAL, shlex.split(arg))

    def _rename(self, pane: Pane, parts: List[str]) -> None:
        if len(parts) != 2:
            self._print("usage: mv NAME NEW")
            return
        entries = self._resolve_entries(pane, parts[:1])
        if entries:
            self.controller.rename(pane, entries[0], parts[1])
            self._wait()

    def do_cp(self, arg: str) -> None:
        """cp NAME... DEST: copy remote entries to another remote directory."""
        self._copy(Pane.REMOTE, shlex.split(arg))

    def do_lcp(self, arg: str) -> None:
        """lcp NAME... DEST: copy local entries to another local directory."""
        self._copy(Pane.LOCAL, shlex.split(arg))

    def _copy(self, pane: Pane, parts: List[str]) -> None:
        if len(parts) < 2:
            self._print("usage: cp NAME... DEST")
            return
        entries = self._resolve_entries(pane, parts[:-1])
        if entries:
            self.controller.copy(pane, entries, parts[-1])
            self._wait()

    def do_ln(self, arg: str) -> None:
        """ln TARGET NAME: create a remote symbolic link."""
        self._symlink(Pane.REMOTE, shlex.split(arg))

    def do_lln(self, arg: str) -> None:
        """lln TARGET NAME: create a local symbolic link."""
        self._symlink(Pane.LOCAL, shlex.split(arg))

    def _symlink(self, pane: Pane, parts: List[str]) -> None:
        if len(parts) != 2:
            self._print("usage: ln TARGET NAME")
            return
        if self._pane_session(pane) is not None:
            self.controller.symlink(pane, parts[0], parts[1])
            self._wait()

    def do_edit(self, arg: str) -> None:
        """edit NAME: edit a remote file; it is uploaded back when changed."""
        self._edit(Pane.REMOTE, arg.strip())

    def do_ledit(self, arg: str) -> None:
        """ledit NAME: edit a local file."""
        self._edit(Pane.LOCAL, arg.strip())

    def _edit(self, pane: Pane, name: str) -> None:
        if not name:
            self._print("usage: edit NAME")
            return
        entries = self._resolve_entries(pane, [name])
        if entries:
            self.controller.edit(pane, entries[0])
            self._wait()

    def do_find(self, arg: str) -> None:
        """find GLOB: search the remote tree under the cwd."""
        self._find(Pane.REMOTE, arg.strip())

    def do_lfind(self, arg: str) -> None:
        """lfind GLOB: search the local tree under the cwd."""
        self._find(Pane.LOCAL, arg.strip())

    def _find(self, pane: Pane, glob: str) -> None:
        def show(results: List[Entry]) -> None:
            for entry in results:
                self._print(entry.path)
            self._print(f"{len(results)} matches")

        self.controller.find(pane, glob or "*", show)
        self._wait()

    def do_exec(self, arg: str) -> None:
        """exec COMMAND: run a shell command on the remote host."""
        self.controller.exec_command(Pane.REMOTE, arg, self._print)
        self._wait()

    # -- sync and watch

    def do_sync(self, arg: str) -> None:
        """sync: toggle synchronized browsing."""
        self.controller.toggle_sync()
        self._wait()

    def do_mkpending(self, arg: str) -> None:
        """mkpending: create the remote directory synchronized browsing could not enter."""
        self.controller.create_pending_directory()
        self._wait()

    def do_watch(self, arg: str) -> None:
        """watch: toggle auto-upload of local saves under the local directory."""
        self.controller.toggle_watch()
        self._wait()

    # -- misc

    def do_log(self, arg: str) -> None:
        """log: show recent log records."""
        for line in self.state.log.lines():
            self._print(str(line))

    def do_quit(self, arg: str) -> bool:
        """quit: leave termxfer."""
        return True

    do_exit = do_quit
    do_EOF = do_quit
