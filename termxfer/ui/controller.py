"""Application loop: dispatches intents to workers and handles their results."""

import hashlib
import logging
import os
import queue
import shlex
import shutil
import subprocess
import tempfile
import threading
import time
from typing import Callable, List, Optional

from ..bookmarks.secrets import probe_secret_store
from ..bookmarks.store import BookmarkStore
from ..config import Config
from ..errors import (
    ConflictUnresolved,
    CredentialLocked,
    HostError,
    NotFoundError,
    TransferAborted,
)
from ..explorer.session import ExplorerSession, Listing
from ..explorer.sorting import SortDirection, SortKey
from ..host.builder import build_bridge, build_local_bridge
from ..host.models import Entry
from ..host.params import ConnectionProfile
from ..sync.autosync import AutoSync
from ..sync.browsing import SyncBrowser
from ..transfer.engine import TransferEngine
from ..transfer.models import (
    ConflictChoice,
    TransferDirection,
    TransferOptions,
    TransferReport,
    TransferTask,
)
from .log_buffer import LogBuffer
from .state import AppState, Pane, TransferRun
from .worker import BridgeWorker, Job, Message

logger = logging.getLogger(__name__)


def _digest(path: str) -> str:
    digest = hashlib.sha256()
    with open(path, "rb") as handle:
        for chunk in iter(lambda: handle.read(65536), b""):
            digest.update(chunk)
    return digest.hexdigest()


class ConflictQuestion:
    """A conflict waiting for the user's answer."""

    def __init__(self, task: TransferTask, existing: Entry) -> None:
        self.task = task
        self.existing = existing
        self.choice: Optional[ConflictChoice] = None
        self._answered = threading.Event()

    def answer(self, choice: Optional[ConflictChoice]) -> None:
        """Answer the question (None leaves the conflict unresolved)."""
        self.choice = choice
        self._answered.set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until answered; False on timeout."""
        return self._answered.wait(timeout)

    @property
    def answered(self) -> bool:
        """Return True once an answer was given."""
        return self._answered.is_set()


class AppController:
    """Owns the application state and the workers driving it.

    All state changes happen on the thread calling ``tick``; workers only
    run bridge operations and post messages.
    """

    def __init__(self, state: AppState, channel: Optional["queue.Queue[Message]"] = None) -> None:
        self.state = state
        self.channel: "queue.Queue[Message]" = channel or queue.Queue()
        self.local_worker = BridgeWorker("local", self.channel)
        self.transfer_worker = BridgeWorker("transfer", self.channel)
        self.remote_worker: Optional[BridgeWorker] = None
        self.local_worker.start()
        self.transfer_worker.start()
        self.conflict_timeout: Optional[float] = None
        self.conflict_handler: Optional[Callable[[ConflictQuestion], None]] = None
        self.pending_conflict: Optional[ConflictQuestion] = None

    @classmethod
    def create(
        cls,
        config: Config,
        local_dir: Optional[str] = None,
        log_buffer: Optional[LogBuffer] = None,
        secret_backend=None,
    ) -> "AppController":
        """Build the state from configuration and open the local pane."""
        bookmarks = BookmarkStore(
            config.bookmarks_file, probe_secret_store(config.config_dir, secret_backend)
        )
        bookmarks.load()
        local_bridge = build_local_bridge(local_dir)
        local_bridge.connect()
        local = ExplorerSession(
            local_bridge,
            show_hidden=config.show_hidden_files,
            group_dirs_first=config.group_dirs_first,
        )
        local.open()
        state = AppState(
            config=config,
            bookmarks=bookmarks,
            local=local,
            log=log_buffer or LogBuffer(),
        )
        return cls(state)

    # -- workers

    def worker_for(self, pane: Pane) -> BridgeWorker:
        """Get the worker owning a pane's bridge."""
        if pane == Pane.LOCAL:
            return self.local_worker
        if self.remote_worker is None:
            raise RuntimeError("Not connected to a remote host")
        return self.remote_worker

    def _session(self, pane: Pane) -> ExplorerSession:
        session = self.state.session(pane)
        if session is None:
            raise RuntimeError("Not connected to a remote host")
        return session

    @property
    def idle(self) -> bool:
        """Return True when no job is pending and no message is unhandled."""
        workers = [self.local_worker, self.transfer_worker, self.remote_worker]
        return self.channel.empty() and not any(w.busy for w in workers if w is not None)

    # -- connection

    def connect(self, profile: ConnectionProfile) -> Job:
        """Connect the remote pane in the background."""
        bridge = build_bridge(profile)
        session = ExplorerSession(
            bridge,
            show_hidden=self.state.config.show_hidden_files,
            group_dirs_first=self.state.config.group_dirs_first,
        )
        if self.remote_worker is None:
            self.remote_worker = BridgeWorker("remote", self.channel)
            self.remote_worker.start()

        def open_session() -> ExplorerSession:
            bridge.connect()
            session.open()
            return session

        def connected(result: ExplorerSession) -> None:
            self._install_remote(result)
            self.state.bookmarks.add_recent(profile)
            self.state.notify("info", f"Connected to {bridge.describe()}")

        def failed(exc: Exception) -> None:
            logger.error("Connection to %s failed: %s", profile.display_address, exc)
            self.state.notify("error", f"Connection failed: {exc}")

        return self.remote_worker.submit("connect", open_session, connected, failed)

    def connect_bookmark(self, name: str, secret: Optional[str] = None) -> Job:
        """Connect through a bookmark; ``secret`` replaces a locked credential."""
        bookmarks = self.state.bookmarks
        try:
            profile = bookmarks.profile_for(name)
        except CredentialLocked:
            if secret is None:
                raise
            profile = bookmarks.get(name).profile.without_secret()
        if secret is not None:
            profile.secret = secret
        return self.connect(profile)

    def _install_remote(self, session: ExplorerSession) -> None:
        previous = self.state.remote
        if previous is not None and previous.bridge is not session.bridge:
            self.stop_watch()
            self.worker_for(Pane.REMOTE).submit("disconnect", previous.bridge.close)
        self.state.remote = session
        self.state.sync = SyncBrowser(self.state.local, session)
        if self.state.config.enable_sync_browsing:
            self.state.sync.enable()

    def disconnect(self) -> None:
        """Close the remote connection."""
        self.stop_watch()
        session = self.state.remote
        if session is None:
            return
        self.state.remote = None
        self.state.sync = None
        self.worker_for(Pane.REMOTE).submit("disconnect", session.bridge.close)

    # -- navigation

    def navigate(self, pane: Pane, path: str) -> Job:
        """Enter a directory in a pane."""
        session = self._session(pane)
        target = session.path_for(path)
        return self._show_job(pane, f"cd {path}", lambda: session.read_directory(target), session.show)

    def go_to_parent(self, pane: Pane) -> Optional[Job]:
        """Enter the parent directory in a pane; None when already at the top."""
        parent = self._session(pane).parent_path()
        if parent is None:
            return None
        return self.navigate(pane, parent)

    def go_back(self, pane: Pane) -> Optional[Job]:
        """Return to the previous directory in a pane; None when there is no history."""
        session = self._session(pane)
        previous = session.back_path()
        if previous is None:
            self.state.notify("info", "No previous directory")
            return None
        return self._show_job(pane, "back", lambda: session.read_directory(previous), session.show_back)

    def refresh(self, pane: Pane) -> Optional[Job]:
        """Re-list a pane."""
        session = self._session(pane)
        cwd = session.cwd
        if cwd is None:
            return None
        return self.worker_for(pane).submit(
            "refresh", lambda: session.read_listing(cwd), session.show_refresh
        )

    def _show_job(
        self,
        pane: Pane,
        label: str,
        read: Callable[[], Listing],
        show: Callable[[Listing], None],
    ) -> Job:
        def done(listing: Listing) -> None:
            show(listing)
            if pane == Pane.LOCAL:
                self._follow_sync()

        return self.worker_for(pane).submit(label, read, done)

    def _follow_sync(self) -> None:
        sync = self.state.sync
        if sync is None or self.remote_worker is None:
            return
        target, warning = sync.follow_target(self.state.local.cwd)
        if warning:
            self.state.notify("warning", warning)
        if target is None:
            return
        remote = sync.remote

        def failed(exc: Exception) -> None:
            if not isinstance(exc, HostError):
                self.state.notify("error", f"sync: {exc}")
                return
            self.state.notify("warning", sync.follow_failed(target, exc))

        self.remote_worker.submit(
            "sync", lambda: remote.read_directory(target), remote.show, failed
        )

    def toggle_sync(self) -> bool:
        """Toggle synchronized browsing; return the new state."""
        if self.state.sync is None:
            self.state.notify("warning", "Synchronized browsing needs a remote connection")
            return False
        enabled = self.state.sync.toggle()
        self.state.notify("info", f"Synchronized browsing {'on' if enabled else 'off'}")
        return enabled

    def create_pending_directory(self) -> Job:
        """Create the remote directory synchronized browsing could not enter."""
        sync = self.state.sync
        if sync is None:
            raise RuntimeError("Not connected to a remote host")
        target = sync.pending_directory
        if target is None:
            raise NotFoundError("No remote directory is pending creation")
        remote = sync.remote

        def create() -> Listing:
            sync.create_remote_dirs(target)
            return remote.read_directory(target)

        def created(listing: Listing) -> None:
            remote.show(listing)
            sync.recouple()
            self.state.notify("info", f"Created {target}; synchronized browsing on")

        return self.worker_for(Pane.REMOTE).submit("mkdir pending", create, created)

    # -- presentation

    def toggle_hidden(self, pane: Pane) -> bool:
        """Flip hidden-file visibility in a pane."""
        return self._session(pane).toggle_hidden()

    def set_sort(self, pane: Pane, key: SortKey, direction: Optional[SortDirection] = None) -> None:
        """Change a pane's sort order."""
        self._session(pane).set_sort(key, direction)

    def set_filter(self, pane: Pane, glob: Optional[str]) -> None:
        """Filter a pane's listing."""
        self._session(pane).set_filter(glob)

    # -- file operations

    def _operation(self, pane: Pane, label: str, func: Callable[[], object], on_done=None) -> Job:
        """Run a bridge operation, then re-list the pane whether it failed or not."""
        job = self.worker_for(pane).submit(label, func, on_done)
        self.refresh(pane)
        return job

    def make_dir(self, pane: Pane, name: str) -> Job:
        """Create a directory in a pane's cwd."""
        session = self._session(pane)
        path = session.path_for(name)
        return self._operation(pane, f"mkdir {name}", lambda: session.bridge.create_dir(path))

    def create_file(self, pane: Pane, name: str) -> Job:
        """Create an empty file in a pane's cwd."""
        session = self._session(pane)
        path = session.path_for(name)
        return self._operation(pane, f"touch {name}", lambda: session.create_empty_file(path))

    def rename(self, pane: Pane, entry: Entry, new_name: str) -> Job:
        """Rename an entry in a pane."""
        session = self._session(pane)
        destination = session.rename_destination(entry, new_name)
        return self._operation(
            pane, f"rename {entry.name}", lambda: session.bridge.rename(entry.path, destination)
        )

    def delete(self, pane: Pane, entries: List[Entry]) -> Job:
        """Delete entries in a pane."""
        session = self._session(pane)
        entries = list(entries)
        return self._operation(pane, "delete", lambda: session.remove_entries(entries))

    def find(self, pane: Pane, glob: str, on_done: Callable[[List[Entry]], None]) -> Job:
        """Search a pane's tree; ``on_done`` receives the matches."""
        session = self._session(pane)
        root = session.cwd
        return self.worker_for(pane).submit(
            f"find {glob}", lambda: session.find(glob, root=root), on_done
        )

    def exec_command(self, pane: Pane, command: str, on_done: Callable[[str], None]) -> Job:
        """Run a shell command on a pane's host."""
        bridge = self._session(pane).bridge
        return self.worker_for(pane).submit(f"exec {command}", lambda: bridge.exec(command), on_done)

    def symlink(self, pane: Pane, target: str, name: str) -> Job:
        """Create a symlink named ``name`` in a pane's cwd pointing at ``target``."""
        session = self._session(pane)
        link_path = session.path_for(name)
        return self._operation(
            pane, f"ln {name}", lambda: session.bridge.symlink(target, link_path)
        )

    # -- editing

    def launch_editor(self, path: str) -> int:
        """Run the configured editor on a local file and wait for it to exit."""
        command = shlex.split(self.state.config.default_editor) + [path]
        logger.info("Editing %s with %s", path, command[0])
        return subprocess.call(command)

    def edit(self, pane: Pane, entry: Entry) -> Job:
        """Open a file in the editor; remote files are uploaded back when changed."""
        if entry.is_dir:
            raise ValueError(f"{entry.name} is a directory")
        session = self._session(pane)
        if pane == Pane.LOCAL:

            def edit_in_place(path: str) -> None:
                try:
                    self.launch_editor(path)
                except OSError as exc:
                    self.state.notify("error", f"Cannot start the editor: {exc}")
                self.refresh(pane)

            return self.local_worker.submit(f"edit {entry.name}", lambda: entry.path, edit_in_place)
        bridge = session.bridge
        workdir = tempfile.mkdtemp(prefix="termxfer-")
        local_path = os.path.join(workdir, entry.name)

        def download() -> str:
            with bridge.open_read(entry.path) as source, open(local_path, "wb") as copy:
                shutil.copyfileobj(source, copy)
            return _digest(local_path)

        def upload() -> None:
            try:
                with open(local_path, "rb") as copy, bridge.open_write(entry.path) as target:
                    shutil.copyfileobj(copy, target)
            finally:
                shutil.rmtree(workdir, ignore_errors=True)

        def downloaded(before: str) -> None:
            try:
                status = self.launch_editor(local_path)
            except OSError as exc:
                shutil.rmtree(workdir, ignore_errors=True)
                self.state.notify("error", f"Cannot start the editor: {exc}")
                return
            if status != 0:
                logger.warning("Editor exited with status %s", status)
            if _digest(local_path) == before:
                shutil.rmtree(workdir, ignore_errors=True)
                self.state.notify("info", f"{entry.name} unchanged")
                return
            self._operation(
                pane,
                f"upload {entry.name}",
                upload,
                lambda _: self.state.notify("info", f"Uploaded {entry.path}"),
            )

        def failed(exc: Exception) -> None:
            shutil.rmtree(workdir, ignore_errors=True)
            self.state.notify("error", f"edit {entry.name}: {exc}")

        return self.worker_for(pane).submit(f"edit {entry.name}", download, downloaded, failed)

    # -- transfers

    def transfer_options(self) -> TransferOptions:
        """Build transfer options from the configuration."""
        config = self.state.config
        return TransferOptions(
            conflict_policy=config.default_conflict_policy,
            cancel_policy=config.cancel_policy,
            follow_symlinks=config.follow_symlinks,
        )

    def start_transfer(
        self,
        source_pane: Pane,
        entries: Optional[List[Entry]] = None,
        destination_dir: Optional[str] = None,
        options: Optional[TransferOptions] = None,
        timeout: Optional[float] = None,
    ) -> TransferRun:
        """Transfer entries (default: the selection) to the other pane.

        ``timeout`` sets the cancel event after that many seconds.
        """
        source = self._session(source_pane)
        target_pane = Pane.REMOTE if source_pane == Pane.LOCAL else Pane.LOCAL
        target = self._session(target_pane)
        entries = list(entries or source.selected_entries())
        if not entries:
            raise ValueError("Nothing selected to transfer")
        direction = (
            TransferDirection.UPLOAD if source_pane == Pane.LOCAL else TransferDirection.DOWNLOAD
        )
        return self._run_transfer(
            source,
            target,
            target_pane,
            entries,
            destination_dir or target.cwd,
            direction,
            options,
            timeout,
        )

    def copy(
        self,
        pane: Pane,
        entries: List[Entry],
        destination_dir: str,
        options: Optional[TransferOptions] = None,
    ) -> TransferRun:
        """Copy entries to another directory on the same host."""
        session = self._session(pane)
        bridge = session.bridge
        destination_dir = session.path_for(destination_dir)
        entries = list(entries)
        if not entries:
            raise ValueError("Nothing selected to copy")
        for entry in entries:
            if bridge.relative_to(destination_dir, entry.path) is not None:
                raise ValueError(f"Cannot copy {entry.name} into itself")
            if bridge.relative_to(bridge.dirname(entry.path), destination_dir) == "":
                raise ValueError(f"{entry.name} is already in {destination_dir}")
        return self._run_transfer(
            session, session, pane, entries, destination_dir, TransferDirection.LOCAL_COPY, options
        )

    def _run_transfer(
        self,
        source: ExplorerSession,
        target: ExplorerSession,
        target_pane: Pane,
        entries: List[Entry],
        destination_dir: str,
        direction: TransferDirection,
        options: Optional[TransferOptions] = None,
        timeout: Optional[float] = None,
    ) -> TransferRun:
        if self.state.transfer is not None and not self.state.transfer.finished:
            raise RuntimeError("A transfer is already running")
        run = TransferRun(queue=None)
        engine = TransferEngine(
            source.bridge,
            target.bridge,
            options or self.transfer_options(),
            prompt=self._ask_conflict,
            cancel_event=run.cancel_event,
            on_progress=lambda snapshot: self.channel.put(Message("progress", snapshot)),
            on_task=lambda task: self.channel.put(Message("task", task)),
        )

        def execute() -> TransferReport:
            transfer_queue = engine.enqueue(entries, destination_dir, direction)
            self.channel.put(Message("queued", (run, transfer_queue)))
            return engine.run(transfer_queue)

        def finished(report: TransferReport) -> None:
            self._finish_transfer(run, report)
            self.state.notify("info", f"Transfer finished: {report.summary()}")
            self.refresh(target_pane)

        def failed(exc: Exception) -> None:
            report = exc.report if isinstance(exc, TransferAborted) else None
            self._finish_transfer(run, report or TransferReport())
            self.state.notify("error", str(exc))
            self.refresh(target_pane)

        if timeout is not None:
            run.timer = threading.Timer(timeout, run.cancel_event.set)
            run.timer.daemon = True
            run.timer.start()
        self.state.transfer = run
        self.transfer_worker.submit(direction.value, execute, finished, failed)
        return run

    def _finish_transfer(self, run: TransferRun, report: TransferReport) -> None:
        if run.timer is not None:
            run.timer.cancel()
        run.report = report
        self.state.last_report = report

    def cancel_transfer(self) -> None:
        """Stop the running transfer at its next checkpoint."""
        run = self.state.transfer
        if run is None or run.finished:
            return
        run.cancel_event.set()
        if self.pending_conflict is not None and not self.pending_conflict.answered:
            self.pending_conflict.answer(ConflictChoice.SKIP)
        logger.info("Transfer cancellation requested")

    def _ask_conflict(self, task: TransferTask, existing: Entry) -> ConflictChoice:
        """Ask the UI thread about a conflict (called on the transfer worker)."""
        question = ConflictQuestion(task, existing)
        self.channel.put(Message("conflict", question))
        if not question.wait(self.conflict_timeout):
            raise ConflictUnresolved(f"No answer for {task.destination}")
        if question.choice is None:
            raise ConflictUnresolved(f"No answer for {task.destination}")
        return question.choice

    def answer_conflict(self, choice: Optional[ConflictChoice]) -> None:
        """Answer the pending conflict question."""
        question = self.pending_conflict
        self.pending_conflict = None
        if question is not None:
            question.answer(choice)

    # -- watch

    def start_watch(self, local_path: Optional[str] = None, remote_path: Optional[str] = None) -> AutoSync:
        """Upload local saves under ``local_path`` to the mirrored remote path."""
        remote = self._session(Pane.REMOTE)
        local_path = local_path or self.state.local.cwd
        if remote_path is None:
            sync = self.state.sync
            if sync is not None and sync.enabled:
                remote_path = sync.remote_path_for(local_path)
            remote_path = remote_path or remote.cwd

        autosync = self.state.autosync
        if autosync is None or autosync.remote is not remote.bridge:
            self.stop_watch()
            autosync = AutoSync(
                self.state.local.bridge,
                remote.bridge,
                debounce_ms=self.state.config.watch_debounce_ms,
                submit=self._submit_autosync,
            )
            self.state.autosync = autosync
        autosync.watch(local_path, remote_path)
        self.state.notify("info", f"Watching {local_path} -> {remote_path}")
        return autosync

    def stop_watch(self) -> None:
        """Stop auto-sync."""
        if self.state.autosync is not None:
            self.state.autosync.unwatch()

    def toggle_watch(self) -> bool:
        """Toggle auto-sync for the local cwd; return the new state."""
        if self.state.autosync is not None and self.state.autosync.watching:
            self.stop_watch()
            self.state.notify("info", "Stopped watching")
            return False
        self.start_watch()
        return True

    def _submit_autosync(self, func: Callable[[], TransferReport]) -> None:
        def applied(report: TransferReport) -> None:
            if report.completed or report.failed:
                level = "error" if report.failed else "info"
                self.state.notify(level, f"Auto-sync: {report.summary()}")

        self.transfer_worker.submit("auto-sync", func, applied)

    # -- loop

    def tick(self, max_messages: int = 256) -> int:
        """Handle pending worker messages without blocking."""
        handled = 0
        while handled < max_messages:
            try:
                message = self.channel.get_nowait()
            except queue.Empty:
                break
            self._dispatch(message)
            handled += 1
        return handled

    def _dispatch(self, message: Message) -> None:
        if message.kind == "done":
            if message.job is not None and message.job.on_done is not None:
                message.job.on_done(message.payload)
        elif message.kind == "error":
            job = message.job
            if job is not None and job.on_error is not None:
                job.on_error(message.payload)
            else:
                label = job.label if job is not None else "operation"
                logger.error("%s failed: %s", label, message.payload)
                self.state.notify("error", f"{label}: {message.payload}")
        elif message.kind == "queued":
            run, transfer_queue = message.payload
            run.queue = transfer_queue
        elif message.kind == "progress":
            if self.state.transfer is not None:
                self.state.transfer.progress = message.payload
        elif message.kind == "conflict":
            self.pending_conflict = message.payload
            if self.conflict_handler is not None:
                self.conflict_handler(message.payload)
        elif message.kind == "task":
            logger.debug("Task update: %s (%s)", message.payload, message.payload.status.value)
        elif message.kind == "notify":
            level, text = message.payload
            self.state.notify(level, text)

    def run_until_idle(self, timeout: Optional[float] = None, interval: float = 0.02) -> bool:
        """Tick until every job has been handled; False on timeout."""
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            self.tick()
            if self.idle:
                self.tick()
                if self.idle:
                    return True
            if deadline is not None and time.monotonic() > deadline:
                return False
            time.sleep(interval)

    def shutdown(self) -> None:
        """Stop everything and persist configuration."""
        self.cancel_transfer()
        self.stop_watch()
        for worker in (self.transfer_worker, self.remote_worker, self.local_worker):
            if worker is not None:
                worker.stop()
        if self.state.remote is not None:
            self.state.remote.bridge.close()
        self.state.local.bridge.close()
        self.state.config.flush()
        self.state.running = False
