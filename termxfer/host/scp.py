"""SCP bridge: shell commands for metadata, the scp protocol for content."""

import tempfile
from typing import BinaryIO, List, Optional

import paramiko
from scp import SCPClient, SCPException

from ..errors import (
    HostConnectionError,
    HostError,
    HostIOError,
    NotFoundError,
    PermissionDeniedError,
)
from .base import DeferredUploadStream, HostBridge
from .listing import parse_list_line
from .models import Entry, join_path, normalize_path
from .params import ConnectionProfile
from .ssh import (
    RemoteCommandError,
    close_ssh_client,
    open_ssh_client,
    quote,
    run_command,
    translate_ssh_error,
)


class ScpBridge(HostBridge):
    """Host bridge for hosts that only offer a shell and scp."""

    name = "scp"

    def __init__(self, profile: ConnectionProfile) -> None:
        super().__init__(profile)
        self._ssh_client: Optional[paramiko.SSHClient] = None
        self._home: Optional[str] = None

    def _connect(self) -> None:
        self._ssh_client = open_ssh_client(self.profile)
        try:
            self._home = run_command(self._ssh_client, "pwd").strip() or "/"
        except (RemoteCommandError, paramiko.SSHException) as exc:
            close_ssh_client(self._ssh_client)
            self._ssh_client = None
            raise HostConnectionError(f"Remote shell unavailable: {exc}") from exc

    def _close(self) -> None:
        close_ssh_client(self._ssh_client)
        self._ssh_client = None

    def _translate_error(self, exc: BaseException, path: str) -> HostError:
        if isinstance(exc, RemoteCommandError):
            return self._translate_command_error(exc, path)
        if isinstance(exc, SCPException):
            message = str(exc)
            if "No such file" in message:
                return NotFoundError(message, path)
            return HostIOError(f"scp: {message}", path)
        return translate_ssh_error(exc, path) or super()._translate_error(exc, path)

    @staticmethod
    def _translate_command_error(exc: RemoteCommandError, path: str) -> HostError:
        if "No such file" in exc.stderr or "not a directory" in exc.stderr.lower():
            return NotFoundError(exc.stderr, path)
        if "Permission denied" in exc.stderr:
            return PermissionDeniedError(exc.stderr, path)
        return exc

    def _run(self, command: str, path: str = "") -> str:
        if self._ssh_client is None:
            raise HostConnectionError("SSH session is not open")
        try:
            return run_command(self._ssh_client, f"LC_ALL=C {command}")
        except RemoteCommandError as exc:
            error = self._translate_command_error(exc, path)
            if error is exc:
                raise
            raise error from exc

    def _working_dir(self) -> str:
        if self.profile.remote_path:
            return normalize_path(self.profile.remote_path)
        return self._home or "/"

    def _list_dir(self, path: str) -> List[Entry]:
        output = self._run(f"ls -la {quote(path)}", path)
        entries = []
        for line in output.splitlines():
            row = parse_list_line(line)
            if row is None:
                continue
            entries.append(
                Entry(
                    path=join_path(path, row.name),
                    name=row.name,
                    kind=row.kind,
                    size=row.size,
                    mtime=row.mtime,
                    mode=row.mode,
                    symlink_target=row.symlink_target,
                )
            )
        return entries

    def _stat(self, path: str) -> Entry:
        normalized = normalize_path(path)
        output = self._run(f"ls -ldL {quote(normalized)}", path)
        for line in output.splitlines():
            row = parse_list_line(line)
            if row is None:
                continue
            return Entry(
                path=normalized,
                name=normalized.rstrip("/").rsplit("/", 1)[-1] or "/",
                kind=row.kind,
                size=row.size,
                mtime=row.mtime,
                mode=row.mode,
            )
        raise NotFoundError(f"No such file or directory: {path}", path)

    def _resolve(self, path: str) -> str:
        try:
            resolved = self._run(f"readlink -f {quote(path)}", path).strip()
        except (NotFoundError, PermissionDeniedError, RemoteCommandError):
            return normalize_path(path)
        return resolved or normalize_path(path)

    def _create_dir(self, path: str) -> None:
        self._run(f"mkdir {quote(path)}", path)

    def _remove(self, path: str, recursive: bool) -> None:
        entry = self._stat_link(path)
        if entry.is_dir:
            self._run(f"rm -rf {quote(path)}" if recursive else f"rmdir {quote(path)}", path)
        else:
            self._run(f"rm -f {quote(path)}", path)

    def _stat_link(self, path: str) -> Entry:
        output = self._run(f"ls -ld {quote(path)}", path)
        for line in output.splitlines():
            row = parse_list_line(line)
            if row is not None:
                return Entry(path=path, name=row.name, kind=row.kind, size=row.size)
        raise NotFoundError(f"No such file or directory: {path}", path)

    def _rename(self, src: str, dst: str) -> None:
        self._run(f"mv {quote(src)} {quote(dst)}", src)

    def _open_read(self, path: str) -> BinaryIO:
        spool = tempfile.SpooledTemporaryFile(max_size=DeferredUploadStream.SPOOL_MAX_MEMORY)
        with SCPClient(self._ssh_client.get_transport()) as scp:
            scp.getfo(path, spool)
        spool.seek(0)
        return spool

    def _open_write(self, path: str) -> DeferredUploadStream:
        def upload(spool: BinaryIO) -> None:
            with SCPClient(self._ssh_client.get_transport()) as scp:
                scp.putfo(spool, path)

        return DeferredUploadStream(self, path, upload)

    def _symlink(self, target: str, link_path: str) -> None:
        self._run(f"ln -s {quote(target)} {quote(link_path)}")

    def _exec(self, command: str) -> str:
        return self._run(f"cd {quote(self._working_dir())}; {command}")
