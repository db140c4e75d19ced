"""SFTP bridge backed by paramiko."""

import posixpath
import stat
from typing import BinaryIO, List, Optional

import paramiko

from ..errors import HostConnectionError, HostError
from .base import HostBridge
from .models import Entry, EntryKind, join_path, kind_from_mode, normalize_path
from .params import ConnectionProfile
from .ssh import close_ssh_client, open_ssh_client, quote, run_command, translate_ssh_error


class SftpBridge(HostBridge):
    """Host bridge speaking SFTP over an SSH session."""

    name = "sftp"
    UPLOAD_CHANNEL_TIMEOUT_SECONDS = 15.0

    def __init__(self, profile: ConnectionProfile) -> None:
        super().__init__(profile)
        self._ssh_client: Optional[paramiko.SSHClient] = None
        self._sftp_client: Optional[paramiko.SFTPClient] = None

    def _connect(self) -> None:
        client = open_ssh_client(self.profile)
        try:
            sftp = client.open_sftp()
        except paramiko.SSHException as exc:
            close_ssh_client(client)
            raise HostConnectionError(f"SFTP subsystem unavailable: {exc}") from exc

        channel = sftp.get_channel()
        if channel:
            channel.settimeout(self.UPLOAD_CHANNEL_TIMEOUT_SECONDS)

        self._ssh_client = client
        self._sftp_client = sftp

    def _close(self) -> None:
        if self._sftp_client is not None:
            try:
                self._sftp_client.close()
            finally:
                self._sftp_client = None
        close_ssh_client(self._ssh_client)
        self._ssh_client = None

    @property
    def _sftp(self) -> paramiko.SFTPClient:
        if self._sftp_client is None:
            raise HostConnectionError("SFTP session is not open")
        return self._sftp_client

    def _translate_error(self, exc: BaseException, path: str) -> HostError:
        return translate_ssh_error(exc, path) or super()._translate_error(exc, path)

    def _working_dir(self) -> str:
        if self.profile.remote_path:
            return normalize_path(self.profile.remote_path)
        return self._sftp.normalize(".")

    @staticmethod
    def _entry_from_attr(path: str, attr: paramiko.SFTPAttributes) -> Entry:
        kind = kind_from_mode(attr.st_mode)
        return Entry(
            path=path,
            name=posixpath.basename(path.rstrip("/")) or path,
            kind=kind,
            size=0 if kind == EntryKind.DIRECTORY else int(attr.st_size or 0),
            mtime=float(attr.st_mtime or 0),
            mode=attr.st_mode,
        )

    def _list_dir(self, path: str) -> List[Entry]:
        entries = []
        for attr in self._sftp.listdir_attr(path):
            entry = self._entry_from_attr(join_path(path, attr.filename), attr)
            if entry.is_symlink:
                try:
                    entry.symlink_target = self._sftp.readlink(entry.path)
                except IOError:
                    entry.symlink_target = None
            entries.append(entry)
        return entries

    def _stat(self, path: str) -> Entry:
        return self._entry_from_attr(normalize_path(path), self._sftp.stat(path))

    def _resolve(self, path: str) -> str:
        return self._sftp.normalize(path)

    def _create_dir(self, path: str) -> None:
        self._sftp.mkdir(path)

    def _remove(self, path: str, recursive: bool) -> None:
        details = self._sftp.lstat(path)
        if stat.S_ISDIR(details.st_mode):
            if recursive:
                for attr in self._sftp.listdir_attr(path):
                    self._remove(join_path(path, attr.filename), True)
            self._sftp.rmdir(path)
        else:
            self._sftp.remove(path)

    def _rename(self, src: str, dst: str) -> None:
        self._sftp.rename(src, dst)

    def _open_read(self, path: str) -> BinaryIO:
        handle = self._sftp.open(path, "rb")
        size = self._sftp.stat(path).st_size or 0
        if size > 0:
            handle.prefetch(size)
        return handle

    def _open_write(self, path: str) -> BinaryIO:
        handle = self._sftp.open(path, "wb")
        handle.set_pipelined(True)
        return handle

    def _symlink(self, target: str, link_path: str) -> None:
        self._sftp.symlink(target, link_path)

    def _exec(self, command: str) -> str:
        cwd = self._sftp.getcwd() or self._working_dir()
        return run_command(self._ssh_client, f"cd {quote(cwd)}; {command}")
