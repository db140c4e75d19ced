"""FTP and FTPS bridge backed by ftplib."""

import ftplib
import logging
import tempfile
from typing import BinaryIO, List, Optional

from ..errors import (
    AuthError,
    HostConnectionError,
    HostError,
    HostIOError,
    NotFoundError,
    PermissionDeniedError,
)
from .base import DeferredUploadStream, HostBridge
from .listing import ListingLine, parse_list_line, parse_mlsd_facts
from .models import Entry, EntryKind, join_path, normalize_path, parent_path
from .params import ConnectionProfile, Protocol

logger = logging.getLogger(__name__)


class FtpBridge(HostBridge):
    """Host bridge for FTP servers, with explicit TLS for FTPS."""

    name = "ftp"

    def __init__(self, profile: ConnectionProfile) -> None:
        super().__init__(profile)
        self._ftp: Optional[ftplib.FTP] = None
        self._supports_mlsd = True

    @property
    def use_tls(self) -> bool:
        """Return True when the profile requests FTPS."""
        return self.profile.protocol == Protocol.FTPS

    def _connect(self) -> None:
        ftp = ftplib.FTP_TLS() if self.use_tls else ftplib.FTP()
        try:
            ftp.connect(self.profile.host, int(self.profile.port or 21), timeout=self.profile.timeout)
        except (OSError, ftplib.Error) as exc:
            raise HostConnectionError(f"FTP connection to {self.profile.host} failed: {exc}") from exc

        try:
            ftp.login(self.profile.username or "anonymous", self.profile.secret or "")
        except ftplib.error_perm as exc:
            ftp.close()
            raise AuthError(f"FTP login rejected: {exc}") from exc

        if self.use_tls:
            ftp.prot_p()

        try:
            features = ftp.sendcmd("FEAT")
            self._supports_mlsd = "MLSD" in features.upper()
        except ftplib.Error:
            self._supports_mlsd = False
        self._ftp = ftp

    def _close(self) -> None:
        if self._ftp is None:
            return
        try:
            self._ftp.quit()
        except (OSError, EOFError, ftplib.Error):
            self._ftp.close()
        finally:
            self._ftp = None

    @property
    def _client(self) -> ftplib.FTP:
        if self._ftp is None:
            raise HostConnectionError("FTP session is not open")
        return self._ftp

    def _translate_error(self, exc: BaseException, path: str) -> HostError:
        message = str(exc)
        if isinstance(exc, ftplib.error_perm):
            code = message[:3]
            if code == "530":
                return AuthError(message, path)
            if code in ("550", "553") and "ermission" in message:
                return PermissionDeniedError(message, path)
            if code == "550":
                return NotFoundError(message, path)
            if code == "553":
                return PermissionDeniedError(message, path)
            return HostIOError(message, path)
        if isinstance(exc, ftplib.error_temp):
            return HostIOError(message, path, transient=message.startswith("421"))
        if isinstance(exc, (ftplib.error_reply, ftplib.error_proto)):
            return HostIOError(f"FTP protocol error: {message}", path)
        return super()._translate_error(exc, path)

    def _working_dir(self) -> str:
        if self.profile.remote_path:
            return normalize_path(self.profile.remote_path)
        return self._client.pwd()

    def _list_rows(self, path: str) -> List[ListingLine]:
        if self._supports_mlsd:
            try:
                rows = []
                for name, facts in self._client.mlsd(path, facts=["type", "size", "modify", "unix.mode"]):
                    row = parse_mlsd_facts(name, facts)
                    if row is not None:
                        rows.append(row)
                return rows
            except ftplib.error_perm as exc:
                if not str(exc).startswith("500") and not str(exc).startswith("502"):
                    raise
                logger.warning("MLSD failed (%s), falling back to LIST", exc)
                self._supports_mlsd = False

        lines: List[str] = []
        self._client.retrlines(f"LIST -a {path}", lines.append)
        return [row for row in (parse_list_line(line) for line in lines) if row is not None]

    def _list_dir(self, path: str) -> List[Entry]:
        # LIST on a missing path succeeds with an empty body on many servers.
        if normalize_path(path) != "/":
            self._require_directory(path)
        return [
            Entry(
                path=join_path(path, row.name),
                name=row.name,
                kind=row.kind,
                size=row.size,
                mtime=row.mtime,
                mode=row.mode,
                symlink_target=row.symlink_target,
            )
            for row in self._list_rows(path)
        ]

    def _require_directory(self, path: str) -> None:
        entry = self._stat(path)
        if not entry.is_dir:
            raise NotFoundError(f"Not a directory: {path}", path)

    def _stat(self, path: str) -> Entry:
        normalized = normalize_path(path)
        if normalized == "/":
            return Entry(path="/", name="/", kind=EntryKind.DIRECTORY)

        name = normalized.rsplit("/", 1)[-1]
        for row in self._list_rows(parent_path(normalized)):
            if row.name == name:
                kind = row.kind
                if kind == EntryKind.SYMLINK:
                    kind = self._probe_link_kind(normalized)
                return Entry(
                    path=normalized,
                    name=name,
                    kind=kind,
                    size=row.size,
                    mtime=row.mtime,
                    mode=row.mode,
                )
        raise NotFoundError(f"No such file or directory: {path}", path)

    def _probe_link_kind(self, path: str) -> EntryKind:
        """FTP has no link semantics; a link that can be entered is a directory."""
        current = self._client.pwd()
        try:
            self._client.cwd(path)
        except ftplib.error_perm:
            return EntryKind.FILE
        self._client.cwd(current)
        return EntryKind.DIRECTORY

    def _create_dir(self, path: str) -> None:
        self._client.mkd(path)

    def _remove(self, path: str, recursive: bool) -> None:
        entry = self._stat(path)
        if not entry.is_dir:
            self._client.delete(path)
            return
        if recursive:
            for child in self._list_dir(path):
                self._remove(child.path, True)
        self._client.rmd(path)

    def _rename(self, src: str, dst: str) -> None:
        self._client.rename(src, dst)

    def _open_read(self, path: str) -> BinaryIO:
        # The whole file is fetched before returning so the control
        # connection is free again for other operations.
        spool = tempfile.SpooledTemporaryFile(max_size=DeferredUploadStream.SPOOL_MAX_MEMORY)
        try:
            self._client.retrbinary(f"RETR {path}", spool.write)
        except Exception:
            spool.close()
            raise
        spool.seek(0)
        return spool

    def _open_write(self, path: str) -> DeferredUploadStream:
        def upload(spool: BinaryIO) -> None:
            self._client.storbinary(f"STOR {path}", spool)

        return DeferredUploadStream(self, path, upload)
