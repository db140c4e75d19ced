"""S3-compatible object storage bridge backed by boto3.

Keys are mapped onto a POSIX-like tree: ``/`` is the bucket root and a
"directory" is a common prefix ending in ``/``.
"""

import logging
from datetime import timezone
from typing import BinaryIO, Dict, List, Optional

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    EndpointConnectionError,
    NoCredentialsError,
    PartialCredentialsError,
)

from ..errors import (
    AuthError,
    HostConnectionError,
    HostError,
    HostIOError,
    NotFoundError,
    PermissionDeniedError,
)
from .base import DeferredUploadStream, HostBridge
from .models import Entry, EntryKind, join_path, normalize_path
from .params import ConnectionProfile

logger = logging.getLogger(__name__)

DELETE_BATCH_SIZE = 1000

_NOT_FOUND_CODES = {"404", "NoSuchKey", "NoSuchBucket", "NotFound"}
_DENIED_CODES = {"403", "AccessDenied", "AllAccessDisabled"}
_AUTH_CODES = {"InvalidAccessKeyId", "SignatureDoesNotMatch", "ExpiredToken", "InvalidToken"}
_TRANSIENT_CODES = {"RequestTimeout", "SlowDown", "ServiceUnavailable", "InternalError", "500", "503"}


def key_for(path: str) -> str:
    """Map an absolute path onto an object key (no leading slash)."""
    return normalize_path(path).lstrip("/")


def prefix_for(path: str) -> str:
    """Map a directory path onto a listing prefix ('' for the root)."""
    key = key_for(path)
    return f"{key}/" if key else ""


class S3Bridge(HostBridge):
    """Host bridge for one S3 bucket."""

    name = "s3"

    def __init__(self, profile: ConnectionProfile, session_factory=None) -> None:
        super().__init__(profile)
        self._session_factory = session_factory or boto3.session.Session
        self._client = None

    def _connect(self) -> None:
        if not self.profile.bucket:
            raise HostConnectionError("S3 bucket name is required.")

        session_kwargs: Dict[str, str] = {}
        if self.profile.aws_profile:
            session_kwargs["profile_name"] = self.profile.aws_profile
        if self.profile.access_key:
            session_kwargs["aws_access_key_id"] = self.profile.access_key
            session_kwargs["aws_secret_access_key"] = self.profile.secret or ""
        if self.profile.region:
            session_kwargs["region_name"] = self.profile.region

        session = self._session_factory(**session_kwargs)
        client_kwargs = {
            "config": BotoConfig(
                connect_timeout=self.profile.timeout,
                retries={"max_attempts": 2},
            )
        }
        if self.profile.endpoint:
            client_kwargs["endpoint_url"] = self.profile.endpoint
        client = session.client("s3", **client_kwargs)

        try:
            client.head_bucket(Bucket=self.profile.bucket)
        except (ClientError, BotoCoreError) as exc:
            error = self._translate_error(exc, "/")
            if isinstance(error, NotFoundError):
                raise HostConnectionError(f"Bucket not found: {self.profile.bucket}") from exc
            if isinstance(error, PermissionDeniedError):
                raise AuthError(f"Access denied to bucket {self.profile.bucket}") from exc
            if isinstance(error, HostConnectionError):
                raise error from exc
            raise HostConnectionError(f"S3 connection failed: {exc}") from exc
        self._client = client

    def _close(self) -> None:
        self._client = None

    @property
    def _s3(self):
        if self._client is None:
            raise HostConnectionError("S3 session is not open")
        return self._client

    @property
    def _bucket(self) -> str:
        return self.profile.bucket

    def _translate_error(self, exc: BaseException, path: str) -> HostError:
        if isinstance(exc, (NoCredentialsError, PartialCredentialsError)):
            return AuthError(f"S3 credentials unavailable: {exc}", path)
        if isinstance(exc, EndpointConnectionError):
            return HostIOError(f"S3 endpoint unreachable: {exc}", path, transient=True)
        if isinstance(exc, ClientError):
            code = str(exc.response.get("Error", {}).get("Code", ""))
            message = exc.response.get("Error", {}).get("Message") or str(exc)
            if code in _NOT_FOUND_CODES:
                return NotFoundError(f"No such object: {path}", path)
            if code in _AUTH_CODES:
                return AuthError(message, path)
            if code in _DENIED_CODES:
                return PermissionDeniedError(message, path)
            return HostIOError(f"S3 error {code}: {message}", path, transient=code in _TRANSIENT_CODES)
        if isinstance(exc, BotoCoreError):
            return HostIOError(f"S3 error: {exc}", path, transient=True)
        return super()._translate_error(exc, path)

    def _list_dir(self, path: str) -> List[Entry]:
        prefix = prefix_for(path)
        paginator = self._s3.get_paginator("list_objects_v2")
        entries = []
        found_any = False
        for page in paginator.paginate(Bucket=self._bucket, Prefix=prefix, Delimiter="/"):
            for common in page.get("CommonPrefixes", []):
                found_any = True
                name = common["Prefix"][len(prefix):].rstrip("/")
                if name:
                    entries.append(
                        Entry(path=join_path(path, name), name=name, kind=EntryKind.DIRECTORY)
                    )
            for item in page.get("Contents", []):
                found_any = True
                name = item["Key"][len(prefix):]
                # The directory marker itself.
                if not name:
                    continue
                entries.append(self._entry_from_object(join_path(path, name), item))
        if prefix and not found_any:
            raise NotFoundError(f"No such directory: {path}", path)
        return entries

    @staticmethod
    def _entry_from_object(path: str, item: dict) -> Entry:
        modified = item.get("LastModified")
        mtime = 0.0
        if modified is not None:
            if modified.tzinfo is None:
                modified = modified.replace(tzinfo=timezone.utc)
            mtime = modified.timestamp()
        return Entry(
            path=path,
            name=path.rstrip("/").rsplit("/", 1)[-1],
            kind=EntryKind.FILE,
            size=int(item.get("Size", item.get("ContentLength", 0)) or 0),
            mtime=mtime,
        )

    def _stat(self, path: str) -> Entry:
        normalized = normalize_path(path)
        if normalized == "/":
            return Entry(path="/", name="/", kind=EntryKind.DIRECTORY)

        try:
            head = self._s3.head_object(Bucket=self._bucket, Key=key_for(normalized))
            return self._entry_from_object(normalized, head)
        except ClientError as exc:
            if not isinstance(self._translate_error(exc, normalized), NotFoundError):
                raise

        if self._prefix_exists(normalized):
            name = normalized.rsplit("/", 1)[-1]
            return Entry(path=normalized, name=name, kind=EntryKind.DIRECTORY)
        raise NotFoundError(f"No such file or directory: {path}", path)

    def _prefix_exists(self, path: str) -> bool:
        response = self._s3.list_objects_v2(
            Bucket=self._bucket, Prefix=prefix_for(path), MaxKeys=1
        )
        return bool(response.get("KeyCount") or response.get("Contents"))

    def _create_dir(self, path: str) -> None:
        self._s3.put_object(Bucket=self._bucket, Key=prefix_for(path), Body=b"")

    def _remove(self, path: str, recursive: bool) -> None:
        entry = self._stat(path)
        if not entry.is_dir:
            self._s3.delete_object(Bucket=self._bucket, Key=key_for(path))
            return

        keys = self._keys_under(path)
        if not recursive and any(key != prefix_for(path) for key in keys):
            raise HostIOError(f"Directory not empty: {path}", path)
        for start in range(0, len(keys), DELETE_BATCH_SIZE):
            batch = keys[start:start + DELETE_BATCH_SIZE]
            response = self._s3.delete_objects(
                Bucket=self._bucket,
                Delete={"Objects": [{"Key": key} for key in batch], "Quiet": True},
            )
            errors = response.get("Errors") or []
            if errors:
                first = errors[0]
                raise HostIOError(
                    f"Could not delete {first.get('Key')}: {first.get('Message')}", path
                )

    def _keys_under(self, path: str) -> List[str]:
        paginator = self._s3.get_paginator("list_objects_v2")
        keys = []
        for page in paginator.paginate(Bucket=self._bucket, Prefix=prefix_for(path)):
            keys.extend(item["Key"] for item in page.get("Contents", []))
        return keys

    def _rename(self, src: str, dst: str) -> None:
        entry = self._stat(src)
        if entry.is_dir:
            raise self._unsupported("renaming prefixes")
        self._s3.copy_object(
            Bucket=self._bucket,
            Key=key_for(dst),
            CopySource={"Bucket": self._bucket, "Key": key_for(src)},
        )
        self._s3.delete_object(Bucket=self._bucket, Key=key_for(src))

    def _open_read(self, path: str) -> BinaryIO:
        response = self._s3.get_object(Bucket=self._bucket, Key=key_for(path))
        return response["Body"]

    def _open_write(self, path: str) -> DeferredUploadStream:
        key = key_for(path)

        def upload(spool: BinaryIO) -> None:
            self._s3.upload_fileobj(spool, self._bucket, key)

        return DeferredUploadStream(self, path, upload)

    def _resolve(self, path: str) -> str:
        return normalize_path(path)

    def describe(self) -> str:
        """Get a user-facing description of the bucket."""
        endpoint: Optional[str] = self.profile.endpoint or None
        address = self.profile.display_address
        return f"{address} ({endpoint})" if endpoint else address
