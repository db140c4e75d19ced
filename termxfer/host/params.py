"""Connection profiles and address parsing."""

import logging
import os
import re
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import List, Optional

logger = logging.getLogger(__name__)


class Protocol(Enum):
    """Supported remote backends."""

    SFTP = "sftp"
    SCP = "scp"
    FTP = "ftp"
    FTPS = "ftps"
    S3 = "s3"

    @classmethod
    def parse(cls, value: str) -> "Protocol":
        """Parse a protocol tag (case-insensitive)."""
        normalized = str(value or "").strip().lower()
        for protocol in cls:
            if protocol.value == normalized:
                return protocol
        raise ValueError(f"Unknown protocol: {value!r}")

    @property
    def default_port(self) -> int:
        """Get the well-known port for the protocol (0 when not applicable)."""
        return {
            Protocol.SFTP: 22,
            Protocol.SCP: 22,
            Protocol.FTP: 21,
            Protocol.FTPS: 21,
            Protocol.S3: 0,
        }[self]

    @property
    def is_ssh(self) -> bool:
        """Return True for SSH based protocols."""
        return self in (Protocol.SFTP, Protocol.SCP)


@dataclass
class ConnectionProfile:
    """Parameters needed to open a connection to one backend.

    ``secret`` is the password for SSH/FTP or the secret access key for S3.
    It is never written to the bookmark file in clear text.
    """

    protocol: Protocol
    host: str = ""
    port: int = 0
    username: str = ""
    secret: Optional[str] = None
    key_path: Optional[str] = None
    remote_path: Optional[str] = None
    # S3 only
    bucket: str = ""
    region: str = ""
    endpoint: str = ""
    aws_profile: str = ""
    access_key: str = ""
    timeout: int = 10
    extra_key_paths: List[str] = field(default_factory=list)

    def __post_init__(self):
        if not self.port:
            self.port = self.protocol.default_port
        if self.port < 0 or self.port > 65535:
            raise ValueError(f"Invalid port: {self.port}")

    @property
    def display_address(self) -> str:
        """Get a user-facing address for the profile (without secrets)."""
        path = self.remote_path or ""
        if self.protocol == Protocol.S3:
            region = self.region or "default"
            address = f"s3://{self.bucket}@{region}"
            if self.aws_profile:
                address += f":{self.aws_profile}"
            return address + path
        user = f"{self.username}@" if self.username else ""
        return f"{self.protocol.value}://{user}{self.host}:{self.port}{path}"

    def without_secret(self) -> "ConnectionProfile":
        """Return a copy of the profile with the secret removed."""
        return replace(self, secret=None)


_ADDRESS_RE = re.compile(
    r"^(?:(?P<protocol>[a-zA-Z0-9]+)://)?"
    r"(?:(?P<user>[^@/]+)@)?"
    r"(?P<host>\[[^\]]+\]|[^:/]+)"
    r"(?::(?P<port>[^/]+))?"
    r"(?P<path>/.*)?$"
)


def parse_address(
    address: str,
    default_protocol: Protocol = Protocol.SFTP,
    ssh_config_path: Optional[str] = None,
) -> ConnectionProfile:
    """Parse ``[protocol://][user@]host[:port][/start-path]``.

    For S3 the format is ``s3://bucket@region[:profile][/path]``.
    SSH hosts are looked up in the OpenSSH config file so that aliases resolve
    to their configured hostname, port, user and identity file.
    """
    text = str(address or "").strip()
    match = _ADDRESS_RE.match(text)
    if not text or not match:
        raise ValueError(f"Invalid address: {address!r}")

    protocol = default_protocol
    if match.group("protocol"):
        protocol = Protocol.parse(match.group("protocol"))

    user = match.group("user") or ""
    host = match.group("host").strip("[]")
    port_text = match.group("port")
    path = match.group("path") or None

    if protocol == Protocol.S3:
        if not user:
            raise ValueError("S3 address requires a bucket: s3://bucket@region")
        return ConnectionProfile(
            protocol=protocol,
            bucket=user,
            region=host,
            aws_profile=port_text or "",
            remote_path=path,
        )

    port = 0
    if port_text:
        try:
            port = int(port_text)
        except ValueError as exc:
            raise ValueError(f"Invalid port: {port_text!r}") from exc

    profile = ConnectionProfile(
        protocol=protocol,
        host=host,
        port=port,
        username=user,
        remote_path=path,
    )
    if protocol.is_ssh:
        apply_ssh_config(profile, ssh_config_path, explicit_port=bool(port_text))
    return profile


def default_ssh_config_path() -> Path:
    """Get the user's OpenSSH client config path."""
    return Path.home() / ".ssh" / "config"


def apply_ssh_config(
    profile: ConnectionProfile,
    ssh_config_path: Optional[str] = None,
    explicit_port: bool = False,
) -> ConnectionProfile:
    """Fill profile fields from a matching OpenSSH config host block."""
    config_path = Path(ssh_config_path) if ssh_config_path else default_ssh_config_path()
    if not config_path.is_file():
        return profile

    import paramiko

    try:
        ssh_config = paramiko.SSHConfig.from_path(str(config_path))
    except (OSError, paramiko.SSHException) as exc:
        logger.warning("Could not read ssh config %s: %s", config_path, exc)
        return profile

    if profile.host not in ssh_config.get_hostnames():
        return profile

    options = ssh_config.lookup(profile.host)
    logger.debug("Resolved ssh config alias %s", profile.host)
    profile.host = options.get("hostname", profile.host)
    if not explicit_port and "port" in options:
        try:
            profile.port = int(options["port"])
        except ValueError:
            logger.warning("Ignoring invalid port in ssh config: %s", options["port"])
    if not profile.username and "user" in options:
        profile.username = options["user"]
    identity_files = options.get("identityfile") or []
    if identity_files:
        expanded = [os.path.expanduser(item) for item in identity_files]
        if not profile.key_path:
            profile.key_path = expanded[0]
        profile.extra_key_paths = expanded[1:]
    return profile
