"""Construct the bridge matching a connection profile."""

from typing import Optional

from .base import HostBridge
from .ftp import FtpBridge
from .local import LocalBridge
from .params import ConnectionProfile, Protocol
from .s3 import S3Bridge
from .scp import ScpBridge
from .sftp import SftpBridge

_BRIDGES = {
    Protocol.SFTP: SftpBridge,
    Protocol.SCP: ScpBridge,
    Protocol.FTP: FtpBridge,
    Protocol.FTPS: FtpBridge,
    Protocol.S3: S3Bridge,
}


def build_bridge(profile: ConnectionProfile) -> HostBridge:
    """Create an unconnected bridge for the profile's protocol."""
    try:
        bridge_class = _BRIDGES[profile.protocol]
    except KeyError as exc:
        raise ValueError(f"Unsupported protocol: {profile.protocol}") from exc
    return bridge_class(profile)


def build_local_bridge(start_dir: Optional[str] = None) -> LocalBridge:
    """Create an unconnected bridge over the local filesystem."""
    return LocalBridge(start_dir)
