from .base import BridgeStream, HostBridge
from .builder import build_bridge, build_local_bridge
from .local import LocalBridge
from .models import ConnectionState, Entry, EntryKind
from .params import ConnectionProfile, Protocol, parse_address

__all__ = [
    "BridgeStream",
    "ConnectionProfile",
    "ConnectionState",
    "Entry",
    "EntryKind",
    "HostBridge",
    "LocalBridge",
    "Protocol",
    "build_bridge",
    "build_local_bridge",
    "parse_address",
]
