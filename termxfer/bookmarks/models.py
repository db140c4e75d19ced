"""Bookmark records and their JSON form."""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..host.params import ConnectionProfile, Protocol

_PROFILE_FIELDS = (
    "host",
    "port",
    "username",
    "key_path",
    "remote_path",
    "bucket",
    "region",
    "endpoint",
    "aws_profile",
    "access_key",
)


def profile_to_dict(profile: ConnectionProfile) -> Dict[str, Any]:
    """Serialize the non-secret fields of a profile."""
    data: Dict[str, Any] = {"protocol": profile.protocol.value}
    for name in _PROFILE_FIELDS:
        value = getattr(profile, name)
        if value not in (None, "", 0):
            data[name] = value
    return data


def profile_from_dict(data: Dict[str, Any]) -> ConnectionProfile:
    """Rebuild a profile from its serialized fields."""
    if not isinstance(data, dict):
        raise TypeError(f"expected an object, got {type(data).__name__}")
    kwargs = {name: data[name] for name in _PROFILE_FIELDS if data.get(name) is not None}
    if "port" in kwargs:
        kwargs["port"] = int(kwargs["port"])
    return ConnectionProfile(protocol=Protocol.parse(data.get("protocol", "sftp")), **kwargs)


@dataclass
class Bookmark:
    """A named connection profile.

    ``locked`` is set when the stored secret cannot be recovered in this
    environment; the profile stays usable without it.
    """

    name: str
    profile: ConnectionProfile
    secret_ref: Optional[str] = None
    locked: bool = False

    @property
    def has_secret(self) -> bool:
        """Return True when a secret was saved with the bookmark."""
        return self.secret_ref is not None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for the bookmark file."""
        data = profile_to_dict(self.profile)
        if self.secret_ref is not None:
            data["secret_ref"] = self.secret_ref
        return data

    @classmethod
    def from_dict(cls, name: str, data: Dict[str, Any]) -> "Bookmark":
        """Deserialize an entry of the bookmark file."""
        secret_ref = data.get("secret_ref") if isinstance(data, dict) else None
        if secret_ref is not None and not isinstance(secret_ref, str):
            raise TypeError("secret_ref must be a string")
        return cls(
            name=name,
            profile=profile_from_dict(data),
            secret_ref=secret_ref,
        )
