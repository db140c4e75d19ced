"""SSH session helpers shared by the SFTP and SCP bridges."""

import logging
import shlex
import socket
from typing import Optional

import paramiko

from ..errors import AuthError, HostConnectionError, HostError, HostIOError
from .params import ConnectionProfile

logger = logging.getLogger(__name__)


def open_ssh_client(profile: ConnectionProfile) -> paramiko.SSHClient:
    """Open an authenticated SSH client for a profile."""
    if not profile.host:
        raise HostConnectionError("SSH host is required.")

    client = paramiko.SSHClient()
    client.load_system_host_keys()
    client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

    connect_kwargs = {
        "hostname": profile.host,
        "port": int(profile.port or 22),
        "timeout": profile.timeout,
        "look_for_keys": True,
        "allow_agent": True,
    }
    if profile.username:
        connect_kwargs["username"] = profile.username

    key_files = [path for path in [profile.key_path] + profile.extra_key_paths if path]
    if key_files:
        connect_kwargs["key_filename"] = key_files
    if profile.secret:
        connect_kwargs["password"] = profile.secret

    try:
        client.connect(**connect_kwargs)
    except paramiko.AuthenticationException as exc:
        client.close()
        raise AuthError(f"Authentication failed for {profile.username}@{profile.host}: {exc}") from exc
    except (paramiko.SSHException, socket.error, EOFError) as exc:
        client.close()
        raise HostConnectionError(f"SSH connection to {profile.host} failed: {exc}") from exc
    return client


def close_ssh_client(client: Optional[paramiko.SSHClient]) -> None:
    """Close an SSH client, logging rather than raising."""
    if client is None:
        return
    try:
        client.close()
    except Exception as exc:
        logger.debug("Error closing SSH client: %s", exc)


def translate_ssh_error(exc: BaseException, path: str) -> Optional[HostError]:
    """Translate paramiko-specific exceptions, or return None."""
    if isinstance(exc, paramiko.AuthenticationException):
        return AuthError(str(exc), path)
    if isinstance(exc, paramiko.SSHException):
        return HostIOError(f"SSH channel error: {exc}", path, transient=True)
    return None


def run_command(
    client: paramiko.SSHClient, command: str, timeout: int = 180
) -> str:
    """Execute a remote command and return stdout; raise on failure."""
    _stdin, stdout, stderr = client.exec_command(command, timeout=timeout)
    output = stdout.read().decode("utf-8", errors="replace")
    status = stdout.channel.recv_exit_status()
    if status != 0:
        error_text = stderr.read().decode("utf-8", errors="replace").strip()
        raise RemoteCommandError(command, status, error_text)
    return output


class RemoteCommandError(HostIOError):
    """A remote shell command exited with a non-zero status."""

    def __init__(self, command: str, status: int, stderr: str):
        super().__init__(f"Remote command failed ({status}): {stderr or command}")
        self.command = command
        self.status = status
        self.stderr = stderr


def quote(path: str) -> str:
    """Quote a path for a POSIX shell."""
    return shlex.quote(path)
