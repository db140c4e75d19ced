"""Exception types shared across termxfer.

Convention:
- ``HostError`` subclasses are raised by host bridges after translating the
  native protocol library's exception. Explorer sessions let them propagate
  to the UI unchanged; the transfer engine records them per task.
- ``ConflictUnresolved`` never leaves the transfer engine.
- ``CredentialLocked`` marks a bookmark whose secret could not be recovered.
"""


class TermxferError(Exception):
    """Base class for all termxfer errors."""


class HostError(TermxferError):
    """Base class for errors raised by a host bridge."""

    def __init__(self, message: str, path: str = ""):
        super().__init__(message)
        self.path = path


class HostConnectionError(HostError):
    """The connection could not be established or was lost."""


class AuthError(HostConnectionError):
    """The remote host rejected the supplied credentials."""


class NotFoundError(HostError):
    """The path does not exist (or is not of the expected kind)."""


class PermissionDeniedError(HostError):
    """The remote host refused access to the path."""


class HostIOError(HostError):
    """A read, write or protocol error during an operation.

    ``transient`` is set when a fresh connection may succeed where this
    one failed (dropped channel, timeout, EOF).
    """

    def __init__(self, message: str, path: str = "", transient: bool = False):
        super().__init__(message, path)
        self.transient = transient


class UnsupportedOperation(HostError):
    """The backend has no equivalent for the requested operation."""


class ConflictUnresolved(TermxferError):
    """A destination conflict could not be resolved without a prompt."""


class CredentialLocked(TermxferError):
    """The secret for a bookmark is unavailable in this environment."""

    def __init__(self, name: str, reason: str = ""):
        message = f"Credentials for bookmark '{name}' are locked"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.name = name
        self.reason = reason


class TransferAborted(TermxferError):
    """A transfer run stopped early; ``report`` lists what was reached."""

    def __init__(self, message: str, report=None):
        super().__init__(message)
        self.report = report
