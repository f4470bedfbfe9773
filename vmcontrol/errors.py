"""Error taxonomy for remote VM inventory and control.

Transport-level errors (`RemoteConnectionError`, `AuthError`,
`ExecutionError`, `TunnelError`) describe why a remote call could not be
carried out. Application-level errors (`CommandFailure`, `NotFoundError`,
`UnsupportedActionError`, `InvalidRequestError`) describe a call that was
carried out, or rejected up front, but did not succeed. The facade turns
all of them into a response envelope; none escape past it.
"""

from __future__ import annotations


class VMControlError(RuntimeError):
    """Base class for every error raised by this package."""

    status: int = 500


class TransportError(VMControlError):
    """A remote session or HTTP exchange failed below the application level."""


class RemoteConnectionError(TransportError):
    """Host unreachable, handshake failed, or the session timed out."""

    status = 503


class AuthError(TransportError):
    """The remote host rejected the supplied credential."""

    status = 401


class ExecutionError(TransportError):
    """I/O failure while streaming a command's output."""

    status = 504


class DeadlineExceeded(TransportError):
    """The caller-supplied deadline ran out before the call could be made."""

    status = 504


class TunnelError(TransportError):
    """Forwarding a request through an SSH session failed.

    `stage` is "session" when the session to the SSH host could not be
    established and "forward" when the port forward or the exchange over it
    failed.
    """

    status = 503

    def __init__(self, message: str, *, stage: str = "forward"):
        super().__init__(message)
        self.stage = stage


class CommandFailure(VMControlError):
    """A remote command (or management API call) reported failure."""

    status = 502

    def __init__(self, message: str, *, stderr: str = "", exit_code: int | None = None):
        detail = stderr.strip()
        super().__init__(f"{message}: {detail}" if detail else message)
        self.stderr = stderr
        self.exit_code = exit_code


class NotFoundError(VMControlError):
    """The referenced VM does not exist on the host."""

    status = 404


class InvalidRequestError(VMControlError, ValueError):
    """A facade request is malformed and was rejected before any remote call."""

    status = 400


class UnsupportedActionError(InvalidRequestError):
    """The requested action name is not recognized."""


class ParseDegraded(UserWarning):
    """A default value was substituted for missing or unparsable output."""


def reason(exc: BaseException) -> str:
    """Human-readable reason for an exception, even when its message is empty."""
    return str(exc) or exc.__class__.__name__
