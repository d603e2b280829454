"""
Program Errors
==============

[ERRORS] Every failing check aborts the whole call. The host rolls back the
call's writes and re-raises the error to the caller unchanged.

Each error carries a stable ``code`` so callers and logs can match on it
without depending on message text.
"""

from typing import Optional


class ProgramError(Exception):
    """Base class for errors raised by programs and host collaborators."""

    code: str = "ProgramError"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.code)
        self.message = message or self.code

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r})"


class BadAmount(ProgramError):
    """Amount is zero or outside the unsigned 64-bit range."""

    code = "BadAmount"


class NotAuthorized(ProgramError):
    """Caller fails an authorization predicate."""

    code = "NotAuthorized"


class InsufficientBalance(ProgramError):
    code = "InsufficientBalance"


class InsufficientAllowance(ProgramError):
    code = "InsufficientAllowance"


class BadSignature(ProgramError):
    """Permit signature does not verify against the owner's key."""

    code = "BadSignature"


class AlreadyInitialized(ProgramError):
    code = "AlreadyInitialized"


class NotInitialized(ProgramError):
    code = "NotInitialized"


class Overflow(ProgramError):
    """Checked 64-bit arithmetic would exceed the ceiling."""

    code = "Overflow"


class ExecNotPermitted(ProgramError):
    """Generic forwarding hook called without an allow-listed selector."""

    code = "ExecNotPermitted"


class AssetTransferFailed(ProgramError):
    """The external asset-transfer primitive rejected the movement."""

    code = "AssetTransferFailed"


class CallDepthExceeded(ProgramError):
    code = "CallDepthExceeded"
