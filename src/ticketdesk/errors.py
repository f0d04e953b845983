"""Summary: Error taxonomy for TicketDesk.

Importance: Lets callers distinguish re-authentication, per-item, and validation failures.
Alternatives: Raise RuntimeError and ValueError everywhere.
"""

from __future__ import annotations


class TicketDeskError(Exception):
    """Summary: Base class for all TicketDesk errors."""


class AuthExpired(TicketDeskError):
    """Summary: The mail credential is no longer valid.

    Importance: Requires a fresh sign-in before any further gateway call.
    Alternatives: Retry silently with the stale token.
    """

    def __init__(self, reason: str = "Mail authorization expired") -> None:
        super().__init__(reason)
        self.reason = reason


class OracleFailure(TicketDeskError):
    """Summary: The classification oracle failed or returned unusable output.

    Importance: A malformed response is treated exactly like a transport error.
    Alternatives: Substitute a default classification.
    """

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


ClassificationFailure = OracleFailure


class SendFailed(TicketDeskError):
    """Summary: A reply could not be transmitted for one ticket."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class ValidationError(TicketDeskError):
    """Summary: Input rejected before any external call was made."""


class BatchFailure(TicketDeskError):
    """Summary: Every item of a batch operation failed.

    Importance: Distinguishes a total failure from an empty selection.
    Alternatives: Return an empty result and let callers guess.
    """

    def __init__(self, reason: str, failures: dict[str, str]) -> None:
        super().__init__(reason)
        self.reason = reason
        self.failures = failures
