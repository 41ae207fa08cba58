"""
Error taxonomy for the sync engine and its server collaborator.

None of these are allowed to escape the Tk loop: the scheduler, controller
and app catch them where they are raised and turn them into state.
"""

from .config import log


class TallyError(Exception):
    """Base error. Logs its message once when constructed."""

    message = "Unexpected error"

    def __init__(self, detail=None):
        text = f"{self.message}: {detail}" if detail else self.message
        super().__init__(text)
        self.detail = detail
        log.warning(text)


class Unauthenticated(TallyError):
    """No session, or the server rejected it. Halts sync; pending taps are kept."""
    message = "Not authenticated"


class TransientNetworkFailure(TallyError):
    """Connectivity loss, timeout, or server error. Retried on the next trigger."""
    message = "Network failure"


class InvalidInput(TallyError):
    """Rejected before any I/O (non-positive delta, bad target, negative pending)."""
    message = "Invalid input"


class AuthRejected(TallyError):
    """Login or registration refused by the server (bad credentials, taken name)."""
    message = "Authentication rejected"
