from typing import Optional


class BackendError(Exception):
    """Raised when the remote game service rejects or fails a call."""

    retryable = False

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def to_dict(self):
        return {
            'error': self.message,
            'status_code': self.status_code,
            'retryable': self.retryable,
        }


class TransientNetworkFailure(BackendError):
    """Connection errors, timeouts and 5xx answers. Safe to retry."""

    retryable = True


class InvalidLifecycleTransition(Exception):
    """A round lifecycle operation was requested from a state that forbids it."""
