"""Exception hierarchy shared by the dispatcher, poller and provider client."""

from typing import Any


class ArcRunnerError(Exception):
    """Base class for all arcrunner errors."""


class ClipValidationError(ArcRunnerError):
    """Raised when a dispatch request is malformed (missing clip, orphaned clip).

    Raised before any provider call is made, so no state has been mutated.
    """


class KieApiError(ArcRunnerError):
    """Raised when the KIE.ai API returns an error."""

    def __init__(self, message: str, status_code: int | None = None, body: Any = None):
        self.status_code = status_code
        self.body = body
        super().__init__(message)


class ProviderSubmissionError(KieApiError):
    """Task creation was rejected or returned neither a task id nor a result."""


class ProviderPollError(KieApiError):
    """Transient network, timeout or 5xx failure while checking a task."""


class ClipNotFoundError(ClipValidationError):
    """The requested clip does not exist."""
