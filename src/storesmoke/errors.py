"""Domain errors for storesmoke."""

from typing import Optional


class SmokeTestError(RuntimeError):
    """Raised when a smoke test run cannot continue."""


class TokenExtractionError(SmokeTestError):
    """Raised when a form's anti-forgery token cannot be located."""


class ResponseError(SmokeTestError):
    """A failure tied to a specific HTTP response."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
        url: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.body = body
        self.url = url


class UnexpectedStatusError(ResponseError):
    """A precondition request did not return 200."""


class ScenarioAssertionError(ResponseError):
    """A response does not match what the storefront should return."""
