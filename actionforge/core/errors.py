"""Error taxonomy for remote build orchestration.

Every failure that crosses a component boundary is a ``ForgeError``.  The
``kind`` attribute classifies it for callers that convert failures into
user-visible state (the orchestrator and the service facade); the optional
``status_code`` carries the HTTP status when the failure came from the
hosting API.

Retryable conditions (rate limiting, transient network failures) never
escape the HTTP client as-is: they surface only once the retry budget is
spent, as ``RetryExhaustedError`` or ``NetworkError``.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Classification attached to every ``ForgeError``."""

    CONFIGURATION = "configuration"
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    RATE_LIMITED = "rate_limited"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    NETWORK = "network"
    TIMEOUT = "timeout"
    PARSE = "parse"
    EXPIRED = "expired"
    NO_RUNS = "no_runs"
    RUN_FAILED = "run_failed"
    NO_FILE = "no_file"
    CANCELLED = "cancelled"
    API = "api"


class ForgeError(RuntimeError):
    """Base class for all actionforge failures."""

    kind: ErrorKind = ErrorKind.API

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class ConfigurationError(ForgeError):
    """Raised when required credentials or repository identity are missing."""

    kind = ErrorKind.CONFIGURATION


class ApiError(ForgeError):
    """The hosting API answered with a non-success status."""

    kind = ErrorKind.API


class AuthenticationError(ApiError):
    """401: the credential was rejected."""

    kind = ErrorKind.AUTHENTICATION


class AuthorizationError(ApiError):
    """403 without rate-limit signals: the credential lacks permission."""

    kind = ErrorKind.AUTHORIZATION


class NotFoundError(ApiError):
    """404 on a request where absence is not a valid state."""

    kind = ErrorKind.NOT_FOUND


class RepositoryNotFoundError(NotFoundError):
    """The configured repository does not exist or is invisible to the token."""


class RevisionConflictError(ApiError):
    """The provider rejected a write or delete because of a revision mismatch."""

    kind = ErrorKind.CONFLICT


class RetryExhaustedError(ForgeError):
    """Every allowed attempt was rate limited."""

    kind = ErrorKind.RATE_LIMITED


class NetworkError(ForgeError):
    """A transient network failure persisted through the final attempt."""

    kind = ErrorKind.NETWORK


class ResponseParseError(ForgeError):
    """A response body could not be decoded into the expected shape."""

    kind = ErrorKind.PARSE

    def __init__(
        self, message: str, *, snippet: str = "", status_code: int | None = None
    ) -> None:
        super().__init__(message, status_code=status_code)
        self.snippet = snippet


class ArtifactExpiredError(ForgeError):
    """The artifact has expired and can no longer be downloaded."""

    kind = ErrorKind.EXPIRED


class NoRunsFoundError(ForgeError):
    """The repository has no automation runs at all."""

    kind = ErrorKind.NO_RUNS


class RunFailedError(ForgeError):
    """The run reached a terminal status with a non-success conclusion."""

    kind = ErrorKind.RUN_FAILED

    def __init__(self, message: str, *, conclusion: str) -> None:
        super().__init__(message)
        self.conclusion = conclusion


class PollTimeoutError(ForgeError):
    """The run did not reach a terminal status within the attempt bound."""

    kind = ErrorKind.TIMEOUT


class NoFileSelectedError(ForgeError):
    """A submission was requested without a source file."""

    kind = ErrorKind.NO_FILE
