"""
Error taxonomy for vehicle resolution.

Provider failures are classified into a closed set of kinds so callers can
match on them exhaustively instead of comparing message strings.
"""

from enum import Enum
from typing import Dict, List, Optional


class FailureKind(Enum):
    """Classified provider failure."""
    NOT_FOUND = "not_found"
    INVALID_INPUT = "invalid_input"
    AUTH_ERROR = "auth_error"
    RATE_LIMITED = "rate_limited"
    NETWORK_ERROR = "network_error"


# Higher wins when several providers fail for different reasons.
# Auth and rate-limit problems are the ones a caller can act on.
_SPECIFICITY: Dict[FailureKind, int] = {
    FailureKind.AUTH_ERROR: 5,
    FailureKind.RATE_LIMITED: 4,
    FailureKind.INVALID_INPUT: 3,
    FailureKind.NOT_FOUND: 2,
    FailureKind.NETWORK_ERROR: 1,
}


def most_specific(kinds: List[FailureKind]) -> FailureKind:
    """Pick the most actionable failure kind from a list."""
    if not kinds:
        return FailureKind.NETWORK_ERROR
    return max(kinds, key=lambda k: _SPECIFICITY[k])


class ResolverError(Exception):
    """Base class for all resolution errors."""


class InvalidFormatError(ResolverError):
    """The plate could not be canonicalised into a lookup key."""

    def __init__(self, raw: object, reason: str = "must be 2-10 characters"):
        self.raw = raw
        self.reason = reason
        super().__init__(f"Invalid registration {raw!r}: {reason}")


class ProviderError(ResolverError):
    """A single provider failed for a classified reason."""

    def __init__(self, kind: FailureKind, provider: str, message: str = ""):
        self.kind = kind
        self.provider = provider
        self.message = message or kind.value
        super().__init__(f"{provider}: {kind.value} ({self.message})")


class AllProvidersFailedError(ResolverError):
    """
    Every provider failed, so no profile could be built.

    `cause` is the most specific failure kind across all providers;
    `failures` keeps the individual errors for logging.
    """

    def __init__(self, plate: str, failures: List[ProviderError]):
        self.plate = plate
        self.failures = failures
        self.cause = most_specific([f.kind for f in failures])
        detail = ", ".join(f"{f.provider}={f.kind.value}" for f in failures)
        super().__init__(f"All providers failed for {plate}: {self.cause.value} [{detail}]")


class CannotCalculate(ResolverError):
    """A derived attribute is missing the inputs it needs."""


# ---------------------------------------------------------------------------
# Boundary mappings
# ---------------------------------------------------------------------------

_USER_MESSAGES: Dict[FailureKind, str] = {
    FailureKind.NOT_FOUND: "Vehicle not found. Please check the registration number and try again.",
    FailureKind.INVALID_INPUT: "Invalid registration number format.",
    FailureKind.AUTH_ERROR: "Service temporarily unavailable. Please try again later.",
    FailureKind.RATE_LIMITED: "Too many requests. Please try again in a few minutes.",
    FailureKind.NETWORK_ERROR: "Unable to connect to vehicle lookup service. Please try again.",
}

_HTTP_STATUS: Dict[FailureKind, int] = {
    FailureKind.NOT_FOUND: 404,
    FailureKind.INVALID_INPUT: 400,
    FailureKind.AUTH_ERROR: 503,
    FailureKind.RATE_LIMITED: 429,
    FailureKind.NETWORK_ERROR: 503,
}


def failure_kind_of(error: ResolverError) -> Optional[FailureKind]:
    """Return the failure kind an error represents, if any."""
    if isinstance(error, InvalidFormatError):
        return FailureKind.INVALID_INPUT
    if isinstance(error, AllProvidersFailedError):
        return error.cause
    if isinstance(error, ProviderError):
        return error.kind
    return None


def user_message(error: ResolverError) -> str:
    """Sanitised message safe to show an end user. Never includes provider detail."""
    if isinstance(error, InvalidFormatError):
        return f"Invalid registration number: {error.reason}."
    kind = failure_kind_of(error)
    if kind is None:
        return "An unexpected error occurred. Please try again."
    return _USER_MESSAGES[kind]


def http_status(error: ResolverError) -> int:
    """HTTP status code for an error surfaced at the gateway."""
    kind = failure_kind_of(error)
    if kind is None:
        return 500
    return _HTTP_STATUS[kind]
