"""Classification of Azure errors raised by the authorization service."""
from __future__ import annotations

from azure.core.exceptions import HttpResponseError, ResourceExistsError

# ARM error codes returned when an equivalent activation is already in place.
CONFLICT_ERROR_CODES = frozenset(
    {
        "roleassignmentexists",
        "roleassignmentrequestexists",
    }
)

_CONFLICT_MESSAGE = "already exists"


def is_request_conflict(exc: Exception) -> bool:
    """
    True when *exc* reports that the activation already exists.

    Prefers the structured signals (409 ResourceExistsError, ARM error code)
    and falls back to inspecting the message text.
    """
    if isinstance(exc, ResourceExistsError):
        return True
    if isinstance(exc, HttpResponseError):
        code = getattr(getattr(exc, "error", None), "code", None)
        if code and code.lower() in CONFLICT_ERROR_CODES:
            return True
    return _CONFLICT_MESSAGE in str(exc).lower()


def error_detail(exc: Exception) -> str:
    """Short, single-line description of *exc* for reports."""
    message = getattr(exc, "message", None) or str(exc)
    message = " ".join(str(message).split())
    return message or type(exc).__name__
