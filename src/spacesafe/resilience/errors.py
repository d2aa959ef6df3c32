"""Status extraction from remote call failures."""

from __future__ import annotations

import httpx


def status_code_of(exc: BaseException) -> int | None:
    """Return the HTTP status carried by ``exc``, if any.

    Network errors, timeouts and arbitrary exceptions carry no status
    and yield ``None``.
    """
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code

    status = getattr(exc, "status_code", None)
    if isinstance(status, int) and not isinstance(status, bool):
        return status

    response = getattr(exc, "response", None)
    status = getattr(response, "status_code", None)
    if isinstance(status, int) and not isinstance(status, bool):
        return status
    return None


def describe_error(exc: BaseException) -> str:
    """Short human-readable description for logs and attempt records."""
    message = str(exc)
    if isinstance(exc, httpx.HTTPStatusError):
        message = f"{exc.request.method} {exc.request.url.path} -> {exc.response.status_code}"
    return f"{exc.__class__.__name__}: {message}" if message else exc.__class__.__name__
