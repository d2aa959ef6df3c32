"""httpx client construction and response helpers shared by the services."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import httpx
import structlog

from spacesafe import __version__
from spacesafe.exceptions import APIError

if TYPE_CHECKING:
    from spacesafe.session import SessionContext

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)


def create_client(
    base_url: str,
    session: SessionContext,
    timeout: float = 15.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Build an ``AsyncClient`` bound to one backend service.

    Args:
        base_url: Service base URL (e.g. ``http://localhost:5004/api``).
        session: Caller session supplying the bearer token.
        timeout: Per-request timeout in seconds.
        transport: Optional transport override (used by tests).

    Returns:
        A configured client; the caller owns closing it.
    """
    headers = {
        "Accept": "application/json",
        "Content-Type": "application/json",
        "User-Agent": f"spacesafe/{__version__}",
        **session.auth_headers(),
    }
    return httpx.AsyncClient(
        base_url=base_url.rstrip("/"),
        headers=headers,
        timeout=timeout,
        transport=transport,
    )


def response_payload(response: httpx.Response) -> Any:
    """Raise on error status and return the decoded JSON body.

    Bodies that are empty or not JSON decode to an empty dict.

    Raises:
        httpx.HTTPStatusError: If the response status is 4xx/5xx.
    """
    response.raise_for_status()
    if not response.content:
        return {}
    try:
        return response.json()
    except ValueError:
        logger.debug(
            "non_json_response",
            url=str(response.request.url),
            status=response.status_code,
        )
        return {}


def unwrap(payload: Any, *keys: str) -> Any:
    """Return the first present ``keys`` entry of a backend envelope.

    Services answer as ``{"data": {...}}``, ``{"data": [...]}``, a keyed
    object, or a bare value. Keys are tried inside a ``data`` object first,
    then at the top level. When none match, the ``data`` object (or the
    payload itself) is returned.
    """
    candidates = [payload]
    if isinstance(payload, dict) and isinstance(payload.get("data"), dict):
        candidates.insert(0, payload["data"])
    for candidate in candidates:
        if not isinstance(candidate, dict):
            continue
        for key in keys:
            value = candidate.get(key)
            if value is not None:
                return value
    return candidates[0]


def to_api_error(exc: httpx.HTTPStatusError) -> APIError:
    """Translate an httpx status error into an ``APIError``."""
    payload: Any = None
    message = str(exc)
    try:
        payload = exc.response.json()
    except ValueError:
        payload = exc.response.text or None
    if isinstance(payload, dict) and payload.get("message"):
        message = str(payload["message"])
    return APIError(message, status_code=exc.response.status_code, payload=payload)
