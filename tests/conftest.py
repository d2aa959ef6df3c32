"""Shared pytest fixtures for the spacesafe test suite."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

import httpx
import pytest

from spacesafe.exceptions import APIError

AUTH_URL = "http://auth.test/api"
LOCATION_URL = "http://location.test/api"
WORK_ORDER_URL = "http://orders.test/api"


# ---------------------------------------------------------------------------
# Backoff helpers
# ---------------------------------------------------------------------------


class RecordingSleep:
    """Async stand-in for ``asyncio.sleep`` that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture()
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


# ---------------------------------------------------------------------------
# Strategy helpers
# ---------------------------------------------------------------------------


def http_error(
    status: int, method: str = "POST", url: str = "http://svc.test/x"
) -> httpx.HTTPStatusError:
    """Build the error ``raise_for_status`` would raise for ``status``."""
    request = httpx.Request(method, url)
    response = httpx.Response(status, request=request)
    return httpx.HTTPStatusError(f"{status} error", request=request, response=response)


class ScriptedCall:
    """Zero-argument coroutine callable replaying scripted outcomes.

    Each call consumes the next outcome; the last one repeats. Exceptions
    are raised, anything else is returned. Calls are appended to the
    shared ``journal`` so tests can assert cross-strategy ordering.
    """

    def __init__(
        self,
        name: str,
        *outcomes: Any,
        journal: list[str] | None = None,
    ) -> None:
        self.name = name
        self.outcomes = list(outcomes) or [None]
        self.calls = 0
        self.journal = journal if journal is not None else []

    async def __call__(self) -> Any:
        self.calls += 1
        self.journal.append(self.name)
        outcome = self.outcomes[min(self.calls, len(self.outcomes)) - 1]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


@pytest.fixture()
def journal() -> list[str]:
    return []


@pytest.fixture()
def scripted(journal: list[str]) -> Callable[..., ScriptedCall]:
    """Factory for ``ScriptedCall`` objects sharing one journal."""

    def _make(name: str, *outcomes: Any) -> ScriptedCall:
        return ScriptedCall(name, *outcomes, journal=journal)

    return _make


@pytest.fixture()
def make_http_error() -> Callable[..., httpx.HTTPStatusError]:
    return http_error


@pytest.fixture()
def not_found() -> APIError:
    return APIError("not found", status_code=404)


@pytest.fixture()
def server_error() -> httpx.HTTPStatusError:
    return http_error(503)


# ---------------------------------------------------------------------------
# Environment isolation
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Any) -> None:
    """Keep real ``SPACESAFE_*`` variables and config files out of tests."""
    import os

    for key in list(os.environ):
        if key.startswith("SPACESAFE_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture()
def service_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Point settings at the respx-mocked test hosts with zero backoff."""
    monkeypatch.setenv("SPACESAFE_SERVICES__AUTH_URL", AUTH_URL)
    monkeypatch.setenv("SPACESAFE_SERVICES__LOCATION_URL", LOCATION_URL)
    monkeypatch.setenv("SPACESAFE_SERVICES__WORK_ORDER_URL", WORK_ORDER_URL)
    monkeypatch.setenv("SPACESAFE_RESILIENCE__BACKOFF_BASE_SECONDS", "0")
    monkeypatch.setenv("SPACESAFE_SESSION__TOKEN", "env-token")
