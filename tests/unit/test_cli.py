"""Unit tests for spacesafe.cli - argument parsing, version, commands."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from typing import TYPE_CHECKING
from unittest.mock import MagicMock, patch

import click
import httpx
import pytest
import respx
import structlog
from typer.testing import CliRunner

from spacesafe import __version__
from spacesafe.cli import _load_settings, app

if TYPE_CHECKING:
    from pathlib import Path

runner = CliRunner()

AUTH_HOST = "auth.test"
LOCATION_HOST = "location.test"


@pytest.fixture(autouse=True)
def _reset_logging() -> Iterator[None]:
    """Commands configure logging against the runner's streams."""
    yield
    structlog.contextvars.clear_contextvars()
    structlog.reset_defaults()
    logging.getLogger().handlers.clear()


@pytest.fixture()
def router(service_env: None) -> Iterator[respx.MockRouter]:
    with respx.mock(assert_all_called=False) as mock:
        yield mock


def _location(router: respx.MockRouter, method: str, path: str) -> respx.Route:
    return router.route(method=method, host=LOCATION_HOST, path=f"/api{path}")


def _auth(router: respx.MockRouter, method: str, path: str) -> respx.Route:
    return router.route(method=method, host=AUTH_HOST, path=f"/api{path}")


# ---- Version and help -------------------------------------------------------


class TestVersionAndHelp:
    """Version flag and help text output."""

    def test_version_flag(self) -> None:
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_short_version_flag(self) -> None:
        result = runner.invoke(app, ["-V"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_no_args_shows_help(self) -> None:
        result = runner.invoke(app, [])
        # Typer returns exit code 2 for no_args_is_help
        assert result.exit_code in (0, 2)
        assert "Usage" in result.output

    def test_help_lists_commands(self) -> None:
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        for command in ("technicians", "assign", "unassign", "summary", "doctor"):
            assert command in result.output

    def test_unassign_help(self) -> None:
        result = runner.invoke(app, ["unassign", "--help"])
        assert result.exit_code == 0
        assert "--verify" in result.output
        assert "--verbose" in result.output
        assert "--token" in result.output


# ---- Unassign ----------------------------------------------------------------


class TestUnassignCommand:
    """The `unassign` command walks the strategy chain."""

    def test_first_strategy_success(self, router: respx.MockRouter) -> None:
        route = _location(router, "DELETE", "/locations/L1/remove-technician").mock(
            return_value=httpx.Response(200, json={"success": True})
        )

        result = runner.invoke(app, ["unassign", "L1", "--token", "tok"])

        assert result.exit_code == 0
        assert "Unassigned" in result.output
        assert "delete-remove-technician" in result.output
        assert route.calls.last.request.headers["Authorization"] == "Bearer tok"

    def test_falls_back_to_patch(self, router: respx.MockRouter) -> None:
        _location(router, "DELETE", "/locations/L1/remove-technician").mock(
            return_value=httpx.Response(404)
        )
        _location(router, "POST", "/locations/L1/unassign-technician").mock(
            return_value=httpx.Response(405)
        )
        _location(router, "POST", "/locations/L1/unassign").mock(
            return_value=httpx.Response(400)
        )
        patch_route = _location(router, "PATCH", "/locations/L1").mock(
            return_value=httpx.Response(200, json={"success": True})
        )

        result = runner.invoke(app, ["unassign", "L1"])

        assert result.exit_code == 0
        assert "patch-clear-technician" in result.output
        assert json.loads(patch_route.calls.last.request.content) == {
            "assignedTechnician": None
        }

    def test_verbose_shows_attempts(self, router: respx.MockRouter) -> None:
        _location(router, "DELETE", "/locations/L1/remove-technician").mock(
            return_value=httpx.Response(404)
        )
        _location(router, "POST", "/locations/L1/unassign-technician").mock(
            return_value=httpx.Response(200, json={"success": True})
        )

        result = runner.invoke(app, ["unassign", "L1", "-v"])

        assert result.exit_code == 0
        assert "Attempts: unassign_technician" in result.output
        assert "404" in result.output

    def test_all_strategies_fail_exits_nonzero(self, router: respx.MockRouter) -> None:
        router.route(host=LOCATION_HOST).mock(return_value=httpx.Response(404))

        result = runner.invoke(app, ["unassign", "L1"])

        assert result.exit_code == 1
        assert "Unassign Failed" in result.output
        assert "contact support" in result.output

    def test_missing_token_fails_before_any_request(
        self, router: respx.MockRouter, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.delenv("SPACESAFE_SESSION__TOKEN")

        result = runner.invoke(app, ["unassign", "L1"])

        assert result.exit_code == 1
        assert "--token" in result.output
        assert not router.calls

    def test_session_token_from_environment(self, router: respx.MockRouter) -> None:
        route = _location(router, "DELETE", "/locations/L1/remove-technician").mock(
            return_value=httpx.Response(200, json={"success": True})
        )

        result = runner.invoke(app, ["unassign", "L1"])

        assert result.exit_code == 0
        assert route.calls.last.request.headers["Authorization"] == "Bearer env-token"

    def test_verify_detects_stale_assignment(self, router: respx.MockRouter) -> None:
        _location(router, "DELETE", "/locations/L1/remove-technician").mock(
            return_value=httpx.Response(200, json={"success": True})
        )
        _location(router, "GET", "/locations/L1").mock(
            return_value=httpx.Response(
                200, json={"location": {"_id": "L1", "assignedTechnician": "T9"}}
            )
        )

        result = runner.invoke(app, ["unassign", "L1", "--verify"])

        assert result.exit_code == 1
        assert "Unassign Failed" in result.output


# ---- Other commands ----------------------------------------------------------


class TestTechniciansCommand:
    """The `technicians` command renders the directory."""

    def test_lists_technicians(self, router: respx.MockRouter) -> None:
        _auth(router, "GET", "/users").mock(
            return_value=httpx.Response(
                200,
                json={"data": [{"_id": "7", "name": "Ada", "email": "ada@example.com"}]},
            )
        )

        result = runner.invoke(app, ["technicians"])

        assert result.exit_code == 0
        assert "Technicians" in result.output
        assert "Ada" in result.output

    def test_auth_service_user_shape(self, router: respx.MockRouter) -> None:
        _auth(router, "GET", "/users").mock(
            return_value=httpx.Response(
                200,
                json={
                    "success": True,
                    "data": [
                        {
                            "_id": "u1",
                            "firstName": "Ann",
                            "lastName": "Lee",
                            "email": "ann@example.com",
                            "phone": None,
                            "isActive": True,
                        },
                        {"firstName": "No", "lastName": "Id"},
                    ],
                    "pagination": {"currentPage": 1, "totalPages": 1, "totalUsers": 2},
                },
            )
        )

        result = runner.invoke(app, ["technicians"])

        assert result.exit_code == 0
        assert result.exception is None
        assert "Ann Lee" in result.output

    def test_query_without_match(self, router: respx.MockRouter) -> None:
        _auth(router, "GET", "/users").mock(
            return_value=httpx.Response(200, json={"data": [{"_id": "7", "name": "Ada"}]})
        )

        result = runner.invoke(app, ["technicians", "-q", "welding"])

        assert result.exit_code == 0
        assert "No technicians found" in result.output

    def test_directory_unavailable(self, router: respx.MockRouter) -> None:
        _auth(router, "GET", "/users").mock(return_value=httpx.Response(404))
        _auth(router, "GET", "/technicians").mock(return_value=httpx.Response(404))

        result = runner.invoke(app, ["technicians"])

        assert result.exit_code == 1
        assert "Error" in result.output


class TestAssignCommand:
    """The `assign` command is a single call."""

    def test_assign_success(self, router: respx.MockRouter) -> None:
        route = _location(router, "POST", "/locations/L1/assign-technician").mock(
            return_value=httpx.Response(200, json={"success": True})
        )

        result = runner.invoke(app, ["assign", "L1", "T1"])

        assert result.exit_code == 0
        assert "Assigned" in result.output
        assert json.loads(route.calls.last.request.content) == {"technicianId": "T1"}

    def test_assign_rejected(self, router: respx.MockRouter) -> None:
        _location(router, "POST", "/locations/L1/assign-technician").mock(
            return_value=httpx.Response(409, json={"message": "Location already assigned"})
        )

        result = runner.invoke(app, ["assign", "L1", "T1"])

        assert result.exit_code == 1
        assert "Location already assigned" in result.output

    def test_assign_requires_token(
        self, router: respx.MockRouter, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.delenv("SPACESAFE_SESSION__TOKEN")

        result = runner.invoke(app, ["assign", "L1", "T1"])

        assert result.exit_code == 1
        assert "No session token" in result.output
        assert not router.calls

    def test_service_unreachable(self, router: respx.MockRouter) -> None:
        _location(router, "POST", "/locations/L1/assign-technician").mock(
            side_effect=httpx.ConnectError("refused")
        )

        result = runner.invoke(app, ["assign", "L1", "T1"])

        assert result.exit_code == 1
        assert "Service unreachable" in result.output


class TestSummaryCommand:
    """The `summary` command renders counts."""

    def test_summary_table(self, router: respx.MockRouter) -> None:
        _location(router, "GET", "/locations/assignments-summary").mock(
            return_value=httpx.Response(
                200, json={"data": {"totalLocations": 12, "assignedLocations": 5}}
            )
        )

        result = runner.invoke(app, ["summary"])

        assert result.exit_code == 0
        assert "Assignment Summary" in result.output
        assert "Total locations" in result.output
        assert "12" in result.output


# ---- Settings loading ----------------------------------------------------------


class TestLoadSettings:
    """Settings loading with error handling."""

    @patch("spacesafe.cli.Settings.load")
    def test_load_settings_success(self, mock_load: MagicMock) -> None:
        mock_load.return_value = MagicMock()
        assert _load_settings() is not None

    @patch("spacesafe.cli.Settings.load")
    def test_load_settings_validation_error(self, mock_load: MagicMock) -> None:
        from pydantic import ValidationError

        mock_load.side_effect = ValidationError.from_exception_data(
            "Settings",
            [
                {
                    "type": "missing",
                    "loc": ("services", "auth_url"),
                    "msg": "Field required",
                    "input": {},
                }
            ],
        )
        with pytest.raises(click.exceptions.Exit):
            _load_settings()

    def test_invalid_config_file_exits(self, tmp_path: Path) -> None:
        config = tmp_path / "bad.yaml"
        config.write_text("resilience:\n  max_retries_per_strategy: 0\n", encoding="utf-8")

        result = runner.invoke(app, ["unassign", "L1", "--config", str(config)])

        assert result.exit_code == 1
        assert "Configuration Error" in result.output
