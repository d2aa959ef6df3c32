"""Health checks and self-diagnostics for spacesafe."""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING

import httpx
from pydantic import BaseModel, Field

from spacesafe.config import Settings
from spacesafe.session import SessionContext

if TYPE_CHECKING:
    from pathlib import Path


class CheckStatus(StrEnum):
    """Status for a doctor check item."""

    OK = "ok"
    WARN = "warn"
    FAIL = "fail"


class CheckResult(BaseModel):
    """A single doctor check result."""

    name: str
    status: CheckStatus
    message: str
    details: dict[str, str] = Field(default_factory=dict)


class DoctorReport(BaseModel):
    """Aggregate report for all diagnostics."""

    checks: list[CheckResult]

    @property
    def healthy(self) -> bool:
        return all(check.status != CheckStatus.FAIL for check in self.checks)

    @property
    def exit_code(self) -> int:
        return 0 if self.healthy else 1


def _check_config_schema(config_path: Path | None) -> CheckResult:
    try:
        Settings.load(config_path=config_path)
        return CheckResult(
            name="config-schema",
            status=CheckStatus.OK,
            message="Configuration schema is valid.",
        )
    except Exception as exc:
        return CheckResult(
            name="config-schema",
            status=CheckStatus.FAIL,
            message="Configuration schema validation failed.",
            details={"error": str(exc)},
        )


def _check_session(session: SessionContext) -> CheckResult:
    if session.authenticated:
        return CheckResult(
            name="session-token",
            status=CheckStatus.OK,
            message="Session token is configured.",
        )
    return CheckResult(
        name="session-token",
        status=CheckStatus.WARN,
        message="No session token; authenticated endpoints will reject requests.",
    )


def _probe_service(name: str, base_url: str, timeout: float) -> CheckResult:
    # Any HTTP answer, even 404, proves the service is listening
    check_name = f"{name}-service"
    try:
        response = httpx.get(base_url, timeout=timeout)
    except httpx.HTTPError as exc:
        return CheckResult(
            name=check_name,
            status=CheckStatus.FAIL,
            message=f"{name.title()} service is unreachable.",
            details={"url": base_url, "error": str(exc)},
        )
    if response.status_code >= 500:
        return CheckResult(
            name=check_name,
            status=CheckStatus.WARN,
            message=f"{name.title()} service answered with a server error.",
            details={"url": base_url, "status": str(response.status_code)},
        )
    return CheckResult(
        name=check_name,
        status=CheckStatus.OK,
        message=f"{name.title()} service is reachable.",
        details={"url": base_url, "status": str(response.status_code)},
    )


def _check_services(settings: Settings, timeout: float = 5.0) -> list[CheckResult]:
    services = settings.services
    return [
        _probe_service("auth", services.auth_url, timeout),
        _probe_service("location", services.location_url, timeout),
        _probe_service("work-order", services.work_order_url, timeout),
    ]


def run_doctor(
    settings: Settings,
    session: SessionContext,
    config_path: Path | None = None,
    check_service_probes: bool = True,
) -> DoctorReport:
    """Run all health checks and return a structured report."""
    checks = [_check_config_schema(config_path), _check_session(session)]

    if check_service_probes:
        checks.extend(_check_services(settings))
    else:
        checks.append(
            CheckResult(
                name="service-probes",
                status=CheckStatus.WARN,
                message="Service reachability checks were skipped.",
            )
        )

    return DoctorReport(checks=checks)
