"""Technician-to-location assignment client.

Talks to the auth service (technician directory) and the location
service (assignments). Unassignment goes through the
``ResilientOperationExecutor`` because deployed location services
disagree on the endpoint shape for it.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

import httpx
import structlog
from pydantic import ValidationError

from spacesafe.exceptions import APIError
from spacesafe.logging import operation_logging_context
from spacesafe.resilience import (
    ExecutionResult,
    ResilientOperationExecutor,
    Strategy,
)
from spacesafe.services.http import create_client, response_payload, to_api_error, unwrap
from spacesafe.services.models import AssignmentSummary, Technician

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from spacesafe.config import Settings
    from spacesafe.session import SessionContext

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

UNASSIGN_FAILURE_MESSAGE = (
    "Failed to unassign technician from location. Please contact support."
)


class TechnicianAssignmentService:
    """Manage technician assignments across the auth and location services."""

    def __init__(
        self,
        auth_client: httpx.AsyncClient,
        location_client: httpx.AsyncClient,
        executor: ResilientOperationExecutor | None = None,
    ) -> None:
        self._auth = auth_client
        self._locations = location_client
        self._executor = executor or ResilientOperationExecutor()

    @classmethod
    @asynccontextmanager
    async def from_settings(
        cls,
        settings: Settings,
        session: SessionContext,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> AsyncIterator[TechnicianAssignmentService]:
        """Yield a service whose HTTP clients are closed on exit."""
        timeout = settings.services.timeout
        async with (
            create_client(
                settings.services.auth_url, session, timeout, transport=transport
            ) as auth_client,
            create_client(
                settings.services.location_url, session, timeout, transport=transport
            ) as location_client,
        ):
            yield cls(
                auth_client,
                location_client,
                ResilientOperationExecutor.from_settings(settings.resilience),
            )

    # ------------------------------------------------------------------
    # Technician directory
    # ------------------------------------------------------------------

    async def list_technicians(self) -> list[Technician]:
        """Return active technicians.

        Raises:
            StrategyExhaustedError: If neither directory endpoint answers.
        """

        async def _users_by_role() -> Any:
            response = await self._auth.get(
                "/users", params={"role": "technician", "status": "active"}
            )
            return response_payload(response)

        async def _technicians() -> Any:
            response = await self._auth.get("/technicians")
            return response_payload(response)

        result = await self._executor.execute(
            "list_technicians",
            [
                Strategy("users-by-role", _users_by_role),
                Strategy("technicians", _technicians),
            ],
        )
        payload = result.raise_for_failure()
        records = unwrap(payload, "users", "technicians", "data")
        if not isinstance(records, list):
            return []

        technicians: list[Technician] = []
        for item in records:
            try:
                technicians.append(Technician.model_validate(item))
            except ValidationError as exc:
                logger.warning(
                    "technician_record_skipped",
                    record_id=item.get("_id") if isinstance(item, dict) else None,
                    error=str(exc),
                )
        return technicians

    async def available_technicians(self) -> list[Technician]:
        """Technicians not currently assigned to any location."""
        technicians = await self.list_technicians()
        try:
            response = await self._locations.get("/locations/assigned-technicians")
            payload = response_payload(response)
        except httpx.HTTPError as exc:
            logger.warning("assigned_technicians_unavailable", error=str(exc))
            return technicians

        assigned = unwrap(payload, "assignedTechnicians")
        assigned_ids = {str(item) for item in assigned} if isinstance(assigned, list) else set()
        return [tech for tech in technicians if tech.id not in assigned_ids]

    async def search_technicians(self, query: str) -> list[Technician]:
        return [tech for tech in await self.list_technicians() if tech.matches(query)]

    async def get_technician(self, technician_id: str) -> Technician:
        """Fetch one technician by id.

        Raises:
            APIError: If the auth service rejects the request.
        """
        try:
            response = await self._auth.get(f"/users/{technician_id}")
            payload = response_payload(response)
        except httpx.HTTPStatusError as exc:
            raise to_api_error(exc) from exc
        try:
            return Technician.model_validate(unwrap(payload, "user"))
        except ValidationError as exc:
            msg = f"Malformed technician record for {technician_id!r}"
            raise APIError(msg, payload=payload) from exc

    async def update_availability(self, technician_id: str, is_available: bool) -> Any:
        try:
            response = await self._auth.put(
                f"/users/{technician_id}/availability",
                json={"isAvailable": is_available},
            )
            return response_payload(response)
        except httpx.HTTPStatusError as exc:
            raise to_api_error(exc) from exc

    # ------------------------------------------------------------------
    # Assignments
    # ------------------------------------------------------------------

    async def assign_technician(self, location_id: str, technician_id: str) -> Any:
        """Assign ``technician_id`` to ``location_id``.

        Raises:
            APIError: If the location service rejects the assignment.
        """
        with operation_logging_context(
            "assign_technician", location_id=location_id, technician_id=technician_id
        ) as outcome:
            try:
                response = await self._locations.post(
                    f"/locations/{location_id}/assign-technician",
                    json={"technicianId": technician_id},
                )
                payload = response_payload(response)
            except httpx.HTTPStatusError as exc:
                raise to_api_error(exc) from exc
            outcome.succeed()
            return payload

    def unassign_strategies(self, location_id: str) -> list[Strategy]:
        """Candidate call shapes for unassignment, most standard first."""
        client = self._locations

        async def _delete() -> Any:
            return response_payload(
                await client.delete(f"/locations/{location_id}/remove-technician")
            )

        async def _post_unassign_technician() -> Any:
            return response_payload(
                await client.post(f"/locations/{location_id}/unassign-technician")
            )

        async def _post_unassign() -> Any:
            return response_payload(
                await client.post(
                    f"/locations/{location_id}/unassign", json={"locationId": location_id}
                )
            )

        async def _patch_location() -> Any:
            return response_payload(
                await client.patch(
                    f"/locations/{location_id}", json={"assignedTechnician": None}
                )
            )

        async def _post_collection_remove() -> Any:
            return response_payload(
                await client.post(
                    "/locations/remove-technician", json={"locationId": location_id}
                )
            )

        return [
            Strategy("delete-remove-technician", _delete),
            Strategy("post-unassign-technician", _post_unassign_technician),
            Strategy("post-unassign", _post_unassign),
            Strategy("patch-clear-technician", _patch_location),
            Strategy("post-collection-remove-technician", _post_collection_remove),
        ]

    async def remove_technician_assignment(
        self, location_id: str, verify: bool = False
    ) -> ExecutionResult:
        """Unassign whichever technician holds ``location_id``.

        Args:
            location_id: Location to clear.
            verify: Re-read the location after success and fail the result
                if it still shows an active technician.

        Returns:
            The executor's result; failures are never raised.
        """
        with operation_logging_context(
            "unassign_technician", location_id=location_id
        ) as outcome:
            result = await self._executor.execute(
                "unassign_technician",
                self.unassign_strategies(location_id),
                failure_message=UNASSIGN_FAILURE_MESSAGE,
            )
            if result.success and verify:
                result = await self._verify_unassigned(location_id, result)
            outcome.record(result)
            return result

    async def _verify_unassigned(
        self, location_id: str, result: ExecutionResult
    ) -> ExecutionResult:
        """Fail ``result`` if a fresh read still shows an active technician."""
        if await self._location_has_technician(location_id) is not True:
            return result

        logger.error(
            "unassign_verification_failed",
            location_id=location_id,
            strategy=result.strategy,
        )
        return result.model_copy(
            update={
                "success": False,
                "error": (
                    f"{UNASSIGN_FAILURE_MESSAGE} (strategy {result.strategy!r} "
                    "reported success but the location is still assigned)"
                ),
            }
        )

    async def _location_has_technician(self, location_id: str) -> bool | None:
        """True/False from a fresh read, or None if the read itself failed."""
        try:
            response = await self._locations.get(f"/locations/{location_id}")
            payload = response_payload(response)
        except httpx.HTTPError as exc:
            logger.warning(
                "unassign_verification_skipped", location_id=location_id, error=str(exc)
            )
            return None

        location = unwrap(payload, "location")
        if not isinstance(location, dict):
            return None
        assigned = location.get("assignedTechnician")
        if not assigned:
            return False
        if isinstance(assigned, dict):
            return bool(assigned.get("isActive", True))
        return True

    async def assignments_summary(self) -> AssignmentSummary:
        """Fetch assignment counts.

        Raises:
            APIError: If the location service rejects the request.
        """
        try:
            response = await self._locations.get("/locations/assignments-summary")
            payload = response_payload(response)
        except httpx.HTTPStatusError as exc:
            raise to_api_error(exc) from exc
        try:
            return AssignmentSummary.model_validate(unwrap(payload, "summary"))
        except ValidationError as exc:
            raise APIError("Malformed assignment summary", payload=payload) from exc
