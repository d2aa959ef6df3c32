"""Backend service clients."""

from spacesafe.services.assignments import TechnicianAssignmentService
from spacesafe.services.models import AssignmentSummary, Technician

__all__ = [
    "AssignmentSummary",
    "Technician",
    "TechnicianAssignmentService",
]
