"""Data models returned by the technician assignment client."""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator


class Technician(BaseModel):
    """A user with the technician role.

    The auth service stores users as ``firstName``/``lastName`` with an
    ``isActive`` flag and may send ``null`` for unset contact fields;
    older endpoints send a single ``name``.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(validation_alias=AliasChoices("id", "_id"))
    name: str = Field(default="", validation_alias=AliasChoices("name", "fullName"))
    email: str = ""
    phone: str = ""
    role: str = "technician"
    skills: list[str] = Field(default_factory=list)
    is_available: bool = Field(
        default=True, validation_alias=AliasChoices("is_available", "isAvailable")
    )
    status: str = "active"

    @model_validator(mode="before")
    @classmethod
    def _from_user_record(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        record = {key: value for key, value in data.items() if value is not None}
        if not (record.get("name") or record.get("fullName")):
            full = " ".join(
                str(record[part]).strip()
                for part in ("firstName", "lastName")
                if record.get(part)
            )
            if full:
                record["name"] = full
        if "status" not in record and "isActive" in record:
            record["status"] = "active" if record["isActive"] else "inactive"
        return record

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: object) -> str:
        return str(value)

    def matches(self, query: str) -> bool:
        """Case-insensitive match against name, email, or any skill."""
        needle = query.strip().lower()
        if not needle:
            return True
        return (
            needle in self.name.lower()
            or needle in self.email.lower()
            or any(needle in skill.lower() for skill in self.skills)
        )


class AssignmentSummary(BaseModel):
    """Location/technician assignment counts."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    total_locations: int = Field(default=0, alias="totalLocations")
    assigned_locations: int = Field(default=0, alias="assignedLocations")
    available_locations: int = Field(default=0, alias="availableLocations")
    total_technicians: int = Field(default=0, alias="totalTechnicians")
    assigned_technicians: int = Field(default=0, alias="assignedTechnicians")
    available_technicians: int = Field(default=0, alias="availableTechnicians")
