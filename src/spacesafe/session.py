"""Explicit session context threaded through every service call.

The web client read the bearer token and user out of process-wide
storage at the point of use. Here the session is an immutable value
built once (from settings or the CLI) and handed to the clients that
need it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict

from spacesafe.exceptions import SessionError

if TYPE_CHECKING:
    from spacesafe.config import SessionSettings


class SessionContext(BaseModel):
    """Credentials and identity for the current caller."""

    model_config = ConfigDict(frozen=True)

    token: str | None = None
    user_id: str | None = None
    role: str | None = None

    @classmethod
    def from_settings(
        cls, settings: SessionSettings, token: str | None = None
    ) -> SessionContext:
        """Build a session from settings, letting an explicit token win."""
        resolved = token
        if resolved is None and settings.token is not None:
            resolved = settings.token.get_secret_value()
        return cls(token=resolved or None, user_id=settings.user_id, role=settings.role)

    @property
    def authenticated(self) -> bool:
        return bool(self.token)

    def require_token(self) -> str:
        """Return the bearer token or raise if the session is anonymous.

        Raises:
            SessionError: If no token is available.
        """
        if not self.token:
            raise SessionError(
                "No session token configured; pass --token or set SPACESAFE_SESSION__TOKEN."
            )
        return self.token

    def auth_headers(self) -> dict[str, str]:
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}
