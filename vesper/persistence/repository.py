"""Repository abstraction for the step store."""

from __future__ import annotations

from datetime import date
from typing import Any, Protocol

from .models import SessionRecord, StepRecord, StepStatus


class StepRepository(Protocol):
    """Protocol for step store backends."""

    async def get_step(self, session_date: date, step_id: int) -> StepRecord:
        """Return the record, or a default PENDING record when absent."""

    async def put_step(
        self,
        session_date: date,
        step_id: int,
        status: StepStatus,
        details: str | None = None,
        result_json: str | None = None,
        link_url: str | None = None,
    ) -> None:
        """Upsert the record for ``(session_date, step_id)``."""

    async def list_steps(self, session_date: date) -> list[StepRecord]:
        """Return all persisted records for a date ordered by step id."""

    async def get_session(self, session_date: date) -> SessionRecord | None:
        """Retrieve the session record for a date."""

    async def update_session(self, session_date: date, **fields: Any) -> None:
        """Upsert session record fields."""

    async def list_sessions(self) -> list[SessionRecord]:
        """Return all session records, newest first."""

    async def clear_session(self, session_date: date) -> None:
        """Delete every step and the session record for a date."""
