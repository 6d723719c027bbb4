"""In-memory implementation of the step repository."""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Dict, Tuple

from .models import SESSION_FIELDS, SessionRecord, StepRecord, StepStatus, is_regression
from .repository import StepRepository

logger = logging.getLogger(__name__)


class InMemoryStepRepository(StepRepository):
    """Store step state in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts.
    """

    def __init__(self) -> None:
        self._steps: Dict[Tuple[date, int], StepRecord] = {}
        self._sessions: Dict[date, SessionRecord] = {}

    # ------------------------------------------------------------------
    async def get_step(self, session_date: date, step_id: int) -> StepRecord:
        record = self._steps.get((session_date, step_id))
        if record is None:
            return StepRecord(session_date=session_date, step_id=step_id)
        return record.model_copy()

    async def put_step(
        self,
        session_date: date,
        step_id: int,
        status: StepStatus,
        details: str | None = None,
        result_json: str | None = None,
        link_url: str | None = None,
    ) -> None:
        current = self._steps.get((session_date, step_id))
        if current is not None and is_regression(current.status, status):
            logger.warning(
                f"Refusing to move step {step_id} of {session_date} from COMPLETED to PENDING"
            )
            return
        self._steps[(session_date, step_id)] = StepRecord(
            session_date=session_date,
            step_id=step_id,
            status=status,
            details=details,
            result_json=result_json,
            link_url=link_url,
            updated_at=datetime.utcnow(),
        )

    async def list_steps(self, session_date: date) -> list[StepRecord]:
        records = [r for (d, _), r in self._steps.items() if d == session_date]
        return sorted((r.model_copy() for r in records), key=lambda r: r.step_id)

    # ------------------------------------------------------------------
    async def get_session(self, session_date: date) -> SessionRecord | None:
        session = self._sessions.get(session_date)
        return session.model_copy() if session else None

    async def update_session(self, session_date: date, **fields: Any) -> None:
        unknown = set(fields) - set(SESSION_FIELDS)
        if unknown:
            raise ValueError(f"Unknown session fields: {sorted(unknown)}")
        session = self._sessions.get(session_date)
        if session is None:
            session = SessionRecord(session_date=session_date, started_at=datetime.utcnow())
            self._sessions[session_date] = session
        for key, value in fields.items():
            setattr(session, key, value)

    async def list_sessions(self) -> list[SessionRecord]:
        return sorted(
            (s.model_copy() for s in self._sessions.values()),
            key=lambda s: s.session_date,
            reverse=True,
        )

    async def clear_session(self, session_date: date) -> None:
        self._sessions.pop(session_date, None)
        for key in [k for k in self._steps if k[0] == session_date]:
            del self._steps[key]
