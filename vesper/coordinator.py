"""Session coordinator: runs the nightly steps for one date in order."""

from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from .adapters.base import Services
from .config import VesperConfig
from .constants import StepId
from .context import SessionContext
from .listener import ProgressListener
from .persistence import StepRecord, StepRepository, StepStatus
from .steps import get_step
from .steps.documents import doc_url

logger = logging.getLogger(__name__)


class Phase(str, Enum):
    COLLECTION = "collection"
    ANALYSIS = "analysis"
    PLANNING = "planning"


PHASE_STEPS: Dict[Phase, Tuple[StepId, ...]] = {
    Phase.COLLECTION: tuple(StepId(i) for i in range(1, 6)),
    Phase.ANALYSIS: (StepId.ANALYZE_REFLECTION, StepId.FINALIZE_XP),
    Phase.PLANNING: tuple(StepId(i) for i in range(8, 16)),
}

ALL_STEPS: Tuple[StepId, ...] = tuple(StepId)


class SessionState(str, Enum):
    """Coarse state of a session date, derived from its step records."""

    IDLE = "IDLE"
    CREATING = "CREATING"
    PENDING_REFLECTION = "PENDING_REFLECTION"
    ANALYZING = "ANALYZING"
    PLANNING_READY = "PLANNING_READY"
    COMPLETE = "COMPLETE"


_SETTLED = (StepStatus.COMPLETED, StepStatus.SKIPPED)


def derive_state(records: Iterable[StepRecord]) -> SessionState:
    statuses = {r.step_id: r.status for r in records if r.status != StepStatus.PENDING}
    if not statuses:
        return SessionState.IDLE

    def settled(steps: Iterable[StepId]) -> bool:
        return all(statuses.get(int(s)) in _SETTLED for s in steps)

    if settled(ALL_STEPS):
        return SessionState.COMPLETE
    if not settled(PHASE_STEPS[Phase.COLLECTION]):
        return SessionState.CREATING
    analysis = PHASE_STEPS[Phase.ANALYSIS]
    if any(statuses.get(int(s)) == StepStatus.RUNNING for s in analysis):
        return SessionState.ANALYZING
    if not settled(analysis):
        return SessionState.PENDING_REFLECTION
    return SessionState.PLANNING_READY


class SessionCoordinator:
    """Drive step executors for a session date.

    Runs for the same date are serialized by a per-date lock. A step's
    terminal ERROR never stops the remaining steps; the listener decides
    what to surface.
    """

    def __init__(
        self,
        repository: StepRepository,
        services: Services,
        config: VesperConfig,
        listener: Optional[ProgressListener] = None,
        now: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.repository = repository
        self.services = services
        self.config = config
        self.listener = listener or ProgressListener()
        self._now = now
        self._locks: Dict[date, asyncio.Lock] = {}

    def _lock(self, session_date: date) -> asyncio.Lock:
        lock = self._locks.get(session_date)
        if lock is None:
            lock = self._locks[session_date] = asyncio.Lock()
        return lock

    def context(self, session_date: date) -> SessionContext:
        return SessionContext(
            session_date,
            self.repository,
            self.services,
            self.config,
            listener=self.listener,
            now=self._now,
        )

    # ------------------------------------------------------------------
    async def run(self, session_date: date) -> Dict[int, StepStatus]:
        """Run steps 1 to 15 for ``session_date``."""
        return await self._run(session_date, ALL_STEPS, notify_complete=True)

    async def run_phase(self, phase: Phase, session_date: date) -> Dict[int, StepStatus]:
        return await self._run(session_date, PHASE_STEPS[Phase(phase)], notify_complete=True)

    async def run_step(self, step_id: int, session_date: date) -> StepStatus:
        """Run (or retry) a single step."""
        get_step(step_id)
        results = await self._run(session_date, (StepId(step_id),), notify_complete=False)
        return results[int(step_id)]

    async def _run(
        self, session_date: date, step_ids: Iterable[StepId], notify_complete: bool
    ) -> Dict[int, StepStatus]:
        async with self._lock(session_date):
            await self.repository.update_session(session_date)
            ctx = self.context(session_date)
            results: Dict[int, StepStatus] = {}
            for step_id in step_ids:
                results[int(step_id)] = await self._run_one(ctx, step_id)
            if notify_complete:
                await self._notify_complete(ctx)
            return results

    async def _run_one(self, ctx: SessionContext, step_id: StepId) -> StepStatus:
        step = get_step(step_id)
        try:
            return await step.run(ctx)
        except Exception as exc:
            # failures outside the step body (store or listener) end up here
            message = str(exc) or exc.__class__.__name__
            logger.exception(f"Step {int(step_id)} ({step.name}) aborted: {message}")
            try:
                await ctx.repository.put_step(
                    ctx.session_date, int(step_id), StepStatus.ERROR, message
                )
            except Exception:
                logger.exception(f"Could not record failure of step {int(step_id)}")
            try:
                self.listener.on_error(int(step_id), message)
            except Exception:
                logger.exception("Progress listener failed in on_error")
            return StepStatus.ERROR

    async def _notify_complete(self, ctx: SessionContext) -> None:
        diary_id = ctx.diary_doc_id
        if diary_id is None:
            session = await self.repository.get_session(ctx.session_date)
            diary_id = session.diary_doc_id if session else None
        diary_url = ctx.diary_url or (doc_url(diary_id) if diary_id else None)
        self.listener.on_complete(diary_id, diary_url)

    # ------------------------------------------------------------------
    async def records(self, session_date: date) -> List[StepRecord]:
        """Return one record per step, PENDING for steps never written."""
        return [await self.repository.get_step(session_date, int(s)) for s in ALL_STEPS]

    async def session_state(self, session_date: date) -> SessionState:
        return derive_state(await self.records(session_date))


__all__ = [
    "ALL_STEPS",
    "PHASE_STEPS",
    "Phase",
    "SessionCoordinator",
    "SessionState",
    "derive_state",
]
