"""Per-session state passed through every step."""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Callable, List, Optional, Type
from zoneinfo import ZoneInfo

from .adapters.base import Services
from .config import VesperConfig
from .constants import NIGHTLY_NAMESPACE, StepId
from .envelopes import (
    Envelope,
    EnvelopeError,
    OutputT,
    PlanOutput,
    TaskFetchOutput,
    decode_envelope,
)
from .listener import ProgressListener
from .persistence import StepRepository, StepStatus
from .summary import DaySummary, build_day_summary, collect_task_stats

logger = logging.getLogger(__name__)


class SessionContext:
    """Read-through cache of one session date's step outputs.

    Cached fields are convenience only. Readers go through the step store
    first and fall back to the cache when the store has nothing usable.
    """

    def __init__(
        self,
        session_date: date,
        repository: StepRepository,
        services: Services,
        config: VesperConfig,
        listener: Optional[ProgressListener] = None,
        now: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.session_date = session_date
        self.repository = repository
        self.services = services
        self.config = config
        self.listener = listener or ProgressListener()
        self._now = now

        self.task_stats: Optional[TaskFetchOutput] = None
        self.day_summary: Optional[DaySummary] = None
        self.questions: List[str] = []
        self.diary_doc_id: Optional[str] = None
        self.diary_url: Optional[str] = None
        self.plan_doc_id: Optional[str] = None
        self.plan: Optional[PlanOutput] = None

    @property
    def tz(self) -> str:
        return self.config.timezone

    @property
    def ai_model(self) -> Optional[str]:
        return self.config.ai.model or None

    def now(self) -> datetime:
        if self._now is not None:
            return self._now()
        return datetime.now(ZoneInfo(self.tz))

    # ------------------------------------------------------------------
    async def load_envelope(
        self, step_id: int, output_model: Type[OutputT]
    ) -> Optional[Envelope[OutputT]]:
        """Return a completed step's envelope, or None if unusable."""

        record = await self.repository.get_step(self.session_date, step_id)
        if record.status != StepStatus.COMPLETED:
            return None
        try:
            return decode_envelope(record.result_json, output_model)
        except EnvelopeError as exc:
            logger.warning(f"Stored result of step {step_id} for {self.session_date} unusable: {exc}")
            return None

    async def load_output(self, step_id: int, output_model: Type[OutputT]) -> Optional[OutputT]:
        envelope = await self.load_envelope(step_id, output_model)
        return envelope.output if envelope else None

    async def setting(self, key: str) -> Optional[str]:
        return await self.services.key_value.get_str(NIGHTLY_NAMESPACE, key)

    async def put_setting(self, key: str, value: Any) -> None:
        await self.services.key_value.put(NIGHTLY_NAMESPACE, key, value)

    # ------------------------------------------------------------------
    async def ensure_task_stats(self) -> TaskFetchOutput:
        """Step 1's persisted output, then the cache, then a best-effort fetch."""

        stored = await self.load_output(StepId.FETCH_TASKS, TaskFetchOutput)
        if stored is not None:
            self.task_stats = stored
            return stored
        if self.task_stats is not None:
            return self.task_stats
        try:
            self.task_stats = await collect_task_stats(self.services.tasks, self.session_date)
        except Exception as exc:
            logger.warning(f"Task fetch for {self.session_date} failed, using empty stats: {exc}")
            self.task_stats = TaskFetchOutput()
        return self.task_stats

    async def ensure_day_summary(self) -> DaySummary:
        if self.day_summary is None:
            task_stats = await self.ensure_task_stats()
            self.day_summary = await build_day_summary(
                self.session_date, self.services.records, task_stats, self.tz
            )
        return self.day_summary
