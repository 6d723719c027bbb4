"""Shared run protocol for every step executor."""

from __future__ import annotations

import abc
import logging
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, Optional, Type

from ..constants import StepId, step_name
from ..context import SessionContext
from ..envelopes import EnvelopeError, EnvelopeModel, decode_envelope, encode_envelope
from ..persistence import StepStatus

logger = logging.getLogger(__name__)


class SoftRejection(Exception):
    """The external call worked but its content failed validation."""

    def __init__(
        self,
        feedback: str,
        details: Optional[str] = None,
        result_json: Optional[str] = None,
    ) -> None:
        super().__init__(feedback)
        self.feedback = feedback
        self.details = details
        self.result_json = result_json


class StepSkipped(Exception):
    """An optional step's precondition is absent."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class StepFailed(Exception):
    """Missing configuration or upstream output with no graceful default."""


@dataclass
class StepOutcome:
    output: EnvelopeModel
    input: Dict[str, Any] = field(default_factory=dict)
    details: Optional[str] = None
    link_url: Optional[str] = None


class StepExecutor(metaclass=abc.ABCMeta):
    """Template for one protocol step.

    ``run`` restores a completed step from its stored envelope without any
    collaborator calls. Otherwise it marks the step RUNNING, calls
    ``execute`` and records one of four outcomes: COMPLETED with a new
    envelope, ERROR with feedback (:class:`SoftRejection`), SKIPPED
    (:class:`StepSkipped`) or ERROR for anything else raised.
    """

    step_id: ClassVar[StepId]
    output_model: ClassVar[Type[EnvelopeModel]]
    running_detail: ClassVar[str] = "Running..."

    @property
    def name(self) -> str:
        return step_name(self.step_id)

    @abc.abstractmethod
    async def execute(self, ctx: SessionContext) -> StepOutcome:
        """Do the step's work or raise one of the outcome exceptions."""

    def restore(self, ctx: SessionContext, output: Any) -> None:
        """Copy a completed output into the session context."""

    def announce(self, ctx: SessionContext, output: Any) -> None:
        """Emit step-specific listener callbacks for a completed output."""

    async def run(self, ctx: SessionContext) -> StepStatus:
        step_id = int(self.step_id)
        record = await ctx.repository.get_step(ctx.session_date, step_id)
        if record.status == StepStatus.COMPLETED:
            try:
                envelope = decode_envelope(record.result_json, self.output_model)
            except EnvelopeError as exc:
                logger.warning(f"Step {step_id} ({self.name}) has an unusable stored result, re-running: {exc}")
            else:
                self.restore(ctx, envelope.output)
                logger.info(f"Step {step_id} ({self.name}) restored for {ctx.session_date}")
                self._report_completed(ctx, envelope.output, record.details, record.link_url)
                return StepStatus.COMPLETED

        logger.info(f"Step {step_id} ({self.name}) started for {ctx.session_date}")
        ctx.listener.on_step_started(step_id, self.name)
        await ctx.repository.put_step(
            ctx.session_date, step_id, StepStatus.RUNNING, self.running_detail
        )

        try:
            outcome = await self.execute(ctx)
        except SoftRejection as rejection:
            logger.info(f"Step {step_id} ({self.name}) rejected: {rejection.feedback}")
            await ctx.repository.put_step(
                ctx.session_date,
                step_id,
                StepStatus.ERROR,
                rejection.details or rejection.feedback,
                result_json=rejection.result_json,
            )
            ctx.listener.on_analysis_feedback(rejection.feedback)
            return StepStatus.ERROR
        except StepSkipped as skip:
            logger.info(f"Step {step_id} ({self.name}) skipped: {skip.reason}")
            await ctx.repository.put_step(
                ctx.session_date, step_id, StepStatus.SKIPPED, skip.reason
            )
            ctx.listener.on_step_skipped(step_id, self.name, skip.reason)
            return StepStatus.SKIPPED
        except Exception as exc:
            message = str(exc) or exc.__class__.__name__
            logger.exception(f"Step {step_id} ({self.name}) failed: {message}")
            await ctx.repository.put_step(ctx.session_date, step_id, StepStatus.ERROR, message)
            ctx.listener.on_error(step_id, message)
            return StepStatus.ERROR

        await ctx.repository.put_step(
            ctx.session_date,
            step_id,
            StepStatus.COMPLETED,
            outcome.details,
            result_json=encode_envelope(outcome.input, outcome.output),
            link_url=outcome.link_url,
        )
        self.restore(ctx, outcome.output)
        logger.info(f"Step {step_id} ({self.name}) completed: {outcome.details}")
        self._report_completed(ctx, outcome.output, outcome.details, outcome.link_url)
        return StepStatus.COMPLETED

    def _report_completed(
        self,
        ctx: SessionContext,
        output: Any,
        details: Optional[str],
        link_url: Optional[str],
    ) -> None:
        # the COMPLETED record stands even when a listener raises
        try:
            self.announce(ctx, output)
            ctx.listener.on_step_completed(int(self.step_id), self.name, details, link_url)
        except Exception:
            logger.exception(f"Progress listener failed after step {int(self.step_id)} completed")
