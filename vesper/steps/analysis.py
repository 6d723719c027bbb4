"""Phase 2: reflection analysis (steps 6 and 7)."""

from __future__ import annotations

import logging

from ..constants import MIN_DIARY_LENGTH, StepId
from ..context import SessionContext
from ..envelopes import ReflectionOutput, XpOutput
from ..summary import day_window
from .base import SoftRejection, StepExecutor, StepFailed, StepOutcome
from .documents import DIARY, resolve_document
from .prompts import build_analyzer_prompt, parse_analysis

logger = logging.getLogger(__name__)


class AnalyzeReflectionStep(StepExecutor):
    """Grade the diary as it reads now, not as Step 5 wrote it."""

    step_id = StepId.ANALYZE_REFLECTION
    output_model = ReflectionOutput
    running_detail = "Analyzing reflection..."

    async def execute(self, ctx: SessionContext) -> StepOutcome:
        doc_id = await resolve_document(ctx, DIARY)
        if not doc_id:
            raise StepFailed("Diary document missing. Run Step 5 first.")
        content = (await ctx.services.documents.read(doc_id) or "").strip()
        if len(content) < MIN_DIARY_LENGTH:
            raise SoftRejection("Diary seems empty. Please write your reflection first.")

        model = ctx.ai_model
        if not model:
            raise StepFailed("No AI Model configured. Reflection analysis requires an AI model.")
        prompt = build_analyzer_prompt(
            content, ctx.config.ai.user_introduction, ctx.config.prompts.analyzer
        )
        result = parse_analysis(await ctx.services.ai.complete(model, prompt))
        if not result.satisfied:
            raise SoftRejection(result.feedback, details=f"Rejected: {result.feedback}")

        await ctx.services.gamification.set_reflection_xp(ctx.session_date, result.xp)
        await ctx.repository.update_session(ctx.session_date, reflection_xp=result.xp)
        return StepOutcome(
            output=ReflectionOutput(accepted=True, xp=result.xp, feedback=result.feedback),
            input={"docId": doc_id, "contentLength": len(content), "model": model},
            details=f'Accepted! XP: {result.xp}. "{result.feedback}"',
        )


class FinalizeXpStep(StepExecutor):
    step_id = StepId.FINALIZE_XP
    output_model = XpOutput
    running_detail = "Calculating XP..."

    async def execute(self, ctx: SessionContext) -> StepOutcome:
        start, end = day_window(ctx.session_date, ctx.tz)
        # the remote calendar is authoritative for attended sessions
        events = await ctx.services.calendar.list_events(start, end)
        breakdown = await ctx.services.gamification.recalculate_daily_stats(
            ctx.session_date, events
        )
        output = XpOutput(**breakdown.model_dump())
        return StepOutcome(
            output=output,
            input={"date": ctx.session_date.isoformat(), "eventCount": len(events)},
            details=f"XP: +{output.total_xp} | Level {output.level} | {output.streak} Day Streak",
        )
