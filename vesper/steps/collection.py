"""Phase 1: data collection (steps 1 to 5)."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import List, Optional

from ..constants import (
    DIARY_TEMPLATE_KEY,
    EXCLUDED_PACKAGE_PREFIXES,
    INPUT_SNIPPET_LENGTH,
    MINUTES_PER_DAY,
    NIGHTLY_NAMESPACE,
    NO_PREVIOUS_REPORT,
    SCREEN_TIME_LIMIT_KEY,
    SCREEN_TIME_XP_FACTOR,
    StepId,
)
from ..context import SessionContext
from ..envelopes import (
    DocumentOutput,
    QuestionsOutput,
    ScreenTimeOutput,
    SessionFetchOutput,
    TaskFetchOutput,
)
from ..summary import collect_task_stats, day_window
from .base import StepExecutor, StepFailed, StepOutcome
from .documents import (
    DIARY,
    build_diary_content,
    create_or_fill,
    diary_title,
    doc_url,
    resolve_diary_folder,
)
from .prompts import build_health_block, build_questions_prompt, parse_questions

logger = logging.getLogger(__name__)


class FetchTasksStep(StepExecutor):
    step_id = StepId.FETCH_TASKS
    output_model = TaskFetchOutput
    running_detail = "Fetching tasks..."

    async def execute(self, ctx: SessionContext) -> StepOutcome:
        try:
            output = await collect_task_stats(ctx.services.tasks, ctx.session_date)
        except Exception as exc:
            # best effort: an unreachable task service must not block the night
            logger.warning(f"Task fetch failed for {ctx.session_date}, continuing empty: {exc}")
            output = TaskFetchOutput()
        return StepOutcome(
            output=output,
            input={"date": ctx.session_date.isoformat()},
            details=f"{output.completed_count} done, {output.pending_count} pending",
        )

    def restore(self, ctx: SessionContext, output: TaskFetchOutput) -> None:
        ctx.task_stats = output


class FetchSessionsStep(StepExecutor):
    step_id = StepId.FETCH_SESSIONS
    output_model = SessionFetchOutput
    running_detail = "Fetching sessions..."

    async def execute(self, ctx: SessionContext) -> StepOutcome:
        ctx.day_summary = None
        summary = await ctx.ensure_day_summary()
        output = SessionFetchOutput(
            session_count=len(summary.completed_sessions),
            event_count=len(summary.calendar_events),
            planned_minutes=summary.total_planned_minutes,
            effective_minutes=summary.total_effective_minutes,
        )
        return StepOutcome(
            output=output,
            input={"date": ctx.session_date.isoformat()},
            details=f"{output.session_count} sessions, {output.event_count} events",
        )


def _countable(package: str, own_package: Optional[str]) -> bool:
    if package.startswith(EXCLUDED_PACKAGE_PREFIXES):
        return False
    if "launcher" in package.lower():
        return False
    return package != own_package


class ScreenTimeStep(StepExecutor):
    step_id = StepId.CALC_SCREEN_TIME
    output_model = ScreenTimeOutput
    running_detail = "Calculating screen time..."

    async def execute(self, ctx: SessionContext) -> StepOutcome:
        day = ctx.session_date
        services = ctx.services
        limit = await services.key_value.get_int(NIGHTLY_NAMESPACE, SCREEN_TIME_LIMIT_KEY, 0)
        used = await services.usage.distraction_minutes(day)

        now = ctx.now()
        start, end = day_window(day, ctx.tz)
        is_today = now.date() == day
        if is_today:
            end = now
        apps = await services.usage.app_usage(start, end)
        total_ms = sum(
            app.foreground_ms
            for app in apps
            if app.foreground_ms > 0 and _countable(app.package, ctx.config.own_package)
        )
        total = total_ms // 60000
        metrics = await services.usage.usage_metrics(day)

        try:
            steps = await services.health.steps(day)
        except Exception as exc:
            logger.warning(f"Step count unavailable: {exc}")
            steps = 0
        try:
            sleep_minutes = sum(s.minutes for s in await services.health.sleep_sessions(day))
        except Exception as exc:
            logger.warning(f"Sleep sessions unavailable: {exc}")
            sleep_minutes = 0
        try:
            sleep_info = await services.health.sleep_summary(day)
        except Exception as exc:
            logger.warning(f"Sleep summary unavailable: {exc}")
            sleep_info = "No data"

        elapsed = now.hour * 60 + now.minute if is_today else MINUTES_PER_DAY
        waking = max(elapsed - sleep_minutes, 1)
        phoneless = max(waking - total, 0)
        output = ScreenTimeOutput(
            used_minutes=used,
            total_phone_minutes=total,
            limit_minutes=limit,
            xp_delta=(limit - used) * SCREEN_TIME_XP_FACTOR if limit > 0 else 0,
            unlocks=metrics.pickups,
            streak_minutes=metrics.longest_streak_ms // 60000,
            phoneless_minutes=phoneless,
            reality_ratio=phoneless * 100 // waking,
            steps=steps,
            sleep_info=sleep_info,
            sleep_minutes=sleep_minutes,
            waking_minutes=waking,
        )
        return StepOutcome(
            output=output,
            input={"limitMinutes": limit, "date": day.isoformat()},
            details=f"{used}m Distractions • {total} Total • {output.reality_ratio}% Reality",
        )


async def previous_report(ctx: SessionContext) -> str:
    for days_back in (1, 2):
        session = await ctx.repository.get_session(ctx.session_date - timedelta(days=days_back))
        if session is not None and session.report_content:
            return session.report_content
    return NO_PREVIOUS_REPORT


class GenerateQuestionsStep(StepExecutor):
    step_id = StepId.GENERATE_QUESTIONS
    output_model = QuestionsOutput
    running_detail = "Asking AI for questions..."

    async def execute(self, ctx: SessionContext) -> StepOutcome:
        model = ctx.ai_model
        if not model:
            raise StepFailed("No AI Model configured. Reflection questions require an AI model.")

        summary = await ctx.ensure_day_summary()
        screen = await ctx.load_output(StepId.CALC_SCREEN_TIME, ScreenTimeOutput)
        try:
            yesterday = await ctx.services.gamification.daily_stats(
                ctx.session_date - timedelta(days=1)
            )
        except Exception as exc:
            logger.warning(f"Previous day stats unavailable: {exc}")
            yesterday = None
        health = build_health_block(screen, yesterday)
        report = await previous_report(ctx)
        intro = ctx.config.ai.user_introduction

        prompt = build_questions_prompt(
            summary, intro, health, report, ctx.tz, ctx.config.prompts.questions
        )
        response = await ctx.services.ai.complete(model, prompt)
        questions = parse_questions(response)
        if not questions:
            raise StepFailed("AI returned no questions")

        return StepOutcome(
            output=QuestionsOutput(questions=questions, count=len(questions), source="ai"),
            input={
                "model": model,
                "userIntro": intro[:INPUT_SNIPPET_LENGTH],
                "healthDataSnippet": health[:INPUT_SNIPPET_LENGTH],
                "previousReportSnippet": report[:INPUT_SNIPPET_LENGTH],
            },
            details=f"{len(questions)} AI Questions Generated",
        )

    def restore(self, ctx: SessionContext, output: QuestionsOutput) -> None:
        ctx.questions = list(output.questions)

    def announce(self, ctx: SessionContext, output: QuestionsOutput) -> None:
        ctx.listener.on_questions_ready(list(output.questions))


class CreateDiaryStep(StepExecutor):
    step_id = StepId.CREATE_DIARY
    output_model = DocumentOutput
    running_detail = "Creating diary..."

    async def _questions(self, ctx: SessionContext) -> List[str]:
        stored = await ctx.load_output(StepId.GENERATE_QUESTIONS, QuestionsOutput)
        if stored is not None:
            return list(stored.questions)
        return list(ctx.questions)

    async def execute(self, ctx: SessionContext) -> StepOutcome:
        questions = await self._questions(ctx)
        if not questions:
            raise StepFailed("Questions not generated. Please run Step 4 first.")
        folder_id = await resolve_diary_folder(ctx)
        if not folder_id:
            raise StepFailed("Diary folder not configured")

        template = await ctx.setting(DIARY_TEMPLATE_KEY) or ctx.config.templates.diary
        summary = await ctx.ensure_day_summary()
        content = build_diary_content(summary, questions, template, ctx.tz)
        doc_id = await create_or_fill(ctx, DIARY, folder_id, content)
        url = doc_url(doc_id)
        title = diary_title(ctx.session_date)
        return StepOutcome(
            output=DocumentOutput(doc_id=doc_id, doc_url=url),
            input={"title": title, "folderId": folder_id, "questionsCount": len(questions)},
            details=title,
            link_url=url,
        )

    def restore(self, ctx: SessionContext, output: DocumentOutput) -> None:
        ctx.diary_doc_id = output.doc_id
        ctx.diary_url = output.doc_url or doc_url(output.doc_id)

