"""Phase 3, second half: report, PDF, alarm, task cleanup and limits (steps 11 to 15)."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, time
from typing import Any, Dict, List, Optional, Tuple
from zoneinfo import ZoneInfo

from ..adapters.base import TaskListConfig, XpBreakdown
from ..constants import (
    ALARM_SKIPPED,
    DEFAULT_DISTRACTION_LIMIT,
    DEFAULT_TASK_START,
    FILE_URL_FORMAT,
    NIGHTLY_NAMESPACE,
    NO_MODEL_REPORT,
    REPORT_FOLDER_KEY,
    SCREEN_TIME_LIMIT_KEY,
    SNIPPET_LENGTH,
    WAKEUP_ALARM_LABEL,
    StepId,
)
from ..context import SessionContext
from ..envelopes import (
    AlarmOutput,
    DistractionOutput,
    NormalizeOutput,
    PdfOutput,
    PlanOutput,
    ReportOutput,
    XpOutput,
)
from .base import StepExecutor, StepFailed, StepOutcome, StepSkipped
from .documents import DIARY, PLAN, DocumentKind, resolve_document
from .planning import parse_clock, plan_date, resolve_list, task_due
from .prompts import (
    build_normalize_prompt,
    build_report_prompt,
    extract_json_object,
    strip_fences,
)

logger = logging.getLogger(__name__)


async def _read_document(
    ctx: SessionContext, kind: DocumentKind
) -> Tuple[Optional[str], str]:
    doc_id = await resolve_document(ctx, kind)
    if not doc_id:
        return None, ""
    try:
        return doc_id, (await ctx.services.documents.read(doc_id) or "").strip()
    except Exception as exc:
        logger.warning(f"Could not read {kind.label} document {doc_id}: {exc}")
        return doc_id, ""


class GenerateReportStep(StepExecutor):
    step_id = StepId.GENERATE_REPORT
    output_model = ReportOutput
    running_detail = "Writing report..."

    async def execute(self, ctx: SessionContext) -> StepOutcome:
        diary_id, diary = await _read_document(ctx, DIARY)
        plan_id, plan = await _read_document(ctx, PLAN)
        if not diary and not plan:
            raise StepFailed("Both diary and plan documents are empty. Nothing to report.")

        summary = await ctx.ensure_day_summary()
        xp_output = await ctx.load_output(StepId.FINALIZE_XP, XpOutput)
        xp = XpBreakdown(**xp_output.model_dump()) if xp_output else None

        model = ctx.ai_model
        if not model:
            report = NO_MODEL_REPORT
        else:
            prompt = build_report_prompt(
                summary,
                ctx.config.ai.user_introduction,
                xp,
                diary,
                plan,
                ctx.config.prompts.report,
            )
            try:
                report = (await ctx.services.ai.complete(model, prompt)).strip()
            except Exception as exc:
                logger.warning(f"Report generation failed: {exc}")
                report = f"Report generation error: {exc}"

        await ctx.repository.update_session(ctx.session_date, report_content=report)
        return StepOutcome(
            output=ReportOutput(
                report_length=len(report),
                report_snippet=report[:SNIPPET_LENGTH],
                date=ctx.session_date.isoformat(),
                diary_doc_id=diary_id,
                plan_doc_id=plan_id,
            ),
            input={"model": model, "diaryLength": len(diary), "planLength": len(plan)},
            details=f"Report ready ({len(report)} chars)",
        )


class GeneratePdfStep(StepExecutor):
    step_id = StepId.GENERATE_PDF
    output_model = PdfOutput
    running_detail = "Rendering PDF..."

    async def execute(self, ctx: SessionContext) -> StepOutcome:
        session = await ctx.repository.get_session(ctx.session_date)
        report = session.report_content if session else None
        if not report:
            raise StepSkipped("No report content. Run Step 11 first.")
        folder_id = await ctx.setting(REPORT_FOLDER_KEY)
        if not folder_id:
            raise StepFailed("Report folder not configured")

        title = f"Reality Report - {ctx.session_date.isoformat()}"
        pdf = await asyncio.to_thread(ctx.services.pdf.render, report, title)
        name = f"Reality_Report_{ctx.session_date.isoformat()}.pdf"
        file_id = await ctx.services.documents.upload_file(name, pdf, folder_id)
        if not file_id:
            raise StepFailed("PDF upload failed")
        await ctx.repository.update_session(ctx.session_date, report_pdf_id=file_id)
        url = FILE_URL_FORMAT.format(file_id=file_id)
        return StepOutcome(
            output=PdfOutput(pdf_id=file_id, pdf_url=url),
            input={"name": name, "folderId": folder_id, "reportLength": len(report)},
            details="PDF Saved",
            link_url=url,
        )


class SetAlarmStep(StepExecutor):
    """Arm tomorrow's wake-up alarm; restoring a completed step never re-arms it."""

    step_id = StepId.SET_ALARM
    output_model = AlarmOutput
    running_detail = "Setting alarm..."

    async def execute(self, ctx: SessionContext) -> StepOutcome:
        plan = await ctx.load_output(StepId.PARSE_PLAN, PlanOutput)
        wakeup = plan.wakeup_time.strip() if plan else ""
        if not wakeup:
            return StepOutcome(
                output=AlarmOutput(skipped=True),
                input={"wakeupTime": wakeup},
                details=ALARM_SKIPPED,
            )
        clock = parse_clock(wakeup)
        if clock is None:
            raise StepFailed(f"Invalid wake-up time: {wakeup}")
        hour, minute = clock
        at = datetime.combine(
            plan_date(ctx.session_date), time(hour, minute), tzinfo=ZoneInfo(ctx.tz)
        )
        await ctx.services.alarms.schedule_wakeup(at, WAKEUP_ALARM_LABEL)
        return StepOutcome(
            output=AlarmOutput(
                skipped=False, hour=hour, minute=minute, scheduled_for=at.isoformat()
            ),
            input={"wakeupTime": wakeup},
            details=f"Scheduled for {hour:02d}:{minute:02d}",
        )


class NormalizeTasksStep(StepExecutor):
    step_id = StepId.NORMALIZE_TASKS
    output_model = NormalizeOutput
    running_detail = "Cleaning up tasks..."

    async def _pending_tasks(self, ctx: SessionContext) -> List[Dict[str, Any]]:
        pending: List[Dict[str, Any]] = []
        for task_list in await ctx.services.tasks.list_lists():
            for task in await ctx.services.tasks.list_tasks(task_list.id):
                if task.status == "completed":
                    continue
                pending.append(
                    {
                        "id": task.id,
                        "list_id": task_list.id,
                        "title": task.title,
                        "due": task.due,
                        "notes": task.notes,
                    }
                )
        return pending

    async def execute(self, ctx: SessionContext) -> StepOutcome:
        pending = await self._pending_tasks(ctx)
        if not pending:
            return StepOutcome(output=NormalizeOutput(), details="No tasks to clean")
        model = ctx.ai_model
        if not model:
            raise StepFailed("No AI Model configured. Task cleanup requires an AI model.")

        configs = await ctx.services.records.task_list_configs()
        target = plan_date(ctx.session_date).isoformat()
        prompt = build_normalize_prompt(pending, target, configs)
        response = await ctx.services.ai.complete(model, prompt)
        try:
            actions = extract_json_object(strip_fences(response))
        except ValueError as exc:
            raise StepFailed(f"AI cleanup response was not valid JSON: {exc}") from exc

        list_of = {task["id"]: task["list_id"] for task in pending}
        deleted = 0
        for task_id in actions.get("delete_ids") or []:
            list_id = list_of.get(task_id)
            if list_id is None:
                logger.warning(f"Cleanup asked to delete unknown task {task_id}")
                continue
            await ctx.services.tasks.delete_task(list_id, task_id)
            deleted += 1

        readded = 0
        for entry in actions.get("readd_tasks") or []:
            if await self._readd(ctx, entry, configs):
                readded += 1

        return StepOutcome(
            output=NormalizeOutput(
                pending_count=len(pending), deleted_count=deleted, readded_count=readded
            ),
            input={"pendingCount": len(pending), "model": model, "targetDate": target},
            details=f"Deleted {deleted} duplicates/moved tasks, Re-added {readded} corrected tasks",
        )

    async def _readd(
        self, ctx: SessionContext, entry: Any, configs: List[TaskListConfig]
    ) -> bool:
        if not isinstance(entry, dict):
            return False
        title = str(entry.get("title") or "").strip()
        requested: Optional[str] = entry.get("taskListId")
        if not title or not requested:
            return False
        list_id, warning = resolve_list(requested, configs)
        if warning:
            logger.info(warning)
        start = str(entry.get("startTime") or "").strip() or DEFAULT_TASK_START
        task_id = await ctx.services.tasks.create_task(
            f"{start}|{title}", entry.get("notes"), task_due(ctx.session_date), list_id
        )
        return bool(task_id)


class UpdateDistractionStep(StepExecutor):
    step_id = StepId.UPDATE_DISTRACTION
    output_model = DistractionOutput
    running_detail = "Updating distraction limit..."

    async def execute(self, ctx: SessionContext) -> StepOutcome:
        plan = await ctx.load_output(StepId.PARSE_PLAN, PlanOutput)
        if plan is None:
            raise StepSkipped("AI Plan not completed")
        store = ctx.services.key_value
        old = await store.get_int(NIGHTLY_NAMESPACE, SCREEN_TIME_LIMIT_KEY, DEFAULT_DISTRACTION_LIMIT)
        new = plan.distraction_time_minutes
        await store.put(NIGHTLY_NAMESPACE, SCREEN_TIME_LIMIT_KEY, new)
        return StepOutcome(
            output=DistractionOutput(old_limit=old, new_limit=new),
            input={"distractionTimeMinutes": new},
            details=f"{old}min → {new}min",
        )
