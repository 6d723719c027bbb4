"""Phase 3, first half: plan document, AI extraction and materialization (steps 8 to 10)."""

from __future__ import annotations

import json
import logging
import re
from datetime import date, datetime, time, timedelta
from typing import List, Optional, Tuple
from zoneinfo import ZoneInfo

from pydantic import ValidationError

from ..adapters.base import TaskListConfig
from ..constants import (
    BEDTIME_NAMESPACE,
    DEFAULT_TASK_LIST,
    MIN_PLAN_LENGTH,
    PLAN_TEMPLATE_KEY,
    PLANNER_SLEEP_KEY,
    PLANNER_WAKEUP_KEY,
    TASK_DUE_TIME,
    StepId,
)
from ..context import SessionContext
from ..envelopes import (
    DocumentOutput,
    MaterializeItem,
    MaterializeOutput,
    PlanEvent,
    PlanOutput,
    PlanTask,
)
from .base import SoftRejection, StepExecutor, StepFailed, StepOutcome, StepSkipped
from .documents import (
    PLAN,
    build_plan_content,
    create_or_fill,
    doc_url,
    plan_title,
    resolve_document,
    resolve_plan_folder,
)
from .prompts import build_plan_prompt, extract_json_object, strip_fences

logger = logging.getLogger(__name__)

_CLOCK = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*$")


def parse_clock(value: Optional[str]) -> Optional[Tuple[int, int]]:
    """Parse ``HH:mm`` into ``(hour, minute)``; None when blank or invalid."""
    if not value:
        return None
    match = _CLOCK.match(value)
    if not match:
        return None
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        return None
    return hour, minute


def plan_date(day: date) -> date:
    return day + timedelta(days=1)


def task_due(day: date) -> str:
    """Due timestamp for tasks planned on ``day`` (they belong to the next day)."""
    return plan_date(day).isoformat() + TASK_DUE_TIME


def resolve_list(
    requested: Optional[str], configs: List[TaskListConfig]
) -> Tuple[str, Optional[str]]:
    """Map a requested list id or name onto a configured list.

    Returns ``(list_id, warning)``.
    """

    if not requested or requested == DEFAULT_TASK_LIST:
        return DEFAULT_TASK_LIST, None
    wanted = requested.strip().lower()
    for config in configs:
        if config.list_id.lower() == wanted or config.display_name.lower() == wanted:
            return config.list_id, None
    return DEFAULT_TASK_LIST, f"List '{requested}' not found. Used Default."


class CreatePlanDocStep(StepExecutor):
    step_id = StepId.CREATE_PLAN_DOC
    output_model = DocumentOutput
    running_detail = "Creating plan document..."

    async def execute(self, ctx: SessionContext) -> StepOutcome:
        folder_id = await resolve_plan_folder(ctx)
        template = await ctx.setting(PLAN_TEMPLATE_KEY) or ctx.config.templates.plan
        content = build_plan_content(ctx.session_date, template)
        doc_id = await create_or_fill(ctx, PLAN, folder_id, content)
        url = doc_url(doc_id)
        return StepOutcome(
            output=DocumentOutput(doc_id=doc_id, doc_url=url),
            input={"title": plan_title(ctx.session_date), "folderId": folder_id},
            details="Ready to Edit",
            link_url=url,
        )

    def restore(self, ctx: SessionContext, output: DocumentOutput) -> None:
        ctx.plan_doc_id = output.doc_id


class ParsePlanStep(StepExecutor):
    step_id = StepId.PARSE_PLAN
    output_model = PlanOutput
    running_detail = "AI reading plan..."

    async def execute(self, ctx: SessionContext) -> StepOutcome:
        model = ctx.ai_model
        if not model:
            raise StepSkipped("No AI Model Configured")
        doc_id = await resolve_document(ctx, PLAN)
        if not doc_id:
            raise StepFailed("Plan Document missing. Run Step 8 first.")
        content = (await ctx.services.documents.read(doc_id) or "").strip()
        if len(content) < MIN_PLAN_LENGTH:
            raise SoftRejection(
                "Plan too short. Please write your tasks and schedule in the plan document."
            )

        configs = await ctx.services.records.task_list_configs()
        prompt = build_plan_prompt(content, configs, ctx.config.prompts.plan)
        response = await ctx.services.ai.complete(model, prompt)
        try:
            plan = PlanOutput.model_validate(extract_json_object(strip_fences(response)))
        except (ValueError, ValidationError) as exc:
            logger.warning(f"Plan response could not be parsed: {exc}")
            raise SoftRejection(
                "AI response was not valid JSON. Please try again or simplify your plan.",
                result_json=json.dumps({"rawResponse": response, "error": str(exc)}),
            ) from exc
        if not plan.tasks and not plan.events:
            raise SoftRejection(
                "Could not extract tasks or events from your plan. "
                "Please write clearer items with times."
            )

        return StepOutcome(
            output=plan,
            input={"planContent": content, "model": model, "planDocId": doc_id},
            details=f"{len(plan.tasks)} tasks, {len(plan.events)} events extracted",
        )

    def restore(self, ctx: SessionContext, output: PlanOutput) -> None:
        ctx.plan = output


class MaterializePlanStep(StepExecutor):
    """Create the planned tasks and events one by one.

    Individual failures are recorded per item; the step itself completes.
    """

    step_id = StepId.MATERIALIZE_PLAN
    output_model = MaterializeOutput
    running_detail = "Creating tasks and events..."

    async def execute(self, ctx: SessionContext) -> StepOutcome:
        plan = await ctx.load_output(StepId.PARSE_PLAN, PlanOutput)
        if plan is None:
            raise StepFailed("Step 9 not completed. Run AI Plan first.")

        await self._save_sleep_window(ctx, plan)
        configs = await ctx.services.records.task_list_configs()
        output = MaterializeOutput()
        for task in plan.tasks:
            item = await self._create_task(ctx, task, configs)
            output.items.append(item)
            if item.status == "SUCCESS":
                output.tasks_created += 1
            else:
                output.failed_tasks += 1
        for event in plan.events:
            item = await self._create_event(ctx, event)
            output.items.append(item)
            if item.status == "SUCCESS":
                output.events_created += 1
            else:
                output.failed_events += 1

        details = f"{output.tasks_created} tasks, {output.events_created} events created"
        failed = output.failed_tasks + output.failed_events
        if failed:
            details += f" ({failed} failed)"
        return StepOutcome(
            output=output,
            input={
                "taskCount": len(plan.tasks),
                "eventCount": len(plan.events),
                "planDate": plan_date(ctx.session_date).isoformat(),
            },
            details=details,
        )

    async def _save_sleep_window(self, ctx: SessionContext, plan: PlanOutput) -> None:
        await ctx.put_setting(PLANNER_WAKEUP_KEY, plan.wakeup_time)
        await ctx.put_setting(PLANNER_SLEEP_KEY, plan.sleep_start_time)
        wake = parse_clock(plan.wakeup_time)
        sleep = parse_clock(plan.sleep_start_time)
        if wake and sleep:
            store = ctx.services.key_value
            await store.put(BEDTIME_NAMESPACE, "start_minutes", sleep[0] * 60 + sleep[1])
            await store.put(BEDTIME_NAMESPACE, "end_minutes", wake[0] * 60 + wake[1])
            await store.put(BEDTIME_NAMESPACE, "enabled", True)
            logger.info(f"Bedtime synced: {plan.sleep_start_time} - {plan.wakeup_time}")

    async def _create_task(
        self, ctx: SessionContext, task: PlanTask, configs: List[TaskListConfig]
    ) -> MaterializeItem:
        item = MaterializeItem(
            type="task",
            status="PENDING",
            input_title=task.title,
            input_start_time=task.start_time,
            input_list=task.task_list_id,
        )
        title = task.title.strip()
        if not title:
            item.status = "FAILED (Empty Title)"
            return item
        list_id, warning = resolve_list(task.task_list_id, configs)
        if task.start_time and task.start_time.strip():
            title = f"{task.start_time.strip()}|{title}"
        item.final_title = title
        item.final_list = list_id
        item.warning = warning
        try:
            task_id = await ctx.services.tasks.create_task(
                title, task.notes, task_due(ctx.session_date), list_id
            )
        except Exception as exc:
            logger.warning(f"Task '{title}' failed: {exc}")
            item.status = f"ERROR: {exc}"
            return item
        item.status = "SUCCESS" if task_id else "FAILED (API Error)"
        return item

    async def _create_event(self, ctx: SessionContext, event: PlanEvent) -> MaterializeItem:
        item = MaterializeItem(
            type="event",
            status="PENDING",
            input_title=event.title,
            input_time=f"{event.start_time}-{event.end_time}",
        )
        if not event.title.strip() or not event.start_time or not event.end_time:
            item.status = "FAILED (Missing Title or Time)"
            return item
        start = parse_clock(event.start_time)
        end = parse_clock(event.end_time)
        if start is None or end is None:
            item.status = "FAILED (Invalid Time Format)"
            return item
        zone = ZoneInfo(ctx.tz)
        day = plan_date(ctx.session_date)
        start_at = datetime.combine(day, time(*start), tzinfo=zone)
        end_at = datetime.combine(day, time(*end), tzinfo=zone)
        item.final_title = event.title.strip()
        try:
            event_id = await ctx.services.calendar.create_event(
                item.final_title, start_at, end_at, event.description
            )
        except Exception as exc:
            logger.warning(f"Event '{event.title}' failed: {exc}")
            item.status = f"ERROR: {exc}"
            return item
        item.status = "SUCCESS" if event_id else "FAILED (Cloud API Error)"
        return item
