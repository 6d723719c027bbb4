"""Diary and plan document resolution and content."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Awaitable, Callable, List, Optional, Tuple
from zoneinfo import ZoneInfo

from ..constants import (
    DIARY_FOLDER_KEY,
    DIARY_PLACEHOLDERS,
    DOC_URL_FORMAT,
    MIN_DOCUMENT_LENGTH,
    PLAN_FOLDER_KEY,
    PLAN_PLACEHOLDERS,
    ROOT_FOLDER_KEY,
    StepId,
    diary_doc_key,
    plan_doc_key,
)
from ..context import SessionContext
from ..envelopes import DocumentOutput
from ..summary import DaySummary
from .prompts import fill, long_date

logger = logging.getLogger(__name__)


def doc_url(doc_id: str) -> str:
    return DOC_URL_FORMAT.format(doc_id=doc_id)


def diary_title(day: date) -> str:
    return f"Diary of {day:%d-%m-%Y}"


def plan_title(day: date) -> str:
    """Title of the plan written on ``day`` for the following day."""
    next_day = day + timedelta(days=1)
    return f"Plan - {next_day:%b} {next_day:%d}, {next_day.year}"


async def resolve_diary_folder(ctx: SessionContext) -> Optional[str]:
    folder_id = await ctx.setting(DIARY_FOLDER_KEY)
    if folder_id:
        return folder_id
    root = await ctx.setting(ROOT_FOLDER_KEY)
    if root:
        folders = await ctx.services.documents.list_subfolders(root)
        if folders:
            logger.info(f"Diary folder resolved from root folder: {folders[0].name}")
            return folders[0].id
    return None


async def resolve_plan_folder(ctx: SessionContext) -> Optional[str]:
    folder_id = await ctx.setting(PLAN_FOLDER_KEY)
    if folder_id:
        return folder_id
    root = await ctx.setting(ROOT_FOLDER_KEY)
    if root:
        folders = await ctx.services.documents.list_subfolders(root)
        if len(folders) >= 2:
            logger.info(f"Plan folder resolved from root folder: {folders[1].name}")
            return folders[1].id
    return await ctx.setting(DIARY_FOLDER_KEY)


@dataclass(frozen=True)
class DocumentKind:
    """How one kind of per-date document is found and remembered."""

    label: str
    step_id: StepId
    session_field: str
    key: Callable[[date], str]
    title: Callable[[date], str]
    folder: Callable[[SessionContext], Awaitable[Optional[str]]]
    placeholders: Tuple[str, ...]
    separator: str


DIARY = DocumentKind(
    label="diary",
    step_id=StepId.CREATE_DIARY,
    session_field="diary_doc_id",
    key=diary_doc_key,
    title=diary_title,
    folder=resolve_diary_folder,
    placeholders=DIARY_PLACEHOLDERS,
    separator="\n\n",
)

PLAN = DocumentKind(
    label="plan",
    step_id=StepId.CREATE_PLAN_DOC,
    session_field="plan_doc_id",
    key=plan_doc_key,
    title=plan_title,
    folder=resolve_plan_folder,
    placeholders=PLAN_PLACEHOLDERS,
    separator="\n",
)


async def remember_document(ctx: SessionContext, kind: DocumentKind, doc_id: str) -> None:
    await ctx.put_setting(kind.key(ctx.session_date), doc_id)
    await ctx.repository.update_session(ctx.session_date, **{kind.session_field: doc_id})


async def lookup_document(
    ctx: SessionContext, kind: DocumentKind, folder_id: Optional[str]
) -> Optional[str]:
    """Session record, then key/value cache, then a search in ``folder_id``."""

    session = await ctx.repository.get_session(ctx.session_date)
    doc_id = getattr(session, kind.session_field) if session else None
    if doc_id:
        return doc_id
    doc_id = await ctx.setting(kind.key(ctx.session_date))
    if doc_id:
        return doc_id
    if folder_id:
        doc_id = await ctx.services.documents.search(kind.title(ctx.session_date), folder_id)
        if doc_id:
            logger.info(f"Found existing {kind.label} document {doc_id}")
            await remember_document(ctx, kind, doc_id)
            return doc_id
    return None


async def resolve_document(ctx: SessionContext, kind: DocumentKind) -> Optional[str]:
    """Find the document id for a step that reads an earlier step's document."""

    stored = await ctx.load_output(kind.step_id, DocumentOutput)
    if stored is not None:
        return stored.doc_id
    folder_id = await kind.folder(ctx)
    return await lookup_document(ctx, kind, folder_id)


async def create_or_fill(
    ctx: SessionContext,
    kind: DocumentKind,
    folder_id: Optional[str],
    content: str,
) -> str:
    """Return the document id after making sure ``content`` is in it.

    An existing document only receives ``content`` when it is nearly empty or
    still holds raw template placeholders.
    """

    documents = ctx.services.documents
    doc_id = await lookup_document(ctx, kind, folder_id)
    if doc_id:
        current = await documents.read(doc_id) or ""
        if len(current) < MIN_DOCUMENT_LENGTH or any(p in current for p in kind.placeholders):
            await documents.append(doc_id, kind.separator + content)
            logger.info(f"Injected content into existing {kind.label} document {doc_id}")
        return doc_id

    doc_id = await documents.create(kind.title(ctx.session_date))
    if not doc_id:
        raise RuntimeError(f"Failed to create {kind.label} document")
    if folder_id:
        await documents.move(doc_id, folder_id)
    await documents.append(doc_id, content)
    await remember_document(ctx, kind, doc_id)
    logger.info(f"Created {kind.label} document {doc_id}")
    return doc_id


# ----------------------------------------------------------------------
# Content


def build_diary_content(
    summary: DaySummary, questions: List[str], template: str, tz: str
) -> str:
    zone = ZoneInfo(tz)
    stats: List[str] = [
        "## 📊 Today's Metrics",
        "---",
        f"- **Scheduled Time**: {summary.total_planned_minutes} minutes",
        f"- **Effective Study**: {summary.total_effective_minutes} minutes",
        f"- **Efficiency**: {summary.efficiency}%",
        "",
        "### ⏱️ Productive Sessions",
    ]
    if summary.completed_sessions:
        for session in summary.completed_sessions:
            stats.append(
                f"- **{session.name}**: {session.effective_minutes}min "
                f"(Target: {session.target_ms // 60000}min)"
            )
    else:
        stats.append("_No focused sessions completed today._")
    stats += ["", "### 📋 Task Summary"]
    if summary.tasks_completed or summary.tasks_due:
        stats += [f"- ✓ {task}" for task in summary.tasks_completed]
        stats += [f"- ○ {task} (pending)" for task in summary.tasks_due]
    else:
        stats.append("_No tasks recorded for today._")
    stats += ["", "### 📅 Calendar Schedule"]
    if summary.calendar_events:
        for event in summary.calendar_events:
            stats.append(
                f"- **{event.start.astimezone(zone):%H:%M} - {event.end.astimezone(zone):%H:%M}**: "
                f"{event.title}"
            )
    else:
        stats.append("_No calendar events recorded._")
    stats_block = "\n".join(stats) + "\n"

    block: List[str] = [
        "## 💡 Personalized Reflection Questions",
        "---",
        "_Answer the following questions to gain clarity on your progress:_",
        "",
    ]
    for number, question in enumerate(questions, 1):
        block += [f"### Q{number}: {question}", "", "> ", "", ""]
    questions_block = "\n".join(block) + "\n"

    return fill(
        template,
        date=long_date(summary.date),
        questions=questions_block,
        stats=stats_block,
        data=stats_block,
    )


def build_plan_content(day: date, template: str) -> str:
    next_day = day + timedelta(days=1)
    return fill(
        template,
        date=f"{next_day:%A}, {next_day:%b} {next_day.day}",
        data="[Plan Details]",
    )
