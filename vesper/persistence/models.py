"""Data models for persisted nightly protocol state."""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class StepStatus(str, Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    SKIPPED = "SKIPPED"
    ERROR = "ERROR"


TERMINAL_STATUSES = (StepStatus.COMPLETED, StepStatus.SKIPPED, StepStatus.ERROR)


class StepRecord(BaseModel):
    """State of one step for one session date."""

    session_date: date
    step_id: int
    status: StepStatus = StepStatus.PENDING
    details: Optional[str] = None
    result_json: Optional[str] = None
    link_url: Optional[str] = None
    updated_at: Optional[datetime] = None


class SessionRecord(BaseModel):
    """Per-date session data shared across steps."""

    session_date: date
    started_at: Optional[datetime] = None
    diary_doc_id: Optional[str] = None
    plan_doc_id: Optional[str] = None
    report_content: Optional[str] = None
    report_pdf_id: Optional[str] = None
    reflection_xp: Optional[int] = None


SESSION_FIELDS = (
    "diary_doc_id",
    "plan_doc_id",
    "report_content",
    "report_pdf_id",
    "reflection_xp",
)


def is_regression(current: Optional[StepStatus], new: StepStatus) -> bool:
    """Return True when ``new`` would move a completed step back to pending."""

    return current == StepStatus.COMPLETED and new == StepStatus.PENDING
