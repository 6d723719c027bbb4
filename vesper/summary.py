"""Day summary aggregation and day-window helpers."""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta
from typing import List, Tuple
from zoneinfo import ZoneInfo

from pydantic import BaseModel, Field

from .adapters.base import CalendarEvent, FocusSession, ProductivityRecords, TaskService
from .envelopes import TaskFetchOutput

logger = logging.getLogger(__name__)


class DaySummary(BaseModel):
    """Tasks, calendar events and focus sessions for one date. Never persisted."""

    date: date
    calendar_events: List[CalendarEvent] = Field(default_factory=list)
    completed_sessions: List[FocusSession] = Field(default_factory=list)
    tasks_due: List[str] = Field(default_factory=list)
    tasks_completed: List[str] = Field(default_factory=list)
    planned_events: List[CalendarEvent] = Field(default_factory=list)
    total_planned_minutes: int = 0
    total_effective_minutes: int = 0

    @property
    def efficiency(self) -> int:
        if self.total_planned_minutes > 0:
            return self.total_effective_minutes * 100 // self.total_planned_minutes
        return 0


def day_window(day: date, tz: str) -> Tuple[datetime, datetime]:
    """Return ``[start, end)`` of ``day`` in the given zone."""
    zone = ZoneInfo(tz)
    start = datetime.combine(day, time.min, tzinfo=zone)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=zone)
    return start, end


async def collect_task_stats(tasks: TaskService, day: date) -> TaskFetchOutput:
    """Split tasks across every list into completed-on and due-on ``day``."""

    prefix = day.isoformat()
    due: List[str] = []
    completed: List[str] = []
    for task_list in await tasks.list_lists():
        for task in await tasks.list_tasks(task_list.id):
            title = task.title or "Untitled"
            if task.completed and task.completed.startswith(prefix):
                if title not in completed:
                    completed.append(title)
            elif task.due and task.due.startswith(prefix):
                due.append(title)
    return TaskFetchOutput(
        due_tasks=due,
        completed_tasks=completed,
        pending_count=len(due),
        completed_count=len(completed),
    )


async def build_day_summary(
    day: date,
    records: ProductivityRecords,
    task_stats: TaskFetchOutput,
    tz: str,
) -> DaySummary:
    """Merge local productivity records with Step 1's task output."""

    start, end = day_window(day, tz)
    calendar_events = await records.calendar_events(start, end)
    sessions = await records.focus_sessions(start, end)
    planned = await records.planned_events(start, end)
    summary = DaySummary(
        date=day,
        calendar_events=calendar_events,
        completed_sessions=sessions,
        tasks_due=list(task_stats.due_tasks),
        tasks_completed=list(task_stats.completed_tasks),
        planned_events=planned,
        total_planned_minutes=sum(e.duration_minutes for e in calendar_events),
        total_effective_minutes=sum(s.effective_minutes for s in sessions),
    )
    logger.debug(
        f"Day summary for {day}: {len(sessions)} sessions, {len(calendar_events)} events, "
        f"{len(summary.tasks_completed)} tasks done"
    )
    return summary
