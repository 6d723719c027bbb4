from datetime import date, datetime, timezone

import pytest

from vesper.adapters.base import CalendarEvent, FocusSession, TaskList
from vesper.adapters.inmemory import InMemoryProductivityRecords, InMemoryTaskService
from vesper.envelopes import TaskFetchOutput
from vesper.summary import build_day_summary, collect_task_stats, day_window

DAY = date(2024, 5, 6)


def test_day_window_is_half_open_in_zone():
    start, end = day_window(DAY, "Europe/Berlin")
    assert start.isoformat() == "2024-05-06T00:00:00+02:00"
    assert end.isoformat() == "2024-05-07T00:00:00+02:00"


@pytest.mark.asyncio
async def test_collect_task_stats_splits_due_and_completed():
    tasks = InMemoryTaskService([TaskList(id="a"), TaskList(id="b")])
    tasks.add_task("a", "Buy milk", due="2024-05-06T00:00:00.000Z")
    tasks.add_task("a", "Later", due="2024-05-07T00:00:00.000Z")
    tasks.add_task("b", "Email boss", status="completed", completed="2024-05-06T10:00:00Z")
    tasks.add_task("b", "Email boss", status="completed", completed="2024-05-06T11:00:00Z")

    stats = await collect_task_stats(tasks, DAY)
    assert stats.due_tasks == ["Buy milk"]
    assert stats.completed_tasks == ["Email boss"]
    assert (stats.pending_count, stats.completed_count) == (1, 1)


@pytest.mark.asyncio
async def test_summary_uses_task_output_and_local_records():
    at = lambda h: datetime(2024, 5, 6, h, tzinfo=timezone.utc)
    records = InMemoryProductivityRecords(
        sessions=[FocusSession(name="Thesis", start=at(9), effective_ms=45 * 60000)],
        calendar=[
            CalendarEvent(title="Deep work", start=at(9), end=at(10)),
            CalendarEvent(title="Tomorrow", start=datetime(2024, 5, 7, 9, tzinfo=timezone.utc), end=datetime(2024, 5, 7, 10, tzinfo=timezone.utc)),
        ],
    )
    output = TaskFetchOutput(due_tasks=["Buy milk"], completed_tasks=["Email boss"])

    summary = await build_day_summary(DAY, records, output, "UTC")
    assert len(summary.tasks_due) == 1
    assert len(summary.tasks_completed) == 1
    assert len(summary.calendar_events) == 1
    assert summary.total_planned_minutes == 60
    assert summary.total_effective_minutes == 45
    assert summary.efficiency == 75
