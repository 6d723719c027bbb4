"""In-memory collaborators for local runs and unit tests."""

from __future__ import annotations

import itertools
from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from .base import (
    AlarmScheduler,
    AppUsage,
    CalendarEvent,
    CalendarService,
    DocumentStore,
    FocusSession,
    Folder,
    Gamification,
    HealthSource,
    KeyValueStore,
    ProductivityRecords,
    SleepSession,
    Task,
    TaskList,
    TaskListConfig,
    TaskService,
    UsageMetrics,
    UsageStatsSource,
    XpBreakdown,
)

# (level, required total xp, required streak)
LEVELS = [
    (1, 0, 0),
    (2, 500, 1),
    (3, 1000, 2),
    (4, 2000, 3),
    (5, 3500, 5),
    (6, 5000, 7),
    (7, 7000, 10),
    (8, 10000, 14),
]


def level_for(total_xp: int, streak: int) -> int:
    level = 1
    for number, required_xp, required_streak in LEVELS:
        if total_xp >= required_xp and streak >= required_streak:
            level = number
    return level


class InMemoryDocumentStore(DocumentStore):
    """Documents and folders kept in dictionaries."""

    def __init__(self) -> None:
        self._ids = itertools.count(1)
        self.documents: Dict[str, Dict[str, Any]] = {}
        self.subfolders: Dict[str, List[Folder]] = {}
        self.uploads: Dict[str, Dict[str, Any]] = {}

    def add_document(self, title: str, content: str = "", folder_id: Optional[str] = None) -> str:
        doc_id = f"doc-{next(self._ids)}"
        self.documents[doc_id] = {"title": title, "content": content, "folder_id": folder_id}
        return doc_id

    async def create(self, title: str) -> Optional[str]:
        return self.add_document(title)

    async def read(self, doc_id: str) -> Optional[str]:
        doc = self.documents.get(doc_id)
        return doc["content"] if doc else None

    async def append(self, doc_id: str, text: str) -> None:
        if doc_id not in self.documents:
            raise KeyError(f"Unknown document: {doc_id}")
        self.documents[doc_id]["content"] += text

    async def search(self, title: str, folder_id: str) -> Optional[str]:
        for doc_id, doc in self.documents.items():
            if doc["title"] == title and doc["folder_id"] == folder_id:
                return doc_id
        return None

    async def move(self, doc_id: str, folder_id: str) -> None:
        if doc_id not in self.documents:
            raise KeyError(f"Unknown document: {doc_id}")
        self.documents[doc_id]["folder_id"] = folder_id

    async def list_subfolders(self, folder_id: str) -> List[Folder]:
        return sorted(self.subfolders.get(folder_id, []), key=lambda f: f.name)

    async def upload_file(
        self, name: str, content: bytes, folder_id: str, mime_type: str = "application/pdf"
    ) -> Optional[str]:
        file_id = f"file-{next(self._ids)}"
        self.uploads[file_id] = {
            "name": name,
            "content": content,
            "folder_id": folder_id,
            "mime_type": mime_type,
        }
        return file_id


class InMemoryTaskService(TaskService):
    def __init__(self, lists: Optional[List[TaskList]] = None) -> None:
        self._ids = itertools.count(1)
        self.lists: List[TaskList] = list(lists or [TaskList(id="@default", title="My Tasks")])
        self.tasks: Dict[str, List[Task]] = defaultdict(list)

    def add_task(
        self,
        list_id: str,
        title: str,
        due: Optional[str] = None,
        status: str = "needsAction",
        notes: Optional[str] = None,
        completed: Optional[str] = None,
    ) -> Task:
        task = Task(
            id=f"task-{next(self._ids)}",
            title=title,
            status=status,
            due=due,
            notes=notes,
            completed=completed,
        )
        self.tasks[list_id].append(task)
        return task

    async def create_task(
        self, title: str, notes: Optional[str], due: str, list_id: str
    ) -> Optional[str]:
        return self.add_task(list_id, title, due=due, notes=notes).id

    async def list_tasks(self, list_id: str) -> List[Task]:
        return list(self.tasks.get(list_id, []))

    async def delete_task(self, list_id: str, task_id: str) -> None:
        self.tasks[list_id] = [t for t in self.tasks.get(list_id, []) if t.id != task_id]

    async def list_lists(self) -> List[TaskList]:
        return list(self.lists)


class InMemoryCalendarService(CalendarService):
    def __init__(self, events: Optional[List[CalendarEvent]] = None) -> None:
        self._ids = itertools.count(1)
        self.events: List[CalendarEvent] = list(events or [])

    async def list_events(self, start: datetime, end: datetime) -> List[CalendarEvent]:
        return [e for e in self.events if start <= e.start < end]

    async def create_event(
        self,
        title: str,
        start: datetime,
        end: datetime,
        description: Optional[str] = None,
    ) -> Optional[str]:
        event_id = f"event-{next(self._ids)}"
        self.events.append(
            CalendarEvent(id=event_id, title=title, start=start, end=end, description=description)
        )
        return event_id


class InMemoryKeyValueStore(KeyValueStore):
    def __init__(self, values: Optional[Dict[str, Dict[str, Any]]] = None) -> None:
        self._values: Dict[Tuple[str, str], Any] = {}
        for namespace, entries in (values or {}).items():
            for key, value in entries.items():
                self._values[(namespace, key)] = value

    async def get(self, namespace: str, key: str, default: Any = None) -> Any:
        return self._values.get((namespace, key), default)

    async def put(self, namespace: str, key: str, value: Any) -> None:
        self._values[(namespace, key)] = value


class InMemoryProductivityRecords(ProductivityRecords):
    def __init__(
        self,
        sessions: Optional[List[FocusSession]] = None,
        calendar: Optional[List[CalendarEvent]] = None,
        planned: Optional[List[CalendarEvent]] = None,
        list_configs: Optional[List[TaskListConfig]] = None,
    ) -> None:
        self.sessions = list(sessions or [])
        self.calendar = list(calendar or [])
        self.planned = list(planned or [])
        self.list_configs = list(list_configs or [])

    async def focus_sessions(self, start: datetime, end: datetime) -> List[FocusSession]:
        return [s for s in self.sessions if start <= s.start < end]

    async def calendar_events(self, start: datetime, end: datetime) -> List[CalendarEvent]:
        return [e for e in self.calendar if start <= e.start < end]

    async def planned_events(self, start: datetime, end: datetime) -> List[CalendarEvent]:
        return [e for e in self.planned if start <= e.start < end]

    async def task_list_configs(self) -> List[TaskListConfig]:
        return list(self.list_configs)


class StaticUsageStats(UsageStatsSource):
    """Usage figures fixed at construction time."""

    def __init__(
        self,
        distraction: int = 0,
        apps: Optional[List[AppUsage]] = None,
        metrics: Optional[UsageMetrics] = None,
    ) -> None:
        self.distraction = distraction
        self.apps = list(apps or [])
        self.metrics = metrics or UsageMetrics()

    async def distraction_minutes(self, day: date) -> int:
        return self.distraction

    async def app_usage(self, start: datetime, end: datetime) -> List[AppUsage]:
        return list(self.apps)

    async def usage_metrics(self, day: date) -> UsageMetrics:
        return self.metrics


class StaticHealthSource(HealthSource):
    def __init__(
        self,
        steps: int = 0,
        sleep: Optional[List[SleepSession]] = None,
        summary: str = "No data",
    ) -> None:
        self._steps = steps
        self._sleep = list(sleep or [])
        self._summary = summary

    async def steps(self, day: date) -> int:
        return self._steps

    async def sleep_sessions(self, day: date) -> List[SleepSession]:
        return list(self._sleep)

    async def sleep_summary(self, day: date) -> str:
        return self._summary


class InMemoryGamification(Gamification):
    """Simplified XP bookkeeping: 100 XP per attended calendar session."""

    session_xp_per_event = 100

    def __init__(self) -> None:
        self.reflection_xp: Dict[date, int] = {}
        self.stats: Dict[date, XpBreakdown] = {}

    async def set_reflection_xp(self, day: date, xp: int) -> None:
        self.reflection_xp[day] = xp

    async def recalculate_daily_stats(
        self, day: date, events: List[CalendarEvent]
    ) -> XpBreakdown:
        reflection = self.reflection_xp.get(day, 0)
        session = self.session_xp_per_event * len(events)
        total = reflection + session
        previous = self.stats.get(day - timedelta(days=1))
        streak = (previous.streak if previous else 0) + 1 if total > 0 else 0
        cumulative = total + sum(s.total_xp for d, s in self.stats.items() if d < day)
        breakdown = XpBreakdown(
            diary_xp=reflection,
            reflection_xp=reflection,
            session_xp=session,
            total_xp=total,
            level=level_for(cumulative, streak),
            streak=streak,
        )
        self.stats[day] = breakdown
        return breakdown

    async def daily_stats(self, day: date) -> Optional[XpBreakdown]:
        return self.stats.get(day)


class RecordingAlarmScheduler(AlarmScheduler):
    def __init__(self) -> None:
        self.alarms: List[Tuple[datetime, str]] = []

    async def schedule_wakeup(self, at: datetime, label: str) -> None:
        self.alarms.append((at, label))
