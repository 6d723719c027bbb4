"""Contracts for the external collaborators used by the nightly protocol."""

from __future__ import annotations

import abc
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, List, Optional

from pydantic import BaseModel


# ----------------------------------------------------------------------
# Data exchanged with collaborators


class TaskList(BaseModel):
    id: str
    title: str = ""


class Task(BaseModel):
    id: str
    title: str = ""
    status: str = "needsAction"
    due: Optional[str] = None
    completed: Optional[str] = None
    notes: Optional[str] = None


class CalendarEvent(BaseModel):
    title: str
    start: datetime
    end: datetime
    id: Optional[str] = None
    description: Optional[str] = None

    @property
    def duration_minutes(self) -> int:
        return int((self.end - self.start).total_seconds() // 60)


class FocusSession(BaseModel):
    """A completed local focus session."""

    name: str
    start: datetime
    effective_ms: int = 0
    target_ms: int = 0

    @property
    def effective_minutes(self) -> int:
        return self.effective_ms // 60000


class TaskListConfig(BaseModel):
    """Local description of a remote task list, used to route planned tasks."""

    list_id: str
    display_name: str
    description: str = ""


class Folder(BaseModel):
    id: str
    name: str


class AppUsage(BaseModel):
    package: str
    foreground_ms: int = 0


class UsageMetrics(BaseModel):
    pickups: int = 0
    longest_streak_ms: int = 0


class SleepSession(BaseModel):
    start: datetime
    end: datetime

    @property
    def minutes(self) -> int:
        return int((self.end - self.start).total_seconds() // 60)


class XpBreakdown(BaseModel):
    diary_xp: int = 0
    reflection_xp: int = 0
    session_xp: int = 0
    tapasya_xp: int = 0
    task_xp: int = 0
    distraction_xp: int = 0
    penalty_xp: int = 0
    total_xp: int = 0
    level: int = 1
    streak: int = 0


# ----------------------------------------------------------------------
# Collaborator contracts


class AICompletion(metaclass=abc.ABCMeta):
    """Provider-agnostic text completion."""

    @abc.abstractmethod
    async def complete(self, model: str, prompt: str) -> str:
        raise NotImplementedError


class DocumentStore(metaclass=abc.ABCMeta):
    """Remote documents plus the file storage they live in."""

    @abc.abstractmethod
    async def create(self, title: str) -> Optional[str]:
        """Create an empty document and return its id."""
        raise NotImplementedError

    @abc.abstractmethod
    async def read(self, doc_id: str) -> Optional[str]:
        raise NotImplementedError

    @abc.abstractmethod
    async def append(self, doc_id: str, text: str) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    async def search(self, title: str, folder_id: str) -> Optional[str]:
        """Return the id of a file named ``title`` inside ``folder_id``."""
        raise NotImplementedError

    @abc.abstractmethod
    async def move(self, doc_id: str, folder_id: str) -> None:
        raise NotImplementedError

    async def list_subfolders(self, folder_id: str) -> List[Folder]:
        """Return child folders ordered by name (none by default)."""
        return []

    @abc.abstractmethod
    async def upload_file(
        self, name: str, content: bytes, folder_id: str, mime_type: str = "application/pdf"
    ) -> Optional[str]:
        raise NotImplementedError


class TaskService(metaclass=abc.ABCMeta):
    @abc.abstractmethod
    async def create_task(
        self, title: str, notes: Optional[str], due: str, list_id: str
    ) -> Optional[str]:
        raise NotImplementedError

    @abc.abstractmethod
    async def list_tasks(self, list_id: str) -> List[Task]:
        raise NotImplementedError

    @abc.abstractmethod
    async def delete_task(self, list_id: str, task_id: str) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    async def list_lists(self) -> List[TaskList]:
        raise NotImplementedError


class CalendarService(metaclass=abc.ABCMeta):
    @abc.abstractmethod
    async def list_events(self, start: datetime, end: datetime) -> List[CalendarEvent]:
        raise NotImplementedError

    @abc.abstractmethod
    async def create_event(
        self,
        title: str,
        start: datetime,
        end: datetime,
        description: Optional[str] = None,
    ) -> Optional[str]:
        raise NotImplementedError


class KeyValueStore(metaclass=abc.ABCMeta):
    """Flat configuration values scoped by namespace."""

    @abc.abstractmethod
    async def get(self, namespace: str, key: str, default: Any = None) -> Any:
        raise NotImplementedError

    @abc.abstractmethod
    async def put(self, namespace: str, key: str, value: Any) -> None:
        raise NotImplementedError

    async def get_int(self, namespace: str, key: str, default: int = 0) -> int:
        value = await self.get(namespace, key)
        if value is None or value == "":
            return default
        try:
            return int(value)
        except (TypeError, ValueError):
            return default

    async def get_str(self, namespace: str, key: str) -> Optional[str]:
        value = await self.get(namespace, key)
        if value is None or value == "":
            return None
        return str(value)


class ProductivityRecords(metaclass=abc.ABCMeta):
    """Local records: focus sessions, device calendar and task list configs."""

    @abc.abstractmethod
    async def focus_sessions(self, start: datetime, end: datetime) -> List[FocusSession]:
        raise NotImplementedError

    @abc.abstractmethod
    async def calendar_events(self, start: datetime, end: datetime) -> List[CalendarEvent]:
        raise NotImplementedError

    @abc.abstractmethod
    async def planned_events(self, start: datetime, end: datetime) -> List[CalendarEvent]:
        raise NotImplementedError

    @abc.abstractmethod
    async def task_list_configs(self) -> List[TaskListConfig]:
        raise NotImplementedError


class UsageStatsSource(metaclass=abc.ABCMeta):
    @abc.abstractmethod
    async def distraction_minutes(self, day: date) -> int:
        """Minutes spent in apps marked as distracting."""
        raise NotImplementedError

    @abc.abstractmethod
    async def app_usage(self, start: datetime, end: datetime) -> List[AppUsage]:
        raise NotImplementedError

    @abc.abstractmethod
    async def usage_metrics(self, day: date) -> UsageMetrics:
        raise NotImplementedError


class HealthSource(metaclass=abc.ABCMeta):
    @abc.abstractmethod
    async def steps(self, day: date) -> int:
        raise NotImplementedError

    @abc.abstractmethod
    async def sleep_sessions(self, day: date) -> List[SleepSession]:
        raise NotImplementedError

    @abc.abstractmethod
    async def sleep_summary(self, day: date) -> str:
        raise NotImplementedError


class Gamification(metaclass=abc.ABCMeta):
    @abc.abstractmethod
    async def set_reflection_xp(self, day: date, xp: int) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    async def recalculate_daily_stats(
        self, day: date, events: List[CalendarEvent]
    ) -> XpBreakdown:
        raise NotImplementedError

    @abc.abstractmethod
    async def daily_stats(self, day: date) -> Optional[XpBreakdown]:
        raise NotImplementedError


class AlarmScheduler(metaclass=abc.ABCMeta):
    @abc.abstractmethod
    async def schedule_wakeup(self, at: datetime, label: str) -> None:
        raise NotImplementedError


class PdfRenderer(metaclass=abc.ABCMeta):
    @abc.abstractmethod
    def render(self, markdown_text: str, title: str) -> bytes:
        raise NotImplementedError


@dataclass
class Services:
    """Bundle of every collaborator the steps may call."""

    ai: AICompletion
    documents: DocumentStore
    tasks: TaskService
    calendar: CalendarService
    key_value: KeyValueStore
    records: ProductivityRecords
    usage: UsageStatsSource
    health: HealthSource
    gamification: Gamification
    alarms: AlarmScheduler
    pdf: PdfRenderer
