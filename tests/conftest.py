"""Shared fixtures: in-memory collaborators and a scripted AI."""

from __future__ import annotations

import json
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

import pytest

from vesper.adapters.base import (
    AICompletion,
    CalendarEvent,
    FocusSession,
    PdfRenderer,
    Services,
    TaskList,
    TaskListConfig,
)
from vesper.adapters.inmemory import (
    InMemoryCalendarService,
    InMemoryDocumentStore,
    InMemoryGamification,
    InMemoryKeyValueStore,
    InMemoryProductivityRecords,
    InMemoryTaskService,
    RecordingAlarmScheduler,
    StaticHealthSource,
    StaticUsageStats,
)
from vesper.config import AIConfig, VesperConfig
from vesper.context import SessionContext
from vesper.coordinator import SessionCoordinator
from vesper.listener import ProgressListener
from vesper.persistence import InMemoryStepRepository

SESSION_DATE = date(2024, 5, 6)
NOW = datetime(2024, 5, 6, 22, 0, tzinfo=timezone.utc)

QUESTIONS_RESPONSE = """1. What pulled you away from the deep work block?
2. How did finishing the email to your boss feel?
3. Why is buying milk still pending?
4. What was your energy like this afternoon?
5. What will you change tomorrow?"""

ANALYSIS_ACCEPTED = json.dumps({"xp": 120, "satisfied": True, "feedback": "Honest and specific."})
ANALYSIS_REJECTED = json.dumps({"xp": 0, "satisfied": False, "feedback": "too short"})

PLAN_RESPONSE = json.dumps(
    {
        "wakeupTime": "06:30",
        "sleepStartTime": "22:45",
        "distractionTimeMinutes": 45,
        "mentorship": "Protect the morning block.",
        "tasks": [
            {"title": "Write chapter 3", "startTime": "09:00", "taskListId": "work", "notes": ""},
            {"title": "Call mum", "startTime": None, "taskListId": "@default"},
        ],
        "events": [
            {"title": "Deep work", "startTime": "09:00", "endTime": "11:00", "description": "thesis"}
        ],
    }
)

NORMALIZE_EMPTY = json.dumps({"delete_ids": [], "readd_tasks": []})


class ScriptedAI(AICompletion):
    """Answer each prompt kind with a canned response.

    The prompt kind is recognised from a phrase in the built-in templates.
    Report and analysis prompts embed document text, so they are matched first.
    """

    markers = {
        "report": "executive coach",
        "normalize": "task-list curator",
        "analysis": "Nightly Reflection Diary",
        "plan": "Plan for Tomorrow",
        "questions": "reflection questions",
    }

    def __init__(self, **responses: str) -> None:
        self.responses: Dict[str, str] = {
            "questions": QUESTIONS_RESPONSE,
            "analysis": ANALYSIS_ACCEPTED,
            "plan": PLAN_RESPONSE,
            "report": "# Daily Briefing\n\nA focused day.",
            "normalize": NORMALIZE_EMPTY,
        }
        self.responses.update(responses)
        self.failures: Dict[str, Exception] = {}
        self.prompts: List[tuple] = []

    def kind_of(self, prompt: str) -> str:
        for kind, marker in self.markers.items():
            if marker in prompt:
                return kind
        raise AssertionError(f"Unrecognised prompt: {prompt[:80]}")

    async def complete(self, model: str, prompt: str) -> str:
        kind = self.kind_of(prompt)
        self.prompts.append((kind, model, prompt))
        if kind in self.failures:
            raise self.failures[kind]
        return self.responses[kind]

    def calls(self, kind: str) -> int:
        return sum(1 for k, _, _ in self.prompts if k == kind)


class FakePdfRenderer(PdfRenderer):
    def __init__(self) -> None:
        self.rendered: List[tuple] = []

    def render(self, markdown_text: str, title: str) -> bytes:
        self.rendered.append((markdown_text, title))
        return b"%PDF-1.7 fake"


class CallCounter:
    """Proxy that records every method call made on ``target``."""

    def __init__(self, target: Any, log: List[str], label: str) -> None:
        self._target = target
        self._log = log
        self._label = label

    def __getattr__(self, name: str) -> Any:
        attr = getattr(self._target, name)
        if not callable(attr):
            return attr

        def wrapper(*args: Any, **kwargs: Any) -> Any:
            self._log.append(f"{self._label}.{name}")
            return attr(*args, **kwargs)

        return wrapper


def counted(services: Services) -> tuple:
    """Wrap every collaborator; returns ``(services, call_log)``."""

    log: List[str] = []
    wrapped = Services(
        **{
            field: CallCounter(getattr(services, field), log, field)
            for field in services.__dataclass_fields__
        }
    )
    return wrapped, log


class RecordingListener(ProgressListener):
    def __init__(self) -> None:
        self.events: List[tuple] = []

    def on_step_started(self, step_id, name):
        self.events.append(("started", step_id))

    def on_step_completed(self, step_id, name, details=None, link_url=None):
        self.events.append(("completed", step_id, details, link_url))

    def on_step_skipped(self, step_id, name, reason):
        self.events.append(("skipped", step_id, reason))

    def on_error(self, step_id, message):
        self.events.append(("error", step_id, message))

    def on_questions_ready(self, questions):
        self.events.append(("questions", list(questions)))

    def on_analysis_feedback(self, message):
        self.events.append(("feedback", message))

    def on_complete(self, diary_doc_id, diary_url):
        self.events.append(("complete", diary_doc_id, diary_url))

    def of(self, kind: str) -> List[tuple]:
        return [e for e in self.events if e[0] == kind]


def _at(hour: int, minute: int = 0, day: date = SESSION_DATE) -> datetime:
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=timezone.utc)


def build_services(ai: Optional[AICompletion] = None) -> Services:
    tasks = InMemoryTaskService(
        [TaskList(id="@default", title="My Tasks"), TaskList(id="work", title="Work")]
    )
    tasks.add_task("@default", "Buy milk", due="2024-05-06T00:00:00.000Z")
    tasks.add_task(
        "work",
        "Email boss",
        due="2024-05-06T00:00:00.000Z",
        status="completed",
        completed="2024-05-06T10:15:00.000Z",
    )
    records = InMemoryProductivityRecords(
        sessions=[
            FocusSession(name="Thesis", start=_at(9), effective_ms=90 * 60000, target_ms=120 * 60000)
        ],
        calendar=[CalendarEvent(title="Deep work", start=_at(9), end=_at(11))],
        list_configs=[
            TaskListConfig(list_id="work", display_name="Work", description="Job tasks"),
        ],
    )
    key_value = InMemoryKeyValueStore(
        {
            "nightly": {
                "diary_folder_id": "folder-diary",
                "plan_folder_id": "folder-plan",
                "report_folder_id": "folder-reports",
                "screen_time_limit_minutes": 90,
            }
        }
    )
    return Services(
        ai=ai or ScriptedAI(),
        documents=InMemoryDocumentStore(),
        tasks=tasks,
        calendar=InMemoryCalendarService([CalendarEvent(title="Deep work", start=_at(9), end=_at(11))]),
        key_value=key_value,
        records=records,
        usage=StaticUsageStats(distraction=60),
        health=StaticHealthSource(steps=8000),
        gamification=InMemoryGamification(),
        alarms=RecordingAlarmScheduler(),
        pdf=FakePdfRenderer(),
    )


@pytest.fixture
def ai() -> ScriptedAI:
    return ScriptedAI()


@pytest.fixture
def services(ai) -> Services:
    return build_services(ai)


@pytest.fixture
def config() -> VesperConfig:
    return VesperConfig(timezone="UTC", ai=AIConfig(model="test:model", user_introduction="Student"))


@pytest.fixture
def repository() -> InMemoryStepRepository:
    return InMemoryStepRepository()


@pytest.fixture
def listener() -> RecordingListener:
    return RecordingListener()


@pytest.fixture
def ctx(repository, services, config, listener) -> SessionContext:
    return SessionContext(
        SESSION_DATE, repository, services, config, listener=listener, now=lambda: NOW
    )


@pytest.fixture
def coordinator(repository, services, config, listener) -> SessionCoordinator:
    return SessionCoordinator(repository, services, config, listener=listener, now=lambda: NOW)
