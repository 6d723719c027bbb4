"""Collaborator factory and initialization."""

from __future__ import annotations

import importlib
import os
from typing import Optional

from ..config import VesperConfig, load_config
from .base import (
    AICompletion,
    AlarmScheduler,
    CalendarService,
    DocumentStore,
    Gamification,
    HealthSource,
    KeyValueStore,
    PdfRenderer,
    ProductivityRecords,
    Services,
    TaskService,
    UsageStatsSource,
)
from .inmemory import (
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
from .keyvalue import YamlKeyValueStore


def get_key_value_store(
    path: Optional[str] = None, config: Optional[VesperConfig] = None
) -> KeyValueStore:
    """Factory function to get the configured key/value store."""

    config = config or load_config()
    path = path or os.getenv("VESPER_KEY_VALUE_PATH") or config.key_value_path
    if not path:
        return InMemoryKeyValueStore()
    return YamlKeyValueStore(path)


def load_services(config: Optional[VesperConfig] = None) -> Services:
    """Build the collaborator bundle.

    ``config.services_factory`` names a ``module:function`` that receives the
    config and returns :class:`Services`. Without it, local in-memory
    collaborators are used together with the pydantic-ai client, the
    configured key/value store and the PDF renderer.
    """

    config = config or load_config()
    if config.services_factory:
        module_name, _, attr = config.services_factory.partition(":")
        if not attr:
            raise ValueError(
                f"services_factory must look like 'module:function', got {config.services_factory!r}"
            )
        factory = getattr(importlib.import_module(module_name), attr)
        services = factory(config)
        if not isinstance(services, Services):
            raise TypeError(f"{config.services_factory} did not return Services")
        return services

    from .ai import PydanticAICompletion
    from .pdf import MarkdownPdfRenderer

    return Services(
        ai=PydanticAICompletion(max_retries=config.ai.max_retries),
        documents=InMemoryDocumentStore(),
        tasks=InMemoryTaskService(),
        calendar=InMemoryCalendarService(),
        key_value=get_key_value_store(config=config),
        records=InMemoryProductivityRecords(),
        usage=StaticUsageStats(),
        health=StaticHealthSource(),
        gamification=InMemoryGamification(),
        alarms=RecordingAlarmScheduler(),
        pdf=MarkdownPdfRenderer(),
    )


__all__ = [
    "AICompletion",
    "AlarmScheduler",
    "CalendarService",
    "DocumentStore",
    "Gamification",
    "HealthSource",
    "KeyValueStore",
    "PdfRenderer",
    "ProductivityRecords",
    "Services",
    "TaskService",
    "UsageStatsSource",
    "get_key_value_store",
    "load_services",
]
