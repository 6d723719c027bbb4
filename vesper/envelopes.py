"""Result envelopes persisted for each completed step.

Every completed step stores ``{"version": 1, "input": {...}, "output": {...}}``
with camelCase keys. Decoding also accepts an un-versioned ``{input, output}``
payload and legacy flat payloads where the output fields sit at the top level.
Any failure raises :class:`EnvelopeError`; callers treat that as "never
completed" and re-execute the step.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Generic, List, Optional, Type, TypeVar

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    ValidationInfo,
    field_validator,
)
from pydantic.alias_generators import to_camel

from .constants import DEFAULT_DISTRACTION_LIMIT, DEFAULT_TASK_LIST, ENVELOPE_VERSION


class EnvelopeError(ValueError):
    """Raised when a stored result cannot be decoded into the expected shape."""


class EnvelopeModel(BaseModel):
    """Base for persisted payloads: camelCase on the wire, snake_case in code."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)

    @classmethod
    def null_to_default(cls, value: Any, info: ValidationInfo) -> Any:
        """Map an explicit ``null`` from an AI response to the field default."""
        if value is None:
            return cls.model_fields[info.field_name].get_default(call_default_factory=True)
        return value


# ----------------------------------------------------------------------
# Phase 1


class TaskFetchOutput(EnvelopeModel):
    due_tasks: List[str] = Field(default_factory=list)
    completed_tasks: List[str] = Field(default_factory=list)
    pending_count: int = 0
    completed_count: int = 0


class SessionFetchOutput(EnvelopeModel):
    session_count: int = 0
    event_count: int = 0
    planned_minutes: int = 0
    effective_minutes: int = 0


class ScreenTimeOutput(EnvelopeModel):
    used_minutes: int = 0
    total_phone_minutes: int = 0
    limit_minutes: int = 0
    xp_delta: int = 0
    unlocks: int = 0
    streak_minutes: int = 0
    phoneless_minutes: int = 0
    reality_ratio: int = 0
    steps: int = 0
    sleep_info: str = ""
    sleep_minutes: int = 0
    waking_minutes: int = 0


class QuestionsOutput(EnvelopeModel):
    questions: List[str] = Field(min_length=1, max_length=5)
    count: int = 0
    source: str = "ai"


class DocumentOutput(EnvelopeModel):
    """Output of the diary (5) and plan (8) document steps."""

    doc_id: str = Field(min_length=1)
    doc_url: str = ""


# ----------------------------------------------------------------------
# Phase 2


class ReflectionOutput(EnvelopeModel):
    accepted: bool
    xp: int = 0
    feedback: str = ""

    @field_validator("accepted")
    @classmethod
    def _must_be_accepted(cls, value: bool) -> bool:
        if not value:
            raise ValueError("a completed reflection must be accepted")
        return value


class XpOutput(EnvelopeModel):
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
# Phase 3


class PlanTask(EnvelopeModel):
    title: str = ""
    start_time: Optional[str] = None
    task_list_id: str = DEFAULT_TASK_LIST
    notes: Optional[str] = None

    @field_validator("title", "task_list_id", mode="before")
    @classmethod
    def _default_when_null(cls, value: Any, info: ValidationInfo) -> Any:
        return cls.null_to_default(value, info)


class PlanEvent(EnvelopeModel):
    title: str = ""
    start_time: str = ""
    end_time: str = ""
    description: Optional[str] = None

    @field_validator("title", "start_time", "end_time", mode="before")
    @classmethod
    def _default_when_null(cls, value: Any, info: ValidationInfo) -> Any:
        return cls.null_to_default(value, info)


class PlanOutput(EnvelopeModel):
    tasks: List[PlanTask] = Field(default_factory=list)
    events: List[PlanEvent] = Field(default_factory=list)
    mentorship: str = "No advice generated."
    wakeup_time: str = ""
    sleep_start_time: str = ""
    distraction_time_minutes: int = DEFAULT_DISTRACTION_LIMIT

    @field_validator(
        "tasks",
        "events",
        "mentorship",
        "wakeup_time",
        "sleep_start_time",
        "distraction_time_minutes",
        mode="before",
    )
    @classmethod
    def _default_when_null(cls, value: Any, info: ValidationInfo) -> Any:
        return cls.null_to_default(value, info)


class MaterializeItem(EnvelopeModel):
    type: str
    status: str
    input_title: str = ""
    input_start_time: Optional[str] = None
    input_list: Optional[str] = None
    input_time: Optional[str] = None
    final_title: Optional[str] = None
    final_list: Optional[str] = None
    warning: Optional[str] = None


class MaterializeOutput(EnvelopeModel):
    tasks_created: int = 0
    failed_tasks: int = 0
    events_created: int = 0
    failed_events: int = 0
    items: List[MaterializeItem] = Field(default_factory=list)


class ReportOutput(EnvelopeModel):
    report_length: int = 0
    report_snippet: str = ""
    date: str = ""
    diary_doc_id: Optional[str] = None
    plan_doc_id: Optional[str] = None


class PdfOutput(EnvelopeModel):
    pdf_id: str = Field(min_length=1)
    pdf_url: str = ""


class AlarmOutput(EnvelopeModel):
    skipped: bool = False
    hour: Optional[int] = None
    minute: Optional[int] = None
    scheduled_for: Optional[str] = None


class NormalizeOutput(EnvelopeModel):
    pending_count: int = 0
    deleted_count: int = 0
    readded_count: int = 0


class DistractionOutput(EnvelopeModel):
    old_limit: int
    new_limit: int


# ----------------------------------------------------------------------
# Codec

OutputT = TypeVar("OutputT", bound=BaseModel)


@dataclass
class Envelope(Generic[OutputT]):
    output: OutputT
    input: Dict[str, Any] = field(default_factory=dict)
    version: int = ENVELOPE_VERSION


def _as_wire(value: Any) -> Dict[str, Any]:
    if value is None:
        return {}
    if isinstance(value, EnvelopeModel):
        return value.to_wire()
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    return dict(value)


def encode_envelope(input: Any, output: Any) -> str:
    """Serialize an ``{input, output}`` pair into the stored JSON form."""

    return json.dumps(
        {"version": ENVELOPE_VERSION, "input": _as_wire(input), "output": _as_wire(output)},
        ensure_ascii=False,
    )


def decode_envelope(raw: Optional[str], output_model: Type[OutputT]) -> Envelope[OutputT]:
    """Parse a stored result into an :class:`Envelope` holding ``output_model``."""

    if not raw:
        raise EnvelopeError("no stored result")
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise EnvelopeError(f"invalid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise EnvelopeError("stored result is not a JSON object")

    version = data.get("version", ENVELOPE_VERSION)
    if not isinstance(version, int) or isinstance(version, bool) or version > ENVELOPE_VERSION:
        raise EnvelopeError(f"unsupported envelope version: {version!r}")

    if "output" in data:
        output_data = data["output"]
        input_data = data.get("input") or {}
    else:
        # legacy flat payload
        output_data = {k: v for k, v in data.items() if k not in ("version", "input")}
        input_data = data.get("input") or {}
    if not isinstance(output_data, dict):
        raise EnvelopeError("envelope output is not an object")
    if not isinstance(input_data, dict):
        raise EnvelopeError("envelope input is not an object")

    try:
        output = output_model.model_validate(output_data)
    except ValidationError as exc:
        raise EnvelopeError(f"output does not match {output_model.__name__}: {exc}") from exc
    return Envelope(output=output, input=input_data, version=version)
