"""The fifteen nightly protocol steps, indexed by step id."""

from __future__ import annotations

from typing import Dict

from ..constants import StepId
from .analysis import AnalyzeReflectionStep, FinalizeXpStep
from .base import SoftRejection, StepExecutor, StepFailed, StepOutcome, StepSkipped
from .collection import (
    CreateDiaryStep,
    FetchSessionsStep,
    FetchTasksStep,
    GenerateQuestionsStep,
    ScreenTimeStep,
)
from .finalization import (
    GeneratePdfStep,
    GenerateReportStep,
    NormalizeTasksStep,
    SetAlarmStep,
    UpdateDistractionStep,
)
from .planning import CreatePlanDocStep, MaterializePlanStep, ParsePlanStep

STEPS: Dict[StepId, StepExecutor] = {
    step.step_id: step
    for step in (
        FetchTasksStep(),
        FetchSessionsStep(),
        ScreenTimeStep(),
        GenerateQuestionsStep(),
        CreateDiaryStep(),
        AnalyzeReflectionStep(),
        FinalizeXpStep(),
        CreatePlanDocStep(),
        ParsePlanStep(),
        MaterializePlanStep(),
        GenerateReportStep(),
        GeneratePdfStep(),
        SetAlarmStep(),
        NormalizeTasksStep(),
        UpdateDistractionStep(),
    )
}


def get_step(step_id: int) -> StepExecutor:
    try:
        return STEPS[StepId(step_id)]
    except ValueError:
        raise ValueError(f"Unknown step id: {step_id}") from None


__all__ = [
    "STEPS",
    "SoftRejection",
    "StepExecutor",
    "StepFailed",
    "StepOutcome",
    "StepSkipped",
    "get_step",
]
