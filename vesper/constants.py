"""Shared constants for the nightly protocol."""

from __future__ import annotations

from enum import IntEnum


class StepId(IntEnum):
    """Fixed step identifiers, executed in ascending order."""

    FETCH_TASKS = 1
    FETCH_SESSIONS = 2
    CALC_SCREEN_TIME = 3
    GENERATE_QUESTIONS = 4
    CREATE_DIARY = 5
    ANALYZE_REFLECTION = 6
    FINALIZE_XP = 7
    CREATE_PLAN_DOC = 8
    PARSE_PLAN = 9
    MATERIALIZE_PLAN = 10
    GENERATE_REPORT = 11
    GENERATE_PDF = 12
    SET_ALARM = 13
    NORMALIZE_TASKS = 14
    UPDATE_DISTRACTION = 15


STEP_NAMES = {
    StepId.FETCH_TASKS: "Fetch Tasks",
    StepId.FETCH_SESSIONS: "Fetch Sessions",
    StepId.CALC_SCREEN_TIME: "Calculate Health & Screen Time",
    StepId.GENERATE_QUESTIONS: "Generate AI Questions",
    StepId.CREATE_DIARY: "Create Diary Document",
    StepId.ANALYZE_REFLECTION: "Analyze Reflection",
    StepId.FINALIZE_XP: "Finalize XP & Stats",
    StepId.CREATE_PLAN_DOC: "Create Plan Document",
    StepId.PARSE_PLAN: "AI Parse Plan",
    StepId.MATERIALIZE_PLAN: "Create Tasks & Events",
    StepId.GENERATE_REPORT: "Generate AI Report",
    StepId.GENERATE_PDF: "Create PDF Report",
    StepId.SET_ALARM: "Set Wake-up Alarm",
    StepId.NORMALIZE_TASKS: "AI Task Cleanup",
    StepId.UPDATE_DISTRACTION: "Update Distraction Limit",
}


def step_name(step_id: int) -> str:
    try:
        return STEP_NAMES[StepId(step_id)]
    except ValueError:
        return "Unknown Step"


ENVELOPE_VERSION = 1

# Key/value namespaces and keys
NIGHTLY_NAMESPACE = "nightly"
BEDTIME_NAMESPACE = "bedtime"

DIARY_FOLDER_KEY = "diary_folder_id"
PLAN_FOLDER_KEY = "plan_folder_id"
REPORT_FOLDER_KEY = "report_folder_id"
ROOT_FOLDER_KEY = "reality_folder_id"
SCREEN_TIME_LIMIT_KEY = "screen_time_limit_minutes"
DIARY_TEMPLATE_KEY = "template_diary"
PLAN_TEMPLATE_KEY = "template_plan"
PLANNER_WAKEUP_KEY = "planner_wakeup_time"
PLANNER_SLEEP_KEY = "planner_sleep_time"


def diary_doc_key(session_date) -> str:
    return f"diary_doc_id_{session_date.isoformat()}"


def plan_doc_key(session_date) -> str:
    return f"plan_doc_id_{session_date.isoformat()}"


DOC_URL_FORMAT = "https://docs.google.com/document/d/{doc_id}"
FILE_URL_FORMAT = "https://drive.google.com/file/d/{file_id}/view"

DEFAULT_TASK_LIST = "@default"
TASK_DUE_TIME = "T09:00:00.000Z"
DEFAULT_TASK_START = "00:00"

# Thresholds
MIN_DIARY_LENGTH = 50
MIN_PLAN_LENGTH = 20
MIN_DOCUMENT_LENGTH = 50
MAX_QUESTIONS = 5
MAX_REFLECTION_XP = 500
DEFAULT_DISTRACTION_LIMIT = 60
SCREEN_TIME_XP_FACTOR = 3
MINUTES_PER_DAY = 1440
SNIPPET_LENGTH = 1000
INPUT_SNIPPET_LENGTH = 500

# Packages never counted towards total device usage
EXCLUDED_PACKAGE_PREFIXES = (
    "com.android.",
    "android",
    "com.google.android.inputmethod",
    "com.sec.android.app.launcher",
    "com.miui.home",
    "com.huawei.android.launcher",
)

DIARY_PLACEHOLDERS = ("{data}", "{questions}")
PLAN_PLACEHOLDERS = ("{date}", "{data}")

DEFAULT_DIARY_TEMPLATE = (
    "# Daily Reflection Diary - {date}\n\n"
    "## Day Summary Data\n{data}\n\n"
    "## Personalized Questions\n{questions}\n\n"
    "## My Reflection\n(Write your answers here...)\n"
)
DEFAULT_PLAN_TEMPLATE = (
    "# My Plan for Tomorrow\n\n"
    "## Top Priorities\n- [ ] \n\n"
    "## Schedule\n- \n\n"
    "## Focus Sessions\n- \n"
)

NO_PREVIOUS_REPORT = "No previous day report available."
NO_MODEL_REPORT = "Report Unavailable (No AI Model Configured)"
ALARM_SKIPPED = "Alarm Skipped"
WAKEUP_ALARM_LABEL = "Wake Up (Reality Plan)"
