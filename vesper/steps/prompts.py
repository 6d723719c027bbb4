"""Prompt templates and tolerant parsing of AI responses.

Templates use ``{placeholder}`` markers replaced with :func:`fill` rather than
``str.format`` because they embed literal JSON braces.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo

from ..adapters.base import TaskListConfig, XpBreakdown
from ..constants import MAX_QUESTIONS, MAX_REFLECTION_XP
from ..envelopes import ScreenTimeOutput
from ..summary import DaySummary

logger = logging.getLogger(__name__)

QUESTIONS_TEMPLATE = """You are a supportive but honest personal productivity coach.

{user_intro}

Today is {date}.

SCHEDULED CALENDAR EVENTS:
{calendar}

TASKS DUE TODAY:
{tasks_due}

TASKS COMPLETED TODAY:
{tasks_completed}

FOCUS SESSIONS:
{sessions}

STATISTICS:
{stats}

{health}

PREVIOUS DAY REPORT:
{previous_report}

Based on this data, generate EXACTLY 5 personalized reflection questions.

Guidelines:
1. If there's a gap between planned and actual, ask about what happened (gently but directly)
2. If they completed many tasks, acknowledge and ask what helped them succeed
3. If tasks are pending, ask about priorities and blockers
4. Ask about their emotional/mental state during work
5. Help them plan improvements for tomorrow

Be warm and supportive, but also honest. Don't sugarcoat if they underperformed.
If no plan was set, ask about setting intentions.
If no work was done, be compassionate but encourage reflection on barriers.

Return ONLY the 5 questions, numbered 1-5, one per line. No other text."""

ANALYZER_TEMPLATE = """You are a wise and strict mentor reviewing a student's nightly reflection.
Your goal is to ensure they are taking the process seriously and actually reflecting, not just going through the motions.

{user_intro}

Analyze the following Nightly Reflection Diary:

[[DIARY_START]]
{diary_content}
[[DIARY_END]]

EVALUATION CRITERIA:
1. DEPTH: Did they answer the questions with thought? (One word answers = Fail)
2. HONESTY: Does it seem genuine?
3. COMPLETENESS: Did they complete the reflection?

OUTPUT REQUIREMENTS:
You must output a single JSON object. Do not include markdown formatting like ```json.
{
  "xp": (integer 0-500, score for quality of reflection),
  "satisfied": (boolean, true if reflection is good enough to accept, false if lazy/incomplete),
  "feedback": (string, 1-2 sentence feedback. If satisfied, praise insight. If false, explain why and ask them to add more.)
}"""

PLAN_TEMPLATE = """You are an advanced productivity extraction AI.
Analyze the following "Plan for Tomorrow" and extract actionable items with extreme precision.

[PLAN CONTENT]
{plan_content}

{list_context}

[STRICT EXTRACTION RULES]
1. TASKS:
   - Extract ONLY actionable task mentions that are explicitly listed.
   - Do NOT infer tasks that are not clearly written.
   - TITLE: Clean title only.
   - CATEGORIZATION: Select the best "taskListId" from the [AVAILABLE TASK LISTS]. If none matches use "@default".
   - DUE TIME: If a specific time is mentioned (e.g. "14:00 Finish report"), extract it as "startTime" in 24h HH:mm format.
2. CALENDAR EVENTS:
   - ONLY extract productive or focused study/work sessions.
   - Do NOT extract sleep, travel, commute, meals, gym or leisure.
   - Each event must have both "startTime" and "endTime" in HH:mm.
3. WAKE UP TIME: the optimal "wakeupTime" (HH:mm) given the first activity, or "" if unclear.
4. SLEEP TIME: the planned "sleepStartTime" (HH:mm) for tonight, or "" if unclear.
5. DISTRACTION BUDGET: "distractionTimeMinutes", the minutes of distracting apps allowed tomorrow (default 60).
6. MENTORSHIP: 2-3 sentences of punchy advice for tomorrow.

[JSON OUTPUT FORMAT]
Output EXACTLY this JSON structure. NO MARKDOWN. NO PREAMBLE.
{
  "wakeupTime": "HH:mm or empty",
  "sleepStartTime": "HH:mm or empty",
  "distractionTimeMinutes": 60,
  "mentorship": "Your advice string here",
  "tasks": [
    {"title": "Clean task title", "startTime": "HH:mm or null", "taskListId": "EXACT_ID_FROM_CONTEXT", "notes": "Details"}
  ],
  "events": [
    {"title": "Productive Session Title", "startTime": "HH:mm", "endTime": "HH:mm", "description": "Details"}
  ]
}"""

REPORT_TEMPLATE = """You are a professional executive coach and performance analyst.

[SYSTEM METADATA]
{metadata}

[PRIMARY SOURCE: DIARY DOCUMENT]
---
{reflection_content}
---

[PRIMARY SOURCE: PLAN FOR TOMORROW]
---
{plan_content}
---

INSTRUCTIONS:
1. **Daily Briefing**: Summarize the day's achievements and challenges.
2. **Deep Insights**: Analyze the reflection. Identify patterns, wins and recurring blockers.
3. **Plan Critique**: Evaluate tomorrow's plan against today's metrics ({efficiency} efficiency).
4. **Level Up**: Comment on the current level ({level}) and today's XP ({xp_earned}).
5. **Final Verdict**: Assign a "Theme of the Day" and a one-sentence "Coach's Directive".

OUTPUT FORMAT:
- Clean, professional Markdown.
- No meta-talk like "As an AI...".
- Keep the whole report under 7,000 characters."""

NORMALIZE_TEMPLATE = """You are a meticulous task-list curator.

Below are ALL pending tasks across the user's task lists as JSON. Each task has
"id", "list_id", "title", "due" and "notes".

[PENDING TASKS]
{tasks_json}

{list_context}

Tomorrow's date is {target_date}.

Find tasks that are exact or near duplicates, or that sit in a list that does
not match their description. For each of them:
- add its "id" to "delete_ids";
- if the task is still needed, add ONE corrected copy to "readd_tasks" with
  "title" (no time prefix), "startTime" (HH:mm or null), "taskListId" (a list
  id from the context) and "notes".
Leave every other task untouched.

Return ONLY this JSON:
{
  "delete_ids": ["..."],
  "readd_tasks": [{"title": "...", "startTime": "HH:mm or null", "taskListId": "...", "notes": "..."}]
}"""


def fill(template: str, **values: Any) -> str:
    """Replace ``{name}`` markers in ``template``; unknown markers stay as-is."""
    for key, value in values.items():
        template = template.replace("{" + key + "}", str(value))
    return template


def long_date(value) -> str:
    return f"{value:%A}, {value:%B} {value.day}, {value.year}"


def short_date(value) -> str:
    return f"{value:%A}, {value:%B} {value.day}"


def user_intro_block(intro: str) -> str:
    return f"About the user:\n{intro}" if intro else ""


def list_context(configs: List[TaskListConfig]) -> str:
    if not configs:
        return ""
    details = "\n".join(
        f'- List Name: "{c.display_name}" (ID: {c.list_id})\n  Description: {c.description}'
        for c in configs
    )
    return f"\n[AVAILABLE TASK LISTS]\n{details}\n"


# ----------------------------------------------------------------------
# Builders


def build_questions_prompt(
    summary: DaySummary,
    user_intro: str,
    health: str,
    previous_report: str,
    tz: str,
    template: Optional[str] = None,
) -> str:
    zone = ZoneInfo(tz)
    if summary.calendar_events:
        calendar = "\n".join(
            f"- {e.start.astimezone(zone):%H:%M}: {e.title} ({e.duration_minutes} min)"
            for e in summary.calendar_events
        )
    else:
        calendar = "No calendar events scheduled"
    tasks_due = "\n".join(f"- {t}" for t in summary.tasks_due) or "No tasks due"
    tasks_completed = (
        "\n".join(f"- ✓ {t}" for t in summary.tasks_completed) or "No tasks completed"
    )
    sessions = (
        "\n".join(
            f"- {s.name}: {s.effective_minutes} minutes of effective work"
            for s in summary.completed_sessions
        )
        or "No focused work sessions completed"
    )
    if summary.total_planned_minutes > 0:
        efficiency = summary.efficiency
    elif summary.total_effective_minutes > 0:
        # worked without a plan
        efficiency = 100
    else:
        efficiency = 0
    stats = (
        f"- Total Planned Calendar Time: {summary.total_planned_minutes} minutes\n"
        f"- Total Effective Study Time: {summary.total_effective_minutes} minutes\n"
        f"- Tasks: {len(summary.tasks_completed)} completed, {len(summary.tasks_due)} pending\n"
        f"- Efficiency: {efficiency}%"
    )
    return fill(
        template or QUESTIONS_TEMPLATE,
        user_intro=user_intro_block(user_intro),
        date=short_date(summary.date),
        calendar=calendar,
        tasks_due=tasks_due,
        tasks_completed=tasks_completed,
        sessions=sessions,
        stats=stats,
        health=health,
        previous_report=previous_report,
    )


def _hm(minutes: int) -> str:
    return f"{minutes // 60}h {minutes % 60}m"


def build_health_block(
    screen: Optional[ScreenTimeOutput], previous: Optional[XpBreakdown]
) -> str:
    """Render screen-time and health figures for the questions prompt."""

    if screen is None:
        return "No health data collected."
    used, limit = screen.used_minutes, screen.limit_minutes
    if limit > 0 and used > limit:
        status = f"OVER LIMIT by {used - limit}m"
    elif limit > 0:
        status = f"{limit - used}m under limit"
    else:
        status = "No limit set"
    if previous is not None:
        comparison = (
            f"Yesterday: {previous.total_xp} XP, Level {previous.level}, "
            f"{previous.streak} Day Streak."
        )
    else:
        comparison = "No data for previous day."
    xp = f"+{screen.xp_delta}" if screen.xp_delta >= 0 else str(screen.xp_delta)
    lines = [
        "### Digital Health Analysis",
        f"- **Distraction Apps Usage**: {used}m ({_hm(used)})",
        f"- **Daily Distraction Limit**: {f'{limit}m' if limit > 0 else 'No limit set'} [Status: {status}]",
        f"- **Total Device Screen Time**: {screen.total_phone_minutes}m ({_hm(screen.total_phone_minutes)})",
        f"- **Reality Ratio**: {screen.reality_ratio}% of waking time away from the phone",
        f"- **Waking Duration**: {_hm(screen.waking_minutes)}",
        f"- **Focus XP Impact**: {xp} XP",
        f"- **Device Pickups (Unlocks)**: {screen.unlocks} times",
        f"- **Longest Offline Streak**: {_hm(screen.streak_minutes)}",
        "",
        "### Physical Health & Context",
        f"- **Steps Traveled**: {screen.steps} steps",
        f"- **Sleep Summary**: {screen.sleep_info}",
        f"- **Historical Context**: {comparison}",
    ]
    return "\n".join(lines)


def build_analyzer_prompt(diary: str, user_intro: str, template: Optional[str] = None) -> str:
    return fill(
        template or ANALYZER_TEMPLATE,
        user_intro=user_intro_block(user_intro),
        diary_content=diary,
    )


def build_plan_prompt(
    plan: str, configs: List[TaskListConfig], template: Optional[str] = None
) -> str:
    return fill(template or PLAN_TEMPLATE, plan_content=plan, list_context=list_context(configs))


def build_report_prompt(
    summary: DaySummary,
    user_intro: str,
    xp: Optional[XpBreakdown],
    reflection: str,
    plan: str,
    template: Optional[str] = None,
) -> str:
    xp_earned = xp.total_xp if xp else 0
    level = xp.level if xp else 1
    metadata = json.dumps(
        {
            "date": summary.date.isoformat(),
            "stats": {
                "efficiency_percent": summary.efficiency,
                "effective_minutes": summary.total_effective_minutes,
                "planned_minutes": summary.total_planned_minutes,
                "tasks_completed": len(summary.tasks_completed),
                "xp_earned": xp_earned,
                "current_level": level,
            },
            "user_context": user_intro,
        },
        indent=2,
        ensure_ascii=False,
    )
    return fill(
        template or REPORT_TEMPLATE,
        metadata=metadata,
        user_intro=user_intro,
        date=short_date(summary.date),
        efficiency=f"{summary.efficiency}%",
        total_effective=f"{summary.total_effective_minutes} mins",
        total_planned=f"{summary.total_planned_minutes} mins",
        tasks_done=len(summary.tasks_completed),
        xp_earned=xp_earned,
        level=level,
        reflection_content=reflection[:8000],
        plan_content=plan[:8000],
    )


def build_normalize_prompt(
    tasks: List[Dict[str, Any]], target_date: str, configs: List[TaskListConfig]
) -> str:
    return fill(
        NORMALIZE_TEMPLATE,
        tasks_json=json.dumps(tasks, ensure_ascii=False),
        target_date=target_date,
        list_context=list_context(configs),
    )


# ----------------------------------------------------------------------
# Parsers

_NUMBERED = re.compile(r"^\d+[.):]?\s*(.+)")


def parse_questions(text: str) -> List[str]:
    """Pull up to five questions out of a numbered-list response."""

    questions: List[str] = []
    for line in text.strip().splitlines():
        line = line.strip()
        if not line:
            continue
        match = _NUMBERED.match(line)
        if match:
            question = match.group(1).strip()
            if question:
                questions.append(question)
        elif "?" in line and len(questions) < MAX_QUESTIONS:
            questions.append(line)
    return questions[:MAX_QUESTIONS]


def strip_fences(text: str) -> str:
    text = text.strip()
    if text.startswith("```json"):
        text = text[len("```json"):]
    elif text.startswith("```"):
        text = text[3:]
    if text.endswith("```"):
        text = text[:-3]
    return text.strip()


def extract_json_object(text: str) -> Dict[str, Any]:
    """Parse the outermost ``{...}`` span of ``text``.

    Raises:
        ValueError: no object span exists or it is not valid JSON.
    """
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        raise ValueError("No JSON object found in response")
    data = json.loads(text[start : end + 1])
    if not isinstance(data, dict):
        raise ValueError("Response JSON is not an object")
    return data


@dataclass
class AnalysisResult:
    xp: int
    satisfied: bool
    feedback: str


def parse_analysis(text: str) -> AnalysisResult:
    """Parse the reflection verdict.

    The verdict object may be wrapped in prose or fences. Only a response
    with no readable object counts as accepted.
    """

    try:
        data = extract_json_object(strip_fences(text))
    except ValueError as exc:
        logger.warning(f"Could not parse reflection analysis, accepting: {exc}")
        return AnalysisResult(20, True, "Reflection recorded.")

    try:
        xp = int(data.get("xp", 10))
    except (TypeError, ValueError):
        xp = 10
    satisfied = data.get("satisfied", True)
    if isinstance(satisfied, str):
        satisfied = satisfied.strip().lower() == "true"
    feedback = data.get("feedback")
    if feedback is None:
        feedback = "Good reflection."
    return AnalysisResult(max(0, min(xp, MAX_REFLECTION_XP)), bool(satisfied), str(feedback))
