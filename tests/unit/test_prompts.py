from datetime import date, datetime, timezone

import pytest

from vesper.adapters.base import CalendarEvent, TaskListConfig
from vesper.envelopes import ScreenTimeOutput
from vesper.steps.prompts import (
    build_health_block,
    build_plan_prompt,
    build_questions_prompt,
    extract_json_object,
    fill,
    parse_analysis,
    parse_questions,
    strip_fences,
)
from vesper.summary import DaySummary


def test_parse_questions_numbered_list():
    text = "1. First?\n2) Second?\n3: Third?\n\n4 Fourth?\n5. Fifth?\n6. Sixth?"
    assert parse_questions(text) == ["First?", "Second?", "Third?", "Fourth?", "Fifth?"]


def test_parse_questions_falls_back_to_question_marks():
    text = "Here you go:\nWhat went well today?\nWhat blocked you?"
    assert parse_questions(text) == ["What went well today?", "What blocked you?"]


def test_parse_questions_empty_response():
    assert parse_questions("   ") == []


def test_strip_fences():
    assert strip_fences('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_fences('```\n{"a": 1}```') == '{"a": 1}'


def test_extract_json_object_ignores_surrounding_prose():
    text = 'Here is the plan:\n{"tasks":[],"events":[{"title":"Gym"}]}\nThanks!'
    assert extract_json_object(text) == {"tasks": [], "events": [{"title": "Gym"}]}


@pytest.mark.parametrize("text", ["no braces here", "} backwards {", '["list"]'])
def test_extract_json_object_errors(text):
    with pytest.raises(ValueError):
        extract_json_object(text)


def test_parse_analysis_clamps_and_reads_string_booleans():
    result = parse_analysis('{"xp": 900, "satisfied": "false", "feedback": "More depth"}')
    assert result.xp == 500
    assert result.satisfied is False
    assert result.feedback == "More depth"


def test_parse_analysis_unreadable_response_is_accepted():
    result = parse_analysis("I liked it a lot")
    assert (result.xp, result.satisfied) == (20, True)


def test_parse_analysis_finds_object_inside_prose():
    result = parse_analysis('Verdict:\n{"xp": 5, "satisfied": false, "feedback": "Go deeper"} thanks')
    assert (result.xp, result.satisfied, result.feedback) == (5, False, "Go deeper")


def test_parse_analysis_bad_xp_keeps_the_verdict():
    result = parse_analysis('{"xp": "lots", "satisfied": false, "feedback": null}')
    assert (result.xp, result.satisfied, result.feedback) == (10, False, "Good reflection.")


def test_fill_keeps_unknown_markers():
    assert fill("{a} and {b}", a=1) == "1 and {b}"


def test_questions_prompt_contains_day_data():
    summary = DaySummary(
        date=date(2024, 5, 6),
        calendar_events=[
            CalendarEvent(
                title="Deep work",
                start=datetime(2024, 5, 6, 9, tzinfo=timezone.utc),
                end=datetime(2024, 5, 6, 11, tzinfo=timezone.utc),
            )
        ],
        tasks_due=["Buy milk"],
        tasks_completed=["Email boss"],
        total_planned_minutes=120,
    )
    prompt = build_questions_prompt(summary, "I study", "HEALTH", "REPORT", "UTC")
    assert "Monday, May 6" in prompt
    assert "- 09:00: Deep work (120 min)" in prompt
    assert "- ✓ Email boss" in prompt
    assert "About the user:\nI study" in prompt
    assert "HEALTH" in prompt and "REPORT" in prompt
    assert "Efficiency: 0%" in prompt


def test_health_block_reports_limit_status():
    screen = ScreenTimeOutput(used_minutes=100, limit_minutes=60, xp_delta=-120, waking_minutes=900)
    block = build_health_block(screen, None)
    assert "OVER LIMIT by 40m" in block
    assert "-120 XP" in block
    assert "No data for previous day." in block
    assert build_health_block(None, None) == "No health data collected."


def test_plan_prompt_lists_task_lists():
    configs = [TaskListConfig(list_id="work", display_name="Work", description="Job")]
    prompt = build_plan_prompt("Write report at 9", configs)
    assert 'List Name: "Work" (ID: work)' in prompt
    assert "Write report at 9" in prompt
