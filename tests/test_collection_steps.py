"""Phase 1 step tests."""

from datetime import timedelta

import pytest

from conftest import SESSION_DATE
from vesper.adapters.base import AppUsage, Folder, TaskService
from vesper.constants import StepId
from vesper.envelopes import QuestionsOutput, ScreenTimeOutput, TaskFetchOutput, decode_envelope
from vesper.persistence import StepStatus
from vesper.steps import get_step


async def run_steps(ctx, *step_ids):
    return [await get_step(step_id).run(ctx) for step_id in step_ids]


class BrokenTasks(TaskService):
    async def create_task(self, title, notes, due, list_id):
        raise ConnectionError("offline")

    async def list_tasks(self, list_id):
        raise ConnectionError("offline")

    async def delete_task(self, list_id, task_id):
        raise ConnectionError("offline")

    async def list_lists(self):
        raise ConnectionError("offline")


@pytest.mark.asyncio
async def test_fetch_tasks_feeds_day_summary(ctx, repository):
    assert await run_steps(ctx, StepId.FETCH_TASKS) == [StepStatus.COMPLETED]

    record = await repository.get_step(SESSION_DATE, 1)
    assert record.details == "1 done, 1 pending"
    output = decode_envelope(record.result_json, TaskFetchOutput).output
    assert output.due_tasks == ["Buy milk"]
    assert output.completed_tasks == ["Email boss"]

    summary = await ctx.ensure_day_summary()
    assert len(summary.tasks_due) == 1
    assert len(summary.tasks_completed) == 1


@pytest.mark.asyncio
async def test_fetch_tasks_failure_is_best_effort(ctx, services, repository, listener):
    services.tasks = BrokenTasks()
    assert await run_steps(ctx, StepId.FETCH_TASKS) == [StepStatus.COMPLETED]
    record = await repository.get_step(SESSION_DATE, 1)
    assert record.details == "0 done, 0 pending"
    assert listener.of("error") == []


@pytest.mark.asyncio
async def test_fetch_sessions_counts(ctx, repository):
    await run_steps(ctx, StepId.FETCH_TASKS, StepId.FETCH_SESSIONS)
    record = await repository.get_step(SESSION_DATE, 2)
    assert record.status == StepStatus.COMPLETED
    assert record.details == "1 sessions, 1 events"


@pytest.mark.asyncio
async def test_screen_time_excludes_system_packages(ctx, services, repository):
    services.usage.apps = [
        AppUsage(package="com.whatsapp", foreground_ms=120 * 60000),
        AppUsage(package="com.android.systemui", foreground_ms=30 * 60000),
        AppUsage(package="com.nova.Launcher", foreground_ms=30 * 60000),
        AppUsage(package="com.negative", foreground_ms=-5),
    ]
    await run_steps(ctx, StepId.CALC_SCREEN_TIME)

    record = await repository.get_step(SESSION_DATE, 3)
    output = decode_envelope(record.result_json, ScreenTimeOutput).output
    # 22:00 on the session date: 1320 minutes elapsed, no sleep recorded
    assert output.waking_minutes == 1320
    assert output.total_phone_minutes == 120
    assert output.phoneless_minutes == 1200
    assert output.reality_ratio == 90
    assert output.used_minutes == 60
    assert output.limit_minutes == 90
    assert output.xp_delta == 90
    assert output.steps == 8000
    assert record.details == "60m Distractions • 120 Total • 90% Reality"


@pytest.mark.asyncio
async def test_screen_time_without_limit_has_no_xp(ctx, services, repository):
    await services.key_value.put("nightly", "screen_time_limit_minutes", "")
    await run_steps(ctx, StepId.CALC_SCREEN_TIME)
    output = decode_envelope(
        (await repository.get_step(SESSION_DATE, 3)).result_json, ScreenTimeOutput
    ).output
    assert output.limit_minutes == 0
    assert output.xp_delta == 0


@pytest.mark.asyncio
async def test_questions_require_an_ai_model(ctx, config, ai, repository, listener):
    config.ai.model = None
    assert await run_steps(ctx, StepId.GENERATE_QUESTIONS) == [StepStatus.ERROR]
    record = await repository.get_step(SESSION_DATE, 4)
    assert "No AI Model" in record.details
    assert listener.of("error")
    assert ai.prompts == []


@pytest.mark.asyncio
async def test_questions_generated_and_announced(ctx, ai, repository, listener):
    await repository.update_session(SESSION_DATE - timedelta(days=2), report_content="OLD REPORT")
    statuses = await run_steps(
        ctx, StepId.FETCH_TASKS, StepId.FETCH_SESSIONS, StepId.CALC_SCREEN_TIME, StepId.GENERATE_QUESTIONS
    )
    assert statuses == [StepStatus.COMPLETED] * 4

    record = await repository.get_step(SESSION_DATE, 4)
    envelope = decode_envelope(record.result_json, QuestionsOutput)
    assert envelope.output.count == 5
    assert envelope.input["model"] == "test:model"
    assert record.details == "5 AI Questions Generated"
    assert listener.of("questions")[0][1] == envelope.output.questions

    _, _, prompt = ai.prompts[0]
    assert "OLD REPORT" in prompt
    assert "Digital Health Analysis" in prompt


@pytest.mark.asyncio
async def test_questions_with_empty_ai_answer_fail(ctx, ai, repository):
    ai.responses["questions"] = "I cannot help with that."
    assert await run_steps(ctx, StepId.GENERATE_QUESTIONS) == [StepStatus.ERROR]


@pytest.mark.asyncio
async def test_diary_requires_questions(ctx, repository):
    assert await run_steps(ctx, StepId.CREATE_DIARY) == [StepStatus.ERROR]
    record = await repository.get_step(SESSION_DATE, 5)
    assert record.details == "Questions not generated. Please run Step 4 first."


@pytest.mark.asyncio
async def test_diary_created_and_remembered(ctx, services, repository):
    statuses = await run_steps(ctx, *range(1, 6))
    assert statuses == [StepStatus.COMPLETED] * 5

    record = await repository.get_step(SESSION_DATE, 5)
    assert record.details == "Diary of 06-05-2024"
    docs = services.documents.documents
    assert len(docs) == 1
    doc_id, doc = next(iter(docs.items()))
    assert doc["folder_id"] == "folder-diary"
    assert doc["title"] == "Diary of 06-05-2024"
    assert "Monday, May 6, 2024" in doc["content"]
    assert "### Q1: What pulled you away from the deep work block?" in doc["content"]
    assert "- ✓ Email boss" in doc["content"]
    assert "- ○ Buy milk (pending)" in doc["content"]
    assert "- **09:00 - 11:00**: Deep work" in doc["content"]
    assert "{questions}" not in doc["content"]

    assert record.link_url == f"https://docs.google.com/document/d/{doc_id}"
    assert await services.key_value.get("nightly", "diary_doc_id_2024-05-06") == doc_id
    assert (await repository.get_session(SESSION_DATE)).diary_doc_id == doc_id
    assert ctx.diary_doc_id == doc_id


@pytest.mark.asyncio
async def test_diary_reuses_written_document(ctx, services):
    existing = services.documents.add_document(
        "Diary of 06-05-2024",
        "Today I wrote a long and thoughtful reflection about my study day.",
        folder_id="folder-diary",
    )
    await run_steps(ctx, *range(1, 6))

    assert list(services.documents.documents) == [existing]
    assert services.documents.documents[existing]["content"].startswith("Today I wrote")
    assert "### Q1" not in services.documents.documents[existing]["content"]
    assert await services.key_value.get("nightly", "diary_doc_id_2024-05-06") == existing


@pytest.mark.asyncio
async def test_diary_fills_template_left_with_placeholders(ctx, services):
    existing = services.documents.add_document(
        "Diary of 06-05-2024", "# Diary\n{data}\n{questions}\n", folder_id="folder-diary"
    )
    await run_steps(ctx, *range(1, 6))
    assert "### Q5:" in services.documents.documents[existing]["content"]


@pytest.mark.asyncio
async def test_diary_folder_resolved_from_root(ctx, services):
    await services.key_value.put("nightly", "diary_folder_id", "")
    await services.key_value.put("nightly", "reality_folder_id", "root")
    services.documents.subfolders["root"] = [
        Folder(id="f-plans", name="2 Plans"),
        Folder(id="f-diary", name="1 Diary"),
    ]
    await run_steps(ctx, *range(1, 6))
    doc = next(iter(services.documents.documents.values()))
    assert doc["folder_id"] == "f-diary"


@pytest.mark.asyncio
async def test_diary_without_any_folder_fails(ctx, services, repository):
    await services.key_value.put("nightly", "diary_folder_id", "")
    statuses = await run_steps(ctx, *range(1, 6))
    assert statuses[-1] == StepStatus.ERROR
    assert (await repository.get_step(SESSION_DATE, 5)).details == "Diary folder not configured"
