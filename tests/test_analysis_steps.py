"""Phase 2 step tests: reflection analysis and XP finalization."""

import pytest

from conftest import ANALYSIS_REJECTED, SESSION_DATE
from vesper.constants import StepId
from vesper.envelopes import ReflectionOutput, XpOutput, decode_envelope
from vesper.persistence import StepStatus
from vesper.steps import get_step


async def prepare_diary(ctx, services, content):
    doc_id = services.documents.add_document("Diary of 06-05-2024", content, "folder-diary")
    await ctx.repository.update_session(SESSION_DATE, diary_doc_id=doc_id)
    return doc_id


REFLECTION = (
    "Q1: I lost focus after lunch because I kept checking messages. "
    "Tomorrow I will leave the phone in another room."
)


@pytest.mark.asyncio
async def test_reflection_accepted_writes_xp(ctx, services, repository, listener):
    await prepare_diary(ctx, services, REFLECTION)
    status = await get_step(StepId.ANALYZE_REFLECTION).run(ctx)
    assert status == StepStatus.COMPLETED

    record = await repository.get_step(SESSION_DATE, 6)
    assert record.details == 'Accepted! XP: 120. "Honest and specific."'
    output = decode_envelope(record.result_json, ReflectionOutput).output
    assert output.accepted is True
    assert services.gamification.reflection_xp[SESSION_DATE] == 120
    assert (await repository.get_session(SESSION_DATE)).reflection_xp == 120
    assert listener.of("feedback") == []


@pytest.mark.asyncio
async def test_unsatisfied_reflection_is_a_soft_rejection(ctx, services, ai, repository, listener):
    ai.responses["analysis"] = ANALYSIS_REJECTED
    await prepare_diary(ctx, services, REFLECTION)

    status = await get_step(StepId.ANALYZE_REFLECTION).run(ctx)

    assert status == StepStatus.ERROR
    record = await repository.get_step(SESSION_DATE, 6)
    assert record.status == StepStatus.ERROR
    assert record.details == "Rejected: too short"
    assert listener.of("feedback") == [("feedback", "too short")]
    assert listener.of("error") == []
    assert SESSION_DATE not in services.gamification.reflection_xp


@pytest.mark.asyncio
async def test_rejection_wrapped_in_prose_is_still_a_rejection(ctx, services, ai, repository, listener):
    ai.responses["analysis"] = "Here is my verdict:\n" + ANALYSIS_REJECTED + "\nKeep writing!"
    await prepare_diary(ctx, services, REFLECTION)

    assert await get_step(StepId.ANALYZE_REFLECTION).run(ctx) == StepStatus.ERROR
    assert (await repository.get_step(SESSION_DATE, 6)).details == "Rejected: too short"
    assert listener.of("feedback") == [("feedback", "too short")]
    assert SESSION_DATE not in services.gamification.reflection_xp


@pytest.mark.asyncio
async def test_rejected_reflection_can_be_retried_after_editing(ctx, services, ai, repository):
    ai.responses["analysis"] = ANALYSIS_REJECTED
    await prepare_diary(ctx, services, REFLECTION)
    assert await get_step(StepId.ANALYZE_REFLECTION).run(ctx) == StepStatus.ERROR

    ai.responses["analysis"] = '```json\n{"xp": 80, "satisfied": true, "feedback": "Better."}\n```'
    assert await get_step(StepId.ANALYZE_REFLECTION).run(ctx) == StepStatus.COMPLETED
    assert services.gamification.reflection_xp[SESSION_DATE] == 80


@pytest.mark.asyncio
async def test_short_diary_is_rejected_without_ai(ctx, services, ai, listener):
    await prepare_diary(ctx, services, "ok")
    assert await get_step(StepId.ANALYZE_REFLECTION).run(ctx) == StepStatus.ERROR
    assert listener.of("feedback") == [
        ("feedback", "Diary seems empty. Please write your reflection first.")
    ]
    assert ai.prompts == []


@pytest.mark.asyncio
async def test_analysis_reads_live_document(ctx, services, repository, ai):
    doc_id = await prepare_diary(ctx, services, "")
    services.documents.documents[doc_id]["content"] = REFLECTION
    await get_step(StepId.ANALYZE_REFLECTION).run(ctx)
    _, _, prompt = ai.prompts[0]
    assert "leave the phone in another room" in prompt


@pytest.mark.asyncio
async def test_missing_diary_is_a_hard_error(ctx, listener):
    assert await get_step(StepId.ANALYZE_REFLECTION).run(ctx) == StepStatus.ERROR
    assert listener.of("error")


@pytest.mark.asyncio
async def test_finalize_xp_uses_remote_calendar(ctx, services, repository):
    await services.gamification.set_reflection_xp(SESSION_DATE, 150)
    status = await get_step(StepId.FINALIZE_XP).run(ctx)
    assert status == StepStatus.COMPLETED

    record = await repository.get_step(SESSION_DATE, 7)
    output = decode_envelope(record.result_json, XpOutput).output
    assert output.session_xp == 100
    assert output.reflection_xp == 150
    assert output.total_xp == 250
    assert output.streak == 1
    assert record.details == "XP: +250 | Level 1 | 1 Day Streak"
