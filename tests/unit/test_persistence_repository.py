from datetime import date

import pytest

from vesper.persistence import (
    InMemoryStepRepository,
    SQLiteStepRepository,
    StepStatus,
)

DAY = date(2024, 5, 6)


@pytest.fixture(params=["memory", "sqlite"])
def repo(request, tmp_path):
    if request.param == "memory":
        return InMemoryStepRepository()
    return SQLiteStepRepository(tmp_path / "steps.db")


@pytest.mark.asyncio
async def test_missing_step_reads_as_pending(repo):
    record = await repo.get_step(DAY, 3)
    assert record.status == StepStatus.PENDING
    assert record.result_json is None
    assert record.details is None


@pytest.mark.asyncio
async def test_put_step_is_an_idempotent_upsert(repo):
    await repo.put_step(DAY, 1, StepStatus.RUNNING, "Running...")
    await repo.put_step(DAY, 1, StepStatus.COMPLETED, "1 done", '{"output": {}}', "https://x")
    await repo.put_step(DAY, 1, StepStatus.COMPLETED, "1 done", '{"output": {}}', "https://x")

    steps = await repo.list_steps(DAY)
    assert len(steps) == 1
    record = steps[0]
    assert record.status == StepStatus.COMPLETED
    assert record.details == "1 done"
    assert record.result_json == '{"output": {}}'
    assert record.link_url == "https://x"


@pytest.mark.asyncio
async def test_completed_never_regresses_to_pending(repo):
    await repo.put_step(DAY, 2, StepStatus.COMPLETED, "done", '{"output": {}}')
    await repo.put_step(DAY, 2, StepStatus.PENDING, None)

    record = await repo.get_step(DAY, 2)
    assert record.status == StepStatus.COMPLETED
    assert record.result_json == '{"output": {}}'

    # re-running after a corrupt result may move it on to RUNNING or ERROR
    await repo.put_step(DAY, 2, StepStatus.ERROR, "boom")
    assert (await repo.get_step(DAY, 2)).status == StepStatus.ERROR


@pytest.mark.asyncio
async def test_steps_are_scoped_by_date(repo):
    await repo.put_step(DAY, 1, StepStatus.COMPLETED, "a")
    await repo.put_step(date(2024, 5, 7), 1, StepStatus.ERROR, "b")
    assert (await repo.get_step(DAY, 1)).details == "a"
    assert [r.step_id for r in await repo.list_steps(DAY)] == [1]


@pytest.mark.asyncio
async def test_session_record_updates(repo):
    assert await repo.get_session(DAY) is None
    await repo.update_session(DAY)
    session = await repo.get_session(DAY)
    assert session is not None
    assert session.started_at is not None

    await repo.update_session(DAY, diary_doc_id="doc-1", reflection_xp=120)
    await repo.update_session(DAY, report_content="# Report")
    session = await repo.get_session(DAY)
    assert session.diary_doc_id == "doc-1"
    assert session.reflection_xp == 120
    assert session.report_content == "# Report"

    with pytest.raises(ValueError):
        await repo.update_session(DAY, unknown="x")


@pytest.mark.asyncio
async def test_list_and_clear_sessions(repo):
    await repo.update_session(date(2024, 5, 5))
    await repo.update_session(DAY, plan_doc_id="plan-1")
    await repo.put_step(DAY, 8, StepStatus.COMPLETED, "Ready to Edit")

    sessions = await repo.list_sessions()
    assert [s.session_date for s in sessions] == [DAY, date(2024, 5, 5)]

    await repo.clear_session(DAY)
    assert await repo.get_session(DAY) is None
    assert await repo.list_steps(DAY) == []
    assert (await repo.get_step(DAY, 8)).status == StepStatus.PENDING
