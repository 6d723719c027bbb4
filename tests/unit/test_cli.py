import asyncio
from datetime import date

import pytest
from typer.testing import CliRunner

from conftest import build_services
from vesper.cli import app
from vesper.persistence import InMemoryStepRepository, StepStatus, reset_repository, set_repository

DAY = date(2024, 5, 6)


def _services(config):
    return build_services()


@pytest.fixture
def repo(tmp_path, monkeypatch):
    config_path = tmp_path / "vesper.yaml"
    config_path.write_text(
        f"timezone: UTC\nai:\n  model: test:model\nservices_factory: '{__name__}:_services'\n"
    )
    monkeypatch.setenv("VESPER_CONFIG", str(config_path))
    monkeypatch.delenv("VESPER_AI_MODEL", raising=False)
    repository = InMemoryStepRepository()
    set_repository(repository)
    yield repository
    reset_repository()


def test_step_command_runs_one_step(repo):
    runner = CliRunner()
    result = runner.invoke(app, ["step", "1", "2024-05-06"])
    assert result.exit_code == 0, result.stdout
    assert "Fetch Tasks" in result.stdout
    assert "COMPLETED" in result.stdout
    assert asyncio.run(repo.get_step(DAY, 1)).status == StepStatus.COMPLETED


def test_step_command_exit_codes(repo):
    runner = CliRunner()
    assert runner.invoke(app, ["step", "99", "2024-05-06"]).exit_code == 2
    # diary without questions is a terminal error
    assert runner.invoke(app, ["step", "5", "2024-05-06"]).exit_code == 1
    assert runner.invoke(app, ["step", "1", "06/05/2024"]).exit_code == 2


def test_phase_and_session_commands(repo):
    runner = CliRunner()
    result = runner.invoke(app, ["phase", "collection", "2024-05-06"])
    assert result.exit_code == 0, result.stdout
    assert "Create Diary Document" in result.stdout

    listed = runner.invoke(app, ["session", "list"])
    assert "2024-05-06" in listed.stdout

    shown = runner.invoke(app, ["session", "show", "2024-05-06"])
    assert shown.exit_code == 0, shown.stdout
    assert "Session 2024-05-06: PENDING_REFLECTION" in shown.stdout
    assert "5 AI Questions Generated" in shown.stdout
    assert "Analyze Reflection: PENDING" in shown.stdout


def test_session_reset_requires_confirmation(repo):
    asyncio.run(repo.put_step(DAY, 1, StepStatus.COMPLETED, "done"))
    asyncio.run(repo.update_session(DAY, diary_doc_id="doc-1"))
    runner = CliRunner()

    refused = runner.invoke(app, ["session", "reset", "2024-05-06"])
    assert refused.exit_code == 1
    assert asyncio.run(repo.get_step(DAY, 1)).status == StepStatus.COMPLETED

    done = runner.invoke(app, ["session", "reset", "2024-05-06", "--yes"])
    assert done.exit_code == 0
    assert asyncio.run(repo.get_step(DAY, 1)).status == StepStatus.PENDING
    assert asyncio.run(repo.get_session(DAY)) is None


def test_session_list_empty(repo):
    result = CliRunner().invoke(app, ["session", "list"])
    assert "No sessions found" in result.stdout
