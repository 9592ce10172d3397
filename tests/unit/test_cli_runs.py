import asyncio
from pathlib import Path

from typer.testing import CliRunner

import assessflow.persistence as persistence
from assessflow import FlowStatus, RunStatus
from assessflow.cli import app
from assessflow.persistence import InMemoryFlowRepository
from tests.fixtures.flows import build_trt_flow

GUIDE_FLOW = Path(__file__).resolve().parents[2] / "guides" / "trt_assessment.yaml"


def _setup_repo() -> InMemoryFlowRepository:
    repo = InMemoryFlowRepository()
    persistence._repository_instance = repo
    return repo


def test_flow_import_and_list():
    repo = _setup_repo()
    runner = CliRunner()

    result = runner.invoke(app, ["flow", "list"])
    assert result.exit_code == 0, f"Command failed. Output: {result.stdout}"
    assert "No flows found" in result.stdout

    result = runner.invoke(app, ["flow", "import", str(GUIDE_FLOW)])
    assert result.exit_code == 0, f"Command failed. Output: {result.stdout}"
    assert "Imported flow trt" in result.stdout
    assert asyncio.run(repo.load_flow("trt")) is not None

    result = runner.invoke(app, ["flow", "list"])
    assert "trt\tDRAFT" in result.stdout


def test_flow_validate_reports_errors(tmp_path):
    _setup_repo()
    broken = tmp_path / "broken.yaml"
    broken.write_text(
        """
id: broken
steps:
  - {id: a, type: INFORMATION}
"""
    )
    runner = CliRunner()

    result = runner.invoke(app, ["flow", "validate", str(broken)])
    assert result.exit_code == 1
    assert "missing_start_step" in result.stdout

    result = runner.invoke(app, ["flow", "validate", str(GUIDE_FLOW)])
    assert result.exit_code == 0, f"Command failed. Output: {result.stdout}"
    assert "Flow trt is valid" in result.stdout

    result = runner.invoke(app, ["flow", "validate", str(tmp_path / "nope.yaml")])
    assert result.exit_code == 1
    assert "does not exist" in result.stdout


def test_flow_publish():
    repo = _setup_repo()
    asyncio.run(repo.save_flow(build_trt_flow()))
    runner = CliRunner()

    result = runner.invoke(app, ["flow", "publish", "trt"])
    assert result.exit_code == 0, f"Command failed. Output: {result.stdout}"
    assert "Flow trt published" in result.stdout
    assert asyncio.run(repo.load_flow("trt")).status == FlowStatus.ACTIVE

    result = runner.invoke(app, ["flow", "publish", "missing"])
    assert result.exit_code == 1
    assert "Flow not found" in result.stdout


def test_run_start_submit_and_show():
    repo = _setup_repo()
    asyncio.run(repo.save_flow(build_trt_flow()))
    runner = CliRunner()

    result = runner.invoke(app, ["run", "start", "trt", "--subject", "patient-1"])
    assert result.exit_code == 0, f"Command failed. Output: {result.stdout}"
    assert "Current step: welcome [INFORMATION]" in result.stdout
    run_id = asyncio.run(repo.list_runs("trt"))[0].id

    result = runner.invoke(app, ["run", "submit", run_id, "welcome"])
    assert result.exit_code == 0, f"Command failed. Output: {result.stdout}"
    assert "Next step: age" in result.stdout

    result = runner.invoke(app, ["run", "submit", run_id, "welcome"])
    assert result.exit_code == 1
    assert "is at step age" in result.stdout

    result = runner.invoke(app, ["run", "submit", run_id, "age", "--value", "16"])
    assert result.exit_code == 0, f"Command failed. Output: {result.stdout}"
    assert f"Run {run_id} completed" in result.stdout

    result = runner.invoke(app, ["run", "show", run_id])
    assert result.exit_code == 0
    assert "COMPLETED" in result.stdout
    assert '- age: {"value": 16}' in result.stdout

    result = runner.invoke(app, ["run", "list", "--flow", "trt"])
    assert run_id in result.stdout


def test_run_start_unknown_flow():
    _setup_repo()
    result = CliRunner().invoke(app, ["run", "start", "missing", "--subject", "p"])
    assert result.exit_code == 1
    assert "Cannot begin assessment" in result.stdout


def test_run_review():
    repo = _setup_repo()
    run = asyncio.run(repo.create_run("trt", "patient-1", None))
    asyncio.run(repo.update_run_status(run.id, RunStatus.COMPLETED))
    runner = CliRunner()

    result = runner.invoke(app, ["run", "review", run.id, "--status", "reviewed"])
    assert result.exit_code == 0, f"Command failed. Output: {result.stdout}"
    assert "REVIEWED" in result.stdout

    result = runner.invoke(app, ["run", "review", run.id, "--status", "approved"])
    assert result.exit_code == 1
    assert "Unknown status approved" in result.stdout


def test_missing_run():
    _setup_repo()
    runner = CliRunner()
    result = runner.invoke(app, ["run", "show", "missing-id"])
    assert result.exit_code == 1
    assert "Run not found" in result.stdout

    result = runner.invoke(app, ["run", "list"])
    assert "No runs found" in result.stdout
