import pytest

from assessflow import FlowStatus, InvalidStepError, RunNotFoundError, RunStatus
from assessflow.persistence import InMemoryFlowRepository, SQLiteFlowRepository
from assessflow.persistence.models import utcnow
from tests.fixtures.flows import build_trt_flow


@pytest.fixture(params=["memory", "sqlite"])
def repo(request, tmp_path):
    if request.param == "memory":
        return InMemoryFlowRepository()
    return SQLiteFlowRepository(tmp_path / "flows.db")


@pytest.mark.asyncio
async def test_flow_round_trip(repo):
    flow = build_trt_flow()
    await repo.save_flow(flow)

    loaded = await repo.load_flow(flow.id)
    assert loaded is not None
    assert loaded.title == flow.title
    assert loaded.start_step_id == "welcome"
    assert [s.id for s in loaded.steps] == [s.id for s in flow.steps]
    assert [t.id for t in loaded.transitions] == [t.id for t in flow.transitions]
    assert loaded.step("age").config == {"question_type": "number", "text": "What is your age?"}
    assert loaded.outgoing("age")[0].condition == flow.outgoing("age")[0].condition
    assert [t.to_step_id for t in loaded.outgoing("severity")] == ["lab_info", "alt_care"]

    assert await repo.load_flow("missing") is None
    assert [f.id for f in await repo.list_flows()] == [flow.id]


@pytest.mark.asyncio
async def test_save_flow_replaces_graph(repo):
    flow = build_trt_flow()
    await repo.save_flow(flow)

    flow.status = FlowStatus.ACTIVE
    flow.transitions = [t for t in flow.transitions if t.from_step_id != "severity"]
    flow.reindex()
    await repo.save_flow(flow)

    loaded = await repo.load_flow(flow.id)
    assert loaded.status == FlowStatus.ACTIVE
    assert loaded.outgoing("severity") == []


@pytest.mark.asyncio
async def test_load_step_scoped_by_flow(repo):
    await repo.save_flow(build_trt_flow())

    step = await repo.load_step("age")
    assert step.type == "QUESTION"
    assert (await repo.load_step("age", flow_id="trt")).id == "age"
    assert await repo.load_step("age", flow_id="other") is None
    assert await repo.load_step("missing") is None


@pytest.mark.asyncio
async def test_run_lifecycle(repo):
    run = await repo.create_run("trt", "patient-1", "welcome")
    assert run.status == RunStatus.DRAFT
    assert run.current_step_id == "welcome"

    first = await repo.save_step_response(run.id, "welcome", {"acknowledged": True})
    second = await repo.save_step_response(run.id, "age", {"value": 34})
    assert second.id > first.id
    stored = await repo.load_responses(run.id)
    assert [(r.step_id, r.data) for r in stored] == [
        ("welcome", {"acknowledged": True}),
        ("age", {"value": 34}),
    ]

    moved = await repo.update_run_position(run.id, "symptoms")
    assert moved.current_step_id == "symptoms"

    finished_at = utcnow()
    await repo.update_run_position(run.id, None)
    done = await repo.update_run_status(run.id, RunStatus.COMPLETED, completed_at=finished_at)
    assert done.status == RunStatus.COMPLETED
    assert done.current_step_id is None
    assert done.completed_at == finished_at

    reviewed = await repo.update_run_status(run.id, RunStatus.REVIEWED)
    assert reviewed.completed_at == finished_at

    fetched = await repo.get_run(run.id)
    assert fetched.status == RunStatus.REVIEWED
    assert fetched.subject_id == "patient-1"


@pytest.mark.asyncio
async def test_list_runs_filters_by_flow(repo):
    first = await repo.create_run("trt", "p1", "welcome")
    second = await repo.create_run("other", "p2", "start")

    assert {r.id for r in await repo.list_runs()} == {first.id, second.id}
    assert [r.id for r in await repo.list_runs("trt")] == [first.id]


@pytest.mark.asyncio
async def test_unknown_run(repo):
    assert await repo.get_run("missing") is None
    assert await repo.load_responses("missing") == []
    with pytest.raises(RunNotFoundError):
        await repo.save_step_response("missing", "age", {"value": 1})
    with pytest.raises(RunNotFoundError):
        await repo.update_run_status("missing", RunStatus.COMPLETED)
    with pytest.raises(RunNotFoundError):
        await repo.update_run_position("missing", "age")


@pytest.mark.asyncio
async def test_sqlite_survives_reopen(tmp_path):
    db_path = tmp_path / "flows.db"
    repo = SQLiteFlowRepository(db_path)
    await repo.save_flow(build_trt_flow())
    run = await repo.create_run("trt", "p1", "welcome")
    await repo.save_step_response(run.id, "welcome", {"acknowledged": True})

    reopened = SQLiteFlowRepository(db_path)
    assert (await reopened.load_flow("trt")).start_step_id == "welcome"
    assert len(await reopened.load_responses(run.id)) == 1


@pytest.mark.asyncio
async def test_record_submission_advances_only_from_current_step(repo):
    run = await repo.create_run("trt", "p1", "welcome")

    response, moved = await repo.record_submission(run.id, "welcome", {"acknowledged": True}, "age")
    assert response.step_id == "welcome"
    assert moved.current_step_id == "age"

    with pytest.raises(InvalidStepError) as exc_info:
        await repo.record_submission(run.id, "welcome", {"acknowledged": True}, "age")
    assert exc_info.value.expected_step_id == "age"
    assert [r.step_id for r in await repo.load_responses(run.id)] == ["welcome"]


@pytest.mark.asyncio
async def test_record_submission_completes_run(repo):
    run = await repo.create_run("trt", "p1", "age")
    finished_at = utcnow()

    _, done = await repo.record_submission(run.id, "age", {"value": 16}, None, completed_at=finished_at)
    assert done.status == RunStatus.COMPLETED
    assert done.current_step_id is None
    assert done.completed_at == finished_at

    with pytest.raises(InvalidStepError):
        await repo.record_submission(run.id, "age", {"value": 20}, "symptoms")
    assert len(await repo.load_responses(run.id)) == 1
    with pytest.raises(RunNotFoundError):
        await repo.record_submission("missing", "age", {"value": 20}, None)
