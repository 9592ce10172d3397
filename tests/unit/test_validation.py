"""Tests for flow validation and publishing."""

import pytest

from assessflow import Flow, FlowBuilder, FlowStatus, FlowValidationError, Step, Transition, publish_flow, validate
from assessflow.validation import IssueKind, IssueSeverity
from tests.fixtures.flows import build_trt_flow


def _kinds(result):
    return {issue.kind for issue in result.errors}


def test_trt_flow_is_valid():
    result = validate(build_trt_flow())
    assert result.is_valid
    assert result.errors == []


def test_validation_is_idempotent():
    flow = build_trt_flow()
    flow.transitions.append(Transition(from_step_id="age", to_step_id="nowhere"))
    flow.reindex()
    assert validate(flow) == validate(flow)


def test_missing_start_step():
    flow = Flow(id="f", steps=[Step(id="a", type="INFORMATION")])
    result = validate(flow)
    assert IssueKind.MISSING_START_STEP in _kinds(result)
    assert not result.is_valid


def test_start_step_not_in_flow():
    flow = Flow(id="f", start_step_id="ghost", steps=[Step(id="a", type="INFORMATION")])
    assert IssueKind.START_STEP_NOT_IN_FLOW in _kinds(validate(flow))

    foreign = Flow(id="f", start_step_id="a", steps=[Step(id="a", flow_id="other", type="INFORMATION")])
    kinds = _kinds(validate(foreign))
    assert IssueKind.START_STEP_NOT_IN_FLOW in kinds
    assert IssueKind.CROSS_FLOW_REFERENCE in kinds


def test_duplicate_step_ids():
    flow = Flow(
        id="f",
        start_step_id="a",
        steps=[Step(id="a", type="INFORMATION"), Step(id="a", type="INFORMATION")],
    )
    assert IssueKind.DUPLICATE_STEP_ID in _kinds(validate(flow))


def test_dangling_and_no_valid_outgoing():
    flow = Flow(
        id="f",
        start_step_id="a",
        steps=[Step(id="a", type="INFORMATION")],
        transitions=[Transition(id="t1", from_step_id="a", to_step_id="gone")],
    )
    kinds = _kinds(validate(flow))
    assert IssueKind.DANGLING_TRANSITION in kinds
    assert IssueKind.NO_VALID_OUTGOING in kinds


def test_unreachable_steps():
    builder = FlowBuilder(flow_id="f")
    builder.add_step("INFORMATION", step_id="start")
    builder.add_step("INFORMATION", step_id="island")
    builder.add_step("INFORMATION", step_id="island_end")
    builder.add_step("PROVIDER_REVIEW", step_id="orphan_review")
    builder.add_transition("island", "island_end")
    builder.set_start_step("start")
    result = validate(builder.build())

    by_step = {issue.step_id: issue for issue in result.errors}
    assert by_step["island"].kind == IssueKind.UNREACHABLE_STEP
    assert by_step["island"].severity == IssueSeverity.ERROR
    assert by_step["island_end"].kind == IssueKind.UNREACHABLE_TERMINAL_STEP
    assert by_step["orphan_review"].severity == IssueSeverity.WARNING


def test_conditions_are_checked():
    flow = build_trt_flow()
    flow.transitions.append(
        Transition(
            id="bad_op",
            from_step_id="alt_care",
            to_step_id="treatment",
            condition={"rules": [{"step_id": "age", "operator": "between", "value": [1, 2]}]},
        )
    )
    flow.transitions.append(
        Transition(
            id="bad_step",
            from_step_id="alt_care",
            to_step_id="provider_review",
            condition={"logic": "NAND", "rules": [{"step_id": "weight", "operator": "equals", "value": 1}]},
        )
    )
    flow.reindex()
    issues = validate(flow).errors

    assert any(i.transition_id == "bad_op" and i.kind == IssueKind.INVALID_CONDITION for i in issues)
    assert any(i.transition_id == "bad_step" and i.kind == IssueKind.CONDITION_UNKNOWN_STEP for i in issues)
    assert any("NAND" in i.message for i in issues)


def test_invalid_step_config():
    flow = Flow(
        id="f",
        start_step_id="q",
        steps=[Step(id="q", type="QUESTION", config={"question_type": "number"})],
    )
    issues = validate(flow).errors
    assert [i.kind for i in issues] == [IssueKind.INVALID_STEP_CONFIG]
    assert "text" in issues[0].message


def test_shadowing_warnings_do_not_block():
    builder = FlowBuilder(flow_id="f")
    for step_id in ("s", "a", "b"):
        builder.add_step("INFORMATION", step_id=step_id)
    builder.add_transition("s", "a", order=1, transition_id="always")
    builder.add_transition(
        "s",
        "b",
        condition={"rules": [{"step_id": "s", "operator": "equals", "value": 1}]},
        order=1,
        transition_id="never",
    )
    builder.set_start_step("s")
    result = validate(builder.build())

    assert result.is_valid
    kinds = {w.kind for w in result.warnings}
    assert kinds == {IssueKind.DEAD_TRANSITION, IssueKind.AMBIGUOUS_ORDER}


def test_publish_activates_valid_flow():
    flow = build_trt_flow()
    assert flow.status == FlowStatus.DRAFT
    assert publish_flow(flow).status == FlowStatus.ACTIVE


def test_publish_reports_every_error():
    flow = Flow(
        id="f",
        steps=[Step(id="a", type="INFORMATION")],
        transitions=[Transition(from_step_id="a", to_step_id="gone")],
    )
    with pytest.raises(FlowValidationError) as exc_info:
        publish_flow(flow)
    kinds = {issue.kind for issue in exc_info.value.issues}
    assert {IssueKind.MISSING_START_STEP, IssueKind.DANGLING_TRANSITION} <= kinds
    assert flow.status == FlowStatus.DRAFT


def test_camel_case_step_configs_pass_validation():
    flow = Flow(
        id="f",
        start_step_id="welcome",
        steps=[
            Step(id="welcome", type="INFORMATION", config={"content": "Hi", "continueButton": "Start"}),
            Step(id="age", type="QUESTION", config={"questionType": "number", "text": "Age?"}),
        ],
        transitions=[Transition(from_step_id="welcome", to_step_id="age")],
    )
    assert validate(flow).errors == []
