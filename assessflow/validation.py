"""Structural validation of flow graphs before publishing."""

from __future__ import annotations

import logging
from collections import deque
from enum import Enum
from typing import Dict, List, Optional, Set

from pydantic import BaseModel, Field, ValidationError

from .constants import KNOWN_LOGIC, KNOWN_OPERATORS, FlowStatus
from .contracts import Condition, Flow, Rule, Transition
from .errors import FlowValidationError
from .registry import REGISTRY, StepTypeRegistry

logger = logging.getLogger(__name__)


class IssueSeverity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


class IssueKind(str, Enum):
    MISSING_START_STEP = "missing_start_step"
    START_STEP_NOT_IN_FLOW = "start_step_not_in_flow"
    DUPLICATE_STEP_ID = "duplicate_step_id"
    CROSS_FLOW_REFERENCE = "cross_flow_reference"
    DANGLING_TRANSITION = "dangling_transition"
    UNREACHABLE_STEP = "unreachable_step"
    UNREACHABLE_TERMINAL_STEP = "unreachable_terminal_step"
    NO_VALID_OUTGOING = "no_valid_outgoing"
    DEAD_TRANSITION = "dead_transition"
    AMBIGUOUS_ORDER = "ambiguous_order"
    INVALID_CONDITION = "invalid_condition"
    CONDITION_UNKNOWN_STEP = "condition_unknown_step"
    INVALID_STEP_CONFIG = "invalid_step_config"


class ValidationIssue(BaseModel):
    kind: IssueKind
    severity: IssueSeverity = IssueSeverity.ERROR
    message: str
    step_id: Optional[str] = None
    transition_id: Optional[str] = None


class ValidationResult(BaseModel):
    """All issues found in one validation pass, errors and warnings alike."""

    flow_id: str
    errors: List[ValidationIssue] = Field(default_factory=list)

    @property
    def blocking(self) -> List[ValidationIssue]:
        return [i for i in self.errors if i.severity == IssueSeverity.ERROR]

    @property
    def warnings(self) -> List[ValidationIssue]:
        return [i for i in self.errors if i.severity == IssueSeverity.WARNING]

    @property
    def is_valid(self) -> bool:
        return not self.blocking


class FlowValidator:
    """Checks a flow graph for problems that would break traversal."""

    def __init__(self, registry: Optional[StepTypeRegistry] = None) -> None:
        self._registry = registry or REGISTRY

    def validate(self, flow: Flow) -> ValidationResult:
        issues: List[ValidationIssue] = []
        issues.extend(self._check_steps(flow))
        issues.extend(self._check_start(flow))
        issues.extend(self._check_transitions(flow))
        issues.extend(self._check_outgoing(flow))
        issues.extend(self._check_reachability(flow))
        return ValidationResult(flow_id=flow.id, errors=issues)

    # ------------------------------------------------------------------
    def _check_steps(self, flow: Flow) -> List[ValidationIssue]:
        issues: List[ValidationIssue] = []
        seen: Set[str] = set()
        for step in flow.steps:
            if step.id in seen:
                issues.append(
                    ValidationIssue(
                        kind=IssueKind.DUPLICATE_STEP_ID,
                        message=f"Step id {step.id} is used more than once",
                        step_id=step.id,
                    )
                )
            seen.add(step.id)
            if step.flow_id not in (None, flow.id):
                issues.append(
                    ValidationIssue(
                        kind=IssueKind.CROSS_FLOW_REFERENCE,
                        message=f"Step {step.id} belongs to flow {step.flow_id}",
                        step_id=step.id,
                    )
                )
            try:
                self._registry.parse_config(step.type, step.config)
            except ValidationError as e:
                first = e.errors()[0]
                location = ".".join(str(part) for part in first.get("loc", ())) or "config"
                issues.append(
                    ValidationIssue(
                        kind=IssueKind.INVALID_STEP_CONFIG,
                        message=f"Step {step.id} ({step.type}) has invalid config at {location}: {first.get('msg')}",
                        step_id=step.id,
                    )
                )
        return issues

    def _check_start(self, flow: Flow) -> List[ValidationIssue]:
        if flow.start_step_id is None:
            return [
                ValidationIssue(
                    kind=IssueKind.MISSING_START_STEP,
                    message="Flow has no start step",
                )
            ]
        if not flow.is_executable():
            return [
                ValidationIssue(
                    kind=IssueKind.START_STEP_NOT_IN_FLOW,
                    message=f"Start step {flow.start_step_id} does not belong to this flow",
                    step_id=flow.start_step_id,
                )
            ]
        return []

    def _check_transitions(self, flow: Flow) -> List[ValidationIssue]:
        issues: List[ValidationIssue] = []
        for transition in flow.transitions:
            if transition.flow_id not in (None, flow.id):
                issues.append(
                    ValidationIssue(
                        kind=IssueKind.CROSS_FLOW_REFERENCE,
                        message=f"Transition {transition.id} belongs to flow {transition.flow_id}",
                        transition_id=transition.id,
                    )
                )
            for end, step_id in (
                ("source", transition.from_step_id),
                ("target", transition.to_step_id),
            ):
                if not flow.has_step(step_id):
                    issues.append(
                        ValidationIssue(
                            kind=IssueKind.DANGLING_TRANSITION,
                            message=f"Transition {transition.id} {end} step {step_id} is not in this flow",
                            transition_id=transition.id,
                        )
                    )
            issues.extend(self._check_condition(flow, transition))
        return issues

    def _check_condition(self, flow: Flow, transition: Transition) -> List[ValidationIssue]:
        if transition.condition is None:
            return []

        def invalid(message: str) -> ValidationIssue:
            return ValidationIssue(
                kind=IssueKind.INVALID_CONDITION,
                message=f"Transition {transition.id}: {message}",
                transition_id=transition.id,
            )

        try:
            condition = Condition.model_validate(transition.condition)
        except ValidationError:
            return [invalid("condition document is malformed")]

        issues: List[ValidationIssue] = []
        if condition.logic.upper() not in KNOWN_LOGIC:
            issues.append(invalid(f"unknown logic {condition.logic!r}"))
        for index, raw_rule in enumerate(condition.rules):
            try:
                rule = Rule.model_validate(raw_rule)
            except ValidationError:
                issues.append(invalid(f"rule {index} is malformed"))
                continue
            if rule.operator not in KNOWN_OPERATORS:
                issues.append(invalid(f"rule {index} uses unknown operator {rule.operator!r}"))
            if not flow.has_step(rule.step_id):
                issues.append(
                    ValidationIssue(
                        kind=IssueKind.CONDITION_UNKNOWN_STEP,
                        message=f"Transition {transition.id}: rule {index} references unknown step {rule.step_id}",
                        transition_id=transition.id,
                    )
                )
        return issues

    def _check_outgoing(self, flow: Flow) -> List[ValidationIssue]:
        issues: List[ValidationIssue] = []
        for step in flow.steps:
            outgoing = flow.outgoing(step.id)
            if not outgoing:
                continue
            if not any(flow.has_step(t.to_step_id) for t in outgoing):
                issues.append(
                    ValidationIssue(
                        kind=IssueKind.NO_VALID_OUTGOING,
                        message=f"Step {step.id} has transitions but none reach an existing step",
                        step_id=step.id,
                    )
                )

            for index, transition in enumerate(outgoing[:-1]):
                if transition.is_unconditional:
                    shadowed = ", ".join(t.id for t in outgoing[index + 1 :])
                    issues.append(
                        ValidationIssue(
                            kind=IssueKind.DEAD_TRANSITION,
                            severity=IssueSeverity.WARNING,
                            message=(
                                f"Unconditional transition {transition.id} from step {step.id} "
                                f"is not last; never evaluated: {shadowed}"
                            ),
                            step_id=step.id,
                            transition_id=transition.id,
                        )
                    )
                    break

            by_order: Dict[int, List[Transition]] = {}
            for transition in outgoing:
                by_order.setdefault(transition.order, []).append(transition)
            for order, group in by_order.items():
                if len(group) > 1 and any(t.is_unconditional for t in group):
                    issues.append(
                        ValidationIssue(
                            kind=IssueKind.AMBIGUOUS_ORDER,
                            severity=IssueSeverity.WARNING,
                            message=(
                                f"Step {step.id} has {len(group)} transitions with order {order} "
                                "including an unconditional one; creation order decides"
                            ),
                            step_id=step.id,
                        )
                    )
        return issues

    def _check_reachability(self, flow: Flow) -> List[ValidationIssue]:
        if not flow.is_executable():
            return []
        reached = self.reachable_steps(flow)
        issues: List[ValidationIssue] = []
        for step in flow.steps:
            if step.id in reached:
                continue
            terminal = self._registry.is_terminal(step.type) or not flow.outgoing(step.id)
            if terminal:
                issues.append(
                    ValidationIssue(
                        kind=IssueKind.UNREACHABLE_TERMINAL_STEP,
                        severity=IssueSeverity.WARNING,
                        message=f"Terminal step {step.id} is not reachable from the start step",
                        step_id=step.id,
                    )
                )
            else:
                issues.append(
                    ValidationIssue(
                        kind=IssueKind.UNREACHABLE_STEP,
                        message=f"Step {step.id} is not reachable from the start step",
                        step_id=step.id,
                    )
                )
        return issues

    @staticmethod
    def reachable_steps(flow: Flow) -> Set[str]:
        """Breadth-first walk of transitions from the start step."""
        start = flow.start_step_id
        if not flow.has_step(start):
            return set()
        seen: Set[str] = {start}
        queue = deque([start])
        while queue:
            current = queue.popleft()
            for transition in flow.outgoing(current):
                target = transition.to_step_id
                if target not in seen and flow.has_step(target):
                    seen.add(target)
                    queue.append(target)
        return seen


def validate(flow: Flow) -> ValidationResult:
    """Validate ``flow`` with the default registry."""
    return FlowValidator().validate(flow)


def publish_flow(flow: Flow, validator: Optional[FlowValidator] = None) -> Flow:
    """Move ``flow`` to ACTIVE, or raise :class:`FlowValidationError`."""
    result = (validator or FlowValidator()).validate(flow)
    if not result.is_valid:
        logger.info(f"Publish of flow {flow.id} blocked by {len(result.blocking)} issue(s)")
        raise FlowValidationError(result.blocking)
    for warning in result.warnings:
        logger.warning(f"Flow {flow.id}: {warning.message}")
    flow.status = FlowStatus.ACTIVE
    logger.info(f"Published flow {flow.id}")
    return flow


__all__ = [
    "FlowValidator",
    "IssueKind",
    "IssueSeverity",
    "ValidationIssue",
    "ValidationResult",
    "publish_flow",
    "validate",
]
