"""Condition evaluation against a run's prior step responses."""

from __future__ import annotations

import logging
from typing import Any, Callable, Mapping, Optional, Sequence

from pydantic import BaseModel, ValidationError

from .constants import LOGIC_AND, LOGIC_OR, Operator
from .contracts import Condition, Rule
from .paths import UNDEFINED, resolve
from .persistence.models import StepResponse
from .utils.numbers import as_number

logger = logging.getLogger(__name__)


class RuleTrace(BaseModel):
    """Outcome of a single rule evaluation, emitted to the trace hook."""

    rule: Any
    step_id: Optional[str] = None
    operator: Optional[str] = None
    expected: Any = None
    actual: Any = None
    outcome: bool
    reason: str


TraceHook = Callable[[RuleTrace], None]


def log_rule_trace(trace: RuleTrace) -> None:
    """Trace hook that writes every rule evaluation to the debug log."""
    logger.debug(
        f"rule step={trace.step_id} op={trace.operator} expected={trace.expected!r} "
        f"actual={trace.actual!r} -> {trace.outcome} ({trace.reason})"
    )


def strict_equals(left: Any, right: Any) -> bool:
    """Type-sensitive equality: ``18 != "18"`` and ``True != 1``."""
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    if isinstance(left, (int, float)) and isinstance(right, (int, float)):
        return left == right
    if type(left) is not type(right):
        return False
    return left == right


def _compare(operator: str, actual: Any, expected: Any) -> tuple[bool, str]:
    if operator == Operator.EQUALS:
        if actual is UNDEFINED:
            return False, "value missing"
        return strict_equals(actual, expected), "equals"

    if operator in (
        Operator.GREATER_THAN,
        Operator.GREATER_THAN_OR_EQUAL,
        Operator.LESS_THAN,
        Operator.LESS_THAN_OR_EQUAL,
    ):
        left = as_number(actual)
        right = as_number(expected)
        if left is None or right is None:
            return False, "non-numeric operand"
        if operator == Operator.GREATER_THAN:
            return left > right, "numeric"
        if operator == Operator.GREATER_THAN_OR_EQUAL:
            return left >= right, "numeric"
        if operator == Operator.LESS_THAN:
            return left < right, "numeric"
        return left <= right, "numeric"

    if operator == Operator.IN:
        if not isinstance(expected, list):
            return False, "rule value is not a list"
        if actual is UNDEFINED:
            return False, "value missing"
        return any(strict_equals(item, actual) for item in expected), "membership"

    if operator == Operator.CONTAINS:
        if not isinstance(actual, list):
            return False, "response value is not a list"
        return any(strict_equals(item, expected) for item in actual), "containment"

    return False, f"unknown operator {operator!r}"


def resolve_response_value(data: Any, path: str) -> Any:
    """Resolve ``path`` against stored response ``data``.

    Rules may address the answer relative to the data (``"value"``) or
    relative to the response record (``"data.value"``); both are accepted.
    """
    value = resolve(data, path)
    if value is UNDEFINED:
        value = resolve({"data": data}, path)
    return value


class ConditionEvaluator:
    """Evaluates stored condition documents; never raises on bad input.

    Malformed conditions, malformed rules and unknown operators evaluate to
    ``False``. An optional ``trace`` hook receives one :class:`RuleTrace`
    per rule.
    """

    def __init__(self, trace: Optional[TraceHook] = None) -> None:
        self._trace = trace

    def evaluate(
        self,
        condition: Optional[Mapping[str, Any]],
        responses: Sequence[StepResponse],
    ) -> bool:
        if condition is None:
            return True
        try:
            parsed = Condition.model_validate(condition)
        except ValidationError as e:
            logger.warning(f"Malformed condition treated as false: {e.error_count()} error(s)")
            self._emit(RuleTrace(rule=condition, outcome=False, reason="malformed condition"))
            return False

        logic = parsed.logic.upper()
        results = [self.evaluate_rule(rule, responses) for rule in parsed.rules]

        if logic == LOGIC_AND:
            return all(results)
        if logic == LOGIC_OR:
            return any(results)
        logger.warning(f"Unknown condition logic {parsed.logic!r} treated as false")
        return False

    def evaluate_rule(self, raw_rule: Any, responses: Sequence[StepResponse]) -> bool:
        try:
            rule = Rule.model_validate(raw_rule)
        except ValidationError:
            self._emit(RuleTrace(rule=raw_rule, outcome=False, reason="malformed rule"))
            return False

        response = _latest_response(responses, rule.step_id)
        if response is None:
            self._emit(
                RuleTrace(
                    rule=raw_rule,
                    step_id=rule.step_id,
                    operator=rule.operator,
                    expected=rule.value,
                    outcome=False,
                    reason="no response for step",
                )
            )
            return False

        actual = resolve_response_value(response.data, rule.path)
        outcome, reason = _compare(rule.operator, actual, rule.value)
        self._emit(
            RuleTrace(
                rule=raw_rule,
                step_id=rule.step_id,
                operator=rule.operator,
                expected=rule.value,
                actual=None if actual is UNDEFINED else actual,
                outcome=outcome,
                reason=reason,
            )
        )
        return outcome

    def _emit(self, trace: RuleTrace) -> None:
        if self._trace is None:
            return
        try:
            self._trace(trace)
        except Exception:
            logger.exception("Condition trace hook failed")


def _latest_response(
    responses: Sequence[StepResponse], step_id: str
) -> Optional[StepResponse]:
    for response in reversed(responses):
        if response.step_id == step_id:
            return response
    return None


def evaluate(
    condition: Optional[Mapping[str, Any]], responses: Sequence[StepResponse]
) -> bool:
    """Evaluate ``condition`` without tracing."""
    return ConditionEvaluator().evaluate(condition, responses)


__all__ = [
    "ConditionEvaluator",
    "RuleTrace",
    "TraceHook",
    "evaluate",
    "log_rule_trace",
    "resolve_response_value",
    "strict_equals",
]
