"""Next-step selection over a flow's ordered outgoing transitions."""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from .contracts import Flow, Step, Transition
from .evaluator import ConditionEvaluator
from .persistence.models import StepResponse

logger = logging.getLogger(__name__)


class TransitionSelector:
    """Pick the first satisfied outgoing transition of a step.

    Transitions are tried by ascending ``order`` with ties in creation
    order. ``None`` means no transition matched, which completes the run.
    """

    def __init__(self, evaluator: Optional[ConditionEvaluator] = None) -> None:
        self._evaluator = evaluator or ConditionEvaluator()

    def select_transition(
        self, flow: Flow, step_id: str, responses: Sequence[StepResponse]
    ) -> Optional[Transition]:
        for transition in flow.outgoing(step_id):
            if not flow.has_step(transition.to_step_id):
                logger.warning(
                    f"Skipping transition {transition.id} in flow {flow.id}: "
                    f"target step {transition.to_step_id} does not exist"
                )
                continue
            if self._evaluator.evaluate(transition.condition, responses):
                return transition
        return None

    def select_next(
        self, flow: Flow, step_id: str, responses: Sequence[StepResponse]
    ) -> Optional[Step]:
        transition = self.select_transition(flow, step_id, responses)
        if transition is None:
            return None
        return flow.step(transition.to_step_id)


def select_next(
    flow: Flow, step_id: str, responses: Sequence[StepResponse]
) -> Optional[Step]:
    """Return the next step after ``step_id``, or ``None`` when traversal ends."""
    return TransitionSelector().select_next(flow, step_id, responses)


__all__ = ["TransitionSelector", "select_next"]
