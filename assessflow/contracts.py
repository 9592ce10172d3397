"""Core flow graph contracts for assessflow."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, Field, PrivateAttr

from .constants import DEFAULT_RULE_PATH, LOGIC_AND, FlowStatus


def new_id() -> str:
    return str(uuid.uuid4())


class Rule(BaseModel):
    """Single comparison against a prior step response."""

    step_id: str = Field(validation_alias=AliasChoices("step_id", "stepId"))
    path: str = DEFAULT_RULE_PATH
    operator: str
    value: Any = None


class Condition(BaseModel):
    """Boolean expression gating a transition.

    ``rules`` stays loosely typed so that one malformed rule can be
    evaluated as ``False`` without discarding its siblings.
    """

    logic: str = LOGIC_AND
    rules: List[Any] = Field(default_factory=list)


class Step(BaseModel):
    """One node of an assessment flow."""

    id: str = Field(default_factory=new_id)
    flow_id: Optional[str] = None
    type: str
    title: Optional[str] = None
    config: Dict[str, Any] = Field(default_factory=dict)
    position: Optional[Dict[str, float]] = None


class Transition(BaseModel):
    """Directed, optionally conditional edge between two steps."""

    id: str = Field(default_factory=new_id)
    flow_id: Optional[str] = None
    from_step_id: str
    to_step_id: str
    condition: Optional[Dict[str, Any]] = None
    order: int = 0

    @property
    def is_unconditional(self) -> bool:
        return self.condition is None


class Flow(BaseModel):
    """A flow graph: steps and transitions in creation order.

    An adjacency index (step id -> outgoing transitions sorted by ``order``,
    ties kept in creation order) is built once on construction. Call
    :meth:`reindex` after mutating ``steps`` or ``transitions`` in place.
    """

    id: str = Field(default_factory=new_id)
    title: Optional[str] = None
    status: FlowStatus = FlowStatus.DRAFT
    start_step_id: Optional[str] = None
    steps: List[Step] = Field(default_factory=list)
    transitions: List[Transition] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    _steps_by_id: Dict[str, Step] = PrivateAttr(default_factory=dict)
    _outgoing: Dict[str, List[Transition]] = PrivateAttr(default_factory=dict)
    _incoming: Dict[str, List[Transition]] = PrivateAttr(default_factory=dict)

    def model_post_init(self, __context: Any) -> None:
        self.reindex()

    def reindex(self) -> None:
        """Rebuild the step lookup and adjacency index."""
        self._steps_by_id = {step.id: step for step in self.steps}
        outgoing: Dict[str, List[Transition]] = {}
        incoming: Dict[str, List[Transition]] = {}
        for transition in self.transitions:
            outgoing.setdefault(transition.from_step_id, []).append(transition)
            incoming.setdefault(transition.to_step_id, []).append(transition)
        # sorted() is stable, so equal orders keep creation order
        self._outgoing = {
            step_id: sorted(edges, key=lambda t: t.order)
            for step_id, edges in outgoing.items()
        }
        self._incoming = incoming

    def step(self, step_id: Optional[str]) -> Optional[Step]:
        if step_id is None:
            return None
        return self._steps_by_id.get(step_id)

    def has_step(self, step_id: Optional[str]) -> bool:
        return step_id is not None and step_id in self._steps_by_id

    def outgoing(self, step_id: str) -> List[Transition]:
        """Outgoing transitions of ``step_id`` in evaluation order."""
        return list(self._outgoing.get(step_id, []))

    def incoming(self, step_id: str) -> List[Transition]:
        return list(self._incoming.get(step_id, []))

    @property
    def start_step(self) -> Optional[Step]:
        return self.step(self.start_step_id)

    def is_executable(self) -> bool:
        """``True`` when the start step is set and belongs to this flow."""
        start = self.start_step
        if start is None:
            return False
        return start.flow_id in (None, self.id)


__all__ = ["Rule", "Condition", "Step", "Transition", "Flow", "new_id"]
