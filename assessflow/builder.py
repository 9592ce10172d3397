"""Flow authoring helper for assessflow."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import yaml

from .constants import StepType
from .contracts import Flow, Step, Transition, new_id

logger = logging.getLogger(__name__)


class FlowBuilder:
    """Assemble a flow graph step by step.

    Keeps steps and transitions in creation order, which is the tie-break
    used when two outgoing transitions share the same ``order``.
    """

    def __init__(self, title: Optional[str] = None, flow_id: Optional[str] = None) -> None:
        self._flow_id = flow_id or new_id()
        self._title = title
        self._steps: Dict[str, Step] = {}
        self._transitions: List[Transition] = []
        self._start_step_id: Optional[str] = None

    @property
    def flow_id(self) -> str:
        return self._flow_id

    def add_step(
        self,
        step_type: Union[StepType, str],
        title: Optional[str] = None,
        config: Optional[Dict[str, Any]] = None,
        position: Optional[Dict[str, float]] = None,
        step_id: Optional[str] = None,
    ) -> Step:
        """Add a step. The first step added does not become the start step."""
        step_type = step_type.value if isinstance(step_type, StepType) else step_type
        step = Step(
            id=step_id or new_id(),
            flow_id=self._flow_id,
            type=step_type,
            title=title,
            config=config or {},
            position=position,
        )
        if step.id in self._steps:
            raise ValueError(f"Step {step.id} already exists in flow {self._flow_id}")
        self._steps[step.id] = step
        return step

    def add_transition(
        self,
        from_step_id: str,
        to_step_id: str,
        condition: Optional[Dict[str, Any]] = None,
        order: Optional[int] = None,
        transition_id: Optional[str] = None,
    ) -> Transition:
        """Connect two steps of this flow.

        Without an explicit ``order`` the edge goes after the existing
        outgoing edges of ``from_step_id``.
        """
        for step_id in (from_step_id, to_step_id):
            if step_id not in self._steps:
                raise ValueError(f"Step {step_id} is not part of flow {self._flow_id}")
        if order is None:
            existing = [t.order for t in self._transitions if t.from_step_id == from_step_id]
            order = max(existing) + 1 if existing else 1
        transition = Transition(
            id=transition_id or new_id(),
            flow_id=self._flow_id,
            from_step_id=from_step_id,
            to_step_id=to_step_id,
            condition=condition,
            order=order,
        )
        self._transitions.append(transition)
        return transition

    def remove_transition(self, transition_id: str) -> None:
        before = len(self._transitions)
        self._transitions = [t for t in self._transitions if t.id != transition_id]
        if len(self._transitions) == before:
            raise ValueError(f"Transition {transition_id} is not part of flow {self._flow_id}")

    def remove_step(self, step_id: str) -> None:
        """Remove a step together with every transition touching it."""
        if step_id not in self._steps:
            raise ValueError(f"Step {step_id} is not part of flow {self._flow_id}")
        removed = {
            t.id for t in self._transitions if step_id in (t.from_step_id, t.to_step_id)
        }
        self._transitions = [t for t in self._transitions if t.id not in removed]
        del self._steps[step_id]
        if self._start_step_id == step_id:
            self._start_step_id = None
        logger.info(
            f"Removed step {step_id} and {len(removed)} transition(s) from flow {self._flow_id}"
        )

    def set_start_step(self, step_id: str) -> None:
        if step_id not in self._steps:
            raise ValueError(f"Step {step_id} is not part of flow {self._flow_id}")
        self._start_step_id = step_id

    def build(self) -> Flow:
        return Flow(
            id=self._flow_id,
            title=self._title,
            start_step_id=self._start_step_id,
            steps=[step.model_copy(deep=True) for step in self._steps.values()],
            transitions=[t.model_copy(deep=True) for t in self._transitions],
        )

    @classmethod
    def from_flow(cls, flow: Flow) -> "FlowBuilder":
        """Start editing an existing flow."""
        builder = cls(title=flow.title, flow_id=flow.id)
        for step in flow.steps:
            builder._steps[step.id] = step.model_copy(deep=True)
        builder._transitions = [t.model_copy(deep=True) for t in flow.transitions]
        builder._start_step_id = flow.start_step_id
        return builder

    @classmethod
    def from_document(cls, document: Mapping[str, Any]) -> "FlowBuilder":
        """Build from a mapping with ``steps``, ``transitions`` and ``start``.

        Steps are ``{id, type, title, config, position}``; transitions are
        ``{from, to, condition, order}``.
        """
        builder = cls(title=document.get("title"), flow_id=document.get("id"))
        for raw in document.get("steps") or []:
            builder.add_step(
                _require(raw, "type", "step"),
                title=raw.get("title"),
                config=raw.get("config"),
                position=raw.get("position"),
                step_id=raw.get("id"),
            )
        for raw in document.get("transitions") or []:
            builder.add_transition(
                _require(raw, "from", "transition"),
                _require(raw, "to", "transition"),
                condition=raw.get("condition"),
                order=raw.get("order"),
                transition_id=raw.get("id"),
            )
        start = document.get("start")
        if start is not None:
            builder.set_start_step(start)
        return builder


def _require(raw: Mapping[str, Any], key: str, kind: str) -> Any:
    if not isinstance(raw, Mapping) or raw.get(key) is None:
        raise ValueError(f"Each {kind} entry needs a '{key}' field")
    return raw[key]


def load_flow_file(path: Union[str, Path]) -> Flow:
    """Load a flow document from a YAML (or JSON) file."""
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, Mapping):
        raise ValueError(f"Flow file {path} must contain a mapping")
    return FlowBuilder.from_document(data).build()


__all__ = ["FlowBuilder", "load_flow_file"]
