"""Data models for persisted run state."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field

from ..constants import RunStatus
from ..errors import InvalidStepError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StepResponse(BaseModel):
    """Append-only record of one submission for one step of a run."""

    id: Optional[int] = None
    run_id: str
    step_id: str
    data: Any = None
    created_at: datetime = Field(default_factory=utcnow)


class Run(BaseModel):
    """One subject's traversal of a flow."""

    id: str
    flow_id: str
    subject_id: str
    status: RunStatus = RunStatus.DRAFT
    current_step_id: Optional[str] = None
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    @property
    def is_running(self) -> bool:
        return self.status == RunStatus.DRAFT

    def accepts(self, step_id: str) -> bool:
        """``True`` while the run is waiting on ``step_id``."""
        return self.is_running and self.current_step_id == step_id


def stale_submission(run: Run, step_id: str) -> InvalidStepError:
    """Error for a submission that no longer matches the run's state."""
    if not run.is_running:
        return InvalidStepError(
            f"Run {run.id} is {run.status.value} and accepts no submissions",
            run_id=run.id,
            step_id=step_id,
        )
    return InvalidStepError(
        f"Run {run.id} is at step {run.current_step_id}, not {step_id}",
        run_id=run.id,
        step_id=step_id,
        expected_step_id=run.current_step_id,
    )
