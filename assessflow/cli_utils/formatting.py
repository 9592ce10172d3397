"""Helpers for rendering flows, runs and validation output on the CLI."""

from __future__ import annotations

import json
from typing import Any, Optional

from ..contracts import Step
from ..validation import ValidationIssue


def parse_value(text: Optional[str]) -> Any:
    """Parse a submitted answer given as JSON; bare words stay strings."""
    if text is None:
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return text


def format_step(step: Optional[Step]) -> str:
    if step is None:
        return "(none)"
    title = f" - {step.title}" if step.title else ""
    return f"{step.id} [{step.type}]{title}"


def format_issue(issue: ValidationIssue) -> str:
    return f"[{issue.severity.value}] {issue.kind.value}: {issue.message}"
