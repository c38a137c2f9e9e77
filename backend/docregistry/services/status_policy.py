# Overview: Pure aggregation of workflow step states into a document status.

"""
Document status aggregation

================================================================================
PURPOSE: Derive a document's status from the states of its routing branches
================================================================================

The policy is a pure function over step snapshots so it can be exercised
without a database. The workflow service feeds it the full, freshly-read step
set of a document after every step mutation.

TRUTH TABLE (evaluated top to bottom):
    no steps at all                                   -> REGISTERED
    any step PENDING                                  -> IN_WORK
    every step COMPLETED with action CANCELLED        -> CANCELLED
    ignoring CANCELLED steps, ordered by completion:
        at least one RESOLVED/APPROVED, and no
        REJECTED/RETURNED completed after the last one -> RESOLVED
    anything else (only SENT/RECEIVED, or a rejection
    or return still standing)                         -> IN_WORK

A rejection or return is "standing" until a later resolution/approval on any
branch supersedes it.
================================================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from ..constants import (
    DocumentStatus,
    NEGATIVE_ACTIONS,
    POSITIVE_ACTIONS,
    StepAction,
    StepStatus,
)


@dataclass(frozen=True)
class StepSnapshot:
    """Immutable view of one workflow step, as the policy needs it."""
    step_status: StepStatus
    action: Optional[StepAction] = None
    completed_at: Optional[datetime] = None
    step_id: int = 0

    @classmethod
    def from_step(cls, step) -> "StepSnapshot":
        return cls(
            step_status=StepStatus(step.step_status),
            action=StepAction(step.action) if step.action else None,
            completed_at=step.completed_at,
            step_id=step.id or 0,
        )

    def completion_key(self) -> tuple:
        # Steps completed in the same instant fall back to creation order
        return (self.completed_at or datetime.min, self.step_id)


def aggregate_status(steps: Iterable[StepSnapshot]) -> DocumentStatus:
    """
    Map the complete set of a document's steps to its aggregate status.

    Deterministic and side-effect free; see the module docstring for the table.
    """
    steps = list(steps)

    if not steps:
        return DocumentStatus.REGISTERED

    if any(s.step_status is StepStatus.PENDING for s in steps):
        return DocumentStatus.IN_WORK

    live = [s for s in steps if s.action is not StepAction.CANCELLED]
    if not live:
        return DocumentStatus.CANCELLED

    live.sort(key=StepSnapshot.completion_key)

    last_positive = None
    for index, snap in enumerate(live):
        if snap.action in POSITIVE_ACTIONS:
            last_positive = index

    if last_positive is None:
        return DocumentStatus.IN_WORK

    standing_negative = any(s.action in NEGATIVE_ACTIONS for s in live[last_positive + 1:])
    if standing_negative:
        return DocumentStatus.IN_WORK

    return DocumentStatus.RESOLVED
