# Overview: Service-layer operations for document cancellation; encapsulates business logic and database work.

"""
Cancellation Coordinator

================================================================================
PURPOSE: Withdraw a whole document, or one recipient's branch of it
================================================================================

CANCEL-ALL (creator only):
    Every PENDING step -> COMPLETED/CANCELLED, and the document is forced to
    CANCELLED regardless of what the aggregation policy would say.

CANCEL-OWN-BRANCH (any recipient):
    Only the steps where the caller is the pending to_user_id are cancelled.
    The status is then recomputed normally: the document ends up CANCELLED
    only when no non-cancelled step remains.

Both run through workflow_service.close_step, so a cancellation racing a
completion on the same step has exactly one winner.
================================================================================
"""

from __future__ import annotations

from flask import current_app

from ..constants import DocumentStatus, StepAction, StepStatus, TERMINAL_STATUS_VALUES
from ..errors import Forbidden, InvalidTransition, NoPendingSteps, ValidationFailed
from ..extensions import db
from ..models import User, WorkflowStep
from docregistry.time_utils import utcnow
from .concurrency import run_with_retry
from .document_service import load_document
from .workflow_service import close_step, recompute_document_status


def _pending_steps(document_id: int, *, to_user_id: int | None = None) -> list[WorkflowStep]:
    query = db.session.query(WorkflowStep).filter(
        WorkflowStep.document_id == document_id,
        WorkflowStep.step_status == StepStatus.PENDING.value,
    )
    if to_user_id is not None:
        query = query.filter(WorkflowStep.to_user_id == to_user_id)
    return query.order_by(WorkflowStep.id).all()


def cancel_all(document_id: int, user: User, notes: str | None = None) -> int:
    """Creator-only: cancel every open branch and the document. Returns steps cancelled."""

    def _op() -> int:
        document = load_document(document_id, user, lock=True)
        if document.created_by_user_id != user.id:
            raise Forbidden("Only the creator of the document may cancel it entirely")
        if document.status in TERMINAL_STATUS_VALUES:
            raise InvalidTransition(f"Document {document_id} is already {document.status}")

        steps = _pending_steps(document.id)
        for step in steps:
            close_step(step, user, StepAction.CANCELLED, notes=notes)

        document.status = DocumentStatus.CANCELLED.value
        document.cancelled_at = utcnow()
        document.updated_by_user_id = user.id
        db.session.commit()
        return len(steps)

    count = run_with_retry(_op)
    current_app.logger.info(
        "Document %s cancelled by its creator %s (%d open steps closed)", document_id, user.id, count
    )
    return count


def cancel_own_branch(document_id: int, user: User, notes: str | None = None) -> int:
    """Cancel the caller's own pending steps on a document. Returns steps cancelled."""

    def _op() -> int:
        document = load_document(document_id, user, lock=True)
        steps = _pending_steps(document.id, to_user_id=user.id)
        if not steps:
            raise NoPendingSteps(f"No pending steps for user {user.id} on document {document_id}")

        for step in steps:
            close_step(step, user, StepAction.CANCELLED, notes=notes)
        document.updated_by_user_id = user.id
        recompute_document_status(document)
        db.session.commit()
        return len(steps)

    count = run_with_retry(_op)
    current_app.logger.info(
        "User %s cancelled %d own step(s) on document %s", user.id, count, document_id
    )
    return count


def cancel_document(document_id: int, user: User, *, cancel_all_steps=False, notes=None) -> dict:
    if not isinstance(cancel_all_steps, bool):
        raise ValidationFailed.for_field("cancel_all", "must be a boolean")
    if notes is not None:
        if not isinstance(notes, str):
            raise ValidationFailed.for_field("notes", "must be a string")
        notes = notes.strip() or None

    if cancel_all_steps:
        count = cancel_all(document_id, user, notes)
    else:
        count = cancel_own_branch(document_id, user, notes)

    document = load_document(document_id)
    return {
        "document_id": document_id,
        "cancelled_all": cancel_all_steps,
        "steps_cancelled": count,
        "status": document.status,
    }
