# Overview: Service-layer operations for document routing; encapsulates business logic and database work.

"""
Workflow Routing Engine

================================================================================
PURPOSE: Route documents to recipients and track each routing branch
================================================================================

MODEL:
- Every routing creates one WorkflowStep ("branch"). Branches are independent:
  routing the same document to two recipients yields two pending steps and
  completing one never touches the other.
- Steps move PENDING -> COMPLETED exactly once, recording one action.

RULES:
1. Step closure is a conditional UPDATE (... WHERE step_status = 'pending').
   When a completion and a cancellation race on one step, exactly one of them
   updates the row; the other sees rowcount 0 and gets InvalidTransition.
2. After every step mutation the document status is recomputed from the FULL,
   freshly re-read step set (see status_policy.aggregate_status).
3. Terminal documents (archived, cancelled) keep their status; recomputation
   never moves them.
4. Only the step's recipient (to_user_id, or a member of to_department_id)
   may complete or forward it.
================================================================================
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import or_, update

from ..constants import (
    COMPLETION_ACTIONS,
    DocumentStatus,
    ROUTABLE_STATUS_VALUES,
    StepAction,
    StepStatus,
    TERMINAL_STATUS_VALUES,
    values,
)
from ..errors import Forbidden, InvalidTransition, NotFound, ValidationFailed
from ..extensions import db
from ..models import Document, User, WorkflowStep
from ..permissions import ROUTE_ANY_DOCUMENT, user_has_permission
from ..validation import require_int
from docregistry.time_utils import utcnow
from .concurrency import run_with_retry
from .directory_service import (
    get_active_user,
    get_department,
    get_user_department_ids,
    is_member_of_department,
)
from .document_service import load_document
from .search_service import paginate_query
from .status_policy import StepSnapshot, aggregate_status


# =============================================================================
# Helpers
# =============================================================================

def _clean_notes(value, field: str = "notes") -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationFailed.for_field(field, "must be a string")
    return value.strip() or None


def parse_completion_action(action) -> StepAction:
    allowed = sorted(a.value for a in COMPLETION_ACTIONS)
    if not isinstance(action, str) or action not in values(StepAction):
        raise ValidationFailed.for_field("action", f"must be one of: {', '.join(allowed)}")
    parsed = StepAction(action)
    if parsed not in COMPLETION_ACTIONS:
        raise ValidationFailed.for_field(
            "action", "cancelled is recorded through document cancellation"
        )
    return parsed


def validate_target(to_user_id=None, to_department_id=None) -> tuple[int | None, int | None]:
    """Routing target: a user, a department, or both. Both must exist."""
    if to_user_id is None and to_department_id is None:
        raise ValidationFailed.from_fields({
            "to_user_id": "to_user_id or to_department_id is required",
        })

    errors = {}
    if to_user_id is not None:
        try:
            to_user_id = require_int(to_user_id, "to_user_id", minimum=1)
        except ValidationFailed as exc:
            errors.update(exc.field_errors)
        else:
            if not get_active_user(to_user_id):
                errors["to_user_id"] = "user not found"
    if to_department_id is not None:
        try:
            to_department_id = require_int(to_department_id, "to_department_id", minimum=1)
        except ValidationFailed as exc:
            errors.update(exc.field_errors)
        else:
            department = get_department(to_department_id)
            if not department or not department.is_active:
                errors["to_department_id"] = "department not found"
    if errors:
        raise ValidationFailed.from_fields(errors)
    return to_user_id, to_department_id


def is_step_recipient(step: WorkflowStep, user: User) -> bool:
    if step.to_user_id is not None and step.to_user_id == user.id:
        return True
    if step.to_department_id is not None:
        return is_member_of_department(user.id, step.to_department_id)
    return False


def can_route(document: Document, user: User) -> bool:
    """Creator, a current pending recipient, or a holder of ROUTE_ANY_DOCUMENT."""
    if document.created_by_user_id == user.id:
        return True
    if user_has_permission(user, ROUTE_ANY_DOCUMENT):
        return True
    return any(step.is_pending and is_step_recipient(step, user) for step in document.steps)


def load_step(step_id: int) -> tuple[WorkflowStep, Document]:
    """Fetch a step and lock its (live) document."""
    step = db.session.get(WorkflowStep, step_id)
    if step is None:
        raise NotFound(f"Step {step_id} not found")
    try:
        document = load_document(step.document_id, lock=True)
    except NotFound:
        raise NotFound(f"Step {step_id} not found") from None
    return step, document


def close_step(
    step: WorkflowStep,
    user: User,
    action: StepAction,
    *,
    notes: str | None = None,
    resolution: str | None = None,
) -> None:
    """
    PENDING -> COMPLETED for one step, guarded at the row level.

    Raises InvalidTransition when the step was already closed, including by a
    concurrent request that committed first.
    """
    changes = {
        "step_status": StepStatus.COMPLETED.value,
        "action": action.value,
        "completed_at": utcnow(),
        "completed_by_user_id": user.id,
    }
    if notes is not None:
        changes["notes"] = notes
    if resolution is not None:
        changes["resolution"] = resolution

    stmt = (
        update(WorkflowStep)
        .where(
            WorkflowStep.id == step.id,
            WorkflowStep.step_status == StepStatus.PENDING.value,
        )
        .values(**changes)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        raise InvalidTransition(f"Step {step.id} is already completed")


def _add_step(
    document: Document,
    user: User,
    to_user_id: int | None,
    to_department_id: int | None,
    notes: str | None,
) -> WorkflowStep:
    step = WorkflowStep(
        document=document,
        from_user_id=user.id,
        to_user_id=to_user_id,
        to_department_id=to_department_id,
        step_status=StepStatus.PENDING.value,
        notes=notes,
    )
    db.session.add(step)

    # The document follows its latest routing target
    if to_user_id is not None:
        document.assigned_to_user_id = to_user_id
    if to_department_id is not None:
        document.department_id = to_department_id
    document.updated_by_user_id = user.id
    return step


def recompute_document_status(document: Document) -> str:
    """
    Re-derive the document status from all of its steps.

    Flushes pending step changes first and reloads every step from the
    database, so the result reflects this transaction's writes.
    """
    if document.status in TERMINAL_STATUS_VALUES:
        return document.status

    db.session.flush()
    steps = (
        db.session.query(WorkflowStep)
        .filter(WorkflowStep.document_id == document.id)
        .order_by(WorkflowStep.id)
        .populate_existing()
        .all()
    )
    new_status = aggregate_status(StepSnapshot.from_step(s) for s in steps)

    if new_status is DocumentStatus.RESOLVED:
        if document.status != DocumentStatus.RESOLVED.value:
            document.resolved_at = utcnow()
        resolutions = [s for s in steps if s.resolution and s.action in ("resolved", "approved")]
        if resolutions:
            latest = max(resolutions, key=lambda s: StepSnapshot.from_step(s).completion_key())
            document.resolution = latest.resolution
    else:
        document.resolved_at = None

    if new_status is DocumentStatus.CANCELLED:
        document.cancelled_at = utcnow()

    if document.status != new_status.value:
        current_app.logger.info(
            "Document %s status %s -> %s", document.id, document.status, new_status.value
        )
        document.status = new_status.value
    return document.status


# =============================================================================
# Operations
# =============================================================================

def route_document(
    document_id: int,
    user: User,
    *,
    to_user_id: int | None = None,
    to_department_id: int | None = None,
    notes: str | None = None,
) -> WorkflowStep:
    to_user_id, to_department_id = validate_target(to_user_id, to_department_id)
    notes = _clean_notes(notes)

    def _op() -> WorkflowStep:
        document = load_document(document_id, user, lock=True)
        if not can_route(document, user):
            raise Forbidden("Only the creator or a current recipient may route this document")
        if document.status not in ROUTABLE_STATUS_VALUES:
            raise InvalidTransition(f"Document {document_id} cannot be routed while {document.status}")

        step = _add_step(document, user, to_user_id, to_department_id, notes)
        recompute_document_status(document)
        db.session.commit()
        return step

    step = run_with_retry(_op)
    current_app.logger.info(
        "Routed document %s to user=%s department=%s (step %s) by user %s",
        document_id, to_user_id, to_department_id, step.id, user.id,
    )
    return step


def complete_step(
    step_id: int,
    user: User,
    action,
    *,
    notes: str | None = None,
    resolution: str | None = None,
) -> tuple[WorkflowStep, Document]:
    """
    Record the recipient's action on a pending step and recompute the status.

    Returns (step, document) after commit.
    """
    parsed = parse_completion_action(action)
    notes = _clean_notes(notes)
    resolution = _clean_notes(resolution, "resolution")

    def _op() -> tuple[WorkflowStep, Document]:
        step, document = load_step(step_id)
        if not is_step_recipient(step, user):
            raise Forbidden("Only the recipient of this step may complete it")
        if not step.is_pending or document.status in TERMINAL_STATUS_VALUES:
            raise InvalidTransition(f"Step {step_id} is already completed")

        close_step(step, user, parsed, notes=notes, resolution=resolution)
        recompute_document_status(document)
        db.session.commit()
        return step, document

    step, document = run_with_retry(_op)
    current_app.logger.info(
        "Step %s completed with %s by user %s; document %s is %s",
        step_id, parsed.value, user.id, document.id, document.status,
    )
    return step, document


def forward_step(
    step_id: int,
    user: User,
    *,
    to_user_id: int | None = None,
    to_department_id: int | None = None,
    notes: str | None = None,
) -> tuple[WorkflowStep, WorkflowStep]:
    """Complete a pending step with SENT and open the next branch link, atomically."""
    to_user_id, to_department_id = validate_target(to_user_id, to_department_id)
    notes = _clean_notes(notes)

    def _op() -> tuple[WorkflowStep, WorkflowStep]:
        step, document = load_step(step_id)
        if not is_step_recipient(step, user):
            raise Forbidden("Only the recipient of this step may forward it")
        if not step.is_pending:
            raise InvalidTransition(f"Step {step_id} is already completed")
        if document.status not in ROUTABLE_STATUS_VALUES:
            raise InvalidTransition(f"Document {document.id} cannot be routed while {document.status}")

        close_step(step, user, StepAction.SENT)
        next_step = _add_step(document, user, to_user_id, to_department_id, notes)
        recompute_document_status(document)
        db.session.commit()
        return step, next_step

    step, next_step = run_with_retry(_op)
    current_app.logger.info(
        "Step %s forwarded as step %s by user %s", step_id, next_step.id, user.id
    )
    return step, next_step


def list_steps(document_id: int, user: User) -> list[WorkflowStep]:
    """Workflow history of a visible document, newest first."""
    document = load_document(document_id, user)
    return (
        db.session.query(WorkflowStep)
        .filter(WorkflowStep.document_id == document.id)
        .order_by(WorkflowStep.id.desc())
        .all()
    )


def list_pending_for_user(user: User, *, page=1, page_size=None) -> dict:
    """
    Inbox: live documents with a pending step addressed to the user or to one
    of the user's departments.
    """
    department_ids = get_user_department_ids(user.id)
    recipient = WorkflowStep.to_user_id == user.id
    if department_ids:
        recipient = or_(recipient, WorkflowStep.to_department_id.in_(department_ids))

    pending = (
        db.session.query(WorkflowStep.document_id)
        .filter(WorkflowStep.step_status == StepStatus.PENDING.value, recipient)
    )
    query = (
        db.session.query(Document)
        .filter(Document.deleted_at.is_(None), Document.id.in_(pending))
        .order_by(Document.updated_at.desc(), Document.id.desc())
    )
    return paginate_query(query, page=page, page_size=page_size)
