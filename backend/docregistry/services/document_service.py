# Overview: Service-layer operations for documents; encapsulates business logic and database work.

"""
Document Registry Service

================================================================================
PURPOSE: Own the document entity and its registration lifecycle
================================================================================

STATE MACHINE:
    DRAFT -> REGISTERED -> IN_WORK <-> RESOLVED -> ARCHIVED
       any non-terminal state -> CANCELLED

    DRAFT:       Captured, editable, no number yet
    REGISTERED:  Number stamped; routing may start
    IN_WORK / RESOLVED: derived from the workflow steps (workflow_service)
    ARCHIVED:    Filed; read-only
    CANCELLED:   Withdrawn; read-only

RULES:
1. The registration number is allocated in the SAME transaction that stores
   the document, so a failed registration never burns a number.
2. registration_number / registration_year / formatted_number are written
   once (draft -> registered) and rejected by every later update.
3. A user who cannot see a document gets NotFound, never Forbidden, so the
   API does not reveal which ids exist.
4. Drafts without steps are hard-deleted; everything else is soft-deleted
   and then behaves as not found.
================================================================================
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import exists, false, or_

from ..constants import (
    DocumentStatus,
    DocumentType,
    Priority,
    TERMINAL_STATUS_VALUES,
)
from ..errors import Forbidden, InvalidTransition, NotFound, ValidationFailed
from ..extensions import db
from ..models import Department, Document, DocumentConnection, User, WorkflowStep
from ..permissions import (
    ARCHIVE_DOCUMENTS,
    ROUTE_ANY_DOCUMENT,
    VIEW_ALL_PARISHES,
    user_has_permission,
)
from ..validation import ModelValidationPolicy, validate_payload
from docregistry.time_utils import current_year, utcnow
from .concurrency import lock_for_update, run_with_retry
from .directory_service import get_parish, get_user_department_ids
from .numbering_service import format_number, reserve_number, validate_year
from .register_config_service import get_configuration


_DESCRIPTIVE_FIELDS = {
    "subject",
    "content",
    "priority",
    "sender_name",
    "recipient_name",
    "external_number",
    "external_date",
    "due_date",
    "department_id",
    "assigned_to_user_id",
}

_DOCUMENT_CHOICES = {"document_type": DocumentType, "priority": Priority}

# Fields owned by the registry itself; clients may never patch them
_SYSTEM_FIELDS = frozenset({
    "id",
    "registration_number",
    "registration_year",
    "formatted_number",
    "registration_date",
    "status",
    "resolution",
    "resolved_at",
    "archive_indicator",
    "archived_at",
    "cancelled_at",
    "created_by_user_id",
    "updated_by_user_id",
    "created_at",
    "updated_at",
    "deleted_at",
    "version_id",
})

DOCUMENT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields=_DESCRIPTIVE_FIELDS | {"document_type", "configuration_id", "parish_id", "registration_year"},
    required_on_create={"document_type", "configuration_id", "subject"},
    choices=_DOCUMENT_CHOICES,
)

DRAFT_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields=_DESCRIPTIVE_FIELDS | {"document_type", "configuration_id", "parish_id"},
    immutable_fields=_SYSTEM_FIELDS,
    choices=_DOCUMENT_CHOICES,
)

REGISTERED_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields=set(_DESCRIPTIVE_FIELDS),
    immutable_fields=_SYSTEM_FIELDS | {"configuration_id", "document_type", "parish_id"},
    choices=_DOCUMENT_CHOICES,
)


# =============================================================================
# Visibility
# =============================================================================

def _sees_all_documents(user: User) -> bool:
    return user.is_admin or user_has_permission(user, VIEW_ALL_PARISHES)


def visibility_clause(user: User):
    """
    SQL criterion selecting the documents ``user`` may see: own parish,
    created by the user, or routed to the user or one of their departments.
    """
    if _sees_all_documents(user):
        return None

    department_ids = get_user_department_ids(user.id)
    recipient = WorkflowStep.to_user_id == user.id
    if department_ids:
        recipient = or_(recipient, WorkflowStep.to_department_id.in_(department_ids))
    routed_to_user = exists().where(WorkflowStep.document_id == Document.id, recipient)

    return or_(
        Document.parish_id == user.parish_id if user.parish_id is not None else false(),
        Document.created_by_user_id == user.id,
        routed_to_user,
    )


def can_view(document: Document, user: User) -> bool:
    if _sees_all_documents(user):
        return True
    if user.parish_id is not None and document.parish_id == user.parish_id:
        return True
    if document.created_by_user_id == user.id:
        return True
    department_ids = set(get_user_department_ids(user.id))
    return any(
        step.to_user_id == user.id or step.to_department_id in department_ids
        for step in document.steps
    )


def can_modify(document: Document, user: User) -> bool:
    """Creator, or a user allowed to manage any visible document."""
    return document.created_by_user_id == user.id or user_has_permission(user, ROUTE_ANY_DOCUMENT)


def load_document(document_id: int, user: User | None = None, *, lock: bool = False) -> Document:
    """
    Fetch a live (not soft-deleted) document.

    With ``user`` given, invisible documents raise NotFound as well.
    ``lock=True`` takes the row lock used by every document mutation.
    """
    query = db.session.query(Document).filter(
        Document.id == document_id,
        Document.deleted_at.is_(None),
    )
    if lock:
        query = lock_for_update(query)
    document = query.first()
    if document is None or (user is not None and not can_view(document, user)):
        raise NotFound(f"Document {document_id} not found")
    return document


# =============================================================================
# Helpers
# =============================================================================

def _check_references(patch: dict) -> None:
    errors = {}
    if patch.get("parish_id") is not None and not get_parish(patch["parish_id"]):
        errors["parish_id"] = "parish not found"
    if patch.get("department_id") is not None and not db.session.get(Department, patch["department_id"]):
        errors["department_id"] = "department not found"
    if patch.get("assigned_to_user_id") is not None and not db.session.get(User, patch["assigned_to_user_id"]):
        errors["assigned_to_user_id"] = "user not found"
    if patch.get("registration_year") is not None:
        try:
            validate_year(patch["registration_year"])
        except ValidationFailed as exc:
            errors["registration_year"] = exc.field_errors["year"]
    if errors:
        raise ValidationFailed.from_fields(errors)


def _require_modifiable(document: Document, user: User) -> None:
    if not can_modify(document, user):
        raise Forbidden("Only the creator of the document may change it")
    if document.status in TERMINAL_STATUS_VALUES:
        raise InvalidTransition(f"Document {document.id} is {document.status} and read-only")


def _new_document(patch: dict, user: User) -> Document:
    config = get_configuration(patch["configuration_id"])
    parish_id = patch.get("parish_id")
    if parish_id is None:
        parish_id = config.parish_id if config.parish_id is not None else user.parish_id
    if parish_id is None:
        raise ValidationFailed.for_field("parish_id", "is required")

    document = Document(
        configuration_id=config.id,
        parish_id=parish_id,
        status=DocumentStatus.DRAFT.value,
        priority=Priority.NORMAL.value,
        created_by_user_id=user.id,
        updated_by_user_id=user.id,
    )
    for key in _DESCRIPTIVE_FIELDS | {"document_type"}:
        if key in patch and patch[key] is not None:
            setattr(document, key, patch[key])
    return document


def _stamp_registration(document: Document, year: int | None) -> None:
    """Allocate the number inside the current transaction and mark the document registered."""
    year = current_year() if year is None else year
    number = reserve_number(document.configuration_id, year)
    document.registration_year = year
    document.registration_number = number
    document.formatted_number = format_number(number, year)
    document.registration_date = utcnow().date()
    document.status = DocumentStatus.REGISTERED.value


# =============================================================================
# Operations
# =============================================================================

def register_document(payload: dict, user: User) -> Document:
    """
    Create a document and stamp its registration number in one transaction.

    The whole unit (document insert + counter increment) is replayed on a
    numbering race, so a retried registration allocates exactly one number.
    """
    patch = validate_payload(
        model=Document,
        payload=payload,
        policy=DOCUMENT_CREATE_POLICY,
        partial=False,
    )
    _check_references(patch)

    def _op() -> Document:
        document = _new_document(patch, user)
        db.session.add(document)
        _stamp_registration(document, patch.get("registration_year"))
        db.session.commit()
        return document

    document = run_with_retry(_op)
    current_app.logger.info(
        "Registered document %s as %s (register %s) by user %s",
        document.id, document.formatted_number, document.configuration_id, user.id,
    )
    return document


def create_draft(payload: dict, user: User) -> Document:
    patch = validate_payload(
        model=Document,
        payload=payload,
        policy=DOCUMENT_CREATE_POLICY,
        partial=False,
    )
    patch.pop("registration_year", None)
    _check_references(patch)

    def _op() -> Document:
        document = _new_document(patch, user)
        db.session.add(document)
        db.session.commit()
        return document

    return run_with_retry(_op)


def register_draft(document_id: int, user: User, *, year: int | None = None) -> Document:
    if year is not None:
        year = validate_year(year)

    def _op() -> Document:
        document = load_document(document_id, user, lock=True)
        _require_modifiable(document, user)
        if document.status != DocumentStatus.DRAFT.value:
            raise InvalidTransition(f"Document {document_id} is already {document.status}")
        # A draft may point at a register deleted since it was captured
        get_configuration(document.configuration_id)
        _stamp_registration(document, year)
        document.updated_by_user_id = user.id
        db.session.commit()
        return document

    document = run_with_retry(_op)
    current_app.logger.info(
        "Registered draft %s as %s by user %s", document.id, document.formatted_number, user.id
    )
    return document


def get_document(document_id: int, user: User) -> Document:
    return load_document(document_id, user)


def update_document(document_id: int, payload: dict, user: User) -> Document:
    def _op() -> Document:
        document = load_document(document_id, user, lock=True)
        _require_modifiable(document, user)

        policy = DRAFT_UPDATE_POLICY if document.status == DocumentStatus.DRAFT.value else REGISTERED_UPDATE_POLICY
        patch = validate_payload(model=Document, payload=payload, policy=policy, partial=True)
        _check_references(patch)
        if "configuration_id" in patch:
            get_configuration(patch["configuration_id"])

        for key, value in patch.items():
            setattr(document, key, value)
        document.updated_by_user_id = user.id
        db.session.commit()
        return document

    return run_with_retry(_op)


def delete_document(document_id: int, user: User) -> dict:
    def _op() -> dict:
        document = load_document(document_id, user, lock=True)
        if not can_modify(document, user):
            raise Forbidden("Only the creator of the document may delete it")

        hard = document.status == DocumentStatus.DRAFT.value and not document.steps
        if hard:
            db.session.query(DocumentConnection).filter(or_(
                DocumentConnection.document_id == document.id,
                DocumentConnection.connected_document_id == document.id,
            )).delete(synchronize_session=False)
            db.session.delete(document)
        else:
            document.deleted_at = utcnow()
            document.updated_by_user_id = user.id
        db.session.commit()
        return {"id": document_id, "deleted": True, "soft_deleted": not hard}

    result = run_with_retry(_op)
    current_app.logger.info(
        "Deleted document %s (soft=%s) by user %s", document_id, result["soft_deleted"], user.id
    )
    return result


def archive_document(document_id: int, user: User, archive_indicator: str | None = None) -> Document:
    """RESOLVED -> ARCHIVED. Only resolved correspondence is filed."""
    if not user_has_permission(user, ARCHIVE_DOCUMENTS):
        raise Forbidden("Archiving documents requires the ARCHIVE_DOCUMENTS permission")
    if archive_indicator is not None:
        if not isinstance(archive_indicator, str):
            raise ValidationFailed.for_field("archive_indicator", "must be a string")
        archive_indicator = archive_indicator.strip() or None
        if archive_indicator and len(archive_indicator) > 64:
            raise ValidationFailed.for_field("archive_indicator", "exceeds max length 64")

    def _op() -> Document:
        document = load_document(document_id, user, lock=True)
        if document.status != DocumentStatus.RESOLVED.value:
            raise InvalidTransition(
                f"Only resolved documents can be archived (document {document_id} is {document.status})"
            )
        document.status = DocumentStatus.ARCHIVED.value
        document.archive_indicator = archive_indicator
        document.archived_at = utcnow()
        document.updated_by_user_id = user.id
        db.session.commit()
        return document

    document = run_with_retry(_op)
    current_app.logger.info("Archived document %s by user %s", document.id, user.id)
    return document
