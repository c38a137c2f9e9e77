# Overview: Service-layer operations for links between documents; encapsulates business logic and database work.

"""
Document Connections

================================================================================
PURPOSE: Tie related correspondence together
================================================================================

A connection points from one document to another with a closed type:
    RELATED     plain cross-reference
    RESPONSE    the document answers the connected one
    ATTACHMENT  the document is enclosed with the connected one
    AMENDMENT   the document amends the connected one

RULES:
1. A pair is linked at most once, whichever direction it was created in.
2. No document links to itself.
3. Creating a link changes the source document: only its creator (or a
   ROUTE_ANY_DOCUMENT holder) may add one, and not once it is archived or
   cancelled. The target only has to be visible.
4. Listing reads both directions and silently skips documents the caller
   cannot see or that were deleted.
================================================================================
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import and_, or_
from sqlalchemy.exc import IntegrityError

from ..constants import ConnectionType, TERMINAL_STATUS_VALUES, values
from ..errors import Forbidden, InvalidTransition, NotFound, ValidationFailed
from ..extensions import db
from ..models import Document, DocumentConnection, User
from ..validation import require_int
from .concurrency import run_with_retry
from .document_service import can_modify, can_view, load_document


def parse_connection_type(value) -> str:
    if value not in values(ConnectionType):
        raise ValidationFailed.for_field(
            "connection_type", f"must be one of: {', '.join(values(ConnectionType))}"
        )
    return value


def _find_pair(document_id: int, other_id: int) -> DocumentConnection | None:
    return db.session.query(DocumentConnection).filter(or_(
        and_(
            DocumentConnection.document_id == document_id,
            DocumentConnection.connected_document_id == other_id,
        ),
        and_(
            DocumentConnection.document_id == other_id,
            DocumentConnection.connected_document_id == document_id,
        ),
    )).first()


def link_documents(
    document_id: int,
    connected_document_id,
    connection_type,
    user: User,
) -> DocumentConnection:
    """Connect ``document_id`` to ``connected_document_id``."""
    errors = {}
    try:
        connected_document_id = require_int(connected_document_id, "connected_document_id", minimum=1)
    except ValidationFailed as exc:
        errors.update(exc.field_errors)
    try:
        connection_type = parse_connection_type(connection_type)
    except ValidationFailed as exc:
        errors.update(exc.field_errors)
    if errors:
        raise ValidationFailed.from_fields(errors)

    if connected_document_id == document_id:
        raise ValidationFailed.for_field("connected_document_id", "a document cannot be connected to itself")

    def _op() -> DocumentConnection:
        document = load_document(document_id, user, lock=True)
        if not can_modify(document, user):
            raise Forbidden("Only the creator of the document may connect it")
        if document.status in TERMINAL_STATUS_VALUES:
            raise InvalidTransition(f"Document {document_id} is {document.status} and read-only")

        try:
            load_document(connected_document_id, user)
        except NotFound:
            raise ValidationFailed.for_field("connected_document_id", "document not found") from None

        if _find_pair(document_id, connected_document_id):
            raise ValidationFailed.for_field("connected_document_id", "documents are already connected")

        connection = DocumentConnection(
            document_id=document_id,
            connected_document_id=connected_document_id,
            connection_type=connection_type,
            created_by_user_id=user.id,
        )
        db.session.add(connection)
        try:
            db.session.flush()
        except IntegrityError:
            # Lost a race with an identical link
            raise ValidationFailed.for_field(
                "connected_document_id", "documents are already connected"
            ) from None
        db.session.commit()
        return connection

    connection = run_with_retry(_op)
    current_app.logger.info(
        "Connected document %s -> %s (%s) by user %s",
        document_id, connected_document_id, connection_type, user.id,
    )
    return connection


def unlink_documents(document_id: int, connection_id: int, user: User) -> dict:
    """Remove a connection that involves ``document_id``."""

    def _op() -> dict:
        document = load_document(document_id, user, lock=True)
        connection = db.session.get(DocumentConnection, connection_id)
        if connection is None or document_id not in (connection.document_id, connection.connected_document_id):
            raise NotFound(f"Connection {connection_id} not found")

        source = db.session.get(Document, connection.document_id)
        allowed = connection.created_by_user_id == user.id or (source is not None and can_modify(source, user))
        if not allowed:
            raise Forbidden("Only the creator of the connection or of its document may remove it")
        if source is not None and source.status in TERMINAL_STATUS_VALUES:
            raise InvalidTransition(f"Document {source.id} is {source.status} and read-only")

        db.session.delete(connection)
        db.session.commit()
        return {"id": connection_id, "deleted": True}

    result = run_with_retry(_op)
    current_app.logger.info(
        "Removed connection %s from document %s by user %s", connection_id, document_id, user.id
    )
    return result


def list_connections(document_id: int, user: User) -> list[dict]:
    """
    Connections of a visible document in both directions, oldest first.

    Each entry carries ``direction`` ("outgoing" when created from this
    document) and the other document's read model.
    """
    document = load_document(document_id, user)
    connections = (
        db.session.query(DocumentConnection)
        .filter(or_(
            DocumentConnection.document_id == document.id,
            DocumentConnection.connected_document_id == document.id,
        ))
        .order_by(DocumentConnection.id)
        .all()
    )

    result = []
    for connection in connections:
        other = db.session.get(Document, connection.other_document_id(document.id))
        if other is None or other.deleted_at is not None or not can_view(other, user):
            continue
        entry = connection.to_dict()
        entry["direction"] = "outgoing" if connection.document_id == document.id else "incoming"
        entry["connected_document"] = other.to_dict()
        result.append(entry)
    return result
