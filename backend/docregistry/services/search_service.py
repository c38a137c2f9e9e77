# Overview: Read-side queries over documents: filtered search, pagination, overdue listing.

from __future__ import annotations

from datetime import date

from flask import current_app
from sqlalchemy import case, or_

from ..constants import DocumentStatus, DocumentType, Priority, values
from ..errors import ValidationFailed
from ..extensions import db
from ..models import Document
from ..validation import require_int
from docregistry.time_utils import parse_iso_date, utcnow
from .document_service import visibility_clause


OPEN_STATUSES = (DocumentStatus.REGISTERED.value, DocumentStatus.IN_WORK.value)

_ENUM_FILTERS = {
    "document_type": DocumentType,
    "status": DocumentStatus,
    "priority": Priority,
}

_ID_FILTERS = {
    "configuration_id": Document.configuration_id,
    "parish_id": Document.parish_id,
    "department_id": Document.department_id,
    "assigned_to_user_id": Document.assigned_to_user_id,
    "created_by_user_id": Document.created_by_user_id,
}

SEARCH_FILTERS = (
    set(_ENUM_FILTERS)
    | set(_ID_FILTERS)
    | {"registration_year", "date_from", "date_to", "text", "overdue"}
)

# Urgency order for sort_by=priority
_PRIORITY_RANK = case(
    {p.value: rank for rank, p in enumerate(Priority)},
    value=Document.priority,
    else_=1,
)

# sort_by -> ordering columns (ties fall back to id in the same direction)
SORT_FIELDS = {
    "registration_date": (Document.registration_date,),
    "registration_number": (Document.registration_year, Document.registration_number),
    "priority": (_PRIORITY_RANK,),
    "created_at": (Document.created_at,),
}
SORT_DIRECTIONS = ("asc", "desc")

# Columns scanned by the free-text filter
_TEXT_COLUMNS = (
    Document.subject,
    Document.content,
    Document.sender_name,
    Document.recipient_name,
    Document.formatted_number,
    Document.external_number,
)


def _like_pattern(text: str) -> str:
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _parse_date(value, field: str) -> date:
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise ValidationFailed.for_field(field, "must be an ISO-8601 date")
    try:
        parsed = parse_iso_date(value)
    except ValueError:
        parsed = None
    if parsed is None:
        raise ValidationFailed.for_field(field, "must be an ISO-8601 date")
    return parsed


def normalize_paging(page=1, page_size=None) -> tuple[int, int]:
    page = require_int(1 if page is None else page, "page", minimum=1)
    if page_size is None:
        page_size = current_app.config.get("SEARCH_DEFAULT_PAGE_SIZE", 20)
    page_size = require_int(
        page_size,
        "page_size",
        minimum=1,
        maximum=current_app.config.get("SEARCH_MAX_PAGE_SIZE", 100),
    )
    return page, page_size


def paginate_query(query, *, page=1, page_size=None) -> dict:
    page, page_size = normalize_paging(page, page_size)

    total = query.order_by(None).count()
    total_pages = (total + page_size - 1) // page_size if total > 0 else 1
    rows = query.offset((page - 1) * page_size).limit(page_size).all()

    return {
        "items": [row.to_dict() for row in rows],
        "total": total,
        "page": page,
        "page_size": page_size,
        "total_pages": total_pages,
    }


def _apply_filters(query, filters: dict):
    errors = {}

    unknown = sorted(set(filters) - SEARCH_FILTERS)
    for key in unknown:
        errors[key] = "unknown filter"

    for key, enum_cls in _ENUM_FILTERS.items():
        value = filters.get(key)
        if value in (None, ""):
            continue
        if value not in values(enum_cls):
            errors[key] = f"must be one of: {', '.join(values(enum_cls))}"
            continue
        query = query.filter(getattr(Document, key) == value)

    for key, column in _ID_FILTERS.items():
        value = filters.get(key)
        if value in (None, ""):
            continue
        try:
            query = query.filter(column == require_int(value, key, minimum=1))
        except ValidationFailed as exc:
            errors.update(exc.field_errors)

    if filters.get("registration_year") not in (None, ""):
        try:
            year = require_int(filters["registration_year"], "registration_year", minimum=1900, maximum=9999)
            query = query.filter(Document.registration_year == year)
        except ValidationFailed as exc:
            errors.update(exc.field_errors)

    date_from = date_to = None
    for key in ("date_from", "date_to"):
        if filters.get(key) in (None, ""):
            continue
        try:
            parsed = _parse_date(filters[key], key)
        except ValidationFailed as exc:
            errors.update(exc.field_errors)
            continue
        if key == "date_from":
            date_from = parsed
            query = query.filter(Document.registration_date >= parsed)
        else:
            date_to = parsed
            query = query.filter(Document.registration_date <= parsed)
    if date_from and date_to and date_from > date_to:
        errors["date_to"] = "must not be before date_from"

    text = filters.get("text")
    if text not in (None, ""):
        if not isinstance(text, str):
            errors["text"] = "must be a string"
        elif text.strip():
            pattern = _like_pattern(text.strip())
            query = query.filter(or_(*(col.ilike(pattern, escape="\\") for col in _TEXT_COLUMNS)))

    overdue = filters.get("overdue")
    if overdue is not None:
        if not isinstance(overdue, bool):
            errors["overdue"] = "must be a boolean"
        elif overdue:
            query = query.filter(
                Document.due_date.isnot(None),
                Document.due_date < utcnow().date(),
                Document.status.in_(OPEN_STATUSES),
            )

    if errors:
        raise ValidationFailed.from_fields(errors)
    return query


def _ordering(sort_by, sort_dir) -> list:
    sort_by = sort_by or "registration_date"
    sort_dir = sort_dir or "desc"

    errors = {}
    if not isinstance(sort_by, str) or sort_by not in SORT_FIELDS:
        errors["sort_by"] = f"must be one of: {', '.join(SORT_FIELDS)}"
    if not isinstance(sort_dir, str) or sort_dir not in SORT_DIRECTIONS:
        errors["sort_dir"] = "must be asc or desc"
    if errors:
        raise ValidationFailed.from_fields(errors)

    if sort_dir == "asc":
        return [col.asc().nulls_last() for col in SORT_FIELDS[sort_by]] + [Document.id.asc()]
    return [col.desc().nulls_last() for col in SORT_FIELDS[sort_by]] + [Document.id.desc()]


def search_documents(
    filters: dict | None,
    user,
    *,
    page=1,
    page_size=None,
    sort_by: str | None = None,
    sort_dir: str | None = None,
) -> dict:
    """
    Filtered, paginated list of the documents ``user`` can see.

    Default order is newest registration first. Whatever the sort key,
    documents without a value for it (drafts) come last.
    """
    if filters is None:
        filters = {}
    if not isinstance(filters, dict):
        raise ValidationFailed.for_field("filters", "must be an object")

    query = db.session.query(Document).filter(Document.deleted_at.is_(None))
    clause = visibility_clause(user)
    if clause is not None:
        query = query.filter(clause)
    ordering = _ordering(sort_by, sort_dir)
    query = _apply_filters(query, filters)
    query = query.order_by(*ordering)
    return paginate_query(query, page=page, page_size=page_size)


def list_overdue_documents(parish_id: int | None = None, today: date | None = None) -> list[Document]:
    """Open (registered / in work) documents whose due date has passed."""
    today = today or utcnow().date()
    query = db.session.query(Document).filter(
        Document.deleted_at.is_(None),
        Document.status.in_(OPEN_STATUSES),
        Document.due_date.isnot(None),
        Document.due_date < today,
    )
    if parish_id is not None:
        query = query.filter(Document.parish_id == parish_id)
    return query.order_by(Document.due_date.asc(), Document.id.asc()).all()
