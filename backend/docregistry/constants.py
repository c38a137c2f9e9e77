# Overview: Closed enumerations for document and workflow state.

from __future__ import annotations

from enum import Enum


class DocumentType(str, Enum):
    INCOMING = "incoming"
    OUTGOING = "outgoing"
    INTERNAL = "internal"


class DocumentStatus(str, Enum):
    DRAFT = "draft"
    REGISTERED = "registered"
    IN_WORK = "in_work"
    RESOLVED = "resolved"
    ARCHIVED = "archived"
    CANCELLED = "cancelled"


class Priority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class StepStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"


class StepAction(str, Enum):
    SENT = "sent"
    RECEIVED = "received"
    RESOLVED = "resolved"
    RETURNED = "returned"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class ConnectionType(str, Enum):
    RELATED = "related"
    RESPONSE = "response"
    ATTACHMENT = "attachment"
    AMENDMENT = "amendment"


class UserRole(str, Enum):
    ADMIN = "admin"
    REGISTRAR = "registrar"
    CLERK = "clerk"


# Statuses a document never leaves
TERMINAL_DOCUMENT_STATUSES = frozenset({DocumentStatus.ARCHIVED, DocumentStatus.CANCELLED})

# Statuses from which a document may be routed
ROUTABLE_DOCUMENT_STATUSES = frozenset({
    DocumentStatus.REGISTERED,
    DocumentStatus.IN_WORK,
    DocumentStatus.RESOLVED,
})

# Actions a recipient may record; cancellation goes through the cancellation coordinator
COMPLETION_ACTIONS = frozenset(a for a in StepAction if a is not StepAction.CANCELLED)

# Plain string forms, for comparing against stored column values
TERMINAL_STATUS_VALUES = frozenset(s.value for s in TERMINAL_DOCUMENT_STATUSES)
ROUTABLE_STATUS_VALUES = frozenset(s.value for s in ROUTABLE_DOCUMENT_STATUSES)

POSITIVE_ACTIONS = frozenset({StepAction.RESOLVED, StepAction.APPROVED})
NEGATIVE_ACTIONS = frozenset({StepAction.REJECTED, StepAction.RETURNED})

# Counter scope for registers that never reset
UNSCOPED_COUNTER_YEAR = 0


def values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]
