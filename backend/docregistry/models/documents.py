from __future__ import annotations

from ..extensions import db
from docregistry.time_utils import to_utc_z, to_iso_date


class Document(db.Model):
    """
    A registered piece of correspondence.

    LIFECYCLE:
    1. DRAFT: Captured, no registration number yet
    2. REGISTERED: Number stamped from the register configuration
    3. IN_WORK: At least one routing branch is open (or unresolved)
    4. RESOLVED: Every branch closed with a standing resolution/approval
    5. ARCHIVED: Filed away (terminal)
    6. CANCELLED: Withdrawn by its creator or by cancellation of every branch (terminal)

    Once routing starts, status is derived from the workflow steps
    (see services/status_policy.py), never set directly by clients.

    registration_number / registration_year are written exactly once, by the
    draft -> registered transition, and never updated afterwards.
    """
    __tablename__ = "documents"
    __table_args__ = (
        db.UniqueConstraint(
            "configuration_id", "registration_year", "registration_number",
            name="uq_documents_register_year_number",
        ),
        db.Index("ix_documents_parish_status", "parish_id", "status"),
        db.Index("ix_documents_registration_date", "registration_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    parish_id = db.Column(db.Integer, db.ForeignKey("parishes.id"), nullable=False, index=True)
    configuration_id = db.Column(
        db.Integer, db.ForeignKey("register_configurations.id"), nullable=False, index=True
    )

    document_type = db.Column(db.String(16), nullable=False)  # incoming, outgoing, internal

    # Assigned by the numbering service at registration
    registration_year = db.Column(db.Integer, nullable=True)
    registration_number = db.Column(db.Integer, nullable=True)
    formatted_number = db.Column(db.String(32), nullable=True)
    registration_date = db.Column(db.Date, nullable=True)

    subject = db.Column(db.String(500), nullable=False)
    content = db.Column(db.Text, nullable=True)
    priority = db.Column(db.String(16), nullable=False, default="normal")

    sender_name = db.Column(db.String(255), nullable=True)
    recipient_name = db.Column(db.String(255), nullable=True)
    external_number = db.Column(db.String(64), nullable=True)
    external_date = db.Column(db.Date, nullable=True)
    due_date = db.Column(db.Date, nullable=True)

    # Current owner, follows the latest routing target
    department_id = db.Column(db.Integer, db.ForeignKey("departments.id"), nullable=True, index=True)
    assigned_to_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    status = db.Column(db.String(16), nullable=False, default="draft", index=True)

    resolution = db.Column(db.Text, nullable=True)
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    archive_indicator = db.Column(db.String(64), nullable=True)
    archived_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    updated_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    configuration = db.relationship("RegisterConfiguration", backref=db.backref("documents", lazy=True))
    parish = db.relationship("Parish")
    department = db.relationship("Department")
    created_by = db.relationship("User", foreign_keys=[created_by_user_id])
    steps = db.relationship(
        "WorkflowStep",
        back_populates="document",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="WorkflowStep.id",
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Document id={self.id} number={self.formatted_number!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "parish_id": self.parish_id,
            "configuration_id": self.configuration_id,
            "document_type": self.document_type,
            "registration_year": self.registration_year,
            "registration_number": self.registration_number,
            "formatted_number": self.formatted_number,
            "registration_date": to_iso_date(self.registration_date),
            "subject": self.subject,
            "content": self.content,
            "priority": self.priority,
            "sender_name": self.sender_name,
            "recipient_name": self.recipient_name,
            "external_number": self.external_number,
            "external_date": to_iso_date(self.external_date),
            "due_date": to_iso_date(self.due_date),
            "department_id": self.department_id,
            "assigned_to_user_id": self.assigned_to_user_id,
            "status": self.status,
            "resolution": self.resolution,
            "resolved_at": to_utc_z(self.resolved_at) if self.resolved_at else None,
            "archive_indicator": self.archive_indicator,
            "archived_at": to_utc_z(self.archived_at) if self.archived_at else None,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "created_by_user_id": self.created_by_user_id,
            "updated_by_user_id": self.updated_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class WorkflowStep(db.Model):
    """
    One routing assignment ("branch link") of a document to a recipient.

    STATE MACHINE:
        PENDING -> COMPLETED (with exactly one action)

    A step is never reopened; sending the document on creates a new step.
    Steps of one document are a flat collection: parallel branches are simply
    several pending steps at once, with no parent/child links.
    """
    __tablename__ = "workflow_steps"
    __table_args__ = (
        db.Index("ix_workflow_steps_document_status", "document_id", "step_status"),
        db.Index("ix_workflow_steps_to_user_status", "to_user_id", "step_status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_id = db.Column(db.Integer, db.ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True)

    from_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    to_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    to_department_id = db.Column(db.Integer, db.ForeignKey("departments.id"), nullable=True, index=True)

    step_status = db.Column(db.String(16), nullable=False, default="pending")  # pending, completed
    action = db.Column(db.String(16), nullable=True)  # set only once completed

    notes = db.Column(db.Text, nullable=True)
    resolution = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    document = db.relationship("Document", back_populates="steps")

    @property
    def is_pending(self) -> bool:
        return self.step_status == "pending"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_id": self.document_id,
            "from_user_id": self.from_user_id,
            "to_user_id": self.to_user_id,
            "to_department_id": self.to_department_id,
            "step_status": self.step_status,
            "action": self.action,
            "notes": self.notes,
            "resolution": self.resolution,
            "created_at": to_utc_z(self.created_at),
            "completed_at": to_utc_z(self.completed_at) if self.completed_at else None,
            "completed_by_user_id": self.completed_by_user_id,
        }


class DocumentConnection(db.Model):
    """
    Directed link between two documents (a reply to a letter, an amendment,
    an attachment, or a plain cross-reference).

    Stored once, in the direction it was created; reads look both ways.
    """
    __tablename__ = "document_connections"
    __table_args__ = (
        db.UniqueConstraint(
            "document_id", "connected_document_id",
            name="uq_document_connections_pair",
        ),
        db.CheckConstraint(
            "document_id <> connected_document_id",
            name="ck_document_connections_not_self",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_id = db.Column(
        db.Integer, db.ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    connected_document_id = db.Column(
        db.Integer, db.ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    connection_type = db.Column(db.String(16), nullable=False)  # related, response, attachment, amendment

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def other_document_id(self, document_id: int) -> int:
        if self.document_id == document_id:
            return self.connected_document_id
        return self.document_id

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_id": self.document_id,
            "connected_document_id": self.connected_document_id,
            "connection_type": self.connection_type,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
