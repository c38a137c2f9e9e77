from __future__ import annotations

from ..extensions import db
from docregistry.time_utils import to_utc_z


class RegisterConfiguration(db.Model):
    """
    Named numbering policy that documents are registered against.

    NUMBERING:
    - starting_number is the first number issued in a fresh counter scope
    - resets_annually=True scopes the counter to (configuration, year)
    - resets_annually=False uses one counter for the configuration's lifetime

    A configuration referenced by documents is never hard-deleted; deletion
    only stamps deleted_at, which takes it out of numbering.
    """
    __tablename__ = "register_configurations"
    __table_args__ = (
        db.Index("ix_register_configurations_parish", "parish_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)

    # Null = global register shared by every parish
    parish_id = db.Column(db.Integer, db.ForeignKey("parishes.id"), nullable=True)

    starting_number = db.Column(db.Integer, nullable=False, default=1)
    resets_annually = db.Column(db.Boolean, nullable=False, default=True)
    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    updated_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    parish = db.relationship("Parish", backref=db.backref("register_configurations", lazy=True))

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "parish_id": self.parish_id,
            "starting_number": self.starting_number,
            "resets_annually": self.resets_annually,
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "updated_by_user_id": self.updated_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "deleted_at": to_utc_z(self.deleted_at) if self.deleted_at else None,
        }


class RegisterCounter(db.Model):
    """
    Atomic per-scope registration counters.

    WHY: One row per (configuration, scope_year) so concurrent registrations
    increment the same row with a single UPDATE. The unique constraint makes
    the first insert of a scope race-safe. scope_year is 0 for registers that
    never reset.
    """
    __tablename__ = "register_counters"
    __table_args__ = (
        db.UniqueConstraint("configuration_id", "scope_year", name="uq_register_counters_scope"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    configuration_id = db.Column(
        db.Integer, db.ForeignKey("register_configurations.id"), nullable=False, index=True
    )
    scope_year = db.Column(db.Integer, nullable=False)

    # Last number handed out in this scope
    current_value = db.Column(db.Integer, nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    configuration = db.relationship(
        "RegisterConfiguration",
        backref=db.backref("counters", lazy=True, cascade="all, delete-orphan"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "configuration_id": self.configuration_id,
            "scope_year": self.scope_year,
            "current_value": self.current_value,
            "updated_at": to_utc_z(self.updated_at),
        }
