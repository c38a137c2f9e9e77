# Overview: Service-layer operations for register configurations; encapsulates business logic and database work.

from __future__ import annotations

from flask import current_app

from ..errors import ConfigurationNotFound, ValidationFailed
from ..extensions import db
from ..models import Document, Parish, RegisterConfiguration, RegisterCounter
from ..validation import ModelValidationPolicy, validate_payload
from docregistry.time_utils import utcnow


CONFIGURATION_POLICY = ModelValidationPolicy(
    writable_fields={"name", "parish_id", "starting_number", "resets_annually", "notes"},
    required_on_create={"name"},
)


def _check_rules(patch: dict) -> None:
    errors = {}
    if "starting_number" in patch:
        if patch["starting_number"] is None or patch["starting_number"] < 1:
            errors["starting_number"] = "must be >= 1"
    if patch.get("parish_id") is not None:
        if not db.session.get(Parish, patch["parish_id"]):
            errors["parish_id"] = "parish not found"
    if errors:
        raise ValidationFailed.from_fields(errors)


def get_configuration(configuration_id: int, *, include_deleted: bool = False) -> RegisterConfiguration:
    config = db.session.get(RegisterConfiguration, configuration_id)
    if not config or (config.is_deleted and not include_deleted):
        raise ConfigurationNotFound(f"Register configuration {configuration_id} not found")
    return config


def list_configurations(
    *,
    parish_id: int | None = None,
    include_global: bool = True,
    include_deleted: bool = False,
) -> list[RegisterConfiguration]:
    """
    List configurations, optionally restricted to one parish (plus the global
    registers shared by every parish).
    """
    q = db.session.query(RegisterConfiguration)
    if not include_deleted:
        q = q.filter(RegisterConfiguration.deleted_at.is_(None))
    if parish_id is not None:
        if include_global:
            q = q.filter(db.or_(
                RegisterConfiguration.parish_id == parish_id,
                RegisterConfiguration.parish_id.is_(None),
            ))
        else:
            q = q.filter(RegisterConfiguration.parish_id == parish_id)
    return q.order_by(RegisterConfiguration.name, RegisterConfiguration.id).all()


def create_configuration(payload: dict, *, user_id: int | None) -> RegisterConfiguration:
    patch = validate_payload(
        model=RegisterConfiguration,
        payload=payload,
        policy=CONFIGURATION_POLICY,
        partial=False,
    )
    _check_rules(patch)

    config = RegisterConfiguration(
        name=patch["name"],
        parish_id=patch.get("parish_id"),
        starting_number=patch.get("starting_number") or 1,
        resets_annually=patch.get("resets_annually", True),
        notes=patch.get("notes"),
        created_by_user_id=user_id,
        updated_by_user_id=user_id,
    )
    db.session.add(config)
    db.session.commit()

    current_app.logger.info(
        "Register configuration %s created (starting_number=%s, resets_annually=%s)",
        config.id, config.starting_number, config.resets_annually,
    )
    return config


def update_configuration(configuration_id: int, payload: dict, *, user_id: int | None) -> RegisterConfiguration:
    """
    Update a configuration.

    A new starting_number only applies to counter scopes that have not issued
    a number yet; existing sequences continue where they are.
    """
    config = get_configuration(configuration_id)
    patch = validate_payload(
        model=RegisterConfiguration,
        payload=payload,
        policy=CONFIGURATION_POLICY,
        partial=True,
    )
    _check_rules(patch)

    # Switching the counter scope would restart numbering inside scopes that
    # already hold numbers
    if "resets_annually" in patch and patch["resets_annually"] != config.resets_annually:
        if has_issued_numbers(configuration_id):
            raise ValidationFailed.for_field(
                "resets_annually", "cannot be changed once the register has issued numbers"
            )

    for key, value in patch.items():
        setattr(config, key, value)
    config.updated_by_user_id = user_id

    db.session.commit()
    return config


def is_referenced(configuration_id: int) -> bool:
    return db.session.query(Document.id).filter_by(configuration_id=configuration_id).first() is not None


def has_issued_numbers(configuration_id: int) -> bool:
    if is_referenced(configuration_id):
        return True
    return db.session.query(RegisterCounter.id).filter_by(configuration_id=configuration_id).first() is not None


def delete_configuration(configuration_id: int, *, user_id: int | None) -> dict:
    """
    Delete a configuration.

    Referenced configurations are soft-deleted (deleted_at) so documents keep
    their numbering provenance; unreferenced ones are removed with their
    counters.
    """
    config = get_configuration(configuration_id)

    if is_referenced(configuration_id):
        config.deleted_at = utcnow()
        config.updated_by_user_id = user_id
        db.session.commit()
        current_app.logger.info("Register configuration %s soft-deleted", configuration_id)
        return {"id": configuration_id, "deleted": True, "soft_deleted": True}

    db.session.query(RegisterCounter).filter_by(configuration_id=configuration_id).delete()
    db.session.delete(config)
    db.session.commit()
    current_app.logger.info("Register configuration %s deleted", configuration_id)
    return {"id": configuration_id, "deleted": True, "soft_deleted": False}
