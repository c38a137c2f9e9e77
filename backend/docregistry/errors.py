# Overview: Domain error taxonomy shared by services and routes.

"""
Registry error taxonomy.

Every failure a service raises on purpose is a RegistryError subclass carrying
a stable machine-readable ``kind`` and the HTTP status the API answers with.
Routes translate them with ``error_response``; anything else is an internal
error and is logged.
"""

from __future__ import annotations

from flask import jsonify


class RegistryError(Exception):
    """Base class for expected, user-visible failures."""

    kind = "error"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.message, "kind": self.kind}


class NotFound(RegistryError):
    kind = "not_found"
    status_code = 404


class ConfigurationNotFound(NotFound):
    kind = "configuration_not_found"


class ValidationFailed(RegistryError):
    """Input problem; ``field_errors`` maps field name -> message."""

    kind = "validation_failed"
    status_code = 400

    def __init__(self, message: str, field_errors: dict[str, str] | None = None):
        super().__init__(message)
        self.field_errors = dict(field_errors or {})

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationFailed":
        return cls(f"{field}: {message}", {field: message})

    @classmethod
    def from_fields(cls, field_errors: dict[str, str]) -> "ValidationFailed":
        summary = "; ".join(f"{k}: {v}" for k, v in field_errors.items())
        return cls(f"Validation failed - {summary}", field_errors)

    def to_dict(self) -> dict:
        body = super().to_dict()
        if self.field_errors:
            body["field_errors"] = self.field_errors
        return body


class Forbidden(RegistryError):
    kind = "forbidden"
    status_code = 403


class InvalidTransition(RegistryError):
    kind = "invalid_transition"
    status_code = 409


class NoPendingSteps(RegistryError):
    kind = "no_pending_steps"
    status_code = 409


class NumberingConflict(RegistryError):
    """Counter race that could not be resolved; safe to retry with the same scope."""

    kind = "numbering_conflict"
    status_code = 503
    retryable = True

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["retryable"] = True
        return body


def error_response(exc: RegistryError):
    """Flask response tuple for a RegistryError."""
    return jsonify(exc.to_dict()), exc.status_code
