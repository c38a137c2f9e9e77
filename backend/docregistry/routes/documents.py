# Overview: Flask API routes for documents; parses input and returns JSON responses.

# backend/docregistry/routes/documents.py
"""
Document Registry API Routes

- POST   /api/documents                 - register a document (or store a draft)
- GET    /api/documents/<id>            - fetch one document
- PATCH  /api/documents/<id>            - edit descriptive fields
- DELETE /api/documents/<id>            - delete (drafts) / soft-delete
- POST   /api/documents/<id>/register   - DRAFT -> REGISTERED
- POST   /api/documents/<id>/route      - open a new routing branch
- GET    /api/documents/<id>/steps      - workflow history
- POST   /api/documents/<id>/cancel     - cancel all (creator) or own branch
- POST   /api/documents/<id>/archive    - RESOLVED -> ARCHIVED
- GET    /api/documents/<id>/connections         - linked documents, both directions
- POST   /api/documents/<id>/connections         - link another document
- DELETE /api/documents/<id>/connections/<cid>   - remove a link
- POST   /api/documents/search          - filtered, paginated search
- GET    /api/documents/inbox           - documents waiting on the current user

SECURITY:
- Acting user ids come from the authenticated session (g.current_user),
  never from the request body
- Documents the user cannot see answer 404, not 403
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import RegistryError, ValidationFailed, error_response
from ..permissions import ARCHIVE_DOCUMENTS, REGISTER_DOCUMENTS, VIEW_DOCUMENTS
from ..services import (
    cancellation_service,
    connection_service,
    document_service,
    search_service,
    workflow_service,
)
from ..decorators import require_auth, require_permission


documents_bp = Blueprint("documents", __name__, url_prefix="/api/documents")


def _json_body() -> dict:
    data = request.get_json(silent=True)
    return data if data is not None else {}


@documents_bp.post("")
@require_auth
@require_permission(REGISTER_DOCUMENTS)
def create_document_route():
    """
    Register a new document.

    Request body:
    {
        "document_type": "incoming",
        "configuration_id": 1,
        "subject": "Request for certificate",
        "parish_id": 1,             (optional, defaults to the register's / user's parish)
        "priority": "normal",       (optional)
        "registration_year": 2025,  (optional, defaults to the current year)
        "status": "draft"           (optional, store without a number)
        ...
    }
    """
    try:
        data = _json_body()
        if not isinstance(data, dict):
            return jsonify({"error": "Invalid JSON payload", "kind": "validation_failed"}), 400
        data = dict(data)
        status = data.pop("status", None)
        if status not in (None, "draft", "registered"):
            raise ValidationFailed.for_field("status", "must be draft or registered")
        as_draft = status == "draft"

        if as_draft:
            document = document_service.create_draft(data, g.current_user)
        else:
            document = document_service.register_document(data, g.current_user)

        return jsonify({"document": document.to_dict()}), 201

    except RegistryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to register document")
        return jsonify({"error": "Internal server error"}), 500


@documents_bp.post("/search")
@require_auth
@require_permission(VIEW_DOCUMENTS)
def search_documents_route():
    """
    Search documents visible to the current user.

    Request body:
    {
        "filters": {"status": "in_work", "text": "certificate", ...},
        "page": 1,
        "page_size": 20,
        "sort_by": "registration_date",   (registration_date, registration_number, priority, created_at)
        "sort_dir": "desc"
    }
    Filters may also be given at the top level of the body.
    """
    try:
        data = _json_body()
        if not isinstance(data, dict):
            return jsonify({"error": "Invalid JSON payload", "kind": "validation_failed"}), 400

        filters = data.get("filters")
        if filters is None:
            filters = {
                k: v for k, v in data.items() if k not in ("page", "page_size", "sort_by", "sort_dir")
            }

        result = search_service.search_documents(
            filters,
            g.current_user,
            page=data.get("page", 1),
            page_size=data.get("page_size"),
            sort_by=data.get("sort_by"),
            sort_dir=data.get("sort_dir"),
        )
        return jsonify(result), 200

    except RegistryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to search documents")
        return jsonify({"error": "Internal server error"}), 500


@documents_bp.get("/inbox")
@require_auth
@require_permission(VIEW_DOCUMENTS)
def inbox_route():
    try:
        result = workflow_service.list_pending_for_user(
            g.current_user,
            page=request.args.get("page", 1),
            page_size=request.args.get("page_size"),
        )
        return jsonify(result), 200

    except RegistryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load inbox")
        return jsonify({"error": "Internal server error"}), 500


@documents_bp.get("/<int:document_id>")
@require_auth
@require_permission(VIEW_DOCUMENTS)
def get_document_route(document_id: int):
    try:
        document = document_service.get_document(document_id, g.current_user)
        return jsonify({"document": document.to_dict()}), 200
    except RegistryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load document")
        return jsonify({"error": "Internal server error"}), 500


@documents_bp.patch("/<int:document_id>")
@require_auth
@require_permission(REGISTER_DOCUMENTS)
def update_document_route(document_id: int):
    """
    Edit a document (partial).

    Registration fields and status are never writable; configuration,
    type and parish are writable only while the document is a draft.
    """
    try:
        document = document_service.update_document(document_id, _json_body(), g.current_user)
        return jsonify({"document": document.to_dict()}), 200

    except RegistryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update document")
        return jsonify({"error": "Internal server error"}), 500


@documents_bp.delete("/<int:document_id>")
@require_auth
@require_permission(REGISTER_DOCUMENTS)
def delete_document_route(document_id: int):
    try:
        result = document_service.delete_document(document_id, g.current_user)
        return jsonify(result), 200

    except RegistryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete document")
        return jsonify({"error": "Internal server error"}), 500


@documents_bp.post("/<int:document_id>/register")
@require_auth
@require_permission(REGISTER_DOCUMENTS)
def register_draft_route(document_id: int):
    """Stamp a registration number on a draft (optional body: {"year": 2025})."""
    try:
        data = _json_body()
        year = data.get("year") if isinstance(data, dict) else None
        document = document_service.register_draft(document_id, g.current_user, year=year)
        return jsonify({"document": document.to_dict()}), 200

    except RegistryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to register draft")
        return jsonify({"error": "Internal server error"}), 500


@documents_bp.post("/<int:document_id>/route")
@require_auth
@require_permission(VIEW_DOCUMENTS)
def route_document_route(document_id: int):
    """
    Route a document to a user and/or a department.

    Request body:
    {
        "to_user_id": 7,          (optional)
        "to_department_id": 3,    (optional, one of the two is required)
        "notes": "Please answer"  (optional)
    }

    Each call opens an independent branch; routing to several recipients
    in turn yields several pending steps.
    """
    try:
        data = _json_body()
        if not isinstance(data, dict):
            return jsonify({"error": "Invalid JSON payload", "kind": "validation_failed"}), 400

        step = workflow_service.route_document(
            document_id,
            g.current_user,
            to_user_id=data.get("to_user_id"),
            to_department_id=data.get("to_department_id"),
            notes=data.get("notes"),
        )
        return jsonify({
            "step": step.to_dict(),
            "document_status": step.document.status,
        }), 201

    except RegistryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to route document")
        return jsonify({"error": "Internal server error"}), 500


@documents_bp.get("/<int:document_id>/steps")
@require_auth
@require_permission(VIEW_DOCUMENTS)
def list_steps_route(document_id: int):
    try:
        steps = workflow_service.list_steps(document_id, g.current_user)
        return jsonify({"steps": [s.to_dict() for s in steps]}), 200
    except RegistryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list workflow steps")
        return jsonify({"error": "Internal server error"}), 500


@documents_bp.post("/<int:document_id>/cancel")
@require_auth
@require_permission(VIEW_DOCUMENTS)
def cancel_document_route(document_id: int):
    """
    Cancel a document.

    Request body:
    {
        "cancel_all": true,   (creator only: closes every branch, cancels the document)
        "notes": "..."        (optional)
    }
    With cancel_all false only the caller's own pending branches are cancelled.
    """
    try:
        data = _json_body()
        if not isinstance(data, dict):
            return jsonify({"error": "Invalid JSON payload", "kind": "validation_failed"}), 400

        result = cancellation_service.cancel_document(
            document_id,
            g.current_user,
            cancel_all_steps=data.get("cancel_all", False),
            notes=data.get("notes"),
        )
        return jsonify(result), 200

    except RegistryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to cancel document")
        return jsonify({"error": "Internal server error"}), 500


@documents_bp.post("/<int:document_id>/archive")
@require_auth
@require_permission(ARCHIVE_DOCUMENTS)
def archive_document_route(document_id: int):
    try:
        data = _json_body()
        indicator = data.get("archive_indicator") if isinstance(data, dict) else None
        document = document_service.archive_document(document_id, g.current_user, indicator)
        return jsonify({"document": document.to_dict()}), 200

    except RegistryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to archive document")
        return jsonify({"error": "Internal server error"}), 500


@documents_bp.get("/<int:document_id>/connections")
@require_auth
@require_permission(VIEW_DOCUMENTS)
def list_connections_route(document_id: int):
    try:
        connections = connection_service.list_connections(document_id, g.current_user)
        return jsonify({"connections": connections}), 200
    except RegistryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list document connections")
        return jsonify({"error": "Internal server error"}), 500


@documents_bp.post("/<int:document_id>/connections")
@require_auth
@require_permission(REGISTER_DOCUMENTS)
def create_connection_route(document_id: int):
    """
    Link another document.

    Request body:
    {
        "connected_document_id": 12,
        "connection_type": "response"   (related, response, attachment, amendment)
    }
    """
    try:
        data = _json_body()
        if not isinstance(data, dict):
            return jsonify({"error": "Invalid JSON payload", "kind": "validation_failed"}), 400

        connection = connection_service.link_documents(
            document_id,
            data.get("connected_document_id"),
            data.get("connection_type"),
            g.current_user,
        )
        return jsonify({"connection": connection.to_dict()}), 201

    except RegistryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to connect documents")
        return jsonify({"error": "Internal server error"}), 500


@documents_bp.delete("/<int:document_id>/connections/<int:connection_id>")
@require_auth
@require_permission(REGISTER_DOCUMENTS)
def delete_connection_route(document_id: int, connection_id: int):
    try:
        result = connection_service.unlink_documents(document_id, connection_id, g.current_user)
        return jsonify(result), 200

    except RegistryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to remove document connection")
        return jsonify({"error": "Internal server error"}), 500
