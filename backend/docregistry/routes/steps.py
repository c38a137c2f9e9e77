# Overview: Flask API routes for workflow steps; parses input and returns JSON responses.

# backend/docregistry/routes/steps.py
"""
Workflow Step API Routes

- POST /api/steps/<id>/complete - recipient records an action on a pending step
- POST /api/steps/<id>/forward  - recipient passes the document on

Only the step's recipient (the addressed user, or a member of the addressed
department) may act on it.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import RegistryError, error_response
from ..permissions import VIEW_DOCUMENTS
from ..services import workflow_service
from ..decorators import require_auth, require_permission


steps_bp = Blueprint("steps", __name__, url_prefix="/api/steps")


@steps_bp.post("/<int:step_id>/complete")
@require_auth
@require_permission(VIEW_DOCUMENTS)
def complete_step_route(step_id: int):
    """
    Complete a pending step.

    Request body:
    {
        "action": "resolved",     (sent, received, resolved, returned, approved, rejected)
        "notes": "...",           (optional)
        "resolution": "..."       (optional)
    }

    Response:
        {"step": {...}, "document_status": "resolved"}
    """
    try:
        data = request.get_json(silent=True) or {}
        if not isinstance(data, dict):
            return jsonify({"error": "Invalid JSON payload", "kind": "validation_failed"}), 400

        step, document = workflow_service.complete_step(
            step_id,
            g.current_user,
            data.get("action"),
            notes=data.get("notes"),
            resolution=data.get("resolution"),
        )
        return jsonify({
            "step": step.to_dict(),
            "document_status": document.status,
        }), 200

    except RegistryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to complete step")
        return jsonify({"error": "Internal server error"}), 500


@steps_bp.post("/<int:step_id>/forward")
@require_auth
@require_permission(VIEW_DOCUMENTS)
def forward_step_route(step_id: int):
    """Close the step as "sent" and open the next one in a single transaction."""
    try:
        data = request.get_json(silent=True) or {}
        if not isinstance(data, dict):
            return jsonify({"error": "Invalid JSON payload", "kind": "validation_failed"}), 400

        completed, next_step = workflow_service.forward_step(
            step_id,
            g.current_user,
            to_user_id=data.get("to_user_id"),
            to_department_id=data.get("to_department_id"),
            notes=data.get("notes"),
        )
        return jsonify({
            "completed_step": completed.to_dict(),
            "step": next_step.to_dict(),
            "document_status": next_step.document.status,
        }), 201

    except RegistryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to forward step")
        return jsonify({"error": "Internal server error"}), 500
