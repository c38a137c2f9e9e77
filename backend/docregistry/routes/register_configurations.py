# Overview: Flask API routes for register configurations; parses input and returns JSON responses.

# backend/docregistry/routes/register_configurations.py
"""
Register Configuration API Routes

A register configuration is a named numbering policy (starting number,
optional yearly reset) that documents are numbered against.

SECURITY:
- Reading requires VIEW_DOCUMENTS; non-admin users see their parish's
  registers plus the global ones
- Create/update/delete require MANAGE_REGISTER_CONFIGURATIONS
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import RegistryError, error_response
from ..permissions import MANAGE_REGISTER_CONFIGURATIONS, VIEW_DOCUMENTS
from ..services import numbering_service, register_config_service
from ..decorators import require_auth, require_permission
from docregistry.time_utils import current_year


register_configs_bp = Blueprint(
    "register_configurations", __name__, url_prefix="/api/register-configurations"
)


def _parse_bool_arg(name: str) -> bool:
    return (request.args.get(name) or "").strip().lower() in {"1", "true", "yes"}


@register_configs_bp.get("")
@require_auth
@require_permission(VIEW_DOCUMENTS)
def list_configurations_route():
    """
    List register configurations.

    Query params:
        parish_id: restrict to one parish (plus global registers)
        include_deleted: also list soft-deleted registers (admin only)
    """
    try:
        user = g.current_user
        parish_id = request.args.get("parish_id", type=int)
        include_deleted = _parse_bool_arg("include_deleted") and user.is_admin

        if not user.is_admin and user.parish_id is not None:
            parish_id = user.parish_id

        configs = register_config_service.list_configurations(
            parish_id=parish_id,
            include_deleted=include_deleted,
        )
        return jsonify({"configurations": [c.to_dict() for c in configs]}), 200

    except RegistryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list register configurations")
        return jsonify({"error": "Internal server error"}), 500


@register_configs_bp.post("")
@require_auth
@require_permission(MANAGE_REGISTER_CONFIGURATIONS)
def create_configuration_route():
    """
    Create a register configuration.

    Request body:
    {
        "name": "Incoming mail",
        "parish_id": 1,            (optional, null = global)
        "starting_number": 1,      (optional, default 1)
        "resets_annually": true,   (optional, default true)
        "notes": "..."             (optional)
    }
    """
    try:
        config = register_config_service.create_configuration(
            request.get_json(silent=True),
            user_id=g.current_user.id,
        )
        return jsonify({"configuration": config.to_dict()}), 201

    except RegistryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create register configuration")
        return jsonify({"error": "Internal server error"}), 500


@register_configs_bp.get("/<int:configuration_id>")
@require_auth
@require_permission(VIEW_DOCUMENTS)
def get_configuration_route(configuration_id: int):
    try:
        config = register_config_service.get_configuration(configuration_id)
        return jsonify({"configuration": config.to_dict()}), 200
    except RegistryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load register configuration")
        return jsonify({"error": "Internal server error"}), 500


@register_configs_bp.put("/<int:configuration_id>")
@register_configs_bp.patch("/<int:configuration_id>")
@require_auth
@require_permission(MANAGE_REGISTER_CONFIGURATIONS)
def update_configuration_route(configuration_id: int):
    """
    Update a register configuration (partial).

    Changing starting_number only affects counter scopes that have not
    issued a number yet.
    """
    try:
        config = register_config_service.update_configuration(
            configuration_id,
            request.get_json(silent=True),
            user_id=g.current_user.id,
        )
        return jsonify({"configuration": config.to_dict()}), 200

    except RegistryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update register configuration")
        return jsonify({"error": "Internal server error"}), 500


@register_configs_bp.delete("/<int:configuration_id>")
@require_auth
@require_permission(MANAGE_REGISTER_CONFIGURATIONS)
def delete_configuration_route(configuration_id: int):
    """
    Delete a register configuration.

    Registers already referenced by documents are soft-deleted; unused ones
    are removed together with their counters.
    """
    try:
        result = register_config_service.delete_configuration(
            configuration_id,
            user_id=g.current_user.id,
        )
        return jsonify(result), 200

    except RegistryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete register configuration")
        return jsonify({"error": "Internal server error"}), 500


@register_configs_bp.get("/<int:configuration_id>/next-number")
@require_auth
@require_permission(VIEW_DOCUMENTS)
def preview_next_number_route(configuration_id: int):
    """
    Preview the number the next registration would receive.

    Read-only: nothing is allocated. Query param ``year`` defaults to the
    current year.
    """
    try:
        year = request.args.get("year") or current_year()
        year = numbering_service.validate_year(year)
        number = numbering_service.peek_next_number(configuration_id, year)
        return jsonify({
            "configuration_id": configuration_id,
            "year": year,
            "next_number": number,
            "formatted_number": numbering_service.format_number(number, year),
        }), 200

    except RegistryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to preview next number")
        return jsonify({"error": "Internal server error"}), 500
