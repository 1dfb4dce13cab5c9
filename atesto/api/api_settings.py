"""
API de configurações: ciclo de vida, templates de e-mail e usuários.
"""

from __future__ import annotations

from flask import Blueprint, request

from atesto.api.responses import action_response, error_response, ok_response, request_data
from atesto.middleware.auth import current_actor, login_required
from atesto.services import email_service, note_service, settings_service, user_service
from atesto.services.dto import SettingsRequest
from atesto.services.permissions import Permission, has_permission

api_settings_bp = Blueprint("api_settings", __name__)


def _require_settings_manager():
    if not has_permission(current_actor().role, Permission.SETTINGS_MANAGE):
        return error_response("Acesso negado.", 403)
    return None


@api_settings_bp.route("", methods=["GET"])
@login_required
def api_get_settings():
    denied = _require_settings_manager()
    if denied:
        return denied
    return ok_response("Configurações carregadas.", settings=settings_service.load_lifecycle_settings().to_dict())


@api_settings_bp.route("", methods=["PUT"])
@login_required
def api_save_settings():
    settings_request = SettingsRequest.from_form(request_data())
    return action_response(settings_service.save_lifecycle_settings(current_actor(), settings_request))


@api_settings_bp.route("/templates", methods=["GET"])
@login_required
def api_get_templates():
    denied = _require_settings_manager()
    if denied:
        return denied
    return ok_response("Templates carregados.", templates=email_service.list_templates())


@api_settings_bp.route("/templates", methods=["PUT"])
@login_required
def api_save_templates():
    data = request.get_json(silent=True) or {}
    templates = data.get("templates") if isinstance(data, dict) else data
    if not isinstance(templates, list):
        return error_response("Formato inválido: envie uma lista de templates.", 400)
    return action_response(email_service.save_templates(current_actor(), templates))


@api_settings_bp.route("/test-email", methods=["POST"])
@login_required
def api_send_test_email():
    data = request_data()
    return action_response(
        email_service.send_test_email(
            current_actor(),
            (data.get("recipient") or "").strip(),
            (data.get("type") or "").strip(),
        )
    )


@api_settings_bp.route("/preview-link", methods=["GET"])
@login_required
def api_preview_link():
    return action_response(note_service.get_preview_attestation_link(current_actor()))


@api_settings_bp.route("/users", methods=["GET"])
@login_required
def api_list_users():
    return action_response(user_service.list_users(current_actor()))


@api_settings_bp.route("/users/<int:user_id>/role", methods=["PUT"])
@login_required
def api_update_user_role(user_id: int):
    data = request_data()
    return action_response(user_service.update_user_role(current_actor(), user_id, data.get("role") or ""))
