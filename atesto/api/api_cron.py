"""
Rotinas agendadas expostas por HTTP, protegidas por ``Authorization: Bearer <CRON_SECRET>``.
"""

from __future__ import annotations

import hmac

from flask import Blueprint, current_app, request

from atesto.api.responses import action_response, error_response
from atesto.services import note_service

api_cron_bp = Blueprint("api_cron", __name__)


def _authorized() -> bool:
    secret = current_app.config.get("CRON_SECRET") or ""
    header = request.headers.get("Authorization", "")
    if not secret or not header.startswith("Bearer "):
        return False
    return hmac.compare_digest(header[len("Bearer "):].strip(), secret)


@api_cron_bp.route("/check-expirations", methods=["GET", "POST"])
def cron_check_expirations():
    if not _authorized():
        return error_response("Não autorizado.", 401)
    return action_response(note_service.mark_expired_notes())


@api_cron_bp.route("/send-reminders", methods=["GET", "POST"])
def cron_send_reminders():
    if not _authorized():
        return error_response("Não autorizado.", 401)
    return action_response(note_service.send_due_reminders())
