"""
Rotas públicas de atesto, autenticadas apenas pelo token do link enviado ao coordenador.

GET  /attest/<token>         dados da nota para conferência
POST /attest/<token>         atesto com o PDF assinado
POST /attest/<token>/reject  rejeição com motivo
"""

from __future__ import annotations

from flask import Blueprint, request

from atesto.api.responses import action_response
from atesto.services import note_service
from atesto.services.dto import PublicAttestRequest, PublicRejectRequest

api_attest_bp = Blueprint("api_attest", __name__)


@api_attest_bp.route("/<token>", methods=["GET"])
def attest_preview(token: str):
    return action_response(note_service.get_note_from_token(token))


@api_attest_bp.route("/<token>", methods=["POST"])
def attest_submit(token: str):
    attest_request = PublicAttestRequest.from_form(token, request.form, request.files)
    return action_response(note_service.attest_note_public(attest_request))


@api_attest_bp.route("/<token>/reject", methods=["POST"])
def attest_reject(token: str):
    form = request.form if request.form else (request.get_json(silent=True) or {})
    reject_request = PublicRejectRequest.from_form(token, form)
    return action_response(note_service.reject_note_public(reject_request))
