"""
API JSON das notas fiscais (usuário autenticado).

GET    /api/notes                  lista (filtro opcional ?status=)
POST   /api/notes                  cria (multipart com o arquivo da nota)
GET    /api/notes/trash            lixeira
GET    /api/notes/summary          resumo do painel
GET    /api/notes/project-accounts contas de projeto já usadas
POST   /api/notes/check-duplicate  verifica número + conta do projeto
POST   /api/notes/extract          pré-preenchimento a partir do documento
POST   /api/notes/notify-pending   lembrete manual a todos os coordenadores
GET    /api/notes/<id>             detalhe com histórico
PATCH  /api/notes/<id>             edição
POST   /api/notes/<id>/attest      atesto
POST   /api/notes/<id>/revert      reversão do atesto
DELETE /api/notes/<id>             lixeira (?permanent=1 exclui de vez)
POST   /api/notes/<id>/restore     restaura da lixeira
"""

from __future__ import annotations

import base64

from flask import Blueprint, request

from atesto.api.responses import action_response, error_response, ok_response, request_data
from atesto.middleware.auth import current_actor, login_required
from atesto.models import NoteStatus
from atesto.services import extraction_service, note_service
from atesto.services.dto import AttestRequest, EditNoteRequest, NewNoteRequest
from atesto.services.extraction_service import ExtractionError
from atesto.services.results import ActionError, ActionResult
from atesto.services.settings_service import load_lifecycle_settings

api_notes_bp = Blueprint("api_notes", __name__)

_TRUE_VALUES = {"1", "true", "yes", "on"}


@api_notes_bp.route("", methods=["GET"])
@login_required
def api_list_notes():
    status = (request.args.get("status") or "").strip().upper() or None
    if status and status not in {s.value for s in NoteStatus}:
        return error_response("Status inválido.", 400)
    notes = note_service.list_notes(current_actor(), status=status)
    return ok_response("Notas carregadas.", notes=notes)


@api_notes_bp.route("", methods=["POST"])
@login_required
def api_create_note():
    note_request = NewNoteRequest.from_form(request.form, request.files)
    result = note_service.create_note(current_actor(), note_request, load_lifecycle_settings())
    body, status = action_response(result)
    return body, (201 if result.success else status)


@api_notes_bp.route("/trash", methods=["GET"])
@login_required
def api_list_trash():
    return ok_response("Lixeira carregada.", notes=note_service.list_trash(current_actor()))


@api_notes_bp.route("/summary", methods=["GET"])
@login_required
def api_summary():
    return ok_response("Resumo carregado.", **note_service.get_dashboard_summary(current_actor()))


@api_notes_bp.route("/project-accounts", methods=["GET"])
@login_required
def api_project_accounts():
    return ok_response("Contas carregadas.", accounts=note_service.list_project_accounts(current_actor()))


@api_notes_bp.route("/check-duplicate", methods=["POST"])
@login_required
def api_check_duplicate():
    data = request_data()
    exists = note_service.check_existing_note(
        current_actor(),
        data.get("note_number") or "",
        data.get("project_account_number") or "",
    )
    return ok_response("Verificação concluída.", exists=exists)


@api_notes_bp.route("/extract", methods=["POST"])
@login_required
def api_extract():
    """
    Aceita JSON {"document": "data:<mime>;base64,..."} ou um arquivo multipart
    no campo "file".
    """
    document = None
    uploaded = request.files.get("file")
    if uploaded is not None and uploaded.filename:
        data = uploaded.read()
        encoded = base64.b64encode(data).decode("ascii")
        document = f"data:{uploaded.mimetype or 'application/octet-stream'};base64,{encoded}"
    else:
        document = (request.get_json(silent=True) or {}).get("document")
    if not document:
        return error_response("Documento ausente.", 400)

    try:
        extracted = extraction_service.extract(document)
    except ExtractionError as exc:
        return action_response(
            ActionResult.fail(
                ActionError.DEPENDENCY,
                f"Não foi possível analisar os dados do documento. Preencha manualmente. Detalhe: {exc}",
            )
        )
    return ok_response("Dados extraídos com sucesso.", data=extracted.to_dict())


@api_notes_bp.route("/notify-pending", methods=["POST"])
@login_required
def api_notify_pending():
    return action_response(note_service.notify_all_pending_coordinators(current_actor()))


@api_notes_bp.route("/<note_id>", methods=["GET"])
@login_required
def api_note_detail(note_id: str):
    return action_response(note_service.get_note_detail(current_actor(), note_id))


@api_notes_bp.route("/<note_id>", methods=["PATCH"])
@login_required
def api_edit_note(note_id: str):
    edit_request = EditNoteRequest.from_form(request_data())
    return action_response(note_service.edit_note(current_actor(), note_id, edit_request))


@api_notes_bp.route("/<note_id>/attest", methods=["POST"])
@login_required
def api_attest_note(note_id: str):
    attest_request = AttestRequest.from_form(note_id, request.form, request.files)
    return action_response(note_service.attest_note(current_actor(), attest_request))


@api_notes_bp.route("/<note_id>/revert", methods=["POST"])
@login_required
def api_revert_attestation(note_id: str):
    return action_response(note_service.revert_attestation(current_actor(), note_id))


@api_notes_bp.route("/<note_id>", methods=["DELETE"])
@login_required
def api_delete_note(note_id: str):
    permanent = (request.args.get("permanent") or "").strip().lower() in _TRUE_VALUES
    return action_response(note_service.delete_note(current_actor(), note_id, permanent=permanent))


@api_notes_bp.route("/<note_id>/restore", methods=["POST"])
@login_required
def api_restore_note(note_id: str):
    return action_response(note_service.restore_note(current_actor(), note_id))
