"""
Serviço das notas fiscais: criação, transições de status, lixeira e rotinas agendadas.

Regras gerais:
- Cada transição grava a alteração da nota e a linha de histórico na mesma
  transação (UnitOfWork).
- Uploads acontecem antes da transação; se a transação falhar o arquivo é
  removido.
- E-mails são enviados depois do commit e nunca desfazem a transição.
- Nenhuma exceção atravessa a fronteira: toda função pública devolve um
  ActionResult.
"""

from __future__ import annotations

import io
import logging
import uuid
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List, Optional

from atesto.models import HistoryType, Note, NoteStatus
from atesto.services import email_service, storage_service, token_service
from atesto.services.dto import (
    AttestRequest,
    EditNoteRequest,
    NewNoteRequest,
    PublicAttestRequest,
    PublicRejectRequest,
)
from atesto.services.formatting_service import format_brl, format_date_br, mask_project_account
from atesto.services.logging import log_structured_event
from atesto.services.permissions import Permission, has_permission
from atesto.services.results import GENERIC_SERVER_ERROR, ActionError, ActionResult
from atesto.services.settings_service import LifecycleSettings, load_lifecycle_settings
from atesto.services.storage_service import StorageError
from atesto.services.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)

SYSTEM_AUTHOR = "Sistema"

NOT_FOUND_MESSAGE = "Nota fiscal não encontrada."
NOT_PENDING_MESSAGE = "Esta nota não está mais pendente de ateste."
TOKEN_EXPIRED_MESSAGE = "Seu link de ateste expirou. Por favor, solicite um novo."
TOKEN_INVALID_MESSAGE = "Link de ateste inválido."
UPLOAD_FAILED_MESSAGE = "Falha ao salvar o arquivo. Tente novamente."

FIELD_LABELS = {
    "description": "descrição",
    "project_title": "título do projeto",
    "project_account_number": "conta do projeto",
    "coordinator_name": "nome do coordenador",
    "coordinator_email": "e-mail do coordenador",
    "cc_emails": "e-mails em cópia",
    "provider_name": "prestador",
    "provider_document": "documento do prestador",
    "client_name": "tomador",
    "client_document": "documento do tomador",
    "note_number": "número da nota",
    "issue_date": "data de emissão",
    "amount": "valor",
    "has_withholding_tax": "retenção de impostos",
}


def _utcnow() -> datetime:
    return datetime.utcnow()


def compute_deadline(issue_date: Optional[date], deadline_days: int, today: Optional[date] = None) -> datetime:
    """Prazo de atesto: data de emissão (ou hoje) + dias configurados."""
    base = issue_date or today or _utcnow().date()
    return datetime.combine(base, time.min) + timedelta(days=deadline_days)


# ---------------------------------------------------------------------------
# Autorização e serialização
# ---------------------------------------------------------------------------


def _is_manager(actor) -> bool:
    return has_permission(actor.role, Permission.NOTE_VIEW_ALL)


def _is_coordinator(actor, note: Note) -> bool:
    return bool(actor.email and note.coordinator_email) and (
        actor.email.strip().lower() == note.coordinator_email.strip().lower()
    )


def can_view_note(actor, note: Note) -> bool:
    if actor is None or note is None:
        return False
    if note.deleted:
        return note.user_id == actor.id or has_permission(actor.role, Permission.TRASH_MANAGE)
    return _is_manager(actor) or note.user_id == actor.id or _is_coordinator(actor, note)


def _can_attest(actor, note: Note) -> bool:
    return has_permission(actor.role, Permission.NOTE_ATTEST_ANY) or _is_coordinator(actor, note)


def _iso(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


def note_to_dict(note: Note, now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or _utcnow()
    return {
        "id": note.id,
        "user_id": note.user_id,
        "requester": note.requester,
        "requester_email": note.creator.email if note.creator is not None else None,
        "coordinator_name": note.coordinator_name,
        "coordinator_email": note.coordinator_email,
        "cc_emails": note.cc_emails,
        "invoice_type": note.invoice_type,
        "description": note.description,
        "amount": str(note.amount) if note.amount is not None else None,
        "amount_formatted": format_brl(note.amount) if note.amount is not None else None,
        "note_number": note.note_number,
        "issue_date": _iso(note.issue_date),
        "has_withholding_tax": note.has_withholding_tax,
        "project_title": note.project_title,
        "project_account_number": note.project_account_number,
        "provider_name": note.provider_name,
        "provider_document": note.provider_document,
        "client_name": note.client_name,
        "client_document": note.client_document,
        "file": {"id": note.file_blob_id, "url": note.file_url, "name": note.file_name, "type": note.file_type},
        "report_file": (
            {"id": note.report_blob_id, "url": note.report_file_url, "name": note.report_file_name}
            if note.report_blob_id
            else None
        ),
        "attested_file": (
            {"id": note.attested_blob_id, "url": note.attested_file_url, "name": note.attested_file_name}
            if note.attested_blob_id
            else None
        ),
        "status": note.status,
        "display_status": note.display_status(now),
        "attestation_deadline": _iso(note.attestation_deadline),
        "days_remaining": note.days_remaining(now),
        "attested_at": _iso(note.attested_at),
        "attested_by": note.attested_by,
        "observation": note.observation,
        "rejected_at": _iso(note.rejected_at),
        "rejected_by": note.rejected_by,
        "deleted": note.deleted,
        "deleted_at": _iso(note.deleted_at),
        "created_at": _iso(note.created_at),
        "updated_at": _iso(note.updated_at),
    }


def history_to_dict(entry) -> Dict[str, Any]:
    return {
        "id": entry.id,
        "note_id": entry.note_id,
        "type": entry.type,
        "details": entry.details,
        "author_id": entry.author_id,
        "author_name": entry.author_name,
        "created_at": _iso(entry.created_at),
    }


def _public_note_view(note: Note, token: str, now: datetime) -> Dict[str, Any]:
    """Dados exibidos na página pública de atesto (sem dados internos)."""
    return {
        "id": note.id,
        "description": note.description,
        "note_number": note.note_number,
        "amount_formatted": format_brl(note.amount) if note.amount is not None else None,
        "issue_date": _iso(note.issue_date),
        "invoice_type": note.invoice_type,
        "project_title": note.project_title,
        "project_account_number": note.project_account_number,
        "provider_name": note.provider_name,
        "client_name": note.client_name,
        "requester": note.requester,
        "coordinator_name": note.coordinator_name,
        "file_name": note.file_name,
        "file_url": f"{note.file_url}?token={token}",
        "attestation_deadline": _iso(note.attestation_deadline),
        "display_status": note.display_status(now),
        "days_remaining": note.days_remaining(now),
    }


def _upload(file, folder: str) -> storage_service.StoredBlob:
    return storage_service.get_storage().upload(
        file.filename, file.mimetype, io.BytesIO(file.data), folder
    )


def _as_attachment(file):
    return (file.filename, file.mimetype, file.data)


def _first_error(errors: Dict[str, str]) -> str:
    return next(iter(errors.values()), "Dados inválidos.")


# ---------------------------------------------------------------------------
# Criação e edição
# ---------------------------------------------------------------------------


def check_existing_note(actor, note_number: str, project_account_number: str) -> bool:
    if actor is None:
        return False
    with UnitOfWork() as uow:
        duplicate = uow.notes.find_duplicate(
            (note_number or "").strip(), (project_account_number or "").strip()
        )
        return duplicate is not None


def create_note(
    actor,
    request: NewNoteRequest,
    settings: Optional[LifecycleSettings] = None,
    force_create: Optional[bool] = None,
) -> ActionResult:
    if not has_permission(actor.role, Permission.NOTE_CREATE):
        return ActionResult.fail(ActionError.FORBIDDEN, "Você não tem permissão para criar notas.")

    errors = request.validate()
    if errors:
        return ActionResult.fail(ActionError.VALIDATION, _first_error(errors), errors)

    settings = settings or load_lifecycle_settings()
    force = request.force_create if force_create is None else force_create

    if not force:
        with UnitOfWork() as uow:
            duplicate = uow.notes.find_duplicate(request.note_number, request.project_account_number)
            if duplicate is not None:
                return ActionResult(
                    False,
                    "Já existe uma nota com este número para esta conta de projeto.",
                    payload={"duplicate": True, "existing_note_id": duplicate.id},
                    error=ActionError.CONFLICT,
                )

    folder = request.project_account_number
    uploaded: List[str] = []
    try:
        original = _upload(request.file, folder)
        uploaded.append(original.id)
        report = None
        if request.report_file is not None:
            report = _upload(request.report_file, folder)
            uploaded.append(report.id)
    except StorageError as exc:
        storage_service.delete_quietly(uploaded)
        log_structured_event("note_create_upload_failed", level="error", user_id=actor.id, error=str(exc))
        return ActionResult.fail(ActionError.DEPENDENCY, UPLOAD_FAILED_MESSAGE)

    note_id = uuid.uuid4().hex
    try:
        with UnitOfWork() as uow:
            note = Note(
                id=note_id,
                user_id=actor.id,
                requester=actor.name,
                coordinator_name=request.coordinator_name,
                coordinator_email=request.coordinator_email,
                cc_emails=", ".join(request.cc_emails) or None,
                invoice_type=request.invoice_type,
                description=request.description,
                amount=request.amount,
                note_number=request.note_number or None,
                issue_date=request.issue_date,
                has_withholding_tax=request.has_withholding_tax,
                project_title=request.project_title,
                project_account_number=request.project_account_number,
                provider_name=request.provider_name or None,
                provider_document=request.provider_document or None,
                client_name=request.client_name or None,
                client_document=request.client_document or None,
                file_blob_id=original.id,
                file_url=original.url,
                file_name=original.name,
                file_type=original.mime_type,
                report_blob_id=report.id if report else None,
                report_file_url=report.url if report else None,
                report_file_name=report.name if report else None,
                status=NoteStatus.PENDENTE.value,
                attestation_deadline=compute_deadline(request.issue_date, settings.attestation_deadline_days),
            )
            uow.notes.add(note)
            uow.history.append(
                note_id,
                HistoryType.CREATED,
                f"Nota criada por {actor.name}.",
                author_id=actor.id,
                author_name=actor.name,
            )
            uow.commit()
    except Exception as exc:
        logger.exception("Erro ao criar nota")
        storage_service.delete_quietly(uploaded)
        log_structured_event("note_create_failed", level="error", user_id=actor.id, error=str(exc))
        return ActionResult.fail(ActionError.DEPENDENCY, GENERIC_SERVER_ERROR)

    log_structured_event(
        "note_created",
        note_id=note_id,
        user_id=actor.id,
        note_number=request.note_number,
        project_account_number=request.project_account_number,
        forced=bool(force),
    )

    email_sent = email_service.send_attestation_request(
        note,
        token_service.build_attestation_link(note_id),
        attachment=_as_attachment(request.file),
    )
    message = "Nota fiscal adicionada com sucesso!"
    if not email_sent:
        message += " Não foi possível enviar o e-mail ao coordenador."
    return ActionResult.ok(message, note=note_to_dict(note), email_sent=email_sent)


def _normalize_for_compare(value):
    if isinstance(value, str):
        return value.strip() or None
    return value


def edit_note(actor, note_id: str, request: EditNoteRequest) -> ActionResult:
    errors = request.validate()
    if errors:
        return ActionResult.fail(ActionError.VALIDATION, _first_error(errors), errors)

    try:
        with UnitOfWork() as uow:
            note = uow.notes.get_for_update(note_id)
            if note is None or note.deleted:
                return ActionResult.fail(ActionError.NOT_FOUND, NOT_FOUND_MESSAGE)

            is_owner = note.user_id == actor.id
            if not (is_owner or (has_permission(actor.role, Permission.NOTE_UPDATE) and _is_manager(actor))):
                return ActionResult.fail(ActionError.FORBIDDEN, "Você não tem permissão para editar esta nota.")
            if note.status not in (NoteStatus.PENDENTE.value, NoteStatus.REJEITADA.value):
                return ActionResult.fail(
                    ActionError.INVALID_STATE,
                    "Apenas notas pendentes ou rejeitadas podem ser editadas.",
                )

            changed = []
            for name, value in request.values.items():
                if _normalize_for_compare(getattr(note, name)) != _normalize_for_compare(value):
                    changed.append(name)

            if not changed:
                return ActionResult.ok("Nenhuma alteração detectada.", note=note_to_dict(note))

            new_number = request.values.get("note_number", note.note_number)
            new_account = request.values.get("project_account_number", note.project_account_number)
            if {"note_number", "project_account_number"} & set(changed):
                duplicate = uow.notes.find_duplicate(new_number, new_account, exclude_id=note.id)
                if duplicate is not None:
                    return ActionResult(
                        False,
                        "Já existe uma nota com este número para esta conta de projeto.",
                        payload={"duplicate": True, "existing_note_id": duplicate.id},
                        error=ActionError.CONFLICT,
                    )

            for name in changed:
                setattr(note, name, request.values[name])
            labels = ", ".join(FIELD_LABELS.get(name, name) for name in changed)
            uow.history.append(
                note.id,
                HistoryType.EDITED,
                f"Nota editada por {actor.name}. Campos alterados: {labels}.",
                author_id=actor.id,
                author_name=actor.name,
            )
            uow.commit()
            payload = note_to_dict(note)
    except Exception:
        logger.exception("Erro ao editar nota %s", note_id)
        return ActionResult.fail(ActionError.DEPENDENCY, GENERIC_SERVER_ERROR)

    log_structured_event("note_edited", note_id=note_id, user_id=actor.id, fields=changed)
    return ActionResult.ok("Nota atualizada com sucesso!", note=payload)


# ---------------------------------------------------------------------------
# Atesto, rejeição e reversão
# ---------------------------------------------------------------------------


def _apply_attestation(note: Note, blob, *, attested_by: str, attested_by_id: Optional[int], observation: str, now: datetime) -> None:
    note.status = NoteStatus.ATESTADA.value
    note.attested_at = now
    note.attested_by = attested_by
    note.attested_by_id = attested_by_id
    note.observation = observation or None
    note.attested_blob_id = blob.id
    note.attested_file_url = blob.url
    note.attested_file_name = blob.name
    note.rejected_at = None
    note.rejected_by = None


def _attestation_details(name: str, observation: str) -> str:
    details = f"Nota atestada por {name}."
    if observation:
        details += f' Observação: "{observation}"'
    return details


def attest_note(actor, request: AttestRequest) -> ActionResult:
    """Atesto pelo usuário autenticado (gestor ou o próprio coordenador)."""
    errors = request.validate()
    if errors:
        return ActionResult.fail(ActionError.VALIDATION, _first_error(errors), errors)

    with UnitOfWork() as uow:
        note = uow.notes.get_by_id(request.note_id)
        if note is None or note.deleted:
            return ActionResult.fail(ActionError.NOT_FOUND, NOT_FOUND_MESSAGE)
        if not _can_attest(actor, note):
            return ActionResult.fail(ActionError.FORBIDDEN, "Você não tem permissão para atestar esta nota.")
        if note.status != NoteStatus.PENDENTE.value:
            return ActionResult.fail(ActionError.INVALID_STATE, NOT_PENDING_MESSAGE)
        folder = note.project_account_number

    try:
        blob = _upload(request.file, folder)
    except StorageError as exc:
        log_structured_event("note_attest_upload_failed", level="error", note_id=request.note_id, error=str(exc))
        return ActionResult.fail(ActionError.DEPENDENCY, UPLOAD_FAILED_MESSAGE)

    result = _commit_attestation(
        request.note_id,
        blob,
        attested_by=actor.name,
        attested_by_id=actor.id,
        observation=request.observation,
    )
    if not result.success:
        return result

    note = result.payload.pop("_note")
    email_service.send_attestation_confirmation_to_coordinator(note, attachment=_as_attachment(request.file))
    email_service.send_attestation_confirmation_to_requester(note)
    log_structured_event("note_attested", note_id=note.id, user_id=actor.id, public=False)
    return result


def _commit_attestation(note_id: str, blob, *, attested_by: str, attested_by_id: Optional[int], observation: str) -> ActionResult:
    """Grava o atesto sob lock; se a nota mudou desde a checagem, descarta o upload."""
    try:
        with UnitOfWork() as uow:
            note = uow.notes.get_for_update(note_id)
            if note is None or note.deleted:
                storage_service.delete_quietly([blob.id])
                return ActionResult.fail(ActionError.NOT_FOUND, NOT_FOUND_MESSAGE)
            if note.status != NoteStatus.PENDENTE.value:
                storage_service.delete_quietly([blob.id])
                return ActionResult.fail(ActionError.INVALID_STATE, NOT_PENDING_MESSAGE)

            _apply_attestation(
                note,
                blob,
                attested_by=attested_by,
                attested_by_id=attested_by_id,
                observation=observation,
                now=_utcnow(),
            )
            uow.history.append(
                note.id,
                HistoryType.ATTESTED,
                _attestation_details(attested_by, observation),
                author_id=attested_by_id,
                author_name=attested_by,
            )
            uow.commit()
    except Exception:
        logger.exception("Erro ao atestar nota %s", note_id)
        storage_service.delete_quietly([blob.id])
        return ActionResult.fail(ActionError.DEPENDENCY, GENERIC_SERVER_ERROR)
    return ActionResult.ok("Nota atestada com sucesso!", note=note_to_dict(note), _note=note)


def _resolve_token(token: str):
    """Retorna (note_id, None) ou (None, ActionResult de falha)."""
    try:
        return token_service.verify(token), None
    except token_service.AttestationTokenExpired:
        return None, ActionResult.fail(ActionError.FORBIDDEN, TOKEN_EXPIRED_MESSAGE)
    except token_service.AttestationTokenInvalid:
        return None, ActionResult.fail(ActionError.FORBIDDEN, TOKEN_INVALID_MESSAGE)


def get_note_from_token(token: str, now: Optional[datetime] = None) -> ActionResult:
    note_id, failure = _resolve_token(token)
    if failure is not None:
        return failure
    now = now or _utcnow()
    with UnitOfWork() as uow:
        note = uow.notes.get_by_id(note_id)
        if note is None or note.deleted:
            return ActionResult.fail(ActionError.NOT_FOUND, NOT_FOUND_MESSAGE)
        if note.status != NoteStatus.PENDENTE.value:
            return ActionResult.fail(ActionError.INVALID_STATE, NOT_PENDING_MESSAGE)
        return ActionResult.ok("Nota carregada.", note=_public_note_view(note, token, now))


def attest_note_public(request: PublicAttestRequest) -> ActionResult:
    """Atesto pelo link público: autenticado apenas pelo token."""
    errors = request.validate()
    if errors:
        return ActionResult.fail(ActionError.VALIDATION, _first_error(errors), errors)

    note_id, failure = _resolve_token(request.token)
    if failure is not None:
        return failure

    with UnitOfWork() as uow:
        note = uow.notes.get_by_id(note_id)
        if note is None or note.deleted:
            return ActionResult.fail(ActionError.NOT_FOUND, NOT_FOUND_MESSAGE)
        if note.status != NoteStatus.PENDENTE.value:
            return ActionResult.fail(ActionError.INVALID_STATE, NOT_PENDING_MESSAGE)
        folder = note.project_account_number

    try:
        blob = _upload(request.file, folder)
    except StorageError as exc:
        log_structured_event("note_attest_upload_failed", level="error", note_id=note_id, error=str(exc))
        return ActionResult.fail(ActionError.DEPENDENCY, UPLOAD_FAILED_MESSAGE)

    result = _commit_attestation(
        note_id,
        blob,
        attested_by=request.coordinator_name,
        attested_by_id=None,
        observation=request.observation,
    )
    if not result.success:
        return result

    note = result.payload.pop("_note")
    result.payload.pop("note", None)
    email_service.send_attestation_confirmation_to_coordinator(
        note, request.coordinator_email or None, attachment=_as_attachment(request.file)
    )
    email_service.send_attestation_confirmation_to_requester(note)
    log_structured_event("note_attested", note_id=note.id, public=True, coordinator=request.coordinator_name)
    return result


def reject_note_public(request: PublicRejectRequest) -> ActionResult:
    errors = request.validate()
    if errors:
        return ActionResult.fail(ActionError.VALIDATION, _first_error(errors), errors)

    note_id, failure = _resolve_token(request.token)
    if failure is not None:
        return failure
    if request.note_id and request.note_id != note_id:
        return ActionResult.fail(ActionError.FORBIDDEN, "O link de ateste não corresponde a esta nota.")

    try:
        with UnitOfWork() as uow:
            note = uow.notes.get_for_update(note_id)
            if note is None or note.deleted:
                return ActionResult.fail(ActionError.NOT_FOUND, NOT_FOUND_MESSAGE)
            if note.status != NoteStatus.PENDENTE.value:
                return ActionResult.fail(ActionError.INVALID_STATE, "Esta nota não pode mais ser rejeitada.")
            if note.creator is None or not note.creator.email:
                return ActionResult.fail(
                    ActionError.INVALID_STATE,
                    "Não foi possível identificar o e-mail do solicitante desta nota.",
                )

            note.status = NoteStatus.REJEITADA.value
            note.rejected_at = _utcnow()
            note.rejected_by = request.coordinator_name
            note.observation = request.reason
            uow.history.append(
                note.id,
                HistoryType.REJECTED,
                f'Nota rejeitada por {request.coordinator_name}. Motivo: "{request.reason}"',
                author_id=None,
                author_name=request.coordinator_name,
            )
            uow.commit()
    except Exception:
        logger.exception("Erro ao rejeitar nota %s", note_id)
        return ActionResult.fail(ActionError.DEPENDENCY, GENERIC_SERVER_ERROR)

    email_service.send_rejection_notice(note, request.reason)
    log_structured_event("note_rejected", note_id=note_id, coordinator=request.coordinator_name)
    return ActionResult.ok("Nota rejeitada com sucesso!")


def revert_attestation(actor, note_id: str) -> ActionResult:
    if not has_permission(actor.role, Permission.NOTE_REVERT):
        return ActionResult.fail(
            ActionError.FORBIDDEN, "Acesso negado. Apenas administradores podem reverter atestos."
        )

    try:
        with UnitOfWork() as uow:
            note = uow.notes.get_for_update(note_id)
            if note is None or note.deleted:
                return ActionResult.fail(ActionError.NOT_FOUND, NOT_FOUND_MESSAGE)
            if note.status != NoteStatus.ATESTADA.value:
                return ActionResult.fail(ActionError.INVALID_STATE, "Apenas notas atestadas podem ser revertidas.")

            attested_blob_id = note.attested_blob_id
            previous = note.attested_by
            note.status = NoteStatus.PENDENTE.value
            note.attested_at = None
            note.attested_by = None
            note.attested_by_id = None
            note.observation = None
            note.attested_blob_id = None
            note.attested_file_url = None
            note.attested_file_name = None
            uow.history.append(
                note.id,
                HistoryType.REVERTED,
                f"Atesto de {previous} revertido por {actor.name}.",
                author_id=actor.id,
                author_name=actor.name,
            )
            uow.commit()
            payload = note_to_dict(note)
    except Exception:
        logger.exception("Erro ao reverter atesto da nota %s", note_id)
        return ActionResult.fail(ActionError.DEPENDENCY, GENERIC_SERVER_ERROR)

    storage_service.delete_quietly([attested_blob_id])
    log_structured_event("note_reverted", note_id=note_id, user_id=actor.id)
    return ActionResult.ok("Atesto revertido com sucesso.", note=payload)


# ---------------------------------------------------------------------------
# Lixeira
# ---------------------------------------------------------------------------


def delete_note(actor, note_id: str, permanent: bool = False) -> ActionResult:
    try:
        with UnitOfWork() as uow:
            note = uow.notes.get_for_update(note_id)
            if note is None:
                return ActionResult.fail(ActionError.NOT_FOUND, NOT_FOUND_MESSAGE)

            if permanent:
                can_manage_trash = has_permission(actor.role, Permission.TRASH_MANAGE)
                if not can_manage_trash and not (note.deleted and note.user_id == actor.id):
                    return ActionResult.fail(
                        ActionError.FORBIDDEN,
                        "Acesso negado. Você não tem permissão para excluir notas permanentemente.",
                    )
                if not note.deleted and not can_manage_trash:
                    return ActionResult.fail(
                        ActionError.INVALID_STATE,
                        "Apenas notas na lixeira podem ser excluídas permanentemente.",
                    )
                blob_ids = note.blob_ids()
                uow.notes.purge(note)
                uow.commit()
            else:
                if not has_permission(actor.role, Permission.NOTE_DELETE_PENDING):
                    return ActionResult.fail(
                        ActionError.FORBIDDEN,
                        "Acesso negado. Você não tem permissão para mover notas para a lixeira.",
                    )
                if not _is_manager(actor) and note.user_id != actor.id:
                    return ActionResult.fail(
                        ActionError.FORBIDDEN,
                        "Você só pode mover para a lixeira as notas que criou.",
                    )
                if note.deleted:
                    return ActionResult.fail(ActionError.INVALID_STATE, "A nota já está na lixeira.")
                if note.status not in (NoteStatus.PENDENTE.value, NoteStatus.REJEITADA.value):
                    return ActionResult.fail(
                        ActionError.INVALID_STATE,
                        f'Não é possível mover uma nota com status "{note.status}" para a lixeira.',
                    )
                note.deleted = True
                note.deleted_at = _utcnow()
                uow.history.append(
                    note.id,
                    HistoryType.DELETED,
                    f"Nota movida para a lixeira por {actor.name}.",
                    author_id=actor.id,
                    author_name=actor.name,
                )
                uow.commit()
    except Exception:
        logger.exception("Erro ao excluir/mover nota %s", note_id)
        return ActionResult.fail(ActionError.DEPENDENCY, GENERIC_SERVER_ERROR)

    if permanent:
        storage_service.delete_quietly(blob_ids)
        log_structured_event("note_purged", note_id=note_id, user_id=actor.id)
        return ActionResult.ok("Nota excluída permanentemente.")

    log_structured_event("note_trashed", note_id=note_id, user_id=actor.id)
    return ActionResult.ok("Nota movida para a lixeira.")


def restore_note(actor, note_id: str) -> ActionResult:
    if not has_permission(actor.role, Permission.TRASH_MANAGE):
        return ActionResult.fail(
            ActionError.FORBIDDEN, "Acesso negado. Você não tem permissão para restaurar notas."
        )
    try:
        with UnitOfWork() as uow:
            note = uow.notes.get_for_update(note_id)
            if note is None:
                return ActionResult.fail(ActionError.NOT_FOUND, NOT_FOUND_MESSAGE)
            if not note.deleted:
                return ActionResult.fail(ActionError.INVALID_STATE, "A nota não está na lixeira.")
            note.deleted = False
            note.deleted_at = None
            uow.history.append(
                note.id,
                HistoryType.RESTORED,
                f"Nota restaurada da lixeira por {actor.name}.",
                author_id=actor.id,
                author_name=actor.name,
            )
            uow.commit()
    except Exception:
        logger.exception("Erro ao restaurar nota %s", note_id)
        return ActionResult.fail(ActionError.DEPENDENCY, "Erro no servidor ao restaurar nota.")

    log_structured_event("note_restored", note_id=note_id, user_id=actor.id)
    return ActionResult.ok("Nota restaurada com sucesso.")


# ---------------------------------------------------------------------------
# Rotinas agendadas e notificações
# ---------------------------------------------------------------------------


def mark_expired_notes(now: Optional[datetime] = None) -> ActionResult:
    """
    Sinaliza as pendentes vencidas: uma linha EXPIRED no histórico e o aviso
    ao solicitante. O status continua PENDENTE; EXPIRADA é só de exibição.
    """
    now = now or _utcnow()
    try:
        with UnitOfWork() as uow:
            notes = uow.notes.list_pending_past_deadline(now)
            for note in notes:
                note.expiration_notified_at = now
                uow.history.append(
                    note.id,
                    HistoryType.EXPIRED,
                    f"Prazo de atesto expirado em {format_date_br(note.attestation_deadline.date())}.",
                    author_id=None,
                    author_name=SYSTEM_AUTHOR,
                )
            uow.commit()
    except Exception:
        logger.exception("Erro ao verificar notas expiradas")
        return ActionResult.fail(ActionError.DEPENDENCY, GENERIC_SERVER_ERROR)

    notified = sum(1 for note in notes if email_service.send_expiration_notice(note))
    log_structured_event("notes_expired", expired_count=len(notes), notified_count=notified)
    return ActionResult.ok(
        f"{len(notes)} nota(s) expirada(s) processada(s).",
        expired_count=len(notes),
        notified_count=notified,
    )


def _send_reminders(notes: List[Note], now: datetime) -> int:
    sent = 0
    for note in notes:
        link = token_service.build_attestation_link(note.id)
        if email_service.send_attestation_reminder(note, link):
            note.last_reminder_at = now
            sent += 1
    return sent


def send_due_reminders(now: Optional[datetime] = None, settings: Optional[LifecycleSettings] = None) -> ActionResult:
    now = now or _utcnow()
    settings = settings or load_lifecycle_settings()
    last_before = now - timedelta(days=settings.reminder_frequency_days)
    try:
        with UnitOfWork() as uow:
            notes = uow.notes.list_pending_for_reminder(now, last_before)
            sent = _send_reminders(notes, now)
            uow.commit()
    except Exception:
        logger.exception("Erro ao enviar lembretes")
        return ActionResult.fail(ActionError.DEPENDENCY, GENERIC_SERVER_ERROR)

    log_structured_event("reminders_sent", candidates=len(notes), sent=sent)
    return ActionResult.ok(f"{sent} lembrete(s) enviado(s).", candidates=len(notes), sent_count=sent)


def notify_all_pending_coordinators(actor, now: Optional[datetime] = None) -> ActionResult:
    if not has_permission(actor.role, Permission.NOTE_VIEW_ALL):
        return ActionResult.fail(
            ActionError.FORBIDDEN, "Acesso negado. Apenas administradores podem executar esta ação."
        )
    now = now or _utcnow()
    try:
        with UnitOfWork() as uow:
            notes = uow.notes.list_pending_active(now)
            if not notes:
                return ActionResult.ok("Nenhuma nota pendente para notificar.", notified_count=0)
            sent = _send_reminders(notes, now)
            uow.commit()
    except Exception:
        logger.exception("Erro ao notificar coordenadores")
        return ActionResult.fail(
            ActionError.DEPENDENCY, "Ocorreu um erro no servidor ao tentar enviar as notificações."
        )

    log_structured_event("coordinators_notified", user_id=actor.id, candidates=len(notes), sent=sent)
    return ActionResult.ok(
        f"{sent} lembretes de atesto foram enviados com sucesso.",
        notified_count=sent,
    )


def get_preview_attestation_link(actor) -> ActionResult:
    """Link de atesto da pendente mais recente, para conferir os templates."""
    if not has_permission(actor.role, Permission.SETTINGS_MANAGE):
        return ActionResult.fail(ActionError.FORBIDDEN, "Acesso negado.")
    with UnitOfWork() as uow:
        note = uow.notes.find_latest_pending()
        if note is None:
            return ActionResult.fail(
                ActionError.NOT_FOUND, "Nenhuma nota pendente encontrada para gerar o link."
            )
        return ActionResult.ok("Link gerado.", link=token_service.build_attestation_link(note.id), note_id=note.id)


# ---------------------------------------------------------------------------
# Leitura
# ---------------------------------------------------------------------------


def list_notes(actor, status: Optional[str] = None, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    now = now or _utcnow()
    stored_status = None
    if status and status != NoteStatus.EXPIRADA.value:
        stored_status = status
    elif status == NoteStatus.EXPIRADA.value:
        stored_status = NoteStatus.PENDENTE.value

    with UnitOfWork() as uow:
        notes = uow.notes.list_visible(
            user_id=actor.id,
            email=actor.email,
            see_all=_is_manager(actor),
            status=stored_status,
        )
        if status in (NoteStatus.PENDENTE.value, NoteStatus.EXPIRADA.value):
            notes = [note for note in notes if note.display_status(now) == status]
        return [note_to_dict(note, now) for note in notes]


def list_trash(actor, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    now = now or _utcnow()
    with UnitOfWork() as uow:
        user_id = None if has_permission(actor.role, Permission.TRASH_MANAGE) else actor.id
        return [note_to_dict(note, now) for note in uow.notes.list_trash(user_id=user_id)]


def get_note_detail(actor, note_id: str, now: Optional[datetime] = None) -> ActionResult:
    now = now or _utcnow()
    with UnitOfWork() as uow:
        note = uow.notes.get_by_id(note_id)
        if note is None:
            return ActionResult.fail(ActionError.NOT_FOUND, NOT_FOUND_MESSAGE)
        if not can_view_note(actor, note):
            return ActionResult.fail(ActionError.FORBIDDEN, "Você não tem permissão para ver esta nota.")
        history = [history_to_dict(entry) for entry in uow.history.list_by_note(note.id)]
        return ActionResult.ok("Nota carregada.", note=note_to_dict(note, now), history=history)


def get_dashboard_summary(actor, now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or _utcnow()
    see_all = _is_manager(actor)
    with UnitOfWork() as uow:
        notes = uow.notes.list_visible(
            user_id=actor.id, email=actor.email, see_all=see_all, limit=None
        )
        counts = {status.value: 0 for status in NoteStatus}
        pending_total = 0
        expiring_soon = []
        for note in notes:
            display = note.display_status(now)
            counts[display] += 1
            if display == NoteStatus.PENDENTE.value:
                pending_total += note.amount or 0
                if note.days_remaining(now) <= 5:
                    expiring_soon.append(note_to_dict(note, now))
        recent = uow.history.list_recent(10, user_id=None if see_all else actor.id)
        return {
            "counts": counts,
            "total": len(notes),
            "pending_amount": format_brl(pending_total),
            "expiring_soon": expiring_soon,
            "recent_activity": [history_to_dict(entry) for entry in recent],
        }


def list_project_accounts(actor) -> List[Dict[str, str]]:
    """Contas de projeto já usadas em notas fora da lixeira, para o autocompletar."""
    with UnitOfWork() as uow:
        accounts = uow.notes.list_project_accounts()
    return [{"value": account, "label": mask_project_account(account)} for account in accounts]


def authorize_file_download(actor, blob_id: str, token: Optional[str] = None) -> ActionResult:
    """Libera o download para quem pode ver a nota ou para o portador de um token válido dela."""
    with UnitOfWork() as uow:
        note = uow.notes.find_by_blob_id(blob_id)
        if note is None:
            return ActionResult.fail(ActionError.NOT_FOUND, "Arquivo não encontrado.")
        if actor is not None and can_view_note(actor, note):
            return ActionResult.ok("Acesso liberado.", note_id=note.id)
        if token:
            try:
                token_note_id = token_service.verify(token)
            except token_service.AttestationTokenError:
                token_note_id = None
            if token_note_id == note.id and not note.deleted:
                return ActionResult.ok("Acesso liberado.", note_id=note.id)
        if actor is None and not token:
            return ActionResult.fail(ActionError.FORBIDDEN, "Não autenticado.")
        return ActionResult.fail(ActionError.FORBIDDEN, "Você não tem permissão para acessar este arquivo.")
