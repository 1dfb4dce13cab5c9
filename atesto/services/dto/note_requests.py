"""DTO dos formulários de nota, atesto, rejeição e configurações."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional

from atesto.models import InvoiceType
from atesto.services.formatting_service import (
    is_valid_email,
    only_digits,
    parse_brl_amount,
    parse_email_list,
    parse_issue_date,
)

MAX_FILE_SIZE = 10 * 1024 * 1024
NOTE_FILE_MIME_TYPES = {
    "application/pdf",
    "application/xml",
    "text/xml",
    "image/jpeg",
    "image/png",
}
ATTESTED_FILE_MIME_TYPES = {"application/pdf", "image/jpeg", "image/png"}
PUBLIC_ATTESTED_MIME_TYPES = {"application/pdf"}

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _clean(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in _TRUE_VALUES


def _parse_int(value: Any) -> Optional[int]:
    if value in (None, ""):
        return None
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


@dataclass
class UploadedFile:
    filename: str
    mimetype: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)

    @classmethod
    def from_storage(cls, storage) -> Optional["UploadedFile"]:
        """Lê um FileStorage do Werkzeug; None se nenhum arquivo foi enviado."""
        if storage is None or not getattr(storage, "filename", ""):
            return None
        data = storage.read()
        if not data:
            return None
        mimetype = (storage.mimetype or "application/octet-stream").lower()
        return cls(filename=storage.filename, mimetype=mimetype, data=data)

    def validate(self, allowed: set, *, label: str, type_message: str) -> Optional[str]:
        if self.mimetype not in allowed:
            return type_message
        if self.size > MAX_FILE_SIZE:
            return f"O tamanho máximo do {label} é 10MB."
        return None


@dataclass
class NewNoteRequest:
    invoice_type: str = ""
    has_withholding_tax: bool = False
    project_title: str = ""
    project_account_number: str = ""
    coordinator_name: str = ""
    coordinator_email: str = ""
    cc_emails_raw: str = ""
    description: str = ""
    provider_name: str = ""
    provider_document: str = ""
    client_name: str = ""
    client_document: str = ""
    note_number: str = ""
    issue_date_raw: str = ""
    amount_raw: str = ""
    force_create: bool = False
    file: Optional[UploadedFile] = None
    report_file: Optional[UploadedFile] = None

    cc_emails: List[str] = field(default_factory=list)
    issue_date: Optional[date] = None
    amount: Optional[Decimal] = None

    @classmethod
    def from_form(cls, form: Mapping[str, Any], files: Optional[Mapping[str, Any]] = None) -> "NewNoteRequest":
        files = files or {}
        return cls(
            invoice_type=_clean(form.get("invoice_type")).upper(),
            has_withholding_tax=_parse_bool(form.get("has_withholding_tax")),
            project_title=_clean(form.get("project_title")),
            project_account_number=_clean(form.get("project_account_number")),
            coordinator_name=_clean(form.get("coordinator_name")),
            coordinator_email=_clean(form.get("coordinator_email")),
            cc_emails_raw=_clean(form.get("cc_emails")),
            description=_clean(form.get("description")),
            provider_name=_clean(form.get("provider_name")),
            provider_document=only_digits(form.get("provider_document")),
            client_name=_clean(form.get("client_name")),
            client_document=only_digits(form.get("client_document")),
            note_number=_clean(form.get("note_number")),
            issue_date_raw=_clean(form.get("issue_date")),
            amount_raw=_clean(form.get("amount")),
            force_create=_parse_bool(form.get("force_create")),
            file=UploadedFile.from_storage(files.get("file")),
            report_file=UploadedFile.from_storage(files.get("report_file")),
        )

    def validate(self) -> Dict[str, str]:
        errors: Dict[str, str] = {}
        if self.invoice_type not in {t.value for t in InvoiceType}:
            errors["invoice_type"] = "Tipo de nota inválido."
        if not self.project_title:
            errors["project_title"] = "O título do projeto é obrigatório."
        if not self.project_account_number:
            errors["project_account_number"] = "A conta do projeto é obrigatória."
        if not self.coordinator_name:
            errors["coordinator_name"] = "O nome do coordenador é obrigatório."
        if not is_valid_email(self.coordinator_email):
            errors["coordinator_email"] = "Formato de e-mail inválido."
        if not self.description:
            errors["description"] = "A descrição é obrigatória."

        try:
            self.cc_emails = parse_email_list(self.cc_emails_raw)
        except ValueError:
            errors["cc_emails"] = "Forneça uma lista de e-mails válidos, separados por vírgula."

        if self.issue_date_raw:
            self.issue_date = parse_issue_date(self.issue_date_raw)
            if self.issue_date is None:
                errors["issue_date"] = "Data de emissão inválida."
        if self.amount_raw:
            self.amount = parse_brl_amount(self.amount_raw)
            if self.amount is None:
                errors["amount"] = "Valor total inválido."

        if self.file is None:
            errors["file"] = "O arquivo da nota é obrigatório."
        else:
            message = self.file.validate(
                NOTE_FILE_MIME_TYPES,
                label="arquivo",
                type_message="Tipo de arquivo não permitido. Use PDF, XML, JPG ou PNG.",
            )
            if message:
                errors["file"] = message
        if self.report_file is not None:
            message = self.report_file.validate(
                {"application/pdf"},
                label="relatório",
                type_message="O relatório deve ser um PDF.",
            )
            if message:
                errors["report_file"] = message
        return errors


# Campos editáveis: nome do campo no formulário -> atributo da nota
EDITABLE_FIELDS = (
    "description",
    "project_title",
    "project_account_number",
    "coordinator_name",
    "coordinator_email",
    "cc_emails",
    "provider_name",
    "provider_document",
    "client_name",
    "client_document",
    "note_number",
    "issue_date",
    "amount",
    "has_withholding_tax",
)


@dataclass
class EditNoteRequest:
    """Apenas os campos presentes no payload são alterados."""

    values: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_form(cls, form: Mapping[str, Any]) -> "EditNoteRequest":
        values: Dict[str, Any] = {}
        for name in EDITABLE_FIELDS:
            if name in form:
                values[name] = form.get(name)
        return cls(values=values)

    def validate(self) -> Dict[str, str]:
        errors: Dict[str, str] = {}
        cleaned: Dict[str, Any] = {}
        if not self.values:
            errors["form"] = "Nenhum campo para alterar."
            return errors

        for name, raw in self.values.items():
            if name == "has_withholding_tax":
                cleaned[name] = _parse_bool(raw)
            elif name in ("provider_document", "client_document"):
                cleaned[name] = only_digits(raw) or None
            elif name == "issue_date":
                parsed = parse_issue_date(raw)
                if _clean(raw) and parsed is None:
                    errors[name] = "Data de emissão inválida."
                cleaned[name] = parsed
            elif name == "amount":
                parsed_amount = parse_brl_amount(raw)
                if _clean(raw) and parsed_amount is None:
                    errors[name] = "Valor total inválido."
                cleaned[name] = parsed_amount
            elif name == "cc_emails":
                try:
                    cleaned[name] = ", ".join(parse_email_list(raw)) or None
                except ValueError:
                    errors[name] = "Forneça uma lista de e-mails válidos, separados por vírgula."
            elif name == "coordinator_email":
                value = _clean(raw)
                if not is_valid_email(value):
                    errors[name] = "Formato de e-mail inválido."
                cleaned[name] = value
            else:
                value = _clean(raw)
                if name in ("description", "project_title", "project_account_number", "coordinator_name") and not value:
                    errors[name] = "Campo obrigatório."
                cleaned[name] = value or None
        self.values = cleaned
        return errors


@dataclass
class AttestRequest:
    note_id: str = ""
    observation: str = ""
    file: Optional[UploadedFile] = None

    @classmethod
    def from_form(cls, note_id: str, form: Mapping[str, Any], files: Optional[Mapping[str, Any]] = None) -> "AttestRequest":
        files = files or {}
        return cls(
            note_id=_clean(note_id),
            observation=_clean(form.get("observation")),
            file=UploadedFile.from_storage(files.get("attested_file")),
        )

    def validate(self) -> Dict[str, str]:
        errors: Dict[str, str] = {}
        if not self.note_id:
            errors["note_id"] = "ID de nota inválido."
        if len(self.observation) > 1000:
            errors["observation"] = "Observação muito longa."
        if self.file is None:
            errors["attested_file"] = "O arquivo de atesto é obrigatório."
        else:
            message = self.file.validate(
                ATTESTED_FILE_MIME_TYPES,
                label="arquivo",
                type_message="Tipo de arquivo não permitido. Use PDF, JPG ou PNG.",
            )
            if message:
                errors["attested_file"] = message
        return errors


@dataclass
class PublicAttestRequest:
    token: str = ""
    coordinator_name: str = ""
    coordinator_email: str = ""
    observation: str = ""
    file: Optional[UploadedFile] = None

    @classmethod
    def from_form(cls, token: str, form: Mapping[str, Any], files: Optional[Mapping[str, Any]] = None) -> "PublicAttestRequest":
        files = files or {}
        return cls(
            token=_clean(token),
            coordinator_name=_clean(form.get("coordinator_name")),
            coordinator_email=_clean(form.get("coordinator_email")),
            observation=_clean(form.get("observation")),
            file=UploadedFile.from_storage(files.get("attested_file")),
        )

    def validate(self) -> Dict[str, str]:
        errors: Dict[str, str] = {}
        if not self.token:
            errors["token"] = "Token de autenticação ausente."
        if len(self.coordinator_name) < 3:
            errors["coordinator_name"] = "O nome do coordenador é obrigatório."
        if self.coordinator_email and not is_valid_email(self.coordinator_email):
            errors["coordinator_email"] = "Formato de e-mail inválido."
        if len(self.observation) > 1000:
            errors["observation"] = "Observação muito longa."
        if self.file is None:
            errors["attested_file"] = "O arquivo de atesto (PDF) é obrigatório."
        else:
            message = self.file.validate(
                PUBLIC_ATTESTED_MIME_TYPES,
                label="arquivo",
                type_message="Apenas arquivos PDF são permitidos.",
            )
            if message:
                errors["attested_file"] = message
        return errors


@dataclass
class PublicRejectRequest:
    token: str = ""
    note_id: str = ""
    coordinator_name: str = ""
    reason: str = ""

    @classmethod
    def from_form(cls, token: str, form: Mapping[str, Any]) -> "PublicRejectRequest":
        return cls(
            token=_clean(token),
            note_id=_clean(form.get("note_id")),
            coordinator_name=_clean(form.get("coordinator_name")),
            reason=_clean(form.get("reason")),
        )

    def validate(self) -> Dict[str, str]:
        errors: Dict[str, str] = {}
        if not self.token:
            errors["token"] = "Token de autenticação ausente."
        if len(self.coordinator_name) < 3:
            errors["coordinator_name"] = "O nome do coordenador é obrigatório."
        if len(self.reason) < 10:
            errors["reason"] = "O motivo da rejeição deve ter pelo menos 10 caracteres."
        elif len(self.reason) > 1000:
            errors["reason"] = "O motivo da rejeição deve ter no máximo 1000 caracteres."
        return errors


@dataclass
class SettingsRequest:
    attestation_deadline_days_raw: Any = None
    reminder_frequency_days_raw: Any = None
    ai_model: str = ""

    attestation_deadline_days: Optional[int] = None
    reminder_frequency_days: Optional[int] = None

    @classmethod
    def from_form(cls, form: Mapping[str, Any]) -> "SettingsRequest":
        return cls(
            attestation_deadline_days_raw=form.get("attestation_deadline_days"),
            reminder_frequency_days_raw=form.get("reminder_frequency_days"),
            ai_model=_clean(form.get("ai_model")),
        )

    def validate(self) -> Dict[str, str]:
        errors: Dict[str, str] = {}
        self.attestation_deadline_days = _parse_int(self.attestation_deadline_days_raw)
        if self.attestation_deadline_days is None or not 1 <= self.attestation_deadline_days <= 365:
            errors["attestation_deadline_days"] = "O prazo de atesto deve estar entre 1 e 365 dias."
        self.reminder_frequency_days = _parse_int(self.reminder_frequency_days_raw)
        if self.reminder_frequency_days is None or not 1 <= self.reminder_frequency_days <= 60:
            errors["reminder_frequency_days"] = "A frequência de lembretes deve estar entre 1 e 60 dias."
        if len(self.ai_model) > 100:
            errors["ai_model"] = "Nome de modelo muito longo."
        return errors
