"""
Envio de e-mails de notificação do fluxo de atesto.

Templates editáveis ficam na tabela email_templates; na ausência de registro
são usados os textos padrão abaixo. Os placeholders seguem o formato
``[NomeDoCampo]``.

Todas as notificações são best-effort: a transição de status já foi gravada
quando elas rodam, então uma falha de envio é registrada em log e devolvida
como False, sem propagar.
"""

from __future__ import annotations

import logging
import smtplib
from dataclasses import dataclass, field
from datetime import datetime
from email.message import EmailMessage
from email.utils import formataddr
from typing import Dict, Iterable, List, Optional, Tuple

from flask import current_app
from markupsafe import escape

from atesto.models import EmailTemplateType
from atesto.services.formatting_service import build_cc_list, format_brl, is_valid_email
from atesto.services.logging import log_structured_event
from atesto.services.permissions import Permission, has_permission
from atesto.services.results import ActionError, ActionResult
from atesto.services.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)

EXTENSION_KEY = "atesto.mailer"

Attachment = Tuple[str, str, bytes]


class EmailDeliveryError(Exception):
    pass


@dataclass
class EmailMessagePayload:
    to: List[str]
    subject: str
    html_body: str
    cc: List[str] = field(default_factory=list)
    attachments: List[Attachment] = field(default_factory=list)


class Mailer:
    def send(self, message: EmailMessagePayload) -> None:
        raise NotImplementedError


class SmtpMailer(Mailer):
    def __init__(
        self,
        host: str,
        port: int = 587,
        user: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: bool = True,
        sender: Optional[str] = None,
        sender_name: Optional[str] = None,
        timeout: int = 15,
    ):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.use_tls = use_tls
        self.sender = sender or user or "no-reply@localhost"
        self.sender_name = sender_name
        self.timeout = timeout

    @classmethod
    def from_config(cls, config) -> "SmtpMailer":
        return cls(
            host=config.get("SMTP_HOST", ""),
            port=int(config.get("SMTP_PORT", 587)),
            user=config.get("SMTP_USER") or None,
            password=config.get("SMTP_PASSWORD") or None,
            use_tls=bool(config.get("SMTP_USE_TLS", True)),
            sender=config.get("MAIL_FROM") or None,
            sender_name=config.get("MAIL_FROM_NAME") or None,
        )

    def _build(self, message: EmailMessagePayload) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = message.subject
        msg["From"] = formataddr((self.sender_name, self.sender)) if self.sender_name else self.sender
        msg["To"] = ", ".join(message.to)
        if message.cc:
            msg["Cc"] = ", ".join(message.cc)
        msg.set_content("Este e-mail requer um cliente com suporte a HTML.")
        msg.add_alternative(message.html_body, subtype="html")
        for filename, mime_type, data in message.attachments:
            maintype, _, subtype = (mime_type or "application/octet-stream").partition("/")
            msg.add_attachment(data, maintype=maintype, subtype=subtype or "octet-stream", filename=filename)
        return msg

    def send(self, message: EmailMessagePayload) -> None:
        if not self.host:
            raise EmailDeliveryError("SMTP não configurado.")
        msg = self._build(message)
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
                if self.use_tls:
                    smtp.starttls()
                if self.user and self.password:
                    smtp.login(self.user, self.password)
                smtp.send_message(msg, from_addr=self.sender, to_addrs=message.to + message.cc)
        except (smtplib.SMTPException, OSError) as exc:
            raise EmailDeliveryError(str(exc)) from exc


def get_mailer() -> Mailer:
    return current_app.extensions[EXTENSION_KEY]


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------

DEFAULT_TEMPLATES: Dict[str, Tuple[str, str]] = {
    EmailTemplateType.ATTESTATION_REQUEST.value: (
        "Ação Necessária: Ateste de Nota Fiscal - [DescricaoNota]",
        """<div style="font-family: Arial, sans-serif; line-height: 1.6;">
    <h2>Solicitação de Ateste de Nota Fiscal</h2>
    <p>Olá, [NomeCoordenador],</p>
    <p>A nota fiscal referente a "[DescricaoNota]", submetida por <strong>[NomeSolicitante]</strong>, requer sua atenção para ateste.</p>
    <p>Número: [NumeroNota] &middot; Valor: [ValorNota] &middot; Prazo: [DataExpiracao]</p>
    <p>Por favor, revise os detalhes e aprove através do link seguro abaixo.</p>
    <a href="[LinkAteste]" style="background-color: #007bff; color: white; padding: 10px 20px; text-decoration: none; border-radius: 5px;">Acessar Nota</a>
</div>""",
    ),
    EmailTemplateType.ATTESTATION_REMINDER.value: (
        "Lembrete: Nota Fiscal Pendente de Ateste - [DescricaoNota]",
        """<div style="font-family: Arial, sans-serif; line-height: 1.6;">
    <h2>Lembrete de Pendência</h2>
    <p>Olá, [NomeCoordenador],</p>
    <p>Este é um lembrete de que a nota fiscal "[DescricaoNota]" ainda está pendente de seu ateste. Restam <strong>[DiasRestantes] dias</strong> para o prazo.</p>
    <a href="[LinkAteste]" style="background-color: #ffc107; color: black; padding: 10px 20px; text-decoration: none; border-radius: 5px;">Revisar Pendência</a>
</div>""",
    ),
    EmailTemplateType.ATTESTATION_CONFIRMATION.value: (
        "Nota Fiscal Atestada com Sucesso - [DescricaoNota]",
        """<div style="font-family: Arial, sans-serif; line-height: 1.6;">
    <h2>Confirmação de Ateste</h2>
    <p>Olá, [NomeSolicitante],</p>
    <p>A nota fiscal "[DescricaoNota]" foi atestada com sucesso por <strong>[NomeAtestador]</strong> em [DataAtesto].</p>
    <p><strong>Observação:</strong> [ObservacaoAtesto]</p>
</div>""",
    ),
    EmailTemplateType.ATTESTATION_CONFIRMATION_COORDINATOR.value: (
        "Comprovante de Ateste - [DescricaoNota]",
        """<div style="font-family: Arial, sans-serif; line-height: 1.6;">
    <h2>Ateste Registrado</h2>
    <p>Olá, [NomeCoordenador],</p>
    <p>Registramos o ateste da nota fiscal "[DescricaoNota]" em [DataAtesto], realizado por <strong>[NomeAtestador]</strong>.</p>
    <p><strong>Observação:</strong> [ObservacaoAtesto]</p>
</div>""",
    ),
    EmailTemplateType.NOTE_EXPIRED.value: (
        "Alerta: Prazo de Ateste Expirado - [DescricaoNota]",
        """<div style="font-family: Arial, sans-serif; line-height: 1.6;">
    <h2 style="color: #dc3545;">Prazo de Ateste Expirado</h2>
    <p>A nota fiscal "[DescricaoNota]", enviada por [NomeSolicitante] e designada a [NomeCoordenador], expirou em <strong>[DataExpiracao]</strong> sem ateste.</p>
    <p>Uma ação manual pode ser necessária.</p>
</div>""",
    ),
    EmailTemplateType.NOTE_REJECTED.value: (
        "Nota Fiscal Rejeitada - [DescricaoNota]",
        """<div style="font-family: Arial, sans-serif; line-height: 1.6;">
    <h2 style="color: #dc3545;">Nota Fiscal Rejeitada</h2>
    <p>Olá, [NomeSolicitante],</p>
    <p>A nota fiscal "[DescricaoNota]" foi rejeitada por <strong>[NomeCoordenador]</strong>.</p>
    <p><strong>Motivo:</strong> [MotivoRejeicao]</p>
    <p>Corrija as informações e submeta a nota novamente.</p>
</div>""",
    ),
}

SAMPLE_VALUES = {
    "NomeCoordenador": "José da Silva (Teste)",
    "NomeSolicitante": "Maria Souza (Teste)",
    "DescricaoNota": "Consultoria em TI (Exemplo)",
    "NumeroNota": "12345",
    "ValorNota": "R$ 1.234,56",
    "DiasRestantes": "15",
    "LinkAteste": "#",
    "NomeAtestador": "Carlos Pereira (Teste)",
    "ObservacaoAtesto": "Tudo certo, aprovado.",
    "MotivoRejeicao": "Valor divergente do contrato (Exemplo).",
}


def render_template_text(text: str, values: Dict[str, object], *, html: bool = True) -> str:
    """Substitui cada ``[Chave]`` pelo valor; chaves desconhecidas ficam intactas."""
    rendered = text or ""
    for key, value in values.items():
        raw = "" if value is None else str(value)
        rendered = rendered.replace(f"[{key}]", str(escape(raw)) if html else raw)
    return rendered


def get_template(template_type: EmailTemplateType) -> Tuple[str, str]:
    default_subject, default_body = DEFAULT_TEMPLATES[template_type.value]
    with UnitOfWork() as uow:
        stored = uow.email_templates.get_by_type(template_type.value)
        if stored is None:
            return default_subject, default_body
        return stored.subject or default_subject, stored.body or default_body


def list_templates() -> List[dict]:
    templates = []
    for template_type in EmailTemplateType:
        subject, body = get_template(template_type)
        templates.append({"type": template_type.value, "subject": subject, "body": body})
    return templates


def save_templates(actor, templates: Iterable[dict]) -> ActionResult:
    if not has_permission(actor.role, Permission.SETTINGS_MANAGE):
        return ActionResult.fail(ActionError.FORBIDDEN, "Você não tem permissão para alterar os templates.")

    valid_types = {t.value for t in EmailTemplateType}
    errors: Dict[str, str] = {}
    cleaned = []
    for item in templates or []:
        template_type = str(item.get("type") or "")
        subject = str(item.get("subject") or "").strip()
        body = str(item.get("body") or "").strip()
        if template_type not in valid_types:
            errors[template_type or "type"] = "Tipo de template inválido."
        elif not subject or not body:
            errors[template_type] = "Assunto e corpo são obrigatórios."
        else:
            cleaned.append((template_type, subject, body))
    if errors or not cleaned:
        return ActionResult.fail(ActionError.VALIDATION, "Templates inválidos.", errors or None)

    with UnitOfWork() as uow:
        for template_type, subject, body in cleaned:
            template = uow.email_templates.get_or_create(template_type, subject, body)
            template.subject = subject
            template.body = body
        uow.commit()

    log_structured_event("email_templates_updated", user_id=actor.id, types=[t for t, _, _ in cleaned])
    return ActionResult.ok("Templates salvos com sucesso!")


# ---------------------------------------------------------------------------
# Notificações
# ---------------------------------------------------------------------------


def _format_datetime(value: Optional[datetime], with_time: bool = False) -> str:
    if value is None:
        return ""
    return value.strftime("%d/%m/%Y %H:%M" if with_time else "%d/%m/%Y")


def note_values(note, **extra) -> Dict[str, object]:
    values: Dict[str, object] = {
        "NomeCoordenador": note.coordinator_name,
        "NomeSolicitante": note.requester,
        "DescricaoNota": note.description,
        "NumeroNota": note.note_number or "",
        "ValorNota": format_brl(note.amount) if note.amount is not None else "",
        "DataExpiracao": _format_datetime(note.attestation_deadline),
        "DiasRestantes": note.days_remaining(),
    }
    values.update(extra)
    return values


def _requester_email(note) -> Optional[str]:
    creator = getattr(note, "creator", None)
    return creator.email if creator is not None else None


def _split_cc(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if is_valid_email(item.strip())]


def _deliver(
    action: str,
    template_type: EmailTemplateType,
    *,
    to: List[str],
    values: Dict[str, object],
    note_id: Optional[str] = None,
    cc: Optional[List[str]] = None,
    attachments: Optional[List[Attachment]] = None,
) -> bool:
    recipients = [email for email in to if email]
    if not recipients:
        logger.warning("Notificação %s sem destinatário (nota %s)", action, note_id)
        return False
    try:
        subject, body = get_template(template_type)
        message = EmailMessagePayload(
            to=recipients,
            subject=render_template_text(subject, values, html=False),
            html_body=render_template_text(body, values),
            cc=build_cc_list(recipients[0], cc or []),
            attachments=attachments or [],
        )
        get_mailer().send(message)
    except Exception as exc:
        log_structured_event(
            action,
            message="Falha no envio de e-mail",
            level="error",
            note_id=note_id,
            template=template_type.value,
            error=str(exc),
        )
        return False

    log_structured_event(action, note_id=note_id, template=template_type.value, to=recipients)
    return True


def send_attestation_request(note, link: str, attachment: Optional[Attachment] = None) -> bool:
    """Solicitação ao coordenador, com cópia ao solicitante e à lista informada."""
    return _deliver(
        "email_attestation_request",
        EmailTemplateType.ATTESTATION_REQUEST,
        to=[note.coordinator_email],
        cc=[_requester_email(note)] + _split_cc(note.cc_emails),
        values=note_values(note, LinkAteste=link),
        note_id=note.id,
        attachments=[attachment] if attachment else None,
    )


def send_attestation_reminder(note, link: str) -> bool:
    return _deliver(
        "email_attestation_reminder",
        EmailTemplateType.ATTESTATION_REMINDER,
        to=[note.coordinator_email],
        values=note_values(note, LinkAteste=link),
        note_id=note.id,
    )


def _attestation_values(note) -> Dict[str, object]:
    return note_values(
        note,
        NomeAtestador=note.attested_by or "",
        DataAtesto=_format_datetime(note.attested_at, with_time=True),
        ObservacaoAtesto=note.observation or "Nenhuma",
    )


def send_attestation_confirmation_to_coordinator(
    note, coordinator_email: Optional[str] = None, attachment: Optional[Attachment] = None
) -> bool:
    """Confirmação ao coordenador, com cópia ao solicitante e o documento atestado anexo."""
    return _deliver(
        "email_attestation_confirmation_coordinator",
        EmailTemplateType.ATTESTATION_CONFIRMATION_COORDINATOR,
        to=[coordinator_email or note.coordinator_email],
        cc=[_requester_email(note)],
        values=_attestation_values(note),
        note_id=note.id,
        attachments=[attachment] if attachment else None,
    )


def send_attestation_confirmation_to_requester(note) -> bool:
    return _deliver(
        "email_attestation_confirmation",
        EmailTemplateType.ATTESTATION_CONFIRMATION,
        to=[_requester_email(note)],
        values=_attestation_values(note),
        note_id=note.id,
    )


def send_rejection_notice(note, reason: str) -> bool:
    return _deliver(
        "email_note_rejected",
        EmailTemplateType.NOTE_REJECTED,
        to=[_requester_email(note)],
        values=note_values(note, NomeCoordenador=note.rejected_by or note.coordinator_name, MotivoRejeicao=reason),
        note_id=note.id,
    )


def send_expiration_notice(note) -> bool:
    return _deliver(
        "email_note_expired",
        EmailTemplateType.NOTE_EXPIRED,
        to=[_requester_email(note)],
        values=note_values(note),
        note_id=note.id,
    )


def send_test_email(actor, recipient: str, template_type: str) -> ActionResult:
    if not has_permission(actor.role, Permission.SETTINGS_MANAGE):
        return ActionResult.fail(ActionError.FORBIDDEN, "Você não tem permissão para enviar e-mails de teste.")
    if not is_valid_email(recipient):
        return ActionResult.fail(ActionError.VALIDATION, "E-mail de destino inválido.", {"recipient": "Formato de e-mail inválido."})
    try:
        selected = EmailTemplateType(template_type)
    except ValueError:
        return ActionResult.fail(ActionError.VALIDATION, "Tipo de template inválido.", {"type": "Tipo de template inválido."})

    now = datetime.now()
    values = dict(
        SAMPLE_VALUES,
        DataAtesto=_format_datetime(now, with_time=True),
        DataExpiracao=_format_datetime(now),
    )
    subject, body = get_template(selected)
    message = EmailMessagePayload(
        to=[recipient],
        subject=f"[TESTE] {render_template_text(subject, values, html=False)}",
        html_body=render_template_text(body, values),
    )
    try:
        get_mailer().send(message)
    except Exception as exc:
        logger.error("Falha no envio do e-mail de teste para %s: %s", recipient, exc)
        return ActionResult.fail(ActionError.DEPENDENCY, f"Falha ao enviar e-mail de teste: {exc}")
    return ActionResult.ok(f"E-mail de teste enviado para {recipient}.")
