# tests/test_email_service.py
"""
Testes dos templates de e-mail e do envio de notificações.
"""

import pytest

from atesto.models import EmailTemplateType
from atesto.services import email_service, note_service
from atesto.services.email_service import EmailMessagePayload, SmtpMailer, render_template_text
from atesto.services.results import ActionError

from conftest import build_note_request


class TestRenderizacao:
    def test_substitui_placeholders_e_escapa_html(self):
        rendered = render_template_text(
            "<p>Olá, [NomeCoordenador]! [Desconhecido]</p>", {"NomeCoordenador": "<b>Ana</b>"}
        )
        assert rendered == "<p>Olá, &lt;b&gt;Ana&lt;/b&gt;! [Desconhecido]</p>"

    def test_assunto_nao_e_escapado(self):
        assert render_template_text("Nota [DescricaoNota]", {"DescricaoNota": "A & B"}, html=False) == "Nota A & B"

    def test_valor_ausente_vira_vazio(self):
        assert render_template_text("[NumeroNota]", {"NumeroNota": None}) == ""


class TestTemplates:
    def test_lista_todos_os_tipos_com_padrao(self, app):
        templates = email_service.list_templates()
        assert {t["type"] for t in templates} == {t.value for t in EmailTemplateType}

    def test_template_salvo_e_usado_no_envio(self, manager, requester, mailer):
        result = email_service.save_templates(
            manager,
            [
                {
                    "type": "ATTESTATION_REQUEST",
                    "subject": "Atestar: [DescricaoNota]",
                    "body": "<p>[NomeCoordenador], acesse [LinkAteste]</p>",
                }
            ],
        )
        assert result.success

        note_service.create_note(requester, build_note_request())
        message = mailer.sent[-1]
        assert message.subject == "Atestar: Consultoria em TI"
        assert message.html_body.startswith("<p>Ana Coordenadora, acesse http://testserver/attest/")

    def test_usuario_comum_nao_salva_templates(self, requester):
        result = email_service.save_templates(
            requester, [{"type": "NOTE_REJECTED", "subject": "x", "body": "y"}]
        )
        assert result.error == ActionError.FORBIDDEN

    def test_tipo_invalido(self, manager):
        result = email_service.save_templates(manager, [{"type": "OUTRO", "subject": "x", "body": "y"}])
        assert result.error == ActionError.VALIDATION


class TestEmailDeTeste:
    def test_envia_com_prefixo(self, manager, mailer):
        result = email_service.send_test_email(manager, "teste@uni.br", "NOTE_REJECTED")
        assert result.success
        message = mailer.sent[-1]
        assert message.to == ["teste@uni.br"]
        assert message.subject.startswith("[TESTE] Nota Fiscal Rejeitada")
        assert "Valor divergente do contrato (Exemplo)." in message.html_body

    def test_destinatario_invalido(self, manager):
        assert email_service.send_test_email(manager, "invalido", "NOTE_REJECTED").error == ActionError.VALIDATION

    def test_falha_do_smtp(self, manager, mailer):
        mailer.fail = True
        result = email_service.send_test_email(manager, "teste@uni.br", "NOTE_EXPIRED")
        assert result.error == ActionError.DEPENDENCY


class TestSmtpMailer:
    def test_monta_mensagem_com_copia_e_anexo(self):
        mailer = SmtpMailer(host="smtp.local", sender="no-reply@uni.br", sender_name="Notas Fiscais")
        message = mailer._build(
            EmailMessagePayload(
                to=["ana@uni.br"],
                subject="Assunto",
                html_body="<p>Corpo</p>",
                cc=["maria@uni.br"],
                attachments=[("nota.pdf", "application/pdf", b"%PDF")],
            )
        )
        assert message["To"] == "ana@uni.br"
        assert message["Cc"] == "maria@uni.br"
        assert "Notas Fiscais" in message["From"]
        attachments = list(message.iter_attachments())
        assert attachments[0].get_filename() == "nota.pdf"

    def test_sem_host_configurado(self):
        mailer = SmtpMailer(host="")
        with pytest.raises(email_service.EmailDeliveryError, match="SMTP"):
            mailer.send(EmailMessagePayload(to=["ana@uni.br"], subject="x", html_body="y"))
