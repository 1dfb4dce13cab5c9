# tests/test_note_lifecycle.py
"""
Testes do ciclo de vida da nota: criação, atesto, rejeição, reversão,
edição e lixeira, sempre verificando o histórico gravado.
"""

import os
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal

import pytest

from atesto.extensions import db
from atesto.models import HistoryImmutableError, Note, NoteHistory, NoteStatus
from atesto.repositories import NoteHistoryRepository
from atesto.services import note_service, token_service
from atesto.services.dto import AttestRequest, EditNoteRequest, PublicAttestRequest, PublicRejectRequest, UploadedFile
from atesto.services.results import ActionError
from atesto.services.storage_service import EXTENSION_KEY as STORAGE_KEY, BlobStorage, StorageError, get_storage

from conftest import PDF_BYTES, build_note_request, pdf_file


def history_types(note_id):
    rows = (
        db.session.query(NoteHistory)
        .filter_by(note_id=note_id)
        .order_by(NoteHistory.id.asc())
        .all()
    )
    return [row.type for row in rows]


def reload(note_id):
    db.session.expire_all()
    return db.session.get(Note, note_id)


class TestCriacao:
    def test_cria_nota_pendente_com_historico_e_email(self, requester, mailer):
        result = note_service.create_note(requester, build_note_request())

        assert result.success
        assert result.payload["email_sent"] is True
        note = reload(result.payload["note"]["id"])
        assert note.status == NoteStatus.PENDENTE.value
        assert note.amount == Decimal("1234.56")
        assert note.requester == "Maria Solicitante"
        assert history_types(note.id) == ["CREATED"]

        message = mailer.sent[-1]
        assert message.to == ["ana.coord@uni.br"]
        assert "solicitante@uni.br" in message.cc
        assert message.attachments[0][0] == "nota.pdf"
        assert "/attest/" in message.html_body

    def test_prazo_conta_a_partir_da_data_de_emissao(self, requester):
        result = note_service.create_note(requester, build_note_request(issue_date_raw="01/03/2024"))
        note = reload(result.payload["note"]["id"])
        assert note.attestation_deadline == datetime.combine(date(2024, 3, 1), time.min) + timedelta(days=30)

    def test_arquivo_fica_no_armazenamento(self, requester):
        result = note_service.create_note(requester, build_note_request())
        note = reload(result.payload["note"]["id"])
        stream, blob = get_storage().open(note.file_blob_id)
        with stream:
            assert stream.read().startswith(b"%PDF")
        assert blob.name == "nota.pdf"
        assert note.file_url == f"/files/{note.file_blob_id}"

    def test_validacao_nao_cria_nota(self, requester):
        result = note_service.create_note(requester, build_note_request(coordinator_email="invalido"))
        assert not result.success
        assert result.error == ActionError.VALIDATION
        assert result.http_status == 400
        assert "coordinator_email" in result.errors
        assert db.session.query(Note).count() == 0

    def test_duplicidade_e_criacao_forcada(self, requester, create_pending_note):
        first_id = create_pending_note()

        duplicate = note_service.create_note(requester, build_note_request())
        assert not duplicate.success
        assert duplicate.error == ActionError.CONFLICT
        assert duplicate.payload == {"duplicate": True, "existing_note_id": first_id}

        forced = note_service.create_note(requester, build_note_request(force_create=True))
        assert forced.success
        assert db.session.query(Note).count() == 2

    def test_mesmo_numero_em_outra_conta_nao_e_duplicado(self, requester, create_pending_note):
        create_pending_note()
        result = note_service.create_note(requester, build_note_request(project_account_number="7654321"))
        assert result.success

    def test_falha_no_email_nao_desfaz_criacao(self, requester, mailer):
        mailer.fail = True
        result = note_service.create_note(requester, build_note_request())
        assert result.success
        assert result.payload["email_sent"] is False
        assert db.session.query(Note).count() == 1


class TestAtestoInterno:
    def test_gestor_atesta(self, manager, mailer, create_pending_note):
        note_id = create_pending_note()
        sent_before = len(mailer.sent)

        result = note_service.attest_note(
            manager, AttestRequest(note_id=note_id, observation="Conferido.", file=pdf_file("atesto.pdf"))
        )

        assert result.success
        note = reload(note_id)
        assert note.status == NoteStatus.ATESTADA.value
        assert note.attested_by == "Carla Gestora"
        assert note.attested_by_id == manager.id
        assert note.observation == "Conferido."
        assert note.attested_file_name == "atesto.pdf"
        assert history_types(note_id) == ["CREATED", "ATTESTED"]
        assert len(mailer.sent) == sent_before + 2

    def test_confirmacao_ao_coordenador_leva_o_documento(self, manager, mailer, create_pending_note):
        note_id = create_pending_note()
        sent_before = len(mailer.sent)

        note_service.attest_note(manager, AttestRequest(note_id=note_id, file=pdf_file("atesto.pdf")))

        to_coordinator = [m for m in mailer.sent[sent_before:] if "ana.coord@uni.br" in m.to]
        assert len(to_coordinator) == 1
        filename, mime_type, data = to_coordinator[0].attachments[0]
        assert filename == "atesto.pdf"
        assert mime_type == "application/pdf"
        assert data == PDF_BYTES

    def test_segundo_atesto_falha_sem_efeitos(self, manager, mailer, create_pending_note):
        note_id = create_pending_note()
        note_service.attest_note(manager, AttestRequest(note_id=note_id, file=pdf_file()))
        sent_before = len(mailer.sent)

        again = note_service.attest_note(manager, AttestRequest(note_id=note_id, file=pdf_file()))

        assert not again.success
        assert again.error == ActionError.INVALID_STATE
        assert again.message == note_service.NOT_PENDING_MESSAGE
        assert history_types(note_id).count("ATTESTED") == 1
        assert len(mailer.sent) == sent_before

    def test_coordenador_com_conta_atesta(self, coordinator, create_pending_note):
        note_id = create_pending_note()
        result = note_service.attest_note(coordinator, AttestRequest(note_id=note_id, file=pdf_file()))
        assert result.success

    def test_usuario_comum_nao_atesta(self, other_user, create_pending_note):
        note_id = create_pending_note()
        result = note_service.attest_note(other_user, AttestRequest(note_id=note_id, file=pdf_file()))
        assert result.error == ActionError.FORBIDDEN
        assert reload(note_id).status == NoteStatus.PENDENTE.value

    def test_nota_inexistente(self, manager):
        result = note_service.attest_note(manager, AttestRequest(note_id="0" * 32, file=pdf_file()))
        assert result.error == ActionError.NOT_FOUND


class TestAtestoPublico:
    def test_atesto_pelo_link(self, mailer, create_pending_note):
        note_id = create_pending_note()
        token = token_service.mint(note_id)

        result = note_service.attest_note_public(
            PublicAttestRequest(token=token, coordinator_name="Ana Coordenadora", file=pdf_file("assinado.pdf"))
        )

        assert result.success
        assert "note" not in (result.payload or {})
        note = reload(note_id)
        assert note.status == NoteStatus.ATESTADA.value
        assert note.attested_by == "Ana Coordenadora"
        assert note.attested_by_id is None
        entry = db.session.query(NoteHistory).filter_by(note_id=note_id, type="ATTESTED").one()
        assert entry.author_id is None
        assert entry.author_name == "Ana Coordenadora"

    def test_confirmacao_vai_para_o_email_informado(self, mailer, create_pending_note):
        note_id = create_pending_note()
        note_service.attest_note_public(
            PublicAttestRequest(
                token=token_service.mint(note_id),
                coordinator_name="Substituto",
                coordinator_email="substituto@uni.br",
                file=pdf_file(),
            )
        )
        recipients = [message.to[0] for message in mailer.sent]
        assert "substituto@uni.br" in recipients
        confirmation = next(m for m in mailer.sent if "substituto@uni.br" in m.to)
        assert confirmation.attachments[0][0] == "nota.pdf"

    def test_link_expirado(self, create_pending_note):
        note_id = create_pending_note()
        issued = datetime.now(timezone.utc) - timedelta(days=40)
        token = token_service.mint(note_id, ttl_days=30, now=issued)
        result = note_service.attest_note_public(
            PublicAttestRequest(token=token, coordinator_name="Ana Coordenadora", file=pdf_file())
        )
        assert result.error == ActionError.FORBIDDEN
        assert result.message == note_service.TOKEN_EXPIRED_MESSAGE

    def test_link_de_nota_ja_atestada(self, manager, create_pending_note):
        note_id = create_pending_note()
        token = token_service.mint(note_id)
        note_service.attest_note(manager, AttestRequest(note_id=note_id, file=pdf_file()))

        preview = note_service.get_note_from_token(token)
        assert preview.error == ActionError.INVALID_STATE

    def test_visualizacao_pelo_token(self, create_pending_note):
        note_id = create_pending_note()
        token = token_service.mint(note_id)
        result = note_service.get_note_from_token(token)
        assert result.success
        view = result.payload["note"]
        assert view["id"] == note_id
        assert view["amount_formatted"] == "R$ 1.234,56"
        assert view["file_url"].endswith(f"?token={token}")
        assert "coordinator_email" not in view


class TestRejeicao:
    def _reject(self, token, **overrides):
        values = dict(token=token, coordinator_name="Ana Coordenadora", reason="Valor diverge do contrato.")
        values.update(overrides)
        return note_service.reject_note_public(PublicRejectRequest(**values))

    def test_rejeita_e_notifica_solicitante(self, mailer, create_pending_note):
        note_id = create_pending_note()
        result = self._reject(token_service.mint(note_id), note_id=note_id)

        assert result.success
        note = reload(note_id)
        assert note.status == NoteStatus.REJEITADA.value
        assert note.rejected_by == "Ana Coordenadora"
        assert note.observation == "Valor diverge do contrato."
        assert history_types(note_id) == ["CREATED", "REJECTED"]
        message = mailer.sent[-1]
        assert message.to == ["solicitante@uni.br"]
        assert "Valor diverge do contrato." in message.html_body

    def test_token_de_outra_nota(self, create_pending_note):
        note_a = create_pending_note()
        note_b = create_pending_note(note_number="200")
        result = self._reject(token_service.mint(note_a), note_id=note_b)
        assert result.error == ActionError.FORBIDDEN
        assert reload(note_b).status == NoteStatus.PENDENTE.value

    def test_nota_rejeitada_nao_pode_ser_atestada(self, create_pending_note):
        note_id = create_pending_note()
        token = token_service.mint(note_id)
        self._reject(token)
        result = note_service.attest_note_public(
            PublicAttestRequest(token=token, coordinator_name="Ana Coordenadora", file=pdf_file())
        )
        assert result.error == ActionError.INVALID_STATE


class TestReversao:
    def test_reverte_atesto(self, manager, create_pending_note):
        note_id = create_pending_note()
        note_service.attest_note(manager, AttestRequest(note_id=note_id, file=pdf_file("atesto.pdf")))
        attested_blob = reload(note_id).attested_blob_id

        result = note_service.revert_attestation(manager, note_id)

        assert result.success
        note = reload(note_id)
        assert note.status == NoteStatus.PENDENTE.value
        assert note.attested_by is None
        assert note.attested_at is None
        assert note.attested_blob_id is None
        assert history_types(note_id) == ["CREATED", "ATTESTED", "REVERTED"]
        with pytest.raises(StorageError):
            get_storage().open(attested_blob)

    def test_usuario_comum_nao_reverte(self, requester, manager, create_pending_note):
        note_id = create_pending_note()
        note_service.attest_note(manager, AttestRequest(note_id=note_id, file=pdf_file()))
        assert note_service.revert_attestation(requester, note_id).error == ActionError.FORBIDDEN

    def test_nota_pendente_nao_reverte(self, manager, create_pending_note):
        note_id = create_pending_note()
        assert note_service.revert_attestation(manager, note_id).error == ActionError.INVALID_STATE


class TestEdicao:
    def test_solicitante_edita_e_historico_lista_campos(self, requester, create_pending_note):
        note_id = create_pending_note(issue_date_raw="01/03/2024")
        deadline = reload(note_id).attestation_deadline

        result = note_service.edit_note(
            requester,
            note_id,
            EditNoteRequest.from_form({"description": "Nova descrição", "amount": "99,90", "issue_date": "10/03/2024"}),
        )

        assert result.success
        note = reload(note_id)
        assert note.description == "Nova descrição"
        assert note.amount == Decimal("99.90")
        assert note.attestation_deadline == deadline
        edited = db.session.query(NoteHistory).filter_by(note_id=note_id, type="EDITED").one()
        assert "descrição" in edited.details
        assert "valor" in edited.details

    def test_sem_alteracao_nao_grava_historico(self, requester, create_pending_note):
        note_id = create_pending_note()
        result = note_service.edit_note(requester, note_id, EditNoteRequest.from_form({"description": "Consultoria em TI"}))
        assert result.success
        assert history_types(note_id) == ["CREATED"]

    def test_outro_usuario_nao_edita(self, other_user, create_pending_note):
        note_id = create_pending_note()
        result = note_service.edit_note(other_user, note_id, EditNoteRequest.from_form({"description": "X"}))
        assert result.error == ActionError.FORBIDDEN

    def test_nota_atestada_nao_edita(self, requester, manager, create_pending_note):
        note_id = create_pending_note()
        note_service.attest_note(manager, AttestRequest(note_id=note_id, file=pdf_file()))
        result = note_service.edit_note(requester, note_id, EditNoteRequest.from_form({"description": "X"}))
        assert result.error == ActionError.INVALID_STATE

    def test_edicao_que_gera_duplicidade(self, requester, create_pending_note):
        create_pending_note(note_number="100")
        second = create_pending_note(note_number="200")
        result = note_service.edit_note(requester, second, EditNoteRequest.from_form({"note_number": "100"}))
        assert result.error == ActionError.CONFLICT


class TestLixeira:
    def test_mover_e_restaurar(self, requester, manager, create_pending_note):
        note_id = create_pending_note()

        assert note_service.delete_note(requester, note_id).success
        assert reload(note_id).deleted is True
        assert note_service.list_notes(requester) == []
        assert [n["id"] for n in note_service.list_trash(requester)] == [note_id]

        assert note_service.restore_note(requester, note_id).error == ActionError.FORBIDDEN
        assert note_service.restore_note(manager, note_id).success
        assert reload(note_id).deleted is False
        assert history_types(note_id) == ["CREATED", "DELETED", "RESTORED"]

    def test_nota_atestada_nao_vai_para_lixeira(self, manager, create_pending_note):
        note_id = create_pending_note()
        note_service.attest_note(manager, AttestRequest(note_id=note_id, file=pdf_file()))
        assert note_service.delete_note(manager, note_id).error == ActionError.INVALID_STATE

    def test_usuario_so_move_as_proprias_notas(self, other_user, create_pending_note):
        note_id = create_pending_note()
        assert note_service.delete_note(other_user, note_id).error == ActionError.FORBIDDEN

    def test_exclusao_definitiva_remove_historico_e_arquivos(self, manager, create_pending_note):
        note_id = create_pending_note(report_file=UploadedFile("relatorio.pdf", "application/pdf", b"%PDF rel"))
        blob_ids = reload(note_id).blob_ids()
        assert len(blob_ids) == 2

        result = note_service.delete_note(manager, note_id, permanent=True)

        assert result.success
        db.session.expire_all()
        assert db.session.get(Note, note_id) is None
        assert db.session.query(NoteHistory).filter_by(note_id=note_id).count() == 0
        for blob_id in blob_ids:
            with pytest.raises(StorageError):
                get_storage().open(blob_id)

    def test_criador_exclui_definitivamente_apenas_da_lixeira(self, requester, create_pending_note):
        note_id = create_pending_note()
        assert note_service.delete_note(requester, note_id, permanent=True).error == ActionError.FORBIDDEN

        note_service.delete_note(requester, note_id)
        assert note_service.delete_note(requester, note_id, permanent=True).success

    def test_usuario_nao_exclui_definitivamente_nota_alheia(self, requester, other_user, create_pending_note):
        note_id = create_pending_note()
        note_service.delete_note(requester, note_id)

        result = note_service.delete_note(other_user, note_id, permanent=True)

        assert result.error == ActionError.FORBIDDEN
        assert reload(note_id) is not None


class TestHistorico:
    def test_historico_e_imutavel(self, create_pending_note):
        note_id = create_pending_note()
        entry = db.session.query(NoteHistory).filter_by(note_id=note_id).one()

        entry.details = "alterado"
        with pytest.raises(HistoryImmutableError):
            db.session.commit()
        db.session.rollback()

        db.session.delete(entry)
        with pytest.raises(HistoryImmutableError):
            db.session.commit()
        db.session.rollback()

        assert history_types(note_id) == ["CREATED"]


class TestVisibilidade:
    def test_detalhe_respeita_permissoes(self, requester, other_user, coordinator, manager, create_pending_note):
        note_id = create_pending_note()

        assert note_service.get_note_detail(requester, note_id).success
        assert note_service.get_note_detail(coordinator, note_id).success
        assert note_service.get_note_detail(manager, note_id).success
        assert note_service.get_note_detail(other_user, note_id).error == ActionError.FORBIDDEN

    def test_listagem_do_gestor_inclui_todas(self, manager, other_user, create_pending_note):
        create_pending_note()
        create_pending_note(actor=other_user, note_number="300")
        assert len(note_service.list_notes(manager)) == 2
        assert len(note_service.list_notes(other_user)) == 1

    def test_detalhe_traz_historico(self, requester, create_pending_note):
        note_id = create_pending_note()
        result = note_service.get_note_detail(requester, note_id)
        assert [h["type"] for h in result.payload["history"]] == ["CREATED"]
        assert result.payload["note"]["amount_formatted"] == "R$ 1.234,56"


class FailingStorage(BlobStorage):
    def upload(self, name, mime_type, stream, folder):
        raise StorageError("disco indisponível")


def stored_file_names(app):
    names = []
    for _root, _dirs, files in os.walk(app.config["BLOB_STORAGE_PATH"]):
        names.extend(files)
    return names


@pytest.fixture
def failing_storage(app, monkeypatch):
    def _install():
        monkeypatch.setitem(app.extensions, STORAGE_KEY, FailingStorage())

    return _install


@pytest.fixture
def failing_history(monkeypatch):
    def _install():
        def _append(self, *args, **kwargs):
            raise RuntimeError("falha ao gravar histórico")

        monkeypatch.setattr(NoteHistoryRepository, "append", _append)

    return _install


class TestFalhasDeDependencia:
    def test_falha_no_upload_aborta_criacao(self, requester, mailer, failing_storage):
        failing_storage()

        result = note_service.create_note(requester, build_note_request())

        assert not result.success
        assert result.error == ActionError.DEPENDENCY
        assert result.message == note_service.UPLOAD_FAILED_MESSAGE
        assert db.session.query(Note).count() == 0
        assert db.session.query(NoteHistory).count() == 0
        assert mailer.sent == []

    def test_falha_no_upload_aborta_atesto(self, manager, mailer, create_pending_note, failing_storage):
        note_id = create_pending_note()
        sent_before = len(mailer.sent)
        failing_storage()

        result = note_service.attest_note(manager, AttestRequest(note_id=note_id, file=pdf_file("atesto.pdf")))

        assert result.error == ActionError.DEPENDENCY
        assert result.message == note_service.UPLOAD_FAILED_MESSAGE
        note = reload(note_id)
        assert note.status == NoteStatus.PENDENTE.value
        assert note.attested_at is None
        assert history_types(note_id) == ["CREATED"]
        assert len(mailer.sent) == sent_before

    def test_falha_no_upload_aborta_atesto_publico(self, create_pending_note, failing_storage):
        note_id = create_pending_note()
        token = token_service.mint(note_id)
        failing_storage()

        result = note_service.attest_note_public(
            PublicAttestRequest(token=token, coordinator_name="Ana Coordenadora", file=pdf_file())
        )

        assert result.error == ActionError.DEPENDENCY
        assert reload(note_id).status == NoteStatus.PENDENTE.value
        assert history_types(note_id) == ["CREATED"]

    def test_falha_no_historico_desfaz_criacao(self, app, requester, mailer, failing_history):
        failing_history()

        result = note_service.create_note(requester, build_note_request(file=pdf_file("nota_falha.pdf")))

        assert result.error == ActionError.DEPENDENCY
        db.session.expire_all()
        assert db.session.query(Note).count() == 0
        assert mailer.sent == []
        assert not any("nota_falha" in name for name in stored_file_names(app))

    def test_falha_no_historico_desfaz_atesto(self, app, manager, mailer, create_pending_note, failing_history):
        note_id = create_pending_note()
        sent_before = len(mailer.sent)
        failing_history()

        result = note_service.attest_note(
            manager, AttestRequest(note_id=note_id, observation="Ok", file=pdf_file("atesto_falha.pdf"))
        )

        assert result.error == ActionError.DEPENDENCY
        note = reload(note_id)
        assert note.status == NoteStatus.PENDENTE.value
        assert note.attested_by is None
        assert note.attested_blob_id is None
        assert history_types(note_id) == ["CREATED"]
        assert len(mailer.sent) == sent_before
        assert not any("atesto_falha" in name for name in stored_file_names(app))
