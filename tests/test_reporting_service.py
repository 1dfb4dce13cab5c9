# tests/test_reporting_service.py
"""
Testes dos relatórios por colaborador e da lista de contas de projeto.
"""

import csv
import io
from datetime import datetime, timedelta

from atesto.extensions import db
from atesto.middleware.auth import Actor
from atesto.models import Note
from atesto.services import note_service, reporting_service
from atesto.services.results import ActionError

from conftest import auth_headers


def _age_note(note_id, days):
    note = db.session.get(Note, note_id)
    note.created_at = datetime.utcnow() - timedelta(days=days)
    db.session.commit()


def _by_email(collaborators):
    return {item["email"]: item for item in collaborators}


class TestColaboradores:
    def test_contagens_por_usuario(self, requester, other_user, manager, create_pending_note):
        create_pending_note(note_number="1")
        trashed = create_pending_note(note_number="2")
        note_service.delete_note(requester, trashed)
        old = create_pending_note(actor=other_user, note_number="3")
        _age_note(old, 45)

        result = reporting_service.list_collaborators(requester)

        assert result.success
        rows = _by_email(result.payload["collaborators"])
        assert rows["solicitante@uni.br"]["note_count"] == 1
        assert rows["solicitante@uni.br"]["recent_notes_count"] == 1
        assert rows["outro@uni.br"]["note_count"] == 1
        assert rows["outro@uni.br"]["recent_notes_count"] == 0
        assert rows["outro@uni.br"]["last_note_at"] is not None
        assert rows["gestor@uni.br"]["note_count"] == 0
        assert rows["gestor@uni.br"]["last_note_at"] is None

    def test_estatisticas(self, requester, other_user, manager, owner, create_pending_note):
        create_pending_note(note_number="1")
        create_pending_note(note_number="2")
        create_pending_note(actor=other_user, note_number="3")
        create_pending_note(actor=other_user, note_number="4")

        stats = reporting_service.get_collaborator_stats(requester).payload["stats"]

        assert stats["total_users"] == 4
        assert stats["active_users"] == 2
        assert stats["total_notes"] == 4
        assert stats["average_notes_per_user"] == 1.0
        assert stats["role_distribution"] == {"OWNER": 1, "MANAGER": 1, "USER": 2}

    def test_estatisticas_sem_usuarios(self, app):
        anonymous = Actor(id=0, name="Sistema", email="sistema@uni.br", role="OWNER")
        stats = reporting_service.get_collaborator_stats(anonymous).payload["stats"]
        assert stats["total_users"] == 0
        assert stats["average_notes_per_user"] == 0.0


class TestExportacao:
    def test_usuario_comum_nao_exporta(self, requester):
        assert reporting_service.export_collaborators_csv(requester).error == ActionError.FORBIDDEN

    def test_csv_com_uma_linha_por_nota(self, requester, manager, create_pending_note):
        note_id = create_pending_note()

        result = reporting_service.export_collaborators_csv(manager)

        rows = list(csv.reader(io.StringIO(result.payload["csv"]), delimiter=";"))
        header, body = rows[0], rows[1:]
        assert header[:3] == ["Nome Analista", "Email Analista", "ID da Nota"]
        by_email = {row[1]: row for row in body}
        assert by_email["solicitante@uni.br"][2] == note_id
        assert by_email["solicitante@uni.br"][5] == "R$ 1.234,56"
        assert by_email["gestor@uni.br"][2] == "N/A"
        assert all(len(row) == len(header) for row in body)

    def test_rota_de_exportacao(self, client, manager, requester):
        response = client.get("/api/reports/collaborators/export.csv", headers=auth_headers(manager))
        assert response.status_code == 200
        assert response.mimetype == "text/csv"
        assert "analistas_notas.csv" in response.headers["Content-Disposition"]

        denied = client.get("/api/reports/collaborators/export.csv", headers=auth_headers(requester))
        assert denied.status_code == 403


class TestContasDeProjeto:
    def test_contas_distintas_fora_da_lixeira(self, requester, create_pending_note):
        create_pending_note(note_number="1", project_account_number="1234567")
        create_pending_note(note_number="2", project_account_number="1234567")
        create_pending_note(note_number="3", project_account_number="0012345")
        trashed = create_pending_note(note_number="4", project_account_number="9999999")
        note_service.delete_note(requester, trashed)

        accounts = note_service.list_project_accounts(requester)

        assert accounts == [
            {"value": "0012345", "label": "001234-5"},
            {"value": "1234567", "label": "123456-7"},
        ]

    def test_rotas(self, client, requester, create_pending_note):
        create_pending_note()
        headers = auth_headers(requester)

        accounts = client.get("/api/notes/project-accounts", headers=headers).get_json()
        assert accounts["payload"]["accounts"] == [{"value": "1234567", "label": "123456-7"}]

        collaborators = client.get("/api/reports/collaborators", headers=headers)
        assert collaborators.status_code == 200
        stats = client.get("/api/reports/collaborators/stats", headers=headers).get_json()
        assert stats["payload"]["stats"]["total_notes"] == 1
