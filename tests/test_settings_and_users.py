# tests/test_settings_and_users.py
"""
Testes das configurações de ciclo de vida e da gestão de papéis.
"""

from datetime import date, datetime, time, timedelta

from atesto.extensions import db
from atesto.models import AppSetting, Note, Role, User
from atesto.services import note_service, settings_service, user_service
from atesto.services.dto import SettingsRequest
from atesto.services.permissions import Permission, has_permission
from atesto.services.results import ActionError

from conftest import build_note_request


class TestPermissoes:
    def test_tabela_de_papeis(self):
        assert has_permission(Role.USER, Permission.NOTE_CREATE)
        assert not has_permission(Role.USER, Permission.NOTE_ATTEST_ANY)
        assert has_permission(Role.MANAGER, Permission.TRASH_MANAGE)
        assert not has_permission(Role.MANAGER, Permission.USER_MANAGE)
        assert has_permission("OWNER", Permission.USER_MANAGE)
        assert not has_permission("DESCONHECIDO", Permission.NOTE_READ)


class TestConfiguracoes:
    def test_padroes_vem_da_configuracao(self, app):
        settings = settings_service.load_lifecycle_settings()
        assert settings.attestation_deadline_days == app.config["ATTESTATION_DEADLINE_DAYS"]
        assert settings.reminder_frequency_days == app.config["REMINDER_FREQUENCY_DAYS"]

    def test_usuario_comum_nao_altera(self, requester):
        request = SettingsRequest.from_form({"attestation_deadline_days": "45", "reminder_frequency_days": "5"})
        assert settings_service.save_lifecycle_settings(requester, request).error == ActionError.FORBIDDEN

    def test_gestor_altera_e_novo_prazo_vale_para_novas_notas(self, manager, requester):
        request = SettingsRequest.from_form(
            {"attestation_deadline_days": "45", "reminder_frequency_days": "5", "ai_model": "gemini-2.0-flash"}
        )
        result = settings_service.save_lifecycle_settings(manager, request)

        assert result.success
        assert result.payload["settings"] == {
            "attestation_deadline_days": 45,
            "reminder_frequency_days": 5,
            "ai_model": "gemini-2.0-flash",
        }

        created = note_service.create_note(requester, build_note_request(issue_date_raw="01/03/2024"))
        note = db.session.get(Note, created.payload["note"]["id"])
        assert note.attestation_deadline == datetime.combine(date(2024, 3, 1), time.min) + timedelta(days=45)

    def test_get_setting_le_do_banco_com_padrao_da_configuracao(self, app):
        assert settings_service.get_setting("ai_model") == app.config["AI_MODEL"]
        assert settings_service.get_setting("chave_inexistente", "padrao") == "padrao"

        settings_service.set_settings({"ai_model": "gemini-2.0-flash", "chave_inexistente": "x"})

        assert settings_service.get_setting("ai_model") == "gemini-2.0-flash"
        assert settings_service.get_setting("chave_inexistente", "padrao") == "x"
        assert app.config["AI_MODEL"] != "gemini-2.0-flash"
        assert db.session.query(AppSetting).filter_by(setting_key="ai_model").one().value == "gemini-2.0-flash"

    def test_valores_fora_do_limite(self, manager):
        request = SettingsRequest.from_form({"attestation_deadline_days": "400", "reminder_frequency_days": "5"})
        result = settings_service.save_lifecycle_settings(manager, request)
        assert result.error == ActionError.VALIDATION
        assert "attestation_deadline_days" in result.errors


class TestUsuarios:
    def test_dono_promove_usuario(self, owner, requester):
        result = user_service.update_user_role(owner, requester.id, "manager")
        assert result.success
        assert db.session.get(User, requester.id).role == Role.MANAGER.value

    def test_gestor_nao_altera_papeis(self, manager, requester):
        assert user_service.update_user_role(manager, requester.id, "MANAGER").error == ActionError.FORBIDDEN

    def test_dono_nao_altera_o_proprio_papel(self, owner):
        assert user_service.update_user_role(owner, owner.id, "USER").error == ActionError.FORBIDDEN

    def test_papel_invalido(self, owner, requester):
        assert user_service.update_user_role(owner, requester.id, "OWNER").error == ActionError.VALIDATION

    def test_usuario_inexistente(self, owner):
        assert user_service.update_user_role(owner, 9999, "USER").error == ActionError.NOT_FOUND

    def test_listagem_exige_gestor(self, requester, manager):
        assert user_service.list_users(requester).error == ActionError.FORBIDDEN
        result = user_service.list_users(manager)
        assert [u["email"] for u in result.payload["users"]] == ["gestor@uni.br", "solicitante@uni.br"]
