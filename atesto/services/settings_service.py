"""
Serviços de configuração da aplicação.

As configurações de ciclo de vida ficam na tabela app_settings e são lidas a
cada requisição; os valores de app.config servem apenas de padrão.
"""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass
from typing import Dict, Optional

from flask import current_app

from atesto.services.logging import log_structured_event
from atesto.services.permissions import Permission, has_permission
from atesto.services.results import GENERIC_SERVER_ERROR, ActionError, ActionResult
from atesto.services.unit_of_work import UnitOfWork

DEADLINE_DAYS_KEY = "attestation_deadline_days"
REMINDER_FREQUENCY_KEY = "reminder_frequency_days"
AI_MODEL_KEY = "ai_model"


@dataclass
class LifecycleSettings:
    attestation_deadline_days: int = 30
    reminder_frequency_days: int = 3
    ai_model: str = ""

    def to_dict(self) -> dict:
        return asdict(self)


def _config_default(key: str, default=None):
    return current_app.config.get(key, default)


def get_setting(key: str, default: Optional[str] = None) -> Optional[str]:
    """
    Valor salvo em app_settings; sem linha, usa a chave em maiúsculas de
    app.config (ex.: "ai_model" -> AI_MODEL) e por fim ``default``.
    """
    with UnitOfWork() as uow:
        value = uow.settings.get_value(key)
    if value is not None and value != "":
        return value
    return _config_default(key.upper(), default)


def set_settings(values: Dict[str, Optional[str]]) -> None:
    """Grava as chaves em app_settings numa única transação."""
    with UnitOfWork() as uow:
        for key, value in values.items():
            uow.settings.set_value(key, value)
        uow.commit()


def _to_int(value: Optional[str], default: int) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    return parsed if parsed > 0 else default


def load_lifecycle_settings() -> LifecycleSettings:
    default_deadline = int(_config_default("ATTESTATION_DEADLINE_DAYS", 30))
    default_reminder = int(_config_default("REMINDER_FREQUENCY_DAYS", 3))
    default_model = _config_default("AI_MODEL", "")

    with UnitOfWork() as uow:
        stored = uow.settings.get_many(DEADLINE_DAYS_KEY, REMINDER_FREQUENCY_KEY, AI_MODEL_KEY)

    return LifecycleSettings(
        attestation_deadline_days=_to_int(stored.get(DEADLINE_DAYS_KEY), default_deadline),
        reminder_frequency_days=_to_int(stored.get(REMINDER_FREQUENCY_KEY), default_reminder),
        ai_model=stored.get(AI_MODEL_KEY) or default_model,
    )


def save_lifecycle_settings(actor, request) -> ActionResult:
    if not has_permission(actor.role, Permission.SETTINGS_MANAGE):
        return ActionResult.fail(ActionError.FORBIDDEN, "Você não tem permissão para alterar as configurações.")

    errors = request.validate()
    if errors:
        return ActionResult.fail(ActionError.VALIDATION, "Dados inválidos.", errors)

    try:
        values = {
            DEADLINE_DAYS_KEY: str(request.attestation_deadline_days),
            REMINDER_FREQUENCY_KEY: str(request.reminder_frequency_days),
        }
        if request.ai_model:
            values[AI_MODEL_KEY] = request.ai_model
        set_settings(values)
    except Exception:
        current_app.logger.exception("Erro ao salvar configurações")
        return ActionResult.fail(ActionError.DEPENDENCY, GENERIC_SERVER_ERROR)

    log_structured_event(
        "settings_updated",
        user_id=actor.id,
        attestation_deadline_days=request.attestation_deadline_days,
        reminder_frequency_days=request.reminder_frequency_days,
    )
    return ActionResult.ok(
        "Configurações salvas com sucesso!",
        settings=load_lifecycle_settings().to_dict(),
    )


def _resolve_path(config_value: Optional[str], default_parts: list) -> str:
    if config_value:
        target_path = os.path.abspath(config_value)
    else:
        target_path = os.path.join(os.getcwd(), *default_parts)
    os.makedirs(target_path, exist_ok=True)
    return target_path


def get_blob_storage_path() -> str:
    """Caminho absoluto da raiz do armazenamento de arquivos."""
    return _resolve_path(current_app.config.get("BLOB_STORAGE_PATH"), ["storage", "blobs"])
