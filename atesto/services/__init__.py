"""
Pacote dos serviços (regras de negócio) da aplicação.

Os serviços orquestram:
- repositories (acesso ao banco) via UnitOfWork
- armazenamento de arquivos, e-mail e extração automática
- validação dos DTO e transições de status
- logging estruturado
"""

from .results import ActionError, ActionResult
from .note_service import (
    attest_note,
    attest_note_public,
    check_existing_note,
    create_note,
    delete_note,
    edit_note,
    get_dashboard_summary,
    get_note_detail,
    get_note_from_token,
    list_notes,
    list_project_accounts,
    list_trash,
    mark_expired_notes,
    notify_all_pending_coordinators,
    reject_note_public,
    restore_note,
    revert_attestation,
    send_due_reminders,
)
from .reporting_service import export_collaborators_csv, get_collaborator_stats, list_collaborators
from .settings_service import LifecycleSettings, load_lifecycle_settings, save_lifecycle_settings
from .user_service import list_users, update_user_role

__all__ = [
    "ActionError",
    "ActionResult",
    "attest_note",
    "attest_note_public",
    "check_existing_note",
    "create_note",
    "delete_note",
    "edit_note",
    "get_dashboard_summary",
    "get_note_detail",
    "get_note_from_token",
    "list_notes",
    "list_project_accounts",
    "list_trash",
    "mark_expired_notes",
    "notify_all_pending_coordinators",
    "reject_note_public",
    "restore_note",
    "revert_attestation",
    "send_due_reminders",
    "LifecycleSettings",
    "load_lifecycle_settings",
    "save_lifecycle_settings",
    "list_collaborators",
    "get_collaborator_stats",
    "export_collaborators_csv",
    "list_users",
    "update_user_role",
]
