"""
Pacote repositories.
Expõe os Repository de acesso aos dados.
"""

from .note_repo import NoteRepository
from .history_repo import NoteHistoryRepository
from .user_repo import UserRepository
from .settings_repo import EmailTemplateRepository, SettingsRepository

__all__ = [
    "NoteRepository",
    "NoteHistoryRepository",
    "UserRepository",
    "SettingsRepository",
    "EmailTemplateRepository",
]
