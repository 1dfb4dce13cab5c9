"""
Pacote dos modelos SQLAlchemy.

Exporta as classes de modelo principais e as enumerações de domínio.
"""

from .enums import EmailTemplateType, HistoryType, InvoiceType, NoteStatus, Role
from .user import User
from .note import Note
from .note_history import HistoryImmutableError, NoteHistory
from .app_setting import AppSetting
from .email_template import EmailTemplate

__all__ = [
    "EmailTemplateType",
    "HistoryType",
    "InvoiceType",
    "NoteStatus",
    "Role",
    "User",
    "Note",
    "NoteHistory",
    "HistoryImmutableError",
    "AppSetting",
    "EmailTemplate",
]
