"""
Unit of Work Pattern.
Gerencia a transação atômica do banco e o acesso aos repositories.
"""
from typing import Optional

from atesto.extensions import db
from atesto.repositories import (
    EmailTemplateRepository,
    NoteHistoryRepository,
    NoteRepository,
    SettingsRepository,
    UserRepository,
)


class UnitOfWork:
    def __init__(self):
        self.session = db.session
        self._notes: Optional[NoteRepository] = None
        self._history: Optional[NoteHistoryRepository] = None
        self._users: Optional[UserRepository] = None
        self._settings: Optional[SettingsRepository] = None
        self._email_templates: Optional[EmailTemplateRepository] = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type:
            self.rollback()
            return False
        # O Flask-SQLAlchemy fecha a sessão no teardown, não fechar aqui

    @property
    def notes(self) -> NoteRepository:
        if self._notes is None:
            self._notes = NoteRepository(self.session)
        return self._notes

    @property
    def history(self) -> NoteHistoryRepository:
        if self._history is None:
            self._history = NoteHistoryRepository(self.session)
        return self._history

    @property
    def users(self) -> UserRepository:
        if self._users is None:
            self._users = UserRepository(self.session)
        return self._users

    @property
    def settings(self) -> SettingsRepository:
        if self._settings is None:
            self._settings = SettingsRepository(self.session)
        return self._settings

    @property
    def email_templates(self) -> EmailTemplateRepository:
        if self._email_templates is None:
            self._email_templates = EmailTemplateRepository(self.session)
        return self._email_templates

    def commit(self):
        try:
            self.session.commit()
        except Exception:
            self.rollback()
            raise

    def rollback(self):
        self.session.rollback()
