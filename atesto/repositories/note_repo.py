"""
Repository específico das notas fiscais (tabela 'fiscal_notes').
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import and_, func, or_

from atesto.models import Note, NoteStatus
from atesto.repositories.base import SqlAlchemyRepository

logger = logging.getLogger(__name__)


class NoteRepository(SqlAlchemyRepository[Note]):
    def __init__(self, session):
        super().__init__(session, Note)

    def get_for_update(self, note_id: str) -> Optional[Note]:
        """Carrega a nota com lock de linha (ignorado pelo SQLite)."""
        if not note_id:
            return None
        return (
            self.session.query(Note)
            .filter(Note.id == note_id)
            .with_for_update()
            .populate_existing()
            .one_or_none()
        )

    def find_duplicate(
        self,
        note_number: Optional[str],
        project_account_number: Optional[str],
        *,
        exclude_id: Optional[str] = None,
    ) -> Optional[Note]:
        """Nota não excluída com o mesmo par (número, conta do projeto)."""
        if not note_number or not project_account_number:
            return None
        query = self.session.query(Note).filter(
            Note.note_number == note_number,
            Note.project_account_number == project_account_number,
            Note.deleted.is_(False),
        )
        if exclude_id:
            query = query.filter(Note.id != exclude_id)
        return query.first()

    def list_visible(
        self,
        *,
        user_id: int,
        email: Optional[str],
        see_all: bool,
        status: Optional[str] = None,
        limit: Optional[int] = 500,
    ) -> List[Note]:
        """
        Notas não excluídas visíveis para o usuário.

        Gestores veem todas; os demais veem as próprias e as que coordenam.
        """
        query = self.session.query(Note).filter(Note.deleted.is_(False))
        if not see_all:
            conditions = [Note.user_id == user_id]
            if email:
                conditions.append(func.lower(Note.coordinator_email) == email.lower())
            query = query.filter(or_(*conditions))
        if status:
            query = query.filter(Note.status == status)
        query = query.order_by(Note.created_at.desc(), Note.id.desc())
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def list_trash(self, *, user_id: Optional[int] = None) -> List[Note]:
        query = self.session.query(Note).filter(Note.deleted.is_(True))
        if user_id is not None:
            query = query.filter(Note.user_id == user_id)
        return query.order_by(Note.deleted_at.desc()).all()

    def list_pending_past_deadline(self, now: datetime) -> List[Note]:
        """Pendentes vencidas ainda não sinalizadas com o evento EXPIRED."""
        return (
            self.session.query(Note)
            .filter(
                Note.status == NoteStatus.PENDENTE.value,
                Note.deleted.is_(False),
                Note.attestation_deadline < now,
                Note.expiration_notified_at.is_(None),
            )
            .order_by(Note.attestation_deadline.asc())
            .all()
        )

    def list_pending_active(self, now: datetime) -> List[Note]:
        """Pendentes dentro do prazo."""
        return (
            self.session.query(Note)
            .filter(
                Note.status == NoteStatus.PENDENTE.value,
                Note.deleted.is_(False),
                Note.attestation_deadline >= now,
            )
            .order_by(Note.attestation_deadline.asc())
            .all()
        )

    def list_pending_for_reminder(self, now: datetime, last_before: datetime) -> List[Note]:
        """Pendentes dentro do prazo sem lembrete (ou solicitação) desde last_before."""
        return (
            self.session.query(Note)
            .filter(
                Note.status == NoteStatus.PENDENTE.value,
                Note.deleted.is_(False),
                Note.attestation_deadline >= now,
                or_(
                    Note.last_reminder_at < last_before,
                    and_(Note.last_reminder_at.is_(None), Note.created_at < last_before),
                ),
            )
            .order_by(Note.attestation_deadline.asc())
            .all()
        )

    def find_by_blob_id(self, blob_id: str) -> Optional[Note]:
        if not blob_id:
            return None
        return (
            self.session.query(Note)
            .filter(
                or_(
                    Note.file_blob_id == blob_id,
                    Note.attested_blob_id == blob_id,
                    Note.report_blob_id == blob_id,
                )
            )
            .first()
        )

    def find_latest_pending(self) -> Optional[Note]:
        return (
            self.session.query(Note)
            .filter(Note.status == NoteStatus.PENDENTE.value, Note.deleted.is_(False))
            .order_by(Note.created_at.desc())
            .first()
        )

    def count_by_user(self, *, since: Optional[datetime] = None) -> Dict[int, int]:
        """Notas não excluídas por criador; com ``since``, só as criadas a partir dali."""
        query = self.session.query(Note.user_id, func.count(Note.id)).filter(Note.deleted.is_(False))
        if since is not None:
            query = query.filter(Note.created_at >= since)
        return {user_id: count for user_id, count in query.group_by(Note.user_id).all()}

    def last_created_by_user(self) -> Dict[int, datetime]:
        rows = (
            self.session.query(Note.user_id, func.max(Note.created_at))
            .filter(Note.deleted.is_(False))
            .group_by(Note.user_id)
            .all()
        )
        return {user_id: last for user_id, last in rows}

    def list_active_by_user(self) -> List[Note]:
        return (
            self.session.query(Note)
            .filter(Note.deleted.is_(False))
            .order_by(Note.user_id.asc(), Note.created_at.desc())
            .all()
        )

    def list_project_accounts(self) -> List[str]:
        """Contas de projeto distintas entre as notas não excluídas."""
        rows = (
            self.session.query(Note.project_account_number)
            .filter(Note.deleted.is_(False))
            .distinct()
            .order_by(Note.project_account_number.asc())
            .all()
        )
        return [row[0] for row in rows if row[0]]

    def purge(self, note: Note) -> None:
        """Remove a nota; o histórico é apagado em cascata pelo banco."""
        self.session.delete(note)
