"""
Repository do histórico das notas.

Expõe apenas inserção e leitura: o histórico é append-only.
"""

from typing import List, Optional

from atesto.models import HistoryType, Note, NoteHistory


class NoteHistoryRepository:
    def __init__(self, session):
        self.session = session

    def append(
        self,
        note_id: str,
        event_type: HistoryType,
        details: str,
        *,
        author_id: Optional[int],
        author_name: str,
    ) -> NoteHistory:
        """Cria o evento e o adiciona à sessão. Não faz commit."""
        entry = NoteHistory(
            note_id=note_id,
            type=event_type.value,
            details=details,
            author_id=author_id,
            author_name=author_name,
        )
        self.session.add(entry)
        return entry

    def list_by_note(self, note_id: str) -> List[NoteHistory]:
        """Eventos da nota em ordem de criação."""
        return (
            self.session.query(NoteHistory)
            .filter(NoteHistory.note_id == note_id)
            .order_by(NoteHistory.created_at.asc(), NoteHistory.id.asc())
            .all()
        )

    def list_recent(self, limit: int = 10, *, user_id: Optional[int] = None) -> List[NoteHistory]:
        query = self.session.query(NoteHistory)
        if user_id is not None:
            query = query.join(Note, Note.id == NoteHistory.note_id).filter(Note.user_id == user_id)
        return (
            query.order_by(NoteHistory.created_at.desc(), NoteHistory.id.desc())
            .limit(limit)
            .all()
        )
