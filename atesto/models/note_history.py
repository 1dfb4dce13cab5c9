"""
Modelo NoteHistory (tabela: note_history).

Trilha de auditoria append-only da nota. As linhas são removidas apenas pelo
banco, em cascata, quando a nota é excluída definitivamente.
"""

from datetime import datetime

from sqlalchemy import event

from atesto.extensions import db


class HistoryImmutableError(RuntimeError):
    """Tentativa de alterar ou apagar um evento de histórico já gravado."""


class NoteHistory(db.Model):
    __tablename__ = "note_history"

    id = db.Column(db.Integer, primary_key=True)

    note_id = db.Column(
        db.String(32),
        db.ForeignKey("fiscal_notes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # CREATED | ATTESTED | REVERTED | REJECTED | EDITED | DELETED | RESTORED | EXPIRED
    type = db.Column(db.String(16), nullable=False, index=True)
    details = db.Column(db.Text, nullable=False)

    # Nulo quando a ação veio do link público (coordenador sem conta)
    author_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    author_name = db.Column(db.String(128), nullable=False)

    created_at = db.Column(
        db.DateTime, nullable=False, default=datetime.utcnow, index=True
    )

    note = db.relationship("Note", back_populates="history")
    author = db.relationship("User", lazy="joined")

    def __repr__(self) -> str:
        return f"<NoteHistory id={self.id} note_id={self.note_id} type={self.type}>"


@event.listens_for(NoteHistory, "before_update")
def _reject_history_update(mapper, connection, target) -> None:
    raise HistoryImmutableError(f"Evento de histórico {target.id} não pode ser alterado.")


@event.listens_for(NoteHistory, "before_delete")
def _reject_history_delete(mapper, connection, target) -> None:
    raise HistoryImmutableError(f"Evento de histórico {target.id} não pode ser removido.")
