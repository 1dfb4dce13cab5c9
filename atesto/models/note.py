"""
Modelo Note (tabela: fiscal_notes).

Nota fiscal submetida por um solicitante e atribuída a um coordenador para
atesto. O status persistido é PENDENTE, ATESTADA ou REJEITADA; EXPIRADA é
calculado na leitura a partir do prazo de atesto.
"""

import uuid
from datetime import datetime
from typing import List, Optional

from atesto.extensions import db
from atesto.models.enums import NoteStatus


def _new_note_id() -> str:
    return uuid.uuid4().hex


class Note(db.Model):
    __tablename__ = "fiscal_notes"
    __table_args__ = (
        db.Index("ix_fiscal_notes_number_account", "note_number", "project_account_number"),
    )

    id = db.Column(db.String(32), primary_key=True, default=_new_note_id)

    # Solicitante (imutável após a criação)
    user_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    requester = db.Column(db.String(128), nullable=False)

    # Coordenador: texto livre, não precisa ter conta no sistema
    coordinator_name = db.Column(db.String(128), nullable=False)
    coordinator_email = db.Column(db.String(255), nullable=False, index=True)
    cc_emails = db.Column(db.Text, nullable=True)

    # Classificação
    invoice_type = db.Column(db.String(16), nullable=False)
    description = db.Column(db.Text, nullable=False)
    amount = db.Column(db.Numeric(15, 2), nullable=True)
    note_number = db.Column(db.String(64), nullable=True)
    issue_date = db.Column(db.Date, nullable=True, index=True)
    has_withholding_tax = db.Column(db.Boolean, nullable=False, default=False)

    project_title = db.Column(db.String(255), nullable=False)
    project_account_number = db.Column(db.String(32), nullable=False, index=True)

    provider_name = db.Column(db.String(255), nullable=True)
    provider_document = db.Column(db.String(32), nullable=True)
    client_name = db.Column(db.String(255), nullable=True)
    client_document = db.Column(db.String(32), nullable=True)

    # Anexo original
    file_blob_id = db.Column(db.String(64), nullable=False, index=True)
    file_url = db.Column(db.String(500), nullable=False)
    file_name = db.Column(db.String(255), nullable=False)
    file_type = db.Column(db.String(100), nullable=False)

    # Relatório (opcional)
    report_blob_id = db.Column(db.String(64), nullable=True, index=True)
    report_file_url = db.Column(db.String(500), nullable=True)
    report_file_name = db.Column(db.String(255), nullable=True)

    # Documento de atesto
    attested_blob_id = db.Column(db.String(64), nullable=True, index=True)
    attested_file_url = db.Column(db.String(500), nullable=True)
    attested_file_name = db.Column(db.String(255), nullable=True)

    # Ciclo de vida
    status = db.Column(
        db.String(16), nullable=False, default=NoteStatus.PENDENTE.value, index=True
    )
    attestation_deadline = db.Column(db.DateTime, nullable=False, index=True)

    attested_at = db.Column(db.DateTime, nullable=True)
    attested_by = db.Column(db.String(128), nullable=True)
    attested_by_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    observation = db.Column(db.Text, nullable=True)

    rejected_at = db.Column(db.DateTime, nullable=True)
    rejected_by = db.Column(db.String(128), nullable=True)

    deleted = db.Column(db.Boolean, nullable=False, default=False, index=True)
    deleted_at = db.Column(db.DateTime, nullable=True)

    last_reminder_at = db.Column(db.DateTime, nullable=True)
    expiration_notified_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(
        db.DateTime, nullable=False, default=datetime.utcnow, index=True
    )
    updated_at = db.Column(
        db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    creator = db.relationship(
        "User", back_populates="notes", foreign_keys=[user_id], lazy="joined"
    )
    attested_by_user = db.relationship("User", foreign_keys=[attested_by_id])

    # O banco remove o histórico em cascata; o ORM nunca apaga linhas de histórico
    history = db.relationship(
        "NoteHistory",
        back_populates="note",
        order_by="NoteHistory.created_at",
        passive_deletes="all",
    )

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.utcnow()
        return (
            self.status == NoteStatus.PENDENTE
            and self.attestation_deadline is not None
            and now > self.attestation_deadline
        )

    def display_status(self, now: Optional[datetime] = None) -> str:
        """Status mostrado ao usuário; nunca gravado a partir da leitura."""
        if self.is_expired(now):
            return NoteStatus.EXPIRADA.value
        return self.status

    def days_remaining(self, now: Optional[datetime] = None) -> int:
        now = now or datetime.utcnow()
        if self.attestation_deadline is None:
            return 0
        return max(0, (self.attestation_deadline - now).days)

    def blob_ids(self) -> List[str]:
        return [
            blob_id
            for blob_id in (self.file_blob_id, self.report_blob_id, self.attested_blob_id)
            if blob_id
        ]

    def __repr__(self) -> str:
        return (
            f"<Note id={self.id} number={self.note_number!r} status={self.status} "
            f"deleted={self.deleted}>"
        )
