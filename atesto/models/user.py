"""
Modelo User (tabela: users).

Usuário autenticado pelo proxy OAuth. O papel (role) define as permissões
de atesto, lixeira e administração.
"""

from datetime import datetime

from atesto.extensions import db
from atesto.models.enums import Role


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)

    email = db.Column(db.String(255), nullable=False, unique=True, index=True)
    name = db.Column(db.String(128), nullable=True)

    # OWNER | MANAGER | USER
    role = db.Column(db.String(16), nullable=False, default=Role.USER.value)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(
        db.DateTime, nullable=False, default=datetime.utcnow, index=True
    )
    updated_at = db.Column(
        db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    notes = db.relationship(
        "Note",
        back_populates="creator",
        lazy="dynamic",
        foreign_keys="Note.user_id",
    )

    @property
    def display_name(self) -> str:
        return self.name or self.email

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email!r} role={self.role}>"
