"""
Modelo EmailTemplate (tabela: email_templates).

Assunto e corpo HTML editáveis, com placeholders no formato [Nome].
"""

from datetime import datetime

from atesto.extensions import db


class EmailTemplate(db.Model):
    __tablename__ = "email_templates"

    id = db.Column(db.Integer, primary_key=True)
    type = db.Column(db.String(64), nullable=False, unique=True)
    subject = db.Column(db.String(255), nullable=False)
    body = db.Column(db.Text, nullable=False)

    updated_at = db.Column(
        db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    def __repr__(self) -> str:
        return f"<EmailTemplate type={self.type}>"
