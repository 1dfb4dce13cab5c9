"""
Configuração global persistida (chave/valor).

As chaves usadas hoje ficam em settings_service (prazo de atesto, frequência
dos lembretes e modelo de IA). O valor é sempre texto; a conversão é de quem lê.
"""

from datetime import datetime

from atesto.extensions import db


class AppSetting(db.Model):
    __tablename__ = "app_settings"

    id = db.Column(db.Integer, primary_key=True)
    setting_key = db.Column(db.String(100), unique=True, nullable=False)
    value = db.Column(db.Text, nullable=True)
    updated_at = db.Column(
        db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    def __repr__(self) -> str:
        return f"<AppSetting {self.setting_key!r}>"
