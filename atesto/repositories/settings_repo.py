"""
Repository das configurações persistidas (AppSetting) e dos templates de e-mail.
"""

from typing import Dict, Optional

from atesto.models import AppSetting, EmailTemplate


class SettingsRepository:
    def __init__(self, session):
        self.session = session

    def get_value(self, key: str) -> Optional[str]:
        row = self.session.query(AppSetting).filter_by(setting_key=key).one_or_none()
        return row.value if row else None

    def get_many(self, *keys: str) -> Dict[str, Optional[str]]:
        rows = self.session.query(AppSetting).filter(AppSetting.setting_key.in_(keys)).all()
        return {row.setting_key: row.value for row in rows}

    def set_value(self, key: str, value: Optional[str]) -> AppSetting:
        row = self.session.query(AppSetting).filter_by(setting_key=key).one_or_none()
        if row is None:
            row = AppSetting(setting_key=key, value=value)
            self.session.add(row)
        else:
            row.value = value
        return row


class EmailTemplateRepository:
    def __init__(self, session):
        self.session = session

    def get_by_type(self, template_type: str) -> Optional[EmailTemplate]:
        return self.session.query(EmailTemplate).filter_by(type=template_type).one_or_none()

    def get_or_create(self, template_type: str, subject: str, body: str) -> EmailTemplate:
        """Retorna o template; se ausente, cria com os valores padrão."""
        template = self.get_by_type(template_type)
        if template is None:
            template = EmailTemplate(type=template_type, subject=subject, body=body)
            self.session.add(template)
        return template
