"""
Pacote das APIs JSON.

Contém:
- api_notes_bp    -> notas fiscais do usuário autenticado
- api_attest_bp   -> atesto/rejeição pelo link público com token
- api_files_bp    -> download dos anexos
- api_settings_bp -> configurações, templates e usuários
- api_reports_bp  -> relatórios por colaborador
- api_cron_bp     -> rotinas agendadas (expiração e lembretes)
"""

from .api_notes import api_notes_bp
from .api_attest import api_attest_bp
from .api_files import api_files_bp
from .api_settings import api_settings_bp
from .api_reports import api_reports_bp
from .api_cron import api_cron_bp

__all__ = [
    "api_notes_bp",
    "api_attest_bp",
    "api_files_bp",
    "api_settings_bp",
    "api_reports_bp",
    "api_cron_bp",
]
