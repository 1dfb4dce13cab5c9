"""
Módulo de configuração da aplicação Flask.
"""

import os
from pathlib import Path


BASE_DIR = Path(__file__).resolve().parent


def _env_bool(name: str, default: str = "0") -> bool:
    return os.environ.get(name, default).strip().lower() in {"1", "true", "yes", "on"}


class Config:
    """Configuração base, comum a todos os ambientes."""

    # Chave secreta: em produção deve vir da variável de ambiente
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # --- BANCO DE DADOS (MySQL) ----------------------------------------------
    DB_USER = os.environ.get("DB_USER", "atesto")
    DB_PASSWORD = os.environ.get("DB_PASSWORD", "atesto")
    DB_HOST = os.environ.get("DB_HOST", "localhost")
    DB_PORT = os.environ.get("DB_PORT", "3306")
    DB_NAME = os.environ.get("DB_NAME", "atesto_notas")

    DEFAULT_DB_URL = (
        f"mysql+pymysql://{DB_USER}:{DB_PASSWORD}@{DB_HOST}:{DB_PORT}/{DB_NAME}"
    )

    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", DEFAULT_DB_URL)
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # --- ARQUIVOS (BLOB STORE) -----------------------------------------------
    BLOB_STORAGE_PATH = os.environ.get(
        "BLOB_STORAGE_PATH",
        str(BASE_DIR / "storage" / "blobs"),
    )

    # Limite da requisição inteira; o limite por arquivo (10MB) é validado nos DTO
    MAX_CONTENT_LENGTH = 25 * 1024 * 1024

    # --- LINKS PÚBLICOS DE ATESTO ---------------------------------------------
    APP_BASE_URL = os.environ.get("APP_BASE_URL", "http://localhost:5000")
    ATTESTATION_TOKEN_SECRET = os.environ.get("ATTESTATION_TOKEN_SECRET") or SECRET_KEY
    ATTESTATION_TOKEN_TTL_DAYS = int(os.environ.get("ATTESTATION_TOKEN_TTL_DAYS", "30"))

    # Valores padrão: as configurações salvas no banco têm precedência
    ATTESTATION_DEADLINE_DAYS = int(os.environ.get("ATTESTATION_DEADLINE_DAYS", "30"))
    REMINDER_FREQUENCY_DAYS = int(os.environ.get("REMINDER_FREQUENCY_DAYS", "3"))

    # --- E-MAIL (SMTP) ---------------------------------------------------------
    SMTP_HOST = os.environ.get("SMTP_HOST", "")
    SMTP_PORT = int(os.environ.get("SMTP_PORT", "587"))
    SMTP_USER = os.environ.get("SMTP_USER", "")
    SMTP_PASSWORD = os.environ.get("SMTP_PASSWORD", "")
    SMTP_USE_TLS = _env_bool("SMTP_USE_TLS", "1")
    MAIL_FROM = os.environ.get("MAIL_FROM", "no-reply@localhost")
    MAIL_FROM_NAME = os.environ.get("MAIL_FROM_NAME", "Notas Fiscais")

    # --- EXTRAÇÃO POR IA -----------------------------------------------------
    GEMINI_API_KEY = os.environ.get("GEMINI_API_KEY", "")
    GEMINI_ENDPOINT = os.environ.get(
        "GEMINI_ENDPOINT",
        "https://generativelanguage.googleapis.com/v1beta/models",
    )
    AI_MODEL = os.environ.get("AI_MODEL", "gemini-1.5-flash-latest")

    # --- ROTINAS AGENDADAS ---------------------------------------------------
    CRON_SECRET = os.environ.get("CRON_SECRET", "")

    # --- AUTENTICAÇÃO ----------------------------------------------------------
    # Cabeçalhos preenchidos pelo proxy OAuth posicionado na frente da aplicação
    AUTH_USER_HEADER = os.environ.get("AUTH_USER_HEADER", "X-Forwarded-Email")
    AUTH_NAME_HEADER = os.environ.get("AUTH_NAME_HEADER", "X-Forwarded-User")
    AUTH_STUB_EMAIL = os.environ.get("AUTH_STUB_EMAIL", "")
    OWNER_EMAILS = os.environ.get("OWNER_EMAILS", "")
    # Endereços (separados por vírgula) do proxy autorizado a enviar os cabeçalhos
    AUTH_TRUSTED_PROXIES = os.environ.get("AUTH_TRUSTED_PROXIES", "")

    # --- LOGGING -------------------------------------------------------------
    LOG_DIR = os.environ.get("LOG_DIR", str(BASE_DIR / "logs"))
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    LOG_FILE_NAME = os.environ.get("LOG_FILE_NAME", "atesto.log")
    LOG_MAX_BYTES = int(os.environ.get("LOG_MAX_BYTES", str(5 * 1024 * 1024)))
    LOG_BACKUP_COUNT = int(os.environ.get("LOG_BACKUP_COUNT", "3"))


class DevConfig(Config):
    """Configuração para ambiente de desenvolvimento."""
    DEBUG = True
    ENV = "development"
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "DEBUG")
    AUTH_STUB_EMAIL = os.environ.get("AUTH_STUB_EMAIL", "dev@localhost.local")


class ProdConfig(Config):
    """Configuração para ambiente de produção."""
    DEBUG = False
    ENV = "production"
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")


class TestConfig(Config):
    """Configuração usada pela suíte pytest (SQLite em memória)."""
    TESTING = True
    DEBUG = False
    ENV = "test"
    SECRET_KEY = "test-secret-key"
    ATTESTATION_TOKEN_SECRET = "test-attestation-secret"
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    APP_BASE_URL = "http://testserver"
    CRON_SECRET = "test-cron-secret"
    AUTH_STUB_EMAIL = ""
    OWNER_EMAILS = ""
    LOG_LEVEL = "WARNING"
