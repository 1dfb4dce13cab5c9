"""
Tokens de atesto: JWT assinado (HS256) com validade, carregando o id da nota.

O token é stateless; cada uso precisa conferir novamente o estado da nota.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from flask import current_app

ALGORITHM = "HS256"
TOKEN_PURPOSE = "attestation"


class AttestationTokenError(Exception):
    """Erro base de verificação do token de atesto."""


class AttestationTokenExpired(AttestationTokenError):
    pass


class AttestationTokenInvalid(AttestationTokenError):
    pass


def _secret() -> str:
    secret = current_app.config.get("ATTESTATION_TOKEN_SECRET") or current_app.config.get("SECRET_KEY")
    if not secret:
        raise RuntimeError("ATTESTATION_TOKEN_SECRET não configurado.")
    return secret


def mint(note_id: str, *, ttl_days: Optional[int] = None, now: Optional[datetime] = None) -> str:
    if ttl_days is None:
        ttl_days = int(current_app.config.get("ATTESTATION_TOKEN_TTL_DAYS", 30))
    issued_at = now or datetime.now(timezone.utc)
    payload = {
        "noteId": note_id,
        "purpose": TOKEN_PURPOSE,
        "iat": issued_at,
        "exp": issued_at + timedelta(days=ttl_days),
    }
    return jwt.encode(payload, _secret(), algorithm=ALGORITHM)


def verify(token: str) -> str:
    """Retorna o id da nota; distingue token expirado de token inválido."""
    if not token:
        raise AttestationTokenInvalid("Token ausente.")
    try:
        payload = jwt.decode(
            token,
            _secret(),
            algorithms=[ALGORITHM],
            options={"require": ["exp", "iat"]},
        )
    except jwt.ExpiredSignatureError as exc:
        raise AttestationTokenExpired("Token expirado.") from exc
    except jwt.InvalidTokenError as exc:
        raise AttestationTokenInvalid("Token inválido.") from exc

    note_id = payload.get("noteId")
    if payload.get("purpose") != TOKEN_PURPOSE or not isinstance(note_id, str) or not note_id:
        raise AttestationTokenInvalid("Token inválido.")
    return note_id


def build_attestation_link(note_id: str) -> str:
    base_url = (current_app.config.get("APP_BASE_URL") or "http://localhost:5000").rstrip("/")
    return f"{base_url}/attest/{mint(note_id)}"
