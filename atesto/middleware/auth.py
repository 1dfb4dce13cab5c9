"""
Middleware de autenticação.

A autenticação OAuth fica no proxy à frente da aplicação, que repassa a
identidade nos cabeçalhos configurados (AUTH_USER_HEADER / AUTH_NAME_HEADER).
Aqui o e-mail recebido é resolvido para um usuário local, criado na primeira
visita com papel USER (ou OWNER se estiver em OWNER_EMAILS), e exposto em
``g.actor``.

Os cabeçalhos de identidade são aceitos de qualquer cliente, então a aplicação
só pode ser alcançável através do proxy. Em produção, AUTH_TRUSTED_PROXIES
restringe os endereços de origem dos quais esses cabeçalhos são lidos.

Em desenvolvimento, AUTH_STUB_EMAIL autentica todas as requisições com um
usuário fixo.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import wraps
from typing import Optional

from flask import Flask, current_app, g, jsonify, request

from atesto.models import Role, User
from atesto.services.formatting_service import is_valid_email
from atesto.services.logging import log_structured_event
from atesto.services.unit_of_work import UnitOfWork


@dataclass(frozen=True)
class Actor:
    """Identidade de quem executa uma ação."""

    id: int
    name: str
    email: str
    role: str

    @classmethod
    def from_user(cls, user: User) -> "Actor":
        return cls(id=user.id, name=user.display_name, email=user.email, role=user.role)


def _owner_emails() -> set:
    raw = current_app.config.get("OWNER_EMAILS") or ""
    return {item.strip().lower() for item in raw.split(",") if item.strip()}


def _trusted_proxies() -> set:
    raw = current_app.config.get("AUTH_TRUSTED_PROXIES") or ""
    return {item.strip() for item in raw.split(",") if item.strip()}


def _identity_headers_allowed() -> bool:
    trusted = _trusted_proxies()
    return not trusted or request.remote_addr in trusted


def resolve_actor(email: str, name: Optional[str] = None) -> Optional[Actor]:
    """Carrega (ou provisiona) o usuário correspondente ao e-mail."""
    email = (email or "").strip().lower()
    if not is_valid_email(email):
        return None

    with UnitOfWork() as uow:
        user = uow.users.get_by_email(email)
        if user is None:
            role = Role.OWNER if email in _owner_emails() else Role.USER
            user = User(
                email=email,
                name=(name or "").strip() or email.split("@")[0],
                role=role.value,
            )
            uow.users.add(user)
            uow.commit()
            log_structured_event("user_provisioned", user_id=user.id, email=email, role=role.value)
        elif not user.is_active:
            return None
        return Actor.from_user(user)


def init_auth(app: Flask) -> None:
    @app.before_request
    def load_actor() -> None:
        g.actor = None
        email = request.headers.get(app.config.get("AUTH_USER_HEADER", "X-Forwarded-Email"), "")
        name = request.headers.get(app.config.get("AUTH_NAME_HEADER", "X-Forwarded-User"), "")
        if email and not _identity_headers_allowed():
            log_structured_event(
                "auth_header_untrusted_source", level="warning", remote_addr=request.remote_addr
            )
            return
        if not email:
            email = app.config.get("AUTH_STUB_EMAIL") or ""
            name = name or "Usuário de Desenvolvimento"
        if email:
            g.actor = resolve_actor(email, name)


def current_actor() -> Optional[Actor]:
    return getattr(g, "actor", None)


def login_required(view):
    @wraps(view)
    def wrapper(*args, **kwargs):
        if current_actor() is None:
            return jsonify({"success": False, "message": "Não autenticado."}), 401
        return view(*args, **kwargs)

    return wrapper
