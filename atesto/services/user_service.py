"""
Gestão de usuários e papéis.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from atesto.models import Role
from atesto.services.logging import log_structured_event
from atesto.services.permissions import Permission, has_permission
from atesto.services.results import GENERIC_SERVER_ERROR, ActionError, ActionResult
from atesto.services.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)

ASSIGNABLE_ROLES = {Role.USER.value, Role.MANAGER.value}


def user_to_dict(user) -> Dict[str, Any]:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.display_name,
        "role": user.role,
        "is_active": user.is_active,
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


def list_users(actor) -> ActionResult:
    if not has_permission(actor.role, Permission.NOTE_VIEW_ALL):
        return ActionResult.fail(ActionError.FORBIDDEN, "Acesso negado.")
    with UnitOfWork() as uow:
        users: List[Dict[str, Any]] = [user_to_dict(user) for user in uow.users.list_ordered()]
    return ActionResult.ok("Usuários carregados.", users=users)


def update_user_role(actor, user_id: int, role: str) -> ActionResult:
    """Apenas o OWNER altera papéis; nunca o próprio nem o de outro OWNER."""
    if not has_permission(actor.role, Permission.USER_MANAGE):
        return ActionResult.fail(ActionError.FORBIDDEN, "Acesso negado. Apenas o proprietário pode alterar papéis.")

    role = (role or "").strip().upper()
    if role not in ASSIGNABLE_ROLES:
        return ActionResult.fail(ActionError.VALIDATION, "Papel inválido.", {"role": "Use USER ou MANAGER."})
    if user_id == actor.id:
        return ActionResult.fail(ActionError.FORBIDDEN, "Você não pode alterar o seu próprio papel.")

    try:
        with UnitOfWork() as uow:
            user = uow.users.get_by_id(user_id)
            if user is None:
                return ActionResult.fail(ActionError.NOT_FOUND, "Usuário não encontrado.")
            if user.role == Role.OWNER.value:
                return ActionResult.fail(ActionError.FORBIDDEN, "O papel de um proprietário não pode ser alterado.")
            previous = user.role
            user.role = role
            uow.commit()
            payload = user_to_dict(user)
    except Exception:
        logger.exception("Erro ao alterar papel do usuário %s", user_id)
        return ActionResult.fail(ActionError.DEPENDENCY, GENERIC_SERVER_ERROR)

    log_structured_event("user_role_changed", user_id=user_id, actor_id=actor.id, previous=previous, role=role)
    return ActionResult.ok("Papel atualizado com sucesso.", user=payload)
