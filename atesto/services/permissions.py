"""
Tabela de permissões por papel.
"""

from enum import Enum
from typing import Dict, FrozenSet

from atesto.models import Role


class Permission(str, Enum):
    NOTE_CREATE = "NOTE_CREATE"
    NOTE_READ = "NOTE_READ"
    NOTE_UPDATE = "NOTE_UPDATE"
    NOTE_ATTEST_ANY = "NOTE_ATTEST_ANY"
    NOTE_REVERT = "NOTE_REVERT"
    NOTE_DELETE_PENDING = "NOTE_DELETE_PENDING"
    NOTE_VIEW_ALL = "NOTE_VIEW_ALL"
    TRASH_MANAGE = "TRASH_MANAGE"
    SETTINGS_MANAGE = "SETTINGS_MANAGE"
    USER_MANAGE = "USER_MANAGE"


_USER_PERMISSIONS = frozenset(
    {
        Permission.NOTE_CREATE,
        Permission.NOTE_READ,
        Permission.NOTE_UPDATE,
        # Apenas para notas criadas pelo próprio usuário (verificado no serviço)
        Permission.NOTE_DELETE_PENDING,
    }
)

_MANAGER_PERMISSIONS = _USER_PERMISSIONS | {
    Permission.NOTE_ATTEST_ANY,
    Permission.NOTE_REVERT,
    Permission.NOTE_VIEW_ALL,
    Permission.TRASH_MANAGE,
    Permission.SETTINGS_MANAGE,
}

ROLE_PERMISSIONS: Dict[Role, FrozenSet[Permission]] = {
    Role.OWNER: frozenset(_MANAGER_PERMISSIONS | {Permission.USER_MANAGE}),
    Role.MANAGER: frozenset(_MANAGER_PERMISSIONS),
    Role.USER: _USER_PERMISSIONS,
}


def has_permission(role, permission: Permission) -> bool:
    try:
        role = Role(role)
    except ValueError:
        return False
    return permission in ROLE_PERMISSIONS.get(role, frozenset())
