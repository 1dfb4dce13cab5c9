"""
Resultado uniforme das ações expostas à API.

Nenhuma exceção atravessa a fronteira da ação: os serviços devolvem sempre um
ActionResult com success/message, e a camada HTTP traduz o tipo de erro em
status code.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class ActionError(str, Enum):
    VALIDATION = "validation"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    INVALID_STATE = "invalid_state"
    CONFLICT = "conflict"
    DEPENDENCY = "dependency"


HTTP_STATUS_BY_ERROR = {
    ActionError.VALIDATION: 400,
    ActionError.FORBIDDEN: 403,
    ActionError.NOT_FOUND: 404,
    ActionError.INVALID_STATE: 409,
    ActionError.CONFLICT: 409,
    ActionError.DEPENDENCY: 500,
}

GENERIC_SERVER_ERROR = "Ocorreu um erro no servidor. Tente novamente."


@dataclass
class ActionResult:
    success: bool
    message: str
    errors: Optional[Dict[str, str]] = None
    payload: Optional[Dict[str, Any]] = None
    error: Optional[ActionError] = None

    @classmethod
    def ok(cls, message: str, **payload: Any) -> "ActionResult":
        return cls(True, message, payload=payload or None)

    @classmethod
    def fail(
        cls,
        error: ActionError,
        message: str,
        errors: Optional[Dict[str, str]] = None,
    ) -> "ActionResult":
        return cls(False, message, errors=errors, error=error)

    @property
    def http_status(self) -> int:
        if self.success:
            return 200
        return HTTP_STATUS_BY_ERROR.get(self.error, 400)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"success": self.success, "message": self.message}
        if self.errors:
            data["errors"] = self.errors
        if self.payload is not None:
            data["payload"] = self.payload
        return data
