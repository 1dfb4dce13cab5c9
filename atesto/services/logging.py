"""Eventos de auditoria dos serviços no logger ``atesto.events``."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

EVENTS_LOGGER = "atesto.events"

_logger = logging.getLogger(EVENTS_LOGGER)


def log_structured_event(
    action: str,
    *,
    message: Optional[str] = None,
    level: str = "info",
    **fields: Any,
) -> None:
    """Registra ``action`` com os campos informados em ``extra``.

    Campos ``None`` são omitidos. Nunca levanta exceção: uma falha ao
    registrar o evento não pode desfazer uma transição já confirmada.
    """
    payload: Dict[str, Any] = {"action": action}
    payload.update((key, value) for key, value in fields.items() if value is not None)

    levelno = logging.getLevelName(level.upper())
    if not isinstance(levelno, int):
        levelno = logging.INFO

    try:
        _logger.log(levelno, message or "Evento de serviço", extra=payload)
    except Exception:
        _logger.debug("Falha ao registrar evento %s", action, exc_info=True)
