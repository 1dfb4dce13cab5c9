# tests/test_logging.py
"""
Testes do formatter JSON e dos eventos de auditoria dos serviços.
"""

import json
import logging

from atesto.extensions import JsonFormatter
from atesto.services.logging import EVENTS_LOGGER, log_structured_event


def _record(**extra):
    record = logging.LogRecord("atesto.teste", logging.INFO, __file__, 10, "Nota %s criada", ("abc",), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJsonFormatter:
    def test_campos_basicos_e_extra(self):
        line = JsonFormatter().format(_record(note_id="abc", action="note_created"))
        entry = json.loads(line)

        assert entry["level"] == "INFO"
        assert entry["logger"] == "atesto.teste"
        assert entry["message"] == "Nota abc criada"
        assert entry["timestamp"].endswith("Z")
        assert entry["extra"] == {"note_id": "abc", "action": "note_created"}

    def test_sem_extra(self):
        entry = json.loads(JsonFormatter().format(_record()))
        assert "extra" not in entry
        assert "exc_info" not in entry

    def test_valores_nao_serializaveis_viram_texto(self):
        entry = json.loads(JsonFormatter().format(_record(amount=object)))
        assert "object" in entry["extra"]["amount"]


class TestEventosEstruturados:
    def test_registra_acao_e_omite_campos_nulos(self, caplog):
        caplog.set_level(logging.INFO, logger=EVENTS_LOGGER)

        log_structured_event("note_attested", message="Nota atestada", note_id="abc", user_id=None)

        record = caplog.records[-1]
        assert record.name == EVENTS_LOGGER
        assert record.getMessage() == "Nota atestada"
        assert record.action == "note_attested"
        assert record.note_id == "abc"
        assert not hasattr(record, "user_id")

    def test_nivel_informado(self, caplog):
        caplog.set_level(logging.INFO, logger=EVENTS_LOGGER)
        log_structured_event("email_failed", level="warning")
        assert caplog.records[-1].levelno == logging.WARNING

    def test_campo_reservado_nao_interrompe(self, caplog):
        caplog.set_level(logging.DEBUG, logger=EVENTS_LOGGER)
        # 'module' colide com o atributo do LogRecord: o evento é descartado sem exceção
        log_structured_event("note_created", module="x")
        assert all(getattr(r, "action", None) != "note_created" for r in caplog.records)
