# tests/conftest.py
"""
Configuração global do pytest.

Cada teste recebe uma aplicação nova com SQLite em memória, armazenamento de
arquivos em diretório temporário e um mailer que apenas registra as mensagens.
"""

import os
import sys

import pytest

project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if project_root not in sys.path:
    sys.path.insert(0, project_root)

from atesto import create_app  # noqa: E402
from atesto.extensions import db  # noqa: E402
from atesto.middleware.auth import Actor  # noqa: E402
from atesto.models import Role, User  # noqa: E402
from atesto.services.dto import NewNoteRequest, UploadedFile  # noqa: E402
from atesto.services.email_service import EXTENSION_KEY as MAILER_KEY, EmailDeliveryError, Mailer  # noqa: E402
from config import TestConfig  # noqa: E402

PDF_BYTES = b"%PDF-1.4\n% nota de teste\n"


class RecordingMailer(Mailer):
    """Guarda as mensagens em memória; ``fail=True`` simula SMTP fora do ar."""

    def __init__(self):
        self.sent = []
        self.fail = False

    def send(self, message):
        if self.fail:
            raise EmailDeliveryError("falha simulada")
        self.sent.append(message)

    def subjects(self):
        return [message.subject for message in self.sent]


@pytest.fixture
def app(tmp_path):
    class _Config(TestConfig):
        LOG_DIR = str(tmp_path / "logs")
        BLOB_STORAGE_PATH = str(tmp_path / "blobs")
        GEMINI_API_KEY = ""

    app = create_app(_Config)
    app.extensions[MAILER_KEY] = RecordingMailer()

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def mailer(app):
    return app.extensions[MAILER_KEY]


def make_actor(email, name, role=Role.USER):
    user = User(email=email, name=name, role=role.value)
    db.session.add(user)
    db.session.commit()
    return Actor.from_user(user)


@pytest.fixture
def requester(app):
    return make_actor("solicitante@uni.br", "Maria Solicitante")


@pytest.fixture
def other_user(app):
    return make_actor("outro@uni.br", "Pedro Outro")


@pytest.fixture
def coordinator(app):
    return make_actor("ana.coord@uni.br", "Ana Coordenadora")


@pytest.fixture
def manager(app):
    return make_actor("gestor@uni.br", "Carla Gestora", Role.MANAGER)


@pytest.fixture
def owner(app):
    return make_actor("dono@uni.br", "Otávio Dono", Role.OWNER)


def pdf_file(name="nota.pdf"):
    return UploadedFile(filename=name, mimetype="application/pdf", data=PDF_BYTES)


def build_note_request(**overrides):
    values = dict(
        invoice_type="SERVICE",
        project_title="Projeto Alfa",
        project_account_number="1234567",
        coordinator_name="Ana Coordenadora",
        coordinator_email="ana.coord@uni.br",
        description="Consultoria em TI",
        note_number="100",
        amount_raw="1.234,56",
        file=pdf_file(),
    )
    values.update(overrides)
    return NewNoteRequest(**values)


@pytest.fixture
def create_pending_note(requester):
    """Cria uma nota pendente pelo solicitante e devolve o id."""
    from atesto.services import note_service

    def _create(actor=None, **overrides):
        result = note_service.create_note(actor or requester, build_note_request(**overrides))
        assert result.success, result.message
        return result.payload["note"]["id"]

    return _create


def auth_headers(actor):
    return {"X-Forwarded-Email": actor.email, "X-Forwarded-User": actor.name}
