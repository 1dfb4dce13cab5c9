#!/usr/bin/env python3
"""
Comandos de manutenção do sistema de atesto de notas fiscais.

Uso:
    python manage.py runserver
    python manage.py create-db
    python manage.py check-expirations [--env prod]
    python manage.py send-reminders [--env prod]

As duas rotinas agendadas também estão expostas em /api/cron/*; aqui servem
para o crontab do servidor quando o agendador HTTP não está disponível.
"""

import argparse
import logging
import os
import sys

from sqlalchemy.exc import OperationalError as SAOperationalError
from pymysql.err import OperationalError as MySQLOperationalError

from atesto import create_app
from atesto.extensions import db
from config import DevConfig, ProdConfig

CONFIGS = {"dev": DevConfig, "prod": ProdConfig}

cli_logger = logging.getLogger("manage_cli")


def create_db(app) -> int:
    """Cria as tabelas de todos os modelos registrados."""
    import atesto.models  # noqa: F401

    with app.app_context():
        try:
            db.create_all()
        except (SAOperationalError, MySQLOperationalError) as e:
            cli_logger.error("Banco inacessível: %s", e)
            cli_logger.error(
                "Confira se o MySQL está ativo e se '%s' tem acesso a '%s'.",
                app.config.get("DB_USER"),
                app.config.get("DB_NAME"),
            )
            return 1
    cli_logger.info("Tabelas criadas em %s.", app.config.get("DB_NAME"))
    return 0


def _run_job(app, job) -> int:
    with app.app_context():
        result = job()
    level = logging.INFO if result.success else logging.ERROR
    cli_logger.log(level, result.message, extra={"payload": result.payload})
    return 0 if result.success else 1


def check_expirations(app) -> int:
    from atesto.services import note_service

    return _run_job(app, note_service.mark_expired_notes)


def send_reminders(app) -> int:
    from atesto.services import note_service

    return _run_job(app, note_service.send_due_reminders)


def run_server(app) -> int:
    host = os.environ.get("FLASK_RUN_HOST", "0.0.0.0")
    port = int(os.environ.get("FLASK_RUN_PORT", "5000"))
    app.run(host=host, port=port, debug=app.config.get("DEBUG", False))
    return 0


COMMANDS = {
    "runserver": run_server,
    "create-db": create_db,
    "check-expirations": check_expirations,
    "send-reminders": send_reminders,
}


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Manutenção do atesto de notas fiscais.")
    parser.add_argument("command", choices=list(COMMANDS))
    parser.add_argument(
        "--env",
        choices=list(CONFIGS),
        default=os.environ.get("ATESTO_ENV", "dev"),
        help="Configuração usada (padrão: dev, ou $ATESTO_ENV).",
    )
    args = parser.parse_args(argv)

    app = create_app(CONFIGS[args.env])
    return COMMANDS[args.command](app)


if __name__ == "__main__":
    sys.exit(main())
