"""
Relatórios por colaborador (analistas que cadastram notas).

As contagens consideram apenas notas fora da lixeira.
"""
from __future__ import annotations

import csv
import io
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from atesto.models import Role
from atesto.services.formatting_service import format_brl, format_date_br
from atesto.services.logging import log_structured_event
from atesto.services.permissions import Permission, has_permission
from atesto.services.results import ActionError, ActionResult
from atesto.services.unit_of_work import UnitOfWork

RECENT_WINDOW_DAYS = 30

EXPORT_COLUMNS = [
    "Nome Analista",
    "Email Analista",
    "ID da Nota",
    "Descrição",
    "Status",
    "Valor",
    "Tipo de Nota",
    "Conta do Projeto",
    "Nº da Nota Fiscal",
    "Data de Emissão",
    "CNPJ Prestador",
    "Razão Social Prestador",
    "CNPJ Tomador",
    "Razão Social Tomador",
    "Nome Coordenador",
    "Email Coordenador",
    "Data Atesto",
]


@dataclass
class CollaboratorStats:
    total_users: int = 0
    active_users: int = 0
    total_notes: int = 0
    average_notes_per_user: float = 0.0
    role_distribution: Dict[str, int] = field(
        default_factory=lambda: {role.value: 0 for role in Role}
    )

    def to_dict(self) -> dict:
        return asdict(self)


def list_collaborators(actor, now: Optional[datetime] = None) -> ActionResult:
    """Usuários com o total de notas, as dos últimos 30 dias e a data da mais recente."""
    now = now or datetime.utcnow()
    with UnitOfWork() as uow:
        totals = uow.notes.count_by_user()
        recent = uow.notes.count_by_user(since=now - timedelta(days=RECENT_WINDOW_DAYS))
        last_created = uow.notes.last_created_by_user()
        collaborators = [
            {
                "id": user.id,
                "name": user.display_name,
                "email": user.email,
                "role": user.role,
                "note_count": totals.get(user.id, 0),
                "recent_notes_count": recent.get(user.id, 0),
                "last_note_at": last_created[user.id].isoformat() if user.id in last_created else None,
            }
            for user in uow.users.list_ordered()
        ]
    return ActionResult.ok("Analistas carregados.", collaborators=collaborators)


def get_collaborator_stats(actor) -> ActionResult:
    with UnitOfWork() as uow:
        users = uow.users.list_ordered()
        totals = uow.notes.count_by_user()

    stats = CollaboratorStats(total_users=len(users))
    for user in users:
        count = totals.get(user.id, 0)
        stats.total_notes += count
        if count:
            stats.active_users += 1
        if user.role in stats.role_distribution:
            stats.role_distribution[user.role] += 1
    if stats.total_users:
        stats.average_notes_per_user = round(stats.total_notes / stats.total_users, 1)
    return ActionResult.ok("Estatísticas carregadas.", stats=stats.to_dict())


def _datetime_br(value: Optional[datetime]) -> str:
    return value.strftime("%d/%m/%Y %H:%M") if value else ""


def export_collaborators_csv(actor) -> ActionResult:
    """
    CSV (separador ';') com uma linha por nota de cada analista. Analistas
    sem notas aparecem numa linha com 'N/A'. Restrito a OWNER/MANAGER.
    """
    if not has_permission(actor.role, Permission.NOTE_VIEW_ALL):
        return ActionResult.fail(ActionError.FORBIDDEN, "Acesso não autorizado para exportar dados.")

    output = io.StringIO()
    writer = csv.writer(output, delimiter=";")
    writer.writerow(EXPORT_COLUMNS)

    with UnitOfWork() as uow:
        notes_by_user: Dict[int, List] = {}
        for note in uow.notes.list_active_by_user():
            notes_by_user.setdefault(note.user_id, []).append(note)

        rows = 0
        for user in uow.users.list_ordered():
            user_notes = notes_by_user.get(user.id)
            if not user_notes:
                writer.writerow([user.display_name, user.email, "N/A", "N/A", "N/A"] + [""] * 12)
                rows += 1
                continue
            for note in user_notes:
                writer.writerow([
                    user.display_name,
                    user.email,
                    note.id,
                    note.description,
                    note.status,
                    format_brl(note.amount),
                    note.invoice_type,
                    note.project_account_number,
                    note.note_number or "",
                    format_date_br(note.issue_date),
                    note.provider_document or "",
                    note.provider_name or "",
                    note.client_document or "",
                    note.client_name or "",
                    note.coordinator_name,
                    note.coordinator_email,
                    _datetime_br(note.attested_at),
                ])
                rows += 1

    csv_data = output.getvalue()
    output.close()
    log_structured_event("collaborators_exported", user_id=actor.id, rows=rows)
    return ActionResult.ok("Exportação gerada.", csv=csv_data, filename="analistas_notas.csv")
