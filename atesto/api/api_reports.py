"""
API de relatórios dos colaboradores (analistas).

GET /api/reports/collaborators             contagem de notas por usuário
GET /api/reports/collaborators/stats       totais e distribuição de papéis
GET /api/reports/collaborators/export.csv  notas por analista (OWNER/MANAGER)
"""

from __future__ import annotations

from flask import Blueprint, Response

from atesto.api.responses import action_response
from atesto.middleware.auth import current_actor, login_required
from atesto.services import reporting_service

api_reports_bp = Blueprint("api_reports", __name__)


@api_reports_bp.route("/collaborators", methods=["GET"])
@login_required
def api_list_collaborators():
    return action_response(reporting_service.list_collaborators(current_actor()))


@api_reports_bp.route("/collaborators/stats", methods=["GET"])
@login_required
def api_collaborator_stats():
    return action_response(reporting_service.get_collaborator_stats(current_actor()))


@api_reports_bp.route("/collaborators/export.csv", methods=["GET"])
@login_required
def api_export_collaborators():
    result = reporting_service.export_collaborators_csv(current_actor())
    if not result.success:
        return action_response(result)
    return Response(
        result.payload["csv"],
        mimetype="text/csv",
        headers={"Content-Disposition": f"attachment; filename={result.payload['filename']}"},
    )
