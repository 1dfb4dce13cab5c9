"""
Download dos anexos: liberado para quem pode ver a nota ou com ?token= válido para ela.
"""

from __future__ import annotations

import logging

from flask import Blueprint, request, send_file

from atesto.api.responses import action_response, error_response
from atesto.middleware.auth import current_actor
from atesto.services import note_service
from atesto.services.storage_service import StorageError, get_storage

logger = logging.getLogger(__name__)

api_files_bp = Blueprint("api_files", __name__)


@api_files_bp.route("/<blob_id>", methods=["GET"])
def download_file(blob_id: str):
    access = note_service.authorize_file_download(current_actor(), blob_id, request.args.get("token"))
    if not access.success:
        return action_response(access)

    try:
        stream, blob = get_storage().open(blob_id)
    except StorageError as exc:
        logger.warning("Arquivo %s indisponível: %s", blob_id, exc)
        return error_response("Arquivo não encontrado.", 404)

    return send_file(
        stream,
        mimetype=blob.mime_type,
        download_name=blob.name,
        as_attachment=request.args.get("download") == "1",
    )
