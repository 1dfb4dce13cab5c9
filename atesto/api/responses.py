"""Envelope JSON comum às APIs: {success, message, errors?, payload?}."""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from flask import jsonify, request

from atesto.services.results import ActionResult


def action_response(result: ActionResult):
    return jsonify(result.to_dict()), result.http_status


def error_response(message: str, status: int, errors: Optional[Dict[str, str]] = None):
    body: Dict[str, Any] = {"success": False, "message": message}
    if errors:
        body["errors"] = errors
    return jsonify(body), status


def ok_response(message: str, **payload: Any):
    return action_response(ActionResult.ok(message, **payload))


def request_data() -> Mapping[str, Any]:
    """Campos do formulário multipart ou, na falta deles, do corpo JSON."""
    if request.form:
        return request.form
    return request.get_json(silent=True) or {}
