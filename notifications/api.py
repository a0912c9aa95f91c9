"""HTTP surface for the notification triggers.

Every route answers 202 as soon as the background dispatch has been queued.
"""
from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

from . import triggers
from .errors import InvalidTrigger, TemplateNotFound

LOGGER = logging.getLogger(__name__)

bp = Blueprint("notifications", __name__, url_prefix="/api")


@bp.errorhandler(InvalidTrigger)
def _invalid_trigger(exc):
    return jsonify({"error": str(exc)}), 400


@bp.errorhandler(TemplateNotFound)
def _template_not_found(exc):
    return jsonify({"error": str(exc), "templateId": exc.template_id}), 404


def _template_id(payload):
    # Older screens post snake_case, newer ones camelCase.
    return payload.get("templateId", payload.get("template_id"))


@bp.post("/weeks/<week_code>/publish")
def publish_week(week_code):
    payload = request.get_json(silent=True) or {}
    status, ack = triggers.publish_week(week_code, _template_id(payload))
    return jsonify({**ack.to_dict(), "weekStatus": status}), 202


@bp.post("/weeks/<week_code>/notify")
def notify_week(week_code):
    payload = request.get_json(silent=True) or {}
    ack = triggers.notify_week(week_code, _template_id(payload), payload.get("channel"))
    return jsonify(ack.to_dict()), 202


@bp.post("/notifications/manual-send")
def manual_send():
    payload = request.get_json(silent=True) or {}
    recipient_ids = payload.get("employeeIds")
    if not isinstance(recipient_ids, list):
        return jsonify({"error": "employeeIds must be a list"}), 400
    ack = triggers.notify_recipients(
        recipient_ids,
        _template_id(payload),
        payload.get("channel"),
        payload.get("week_code"),
    )
    return jsonify(ack.to_dict()), 202
