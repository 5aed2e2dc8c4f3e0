# Overview: Flask API routes for the notification inbox.

# backend/splitledger/routes/notifications.py
"""
Notification Inbox API Routes

Notifications are written in the same transaction as the bill/split
transition that caused them; these routes only read and mark them.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth
from ..errors import SettlementError
from ..services import notification_service


notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@notifications_bp.get("")
@require_auth
def list_notifications_route():
    """
    Query params:
    - unread: Only unread notifications (default: false)
    - limit: Max results (default 50)
    """
    try:
        unread_only = request.args.get("unread", "false").lower() == "true"
        limit = request.args.get("limit", 50, type=int)
        rows = notification_service.list_notifications(
            g.current_user.id,
            unread_only=unread_only,
            limit=limit,
        )
        return jsonify({"notifications": [n.to_dict() for n in rows]}), 200
    except Exception:
        current_app.logger.exception("Failed to list notifications")
        return jsonify({"error": "Internal server error"}), 500


@notifications_bp.get("/unread-count")
@require_auth
def unread_count_route():
    try:
        return jsonify({"count": notification_service.unread_count(g.current_user.id)}), 200
    except Exception:
        current_app.logger.exception("Failed to count notifications")
        return jsonify({"error": "Internal server error"}), 500


@notifications_bp.post("/<int:notification_id>/read")
@require_auth
def mark_read_route(notification_id: int):
    try:
        row = notification_service.mark_read(notification_id, g.current_user.id)
        return jsonify({"notification": row.to_dict()}), 200

    except SettlementError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to mark notification read")
        return jsonify({"error": "Internal server error"}), 500


@notifications_bp.post("/read-all")
@require_auth
def mark_all_read_route():
    try:
        updated = notification_service.mark_all_read(g.current_user.id)
        return jsonify({"updated": updated}), 200
    except Exception:
        current_app.logger.exception("Failed to mark notifications read")
        return jsonify({"error": "Internal server error"}), 500
