"""
Notification Blueprint — the caller's inbox.

Endpoints:
    GET   /api/v1/notifications            — ?unread_only=true&limit=&offset=
    PATCH /api/v1/notifications/<id>/read
    PATCH /api/v1/notifications/read-all
"""

import logging

from flask import Blueprint, g, jsonify, request

from workhub.middleware.jwt_auth import require_auth
from workhub.services.notification import NotificationService
from workhub.utils.helpers import pagination_args

logger = logging.getLogger(__name__)

notification_bp = Blueprint("notification_bp", __name__, url_prefix="/api/v1")


@notification_bp.route("/notifications", methods=["GET"])
@require_auth
def list_notifications():
    unread_only = request.args.get("unread_only", "false").lower() in ("1", "true", "yes")
    limit, offset = pagination_args()
    items, total = NotificationService.list_for_user(
        g.current_user_id, unread_only=unread_only, limit=limit, offset=offset,
    )
    return jsonify({
        "items": [n.to_dict() for n in items],
        "total": total,
        "unread_count": NotificationService.unread_count(g.current_user_id),
    }), 200


@notification_bp.route("/notifications/<int:nid>/read", methods=["PATCH"])
@require_auth
def mark_read(nid):
    notif = NotificationService.mark_read(nid, g.current_user_id)
    return jsonify(notif.to_dict()), 200


@notification_bp.route("/notifications/read-all", methods=["PATCH"])
@require_auth
def mark_all_read():
    count = NotificationService.mark_all_read(g.current_user_id)
    return jsonify({"marked_read": count}), 200
