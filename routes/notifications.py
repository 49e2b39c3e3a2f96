"""
Explicit notification triggers (admin dashboard "resend" buttons).

Payment reconciliation and status changes send their own emails; these
endpoints exist for re-sends.
"""
from flask import Blueprint, request, jsonify

from constants import NOTIFY_CONFIRMATION, NOTIFY_ADMIN, NOTIFY_SUPPLIER
from database import get_db
from services.errors import ValidationError
from services.notifications import dispatch_notification
from utils.decorators import admin_required

notifications_bp = Blueprint('notifications', __name__, url_prefix='/api/notifications')


def _send(kind):
    data = request.get_json(silent=True) or {}
    order_id = data.get('orderId') or data.get('order_id')
    if not order_id:
        raise ValidationError("Missing orderId")

    success, error, outcome = dispatch_notification(get_db(), order_id, kind)
    status_code = 200 if success or outcome == "skipped" else 502
    return jsonify({"success": success, "outcome": outcome, "error": error}), status_code


@notifications_bp.route("/order-confirmation", methods=["POST"])
@admin_required
def order_confirmation():
    return _send(NOTIFY_CONFIRMATION)


@notifications_bp.route("/admin", methods=["POST"])
@admin_required
def admin_notification():
    return _send(NOTIFY_ADMIN)


@notifications_bp.route("/supplier", methods=["POST"])
@admin_required
def supplier_notification():
    return _send(NOTIFY_SUPPLIER)
