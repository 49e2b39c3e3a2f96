from flask import Blueprint, request, jsonify, current_app
from flask_login import login_required, current_user

from database import get_db
from services.errors import PermissionDenied
from services.order_status import update_order_status, assign_supplier, list_dashboard_orders, order_stats

admin_bp = Blueprint('admin', __name__, url_prefix='/api/admin')


@admin_bp.before_request
@login_required
def require_admin():
    if not current_user.is_admin:
        raise PermissionDenied("Unauthorized. Admin access required.")


@admin_bp.route("/orders")
def order_list():
    orders = list_dashboard_orders(
        get_db(),
        status=request.args.get('status'),
        payment_status=request.args.get('paymentStatus'),
    )
    return jsonify({"success": True, "orders": orders})


@admin_bp.route("/stats")
def stats():
    return jsonify({"success": True, **order_stats(get_db())})


@admin_bp.route("/orders/<order_id>/status", methods=["POST"])
def set_status(order_id):
    data = request.get_json(silent=True) or {}
    order, notification = update_order_status(
        get_db(),
        order_id,
        data.get('status'),
        current_user,
        admin_notes=data.get('adminNotes', data.get('admin_notes')),
    )
    current_app.logger.info(f"[Admin] Order {order_id} status set to {order.status} by {current_user.email}")
    return jsonify({
        "success": True,
        "order": order.to_dict(),
        "notification": notification[2] if notification else None,
    })


@admin_bp.route("/orders/<order_id>/supplier", methods=["POST"])
def set_supplier(order_id):
    data = request.get_json(silent=True) or {}
    order, notification = assign_supplier(get_db(), order_id, data.get('supplierId') or data.get('supplier_id'))
    return jsonify({
        "success": True,
        "order": order.to_dict(),
        "notification": notification[2] if notification else None,
    })
