from flask import Blueprint, request, jsonify
from flask_login import login_required, current_user

from database import get_db
from extensions import limiter
from services.orders import create_order, list_orders_for_user, get_owned_order
from services.pricing import parse_order_config, quote_for_config

orders_bp = Blueprint('orders', __name__, url_prefix='/api')


@orders_bp.route("/pricing", methods=["POST"])
@limiter.limit("60 per minute")
def pricing():
    """Public price quote for the design studio."""
    config = parse_order_config(request.get_json(silent=True) or {})
    quote = quote_for_config(get_db(), config)
    return jsonify({"success": True, **quote.to_dict()})


@orders_bp.route("/orders", methods=["GET"])
@login_required
def index():
    orders = list_orders_for_user(get_db(), current_user)
    return jsonify({"success": True, "orders": [o.to_dict() for o in orders]})


@orders_bp.route("/orders", methods=["POST"])
@login_required
def create():
    data = request.get_json(silent=True) or {}
    order = create_order(get_db(), current_user, data, supplier_id=data.get('supplierId') or data.get('supplier_id'))
    return jsonify({"success": True, "order": order.to_dict()}), 201


@orders_bp.route("/orders/<order_id>", methods=["GET"])
@login_required
def show(order_id):
    order = get_owned_order(get_db(), current_user, order_id)
    return jsonify({"success": True, "order": order.to_dict()})
