from flask import Blueprint, request, jsonify, current_app
from flask_login import login_required, current_user

from database import get_db
from services.orders import checkout_cart
from services.payments import reconcile_checkout_session

checkout_bp = Blueprint('checkout', __name__, url_prefix='/api')


def _cart_entries(data):
    entries = data.get('items') or data.get('entries')
    if entries is None and data.get('orderIds'):
        entries = [{"order_id": order_id} for order_id in data['orderIds']]
    return entries


@checkout_bp.route("/checkout", methods=["POST"])
@login_required
def create_checkout():
    """
    Body: items (order configs with designId or imageData, or orderId),
    shippingAddress, supplierId, expressDelivery.
    """
    data = request.get_json(silent=True) or {}

    result = checkout_cart(
        get_db(),
        current_user,
        _cart_entries(data),
        shipping_address=data.get('shippingAddress') or data.get('shipping_address'),
        supplier_id=data.get('supplierId') or data.get('supplier_id'),
        express_delivery=bool(data.get('expressDelivery') or data.get('express_delivery')),
        origin=request.headers.get('Origin'),
    )

    current_app.logger.info(f"[Checkout] User {current_user.id} -> session {result['session_id']}")
    return jsonify({
        "success": True,
        "url": result["url"],
        "sessionId": result["session_id"],
        "orderIds": result["order_ids"],
    })


@checkout_bp.route("/payments/status", methods=["POST"])
@login_required
def payment_status():
    """Called by the payment-success page with the session id from the return URL."""
    data = request.get_json(silent=True) or {}
    session_id = data.get('sessionId') or data.get('session_id') or request.args.get('session_id')

    result = reconcile_checkout_session(get_db(), session_id, user=current_user)
    return jsonify({
        "success": True,
        "paymentStatus": result["payment_status"],
        "orders": [o.to_dict() for o in result["orders"]],
    })
