from flask import Blueprint, request, jsonify
from flask_login import login_required, current_user

from database import get_db
from extensions import limiter
from models import Supplier
from services.auth_tokens import register_supplier, issue_token, send_verification
from services.errors import NotFoundError
from services.order_status import update_order_status, list_dashboard_orders
from utils.decorators import supplier_required

suppliers_bp = Blueprint('suppliers', __name__, url_prefix='/api')


@suppliers_bp.route("/suppliers", methods=["GET"])
def supplier_list():
    """Public: the supplier picker on the address step."""
    rows = get_db().execute(
        "SELECT id, company_name FROM suppliers ORDER BY company_name"
    ).fetchall()
    return jsonify({
        "success": True,
        "suppliers": [{"id": r['id'], "companyName": r['company_name']} for r in rows],
    })


@suppliers_bp.route("/suppliers/signup", methods=["POST"])
@limiter.limit("5 per minute")
def signup():
    data = request.get_json(silent=True) or {}
    db = get_db()

    user, supplier = register_supplier(
        db,
        data.get('email'),
        data.get('password'),
        company_name=data.get('companyName') or data.get('company_name'),
        contact_phone=data.get('contactPhone') or data.get('contact_phone'),
        address=data.get('address'),
        full_name=data.get('fullName') or data.get('full_name'),
    )
    token = issue_token(db, user.id)
    email_sent = send_verification(db, user)
    return jsonify({
        "success": True,
        "token": token,
        "user": user.to_dict(),
        "supplier": supplier.to_dict(),
        "verificationEmailSent": email_sent,
    }), 201


def _current_supplier(db):
    supplier = Supplier.get_for_user(current_user.id, db=db)
    if not supplier:
        raise NotFoundError("No supplier profile for this account")
    return supplier


@suppliers_bp.route("/supplier/orders", methods=["GET"])
@login_required
@supplier_required
def supplier_orders():
    db = get_db()
    supplier = _current_supplier(db)
    orders = list_dashboard_orders(db, supplier_id=supplier.id, status=request.args.get('status'))
    return jsonify({"success": True, "supplier": supplier.to_dict(), "orders": orders})


@suppliers_bp.route("/supplier/orders/<order_id>/status", methods=["POST"])
@login_required
@supplier_required
def supplier_set_status(order_id):
    data = request.get_json(silent=True) or {}
    order, _ = update_order_status(get_db(), order_id, data.get('status'), current_user)
    return jsonify({"success": True, "order": order.to_dict()})
