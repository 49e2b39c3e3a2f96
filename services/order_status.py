"""
Order status management for the admin and supplier dashboards.
"""
import logging

from constants import (
    ORDER_STATUSES, ORDER_STATUS_PENDING, ORDER_STATUS_APPROVED, ORDER_STATUS_TRANSITIONS,
    PAYMENT_STATUS_PAID,
    SUPPLIER_STATUS_TRANSITIONS, NOTIFY_CONFIRMATION, NOTIFY_SUPPLIER,
)
from models import Order, Supplier
from services.errors import ValidationError, NotFoundError, PermissionDenied, ConflictError
from services.notifications import dispatch_notification
from services.pricing import money
from utils.timestamps import utc_now

logger = logging.getLogger(__name__)

MAX_ADMIN_NOTES = 2000


def _allowed_transitions(db, order, actor):
    if actor.is_admin:
        return ORDER_STATUS_TRANSITIONS
    if actor.is_supplier:
        supplier = Supplier.get_for_user(actor.id, db=db)
        if not supplier or order.supplier_id != supplier.id:
            raise PermissionDenied("Order is not assigned to you")
        return SUPPLIER_STATUS_TRANSITIONS
    raise PermissionDenied("Admin access required")


def update_order_status(db, order_id, status, actor, admin_notes=None):
    """
    Move an order to `status`.

    Returns (order, notification) where notification is the confirmation
    send result when this call approved the order, else None.
    """
    status = (status or "").strip().lower()
    if status not in ORDER_STATUSES:
        raise ValidationError("Invalid status")

    if admin_notes is not None:
        if not actor.is_admin:
            raise PermissionDenied("Only admins can write notes")
        admin_notes = str(admin_notes).strip()[:MAX_ADMIN_NOTES] or None

    order = Order.get(order_id, db=db)
    if not order:
        raise NotFoundError("Order not found")

    transitions = _allowed_transitions(db, order, actor)

    if status == order.status:
        if admin_notes:
            db.execute(
                "UPDATE orders SET admin_notes = %s, updated_at = %s WHERE id = %s",
                (admin_notes, utc_now(), order.id)
            )
            db.commit()
        return Order.get(order.id, db=db), None

    if status not in transitions.get(order.status, ()):
        raise ConflictError(f"Cannot move order from {order.status} to {status}")

    # Conditional on the status we validated against
    cur = db.execute(
        """
        UPDATE orders
           SET status = %s,
               admin_notes = COALESCE(%s, admin_notes),
               updated_at = %s
         WHERE id = %s AND status = %s
        """,
        (status, admin_notes, utc_now(), order.id, order.status)
    )
    db.commit()

    if cur.rowcount != 1:
        current = Order.get(order.id, db=db)
        if current and current.status == status:
            return current, None
        raise ConflictError("Order was changed by someone else. Reload and try again.")

    logger.info(f"[Orders] Order {order.id} status {order.status} -> {status} by {actor.email}")

    notification = None
    if status == ORDER_STATUS_APPROVED:
        notification = dispatch_notification(db, order.id, NOTIFY_CONFIRMATION)

    return Order.get(order.id, db=db), notification


def assign_supplier(db, order_id, supplier_id):
    """Admin: (re)assign the producing supplier and alert them."""
    order = Order.get(order_id, db=db)
    if not order:
        raise NotFoundError("Order not found")
    supplier = Supplier.get(supplier_id, db=db) if supplier_id else None
    if not supplier:
        raise NotFoundError("Supplier not found")

    if order.supplier_id == supplier.id:
        return order, None

    db.execute(
        "UPDATE orders SET supplier_id = %s, updated_at = %s WHERE id = %s",
        (supplier.id, utc_now(), order.id)
    )
    db.commit()
    logger.info(f"[Orders] Order {order.id} assigned to supplier {supplier.id}")

    notification = dispatch_notification(db, order.id, NOTIFY_SUPPLIER)
    return Order.get(order.id, db=db), notification


def list_dashboard_orders(db, supplier_id=None, status=None, payment_status=None):
    """
    Orders with customer email and design preview, newest first.
    Returns plain dicts ready for JSON.
    """
    clauses, params = [], []
    if supplier_id:
        clauses.append("o.supplier_id = %s")
        params.append(supplier_id)
    if status:
        clauses.append("o.status = %s")
        params.append(status)
    if payment_status:
        clauses.append("o.payment_status = %s")
        params.append(payment_status)
    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

    rows = db.execute(
        f"""
        SELECT o.*,
               p.email AS customer_email,
               p.full_name AS customer_name,
               d.image_url AS design_image_url,
               d.wristband_type AS wristband_type,
               d.wristband_color AS wristband_color,
               d.custom_text AS custom_text
          FROM orders o
          LEFT JOIN profiles p ON p.id = o.user_id
          LEFT JOIN designs d ON d.id = o.design_id
          {where}
         ORDER BY o.created_at DESC, o.id
        """,
        tuple(params)
    ).fetchall()

    result = []
    for row in rows:
        row = dict(row)
        item = Order.from_row(row).to_dict()
        item.update({
            "customerEmail": row.get('customer_email'),
            "customerName": row.get('customer_name'),
            "design": {
                "imageUrl": row.get('design_image_url'),
                "wristbandType": row.get('wristband_type'),
                "wristbandColor": row.get('wristband_color'),
                "customText": row.get('custom_text'),
            },
        })
        result.append(item)
    return result


def order_stats(db):
    """
    Admin dashboard counters. Revenue counts paid orders only and is
    reported per currency; amounts in different currencies never add up.
    """
    totals = db.execute(
        """
        SELECT COUNT(*) AS total_orders,
               SUM(CASE WHEN status = %s THEN 1 ELSE 0 END) AS pending_orders
          FROM orders
        """,
        (ORDER_STATUS_PENDING,)
    ).fetchone()

    revenue_rows = db.execute(
        """
        SELECT currency, COUNT(*) AS paid_orders, SUM(total_price) AS revenue
          FROM orders
         WHERE payment_status = %s
         GROUP BY currency
        """,
        (PAYMENT_STATUS_PAID,)
    ).fetchall()

    revenue_by_currency = {}
    average_by_currency = {}
    paid_orders = 0
    for row in revenue_rows:
        revenue = money(row['revenue'] or 0)
        revenue_by_currency[row['currency']] = float(revenue)
        average_by_currency[row['currency']] = float(money(revenue / row['paid_orders']))
        paid_orders += row['paid_orders']

    return {
        "totalOrders": totals['total_orders'] or 0,
        "pendingOrders": totals['pending_orders'] or 0,
        "paidOrders": paid_orders,
        "revenueByCurrency": revenue_by_currency,
        "averageOrderValueByCurrency": average_by_currency,
    }
