"""
Order Aggregator.

Creates priced order rows from saved designs and assembles a cart of
orders into one Stripe Checkout Session:

    entries -> (design) -> order rows -> merge shipping + express
            -> one checkout session -> session id on every order

Every step commits on its own. A failure part way through surfaces the
first error and leaves already-created orders pending; a retry of the
same cart passes their ids back in and the merge step is idempotent.
"""
import logging
from decimal import Decimal

from constants import (
    ORDER_STATUS_PENDING, PAYMENT_STATUS_PENDING, CHECKOUT_OPEN_PAYMENT_STATUSES,
    EXTRA_EXPRESS, MAX_ORDERS_PER_CHECKOUT, SHIPPING_ADDRESS_FIELDS,
    SHIPPING_ADDRESS_REQUIRED_FIELDS,
)
from database import placeholders
from models import Order, Design, Supplier, new_id
from services.errors import ValidationError, NotFoundError, PermissionDenied, ConflictError
from services.pricing import (
    parse_order_config, quote_for_config, load_pricing_rates, compute_total, money, to_decimal,
)
from services.designs import create_design, get_owned_design
from services.payments import retire_previous_sessions
from services.stripe_checkout import create_checkout_session

logger = logging.getLogger(__name__)


def validate_shipping_address(address):
    if not isinstance(address, dict):
        raise ValidationError("Shipping address is required")

    cleaned = {}
    for key in SHIPPING_ADDRESS_FIELDS:
        value = address.get(key)
        if isinstance(value, str):
            value = value.strip()
        if value:
            cleaned[key] = str(value)

    missing = [k for k in SHIPPING_ADDRESS_REQUIRED_FIELDS if not cleaned.get(k)]
    if missing:
        raise ValidationError(f"Shipping address is missing: {', '.join(missing)}", missing=missing)
    return cleaned


def get_supplier_or_404(db, supplier_id):
    if not supplier_id:
        raise ValidationError("Please select a supplier")
    supplier = Supplier.get(supplier_id, db=db)
    if not supplier:
        raise NotFoundError("Supplier not found")
    return supplier


def get_owned_order(db, user, order_id):
    order = Order.get(order_id, db=db)
    if not order:
        raise NotFoundError("Order not found")
    if order.user_id != user.id and not user.is_admin:
        raise PermissionDenied("Not your order")
    return order


def list_orders_for_user(db, user):
    rows = db.execute(
        "SELECT * FROM orders WHERE user_id = %s ORDER BY created_at DESC, id",
        (user.id,)
    ).fetchall()
    return [Order.from_row(r) for r in rows]


def create_order(db, user, payload, supplier_id=None, commit=True):
    """
    Create one pending order for a saved design with server-side pricing.

    Client-supplied prices are ignored. Express delivery is not priced
    here; it is merged per checkout.
    """
    design_id = payload.get('design_id') or payload.get('designId')
    if not design_id:
        raise ValidationError("Missing design_id")
    design = get_owned_design(db, user, design_id)

    if supplier_id:
        get_supplier_or_404(db, supplier_id)

    payload = dict(payload)
    if not (payload.get('wristband_type') or payload.get('wristbandType')):
        payload['wristband_type'] = design.wristband_type

    config = parse_order_config(payload)
    quote = quote_for_config(db, config, express_delivery=False)

    order = Order(
        id=new_id(),
        user_id=user.id,
        design_id=design.id,
        supplier_id=supplier_id,
        quantity=quote.quantity,
        unit_price=quote.unit_price,
        base_price=quote.base_price,
        total_price=quote.total_price,
        currency=quote.currency,
        print_type=quote.print_type,
        has_trademark=config['has_trademark'],
        trademark_text=config['trademark_text'] or None,
        has_secure_guests=config['has_qr_code'],
        extra_charges=dict(quote.extra_charges),
        status=ORDER_STATUS_PENDING,
        payment_status=PAYMENT_STATUS_PENDING,
    )
    order.save(db=db, commit=commit)
    logger.info(
        f"[Orders] Created order {order.id} for user {user.id}: "
        f"{quote.quantity} x {quote.unit_price} {quote.currency} = {quote.total_price}"
    )
    return order


def _reuse_order(db, user, order_id):
    order = get_owned_order(db, user, order_id)
    if order.user_id != user.id:
        raise PermissionDenied("Not your order")
    if order.status != ORDER_STATUS_PENDING or order.payment_status not in CHECKOUT_OPEN_PAYMENT_STATUSES:
        raise ConflictError(f"Order {order.id} can no longer be checked out")
    return order


def merge_checkout_extras(db, order, shipping_address, express_delivery, supplier_id):
    """
    Fold the checkout-level choices into one order and recompute its total.

    The express key is overwritten rather than added to, so running this
    twice for the same order gives the same total.
    """
    current = Order.get(order.id, db=db)
    extras = dict(current.extra_charges or {})

    express_fee = Decimal("0")
    if express_delivery:
        design = Design.get(current.design_id, db=db) if current.design_id else None
        wristband_type = design.wristband_type if design else None
        if wristband_type:
            rates = load_pricing_rates(db, wristband_type, current.currency)
            express_fee = rates.express_delivery_fee
        else:
            raise ValidationError(f"Order {current.id} has no design to price express delivery")
    extras[EXTRA_EXPRESS] = money(express_fee)

    extras = {k: money(v) for k, v in extras.items()}
    current.extra_charges = extras
    current.total_price = compute_total(to_decimal(current.unit_price), current.quantity, extras)
    current.shipping_address = shipping_address
    current.supplier_id = supplier_id
    current.save(db=db)
    return current


def checkout_cart(db, user, entries, shipping_address, supplier_id, express_delivery, origin):
    """
    Turn a cart into orders and one Stripe Checkout Session.

    Each entry either references an existing pending order ('order_id')
    or carries an order configuration plus a design ('design_id', or
    image data to create one).

    Returns dict(url, session_id, order_ids).
    """
    shipping_address = validate_shipping_address(shipping_address)
    get_supplier_or_404(db, supplier_id)

    if not isinstance(entries, list) or not entries:
        raise ValidationError("Cart is empty")
    if len(entries) > MAX_ORDERS_PER_CHECKOUT:
        raise ValidationError(f"At most {MAX_ORDERS_PER_CHECKOUT} designs per checkout")

    orders = []
    for entry in entries:
        if not isinstance(entry, dict):
            raise ValidationError("Cart entries must be objects")

        order_id = entry.get('order_id') or entry.get('orderId')
        if order_id:
            orders.append(_reuse_order(db, user, order_id))
            continue

        if not (entry.get('design_id') or entry.get('designId')):
            design = create_design(db, user, entry)
            entry = dict(entry, design_id=design.id)
        orders.append(create_order(db, user, entry, supplier_id=supplier_id))

    if len({o.id for o in orders}) != len(orders):
        raise ValidationError("Cart contains the same order twice")

    retire_previous_sessions(db, user, orders)

    orders = [
        merge_checkout_extras(db, o, shipping_address, express_delivery, supplier_id)
        for o in orders
    ]

    session = create_checkout_session(user, orders, origin)

    order_ids = [o.id for o in orders]
    db.execute(
        f"UPDATE orders SET stripe_session_id = %s WHERE id IN ({placeholders(order_ids)})",
        (session['id'], *order_ids)
    )
    db.commit()

    logger.info(f"[Checkout] Session {session['id']} created for orders {order_ids}")
    return {"url": session.get('url'), "session_id": session['id'], "order_ids": order_ids}
