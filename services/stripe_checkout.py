"""
Stripe Checkout Session creation for a cart of wristband orders.

One session spans every order of the cart: one line item per order
priced at the order total, with the order ids in the session metadata so
the reconciler and the webhook can find them again.

The idempotency key is a hash of the normalized session parameters, the
orders' payment states and their previous session ids: a double-submitted
cart gets the same session back, while a cart checked out again after
its earlier session was expired or failed gets a new one.
"""
import json
import hashlib
import logging

import stripe

from config import (
    STRIPE_PRODUCT_NAME, STRIPE_SUCCESS_PATH, STRIPE_CANCEL_PATH, SITE_URL, IS_SECURE_ENV,
)
from services.errors import ValidationError, UpstreamError
from services.pricing import to_minor_units
from services.stripe_client import as_dict, find_customer_id

logger = logging.getLogger(__name__)


def normalize_checkout_params(params: dict) -> dict:
    """Recursively sort keys for a stable hash."""
    def _normalize(obj):
        if isinstance(obj, dict):
            return {k: _normalize(v) for k, v in sorted(obj.items())}
        elif isinstance(obj, list):
            return [_normalize(item) for item in obj]
        return obj

    return _normalize(params)


def compute_params_hash(params: dict) -> str:
    normalized = normalize_checkout_params(params)
    json_str = json.dumps(normalized, separators=(',', ':'), sort_keys=True, default=str)
    return hashlib.sha256(json_str.encode('utf-8')).hexdigest()


def resolve_return_origin(origin):
    """
    Storefront origin for success/cancel redirects.

    Outside dev only SITE_URL is trusted; locally the caller's Origin
    header is used so any dev port works.
    """
    if IS_SECURE_ENV or not origin:
        return SITE_URL
    origin = origin.rstrip("/")
    if not origin.startswith(("http://", "https://")):
        return SITE_URL
    return origin


def build_line_items(orders):
    currencies = {o.currency for o in orders}
    if len(currencies) != 1:
        raise ValidationError("All designs in one checkout must use the same currency")

    line_items = []
    for index, order in enumerate(orders, start=1):
        name = STRIPE_PRODUCT_NAME if len(orders) == 1 else f"{STRIPE_PRODUCT_NAME} - Design {index}"
        line_items.append({
            "price_data": {
                "currency": order.currency.lower(),
                "product_data": {
                    "name": name,
                    "description": f"{order.quantity} custom wristbands",
                },
                "unit_amount": to_minor_units(order.total_price),
            },
            "quantity": 1,
        })
    return line_items


def create_checkout_session(user, orders, origin=None):
    """
    Create the Stripe Checkout Session for already-priced orders.

    Returns the session as a dict (at least 'id' and 'url').
    Raises UpstreamError when Stripe rejects the request.
    """
    if not orders:
        raise ValidationError("No orders to check out")

    return_origin = resolve_return_origin(origin)
    order_ids = [o.id for o in orders]

    params = {
        "line_items": build_line_items(orders),
        "mode": "payment",
        "success_url": f"{return_origin}{STRIPE_SUCCESS_PATH}",
        "cancel_url": f"{return_origin}{STRIPE_CANCEL_PATH}",
        "client_reference_id": str(user.id),
        "metadata": {
            "order_ids": ",".join(order_ids),
            "user_id": str(user.id),
        },
    }

    try:
        customer_id = find_customer_id(user.email)
        if customer_id:
            params["customer"] = customer_id
        else:
            params["customer_email"] = user.email

        key_source = dict(
            params,
            payment_states=[o.payment_status for o in orders],
            previous_sessions=[o.stripe_session_id for o in orders],
        )
        idempotency_key = f"wristband_checkout_{compute_params_hash(key_source)}"

        session = stripe.checkout.Session.create(**params, idempotency_key=idempotency_key)
    except stripe.StripeError as e:
        logger.error(f"[Checkout] Stripe session creation failed for orders {order_ids}: {e}")
        raise UpstreamError("Payment provider error. Please try again.")

    session = as_dict(session)
    logger.info(f"[Checkout] Stripe session {session.get('id')} for {len(orders)} order(s)")
    return session
