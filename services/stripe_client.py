"""
Stripe setup and the small read-side calls shared by checkout,
reconciliation and the webhook.
"""
import logging

import stripe

from config import IS_PRODUCTION, IS_STAGING, APP_STAGE
from services.errors import UpstreamError

logger = logging.getLogger(__name__)


def init_stripe(app):
    """
    Set the Stripe API key once at app start.

    Refuses a live key outside production and a test key in production.
    """
    secret_key = app.config.get('STRIPE_SECRET_KEY')

    if not secret_key:
        if IS_PRODUCTION or IS_STAGING:
            raise RuntimeError("Missing STRIPE_SECRET_KEY in production/staging.")
        logger.warning("[Stripe] No STRIPE_SECRET_KEY; checkout and reconciliation will fail until one is set.")
        return

    live = secret_key.startswith('sk_live_')
    if live != IS_PRODUCTION:
        if live:
            raise RuntimeError(f"SAFETY RAIL: Attempted to use LIVE Stripe key in '{APP_STAGE}' environment.")
        raise RuntimeError("Configuration Error: Using TEST Stripe key in production.")

    stripe.api_key = secret_key
    # Retries are driven by our own idempotency keys and Stripe's webhook redelivery
    stripe.max_network_retries = 0
    logger.info(f"[Stripe] Initialized for stage={APP_STAGE} (live={live})")


def as_dict(obj):
    """StripeObject / dict -> plain dict."""
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    return dict(obj)


def find_customer_id(email):
    """Existing Stripe customer for this email, if any."""
    if not email:
        return None
    customers = stripe.Customer.list(email=email, limit=1)
    data = customers.data if hasattr(customers, "data") else customers.get("data", [])
    if data:
        return data[0]["id"]
    return None


def expire_session(session_id):
    """
    Close an open Checkout Session so it can no longer be paid.

    Raises stripe.StripeError as-is: Stripe refuses when the session
    completed in the meantime, and the caller decides what that means.
    """
    stripe.checkout.Session.expire(session_id)
    logger.info(f"[Stripe] Expired checkout session {session_id}", extra={"session_id": session_id})


def retrieve_session(session_id):
    """Fetch a Checkout Session; UpstreamError when Stripe cannot answer."""
    try:
        return as_dict(stripe.checkout.Session.retrieve(session_id))
    except stripe.StripeError as e:
        logger.error(f"[Stripe] Could not retrieve session {session_id}: {e}")
        raise UpstreamError("Could not verify payment with the payment provider")
