"""
Order notification emails (customer confirmation, admin alert, supplier alert)
and the signup verification email.

Every send returns (success, error_message, outcome) with outcome in
{'sent', 'failed', 'skipped'}. Delivery problems are logged and reported
through the tuple, never raised, so payment reconciliation and status
updates are not undone by a mail outage.
"""
import ssl
import logging
import smtplib
from datetime import timedelta
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart

from flask import render_template

from config import SITE_URL
from constants import (
    NOTIFY_CONFIRMATION, NOTIFY_ADMIN, NOTIFY_SUPPLIER, NOTIFICATION_KINDS,
    CURRENCY_SYMBOLS, PRINT_TYPE_LABELS, ESTIMATED_DELIVERY_DAYS, VERIFICATION_LINK_TTL_HOURS,
)
from models import Order, Design, Supplier, User
from services.errors import NotFoundError, ValidationError
from utils.env import get_env_str, get_env_bool, get_env_int
from utils.redaction import redact_email
from utils.timestamps import utc_now, parse_timestamp

logger = logging.getLogger(__name__)

SMTP_TIMEOUT = 10

OUTCOME_SENT = "sent"
OUTCOME_FAILED = "failed"
OUTCOME_SKIPPED = "skipped"


def _smtp_settings():
    # Read at call time, not import time
    return {
        "host": get_env_str("SMTP_HOST"),
        "port": get_env_int("SMTP_PORT", 587),
        "user": get_env_str("SMTP_USER"),
        "password": (get_env_str("SMTP_PASS", default="") or "").replace(" ", ""),
        "use_tls": get_env_bool("SMTP_USE_TLS", default=True),
        "sender": get_env_str("NOTIFY_EMAIL_FROM", default="EU Wristbands <noreply@euwristbands.com>"),
    }


def send_email(to_email, subject, html_body):
    """
    Send one HTML email over SMTP synchronously.

    Returns:
        tuple: (success: bool, error_message: str | None, outcome: str)
    """
    settings = _smtp_settings()

    if not settings["host"] or not settings["user"]:
        logger.warning(f"[Notifications] SMTP not configured. Skipping email to {redact_email(to_email)}.")
        return (False, "SMTP not configured", OUTCOME_SKIPPED)

    if not to_email:
        logger.warning(f"[Notifications] No recipient for '{subject}'. Skipping.")
        return (False, "Recipient missing", OUTCOME_SKIPPED)

    msg = MIMEMultipart("alternative")
    msg["From"] = settings["sender"]
    msg["To"] = to_email
    msg["Subject"] = subject
    msg.attach(MIMEText(html_body, "html", "utf-8"))

    host, port = settings["host"], settings["port"]
    try:
        if port == 465:
            context = ssl.create_default_context()
            with smtplib.SMTP_SSL(host, port, context=context, timeout=SMTP_TIMEOUT) as server:
                server.login(settings["user"], settings["password"])
                server.send_message(msg)
        else:
            with smtplib.SMTP(host, port, timeout=SMTP_TIMEOUT) as server:
                if settings["use_tls"]:
                    server.starttls()
                server.login(settings["user"], settings["password"])
                server.send_message(msg)
    except (smtplib.SMTPException, OSError) as e:
        logger.error(f"[Notifications] Failed to send '{subject}': {e} (Type: {type(e).__name__})")
        return (False, str(e), OUTCOME_FAILED)

    logger.info(f"[Notifications] Sent '{subject}' to {redact_email(to_email)}")
    return (True, None, OUTCOME_SENT)


def _load_context(db, order_id):
    order = Order.get(order_id, db=db)
    if not order:
        raise NotFoundError("Order not found")

    customer = User.get(order.user_id, db=db)
    design = Design.get(order.design_id, db=db) if order.design_id else None
    supplier = Supplier.get(order.supplier_id, db=db) if order.supplier_id else None

    created_at = parse_timestamp(getattr(order, 'created_at', None)) or utc_now()
    return {
        "order": order,
        "short_id": order.id[:8],
        "design": design,
        "supplier": supplier,
        "customer_name": (customer.full_name if customer and customer.full_name else "Customer"),
        "customer_email": customer.email if customer else None,
        "currency_symbol": CURRENCY_SYMBOLS.get(order.currency, order.currency),
        "total": f"{float(order.total_price):.2f}",
        "print_label": PRINT_TYPE_LABELS.get(order.print_type),
        "address": order.shipping_address or {},
        "order_date": created_at.strftime("%Y-%m-%d %H:%M"),
        "estimated_delivery": (utc_now() + timedelta(days=ESTIMATED_DELIVERY_DAYS)).strftime("%A, %B %d, %Y"),
        "dashboard_url": get_env_str("ADMIN_DASHBOARD_URL", default=f"{SITE_URL}/admin/dashboard"),
    }


def send_order_confirmation(ctx):
    html = render_template("emails/confirmation.html", **ctx)
    subject = f"Order Confirmed - {ctx['order'].quantity} Custom Wristbands"
    return send_email(ctx["customer_email"], subject, html)


def send_admin_notification(ctx):
    html = render_template("emails/admin.html", **ctx)
    subject = f"New Order #{ctx['short_id']} - {ctx['order'].quantity} Wristbands"
    return send_email(get_env_str("ADMIN_NOTIFY_EMAIL"), subject, html)


def send_supplier_notification(ctx):
    supplier = ctx["supplier"]
    if not supplier:
        logger.info(f"[Notifications] Order {ctx['order'].id} has no supplier. Skipping supplier alert.")
        return (False, "No supplier assigned", OUTCOME_SKIPPED)
    html = render_template("emails/supplier.html", **ctx)
    subject = f"New Order #{ctx['short_id']} - {ctx['order'].quantity} Wristbands"
    return send_email(supplier.contact_email, subject, html)


def send_verification_email(user, token):
    """Signup confirmation link. Same result tuple as send_email."""
    html = render_template(
        "emails/verify.html",
        customer_name=user.full_name or "Customer",
        confirmation_url=f"{SITE_URL}/verify-email?token={token}",
        ttl_hours=VERIFICATION_LINK_TTL_HOURS,
    )
    return send_email(user.email, "Verify Your Email - EU Wristbands", html)


_SENDERS = {
    NOTIFY_CONFIRMATION: send_order_confirmation,
    NOTIFY_ADMIN: send_admin_notification,
    NOTIFY_SUPPLIER: send_supplier_notification,
}


def dispatch_notification(db, order_id, kind):
    """
    Render and send one notification for an order.

    Raises NotFoundError for an unknown order and ValidationError for an
    unknown kind. Delivery failures come back in the result tuple.
    """
    if kind not in NOTIFICATION_KINDS:
        raise ValidationError(f"Unknown notification kind: {kind}")

    ctx = _load_context(db, order_id)
    result = _SENDERS[kind](ctx)
    logger.info(f"[Notifications] {kind} for order {order_id}: {result[2]}")
    return result


def notify_paid_order(db, order_id, skip=()):
    """Post-payment fan-out: customer, admin and supplier, minus any kind in skip."""
    results = {}
    for kind in (NOTIFY_CONFIRMATION, NOTIFY_ADMIN, NOTIFY_SUPPLIER):
        if kind in skip:
            continue
        try:
            results[kind] = dispatch_notification(db, order_id, kind)
        except NotFoundError:
            logger.error(f"[Notifications] Order {order_id} vanished before {kind} notification")
            results[kind] = (False, "Order not found", OUTCOME_FAILED)
    return results
