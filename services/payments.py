"""
Payment Status Reconciler.

Brings order payment state in line with a Stripe Checkout Session. Called
from the payment-success page, the Stripe webhook and the
reconcile-pending CLI; any of them may run first, twice, or at the same
time.

Every transition is a compare-and-set UPDATE on payment_status, so only
the caller whose UPDATE actually changed a row sends that order's
notifications. Order status moves pending -> approved on payment and is
otherwise left alone.
"""
import logging
from datetime import timedelta

import stripe

from constants import (
    PAYMENT_STATUS_PENDING, PAYMENT_STATUS_PAID, PAYMENT_STATUS_FAILED,
    ORDER_STATUS_PENDING, ORDER_STATUS_APPROVED, NOTIFY_CONFIRMATION,
)
from database import placeholders
from models import Order
from services.errors import NotFoundError, PermissionDenied, UpstreamError, ValidationError, ConflictError
from services.notifications import notify_paid_order
from services.stripe_client import as_dict, expire_session, retrieve_session
from utils.timestamps import utc_now

logger = logging.getLogger(__name__)

PAID_SESSION_STATES = ('paid', 'no_payment_required')


def map_session_payment_status(session):
    if session.get('payment_status') in PAID_SESSION_STATES:
        return PAYMENT_STATUS_PAID
    if session.get('status') == 'expired':
        return PAYMENT_STATUS_FAILED
    return PAYMENT_STATUS_PENDING


def _payment_intent_id(session):
    intent = session.get('payment_intent')
    if isinstance(intent, dict):
        return intent.get('id')
    if intent is not None and not isinstance(intent, str):
        return getattr(intent, 'id', None)
    return intent


def _orders_from_metadata(db, session_id, session):
    """
    Unpaid orders named in a paid session's metadata, relinked to it.

    Covers a webhook racing the UPDATE that stores the session id, and a
    customer paying an older session after the order was checked out
    again under a new one.
    """
    metadata = (session or {}).get('metadata') or {}
    order_ids = [i for i in (metadata.get('order_ids') or "").split(",") if i]
    user_id = metadata.get('user_id')
    if not order_ids or not user_id:
        return []

    cur = db.execute(
        f"UPDATE orders SET stripe_session_id = %s "
        f"WHERE id IN ({placeholders(order_ids)}) AND user_id = %s AND payment_status <> %s",
        (session_id, *order_ids, user_id, PAYMENT_STATUS_PAID)
    )
    db.commit()
    if cur.rowcount:
        logger.warning(f"[Payments] Relinked {cur.rowcount} order(s) to session {session_id} from metadata",
                       extra={"session_id": session_id})
    return Order.list_by_session(session_id, db=db)


def mark_paid(db, order, payment_intent_id):
    """Compare-and-set to paid. True when this call made the transition."""
    cur = db.execute(
        """
        UPDATE orders
           SET payment_status = %s,
               stripe_payment_intent_id = COALESCE(%s, stripe_payment_intent_id),
               status = CASE WHEN status = %s THEN %s ELSE status END,
               updated_at = %s
         WHERE id = %s AND payment_status <> %s
        """,
        (PAYMENT_STATUS_PAID, payment_intent_id, ORDER_STATUS_PENDING, ORDER_STATUS_APPROVED,
         utc_now(), order.id, PAYMENT_STATUS_PAID)
    )
    db.commit()
    if cur.rowcount == 1:
        logger.info(f"[Payments] Order {order.id} paid", extra={"order_id": order.id})
        return True
    return False


def mark_session_failed(db, session_id):
    """pending -> failed for every order of the session. Returns changed ids."""
    rows = db.execute(
        "SELECT id FROM orders WHERE stripe_session_id = %s AND payment_status = %s",
        (session_id, PAYMENT_STATUS_PENDING)
    ).fetchall()

    changed = []
    for row in rows:
        cur = db.execute(
            "UPDATE orders SET payment_status = %s, updated_at = %s WHERE id = %s AND payment_status = %s",
            (PAYMENT_STATUS_FAILED, utc_now(), row['id'], PAYMENT_STATUS_PENDING)
        )
        if cur.rowcount == 1:
            changed.append(row['id'])
    db.commit()

    if changed:
        logger.info(f"[Payments] Session {session_id}: marked {len(changed)} order(s) failed")
    return changed


def reconcile_checkout_session(db, session_id, user=None, session=None):
    """
    Sync the orders of one checkout session with Stripe.

    Args:
        session_id: Stripe Checkout Session id
        user: requesting user; non-admins must own every order
        session: the session object when the caller already has it (webhook)

    Returns:
        dict(session_id, payment_status, updated_order_ids, orders)
    """
    if not session_id:
        raise ValidationError("sessionId is required")

    session = as_dict(session) if session is not None else None
    orders = Order.list_by_session(session_id, db=db)
    if not orders:
        session = session or retrieve_session(session_id)
        if map_session_payment_status(session) == PAYMENT_STATUS_PAID:
            owner_id = (session.get('metadata') or {}).get('user_id')
            if user is not None and not user.is_admin and owner_id != user.id:
                raise PermissionDenied("Not your order")
            orders = _orders_from_metadata(db, session_id, session)
    if not orders:
        raise NotFoundError("No orders for this checkout session")

    if user is not None and not user.is_admin:
        if any(o.user_id != user.id for o in orders):
            raise PermissionDenied("Not your order")

    session = session or retrieve_session(session_id)
    payment_status = map_session_payment_status(session)

    updated = []
    if payment_status == PAYMENT_STATUS_PAID:
        intent_id = _payment_intent_id(session)
        for order in orders:
            if not mark_paid(db, order, intent_id):
                continue
            updated.append(order.id)
            # Approved before the money arrived: the confirmation went out then
            skip = (NOTIFY_CONFIRMATION,) if order.status != ORDER_STATUS_PENDING else ()
            try:
                notify_paid_order(db, order.id, skip=skip)
            except Exception:
                # Payment is already recorded; a broken template must not undo it
                logger.exception(f"[Payments] Notifications failed for order {order.id}")
    elif payment_status == PAYMENT_STATUS_FAILED:
        updated = mark_session_failed(db, session_id)

    logger.info(
        f"[Payments] Session {session_id}: stripe={session.get('payment_status')}/{session.get('status')} "
        f"-> {payment_status}, {len(updated)} of {len(orders)} order(s) changed",
        extra={"session_id": session_id},
    )

    return {
        "session_id": session_id,
        "payment_status": payment_status,
        "updated_order_ids": updated,
        "orders": Order.list_by_session(session_id, db=db),
    }


def _settle_if_paid(db, session_id, user, session):
    if map_session_payment_status(session) == PAYMENT_STATUS_PAID:
        reconcile_checkout_session(db, session_id, user=user, session=session)
        raise ConflictError("This order has already been paid")


def retire_previous_sessions(db, user, orders):
    """
    Make sure no earlier Checkout Session of these orders can still be paid.

    Open sessions are expired at Stripe. A session that was paid in the
    meantime is reconciled and the new checkout refused (ConflictError);
    so is one whose asynchronous payment is still in flight.
    """
    for session_id in sorted({o.stripe_session_id for o in orders if o.stripe_session_id}):
        session = retrieve_session(session_id)
        _settle_if_paid(db, session_id, user, session)

        if session.get('status') == 'complete':
            raise ConflictError("A payment for this order is still being processed")
        if session.get('status') != 'open':
            continue

        try:
            expire_session(session_id)
        except stripe.StripeError as e:
            # Most likely completed between retrieve and expire
            logger.warning(f"[Payments] Could not expire session {session_id}: {e}",
                           extra={"session_id": session_id})
            _settle_if_paid(db, session_id, user, retrieve_session(session_id))
            raise UpstreamError("Could not close the previous checkout. Please try again.")


def find_pending_sessions(db, hours=24):
    """Checkout sessions with orders still pending payment, created in the last N hours."""
    cutoff = utc_now() - timedelta(hours=hours)
    rows = db.execute(
        """
        SELECT DISTINCT stripe_session_id
          FROM orders
         WHERE payment_status = %s
           AND stripe_session_id IS NOT NULL
           AND created_at >= %s
        """,
        (PAYMENT_STATUS_PENDING, cutoff)
    ).fetchall()
    return [r['stripe_session_id'] for r in rows]


def reconcile_pending(db, hours=24, dry_run=False):
    """
    Sweep for payments whose webhook never arrived.

    Returns a summary dict: checked, paid, failed, errors.
    """
    summary = {"checked": 0, "paid": 0, "failed": 0, "errors": 0}
    for session_id in find_pending_sessions(db, hours=hours):
        summary["checked"] += 1
        try:
            if dry_run:
                session = retrieve_session(session_id)
                logger.info(f"[Payments] DRY RUN {session_id}: {map_session_payment_status(session)}")
                continue
            result = reconcile_checkout_session(db, session_id)
        except (UpstreamError, NotFoundError) as e:
            summary["errors"] += 1
            logger.warning(f"[Payments] Sweep skipped {session_id}: {e}")
            continue

        if result["payment_status"] == PAYMENT_STATUS_PAID:
            summary["paid"] += len(result["updated_order_ids"])
        elif result["payment_status"] == PAYMENT_STATUS_FAILED:
            summary["failed"] += len(result["updated_order_ids"])
    return summary
