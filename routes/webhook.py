import stripe
from flask import Blueprint, request, jsonify, current_app

from config import STRIPE_WEBHOOK_SECRET
from database import get_db
from services.errors import NotFoundError
from services.payments import reconcile_checkout_session, mark_session_failed
from services.stripe_client import as_dict
from utils.timestamps import utc_now

webhook_bp = Blueprint('webhook', __name__)

RECONCILE_EVENTS = (
    'checkout.session.completed',
    'checkout.session.async_payment_succeeded',
)
FAILURE_EVENTS = (
    'checkout.session.async_payment_failed',
    'checkout.session.expired',
)


@webhook_bp.route("/stripe/webhook", methods=["POST"])
def stripe_webhook():
    if not STRIPE_WEBHOOK_SECRET:
        current_app.logger.error("[Webhook] STRIPE_WEBHOOK_SECRET is not configured.")
        return jsonify({"error": "Webhook not configured"}), 500

    payload = request.get_data()
    sig_header = request.headers.get('Stripe-Signature')

    # 1. Validate Signature
    try:
        event = stripe.Webhook.construct_event(payload, sig_header, STRIPE_WEBHOOK_SECRET)
    except ValueError as e:
        current_app.logger.warning(f"[Webhook] Invalid payload: {e}")
        return jsonify({"error": "Invalid payload"}), 400
    except stripe.SignatureVerificationError as e:
        current_app.logger.warning(f"[Webhook] Invalid signature: {e}")
        return jsonify({"error": "Invalid signature"}), 400

    db = get_db()
    event_type = event['type']
    event_id = event['id']
    current_app.logger.info(f"[Webhook] Received event: {event_type}", extra={"event_id": event_id})

    # 2. Ledger: insert (if new) -> claim (atomic update) -> process
    with db.transaction():
        db.execute(
            """INSERT INTO stripe_events (event_id, type, status, created_at, updated_at)
               VALUES (%s, %s, 'received', %s, %s)
               ON CONFLICT (event_id) DO NOTHING""",
            (event_id, event_type, utc_now(), utc_now())
        )

    with db.transaction():
        claimed = db.execute(
            """UPDATE stripe_events
               SET status = 'processing', updated_at = %s
               WHERE event_id = %s AND status IN ('received', 'failed')""",
            (utc_now(), event_id)
        ).rowcount

    if claimed == 0:
        existing = db.execute("SELECT status FROM stripe_events WHERE event_id = %s", (event_id,)).fetchone()
        status = existing['status'] if existing else 'unknown'
        current_app.logger.info(f"[Webhook] Event {event_id} skipped. Status: {status}")
        return jsonify({"status": "success", "note": "idempotent_concurrent"}), 200

    # 3. Process - 5xx on failure so Stripe retries
    try:
        with db.transaction():
            session = as_dict(event['data']['object'])
            if event_type in RECONCILE_EVENTS:
                handle_session_paid(db, session)
            elif event_type in FAILURE_EVENTS:
                changed = mark_session_failed(db, session['id'])
                current_app.logger.info(f"[Webhook] {event_type}: {len(changed)} order(s) marked failed")

            db.execute(
                """UPDATE stripe_events SET status = 'processed', last_error = NULL, updated_at = %s
                   WHERE event_id = %s""",
                (utc_now(), event_id)
            )
        current_app.logger.info(f"[Webhook] Event {event_id} processed successfully.")

    except Exception as e:
        current_app.logger.exception(f"[Webhook] ERROR processing {event_type}: {e}")
        with db.transaction():
            db.execute(
                """UPDATE stripe_events SET status = 'failed', last_error = %s, updated_at = %s
                   WHERE event_id = %s""",
                (str(e)[:500], utc_now(), event_id)
            )
        return jsonify({"error": "Internal processing error", "event_id": event_id}), 500

    return jsonify({"status": "success"}), 200


def handle_session_paid(db, session):
    if session.get('mode') not in (None, 'payment'):
        current_app.logger.info(f"[Webhook] Ignoring session {session.get('id')} in mode {session.get('mode')}")
        return
    try:
        result = reconcile_checkout_session(db, session['id'], session=session)
    except NotFoundError:
        # Not one of ours (e.g. created from the Stripe dashboard)
        current_app.logger.warning(f"[Webhook] No orders for session {session.get('id')}")
        return
    current_app.logger.info(
        f"[Webhook] Session {session['id']}: {result['payment_status']}, "
        f"{len(result['updated_order_ids'])} order(s) updated"
    )
