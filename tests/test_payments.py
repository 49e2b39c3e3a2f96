"""
Payment reconciliation against Stripe Checkout Sessions.
"""
from unittest.mock import patch

import pytest
import stripe

from models import Order, User
from services.errors import NotFoundError, PermissionDenied, UpstreamError, ValidationError
from services.payments import (
    map_session_payment_status, reconcile_checkout_session, reconcile_pending,
)
from tests.factories import UserFactory, OrderFactory, SupplierFactory


def _session(session_id, payment_status='paid', status='complete', **extra):
    return dict({
        "id": session_id,
        "object": "checkout.session",
        "mode": "payment",
        "payment_status": payment_status,
        "status": status,
        "payment_intent": "pi_test_123",
    }, **extra)


def _paid_cart(db, session_id='cs_test_paid', orders=2):
    user_id = UserFactory.create(db)
    supplier_id = SupplierFactory.create(db)
    order_ids = [
        OrderFactory.create(db, user_id, supplier_id=supplier_id, stripe_session_id=session_id)
        for _ in range(orders)
    ]
    return user_id, order_ids


class TestMapSessionPaymentStatus:

    @pytest.mark.parametrize("session, expected", [
        ({"payment_status": "paid", "status": "complete"}, "paid"),
        ({"payment_status": "no_payment_required", "status": "complete"}, "paid"),
        ({"payment_status": "unpaid", "status": "expired"}, "failed"),
        ({"payment_status": "unpaid", "status": "open"}, "pending"),
        ({"payment_status": "unpaid", "status": "complete"}, "pending"),
    ])
    def test_mapping(self, session, expected):
        assert map_session_payment_status(session) == expected


class TestReconcileCheckoutSession:

    def test_paid_session_updates_every_order_once(self, db, app_ctx, sent_emails):
        user_id, order_ids = _paid_cart(db)

        result = reconcile_checkout_session(db, 'cs_test_paid', session=_session('cs_test_paid'))

        assert result['payment_status'] == 'paid'
        assert sorted(result['updated_order_ids']) == sorted(order_ids)
        for order_id in order_ids:
            order = Order.get(order_id, db=db)
            assert order.payment_status == 'paid'
            assert order.status == 'approved'
            assert order.stripe_payment_intent_id == 'pi_test_123'

        # confirmation, admin and supplier mail per order
        subjects = [m['subject'] for m in sent_emails]
        assert len([s for s in subjects if s.startswith('Order Confirmed')]) == 2
        assert len(sent_emails) == 6

    def test_second_run_changes_nothing_and_sends_nothing(self, db, app_ctx, sent_emails):
        _, order_ids = _paid_cart(db)
        reconcile_checkout_session(db, 'cs_test_paid', session=_session('cs_test_paid'))
        sent = len(sent_emails)

        again = reconcile_checkout_session(db, 'cs_test_paid', session=_session('cs_test_paid'))

        assert again['payment_status'] == 'paid'
        assert again['updated_order_ids'] == []
        assert len(sent_emails) == sent

    def test_paid_does_not_regress_order_status(self, db, app_ctx, sent_emails):
        user_id = UserFactory.create(db)
        order_id = OrderFactory.create(db, user_id, status='processing', stripe_session_id='cs_x')

        reconcile_checkout_session(db, 'cs_x', session=_session('cs_x'))

        order = Order.get(order_id, db=db)
        assert order.payment_status == 'paid'
        assert order.status == 'processing'

    def test_expired_session_marks_pending_orders_failed(self, db, app_ctx, sent_emails):
        _, order_ids = _paid_cart(db, session_id='cs_expired')

        result = reconcile_checkout_session(
            db, 'cs_expired', session=_session('cs_expired', payment_status='unpaid', status='expired')
        )

        assert result['payment_status'] == 'failed'
        assert sorted(result['updated_order_ids']) == sorted(order_ids)
        assert all(Order.get(i, db=db).payment_status == 'failed' for i in order_ids)
        assert sent_emails == []

    def test_open_session_leaves_orders_pending(self, db, app_ctx, sent_emails):
        _, order_ids = _paid_cart(db, session_id='cs_open')

        result = reconcile_checkout_session(
            db, 'cs_open', session=_session('cs_open', payment_status='unpaid', status='open')
        )

        assert result['payment_status'] == 'pending'
        assert result['updated_order_ids'] == []
        assert all(Order.get(i, db=db).payment_status == 'pending' for i in order_ids)

    def test_paid_order_is_never_downgraded(self, db, app_ctx, sent_emails):
        user_id = UserFactory.create(db)
        order_id = OrderFactory.create(db, user_id, payment_status='paid', status='approved',
                                       stripe_session_id='cs_done')

        reconcile_checkout_session(
            db, 'cs_done', session=_session('cs_done', payment_status='unpaid', status='expired')
        )
        assert Order.get(order_id, db=db).payment_status == 'paid'

    def test_other_users_session_is_forbidden(self, db, app_ctx):
        _paid_cart(db)
        stranger = User.get(UserFactory.create(db), db=db)

        with pytest.raises(PermissionDenied):
            reconcile_checkout_session(db, 'cs_test_paid', user=stranger, session=_session('cs_test_paid'))

    def test_unknown_session(self, db, app_ctx):
        with pytest.raises(NotFoundError):
            reconcile_checkout_session(db, 'cs_unknown', session=_session('cs_unknown'))

    def test_links_orders_from_metadata_when_session_id_missing(self, db, app_ctx, sent_emails):
        user_id = UserFactory.create(db)
        order_id = OrderFactory.create(db, user_id)

        session = _session('cs_meta', metadata={"order_ids": order_id, "user_id": user_id})
        result = reconcile_checkout_session(db, 'cs_meta', session=session)

        assert result['updated_order_ids'] == [order_id]
        assert Order.get(order_id, db=db).stripe_session_id == 'cs_meta'

    def test_retrieves_session_from_stripe(self, db, app_ctx, sent_emails):
        _, order_ids = _paid_cart(db, session_id='cs_remote', orders=1)

        with patch.object(stripe.checkout.Session, "retrieve", return_value=_session('cs_remote')) as retrieve:
            result = reconcile_checkout_session(db, 'cs_remote')

        retrieve.assert_called_once_with('cs_remote')
        assert result['updated_order_ids'] == order_ids

    def test_stripe_outage_is_upstream_error(self, db, app_ctx):
        _paid_cart(db, session_id='cs_down', orders=1)

        with patch.object(stripe.checkout.Session, "retrieve", side_effect=stripe.StripeError("timeout")):
            with pytest.raises(UpstreamError):
                reconcile_checkout_session(db, 'cs_down')

    def test_payment_on_superseded_session_is_recorded(self, db, app_ctx, sent_emails):
        user_id = UserFactory.create(db)
        order_id = OrderFactory.create(db, user_id, stripe_session_id='cs_test_2')

        session = _session('cs_test_1', metadata={"order_ids": order_id, "user_id": user_id})
        result = reconcile_checkout_session(db, 'cs_test_1', session=session)

        assert result['updated_order_ids'] == [order_id]
        order = Order.get(order_id, db=db)
        assert order.payment_status == 'paid'
        assert order.stripe_session_id == 'cs_test_1'

    def test_superseded_session_never_relinks_paid_orders(self, db, app_ctx, sent_emails):
        user_id = UserFactory.create(db)
        order_id = OrderFactory.create(db, user_id, payment_status='paid', status='approved',
                                       stripe_session_id='cs_test_2')

        session = _session('cs_test_1', metadata={"order_ids": order_id, "user_id": user_id})
        with pytest.raises(NotFoundError):
            reconcile_checkout_session(db, 'cs_test_1', session=session)
        assert Order.get(order_id, db=db).stripe_session_id == 'cs_test_2'

    def test_expired_superseded_session_leaves_orders_alone(self, db, app_ctx):
        user_id = UserFactory.create(db)
        order_id = OrderFactory.create(db, user_id, stripe_session_id='cs_test_2')

        session = _session('cs_test_1', payment_status='unpaid', status='expired',
                           metadata={"order_ids": order_id, "user_id": user_id})
        with pytest.raises(NotFoundError):
            reconcile_checkout_session(db, 'cs_test_1', session=session)

        order = Order.get(order_id, db=db)
        assert order.payment_status == 'pending'
        assert order.stripe_session_id == 'cs_test_2'

    def test_metadata_of_another_user_is_forbidden(self, db, app_ctx):
        owner_id = UserFactory.create(db)
        order_id = OrderFactory.create(db, owner_id, stripe_session_id='cs_test_2')
        stranger = User.get(UserFactory.create(db), db=db)

        session = _session('cs_test_1', metadata={"order_ids": order_id, "user_id": owner_id})
        with pytest.raises(PermissionDenied):
            reconcile_checkout_session(db, 'cs_test_1', user=stranger, session=session)
        assert Order.get(order_id, db=db).stripe_session_id == 'cs_test_2'

    @pytest.mark.parametrize("session_id", [None, ""])
    def test_missing_session_id_is_rejected(self, db, app_ctx, session_id):
        with pytest.raises(ValidationError):
            reconcile_checkout_session(db, session_id)

    def test_order_approved_before_payment_gets_no_second_confirmation(self, db, app_ctx, sent_emails):
        user_id = UserFactory.create(db)
        supplier_id = SupplierFactory.create(db)
        order_id = OrderFactory.create(db, user_id, supplier_id=supplier_id, status='approved',
                                       stripe_session_id='cs_late')

        result = reconcile_checkout_session(db, 'cs_late', session=_session('cs_late'))

        assert result['updated_order_ids'] == [order_id]
        subjects = [m['subject'] for m in sent_emails]
        assert len(subjects) == 2
        assert not any(s.startswith('Order Confirmed') for s in subjects)


class TestReconcilePending:

    def test_sweep_counts_outcomes(self, db, app_ctx, sent_emails):
        _paid_cart(db, session_id='cs_sweep_paid', orders=2)
        _paid_cart(db, session_id='cs_sweep_expired', orders=1)
        _paid_cart(db, session_id='cs_sweep_broken', orders=1)

        def fake_retrieve(session_id):
            if session_id == 'cs_sweep_paid':
                return _session(session_id)
            if session_id == 'cs_sweep_expired':
                return _session(session_id, payment_status='unpaid', status='expired')
            raise stripe.StripeError("no such session")

        with patch.object(stripe.checkout.Session, "retrieve", side_effect=fake_retrieve):
            summary = reconcile_pending(db, hours=24)

        assert summary == {"checked": 3, "paid": 2, "failed": 1, "errors": 1}

    def test_dry_run_changes_nothing(self, db, app_ctx, sent_emails):
        _, order_ids = _paid_cart(db, session_id='cs_dry', orders=1)

        with patch.object(stripe.checkout.Session, "retrieve", return_value=_session('cs_dry')):
            summary = reconcile_pending(db, dry_run=True)

        assert summary['checked'] == 1
        assert Order.get(order_ids[0], db=db).payment_status == 'pending'
        assert sent_emails == []


class TestPaymentStatusRoute:

    def test_owner_gets_reconciled_orders(self, client, db, sent_emails):
        user_id, order_ids = _paid_cart(db, session_id='cs_route', orders=1)

        with patch.object(stripe.checkout.Session, "retrieve", return_value=_session('cs_route')):
            resp = client.post('/api/payments/status', json={'sessionId': 'cs_route'},
                               headers=UserFactory.headers(db, user_id))

        assert resp.status_code == 200
        data = resp.get_json()
        assert data['paymentStatus'] == 'paid'
        assert data['orders'][0]['status'] == 'approved'

    def test_stranger_is_forbidden(self, client, db):
        _paid_cart(db, session_id='cs_route', orders=1)
        headers = UserFactory.headers(db, UserFactory.create(db))
        resp = client.post('/api/payments/status', json={'sessionId': 'cs_route'}, headers=headers)
        assert resp.status_code == 403

    def test_missing_session_id_is_400(self, client, db):
        headers = UserFactory.headers(db, UserFactory.create(db))
        resp = client.post('/api/payments/status', json={}, headers=headers)
        assert resp.status_code == 400
