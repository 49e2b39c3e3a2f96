"""
Test: Notifications return 'skipped' when SMTP is not configured.

Mail outages must not break payment or status flows, so every sender
reports its outcome as a (success, error, outcome) tuple instead of
raising.
"""
import smtplib
from unittest.mock import patch, MagicMock

import pytest

from services.errors import NotFoundError, ValidationError
from tests.factories import UserFactory, OrderFactory, SupplierFactory, SHIPPING_ADDRESS


@pytest.fixture
def no_smtp(monkeypatch):
    for key in ['SMTP_HOST', 'SMTP_USER', 'SMTP_PASS']:
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def smtp_env(monkeypatch):
    monkeypatch.setenv('SMTP_HOST', 'smtp.example.com')
    monkeypatch.setenv('SMTP_USER', 'mailer')
    monkeypatch.setenv('SMTP_PASS', 'app pass word')
    monkeypatch.setenv('SMTP_PORT', '587')


class TestNotificationSkipped:
    """Test notification skipping when SMTP is not configured."""

    def test_send_email_returns_skipped_without_smtp(self, no_smtp):
        from services.notifications import send_email

        success, error_msg, outcome_status = send_email("test@example.com", "Hello", "<p>Hi</p>")

        assert outcome_status == 'skipped', f"Expected 'skipped', got '{outcome_status}'"
        assert success is False
        assert error_msg == "SMTP not configured"

    def test_confirmation_is_skipped_without_smtp(self, db, app_ctx, no_smtp):
        from services.notifications import dispatch_notification

        order_id = OrderFactory.create(db, UserFactory.create(db))
        result = dispatch_notification(db, order_id, 'confirmation')

        assert isinstance(result, tuple)
        assert len(result) == 3
        assert result[2] == 'skipped'

    def test_supplier_alert_without_supplier_is_skipped(self, db, app_ctx, sent_emails):
        from services.notifications import dispatch_notification

        order_id = OrderFactory.create(db, UserFactory.create(db))
        assert dispatch_notification(db, order_id, 'supplier') == (False, "No supplier assigned", 'skipped')
        assert sent_emails == []


class TestNotificationDelivery:

    def test_starttls_send(self, smtp_env):
        from services.notifications import send_email

        with patch('smtplib.SMTP') as smtp_cls:
            server = MagicMock()
            smtp_cls.return_value.__enter__.return_value = server
            result = send_email('buyer@example.com', 'Order Confirmed', '<p>ok</p>')

        assert result == (True, None, 'sent')
        smtp_cls.assert_called_once_with('smtp.example.com', 587, timeout=10)
        server.starttls.assert_called_once()
        server.login.assert_called_once_with('mailer', 'apppassword')
        server.send_message.assert_called_once()

    def test_smtp_failure_is_reported_not_raised(self, smtp_env):
        from services.notifications import send_email

        with patch('smtplib.SMTP', side_effect=smtplib.SMTPConnectError(421, b'busy')):
            success, error, outcome = send_email('buyer@example.com', 'Order Confirmed', '<p>ok</p>')

        assert success is False
        assert outcome == 'failed'
        assert error

    def test_templates_render_order_details(self, db, app_ctx, sent_emails, monkeypatch):
        from services.notifications import notify_paid_order

        monkeypatch.setenv('ADMIN_NOTIFY_EMAIL', 'ops@example.com')
        supplier_id = SupplierFactory.create(db, contact_email='factory@example.com')
        order_id = OrderFactory.create(
            db, UserFactory.create(db, email='buyer@example.com', full_name='Jane Buyer'),
            supplier_id=supplier_id, shipping_address=SHIPPING_ADDRESS, quantity=2000,
        )

        results = notify_paid_order(db, order_id)

        assert {k: v[2] for k, v in results.items()} == {
            'confirmation': 'sent', 'admin': 'sent', 'supplier': 'sent',
        }
        by_recipient = {m['to']: m for m in sent_emails}
        assert set(by_recipient) == {'buyer@example.com', 'ops@example.com', 'factory@example.com'}
        confirmation = by_recipient['buyer@example.com']
        assert 'Jane Buyer' in confirmation['html']
        assert '€78.00' in confirmation['html']
        assert 'Amsterdam' in confirmation['html']
        assert order_id[:8] in by_recipient['ops@example.com']['subject']

    def test_unknown_kind_and_order(self, db, app_ctx):
        from services.notifications import dispatch_notification

        with pytest.raises(ValidationError):
            dispatch_notification(db, 'whatever', 'sms')
        with pytest.raises(NotFoundError):
            dispatch_notification(db, 'missing-order', 'admin')


class TestNotificationRoutes:

    def test_admin_only(self, client, db):
        headers = UserFactory.headers(db, UserFactory.create(db))
        resp = client.post('/api/notifications/admin', json={'orderId': 'x'}, headers=headers)
        assert resp.status_code == 403

    def test_resend_confirmation(self, client, db, sent_emails):
        order_id = OrderFactory.create(db, UserFactory.create(db))
        headers = UserFactory.headers(db, UserFactory.create(db, roles=('user', 'admin')))

        resp = client.post('/api/notifications/order-confirmation', json={'orderId': order_id}, headers=headers)

        assert resp.status_code == 200
        assert resp.get_json()['outcome'] == 'sent'
        assert len(sent_emails) == 1

    def test_missing_order_id(self, client, db):
        headers = UserFactory.headers(db, UserFactory.create(db, roles=('user', 'admin')))
        resp = client.post('/api/notifications/supplier', json={}, headers=headers)
        assert resp.status_code == 400
