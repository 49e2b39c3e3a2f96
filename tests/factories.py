"""
Test entity factories.

Centralizes test data creation to avoid schema drift from NOT NULL columns.
All entity creation should go through these factories.
"""
import io
import base64
import uuid
from decimal import Decimal

from PIL import Image
from werkzeug.security import generate_password_hash

from models import new_id, dump_json
from services.auth_tokens import issue_token
from utils.timestamps import utc_now


def png_bytes(size=(40, 12), color=(200, 30, 30, 255)):
    buf = io.BytesIO()
    Image.new("RGBA", size, color).save(buf, format="PNG")
    return buf.getvalue()


def png_data_url(**kwargs):
    return "data:image/png;base64," + base64.b64encode(png_bytes(**kwargs)).decode("ascii")


SHIPPING_ADDRESS = {
    "name": "Jane Doe",
    "address": "Keizersgracht 1",
    "city": "Amsterdam",
    "zipCode": "1015CJ",
    "country": "NL",
    "phone": "+31 20 000 0000",
}


class UserFactory:
    """Factory for creating test users."""

    DEFAULT_PASSWORD = 'TestPassword123!'

    @classmethod
    def create(cls, db_session, roles=('user',), **kwargs):
        """
        Create a user with sensible defaults.

        Returns:
            str: Created user ID
        """
        defaults = {
            'id': new_id(),
            'email': f'test-{uuid.uuid4().hex[:8]}@example.com',
            'full_name': 'Test Customer',
            'password_hash': generate_password_hash(cls.DEFAULT_PASSWORD),
        }
        defaults.update(kwargs)

        db_session.execute(
            "INSERT INTO profiles (id, email, full_name, password_hash, created_at) VALUES (%s, %s, %s, %s, %s)",
            (defaults['id'], defaults['email'], defaults['full_name'], defaults['password_hash'], utc_now())
        )
        for role in roles:
            db_session.execute(
                "INSERT INTO user_roles (id, user_id, role) VALUES (%s, %s, %s)",
                (new_id(), defaults['id'], role)
            )
        db_session.commit()
        return defaults['id']

    @classmethod
    def headers(cls, db_session, user_id):
        """Bearer auth headers for user_id."""
        return {"Authorization": f"Bearer {issue_token(db_session, user_id)}"}


class SupplierFactory:
    """Factory for supplier profiles (and their login, unless user_id is given)."""

    @classmethod
    def create(cls, db_session, user_id=None, **kwargs):
        if user_id is None:
            user_id = UserFactory.create(db_session, roles=('user', 'supplier'), full_name='Print Partner')
        defaults = {
            'id': new_id(),
            'user_id': user_id,
            'company_name': f'Bands {uuid.uuid4().hex[:4]} BV',
            'contact_email': f'supplier-{uuid.uuid4().hex[:8]}@example.com',
            'contact_phone': '+31 10 000 0000',
            'address': 'Industrieweg 5, Rotterdam',
        }
        defaults.update(kwargs)
        now = utc_now()
        db_session.execute(
            """
            INSERT INTO suppliers (id, user_id, company_name, contact_email, contact_phone, address, created_at, updated_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
            """,
            (defaults['id'], defaults['user_id'], defaults['company_name'], defaults['contact_email'],
             defaults['contact_phone'], defaults['address'], now, now)
        )
        db_session.commit()
        return defaults['id']


class DesignFactory:
    @classmethod
    def create(cls, db_session, user_id, **kwargs):
        defaults = {
            'id': new_id(),
            'image_key': None,
            'image_url': 'https://cdn.example.com/designs/preview.png',
            'wristband_color': '#FF0000',
            'wristband_type': 'tyvek',
            'custom_text': 'Summer Fest',
            'text_color': '#000000',
        }
        defaults.update(kwargs)
        now = utc_now()
        db_session.execute(
            """
            INSERT INTO designs (id, user_id, image_key, image_url, wristband_color, wristband_type,
                                 custom_text, text_color, created_at, updated_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            """,
            (defaults['id'], user_id, defaults['image_key'], defaults['image_url'], defaults['wristband_color'],
             defaults['wristband_type'], defaults['custom_text'], defaults['text_color'], now, now)
        )
        db_session.commit()
        return defaults['id']


class OrderFactory:
    """
    Orders priced like the default tyvek rates: 0.039 per band.
    Pass extra_charges to add fees; total_price is derived.
    """

    @classmethod
    def create(cls, db_session, user_id, design_id=None, **kwargs):
        if design_id is None:
            design_id = DesignFactory.create(db_session, user_id)
        defaults = {
            'id': new_id(),
            'supplier_id': None,
            'quantity': 1000,
            'unit_price': Decimal('0.0390'),
            'currency': 'EUR',
            'print_type': 'none',
            'extra_charges': {},
            'status': 'pending',
            'payment_status': 'pending',
            'shipping_address': None,
            'stripe_session_id': None,
        }
        defaults.update(kwargs)
        extras = defaults['extra_charges']
        total = defaults['unit_price'] * defaults['quantity'] + sum(
            (Decimal(str(v)) for v in extras.values()), Decimal('0')
        )
        defaults.setdefault('total_price', total)
        now = utc_now()
        db_session.execute(
            """
            INSERT INTO orders (id, user_id, design_id, supplier_id, quantity, unit_price, base_price, total_price,
                                currency, print_type, has_trademark, has_secure_guests, extra_charges, status,
                                payment_status, shipping_address, stripe_session_id, created_at, updated_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            """,
            (defaults['id'], user_id, design_id, defaults['supplier_id'], defaults['quantity'],
             defaults['unit_price'], defaults['unit_price'], defaults['total_price'], defaults['currency'],
             defaults['print_type'], False, False, dump_json(extras), defaults['status'],
             defaults['payment_status'], dump_json(defaults['shipping_address']),
             defaults['stripe_session_id'], now, now)
        )
        db_session.commit()
        return defaults['id']


class PricingConfigFactory:
    @classmethod
    def create(cls, db_session, wristband_type='tyvek', currency='EUR', **kwargs):
        defaults = {
            'base_price': Decimal('0.05'),
            'black_print_extra': Decimal('0.01'),
            'full_color_print_extra': Decimal('0.02'),
            'trademark_fee_per_thousand': Decimal('10'),
            'qr_code_fee_per_thousand': Decimal('12'),
            'express_delivery_fee': Decimal('25'),
            'min_quantity': 500,
        }
        defaults.update(kwargs)
        now = utc_now()
        db_session.execute(
            """
            INSERT INTO pricing_config (wristband_type, currency, base_price, black_print_extra,
                                        full_color_print_extra, trademark_fee_per_thousand,
                                        qr_code_fee_per_thousand, express_delivery_fee, min_quantity,
                                        created_at, updated_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            """,
            (wristband_type, currency, defaults['base_price'], defaults['black_print_extra'],
             defaults['full_color_print_extra'], defaults['trademark_fee_per_thousand'],
             defaults['qr_code_fee_per_thousand'], defaults['express_delivery_fee'],
             defaults['min_quantity'], now, now)
        )
        db_session.commit()
