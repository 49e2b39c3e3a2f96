import json
import uuid

from flask_login import UserMixin

from database import get_db
from constants import ROLE_ADMIN, ROLE_SUPPLIER
from utils.timestamps import utc_now, format_timestamp


def new_id():
    return str(uuid.uuid4())


def load_json(value, default=None):
    """JSONB comes back as dict/list from psycopg2, as text elsewhere."""
    if value is None or value == "":
        return default
    if isinstance(value, (dict, list)):
        return value
    return json.loads(value)


def dump_json(value):
    if value is None:
        return None
    return json.dumps(value, default=str)


def as_float(value):
    return None if value is None else float(value)


class User(UserMixin):
    def __init__(self, id, email, full_name=None, roles=None, token_id=None, email_verified_at=None):
        self.id = id
        self.email = email
        self.full_name = full_name
        self.email_verified_at = email_verified_at
        self.roles = set(roles or ())
        # api_tokens.id the request authenticated with (None for CLI/tests)
        self.token_id = token_id

    @property
    def is_admin(self):
        return ROLE_ADMIN in self.roles

    @property
    def is_supplier(self):
        return ROLE_SUPPLIER in self.roles

    @property
    def is_verified(self):
        return self.email_verified_at is not None

    @staticmethod
    def _from_row(db, row, token_id=None):
        roles = db.execute(
            "SELECT role FROM user_roles WHERE user_id = %s", (row['id'],)
        ).fetchall()
        return User(
            id=row['id'],
            email=row['email'],
            full_name=row['full_name'],
            roles=[r['role'] for r in roles],
            token_id=token_id,
            email_verified_at=row['email_verified_at'],
        )

    @staticmethod
    def get(user_id, db=None):
        db = db or get_db()
        row = db.execute("SELECT * FROM profiles WHERE id = %s", (user_id,)).fetchone()
        if not row:
            return None
        return User._from_row(db, row)

    @staticmethod
    def get_by_email(email, db=None):
        db = db or get_db()
        row = db.execute(
            "SELECT * FROM profiles WHERE email = %s", ((email or "").strip().lower(),)
        ).fetchone()
        if not row:
            return None
        return User._from_row(db, row)

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "fullName": self.full_name,
            "roles": sorted(self.roles),
            "emailVerified": self.is_verified,
        }


class Record:
    """
    Thin row wrapper: ALLOWED_COLUMNS guards what reaches SQL,
    JSON_COLUMNS are (de)serialized at the boundary.
    """
    TABLE = None
    ALLOWED_COLUMNS = ()
    JSON_COLUMNS = ()

    def __init__(self, **kwargs):
        self._persisted = False
        for k, v in kwargs.items():
            if k in self.ALLOWED_COLUMNS:
                setattr(self, k, v)

    @classmethod
    def from_row(cls, row):
        data = dict(row)
        for col in cls.JSON_COLUMNS:
            if col in data:
                data[col] = load_json(data[col])
        obj = cls(**data)
        obj._persisted = True
        return obj

    @classmethod
    def get(cls, record_id, db=None):
        db = db or get_db()
        row = db.execute(f"SELECT * FROM {cls.TABLE} WHERE id = %s", (record_id,)).fetchone()
        if not row:
            return None
        return cls.from_row(row)

    def _values(self, skip=()):
        cols, vals = [], []
        for k, v in self.__dict__.items():
            if k.startswith('_') or k in skip or k not in self.ALLOWED_COLUMNS:
                continue
            cols.append(k)
            vals.append(dump_json(v) if k in self.JSON_COLUMNS else v)
        return cols, vals

    def save(self, db=None, commit=True):
        db = db or get_db()
        now = utc_now()
        self.updated_at = now

        if self._persisted:
            cols, vals = self._values(skip=('id', 'created_at'))
            sql = f"UPDATE {self.TABLE} SET {', '.join(c + ' = %s' for c in cols)} WHERE id = %s"
            db.execute(sql, tuple(vals) + (self.id,))
        else:
            if not getattr(self, 'id', None):
                self.id = new_id()
            if not getattr(self, 'created_at', None):
                self.created_at = now
            cols, vals = self._values()
            sql = (
                f"INSERT INTO {self.TABLE} ({', '.join(cols)}) "
                f"VALUES ({', '.join(['%s'] * len(cols))})"
            )
            db.execute(sql, tuple(vals))
            self._persisted = True

        if commit:
            db.commit()
        return self


class Design(Record):
    TABLE = "designs"
    ALLOWED_COLUMNS = (
        'id', 'user_id', 'image_key', 'image_url', 'wristband_color',
        'wristband_type', 'custom_text', 'text_color', 'text_position',
        'created_at', 'updated_at',
    )
    JSON_COLUMNS = ('text_position',)

    def to_dict(self):
        return {
            "id": self.id,
            "userId": self.user_id,
            "imageUrl": getattr(self, 'image_url', None),
            "wristbandColor": getattr(self, 'wristband_color', None),
            "wristbandType": getattr(self, 'wristband_type', None),
            "customText": getattr(self, 'custom_text', None),
            "textColor": getattr(self, 'text_color', None),
            "textPosition": getattr(self, 'text_position', None),
            "createdAt": format_timestamp(getattr(self, 'created_at', None)),
        }


class Order(Record):
    TABLE = "orders"
    ALLOWED_COLUMNS = (
        'id', 'user_id', 'design_id', 'supplier_id', 'quantity',
        'unit_price', 'base_price', 'total_price', 'currency', 'print_type',
        'has_trademark', 'trademark_text', 'has_secure_guests',
        'extra_charges', 'status', 'payment_status', 'shipping_address',
        'stripe_session_id', 'stripe_payment_intent_id', 'admin_notes',
        'created_at', 'updated_at',
    )
    JSON_COLUMNS = ('extra_charges', 'shipping_address')

    @classmethod
    def list_by_session(cls, session_id, db=None):
        db = db or get_db()
        rows = db.execute(
            "SELECT * FROM orders WHERE stripe_session_id = %s ORDER BY created_at, id",
            (session_id,)
        ).fetchall()
        return [cls.from_row(r) for r in rows]

    def to_dict(self):
        extras = getattr(self, 'extra_charges', None) or {}
        return {
            "id": self.id,
            "userId": self.user_id,
            "designId": getattr(self, 'design_id', None),
            "supplierId": getattr(self, 'supplier_id', None),
            "quantity": self.quantity,
            "unitPrice": as_float(self.unit_price),
            "basePrice": as_float(getattr(self, 'base_price', None)),
            "totalPrice": as_float(self.total_price),
            "currency": self.currency,
            "printType": getattr(self, 'print_type', None),
            "hasTrademark": bool(getattr(self, 'has_trademark', False)),
            "trademarkText": getattr(self, 'trademark_text', None),
            "hasSecureGuests": bool(getattr(self, 'has_secure_guests', False)),
            "extraCharges": {k: float(v) for k, v in extras.items()},
            "status": self.status,
            "paymentStatus": self.payment_status,
            "shippingAddress": getattr(self, 'shipping_address', None),
            "stripeSessionId": getattr(self, 'stripe_session_id', None),
            "adminNotes": getattr(self, 'admin_notes', None),
            "createdAt": format_timestamp(getattr(self, 'created_at', None)),
            "updatedAt": format_timestamp(getattr(self, 'updated_at', None)),
        }


class Supplier(Record):
    TABLE = "suppliers"
    ALLOWED_COLUMNS = (
        'id', 'user_id', 'company_name', 'contact_email', 'contact_phone',
        'address', 'created_at', 'updated_at',
    )

    @classmethod
    def get_for_user(cls, user_id, db=None):
        db = db or get_db()
        row = db.execute(
            "SELECT * FROM suppliers WHERE user_id = %s ORDER BY created_at LIMIT 1", (user_id,)
        ).fetchone()
        return cls.from_row(row) if row else None

    def to_dict(self):
        return {
            "id": self.id,
            "companyName": self.company_name,
            "contactEmail": self.contact_email,
            "contactPhone": getattr(self, 'contact_phone', None),
            "address": getattr(self, 'address', None),
        }
