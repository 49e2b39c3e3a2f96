"""
Accounts, bearer API tokens and email verification links.

Tokens are random strings handed to the client once; only their sha256
is stored. A request authenticates with `Authorization: Bearer <token>`.
"""
import hashlib
import logging
import secrets
from datetime import timedelta, timezone

from werkzeug.security import generate_password_hash, check_password_hash

from constants import ROLE_USER, ROLE_SUPPLIER, VERIFICATION_LINK_TTL_HOURS
from models import User, Supplier, new_id
from services.errors import ValidationError, ConflictError, AuthError
from services.notifications import send_verification_email
from utils.redaction import redact_email
from utils.timestamps import utc_now, parse_timestamp

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def bearer_token_from_header(auth_header):
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    token = auth_header.split(" ", 1)[1].strip()
    return token or None


def issue_token(db, user_id):
    """Create a token for user_id. Returns the raw token (shown once)."""
    token = secrets.token_urlsafe(32)
    db.execute(
        "INSERT INTO api_tokens (id, user_id, token_hash, created_at) VALUES (%s, %s, %s, %s)",
        (new_id(), user_id, hash_token(token), utc_now())
    )
    db.commit()
    return token


def user_from_token(db, token):
    """Resolve a live token to a User, or None."""
    if not token:
        return None
    row = db.execute(
        "SELECT id, user_id, token_hash FROM api_tokens WHERE token_hash = %s AND revoked_at IS NULL",
        (hash_token(token),)
    ).fetchone()
    if not row or not secrets.compare_digest(row['token_hash'], hash_token(token)):
        return None

    db.execute("UPDATE api_tokens SET last_used_at = %s WHERE id = %s", (utc_now(), row['id']))
    db.commit()

    user = User.get(row['user_id'], db=db)
    if user:
        user.token_id = row['id']
    return user


def revoke_token(db, token_id):
    db.execute(
        "UPDATE api_tokens SET revoked_at = %s WHERE id = %s AND revoked_at IS NULL",
        (utc_now(), token_id)
    )
    db.commit()


def _validate_credentials(email, password):
    email = (email or "").strip().lower()
    if not email or "@" not in email:
        raise ValidationError("A valid email is required")
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    return email


def register_user(db, email, password, full_name=None, commit=True):
    email = _validate_credentials(email, password)

    if db.execute("SELECT 1 FROM profiles WHERE email = %s", (email,)).fetchone():
        raise ConflictError("An account with this email already exists")

    user_id = new_id()
    db.execute(
        "INSERT INTO profiles (id, email, full_name, password_hash, created_at) VALUES (%s, %s, %s, %s, %s)",
        (user_id, email, (full_name or "").strip() or None, generate_password_hash(password), utc_now())
    )
    grant_role(db, user_id, ROLE_USER, commit=False)
    if commit:
        db.commit()

    logger.info(f"[Auth] Registered {redact_email(email)}")
    return User.get(user_id, db=db)


def grant_role(db, user_id, role, commit=True):
    exists = db.execute(
        "SELECT 1 FROM user_roles WHERE user_id = %s AND role = %s", (user_id, role)
    ).fetchone()
    if not exists:
        db.execute(
            "INSERT INTO user_roles (id, user_id, role) VALUES (%s, %s, %s)",
            (new_id(), user_id, role)
        )
    if commit:
        db.commit()


def authenticate(db, email, password):
    email = (email or "").strip().lower()
    row = db.execute("SELECT id, password_hash FROM profiles WHERE email = %s", (email,)).fetchone()
    if not row or not check_password_hash(row['password_hash'], password or ""):
        logger.warning(f"[Auth] Failed login for {redact_email(email)}")
        raise AuthError("Invalid email or password")
    return User.get(row['id'], db=db)


def register_supplier(db, email, password, company_name, contact_phone=None, address=None, full_name=None):
    """Account + supplier profile + supplier role in one transaction."""
    company_name = (company_name or "").strip()
    if not company_name:
        raise ValidationError("Company name is required")

    with db.transaction():
        user = register_user(db, email, password, full_name=full_name or company_name, commit=False)
        grant_role(db, user.id, ROLE_SUPPLIER, commit=False)

        supplier = Supplier(
            user_id=user.id,
            company_name=company_name,
            contact_email=user.email,
            contact_phone=(contact_phone or "").strip() or None,
            address=(address or "").strip() or None,
        )
        supplier.save(db=db, commit=False)

    logger.info(f"[Auth] Supplier {supplier.id} registered ({company_name})")
    return User.get(user.id, db=db), supplier


def issue_verification_token(db, user_id, commit=True):
    """
    New email verification token for user_id; replaces any earlier one.

    Only the sha256 is stored. Returns the raw token for the email link.
    """
    token = secrets.token_urlsafe(32)
    db.execute(
        "UPDATE profiles SET verification_token_hash = %s, verification_expires_at = %s WHERE id = %s",
        (hash_token(token), utc_now() + timedelta(hours=VERIFICATION_LINK_TTL_HOURS), user_id)
    )
    if commit:
        db.commit()
    return token


def send_verification(db, user):
    """
    Mail a fresh verification link to user.

    Mail trouble is logged and reported, never raised: the account exists
    either way and the link can be requested again.
    """
    token = issue_verification_token(db, user.id)
    sent, error, _ = send_verification_email(user, token)
    if not sent:
        logger.warning(f"[Auth] Verification email for {redact_email(user.email)} not sent: {error}")
    return sent


def verify_email(db, token):
    """Redeem a verification token. Returns the verified User."""
    token = (token or "").strip()
    if not token:
        raise ValidationError("Verification token is required")

    row = db.execute(
        "SELECT id, verification_expires_at FROM profiles WHERE verification_token_hash = %s",
        (hash_token(token),)
    ).fetchone()
    if not row:
        raise ValidationError("Invalid or already used verification link")

    expires_at = parse_timestamp(row['verification_expires_at'])
    if expires_at and expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    if not expires_at or expires_at < utc_now():
        raise ValidationError("Verification link has expired. Please request a new one.")

    db.execute(
        """
        UPDATE profiles
           SET email_verified_at = COALESCE(email_verified_at, %s),
               verification_token_hash = NULL,
               verification_expires_at = NULL
         WHERE id = %s
        """,
        (utc_now(), row['id'])
    )
    db.commit()

    logger.info(f"[Auth] Email verified for user {row['id']}")
    return User.get(row['id'], db=db)
