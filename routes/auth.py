from flask import Blueprint, request, jsonify, current_app
from flask_login import login_required, current_user

from database import get_db
from extensions import limiter
from services.auth_tokens import (
    register_user, authenticate, issue_token, revoke_token, send_verification, verify_email,
)

auth_bp = Blueprint('auth', __name__, url_prefix='/api/auth')


@auth_bp.route("/register", methods=["POST"])
@limiter.limit("5 per minute")
def register():
    data = request.get_json(silent=True) or {}
    db = get_db()

    user = register_user(db, data.get('email'), data.get('password'), data.get('fullName') or data.get('full_name'))
    token = issue_token(db, user.id)
    email_sent = send_verification(db, user)

    current_app.logger.info(f"[Auth] New account {user.id}")
    return jsonify({
        "success": True,
        "token": token,
        "user": user.to_dict(),
        "verificationEmailSent": email_sent,
    }), 201


@auth_bp.route("/login", methods=["POST"])
@limiter.limit("10 per minute")
def login():
    data = request.get_json(silent=True) or {}
    db = get_db()

    user = authenticate(db, data.get('email'), data.get('password'))
    token = issue_token(db, user.id)
    return jsonify({"success": True, "token": token, "user": user.to_dict()})


@auth_bp.route("/verify", methods=["POST"])
@limiter.limit("10 per minute")
def verify():
    """Redeems the token from the emailed link; no login needed."""
    data = request.get_json(silent=True) or {}
    user = verify_email(get_db(), data.get('token') or request.args.get('token'))
    return jsonify({"success": True, "user": user.to_dict()})


@auth_bp.route("/resend-verification", methods=["POST"])
@limiter.limit("3 per minute")
@login_required
def resend_verification():
    if current_user.is_verified:
        return jsonify({"success": True, "alreadyVerified": True})

    email_sent = send_verification(get_db(), current_user)
    return jsonify({"success": True, "alreadyVerified": False, "verificationEmailSent": email_sent})


@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    if current_user.token_id:
        revoke_token(get_db(), current_user.token_id)
    return jsonify({"success": True})


@auth_bp.route("/me")
@login_required
def me():
    return jsonify({"success": True, "user": current_user.to_dict()})
