import os

import click
from flask import Flask, request, jsonify, send_from_directory
from flask_login import LoginManager

from config import (
    SECRET_KEY, MAX_CONTENT_LENGTH, TRUST_PROXY_HEADERS, PROXY_FIX_NUM_PROXIES,
    IS_PRODUCTION, STORAGE_BACKEND, UPLOAD_DIR, STRIPE_SECRET_KEY, RATELIMIT_ENABLED,
)
from database import close_connection, get_db
from extensions import limiter
from services.errors import ServiceError


def create_app(test_config=None):
    app = Flask(__name__)

    app.config['SECRET_KEY'] = SECRET_KEY
    app.config['UPLOAD_FOLDER'] = UPLOAD_DIR
    app.config['MAX_CONTENT_LENGTH'] = MAX_CONTENT_LENGTH
    app.config['STRIPE_SECRET_KEY'] = STRIPE_SECRET_KEY
    app.config['RATELIMIT_ENABLED'] = RATELIMIT_ENABLED

    if test_config:
        app.config.update(test_config)

    # Structured Logging
    from utils.logger import setup_logger
    setup_logger(app)

    # Health Check (Validates DB connectivity)
    @app.route("/healthz")
    def healthz():
        try:
            get_db().execute("SELECT 1").fetchone()
            return {"status": "ok", "db": "connected"}, 200
        except Exception as e:
            app.logger.error(f"[Health] DB check failed: {e}")
            return {"status": "error", "db": type(e).__name__}, 503

    @app.route("/ping")
    def ping():
        return {"status": "ok"}, 200

    # ProxyFix
    if IS_PRODUCTION and TRUST_PROXY_HEADERS:
        from werkzeug.middleware.proxy_fix import ProxyFix
        n = PROXY_FIX_NUM_PROXIES
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=n, x_proto=n, x_host=n, x_port=n)
        app.logger.info(f"[Security] ProxyFix enabled for {n} proxies")

    # Extensions
    limiter.init_app(app)

    from services.stripe_client import init_stripe
    init_stripe(app)

    # Database Teardown
    app.teardown_appcontext(close_connection)

    # Login Manager (bearer tokens, no cookie sessions)
    login_manager = LoginManager()
    login_manager.init_app(app)

    @login_manager.request_loader
    def load_user_from_request(req):
        from services.auth_tokens import bearer_token_from_header, user_from_token
        token = bearer_token_from_header(req.headers.get("Authorization"))
        if not token:
            return None
        return user_from_token(get_db(), token)

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"success": False, "error": "Authentication required"}), 401

    # Errors
    @app.errorhandler(ServiceError)
    def handle_service_error(e):
        if e.status_code >= 500:
            app.logger.error(f"[API] {request.method} {request.path} -> {e.status_code}: {e.message}")
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"success": False, "error": "Not found"}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({"success": False, "error": "Method not allowed"}), 405

    @app.errorhandler(413)
    def too_large(e):
        return jsonify({"success": False, "error": "Upload too large"}), 413

    @app.errorhandler(429)
    def rate_limited(e):
        return jsonify({"success": False, "error": "Too many requests"}), 429

    @app.errorhandler(500)
    def internal_error(e):
        app.logger.error(f"[API] Unhandled error on {request.method} {request.path}: {e}")
        return jsonify({"success": False, "error": "Internal server error"}), 500

    # Blueprints
    from routes.auth import auth_bp
    from routes.designs import designs_bp
    from routes.orders import orders_bp
    from routes.checkout import checkout_bp
    from routes.webhook import webhook_bp
    from routes.admin import admin_bp
    from routes.suppliers import suppliers_bp
    from routes.notifications import notifications_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(designs_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(checkout_bp)
    app.register_blueprint(webhook_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(suppliers_bp)
    app.register_blueprint(notifications_bp)

    # Webhooks are never throttled
    limiter.exempt(webhook_bp)

    # CLI Commands
    @app.cli.command("reconcile-pending")
    @click.option("--hours", default=24, show_default=True, help="Look back N hours.")
    @click.option("--dry-run", is_flag=True, help="Report Stripe state without changing orders.")
    def reconcile_pending_cmd(hours, dry_run):
        """Reconcile checkout sessions whose orders are still pending payment."""
        from services.payments import reconcile_pending
        summary = reconcile_pending(get_db(), hours=hours, dry_run=dry_run)
        click.echo(
            f"Checked {summary['checked']} session(s): {summary['paid']} paid, "
            f"{summary['failed']} failed, {summary['errors']} error(s)."
        )

    @app.cli.command("grant-role")
    @click.argument("email")
    @click.argument("role")
    def grant_role_cmd(email, role):
        """Give an existing account a role (admin, supplier, user)."""
        from constants import ROLES
        from models import User
        from services.auth_tokens import grant_role
        if role not in ROLES:
            raise click.BadParameter(f"role must be one of {', '.join(ROLES)}")
        db = get_db()
        user = User.get_by_email(email, db=db)
        if not user:
            raise click.ClickException(f"No account for {email}")
        grant_role(db, user.id, role)
        click.echo(f"Granted {role} to {email}.")

    # Local Storage Serving (Only for Local Backend)
    if STORAGE_BACKEND != 's3':
        @app.route('/uploads/<path:filename>')
        def serve_uploads(filename):
            return send_from_directory(UPLOAD_DIR, filename)

    return app


# WSGI Entry Point
app = create_app()

if __name__ == "__main__":
    app.run(host='0.0.0.0', port=int(os.environ.get("PORT", "5000")), debug=not IS_PRODUCTION)
