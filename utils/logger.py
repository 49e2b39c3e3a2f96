import logging
import json
import uuid
import sys
from datetime import datetime, timezone

from flask import request, has_request_context, g

from config import APP_STAGE, LOG_LEVEL

# Extra attributes callers may pass via `extra=` that end up as JSON keys
CONTEXT_FIELDS = ("order_id", "session_id", "event_id", "user_id")


class JSONFormatter(logging.Formatter):
    """One JSON object per line, with the request id when inside a request."""

    def format(self, record):
        log_record = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "stage": APP_STAGE,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_record[field] = value

        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)

        if has_request_context():
            log_record["method"] = request.method
            log_record["path"] = request.path
            log_record["remote_ip"] = request.remote_addr
            request_id = g.get("request_id")
            if request_id:
                log_record["request_id"] = request_id

        return json.dumps(log_record, default=str)


def setup_logger(app):
    """
    Route app, module (services.*, routes.*) and werkzeug logs to stdout
    as JSON. Under gunicorn the app logger reuses gunicorn's handlers.
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter())

    app.logger.handlers = [handler]
    app.logger.setLevel(LOG_LEVEL)
    app.logger.propagate = False

    root = logging.getLogger()
    if not any(isinstance(h.formatter, JSONFormatter) for h in root.handlers):
        root.addHandler(handler)
    root.setLevel(LOG_LEVEL)

    logging.getLogger('werkzeug').handlers = [handler]

    gunicorn_logger = logging.getLogger('gunicorn.error')
    if gunicorn_logger.handlers:
        app.logger.handlers = gunicorn_logger.handlers
        app.logger.setLevel(gunicorn_logger.level)

    @app.before_request
    def assign_request_id():
        g.request_id = request.headers.get("X-Request-Id") or uuid.uuid4().hex

    @app.after_request
    def echo_request_id(response):
        request_id = g.get("request_id")
        if request_id:
            response.headers["X-Request-Id"] = request_id
        return response
