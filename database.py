import logging
from contextlib import contextmanager

import psycopg2
from psycopg2.extras import DictCursor
from flask import g

from config import DATABASE_URL, IS_PRODUCTION
from utils.redaction import redact_database_url

logger = logging.getLogger(__name__)


def connect(url=None):
    """
    Open a wrapped connection. Requests go through get_db(); CLI jobs
    and scripts that run without an app context can call this directly.
    """
    url = url or DATABASE_URL
    try:
        conn = psycopg2.connect(url, cursor_factory=DictCursor)
    except psycopg2.Error as e:
        logger.error(
            "[DB] Connection Failed (%s) while connecting to %s",
            type(e).__name__,
            redact_database_url(url),
        )
        raise
    return PostgresDB(conn)


def get_db():
    """One connection per app context, closed on teardown."""
    if 'db' not in g:
        g.db = connect()
    return g.db


def close_connection(exception=None):
    db = g.pop('db', None)
    if db is None:
        return
    if exception is not None:
        # Unhandled error mid-request: drop whatever was not committed
        db.rollback()
    db.close()


class PostgresDB:
    """
    Thin psycopg2 wrapper.

    SQL is passed through untouched with %s placeholders. Writes are
    committed explicitly, either by the caller or through transaction().
    """
    def __init__(self, conn):
        self._conn = conn

    def execute(self, sql, params=None):
        cur = self._conn.cursor()
        try:
            cur.execute(sql, params)
            return cur
        except Exception as e:
            # Raw SQL can carry addresses and emails; keep it out of prod logs
            logger.error(f"[DB] Query Failed: {e}")
            if not IS_PRODUCTION:
                logger.error(f"[DB] SQL: {sql}")
            raise

    @contextmanager
    def transaction(self):
        """Commit when the block finishes, roll back if it raises."""
        try:
            yield self
        except Exception:
            self._conn.rollback()
            raise
        self._conn.commit()

    def commit(self):
        self._conn.commit()

    def rollback(self):
        self._conn.rollback()

    def close(self):
        self._conn.close()


def placeholders(values):
    """'%s, %s, %s' for an IN (...) clause."""
    return ", ".join(["%s"] * len(values))
