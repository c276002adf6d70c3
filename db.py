"""
PostgreSQL connection helpers shared by the routes and the scripts.
"""

import logging
import threading

import psycopg2

import config
from schema import ensure_schema

logger = logging.getLogger(__name__)

_schema_ready = False
_schema_lock = threading.Lock()


def connect():
    if config.DATABASE_URL:
        return psycopg2.connect(config.DATABASE_URL)
    return psycopg2.connect(**config.DB_CONFIG)


def get_db():
    """Open a connection, evolving the schema on the first call of the process."""
    global _schema_ready
    conn = connect()
    if config.AUTO_MIGRATE and not _schema_ready:
        with _schema_lock:
            if not _schema_ready:
                try:
                    ensure_schema(conn)
                except Exception:
                    logger.error("Schema migration failed", exc_info=True)
                    conn.close()
                    raise
                _schema_ready = True
    return conn


def row_to_dict(cursor, row):
    if row is None:
        return None
    cols = [d[0] for d in cursor.description]
    return dict(zip(cols, row))


def rows_to_dicts(cursor, rows):
    cols = [d[0] for d in cursor.description]
    return [dict(zip(cols, r)) for r in rows]
