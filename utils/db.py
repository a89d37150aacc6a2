# utils/db.py

import logging
from contextlib import contextmanager
from threading import Lock
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

from .config import config

logger = logging.getLogger(__name__)

_engine: Optional[Engine] = None
_engine_lock = Lock()


def get_db_engine() -> Engine:
    """Get the shared SQLAlchemy engine, created on first use"""
    global _engine
    if _engine is not None:
        return _engine

    with _engine_lock:
        if _engine is None:
            url = config.get_database_url()
            kwargs = {
                'pool_pre_ping': True,
                'pool_recycle': config.get_app_setting('DB_POOL_RECYCLE', 3600),
            }
            if not str(url).startswith('sqlite'):
                kwargs['pool_size'] = config.get_app_setting('DB_POOL_SIZE', 5)

            _engine = create_engine(url, **kwargs)
            logger.info(f"Database engine created ({_engine.dialect.name})")
    return _engine


def dispose_db_engine():
    """Dispose the shared engine (used on config reload and by tests)"""
    global _engine
    with _engine_lock:
        if _engine is not None:
            _engine.dispose()
            _engine = None


@contextmanager
def db_transaction(engine: Engine):
    """Connection with an open transaction, committed on success and rolled back on error"""
    conn = engine.connect()
    trans = conn.begin()
    try:
        yield conn
        trans.commit()
        logger.debug("Transaction committed successfully")
    except Exception as e:
        trans.rollback()
        logger.error(f"Transaction rolled back due to error: {e}")
        raise
    finally:
        conn.close()
