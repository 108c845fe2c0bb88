# Overview: Transaction helpers shared by every writer; locking, retry and rollback policy.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..validation import InfrastructureError, PosError


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def begin_write():
    """
    Start the write transaction.

    SQLite defers taking the write lock until the first write, so two
    transactions can both read and then one fails on upgrade. BEGIN IMMEDIATE
    takes the reserved lock up front; other dialects rely on row locks.
    """
    if db.engine.dialect.name == "sqlite":
        db.session.execute(text("BEGIN IMMEDIATE"))


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float = 0.1):
    """
    Execute a DB operation as one unit of work.

    - Retries on OperationalError (deadlocks, locks) and StaleDataError
      (optimistic locking conflicts).
    - Any exception rolls the session back before propagating, so no
      partial write is ever left pending.
    - Business errors (PosError) propagate unchanged; remaining
      SQLAlchemy errors surface as InfrastructureError.
    """
    if attempts is None:
        attempts = current_app.config.get("TX_RETRY_ATTEMPTS", 3)

    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                current_app.logger.exception("Transaction failed after %d attempts", attempts)
                raise InfrastructureError("Transaction failed, please retry") from exc
            time.sleep(backoff_base * (2 ** attempt))
        except PosError:
            db.session.rollback()
            raise
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.exception("Database error")
            raise InfrastructureError("Database error") from exc
        except Exception:
            db.session.rollback()
            raise
