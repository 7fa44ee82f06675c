# Overview: Transaction boundary and bounded retry for ledger mutations.

from __future__ import annotations

import logging
import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..errors import ConcurrentModification

logger = logging.getLogger(__name__)

# Substrings of driver messages that mean "try again", not "broken query"
_TRANSIENT_MARKERS = (
    "database is locked",
    "database table is locked",
    "deadlock",
    "could not serialize",
    "lock wait timeout",
)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; there the version_id
    columns catch lost updates at flush time instead.
    """
    return query.with_for_update()


def _is_transient(exc: Exception) -> bool:
    if isinstance(exc, StaleDataError):
        return True
    message = str(getattr(exc, "orig", exc)).lower()
    return any(marker in message for marker in _TRANSIENT_MARKERS)


def run_in_transaction(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Run func() and commit, as one atomic unit.

    func must re-read everything it touches (it is re-run from scratch after a
    rollback). Optimistic-lock conflicts and busy-database errors are retried
    with exponential backoff; once attempts are exhausted the caller gets
    ConcurrentModification. Any other error rolls back and propagates as is.
    """
    config = current_app.config
    if attempts is None:
        attempts = config.get("LEDGER_RETRY_ATTEMPTS", 5)
    if backoff_base is None:
        backoff_base = config.get("LEDGER_RETRY_BACKOFF", 0.05)

    for attempt in range(attempts):
        try:
            result = func()
            db.session.commit()
            return result
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if not _is_transient(exc):
                raise
            if attempt >= attempts - 1:
                raise ConcurrentModification(
                    f"Gave up after {attempts} attempts: {exc}"
                ) from exc
            logger.debug("Retrying after store contention (attempt %s): %s", attempt + 1, exc)
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
