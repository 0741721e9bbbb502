# Overview: Service-layer helpers for row locking and retrying conflicting writes.

from __future__ import annotations

import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Lock the selected rows until the surrounding transaction ends.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; version_id columns still
    catch lost updates there.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Run a unit of work, retrying on lock failures and optimistic-lock conflicts.

    The session is rolled back before each retry, so func must re-read
    everything it touches.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError):
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
