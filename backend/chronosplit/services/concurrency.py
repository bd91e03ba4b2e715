# Overview: Retry helpers for database writes that can race across requests.

from __future__ import annotations

import time

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1, retry_on=()):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (locks) and StaleDataError, plus any extra
    exception types passed in retry_on (e.g. IntegrityError for upserts
    racing on a unique key).
    """
    retryable = (OperationalError, StaleDataError) + tuple(retry_on)
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except retryable as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


UPSERT_RETRY_ON = (IntegrityError,)
