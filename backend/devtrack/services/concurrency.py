# Overview: Service-layer operations for concurrency; optimistic version tags, locking and retry.

"""
Optimistic concurrency for item edits.

Two layers work together:

1. ETag precondition (compute_etag / check_precondition): the client sends
   back the tag it read; a mismatch is rejected before any write.
2. Compare-and-write at flush: InventoryItem.version_id is the mapper's
   version_id_col, so SQLAlchemy issues "UPDATE ... WHERE id = ? AND
   version_id = ?". If another writer committed in between, zero rows
   match and the flush raises StaleDataError, which commit_or_conflict()
   turns into ConcurrencyConflict.

The second layer closes the race between two "sufficient stock" checks that
both pass against the same snapshot; the first alone cannot.
"""

from __future__ import annotations

import hashlib
import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConcurrencyConflict
from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def compute_etag(item) -> str:
    """Opaque version tag: sha256 of id + last-modified (or created) timestamp. No side effects."""
    stamp = item.updated_at or item.created_at
    raw = f"{item.id}{stamp.isoformat() if stamp is not None else ''}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def _normalize_tag(tag: str) -> str:
    tag = tag.strip()
    if tag.startswith("W/"):
        tag = tag[2:]
    return tag.strip('"')


def tags_match(supplied: str, current: str) -> bool:
    return _normalize_tag(supplied) == current


def check_precondition(supplied_tag: str | None, item) -> None:
    """
    Allow the write when no tag was supplied or the tag is current.

    Raises:
        ConcurrencyConflict: the item changed since the caller read it
    """
    if not supplied_tag:
        return
    if not tags_match(supplied_tag, compute_etag(item)):
        current_app.logger.warning("Stale ETag for item %s", item.id)
        raise ConcurrencyConflict()


def commit_or_conflict() -> None:
    """
    Commit the session; a version_id mismatch at flush becomes ConcurrencyConflict.

    The session is rolled back before raising so the caller can re-fetch.
    """
    try:
        db.session.commit()
    except StaleDataError as exc:
        db.session.rollback()
        current_app.logger.warning("Optimistic lock failed: %s", exc)
        raise ConcurrencyConflict() from exc


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks), StaleDataError and
    ConcurrencyConflict. func must re-read whatever it validates, since
    each attempt starts from a rolled-back session.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError, ConcurrencyConflict) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc
