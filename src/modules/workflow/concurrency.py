"""Optimistic precondition checks and conflict-aware flushing."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from src.exceptions import ConcurrentModificationException, DuplicateActiveSubmissionException

logger = logging.getLogger(__name__)


def check_expected_status(record: Any, expected_status: Any | None, label: str) -> None:
    """Refuse the action when the persisted status differs from the caller's view."""
    if expected_status is None or record.status == expected_status:
        return
    raise ConcurrentModificationException(
        f"{label} {record.id} changed since it was read",
        context={
            "scope_key": record.scope_key,
            "status": record.status,
            "expected_status": expected_status,
        },
    )


async def flush_or_conflict(db: AsyncSession, record: Any, label: str) -> None:
    """Flush pending changes, translating races into domain conflicts.

    A version counter mismatch means another writer got there first; a unique
    index violation means a concurrent request created the competing open
    record for the same scope.
    """
    record_id, scope_key = record.id, record.scope_key
    try:
        await db.flush()
    except StaleDataError as exc:
        await db.rollback()
        logger.info("Concurrent update on %s %s", label, record_id)
        raise ConcurrentModificationException(
            f"{label} {record_id} was modified by another request",
            context={"scope_key": scope_key},
        ) from exc
    except IntegrityError as exc:
        await db.rollback()
        if "unique" not in str(exc.orig).lower():
            raise
        logger.info("Unique scope violation while saving %s for scope %s", label, scope_key)
        raise DuplicateActiveSubmissionException(
            f"Another open {label.lower()} already exists for this option",
            context={"scope_key": scope_key},
        ) from exc
