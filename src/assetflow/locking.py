"""Critical sections for multi-row writes.

A critical section combines an in-process lock per key (``asset:<id>``,
``lineage:<user_id>``, ``workflow:<id>``) with the session's transaction:
it commits when the block exits cleanly and rolls back on any error, so no
partial write is ever visible. The in-process lock only orders threads of
one worker. Writes that must also exclude other worker processes take a
database lock inside the block: row locks (``SELECT ... FOR UPDATE``) for
single records, ``database.hold_transaction_lock`` for a whole lineage
graph. A unique-pair violation on relationships surfaces as
DUPLICATE_RELATIONSHIP.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from threading import Lock
from typing import Iterator

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from assetflow.errors import AssetFlowError, DatabaseError, DuplicateRelationshipError

logger = logging.getLogger(__name__)


class KeyedLock:
    """Registry of reentrancy-free locks created on demand per key."""

    def __init__(self):
        self._guard = Lock()
        self._locks: dict[str, tuple[Lock, int]] = {}

    def _checkout(self, key: str) -> Lock:
        with self._guard:
            lock, users = self._locks.get(key, (None, 0))
            if lock is None:
                lock = Lock()
            self._locks[key] = (lock, users + 1)
            return lock

    def _checkin(self, key: str) -> None:
        with self._guard:
            lock, users = self._locks[key]
            if users <= 1:
                del self._locks[key]
            else:
                self._locks[key] = (lock, users - 1)

    @contextmanager
    def hold(self, *keys: str) -> Iterator[None]:
        """Hold every key at once; keys are acquired in sorted order."""
        ordered = sorted(set(keys))
        acquired: list[tuple[str, Lock]] = []
        try:
            for key in ordered:
                lock = self._checkout(key)
                lock.acquire()
                acquired.append((key, lock))
            yield
        finally:
            for key, lock in reversed(acquired):
                lock.release()
                self._checkin(key)

    def active_keys(self) -> list[str]:
        with self._guard:
            return sorted(self._locks)


keyed_locks = KeyedLock()


# PostgreSQL reports the constraint name; SQLite only lists the columns.
_DUPLICATE_EDGE_MARKERS = (
    "uq_asset_relationships_pair",
    "asset_relationships.parent_asset_id, asset_relationships.child_asset_id",
)


def _is_duplicate_edge(exc: IntegrityError) -> bool:
    diag = getattr(exc.orig, "diag", None)
    detail = f"{getattr(diag, 'constraint_name', None) or ''} {exc.orig}"
    return any(marker in detail for marker in _DUPLICATE_EDGE_MARKERS)


def asset_key(asset_id) -> str:
    return f"asset:{asset_id}"


def lineage_key(user_id) -> str:
    return f"lineage:{user_id}"


def workflow_key(workflow_id) -> str:
    return f"workflow:{workflow_id}"


@contextmanager
def critical_section(db: Session, *keys: str, locks: KeyedLock | None = None) -> Iterator[Session]:
    """Run a block as one all-or-nothing unit under the given keyed locks."""
    registry = locks or keyed_locks
    with registry.hold(*keys):
        try:
            yield db
            db.commit()
        except AssetFlowError:
            db.rollback()
            raise
        except IntegrityError as exc:
            db.rollback()
            if _is_duplicate_edge(exc):
                raise DuplicateRelationshipError() from exc
            logger.error("Rolled back critical section %s: %s", ",".join(keys), exc.__class__.__name__)
            raise DatabaseError() from exc
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("Rolled back critical section %s: %s", ",".join(keys), exc.__class__.__name__)
            raise DatabaseError() from exc
        except BaseException:
            db.rollback()
            raise
