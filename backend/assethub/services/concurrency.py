# Overview: Transaction boundaries and row locking shared by every service.

from __future__ import annotations

from contextlib import contextmanager

from flask import current_app
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConflictError
from ..extensions import db


_DEPTH_KEY = "assethub.atomic_depth"
_ON_COMMIT_KEY = "assethub.on_commit"


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    On SQLite the version_id check on the row is what catches a concurrent
    writer.
    """
    return query.with_for_update()


@contextmanager
def atomic():
    """
    One unit of work: commit once on success, roll back and re-raise on failure.

    Nested ``atomic()`` blocks join the outermost one (they only flush), so an
    orchestrator calling into the ledgers shares a single transaction.

    There are no retries. An optimistic-lock clash surfaces as ConflictError.
    Callbacks registered with ``on_commit`` run after the outermost commit.
    """
    session = db.session
    depth = session.info.get(_DEPTH_KEY, 0)
    session.info[_DEPTH_KEY] = depth + 1
    try:
        yield session
        if depth:
            session.flush()
        else:
            session.commit()
    except StaleDataError as exc:
        _abort(depth)
        raise ConflictError("Record was modified by another request; reload and try again") from exc
    except Exception:
        _abort(depth)
        raise
    finally:
        session.info[_DEPTH_KEY] = depth

    if depth == 0:
        _run_on_commit()


def on_commit(callback) -> None:
    """
    Run ``callback()`` after the enclosing unit of work commits.

    Outside of ``atomic()`` the callback runs immediately. Callbacks are
    best-effort: failures are logged, never raised.
    """
    session = db.session
    if not session.info.get(_DEPTH_KEY, 0):
        _invoke(callback)
        return
    session.info.setdefault(_ON_COMMIT_KEY, []).append(callback)


def _abort(depth: int) -> None:
    if depth:
        return
    db.session.rollback()
    db.session.info.pop(_ON_COMMIT_KEY, None)


def _run_on_commit() -> None:
    callbacks = db.session.info.pop(_ON_COMMIT_KEY, [])
    for callback in callbacks:
        _invoke(callback)


def _invoke(callback) -> None:
    try:
        callback()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Post-commit callback failed")
