"""
Unit-of-work and scoped lookup helpers for workspace services.

Transaction policy: service functions that mutate state wrap their body in
``atomic()``. Inner helpers (ensure_workspace, the seeder, the per-entity
preparers) only flush; ``atomic()`` owns the single commit/rollback.

Usage:
    with atomic("create_project_budget"):
        project, workspace = ensure_workspace(project_id)
        ...

    task = get_scoped(WorkspaceTask, task_id, workspace_id=workspace.id)
"""

import logging
from contextlib import contextmanager

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError

from workspace_hub.core.exceptions import NotFoundError, ValidationError
from workspace_hub.models import db

logger = logging.getLogger(__name__)


@contextmanager
def atomic(operation: str = "workspace operation"):
    """Run the block in one transaction: commit on success, roll back on error.

    Domain errors (ValidationError / NotFoundError) are re-raised untouched.
    Database errors are logged with a traceback first.
    """
    try:
        yield db.session
        db.session.commit()
    except (ValidationError, NotFoundError):
        db.session.rollback()
        raise
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Integrity error during %s: %s", operation, exc.orig)
        raise
    except OperationalError:
        db.session.rollback()
        logger.exception("Database operational error during %s", operation)
        raise
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Unexpected database error during %s", operation)
        raise
    except Exception:
        db.session.rollback()
        raise


def get_or_create(model, lookup: dict, defaults: dict | None = None):
    """Return ``(instance, created)`` for a row guarded by a unique key.

    The insert runs inside a savepoint; when a concurrent writer wins the
    unique constraint, the savepoint is discarded and the winner's row is
    re-read.
    """
    stmt = select(model).filter_by(**lookup)
    instance = db.session.execute(stmt).scalar_one_or_none()
    if instance is not None:
        return instance, False

    instance = model(**lookup, **(defaults or {}))
    try:
        with db.session.begin_nested():
            db.session.add(instance)
            db.session.flush()
    except IntegrityError:
        logger.info(
            "Concurrent create of %s resolved by re-read",
            model.__name__, extra={"lookup": lookup},
        )
        return db.session.execute(stmt).scalar_one(), False
    return instance, True


def get_scoped(model, pk, *, workspace_id: int, lock: bool = False, label: str | None = None):
    """Fetch one workspace-owned row by PK, or raise NotFoundError.

    A row that exists under another workspace is reported exactly like a
    missing one.
    """
    if pk is None or pk == "":
        raise ValidationError(f"{label or model.__name__} id is required.", field="id")
    try:
        pk = int(pk)
    except (TypeError, ValueError):
        raise NotFoundError(label or model.__name__, pk, workspace_id=workspace_id) from None

    stmt = select(model).where(model.id == pk, model.workspace_id == workspace_id)
    if lock:
        stmt = stmt.with_for_update()
    instance = db.session.execute(stmt).scalar_one_or_none()
    if instance is None:
        raise NotFoundError(label or model.__name__, pk, workspace_id=workspace_id)
    return instance
