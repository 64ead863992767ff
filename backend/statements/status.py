"""
Statement state machine.

Every change is a single conditional UPDATE of the `state` column, so a
poller can never read a status that disagrees with its processing stage and
two workers can never both move the same statement forward.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import update

from errors import ConflictError, NotFoundError, statement_not_found
from models import db
from models.statement_model import Statement, StatementState

logger = logging.getLogger(__name__)

S = StatementState

# Forward moves of a successful run.
NEXT_STATE = {
    S.PENDING_UPLOADED: S.EXTRACTING,
    S.EXTRACTING: S.CLASSIFYING,
    S.CLASSIFYING: S.RECONCILING,
    S.RECONCILING: S.COMPLETED,
}

# Failure keeps the stage the run was in.
FAILED_STATE = {
    S.EXTRACTING: S.FAILED_EXTRACTING,
    S.CLASSIFYING: S.FAILED_CLASSIFYING,
    S.RECONCILING: S.FAILED_RECONCILING,
}

FAILED_STATES = tuple(FAILED_STATE.values())
RESETTABLE_STATES = FAILED_STATES + (S.COMPLETED,)


def _conditional_update(statement_id: int, expected, target: StatementState, **values) -> bool:
    """UPDATE ... SET state=target WHERE id=? AND state IN expected. True when a row moved."""
    if isinstance(expected, StatementState):
        expected = (expected,)
    stmt = (
        update(Statement)
        .where(Statement.id == statement_id)
        .where(Statement.state.in_([s.name for s in expected]))
        .values(state=target.name, **values)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    db.session.commit()
    moved = result.rowcount == 1
    if moved:
        logger.info("Statement %s -> %s/%s", statement_id, target.status, target.stage)
    return moved


def claim(statement_id: int) -> None:
    """Take ownership of a PENDING statement for one pipeline run."""
    if not _conditional_update(statement_id, S.PENDING_UPLOADED, S.EXTRACTING):
        current = db.session.get(Statement, statement_id)
        if current is None:
            raise NotFoundError(statement_not_found(statement_id))
        db.session.refresh(current)
        raise ConflictError(
            f"Statement {statement_id} is {current.status}/{current.processing_stage}, not PENDING"
        )


def advance(statement_id: int, current: StatementState, **values) -> StatementState:
    """Move a running statement to its next stage, writing any counters in the same UPDATE."""
    target = NEXT_STATE[current]
    if not _conditional_update(statement_id, current, target, **values):
        raise ConflictError(f"Statement {statement_id} left {current.name} unexpectedly")
    return target


def record_progress(statement_id: int, processed: int) -> None:
    """Counter-only write while reconciling; the state does not change."""
    stmt = (
        update(Statement)
        .where(Statement.id == statement_id)
        .where(Statement.state == S.RECONCILING.name)
        .values(processed_count=processed)
        .execution_options(synchronize_session=False)
    )
    db.session.execute(stmt)
    db.session.commit()


def fail(statement_id: int, current: StatementState, message: str) -> None:
    """
    Mark a running statement FAILED at its current stage and append the
    message to the error log. processed_count is left as it is.
    """
    db.session.rollback()
    row = db.session.get(Statement, statement_id)
    if row is None:
        return
    db.session.refresh(row)

    stamp = datetime.utcnow().strftime("%Y-%m-%d %H:%M:%S")
    line = f"[{stamp}] {current.stage}: {message}"
    error_log = f"{row.error_log}\n{line}" if row.error_log else line

    target = FAILED_STATE.get(current, S.FAILED_EXTRACTING)
    if not _conditional_update(statement_id, current, target, error_log=error_log):
        logger.warning("Statement %s was not in %s when failing it", statement_id, current.name)


def reset(statement: Statement, allowed=RESETTABLE_STATES) -> None:
    """Put one statement back to PENDING/UPLOADED with a clear error log."""
    if statement.state_enum.is_processing:
        raise ConflictError(f"Statement {statement.id} is being processed")
    if not _conditional_update(statement.id, allowed, S.PENDING_UPLOADED, error_log=None):
        raise ConflictError(
            f"Statement {statement.id} cannot be reset from {statement.status}/{statement.processing_stage}"
        )
    db.session.refresh(statement)


def retry_failed(user_id: Optional[int] = None) -> List[int]:
    """
    Reset every FAILED statement (optionally only one user's) to PENDING/UPLOADED.
    Already persisted transactions are kept; the next run deduplicates against them.
    """
    q = Statement.query.filter(Statement.state.in_([s.name for s in FAILED_STATES]))
    if user_id is not None:
        q = q.filter(Statement.user_id == user_id)
    ids = [row.id for row in q.with_entities(Statement.id).all()]
    if not ids:
        return []

    stmt = (
        update(Statement)
        .where(Statement.id.in_(ids))
        .where(Statement.state.in_([s.name for s in FAILED_STATES]))
        .values(state=S.PENDING_UPLOADED.name, error_log=None)
        .execution_options(synchronize_session=False)
    )
    db.session.execute(stmt)
    db.session.commit()
    logger.info("Reset %d failed statements for retry", len(ids))
    return ids
