from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Iterable, Optional

from flask import current_app

from errors import AppError, ConflictError

from .pipeline import run_statement

logger = logging.getLogger(__name__)


class StatementWorker:
    """Background pool running one pipeline per statement, each inside its own app context."""

    def __init__(self, app, max_workers: int = 3):
        self.app = app
        self.pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="statement")

    def submit(self, statement_id: int) -> Future:
        return self.pool.submit(self._run, statement_id)

    def _run(self, statement_id: int) -> None:
        with self.app.app_context():
            try:
                run_statement(statement_id)
            except ConflictError as e:
                logger.info("Statement %s not started: %s", statement_id, e.message)
            except AppError as e:
                # Already recorded on the statement by the pipeline.
                logger.warning("Background run of statement %s failed: %s", statement_id, e.message)
            except Exception:
                logger.exception("Background run of statement %s crashed", statement_id)

    def shutdown(self, wait: bool = True) -> None:
        self.pool.shutdown(wait=wait)


def init_worker(app) -> StatementWorker:
    worker = StatementWorker(app, max_workers=app.config.get("STATEMENT_WORKERS", 3))
    app.extensions["statement_worker"] = worker
    return worker


def enqueue(statement_ids: Iterable[int]) -> Optional[list]:
    """Queue statements for background processing when auto-processing is on."""
    if not current_app.config.get("STATEMENT_AUTO_PROCESS"):
        return None
    worker: StatementWorker = current_app.extensions["statement_worker"]
    return [worker.submit(sid) for sid in statement_ids]
