"""
One statement processing run: claim, extract, classify, reconcile.

Each phase boundary is a single state transition (see status.py). Any
failure marks the statement FAILED at the stage it was in, records the
message in its error log and is re-raised to whoever started the run.
"""
from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import List, Optional

from flask import current_app

from categorization.classifier import Classifier, ProfileRef
from categorization.merchant_rules import classifier_for_user
from errors import AppError, ClassificationError, NotFoundError, statement_not_found
from ledger.services import recompute_aggregates
from models import db
from models.statement_model import Statement, StatementState
from models.user_model import User
from profiles.services import active_profiles, resolve_profile_id
from storage.object_store import get_object_store

from .analysis import running_balance_mismatches, statement_summary
from .extract import extract_statement
from .extract_types import Candidate, ExtractionResult
from .reconcile import ClassifiedRow, reconcile_rows
from .schemas import parse_column_mapping
from . import status

logger = logging.getLogger(__name__)

S = StatementState


def _load_extraction(statement_id: int, source: dict) -> ExtractionResult:
    """
    Reuse the stored payload when there is one, otherwise read and parse the
    file. `source` is a plain snapshot of the row; no session is open here.
    """
    if source["raw_payload"]:
        logger.info("Statement %s: reusing stored extraction payload", statement_id)
        return ExtractionResult.from_payload(source["raw_payload"])

    data = get_object_store().read(source["storage_path"])
    cfg = current_app.config
    return extract_statement(
        data,
        source["source_type"],
        column_mapping=parse_column_mapping(source["column_mapping"]),
        max_pages=cfg.get("PDF_MAX_PAGES", 50),
        timeout=cfg.get("PDF_EXTRACTION_TIMEOUT_SECONDS"),
    )


def classify_candidates(
    classifier: Classifier,
    candidates: List[Candidate],
    profiles: List[ProfileRef],
    declared_profile_id: int,
) -> List[ClassifiedRow]:
    """Classify every candidate; a record that cannot be classified is kept as Uncategorized."""
    rows: List[ClassifiedRow] = []
    for cand in candidates:
        try:
            cls = classifier.classify(cand.description, cand.amount, profiles, declared_profile_id)
        except ClassificationError as e:
            logger.warning("Line %s left uncategorized: %s", cand.line_no, e.message)
            cls = classifier.uncategorized(cand.amount, declared_profile_id, e.message)
        rows.append((cand, cls))
    return rows


def _declared_profile(statement: Statement) -> int:
    user = db.session.get(User, statement.user_id)
    requested = statement.business_profile_id
    try:
        return resolve_profile_id(user, requested)
    except NotFoundError:
        # The upload's profile was deactivated since; fall back to the user's current one.
        logger.warning("Statement %s: profile %s no longer active", statement.id, requested)
        return resolve_profile_id(user, None)


def run_statement(statement_id: int, user_id: Optional[int] = None) -> Statement:
    """
    Process one PENDING statement to COMPLETED.
    Raises ConflictError if another run holds it, NotFoundError if it is not
    the caller's, and the phase's own error after marking it FAILED.
    """
    statement = db.session.get(Statement, statement_id)
    if statement is None or (user_id is not None and statement.user_id != user_id):
        raise NotFoundError(statement_not_found(statement_id))

    status.claim(statement_id)
    state = S.EXTRACTING
    try:
        db.session.refresh(statement)
        source = {
            "storage_path": statement.storage_path,
            "source_type": statement.source_type,
            "column_mapping": statement.column_mapping,
            "raw_payload": statement.raw_payload,
        }
        # Release the connection before storage and parsing, which may be slow.
        db.session.commit()
        extraction = _load_extraction(statement_id, source)
        candidates = extraction.candidates
        state = status.advance(
            statement_id,
            S.EXTRACTING,
            raw_payload=extraction.to_payload(source["source_type"]),
            record_count=len(candidates),
            processed_count=0,
        )

        declared_id = _declared_profile(statement)
        profiles = [ProfileRef(p.id, p.type) for p in active_profiles(statement.user_id)]
        classifier = classifier_for_user(statement.user_id)
        rows = classify_candidates(classifier, candidates, profiles, declared_id)
        state = status.advance(statement_id, S.CLASSIFYING)

        result = reconcile_rows(
            statement.user_id,
            statement_id,
            rows,
            source=statement.source_type.lower(),
            currency=current_app.config.get("DEFAULT_CURRENCY", "USD"),
            batch_size=current_app.config.get("RECONCILE_BATCH_SIZE", 50),
            on_progress=lambda n: status.record_progress(statement_id, n),
        )
        recompute_aggregates(statement.user_id)

        summary = statement_summary(
            [
                {
                    "amount": cand.amount,
                    "category": cls.category,
                    "business_profile_id": cls.business_profile_id,
                    "needs_review": cls.needs_review,
                }
                for cand, cls in rows
            ],
            {p.id: p.type for p in profiles},
            mismatches=running_balance_mismatches(candidates),
            diagnostics=extraction.diagnostics,
        )
        summary["inserted"] = result.inserted
        summary["duplicates"] = result.duplicates

        state = status.advance(
            statement_id,
            S.RECONCILING,
            processed_count=result.processed,
            analysis_json=json.dumps(summary),
            processed_at=datetime.utcnow(),
        )
    except AppError as e:
        logger.warning("Statement %s failed while %s: %s", statement_id, state.stage, e.message)
        status.fail(statement_id, state, e.message)
        raise
    except Exception as e:
        logger.exception("Statement %s crashed while %s", statement_id, state.stage)
        status.fail(statement_id, state, f"Unexpected error: {e.__class__.__name__}")
        raise

    db.session.refresh(statement)
    logger.info(
        "Statement %s completed: %d records, %d new transactions",
        statement_id, statement.record_count, result.inserted,
    )
    return statement
