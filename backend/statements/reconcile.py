from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, List, Optional, Sequence, Tuple

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from categorization.classifier import Classification
from errors import PersistenceError
from models import db
from models.transaction_model import TransactionRecord

from .extract_types import Candidate

logger = logging.getLogger(__name__)

ClassifiedRow = Tuple[Candidate, Classification]


@dataclass
class ReconcileResult:
    inserted: int = 0
    duplicates: int = 0

    @property
    def processed(self) -> int:
        return self.inserted + self.duplicates


def _build_record(
    user_id: int,
    statement_id: Optional[int],
    source: str,
    currency: str,
    hash_key: str,
    cand: Candidate,
    cls: Classification,
) -> TransactionRecord:
    return TransactionRecord(
        user_id=user_id,
        business_profile_id=cls.business_profile_id,
        statement_id=statement_id,
        source=source,
        hash_key=hash_key,
        date=cand.date,
        description=TransactionRecord.normalize_description(cand.description),
        amount=Decimal(str(cand.amount)).quantize(Decimal("0.01")),
        type=cls.type,
        currency=currency,
        raw_balance=(
            Decimal(str(cand.raw_balance)).quantize(Decimal("0.01"))
            if cand.raw_balance is not None else None
        ),
        category=cls.category,
        confidence=cls.confidence,
        needs_review=cls.needs_review,
        classification_json=json.dumps(cls.metadata()),
    )


def _existing_keys(user_id: int, keys: Sequence[str]) -> set:
    if not keys:
        return set()
    rows = (
        db.session.query(TransactionRecord.hash_key)
        .filter(TransactionRecord.user_id == user_id, TransactionRecord.hash_key.in_(list(keys)))
        .all()
    )
    return {r[0] for r in rows}


def _insert_one_by_one(records: List[TransactionRecord]) -> int:
    """Fallback when a batch collides with rows committed concurrently."""
    inserted = 0
    for rec in records:
        try:
            with db.session.begin_nested():
                db.session.add(rec)
        except IntegrityError:
            logger.debug("Skipping concurrent duplicate %s", rec.hash_key)
            continue
        inserted += 1
    db.session.commit()
    return inserted


def reconcile_rows(
    user_id: int,
    statement_id: Optional[int],
    rows: Sequence[ClassifiedRow],
    source: str,
    currency: str = "USD",
    batch_size: int = 50,
    on_progress: Optional[Callable[[int], None]] = None,
) -> ReconcileResult:
    """
    Persist classified rows as transactions, skipping every row whose dedup
    key already exists for the user (from this or any earlier run).
    Rows are committed in batches; `on_progress` receives the running
    processed count after each batch.
    """
    result = ReconcileResult()
    seen: set = set()
    batch_size = max(1, int(batch_size))

    for start in range(0, len(rows), batch_size):
        batch = rows[start:start + batch_size]
        keyed = [
            (TransactionRecord.compute_hash_key(user_id, c.date, c.amount, c.description), c, k)
            for c, k in batch
        ]

        try:
            existing = _existing_keys(user_id, [h for h, _, _ in keyed])
            new_records = []
            for hash_key, cand, cls in keyed:
                if hash_key in existing or hash_key in seen:
                    result.duplicates += 1
                    continue
                seen.add(hash_key)
                new_records.append(
                    _build_record(user_id, statement_id, source, currency, hash_key, cand, cls)
                )

            db.session.add_all(new_records)
            try:
                db.session.commit()
                added = len(new_records)
            except IntegrityError:
                # Rollback expunges the pending records; they can be added again.
                db.session.rollback()
                added = _insert_one_by_one(new_records)
            result.inserted += added
            result.duplicates += len(new_records) - added
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.exception("Reconciliation batch starting at row %d failed", start)
            raise PersistenceError(f"Could not persist transactions: {e.__class__.__name__}") from e

        if on_progress:
            on_progress(result.processed)

    logger.info(
        "Reconciled %d rows for user %s: %d inserted, %d duplicates",
        len(rows), user_id, result.inserted, result.duplicates,
    )
    return result


