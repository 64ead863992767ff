import hashlib
import json
from decimal import Decimal

from models import db

TYPE_INCOME = "INCOME"
TYPE_EXPENSE = "EXPENSE"


def transaction_type_for(amount) -> str:
    """Sign convention: positive amounts are income, everything else is an expense."""
    return TYPE_INCOME if Decimal(str(amount)) > 0 else TYPE_EXPENSE


class TransactionRecord(db.Model):
    """
    Persisted, user-specific financial event.
    Created by statement reconciliation; re-assignable to another profile by a correction.
    """

    __tablename__ = "transactions"

    id = db.Column(db.Integer, primary_key=True)

    # Ownership
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), index=True, nullable=False)
    business_profile_id = db.Column(
        db.Integer, db.ForeignKey("business_profiles.id"), index=True, nullable=False
    )
    statement_id = db.Column(
        db.Integer, db.ForeignKey("statements.id", ondelete="CASCADE"), index=True, nullable=True
    )

    # Source / identity
    source = db.Column(db.String(20), nullable=False, default="unspecified")  # pdf | csv | manual

    # Deduplication key (user_id + hash_key is unique)
    hash_key = db.Column(db.String(40), nullable=False)

    # Core transaction data
    date = db.Column(db.String(10), nullable=False)  # YYYY-MM-DD
    description = db.Column(db.Text, nullable=False)
    amount = db.Column(db.Numeric(12, 2), nullable=False)  # signed: +income, -expense
    type = db.Column(db.String(10), nullable=False)
    currency = db.Column(db.String(10), nullable=False, default="USD")
    raw_balance = db.Column(db.Numeric(14, 2), nullable=True)

    # Classification snapshot
    category = db.Column(db.String(120), nullable=False)
    confidence = db.Column(db.Float, nullable=False, default=0.0)
    needs_review = db.Column(db.Boolean, nullable=False, default=False)
    classification_json = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, server_default=db.func.now())
    updated_at = db.Column(db.DateTime, server_default=db.func.now(), onupdate=db.func.now())

    __table_args__ = (
        db.UniqueConstraint("user_id", "hash_key", name="uq_user_txn_hash"),
    )

    @staticmethod
    def normalize_description(desc: str) -> str:
        if not desc:
            return ""
        return " ".join(str(desc).split())

    @classmethod
    def compute_hash_key(cls, user_id: int, date: str, amount, description: str) -> str:
        """
        Stable digest of the dedup key (user, date, signed amount, description).
        Two candidates with the same four fields are the same transaction,
        whichever statement or run they came from.
        """
        amt = Decimal(str(amount)).quantize(Decimal("0.01"))
        desc = cls.normalize_description(description)
        key = f"{user_id}|{str(date).strip()}|{amt}|{desc}"
        return hashlib.sha1(key.encode("utf-8")).hexdigest()

    @property
    def classification(self) -> dict:
        if not self.classification_json:
            return {}
        return json.loads(self.classification_json)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "statement_id": self.statement_id,
            "business_profile_id": self.business_profile_id,
            "date": self.date,
            "description": self.description,
            "amount": float(self.amount or 0),
            "type": self.type,
            "currency": self.currency,
            "category": self.category,
            "confidence": self.confidence,
            "needs_review": bool(self.needs_review),
            "source": self.source,
            "classification": self.classification,
        }
