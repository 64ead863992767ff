"""
Ordered keyword rule table used by the statement classifier.

Rules are evaluated top to bottom and the first match wins, so narrow
categories sit above broad ones (Payroll before Business Expenses,
Education before Shopping). Keywords are matched as case-insensitive
substrings of the transaction description.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, asdict
from typing import List, Optional, Tuple, Literal

from pydantic import BaseModel, Field, ValidationError as SchemaValidationError

from errors import ValidationError

UNCATEGORIZED_CATEGORY = "Uncategorized"

PERSONAL = "PERSONAL"
BUSINESS = "BUSINESS"
INCOME = "INCOME"
EXPENSE = "EXPENSE"


@dataclass(frozen=True)
class ClassificationRule:
    category: str
    keywords: Tuple[str, ...]
    profile_hint: Optional[str] = None      # PERSONAL | BUSINESS
    override_profile: bool = False          # strong signal: beats the declared profile
    applies_to: Optional[str] = None        # INCOME | EXPENSE | None (both)
    confidence: float = 0.9
    name: str = ""
    profile_id: Optional[int] = None        # user rules pin an exact profile

    @property
    def rule_id(self) -> str:
        return self.name or self.category.lower().replace(" ", "_")

    def to_dict(self) -> dict:
        d = asdict(self)
        d["keywords"] = list(self.keywords)
        d["rule_id"] = self.rule_id
        return d


DEFAULT_RULES: List[ClassificationRule] = [
    # ── Income ──────────────────────────────────────────────────────────────
    ClassificationRule(
        "Salary", ("salary", "direct deposit", "paycheck", "payroll deposit"),
        profile_hint=PERSONAL, applies_to=INCOME, confidence=0.98,
    ),
    ClassificationRule(
        "Investment Income", ("dividend", "interest paid", "interest earned", "capital gain"),
        applies_to=INCOME, confidence=0.95,
    ),
    ClassificationRule(
        "Business Revenue", ("invoice", "client payment", "revenue", "stripe transfer", "square deposit"),
        profile_hint=BUSINESS, override_profile=True, applies_to=INCOME, confidence=0.92,
    ),
    ClassificationRule(
        "Refunds", ("refund", "reversal", "cashback"),
        applies_to=INCOME, confidence=0.85,
    ),

    # ── Employer payroll: always business ───────────────────────────────────
    ClassificationRule(
        "Payroll", ("payroll", "wages", "gusto", "adp ", "paychex", "contractor payment"),
        profile_hint=BUSINESS, override_profile=True, applies_to=EXPENSE, confidence=0.96,
    ),

    # ── Specific personal categories ────────────────────────────────────────
    ClassificationRule(
        "Charitable Giving", ("donation", "charity", "charitable", "gift", "tithe", "red cross"),
        profile_hint=PERSONAL, confidence=0.93,
    ),
    ClassificationRule(
        "Insurance", ("insurance", "geico", "state farm", "allstate", "progressive ins"),
        confidence=0.93,
    ),
    ClassificationRule(
        "Education", ("tuition", "school", "university", "college", "student loan", "coursera", "udemy"),
        profile_hint=PERSONAL, confidence=0.94,
    ),
    ClassificationRule(
        "Housing", ("mortgage", "rent payment", "monthly rent", "hoa ", "homeowners", "property tax"),
        profile_hint=PERSONAL, applies_to=EXPENSE, confidence=0.95,
    ),
    ClassificationRule(
        "Utilities", ("electric", "water bill", "gas bill", "internet", "comcast", "verizon",
                      "phone bill", "utility", "cable"),
        profile_hint=PERSONAL, applies_to=EXPENSE, confidence=0.94,
    ),
    ClassificationRule(
        "Groceries", ("grocery", "safeway", "whole foods", "trader joe", "kroger", "supermarket", "aldi"),
        profile_hint=PERSONAL, applies_to=EXPENSE, confidence=0.92,
    ),
    ClassificationRule(
        "Dining Out", ("restaurant", "dining", "starbucks", "coffee", "cafe", "doordash",
                       "grubhub", "uber eats", "food delivery"),
        profile_hint=PERSONAL, applies_to=EXPENSE, confidence=0.90,
    ),
    ClassificationRule(
        "Healthcare", ("pharmacy", "cvs", "walgreens", "doctor", "dentist", "medical",
                       "hospital", "clinic"),
        profile_hint=PERSONAL, applies_to=EXPENSE, confidence=0.93,
    ),
    ClassificationRule(
        "Transportation", ("gas station", "shell", "exxon", "chevron", "uber", "lyft",
                           "taxi", "parking", "fuel", "toll"),
        applies_to=EXPENSE, confidence=0.89,
    ),
    ClassificationRule(
        "Entertainment", ("netflix", "spotify", "hulu", "disney", "movie", "theater", "cinema"),
        profile_hint=PERSONAL, applies_to=EXPENSE, confidence=0.91,
    ),

    # ── Business categories ─────────────────────────────────────────────────
    ClassificationRule(
        "Marketing", ("advertising", "marketing", "google ads", "facebook ads", "linkedin ads"),
        profile_hint=BUSINESS, override_profile=True, applies_to=EXPENSE, confidence=0.87,
    ),
    ClassificationRule(
        "Professional Services", ("legal", "attorney", "accounting", "bookkeeping", "consulting", "cpa "),
        profile_hint=BUSINESS, applies_to=EXPENSE, confidence=0.90,
    ),
    ClassificationRule(
        "Business Expenses", ("office", "equipment", "software", "saas", "license", "coworking"),
        profile_hint=BUSINESS, applies_to=EXPENSE, confidence=0.88,
    ),

    # ── Broad fallbacks ─────────────────────────────────────────────────────
    ClassificationRule(
        "Shopping", ("amazon", "target", "walmart", "costco", "shopping", "retail", "mall"),
        applies_to=EXPENSE, confidence=0.85,
    ),
    ClassificationRule(
        "Transfers", ("transfer", "zelle", "venmo", "paypal"),
        confidence=0.75,
    ),
]


class _RuleSchema(BaseModel):
    category: str = Field(min_length=1)
    keywords: List[str] = Field(min_length=1)
    profile_hint: Optional[Literal["PERSONAL", "BUSINESS"]] = None
    override_profile: bool = False
    applies_to: Optional[Literal["INCOME", "EXPENSE"]] = None
    confidence: float = Field(default=0.9, ge=0.0, le=1.0)
    name: str = ""


def load_rules_file(path: str) -> List[ClassificationRule]:
    """Load extra rules from a JSON list. They are evaluated before the built-in table."""
    try:
        with open(path, encoding="utf-8") as f:
            raw = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ValidationError(f"Could not load classifier rules from {path}: {e}") from e

    if not isinstance(raw, list):
        raise ValidationError(f"Classifier rules file {path} must contain a JSON list")

    rules: List[ClassificationRule] = []
    for idx, item in enumerate(raw):
        try:
            parsed = _RuleSchema(**item)
        except (SchemaValidationError, TypeError) as e:
            raise ValidationError(f"Invalid classifier rule #{idx + 1} in {path}: {e}") from e
        rules.append(
            ClassificationRule(
                category=parsed.category,
                keywords=tuple(k.lower() for k in parsed.keywords if k.strip()),
                profile_hint=parsed.profile_hint,
                override_profile=parsed.override_profile,
                applies_to=parsed.applies_to,
                confidence=parsed.confidence,
                name=parsed.name,
            )
        )
    return rules
