"""
Rule-based transaction classifier.

Given one extracted candidate and the owner's active business profiles, assign
a category, a profile, an INCOME/EXPENSE type and a confidence in [0, 1].
"""

from __future__ import annotations

import math
from dataclasses import dataclass, asdict, field
from decimal import Decimal, InvalidOperation
from typing import Iterable, List, Optional, Sequence

from errors import ClassificationError
from .rules import (
    ClassificationRule,
    DEFAULT_RULES,
    UNCATEGORIZED_CATEGORY,
    INCOME,
    EXPENSE,
)

# Each extra keyword of the winning rule found in the description adds this much.
_EXTRA_KEYWORD_BONUS = 0.02


@dataclass(frozen=True)
class ProfileRef:
    """The slice of a business profile the classifier needs."""
    id: int
    type: str


@dataclass
class Classification:
    business_profile_id: int
    category: str
    type: str
    confidence: float
    needs_review: bool
    method: str                       # "rule" | "fallback" | "error"
    rule_id: Optional[str] = None
    matched_keywords: List[str] = field(default_factory=list)
    profile_overridden: bool = False
    error: Optional[str] = None

    def metadata(self) -> dict:
        d = asdict(self)
        for k in ("business_profile_id", "category", "type", "confidence", "needs_review"):
            d.pop(k)
        return d


def _clamp(value: float) -> float:
    if math.isnan(value):
        return 0.0
    return max(0.0, min(1.0, value))


def _type_for_amount(amount) -> str:
    try:
        return INCOME if Decimal(str(amount)) > 0 else EXPENSE
    except InvalidOperation as e:
        raise ClassificationError(f"Amount '{amount}' is not a number") from e


def match_rule(
    description: str, txn_type: str, rules: Sequence[ClassificationRule]
) -> tuple[Optional[ClassificationRule], List[str]]:
    """Return the first rule (in table order) whose keywords appear in the description."""
    text = (description or "").lower()
    for rule in rules:
        if rule.applies_to and rule.applies_to != txn_type:
            continue
        hits = [kw for kw in rule.keywords if kw and kw.lower() in text]
        if hits:
            return rule, hits
    return None, []


class Classifier:
    """Deterministic matcher over an ordered rule table."""

    def __init__(
        self,
        rules: Optional[Iterable[ClassificationRule]] = None,
        review_threshold: float = 0.7,
    ):
        self.rules: List[ClassificationRule] = list(rules if rules is not None else DEFAULT_RULES)
        self.review_threshold = review_threshold

    def with_rules(self, first: Iterable[ClassificationRule]) -> "Classifier":
        """A classifier that tries `first` before this one's table."""
        first = list(first)
        if not first:
            return self
        return Classifier(first + self.rules, review_threshold=self.review_threshold)

    def classify(
        self,
        description: str,
        amount,
        profiles: Sequence[ProfileRef],
        declared_profile_id: int,
    ) -> Classification:
        if not description or not str(description).strip():
            raise ClassificationError("Transaction has no description")

        txn_type = _type_for_amount(amount)
        rule, hits = match_rule(description, txn_type, self.rules)

        if rule is None:
            return Classification(
                business_profile_id=declared_profile_id,
                category=UNCATEGORIZED_CATEGORY,
                type=txn_type,
                confidence=0.0,
                needs_review=True,
                method="fallback",
            )

        confidence = _clamp(rule.confidence + _EXTRA_KEYWORD_BONUS * (len(hits) - 1))
        profile_id, overridden = self._route_profile(rule, profiles, declared_profile_id)
        return Classification(
            business_profile_id=profile_id,
            category=rule.category,
            type=txn_type,
            confidence=confidence,
            needs_review=confidence < self.review_threshold,
            method="rule",
            rule_id=rule.rule_id,
            matched_keywords=hits,
            profile_overridden=overridden,
        )

    def uncategorized(self, amount, declared_profile_id: int, error: str) -> Classification:
        """Result used when a record cannot be classified; it is still persisted."""
        try:
            txn_type = _type_for_amount(amount)
        except ClassificationError:
            txn_type = EXPENSE
        return Classification(
            business_profile_id=declared_profile_id,
            category=UNCATEGORIZED_CATEGORY,
            type=txn_type,
            confidence=0.0,
            needs_review=True,
            method="error",
            error=error,
        )

    @staticmethod
    def _route_profile(
        rule: ClassificationRule, profiles: Sequence[ProfileRef], declared_profile_id: int
    ) -> tuple[int, bool]:
        if rule.profile_id is not None:
            if any(p.id == rule.profile_id for p in profiles):
                return rule.profile_id, rule.profile_id != declared_profile_id
            return declared_profile_id, False
        # Only strong signals move a row off the declared profile.
        if not rule.override_profile or not rule.profile_hint:
            return declared_profile_id, False
        declared = next((p for p in profiles if p.id == declared_profile_id), None)
        if declared is not None and declared.type == rule.profile_hint:
            return declared_profile_id, False
        target = next((p for p in profiles if p.type == rule.profile_hint), None)
        if target is None:
            return declared_profile_id, False
        return target.id, True
