"""
Per-user merchant rules.

They run ahead of the shared rule table, so a correction a user made once
applies to every later statement of theirs.
"""
from __future__ import annotations

import logging
import re
from typing import List, Optional

from errors import NotFoundError, ValidationError
from models import db
from models.merchant_rule_model import MerchantRule, RULE_SOURCE_CORRECTION, RULE_SOURCE_MANUAL
from profiles.services import get_owned_profile

from .classifier import Classifier
from .classifier_service import get_classifier
from .rules import ClassificationRule, UNCATEGORIZED_CATEGORY

logger = logging.getLogger(__name__)

# A user confirmed these by hand.
MERCHANT_RULE_CONFIDENCE = 0.99

_REFERENCE_TOKEN_RX = re.compile(r"\d")


def merchant_pattern(description: str) -> str:
    """
    The part of a description that names the merchant: the longest run of
    words between store numbers and reference codes, lower-cased
    ("Trader Joe's #123" -> "trader joe's", "POS 0412 WALMART" -> "walmart").
    """
    text = " ".join((description or "").lower().split())
    runs, current = [], []
    for token in text.split(" "):
        if _REFERENCE_TOKEN_RX.search(token):
            runs.append(" ".join(current))
            current = []
        else:
            current.append(token)
    runs.append(" ".join(current))
    longest = max(runs, key=len)
    pattern = longest if len(longest) >= 3 else text
    return pattern[:120]


def _to_rule(row: MerchantRule) -> ClassificationRule:
    return ClassificationRule(
        category=row.category,
        keywords=(row.pattern,),
        confidence=MERCHANT_RULE_CONFIDENCE,
        name=f"merchant_rule:{row.id}",
        profile_id=row.business_profile_id,
    )


def list_merchant_rules(user_id: int) -> List[MerchantRule]:
    return (
        MerchantRule.query.filter_by(user_id=user_id)
        .order_by(MerchantRule.priority.desc(), MerchantRule.id)
        .all()
    )


def user_rules(user_id: int) -> List[ClassificationRule]:
    """The user's active rules in evaluation order."""
    return [_to_rule(r) for r in list_merchant_rules(user_id) if r.is_active]


def classifier_for_user(user_id: int) -> Classifier:
    return get_classifier().with_rules(user_rules(user_id))


def _upsert(
    user_id: int,
    pattern: str,
    category: str,
    business_profile_id: Optional[int],
    source: str,
    priority: Optional[int] = None,
) -> MerchantRule:
    pattern = " ".join((pattern or "").lower().split())
    category = (category or "").strip()
    if len(pattern) < 2:
        raise ValidationError("Merchant rule pattern must be at least 2 characters")
    if not category:
        raise ValidationError("Merchant rule needs a category")
    if business_profile_id is not None:
        get_owned_profile(user_id, business_profile_id)

    rule = MerchantRule.query.filter_by(user_id=user_id, pattern=pattern).first()
    if rule is None:
        rule = MerchantRule(user_id=user_id, pattern=pattern, priority=priority or 0)
        db.session.add(rule)
    elif priority is not None:
        rule.priority = priority
    rule.category = category
    rule.business_profile_id = business_profile_id
    rule.source = source
    rule.is_active = True
    return rule


def create_merchant_rule(
    user_id: int,
    pattern: str,
    category: str,
    business_profile_id: Optional[int] = None,
    priority: int = 0,
) -> MerchantRule:
    rule = _upsert(user_id, pattern, category, business_profile_id, RULE_SOURCE_MANUAL, priority)
    db.session.commit()
    return rule


def delete_merchant_rule(user_id: int, rule_id: int) -> None:
    rule = MerchantRule.query.filter_by(id=rule_id, user_id=user_id).first()
    if not rule:
        raise NotFoundError(f"Merchant rule {rule_id} not found")
    db.session.delete(rule)
    db.session.commit()


def learn_from_correction(
    user_id: int, description: str, category: str, business_profile_id: Optional[int]
) -> Optional[MerchantRule]:
    """Record a corrected transaction as a merchant rule. Caller commits."""
    if not category or category == UNCATEGORIZED_CATEGORY:
        return None
    rule = _upsert(
        user_id, merchant_pattern(description), category, business_profile_id, RULE_SOURCE_CORRECTION
    )
    logger.info("User %s taught rule '%s' -> %s", user_id, rule.pattern, category)
    return rule
