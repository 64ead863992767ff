from __future__ import annotations

import logging
from functools import lru_cache
from typing import Optional

from flask import current_app

from .classifier import Classifier
from .rules import DEFAULT_RULES, load_rules_file

logger = logging.getLogger(__name__)


@lru_cache(maxsize=4)
def build_classifier(rules_path: Optional[str], review_threshold: float) -> Classifier:
    rules = list(DEFAULT_RULES)
    if rules_path:
        extra = load_rules_file(rules_path)
        logger.info("Loaded %d classifier rules from %s", len(extra), rules_path)
        rules = extra + rules
    return Classifier(rules, review_threshold=review_threshold)


def get_classifier() -> Classifier:
    cfg = current_app.config
    return build_classifier(
        cfg.get("CLASSIFIER_RULES_PATH"),
        float(cfg.get("CLASSIFIER_REVIEW_THRESHOLD", 0.7)),
    )
