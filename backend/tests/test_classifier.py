import json

import pytest

from categorization.classifier import Classifier, ProfileRef, match_rule
from categorization.classifier_service import build_classifier
from categorization.rules import ClassificationRule, DEFAULT_RULES, load_rules_file
from errors import ClassificationError, ValidationError

PERSONAL_ID = 1
BUSINESS_ID = 2
PROFILES = [ProfileRef(PERSONAL_ID, "PERSONAL"), ProfileRef(BUSINESS_ID, "BUSINESS")]


@pytest.fixture
def classifier():
    return Classifier(review_threshold=0.7)


@pytest.mark.parametrize(
    "description,category",
    [
        ("Tuition Payment Fall Semester", "Education"),
        ("RED CROSS DONATION", "Charitable Giving"),
        ("Geico Auto Insurance", "Insurance"),
        ("Trader Joe's #123", "Groceries"),
        ("UBER *TRIP", "Transportation"),
        ("Comcast Internet", "Utilities"),
    ],
)
def test_keyword_rules(classifier, description, category):
    result = classifier.classify(description, -50, PROFILES, PERSONAL_ID)
    assert result.category == category
    assert result.method == "rule"
    assert 0.0 <= result.confidence <= 1.0


def test_tuition_is_education_whatever_the_declared_profile(classifier):
    for declared in (PERSONAL_ID, BUSINESS_ID):
        result = classifier.classify("Tuition Payment", -900, PROFILES, declared)
        assert result.category == "Education"
        assert result.business_profile_id == declared
        assert result.profile_overridden is False


def test_payroll_overrides_declared_profile(classifier):
    result = classifier.classify("ADP PAYROLL FEES", -250, PROFILES, PERSONAL_ID)
    assert result.category == "Payroll"
    assert result.business_profile_id == BUSINESS_ID
    assert result.profile_overridden is True


def test_override_without_target_profile_keeps_declared(classifier):
    only_personal = [ProfileRef(PERSONAL_ID, "PERSONAL")]
    result = classifier.classify("Gusto payroll", -250, only_personal, PERSONAL_ID)
    assert result.category == "Payroll"
    assert result.business_profile_id == PERSONAL_ID
    assert result.profile_overridden is False


def test_type_follows_amount_sign(classifier):
    assert classifier.classify("Salary ACME", 1000, PROFILES, PERSONAL_ID).type == "INCOME"
    assert classifier.classify("Whole Foods", -10, PROFILES, PERSONAL_ID).type == "EXPENSE"


def test_income_only_rules_skip_expenses(classifier):
    # "refund" is an income rule; as an expense it falls through to later rules.
    result = classifier.classify("Refund processing fee", -5, PROFILES, PERSONAL_ID)
    assert result.category != "Refunds"


def test_no_match_is_uncategorized_and_flagged(classifier):
    result = classifier.classify("QWERTY LLC 8812", -19.99, PROFILES, PERSONAL_ID)
    assert result.category == "Uncategorized"
    assert result.confidence == 0.0
    assert result.needs_review is True
    assert result.method == "fallback"
    assert result.business_profile_id == PERSONAL_ID


def test_low_confidence_rule_is_flagged_but_kept():
    rules = [ClassificationRule("Odd", ("odd",), confidence=0.4)]
    result = Classifier(rules, review_threshold=0.7).classify("odd thing", -1, PROFILES, PERSONAL_ID)
    assert result.category == "Odd"
    assert result.needs_review is True


def test_confidence_is_clamped_to_one():
    rules = [ClassificationRule("Many", ("a", "b", "c", "d", "e", "f"), confidence=0.99)]
    result = Classifier(rules).classify("a b c d e f", -1, PROFILES, PERSONAL_ID)
    assert result.confidence == 1.0


def test_first_matching_rule_wins():
    rules = [
        ClassificationRule("First", ("coffee",)),
        ClassificationRule("Second", ("coffee shop",)),
    ]
    rule, hits = match_rule("Corner Coffee Shop", "EXPENSE", rules)
    assert rule.category == "First"
    assert hits == ["coffee"]


def test_classification_does_not_depend_on_record_order(classifier):
    descriptions = ["Netflix", "Tuition", "Donation to charity", "Unknown thing", "Kroger"]
    forward = [classifier.classify(d, -1, PROFILES, PERSONAL_ID).category for d in descriptions]
    backward = [
        classifier.classify(d, -1, PROFILES, PERSONAL_ID).category for d in reversed(descriptions)
    ]
    assert forward == list(reversed(backward))


def test_empty_description_raises(classifier):
    with pytest.raises(ClassificationError):
        classifier.classify("   ", -1, PROFILES, PERSONAL_ID)


def test_non_numeric_amount_raises(classifier):
    with pytest.raises(ClassificationError):
        classifier.classify("Coffee", "abc", PROFILES, PERSONAL_ID)


def test_uncategorized_result_records_the_error(classifier):
    result = classifier.uncategorized("abc", PERSONAL_ID, "Amount 'abc' is not a number")
    assert result.category == "Uncategorized"
    assert result.type == "EXPENSE"
    assert result.method == "error"
    assert result.metadata()["error"].startswith("Amount")


def test_rules_file_is_evaluated_before_defaults(tmp_path):
    path = tmp_path / "rules.json"
    path.write_text(json.dumps([
        {"category": "Pets", "keywords": ["petco", "Whole Foods Pet"], "confidence": 0.8},
    ]))
    build_classifier.cache_clear()
    clf = build_classifier(str(path), 0.7)
    assert clf.rules[0].category == "Pets"
    assert len(clf.rules) == len(DEFAULT_RULES) + 1
    assert clf.classify("WHOLE FOODS PET AISLE", -3, PROFILES, PERSONAL_ID).category == "Pets"


def test_invalid_rules_file(tmp_path):
    path = tmp_path / "rules.json"
    path.write_text(json.dumps([{"category": "Pets", "keywords": [], "confidence": 2}]))
    with pytest.raises(ValidationError):
        load_rules_file(str(path))

    path.write_text("{}")
    with pytest.raises(ValidationError):
        load_rules_file(str(path))


def test_user_rules_are_tried_before_the_table(classifier):
    mine = ClassificationRule("Coffee Beans", ("starbucks",), confidence=0.99, name="merchant_rule:1")
    clf = classifier.with_rules([mine])
    assert clf.rules[0] is mine
    assert clf.review_threshold == classifier.review_threshold
    assert clf.classify("STARBUCKS 0042", -6, PROFILES, PERSONAL_ID).category == "Coffee Beans"
    # The shared classifier is left untouched.
    assert classifier.classify("STARBUCKS 0042", -6, PROFILES, PERSONAL_ID).category == "Dining Out"
    assert classifier.with_rules([]) is classifier


def test_rule_pinned_to_a_profile_moves_the_row(classifier):
    pinned = ClassificationRule("Office Supplies", ("staples",), profile_id=BUSINESS_ID)
    result = classifier.with_rules([pinned]).classify("Staples Store", -20, PROFILES, PERSONAL_ID)
    assert result.business_profile_id == BUSINESS_ID
    assert result.profile_overridden is True

    same = classifier.with_rules([pinned]).classify("Staples Store", -20, PROFILES, BUSINESS_ID)
    assert (same.business_profile_id, same.profile_overridden) == (BUSINESS_ID, False)


def test_rule_pinned_to_an_inactive_profile_keeps_declared(classifier):
    pinned = ClassificationRule("Office Supplies", ("staples",), profile_id=99)
    result = classifier.with_rules([pinned]).classify("Staples Store", -20, PROFILES, PERSONAL_ID)
    assert result.business_profile_id == PERSONAL_ID
    assert result.profile_overridden is False
