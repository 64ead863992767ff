from __future__ import annotations

from flask import Blueprint, request, jsonify
from flask_jwt_extended import jwt_required
from pydantic import ValidationError

from auth.services import current_user
from profiles.services import active_profiles, resolve_profile_id

from .classifier import ProfileRef
from .classifier_service import get_classifier
from .merchant_rules import (
    classifier_for_user,
    create_merchant_rule,
    delete_merchant_rule,
    list_merchant_rules,
)
from .schemas import ClassifyPreviewSchema, MerchantRuleSchema


categorization_bp = Blueprint("categorization", __name__, url_prefix="/categorize")


@categorization_bp.route("/rules", methods=["GET"])
@jwt_required()
def list_rules():
    """The ordered rule table; the first matching rule wins."""
    classifier = get_classifier()
    return jsonify(
        {
            "review_threshold": classifier.review_threshold,
            "rules": [r.to_dict() for r in classifier.rules],
        }
    ), 200


@categorization_bp.route("", methods=["POST"])
@jwt_required()
def classify_preview():
    """
    Classify one ad-hoc transaction without persisting it.
    Body: { "description": "...", "amount": -42.5, "business_profile_id": 3 }
    """
    try:
        data = ClassifyPreviewSchema(**(request.get_json(silent=True) or {}))
    except ValidationError as e:
        return jsonify({"error": e.errors()}), 400

    user = current_user()
    declared_id = resolve_profile_id(user, data.business_profile_id)
    profiles = [ProfileRef(id=p.id, type=p.type) for p in active_profiles(user.id)]

    classifier = classifier_for_user(user.id)
    result = classifier.classify(data.description, data.amount, profiles, declared_id)
    return jsonify(
        {
            "business_profile_id": result.business_profile_id,
            "category": result.category,
            "type": result.type,
            "confidence": result.confidence,
            "needs_review": result.needs_review,
            "classification": result.metadata(),
        }
    ), 200


@categorization_bp.route("/merchant-rules", methods=["GET"])
@jwt_required()
def list_user_rules():
    """The caller's merchant rules, in the order they are tried."""
    user = current_user()
    return jsonify([r.to_dict() for r in list_merchant_rules(user.id)]), 200


@categorization_bp.route("/merchant-rules", methods=["POST"])
@jwt_required()
def create_user_rule():
    try:
        data = MerchantRuleSchema(**(request.get_json(silent=True) or {}))
    except ValidationError as e:
        return jsonify({"error": e.errors()}), 400

    user = current_user()
    rule = create_merchant_rule(
        user.id, data.pattern, data.category, data.business_profile_id, data.priority
    )
    return jsonify(rule.to_dict()), 201


@categorization_bp.route("/merchant-rules/<int:rule_id>", methods=["DELETE"])
@jwt_required()
def delete_user_rule(rule_id):
    user = current_user()
    delete_merchant_rule(user.id, rule_id)
    return jsonify({"message": "Merchant rule deleted"}), 200
