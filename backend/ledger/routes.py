from flask import Blueprint, request, jsonify
from flask_jwt_extended import jwt_required
from pydantic import ValidationError

from auth.services import current_user_id
from profiles.services import get_owned_profile
from .schemas import BudgetSchema, DebtSchema, DebtPaymentSchema
from .services import (
    create_debt,
    get_owned_debt,
    list_budgets,
    record_debt_payment,
    upsert_budget,
)
from models.ledger_model import Debt

ledger_bp = Blueprint("ledger", __name__)


@ledger_bp.route("/budgets", methods=["GET"])
@jwt_required()
def get_budgets():
    user_id = current_user_id()
    month = request.args.get("month", type=int)
    year = request.args.get("year", type=int)
    return jsonify({"budgets": [b.to_dict() for b in list_budgets(user_id, month, year)]}), 200


@ledger_bp.route("/budgets", methods=["POST"])
@jwt_required()
def save_budget():
    try:
        data = BudgetSchema(**(request.get_json(silent=True) or {}))
    except ValidationError as e:
        return jsonify({"error": e.errors()}), 400

    user_id = current_user_id()
    if data.business_profile_id is not None:
        get_owned_profile(user_id, data.business_profile_id)

    budget = upsert_budget(
        user_id,
        data.category.strip(),
        data.month,
        data.year,
        data.amount,
        business_profile_id=data.business_profile_id,
    )
    return jsonify(budget.to_dict()), 201


@ledger_bp.route("/debts", methods=["GET"])
@jwt_required()
def get_debts():
    user_id = current_user_id()
    debts = Debt.query.filter_by(user_id=user_id).order_by(Debt.id).all()
    return jsonify({"debts": [d.to_dict() for d in debts]}), 200


@ledger_bp.route("/debts", methods=["POST"])
@jwt_required()
def add_debt():
    try:
        data = DebtSchema(**(request.get_json(silent=True) or {}))
    except ValidationError as e:
        return jsonify({"error": e.errors()}), 400

    user_id = current_user_id()
    if data.business_profile_id is not None:
        get_owned_profile(user_id, data.business_profile_id)

    debt = create_debt(
        user_id,
        data.name,
        data.starting_balance,
        match_keyword=data.match_keyword,
        business_profile_id=data.business_profile_id,
    )
    return jsonify(debt.to_dict()), 201


@ledger_bp.route("/debts/payment", methods=["POST"])
@jwt_required()
def add_debt_payment():
    try:
        data = DebtPaymentSchema(**(request.get_json(silent=True) or {}))
    except ValidationError as e:
        return jsonify({"error": e.errors()}), 400

    user_id = current_user_id()
    payment = record_debt_payment(
        user_id,
        data.debt_id,
        data.amount,
        data.date,
        principal=data.principal,
        interest=data.interest,
    )
    debt = get_owned_debt(user_id, data.debt_id)
    return jsonify({"payment": payment.to_dict(), "debt": debt.to_dict()}), 201
