from __future__ import annotations

import json

from flask import Blueprint, request, jsonify
from flask_jwt_extended import jwt_required
from pydantic import ValidationError
from sqlalchemy import func

from auth.services import current_user, current_user_id
from categorization.merchant_rules import learn_from_correction
from errors import ConflictError, NotFoundError, statement_not_found, transaction_not_found
from ledger.services import recompute_aggregates
from models import db
from models.ledger_model import DebtPayment
from models.statement_model import Statement, StatementState
from models.transaction_model import TransactionRecord
from profiles.services import get_owned_profile, resolve_profile_id
from storage.object_store import get_object_store

from .analysis import compute_time_aggregates, compute_category_totals, TRANSFERS_CATEGORY
from .intake import accept_upload
from .pipeline import run_statement
from .schemas import UpdateTransactionSchema
from .status import reset, retry_failed
from .worker import enqueue

statements_bp = Blueprint("statements", __name__, url_prefix="/statements")


def _owned_statement(statement_id: int, user_id: int) -> Statement:
    statement = Statement.query.filter_by(id=statement_id, user_id=user_id).first()
    if not statement:
        raise NotFoundError(statement_not_found(statement_id))
    return statement


@statements_bp.route("/upload", methods=["POST"])
@jwt_required()
def upload_statement():
    """
    Upload a CSV or PDF bank statement.

    Multipart form fields:
    - file: .csv or .pdf
    - column_mapping: JSON object, CSV only (optional, auto-detected when absent)
    - business_profile_id: declared profile (optional, defaults to the current one)
    """
    if "file" not in request.files:
        return jsonify({"error": "Missing file"}), 400

    f = request.files["file"]
    profile_id = request.form.get("business_profile_id", type=int)
    statement = accept_upload(
        current_user(),
        f.read(),
        f.filename or "",
        column_mapping=request.form.get("column_mapping"),
        business_profile_id=profile_id,
    )
    enqueue([statement.id])

    return jsonify(
        {
            "upload_id": statement.id,
            "record_count": statement.record_count,
            "file_name": statement.file_name,
            "source_type": statement.source_type,
            "status": statement.status,
            "processing_stage": statement.processing_stage,
        }
    ), 201


@statements_bp.route("", methods=["GET"])
@jwt_required()
def list_statements():
    """All of the caller's statements, newest first, with a transaction count each."""
    user_id = current_user_id()
    counts = dict(
        db.session.query(TransactionRecord.statement_id, func.count(TransactionRecord.id))
        .filter(TransactionRecord.user_id == user_id, TransactionRecord.statement_id.isnot(None))
        .group_by(TransactionRecord.statement_id)
        .all()
    )
    statements = (
        Statement.query.filter_by(user_id=user_id)
        .order_by(Statement.created_at.desc(), Statement.id.desc())
        .all()
    )
    out = []
    for s in statements:
        item = s.to_status_dict()
        item["transaction_count"] = counts.get(s.id, 0)
        out.append(item)
    return jsonify({"statements": out}), 200


@statements_bp.route("/<int:statement_id>", methods=["GET"])
@jwt_required()
def get_statement(statement_id):
    statement = _owned_statement(statement_id, current_user_id())
    out = statement.to_status_dict()
    out["analysis"] = statement.analysis
    return jsonify(out), 200


@statements_bp.route("/<int:statement_id>/process", methods=["POST"])
@jwt_required()
def process_statement(statement_id):
    """Run the pipeline synchronously; pipeline errors are returned to this caller."""
    statement = run_statement(statement_id, user_id=current_user_id())
    return jsonify(statement.to_status_dict()), 200


@statements_bp.route("/retry", methods=["POST"])
@jwt_required()
def retry_statements():
    ids = retry_failed(user_id=current_user_id())
    enqueue(ids)
    return jsonify({"reset": ids, "count": len(ids)}), 200


@statements_bp.route("/<int:statement_id>/reprocess", methods=["POST"])
@jwt_required()
def reprocess_statement(statement_id):
    """
    Put a FAILED or COMPLETED statement back to PENDING and process it again.
    Transactions already persisted are kept; the rerun skips them as duplicates.
    """
    user_id = current_user_id()
    statement = _owned_statement(statement_id, user_id)
    if statement.state_enum is not StatementState.PENDING_UPLOADED:
        reset(statement)
    statement = run_statement(statement.id, user_id=user_id)
    return jsonify(statement.to_status_dict()), 200


@statements_bp.route("/<int:statement_id>/file", methods=["GET"])
@jwt_required()
def statement_file(statement_id):
    statement = _owned_statement(statement_id, current_user_id())
    url = get_object_store().get(statement.storage_path)
    return jsonify({"url": url, "file_name": statement.file_name}), 200


@statements_bp.route("/<int:statement_id>/transactions", methods=["GET"])
@jwt_required()
def statement_transactions(statement_id):
    user_id = current_user_id()
    statement = _owned_statement(statement_id, user_id)
    records = (
        TransactionRecord.query.filter_by(user_id=user_id, statement_id=statement.id)
        .order_by(TransactionRecord.date, TransactionRecord.id)
        .all()
    )
    return jsonify({"transactions": [r.to_dict() for r in records]}), 200


@statements_bp.route("/<int:statement_id>", methods=["DELETE"])
@jwt_required()
def delete_statement(statement_id):
    user_id = current_user_id()
    statement = _owned_statement(statement_id, user_id)
    if statement.state_enum.is_processing:
        raise ConflictError(f"Statement {statement_id} is being processed")

    txn_ids = [
        tid for (tid,) in db.session.query(TransactionRecord.id)
        .filter(TransactionRecord.statement_id == statement.id)
        .all()
    ]
    if txn_ids:
        DebtPayment.query.filter(DebtPayment.transaction_id.in_(txn_ids)).delete(
            synchronize_session=False
        )
    storage_path = statement.storage_path
    db.session.delete(statement)
    db.session.commit()

    get_object_store().delete(storage_path)
    recompute_aggregates(user_id)
    return jsonify({"success": True, "deleted_transactions": len(txn_ids)}), 200


@statements_bp.route("/dashboard", methods=["GET"])
@jwt_required()
def dashboard_overview():
    """
    Aggregated analytics for the transactions of one profile
    (the `profile_id` query param, else the current profile).
    """
    user = current_user()
    profile_id = resolve_profile_id(user, request.args.get("profile_id", type=int))

    records = [
        r.to_dict()
        for r in TransactionRecord.query.filter_by(user_id=user.id, business_profile_id=profile_id)
        .order_by(TransactionRecord.date, TransactionRecord.id)
        .all()
    ]

    return jsonify(
        {
            "business_profile_id": profile_id,
            "transactions_count": len(records),
            "needs_review_count": sum(1 for r in records if r["needs_review"]),
            "time_aggregates": compute_time_aggregates(records),
            "categories": compute_category_totals(records),
        }
    ), 200


@statements_bp.route("/transactions", methods=["GET"])
@jwt_required()
def list_transactions():
    """
    List stored transactions for the current user.
    Query params: profile_id, category (e.g. "Groceries"), month (YYYY-MM),
    needs_review (true|false), limit (default 100, max 500).
    """
    user_id = current_user_id()
    profile_id = request.args.get("profile_id", type=int)
    category = request.args.get("category", "").strip() or None
    month = request.args.get("month", "").strip() or None
    needs_review = request.args.get("needs_review", "").strip().lower() or None
    try:
        limit = min(500, max(1, int(request.args.get("limit", 100))))
    except ValueError:
        limit = 100

    q = TransactionRecord.query.filter_by(user_id=user_id)
    if profile_id is not None:
        q = q.filter(TransactionRecord.business_profile_id == profile_id)
    if category:
        q = q.filter(TransactionRecord.category == category)
    if month and len(month) >= 7:
        q = q.filter(TransactionRecord.date.startswith(month))
    if needs_review in ("true", "1", "yes"):
        q = q.filter(TransactionRecord.needs_review.is_(True))
    elif needs_review in ("false", "0", "no"):
        q = q.filter(TransactionRecord.needs_review.is_(False))
    records = q.order_by(TransactionRecord.date.desc(), TransactionRecord.id.desc()).limit(limit).all()

    return jsonify({"transactions": [r.to_dict() for r in records]}), 200


@statements_bp.route("/transactions/<int:txn_id>", methods=["PATCH"])
@jwt_required()
def update_transaction(txn_id):
    """
    Correct a transaction's category and/or move it to another profile.
    Body: { "category": "Groceries", "business_profile_id": 3 }
    or { "exclude_from_analytics": true } as shorthand for the Transfers category.
    """
    user_id = current_user_id()
    record = TransactionRecord.query.filter_by(id=txn_id, user_id=user_id).first()
    if not record:
        raise NotFoundError(transaction_not_found(txn_id))

    try:
        data = UpdateTransactionSchema(**(request.get_json(silent=True) or {}))
    except ValidationError as e:
        return jsonify({"error": e.errors()}), 400

    if data.business_profile_id is not None:
        record.business_profile_id = get_owned_profile(user_id, data.business_profile_id).id
    if data.exclude_from_analytics:
        record.category = TRANSFERS_CATEGORY
    elif data.category is not None:
        record.category = data.category.strip() or record.category

    meta = record.classification
    meta["corrected"] = True
    record.classification_json = json.dumps(meta)
    record.needs_review = False
    # Later statements of this user get the same answer for this merchant.
    rule = learn_from_correction(
        user_id, record.description, record.category, data.business_profile_id
    )
    db.session.commit()

    recompute_aggregates(user_id)
    body = record.to_dict()
    body["merchant_rule_id"] = rule.id if rule else None
    return jsonify(body), 200
