# backend/auth/routes.py

from flask import Blueprint, request, jsonify
from flask_jwt_extended import jwt_required
from pydantic import ValidationError

from auth.schemas import RegisterSchema, LoginSchema
from auth.services import register_user, login_user, current_user

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


@auth_bp.route("/register", methods=["POST"])
def register():

    try:
        data = RegisterSchema(**(request.get_json(silent=True) or {}))
    except ValidationError as e:
        return jsonify({"error": e.errors()}), 400

    result, error = register_user(data)

    if error:
        return jsonify({"error": error}), 400

    return jsonify(result), 201


@auth_bp.route("/login", methods=["POST"])
def login():

    try:
        data = LoginSchema(**(request.get_json(silent=True) or {}))
    except ValidationError as e:
        return jsonify({"error": e.errors()}), 400

    result, error = login_user(data)

    if error:
        return jsonify({"error": error}), 401

    return jsonify(result), 200

@auth_bp.route("/me", methods=["GET"])
@jwt_required()
def me():

    user = current_user()

    return jsonify({
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "current_business_profile_id": user.current_business_profile_id,
    }), 200
