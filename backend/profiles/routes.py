from flask import Blueprint, request, jsonify
from flask_jwt_extended import jwt_required
from pydantic import ValidationError

from auth.services import current_user
from .schemas import CreateProfileSchema, SwitchProfileSchema
from .services import active_profiles, create_profile, switch_profile

profiles_bp = Blueprint("profiles", __name__, url_prefix="/profiles")


@profiles_bp.route("", methods=["GET"])
@jwt_required()
def list_profiles():
    user = current_user()
    return jsonify(
        {
            "profiles": [p.to_dict() for p in active_profiles(user.id)],
            "current_business_profile_id": user.current_business_profile_id,
        }
    ), 200


@profiles_bp.route("", methods=["POST"])
@jwt_required()
def add_profile():
    try:
        data = CreateProfileSchema(**(request.get_json() or {}))
    except ValidationError as e:
        return jsonify({"error": e.errors()}), 400

    profile = create_profile(current_user(), data.name, data.type, data.description)
    return jsonify(profile.to_dict()), 201


@profiles_bp.route("/switch", methods=["POST"])
@jwt_required()
def switch():
    try:
        data = SwitchProfileSchema(**(request.get_json() or {}))
    except ValidationError as e:
        return jsonify({"error": e.errors()}), 400

    profile = switch_profile(current_user(), data.business_profile_id)
    return jsonify({"success": True, "current_business_profile_id": profile.id}), 200
