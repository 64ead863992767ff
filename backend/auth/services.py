# backend/auth/services.py

from werkzeug.security import generate_password_hash, check_password_hash
from flask_jwt_extended import create_access_token, get_jwt, get_jwt_identity
from models.user_model import User
from models import db
from errors import AppError
from profiles.services import ensure_default_profiles


def register_user(data):

    existing = User.query.filter_by(email=data.email).first()
    if existing:
        return None, "User already exists"

    user = User(
        name=data.name,
        email=data.email,
        password=generate_password_hash(data.password),
    )

    db.session.add(user)
    db.session.flush()
    ensure_default_profiles(user)
    db.session.commit()

    token = create_access_token(identity=str(user.id))

    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "current_business_profile_id": user.current_business_profile_id,
        "token": token
    }, None


def login_user(data):

    user = User.query.filter_by(email=data.email).first()

    if not user:
        return None, "Invalid email or password"

    if not check_password_hash(user.password, data.password):
        return None, "Invalid email or password"

    token = create_access_token(identity=str(user.id))

    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "current_business_profile_id": user.current_business_profile_id,
        "token": token
    }, None


def current_user_id() -> int:
    """User id of the authenticated caller. Must run under @jwt_required()."""
    # File-download tokens are signed with the same key; they never identify a user.
    if get_jwt().get("typ") is not None:
        raise AppError("Unauthorized", 401)
    try:
        return int(get_jwt_identity())
    except (TypeError, ValueError):
        raise AppError("Unauthorized", 401)


def current_user() -> User:
    user = db.session.get(User, current_user_id())
    if user is None:
        raise AppError("Unauthorized", 401)
    return user
