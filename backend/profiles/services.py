from models import db
from models.profile_model import BusinessProfile, PROFILE_PERSONAL, PROFILE_BUSINESS
from models.user_model import User
from errors import NotFoundError, ValidationError, profile_not_found

DEFAULT_PROFILES = (
    ("Personal/Household", PROFILE_PERSONAL, "Personal and household expenses"),
    ("Business", PROFILE_BUSINESS, "Business income and expenses"),
)


def ensure_default_profiles(user: User) -> list[BusinessProfile]:
    """
    Create the Personal/Household and Business profiles for a user that has none,
    and point the user's current profile at Personal/Household.
    Caller commits.
    """
    existing = BusinessProfile.query.filter_by(user_id=user.id).all()
    if existing:
        return existing

    created = []
    for name, ptype, description in DEFAULT_PROFILES:
        profile = BusinessProfile(
            user_id=user.id, name=name, type=ptype, description=description, is_active=True
        )
        db.session.add(profile)
        created.append(profile)
    db.session.flush()
    user.current_business_profile_id = created[0].id
    return created


def active_profiles(user_id: int) -> list[BusinessProfile]:
    return (
        BusinessProfile.query.filter_by(user_id=user_id, is_active=True)
        .order_by(BusinessProfile.id)
        .all()
    )


def get_owned_profile(user_id: int, profile_id: int) -> BusinessProfile:
    profile = BusinessProfile.query.filter_by(id=profile_id, user_id=user_id, is_active=True).first()
    if not profile:
        raise NotFoundError(profile_not_found(profile_id))
    return profile


def resolve_profile_id(user: User, requested_id: int | None) -> int:
    """
    Pick the profile a request operates on: the requested one if owned and
    active, else the user's current profile, else the first active profile.
    """
    if requested_id is not None:
        return get_owned_profile(user.id, requested_id).id

    if user.current_business_profile_id:
        current = BusinessProfile.query.filter_by(
            id=user.current_business_profile_id, user_id=user.id, is_active=True
        ).first()
        if current:
            return current.id

    profiles = active_profiles(user.id)
    if not profiles:
        profiles = ensure_default_profiles(user)
        db.session.commit()
    return profiles[0].id


def create_profile(user: User, name: str, ptype: str, description: str | None = None) -> BusinessProfile:
    if ptype not in (PROFILE_PERSONAL, PROFILE_BUSINESS):
        raise ValidationError(f"Unknown profile type '{ptype}'")
    profile = BusinessProfile(
        user_id=user.id, name=name.strip(), type=ptype, description=description, is_active=True
    )
    db.session.add(profile)
    db.session.commit()
    return profile


def switch_profile(user: User, profile_id: int) -> BusinessProfile:
    profile = get_owned_profile(user.id, profile_id)
    user.current_business_profile_id = profile.id
    db.session.commit()
    return profile
