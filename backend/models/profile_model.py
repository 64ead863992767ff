from models import db

PROFILE_PERSONAL = "PERSONAL"
PROFILE_BUSINESS = "BUSINESS"
PROFILE_TYPES = (PROFILE_PERSONAL, PROFILE_BUSINESS)


class BusinessProfile(db.Model):
    """A named partition of one user's finances (e.g. Business vs Personal/Household)."""

    __tablename__ = "business_profiles"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), index=True, nullable=False)
    name = db.Column(db.String(120), nullable=False)
    type = db.Column(db.String(20), nullable=False, default=PROFILE_PERSONAL)
    description = db.Column(db.String(255), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "description": self.description,
            "is_active": bool(self.is_active),
        }
