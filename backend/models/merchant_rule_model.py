from models import db

RULE_SOURCE_MANUAL = "manual"
RULE_SOURCE_CORRECTION = "correction"


class MerchantRule(db.Model):
    """
    A user's own keyword rule. Evaluated before the built-in table, highest
    priority first; learned from transaction corrections or created directly.
    """

    __tablename__ = "merchant_rules"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), index=True, nullable=False)
    # Lower-cased text matched as a substring of the transaction description.
    pattern = db.Column(db.String(120), nullable=False)
    category = db.Column(db.String(120), nullable=False)
    business_profile_id = db.Column(db.Integer, db.ForeignKey("business_profiles.id"), nullable=True)
    priority = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    source = db.Column(db.String(20), nullable=False, default=RULE_SOURCE_MANUAL)
    created_at = db.Column(db.DateTime, server_default=db.func.now())
    updated_at = db.Column(db.DateTime, server_default=db.func.now(), onupdate=db.func.now())

    __table_args__ = (
        db.UniqueConstraint("user_id", "pattern", name="uq_merchant_rule_pattern"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "pattern": self.pattern,
            "category": self.category,
            "business_profile_id": self.business_profile_id,
            "priority": self.priority,
            "is_active": bool(self.is_active),
            "source": self.source,
        }
