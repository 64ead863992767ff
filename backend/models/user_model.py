# backend/models/user_model.py

from models import db


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(150), unique=True, nullable=False)
    password = db.Column(db.String(255), nullable=False)
    # Read only at the HTTP edge; pipeline code receives the profile id explicitly.
    current_business_profile_id = db.Column(
        db.Integer,
        db.ForeignKey("business_profiles.id", use_alter=True, name="fk_user_current_profile"),
        nullable=True,
    )
    created_at = db.Column(db.DateTime, server_default=db.func.now())
