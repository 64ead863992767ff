from models import db


class Budget(db.Model):
    """Monthly category budget. `spent` is derived from transactions, never edited directly."""

    __tablename__ = "budgets"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), index=True, nullable=False)
    business_profile_id = db.Column(db.Integer, db.ForeignKey("business_profiles.id"), nullable=True)
    category = db.Column(db.String(120), nullable=False)
    month = db.Column(db.Integer, nullable=False)
    year = db.Column(db.Integer, nullable=False)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    spent = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    created_at = db.Column(db.DateTime, server_default=db.func.now())

    __table_args__ = (
        db.UniqueConstraint(
            "user_id", "business_profile_id", "category", "month", "year", name="uq_budget_period"
        ),
    )

    @property
    def period_prefix(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_profile_id": self.business_profile_id,
            "category": self.category,
            "month": self.month,
            "year": self.year,
            "amount": float(self.amount or 0),
            "spent": float(self.spent or 0),
        }


class Debt(db.Model):
    __tablename__ = "debts"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), index=True, nullable=False)
    business_profile_id = db.Column(db.Integer, db.ForeignKey("business_profiles.id"), nullable=True)
    name = db.Column(db.String(120), nullable=False)
    starting_balance = db.Column(db.Numeric(12, 2), nullable=False)
    balance = db.Column(db.Numeric(12, 2), nullable=False)
    # Expense transactions whose description contains this text are linked as payments.
    match_keyword = db.Column(db.String(120), nullable=True)
    created_at = db.Column(db.DateTime, server_default=db.func.now())

    payments = db.relationship(
        "DebtPayment", backref="debt", cascade="all, delete-orphan", order_by="DebtPayment.id"
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_profile_id": self.business_profile_id,
            "name": self.name,
            "starting_balance": float(self.starting_balance or 0),
            "balance": float(self.balance or 0),
            "match_keyword": self.match_keyword,
        }


class DebtPayment(db.Model):
    __tablename__ = "debt_payments"

    id = db.Column(db.Integer, primary_key=True)
    debt_id = db.Column(db.Integer, db.ForeignKey("debts.id"), index=True, nullable=False)
    transaction_id = db.Column(
        db.Integer, db.ForeignKey("transactions.id", ondelete="CASCADE"), unique=True, nullable=True
    )
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    principal = db.Column(db.Numeric(12, 2), nullable=True)
    interest = db.Column(db.Numeric(12, 2), nullable=True)
    date = db.Column(db.String(10), nullable=False)
    created_at = db.Column(db.DateTime, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "debt_id": self.debt_id,
            "transaction_id": self.transaction_id,
            "amount": float(self.amount or 0),
            "principal": float(self.principal) if self.principal is not None else None,
            "interest": float(self.interest) if self.interest is not None else None,
            "date": self.date,
        }
