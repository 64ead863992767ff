"""
Derived ledger aggregates: budget `spent` totals and debt balances.

Both are always recomputed from the persisted transactions and payments
rather than patched incrementally, so repeated statement runs cannot drift.
"""
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from errors import NotFoundError, ValidationError
from models import db
from models.ledger_model import Budget, Debt, DebtPayment
from models.transaction_model import TransactionRecord, TYPE_EXPENSE

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


def _money(value) -> Decimal:
    return Decimal(str(value if value is not None else 0)).quantize(Decimal("0.01"))


def apply_debt_payment(balance, principal) -> Decimal:
    """Balance after paying `principal` off it; never below zero."""
    return max(ZERO, _money(balance) - _money(principal))


# ---------------------------------------------------------------------------
# Budgets
# ---------------------------------------------------------------------------

def _budget_spent(budget: Budget) -> Decimal:
    q = db.session.query(func.coalesce(func.sum(TransactionRecord.amount), 0)).filter(
        TransactionRecord.user_id == budget.user_id,
        TransactionRecord.type == TYPE_EXPENSE,
        TransactionRecord.category == budget.category,
        TransactionRecord.date.like(f"{budget.period_prefix}-%"),
    )
    if budget.business_profile_id is not None:
        q = q.filter(TransactionRecord.business_profile_id == budget.business_profile_id)
    return abs(_money(q.scalar()))


def recompute_budgets(user_id: int) -> int:
    budgets = Budget.query.filter_by(user_id=user_id).all()
    for b in budgets:
        b.spent = _budget_spent(b)
    return len(budgets)


def upsert_budget(
    user_id: int,
    category: str,
    month: int,
    year: int,
    amount,
    business_profile_id: Optional[int] = None,
) -> Budget:
    budget = Budget.query.filter_by(
        user_id=user_id,
        business_profile_id=business_profile_id,
        category=category,
        month=month,
        year=year,
    ).first()
    if budget is None:
        budget = Budget(
            user_id=user_id,
            business_profile_id=business_profile_id,
            category=category,
            month=month,
            year=year,
        )
        db.session.add(budget)
    budget.amount = _money(amount)
    budget.spent = _budget_spent(budget)
    db.session.commit()
    return budget


def list_budgets(user_id: int, month: Optional[int] = None, year: Optional[int] = None):
    q = Budget.query.filter_by(user_id=user_id)
    if month:
        q = q.filter_by(month=month)
    if year:
        q = q.filter_by(year=year)
    return q.order_by(Budget.year.desc(), Budget.month.desc(), Budget.category).all()


# ---------------------------------------------------------------------------
# Debts
# ---------------------------------------------------------------------------

def create_debt(
    user_id: int,
    name: str,
    starting_balance,
    match_keyword: Optional[str] = None,
    business_profile_id: Optional[int] = None,
) -> Debt:
    start = _money(starting_balance)
    if start < ZERO:
        raise ValidationError("starting_balance must not be negative")
    debt = Debt(
        user_id=user_id,
        business_profile_id=business_profile_id,
        name=name.strip(),
        starting_balance=start,
        balance=start,
        match_keyword=(match_keyword or "").strip() or None,
    )
    db.session.add(debt)
    db.session.flush()
    link_debt_payments(user_id)
    debt.balance = _debt_balance(debt)
    db.session.commit()
    return debt


def get_owned_debt(user_id: int, debt_id: int) -> Debt:
    debt = Debt.query.filter_by(id=debt_id, user_id=user_id).first()
    if not debt:
        raise NotFoundError(f"Debt {debt_id} not found")
    return debt


def record_debt_payment(
    user_id: int,
    debt_id: int,
    amount,
    date: str,
    principal=None,
    interest=None,
) -> DebtPayment:
    """
    Record a manual payment. With a principal the balance becomes
    max(0, balance - principal); without one the balance is unchanged.
    """
    debt = get_owned_debt(user_id, debt_id)
    if principal is not None and _money(principal) < ZERO:
        raise ValidationError("principal must not be negative")

    payment = DebtPayment(
        debt_id=debt.id,
        amount=_money(amount),
        principal=_money(principal) if principal is not None else None,
        interest=_money(interest) if interest is not None else None,
        date=date,
    )
    db.session.add(payment)
    if principal is not None:
        debt.balance = apply_debt_payment(debt.balance, principal)
    db.session.commit()
    return payment


def _debt_balance(debt: Debt) -> Decimal:
    paid = (
        db.session.query(func.coalesce(func.sum(DebtPayment.principal), 0))
        .filter(DebtPayment.debt_id == debt.id)
        .scalar()
    )
    return apply_debt_payment(debt.starting_balance, paid)


def _linked_transaction_ids(user_id: int) -> set:
    return {
        tid
        for (tid,) in db.session.query(DebtPayment.transaction_id)
        .join(Debt, Debt.id == DebtPayment.debt_id)
        .filter(Debt.user_id == user_id, DebtPayment.transaction_id.isnot(None))
        .all()
    }


def link_debt_payments(user_id: int) -> int:
    """
    Link expense transactions whose description contains a debt's
    match_keyword as payments. A transaction pays at most one debt.
    """
    debts = (
        Debt.query.filter_by(user_id=user_id)
        .filter(Debt.match_keyword.isnot(None))
        .order_by(Debt.id)
        .all()
    )
    if not debts:
        return 0

    linked_ids = _linked_transaction_ids(user_id)

    created = 0
    for debt in debts:
        q = TransactionRecord.query.filter(
            TransactionRecord.user_id == user_id,
            TransactionRecord.type == TYPE_EXPENSE,
            TransactionRecord.description.ilike(f"%{debt.match_keyword}%"),
        )
        if debt.business_profile_id is not None:
            q = q.filter(TransactionRecord.business_profile_id == debt.business_profile_id)
        for txn in q.order_by(TransactionRecord.date, TransactionRecord.id).all():
            if txn.id in linked_ids:
                continue
            paid = abs(_money(txn.amount))
            linked_ids.add(txn.id)
            try:
                # A concurrent run may have linked the same transaction first.
                with db.session.begin_nested():
                    db.session.add(
                        DebtPayment(
                            debt_id=debt.id,
                            transaction_id=txn.id,
                            amount=paid,
                            principal=paid,
                            date=txn.date,
                        )
                    )
            except IntegrityError:
                logger.debug("Transaction %s already linked to a debt", txn.id)
                continue
            created += 1
    if created:
        logger.info("Linked %d transactions as debt payments for user %s", created, user_id)
    return created


def recompute_debt_balances(user_id: int) -> int:
    debts = Debt.query.filter_by(user_id=user_id).all()
    for d in debts:
        d.balance = _debt_balance(d)
    return len(debts)


def recompute_aggregates(user_id: int) -> None:
    """Relink debt payments and recompute every derived total for one user, then commit."""
    link_debt_payments(user_id)
    recompute_debt_balances(user_id)
    recompute_budgets(user_id)
    db.session.commit()
