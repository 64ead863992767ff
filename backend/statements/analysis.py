from __future__ import annotations

from collections import defaultdict
from typing import List, Dict, Iterable, Optional

from categorization.rules import UNCATEGORIZED_CATEGORY
from models.profile_model import PROFILE_BUSINESS

# Money moved between the user's own accounts; not spending or income.
TRANSFERS_CATEGORY = "Transfers"

# Categories that are excluded from dashboard spending/income totals.
EXCLUDED_ANALYTICS_CATEGORIES = (TRANSFERS_CATEGORY,)

# One cent, the tolerance of the running-balance check.
BALANCE_TOLERANCE = 0.01


def _is_excluded_from_analytics(r: dict) -> bool:
    cat = (r.get("category") or "").strip()
    return cat in EXCLUDED_ANALYTICS_CATEGORIES


def _month_key(d: str) -> str:
    # d is YYYY-MM-DD
    return d[:7]


def _year_key(d: str) -> str:
    return d[:4]


def running_balance_mismatches(candidates: Iterable) -> List[dict]:
    """
    Check consecutive candidates that both carry a running balance:
    previous balance + amount must equal the new balance within one cent.
    """
    out = []
    prev = None
    for c in candidates:
        if c.raw_balance is None:
            prev = None
            continue
        if prev is not None and prev.raw_balance is not None:
            expected = round(prev.raw_balance + c.amount, 2)
            if abs(expected - c.raw_balance) > BALANCE_TOLERANCE + 1e-9:
                out.append(
                    {
                        "line": c.line_no,
                        "date": c.date,
                        "description": c.description,
                        "expected_balance": expected,
                        "reported_balance": c.raw_balance,
                    }
                )
        prev = c
    return out


def statement_summary(
    records: List[dict],
    profile_types: Dict[int, str],
    mismatches: Optional[List[dict]] = None,
    diagnostics: Optional[List[dict]] = None,
) -> dict:
    """
    records: classified rows as dicts with amount (signed), category,
    business_profile_id, needs_review.
    """
    income = 0.0
    expense = 0.0
    by_category = defaultdict(lambda: {"total": 0.0, "count": 0})
    business = personal = review = 0

    for r in records:
        amount = float(r.get("amount") or 0.0)
        if amount > 0:
            income += amount
        else:
            expense += abs(amount)

        cat = r.get("category") or UNCATEGORIZED_CATEGORY
        by_category[cat]["total"] += abs(amount)
        by_category[cat]["count"] += 1

        if profile_types.get(r.get("business_profile_id")) == PROFILE_BUSINESS:
            business += 1
        else:
            personal += 1
        if r.get("needs_review"):
            review += 1

    return {
        "total_income": round(income, 2),
        "total_expense": round(expense, 2),
        "net": round(income - expense, 2),
        "by_category": {
            k: {"total": round(v["total"], 2), "count": v["count"]}
            for k, v in sorted(by_category.items())
        },
        "business_count": business,
        "personal_count": personal,
        "needs_review_count": review,
        "balance_mismatches": mismatches or [],
        "diagnostics": diagnostics or [],
    }


def compute_time_aggregates(records: List[dict]) -> dict:
    """
    records: transaction dicts (signed amount, +income / -expense).
    Returns spending totals by day/month/year with a per-category breakdown.
    """
    by_day = defaultdict(lambda: defaultdict(lambda: {"total": 0.0, "count": 0}))
    by_month = defaultdict(lambda: defaultdict(lambda: {"total": 0.0, "count": 0}))
    by_year = defaultdict(lambda: defaultdict(lambda: {"total": 0.0, "count": 0}))

    total_spend = 0.0
    total_income = 0.0

    for r in records:
        if _is_excluded_from_analytics(r):
            continue
        date = r.get("date") or ""
        if len(date) < 10:
            continue

        amount = float(r.get("amount") or 0.0)
        if amount > 0:
            total_income += amount
            continue

        spend = abs(amount)
        total_spend += spend
        cat = r.get("category") or UNCATEGORIZED_CATEGORY

        by_day[date][cat]["total"] += spend
        by_day[date][cat]["count"] += 1

        mk = _month_key(date)
        by_month[mk][cat]["total"] += spend
        by_month[mk][cat]["count"] += 1

        yk = _year_key(date)
        by_year[yk][cat]["total"] += spend
        by_year[yk][cat]["count"] += 1

    def _to_sorted_list(grouped):
        out = []
        for period, cats in grouped.items():
            out.append(
                {
                    "period": period,
                    "categories": {
                        k: {"total": round(v["total"], 2), "count": v["count"]}
                        for k, v in cats.items()
                    },
                }
            )
        out.sort(key=lambda x: x["period"])
        return out

    return {
        "totals": {
            "total_spend": round(total_spend, 2),
            "total_income": round(total_income, 2),
            "net": round(total_income - total_spend, 2),
        },
        "by_day": _to_sorted_list(by_day),
        "by_month": _to_sorted_list(by_month),
        "by_year": _to_sorted_list(by_year),
    }


def compute_category_totals(records: List[dict]) -> List[dict]:
    totals = defaultdict(float)
    counts = defaultdict(int)
    for r in records:
        if _is_excluded_from_analytics(r):
            continue
        amt = float(r.get("amount") or 0.0)
        if amt >= 0:
            continue
        cat = r.get("category") or UNCATEGORIZED_CATEGORY
        totals[cat] += abs(amt)
        counts[cat] += 1
    items = [
        {"category": c, "total_spend": round(t, 2), "count": counts[c]}
        for c, t in totals.items()
    ]
    items.sort(key=lambda x: x["total_spend"], reverse=True)
    return items
