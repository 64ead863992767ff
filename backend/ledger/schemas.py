from typing import Optional

from pydantic import BaseModel, Field


class BudgetSchema(BaseModel):
    category: str = Field(min_length=1, max_length=120)
    month: int = Field(ge=1, le=12)
    year: int = Field(ge=1900, le=2200)
    amount: float = Field(ge=0)
    business_profile_id: Optional[int] = None


class DebtSchema(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    starting_balance: float = Field(ge=0)
    match_keyword: Optional[str] = None
    business_profile_id: Optional[int] = None


class DebtPaymentSchema(BaseModel):
    debt_id: int
    amount: float = Field(gt=0)
    principal: Optional[float] = Field(default=None, ge=0)
    interest: Optional[float] = Field(default=None, ge=0)
    date: str = Field(pattern=r"^\d{4}-\d{2}-\d{2}$")
