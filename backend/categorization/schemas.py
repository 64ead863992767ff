from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class ClassifyPreviewSchema(BaseModel):
    description: str = Field(min_length=1)
    amount: float
    business_profile_id: Optional[int] = None


class MerchantRuleSchema(BaseModel):
    pattern: str = Field(min_length=2, max_length=120)
    category: str = Field(min_length=1, max_length=120)
    business_profile_id: Optional[int] = None
    priority: int = 0
