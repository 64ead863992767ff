from __future__ import annotations

import json
from typing import Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    Field,
    ValidationError as SchemaValidationError,
    model_validator,
)

from errors import ValidationError


class ColumnMapping(BaseModel):
    """Which CSV header carries each transaction field."""

    date: str = Field(min_length=1)
    description: str = Field(min_length=1, validation_alias=AliasChoices("description", "desc"))
    amount: Optional[str] = None
    debit: Optional[str] = None
    credit: Optional[str] = None
    balance: Optional[str] = None
    date_format: Optional[str] = None

    @model_validator(mode="after")
    def _needs_amount_source(self):
        if not self.amount and not (self.debit and self.credit):
            raise ValueError("mapping needs 'amount' or both 'debit' and 'credit' columns")
        return self

    def columns(self) -> dict:
        """Field name -> mapped header, for the column-bearing fields only."""
        out = {}
        for field in ("date", "description", "amount", "debit", "credit", "balance"):
            value = getattr(self, field)
            if value:
                out[field] = value
        return out


def parse_column_mapping(raw) -> Optional[ColumnMapping]:
    """Accept a dict or a JSON string; None/empty means 'auto-detect'."""
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return None
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ValidationError(f"column_mapping is not valid JSON: {e.msg}") from e
    if not isinstance(raw, dict):
        raise ValidationError("column_mapping must be a JSON object")
    try:
        return ColumnMapping(**raw)
    except SchemaValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'mapping'}: {err['msg']}" for err in e.errors()
        )
        raise ValidationError(f"Invalid column_mapping: {problems}") from e


class UpdateTransactionSchema(BaseModel):
    category: Optional[str] = None
    business_profile_id: Optional[int] = None
    exclude_from_analytics: bool = False
