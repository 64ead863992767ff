from typing import Literal, Optional

from pydantic import BaseModel, Field


class CreateProfileSchema(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    type: Literal["PERSONAL", "BUSINESS"] = "BUSINESS"
    description: Optional[str] = None


class SwitchProfileSchema(BaseModel):
    business_profile_id: int
