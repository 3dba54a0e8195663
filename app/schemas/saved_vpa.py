from datetime import datetime
from pydantic import BaseModel, Field, ConfigDict, field_validator


class SavedVpaCreate(BaseModel):
    vpa: str = Field(..., min_length=1, description="UPI Virtual Payment Address")
    is_default: bool = False

    @field_validator("vpa")
    @classmethod
    def strip_vpa(cls, v: str) -> str:
        return v.strip()


class SavedVpaUpdate(BaseModel):
    is_default: bool


class SavedVpaResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    vpa: str
    is_default: bool
    created_at: datetime
    updated_at: datetime


class SavedVpaListResponse(BaseModel):
    vpas: list[SavedVpaResponse]
