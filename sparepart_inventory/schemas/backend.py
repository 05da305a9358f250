from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class LocationCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    region: Literal["PAPUA", "MALUKU"]
    regency: str = Field(..., min_length=1)
    cluster: str = Field(..., min_length=1)

    @field_validator("region", mode="before")
    @classmethod
    def _upper_region(cls, value):
        return value.strip().upper() if isinstance(value, str) else value


class StockQuantityUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    quantity: int = Field(..., ge=0)
    notes: Optional[str] = None


class ContactPersonCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    location_id: int
    pic: str = Field(..., min_length=1)
    phone: Optional[str] = None
