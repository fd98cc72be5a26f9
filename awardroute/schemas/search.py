import re
from datetime import date

from pydantic import BaseModel, Field, field_validator, model_validator

_CODE_LIST = re.compile(r"^[A-Z]{3}(/[A-Z]{3})*$")


def _check_codes(value: str) -> str:
    value = "/".join(part.strip() for part in value.upper().split("/") if part.strip())
    if not _CODE_LIST.match(value):
        raise ValueError("must be one or more 3-letter IATA codes separated by '/'")
    return value


class FullRoutePathRequest(BaseModel):
    origin: str
    destination: str
    max_stop: int = Field(4, alias="maxStop")

    model_config = {"populate_by_name": True}

    @field_validator("origin", "destination")
    @classmethod
    def validate_codes(cls, v: str) -> str:
        return _check_codes(v)


class BuildItinerariesRequest(FullRoutePathRequest):
    start_date: date = Field(alias="startDate")
    end_date: date = Field(alias="endDate")
    api_key: str | None = Field(None, alias="apiKey")
    cabin: str | None = None
    carriers: str | None = None
    min_reliability_percent: float | None = Field(None, alias="minReliabilityPercent", ge=0, le=100)
    seats: int = Field(1, ge=1)

    @field_validator("cabin")
    @classmethod
    def validate_cabin(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip().lower()
        if v not in ("economy", "premium", "business", "first"):
            raise ValueError("cabin must be one of economy, premium, business, first")
        return v

    @model_validator(mode="after")
    def check_date_range(self):
        if self.start_date > self.end_date:
            raise ValueError("startDate must not be after endDate")
        return self
