"""Pydantic schema for the run input (validation enhanced)"""
import re
from datetime import date, datetime, timedelta
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from harvester.core.config import settings

_ZIPCODE = re.compile(r"^(?!0{3})[0-9]{3,5}$")
_RELATIVE_DATE = re.compile(r"^\s*(\d+)\s*(day|week|month|year)s?\s*(ago)?\s*$", re.IGNORECASE)
_UNIT_DAYS = {"day": 1, "week": 7, "month": 30, "year": 365}

HomeType = Literal["sale", "fsbo", "rent", "sold", "all"]


def parse_relative_date(value: Any, today: Optional[date] = None) -> Any:
    """Turn "7 days" / "2 weeks ago" into an absolute date; other values pass through."""
    if not isinstance(value, str):
        return value
    match = _RELATIVE_DATE.match(value)
    if not match:
        return value
    amount, unit = int(match.group(1)), match.group(2).lower()
    return (today or date.today()) - timedelta(days=amount * _UNIT_DAYS[unit])


class StartUrl(BaseModel):
    """Start URL entry ({"url": ...} as well as a bare string is accepted)"""
    url: str = Field(..., min_length=1, max_length=4096, description="Search or detail URL")

    @model_validator(mode="before")
    @classmethod
    def _coerce_string(cls, data: Any):
        if isinstance(data, str):
            return {"url": data}
        return data

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        v = v.strip()
        host = settings.site_origin.split("://", 1)[-1]
        if host.removeprefix("www.") not in v:
            raise ValueError(f"Invalid startUrl {v}. Url must start with: {settings.site_origin}")
        return v


class HarvestInput(BaseModel):
    """Harvest run input"""
    search: Optional[str] = Field(None, max_length=500, description="Free-text location search")
    start_urls: List[StartUrl] = Field(default_factory=list, description="Search/detail URLs")
    zpids: List[str] = Field(default_factory=list, description="Listing identifiers to extract directly")
    zipcodes: List[str] = Field(default_factory=list, description="Zipcodes to query")

    type: HomeType = Field("all", description="Listing status category")
    max_items: Optional[int] = Field(None, description="Global cap on emitted records (<=0 means unbounded)")
    max_level: int = Field(0, ge=0, le=10, description="Maximum recursive map split depth (0 disables splitting)")
    simple: bool = Field(True, description="Emit the reduced field set")
    date_from: Optional[date] = Field(None, description="Oldest accepted posting date")
    date_to: Optional[date] = Field(None, description="Newest accepted posting date")
    handle_page_timeout_secs: float = Field(
        3600, gt=0, description="Cap on handling one work item after the initial page (seconds)"
    )
    debug_log: bool = Field(False, description="Enable DEBUG logging")

    @field_validator("search")
    @classmethod
    def validate_search(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None

    @field_validator("zpids", mode="before")
    @classmethod
    def validate_zpids(cls, v: Any) -> list[str]:
        """Only purely numeric identifiers are kept"""
        if v is None:
            return []
        if not isinstance(v, (list, tuple)):
            v = [v]
        return [str(z).strip() for z in v if re.match(r"^[0-9]+$", str(z).strip())]

    @field_validator("zipcodes", mode="before")
    @classmethod
    def validate_zipcodes(cls, v: Any) -> list[str]:
        if v is None:
            return []
        cleaned: list[str] = []
        for zipcode in v:
            text = str(zipcode).strip()
            if not _ZIPCODE.match(text):
                raise ValueError(f"Invalid zipcode provided: {zipcode}")
            cleaned.append(re.sub(r"[^\d]+", "", text))
        return cleaned

    @field_validator("date_from", "date_to", mode="before")
    @classmethod
    def validate_dates(cls, v: Any) -> Any:
        if isinstance(v, datetime):
            return v.date()
        return parse_relative_date(v)

    @model_validator(mode="after")
    def validate_sources(self) -> "HarvestInput":
        if not (self.search or self.start_urls or self.zpids or self.zipcodes):
            raise ValueError('Either "search", "start_urls", "zipcodes" or "zpids" attribute has to be set!')
        if self.date_from and self.date_to and self.date_from > self.date_to:
            raise ValueError("date_from must not be after date_to")
        return self
