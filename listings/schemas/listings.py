from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, computed_field

ListingSource = Literal["internal", "indeed", "glassdoor", "linkedin", "internshala", "angelist"]
ExternalSource = Literal["indeed", "glassdoor", "linkedin", "internshala", "angelist"]
ListingKind = Literal["full-time", "part-time", "contract", "internship", "freelance"]
RemoteMode = Literal["on-site", "remote", "hybrid"]
ListingStatus = Literal["active", "paused", "closed", "expired"]
Currency = Literal["USD", "EUR", "GBP", "INR"]
PayPeriod = Literal["hourly", "daily", "weekly", "monthly", "yearly"]
ExperienceUnit = Literal["months", "years"]

INTERNAL_SOURCE = "internal"
UNKNOWN_ORGANIZATION = "Unknown Company"
DEFAULT_LOCATION = "Remote"

_CURRENCY_SYMBOLS = {"USD": "$", "EUR": "€", "GBP": "£", "INR": "₹"}


class Compensation(BaseModel):
    min: float | None = Field(default=None, ge=0)
    max: float | None = Field(default=None, ge=0)
    currency: Currency = "USD"
    period: PayPeriod = "yearly"


class ExperienceRange(BaseModel):
    min: float | None = Field(default=0, ge=0)
    max: float | None = Field(default=None, ge=0)
    unit: ExperienceUnit = "years"


class RawListing(BaseModel):
    """One normalized record as produced by a source adapter, before persistence."""

    source: ExternalSource
    external_id: str | None = None
    external_url: str | None = None
    title: str = Field(min_length=1, max_length=200)
    organization_name: str = Field(default=UNKNOWN_ORGANIZATION, max_length=100)
    location: str = Field(default=DEFAULT_LOCATION, max_length=100)
    description: str = Field(default="", max_length=5000)
    salary: Compensation | None = None
    experience: ExperienceRange | None = None
    listing_kind: ListingKind = "full-time"
    remote_mode: RemoteMode = "on-site"
    skills: list[str] = Field(default_factory=list)
    requirements: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    category: str | None = None
    industry: str | None = None
    application_url: str | None = None
    raw_title: str | None = None
    extraction_confident: bool = True


class ListingOut(BaseModel):
    id: str
    source: ListingSource
    external_id: str | None = None
    external_url: str | None = None
    title: str
    organization_name: str
    location: str
    description: str = ""
    salary: Compensation | None = None
    experience: ExperienceRange | None = None
    listing_kind: ListingKind = "full-time"
    remote_mode: RemoteMode = "on-site"
    skills: list[str] = Field(default_factory=list)
    requirements: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    category: str | None = None
    industry: str | None = None
    application_url: str | None = None
    status: ListingStatus = "active"
    employer_id: str | None = None
    last_fetched: datetime
    views: int = 0
    application_count: int = 0
    created_at: datetime
    updated_at: datetime

    @computed_field  # type: ignore[prop-decorator]
    @property
    def salary_range(self) -> str | None:
        if self.salary is None:
            return None
        return format_salary_range(self.salary)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def experience_range(self) -> str | None:
        if self.experience is None:
            return None
        return format_experience_range(self.experience)


class ListingFilters(BaseModel):
    search: str | None = None
    location: str | None = None
    listing_kind: ListingKind | None = None
    remote_mode: RemoteMode | None = None
    source: ListingSource | None = None


class PaginationOut(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class ListingPageOut(BaseModel):
    listings: list[ListingOut] = Field(default_factory=list)
    pagination: PaginationOut


def format_salary_range(salary: Compensation) -> str | None:
    if not salary.min and not salary.max:
        return None

    symbol = _CURRENCY_SYMBOLS.get(salary.currency, "$")
    if salary.min and salary.max:
        return f"{_format_amount(salary.min, symbol)} - {_format_amount(salary.max, symbol)}"
    if salary.min:
        return f"{_format_amount(salary.min, symbol)}+"
    return f"Up to {_format_amount(salary.max or 0, symbol)}"


def format_experience_range(experience: ExperienceRange) -> str | None:
    if not experience.min and not experience.max:
        return None

    if experience.min and experience.max:
        return f"{experience.min:g}-{experience.max:g} {experience.unit}"
    if experience.min:
        return f"{experience.min:g}+ {experience.unit}"
    return f"Up to {experience.max:g} {experience.unit}"


def _format_amount(amount: float, symbol: str) -> str:
    if amount >= 1_000_000:
        return f"{symbol}{amount / 1_000_000:.1f}M"
    if amount >= 1_000:
        return f"{symbol}{round(amount / 1_000)}K"
    return f"{symbol}{amount:g}"
