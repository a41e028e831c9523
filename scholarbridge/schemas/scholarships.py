from datetime import date, datetime
from typing import Literal
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator

from scholarbridge.core.trust import (
    MIN_DESCRIPTION_LENGTH,
    MIN_ORGANIZATION_LENGTH,
    MIN_TITLE_LENGTH,
    is_substantive,
)

ScholarshipLevel = Literal["Bachelor", "Master", "PhD", "Postdoctoral", "Any"]
ScholarshipCategory = Literal[
    "Merit-Based",
    "Need-Based",
    "Research",
    "Sports",
    "Women in STEM",
    "International",
    "Government",
    "Private",
]
Currency = Literal[
    "USD",
    "EUR",
    "GBP",
    "AUD",
    "CAD",
    "JPY",
    "CNY",
    "KRW",
    "TRY",
    "SEK",
    "NOK",
    "DKK",
    "CHF",
    "NZD",
    "SGD",
    "HKD",
    "INR",
    "Other",
]


class ValidatedCandidate(BaseModel):
    """A provider candidate that passed the schema, trust and deadline gates."""

    model_config = ConfigDict(frozen=True, extra="ignore", str_strip_whitespace=True)

    title: str
    organization: str
    country: str = Field(min_length=2)
    level: ScholarshipLevel
    field: str = Field(min_length=2)
    category: ScholarshipCategory
    deadline: str = Field(pattern=r"^\d{4}-\d{2}-\d{2}$")
    description: str
    link: str
    amount: str = Field(default="Varies", min_length=1)
    currency: Currency = "USD"

    @field_validator("title")
    @classmethod
    def _title_is_substantive(cls, value: str) -> str:
        if not is_substantive(value, MIN_TITLE_LENGTH):
            raise ValueError(f"title must be at least {MIN_TITLE_LENGTH} characters")
        return value

    @field_validator("organization")
    @classmethod
    def _organization_is_substantive(cls, value: str) -> str:
        if not is_substantive(value, MIN_ORGANIZATION_LENGTH):
            raise ValueError(f"organization must be at least {MIN_ORGANIZATION_LENGTH} characters")
        return value

    @field_validator("description")
    @classmethod
    def _description_is_substantive(cls, value: str) -> str:
        if not is_substantive(value, MIN_DESCRIPTION_LENGTH):
            raise ValueError(f"description must be at least {MIN_DESCRIPTION_LENGTH} characters")
        return value

    @field_validator("link")
    @classmethod
    def _link_is_http_url(cls, value: str) -> str:
        parsed = urlparse(value)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc or any(char.isspace() for char in value):
            raise ValueError("link must be an absolute http(s) URL")
        return value

    @property
    def deadline_date(self) -> date:
        return date.fromisoformat(self.deadline)


class VerifiedCandidate(ValidatedCandidate):
    """A validated candidate whose link answered a live request."""

    link_status_code: int
    link_checked_at: datetime


class ScholarshipRecord(BaseModel):
    id: str
    title: str
    organization: str
    country: str
    level: str
    field: str
    category: str
    deadline: date
    description: str
    link: str
    amount: str | None = None
    currency: str | None = None
    is_verified: bool = False
    verification_notes: str | None = None
    source: str | None = None
    created_at: datetime
    updated_at: datetime


class ScholarshipListOut(BaseModel):
    data: list[ScholarshipRecord] = Field(default_factory=list)
    total: int
    limit: int
    offset: int
