from datetime import date

from pydantic import BaseModel, ConfigDict, Field

from scholarbridge.schemas.scholarships import Currency, ScholarshipCategory, ScholarshipLevel


class ScholarshipPatchRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str | None = Field(default=None, min_length=1)
    organization: str | None = Field(default=None, min_length=1)
    country: str | None = Field(default=None, min_length=2)
    level: ScholarshipLevel | None = None
    field: str | None = Field(default=None, min_length=2)
    category: ScholarshipCategory | None = None
    deadline: date | None = None
    description: str | None = Field(default=None, min_length=1)
    link: str | None = None
    amount: str | None = Field(default=None, min_length=1)
    currency: Currency | None = None


class VerificationRequest(BaseModel):
    verified: bool
    notes: str | None = None


class ScholarshipCreatedOut(BaseModel):
    id: str
