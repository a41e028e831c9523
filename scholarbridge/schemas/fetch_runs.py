from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

FetchRunStatus = Literal["running", "completed", "failed"]


class FetchRunOut(BaseModel):
    id: str
    search_queries: list[str] = Field(default_factory=list)
    status: FetchRunStatus = "running"
    scholarships_found: int = 0
    scholarships_added: int = 0
    error: str | None = None
    started_at: datetime
    completed_at: datetime | None = None


class FetchRunAccepted(BaseModel):
    message: str


class StatsOut(BaseModel):
    total_scholarships: int
    total_countries: int
    total_organizations: int
    last_fetched_at: datetime | None = None
    last_fetch_added: int = 0
