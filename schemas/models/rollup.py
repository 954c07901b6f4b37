"""
Rollup and job-run document models.

RollupRecord maps to the `rollups` collection. Its ``_id`` is derived from
(period, link_id, period_key), so writing the same window twice replaces the
same document. Records carry no wall-clock fields: a re-run over unchanged
events produces a byte-identical document.

JobRun is one scheduler execution, kept in memory only (newest first).
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from shared.datetime_utils import ensure_utc


class RollupPeriod(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


class BreakdownEntry(BaseModel):
    key: str
    clicks: int


class CountryCount(BaseModel):
    country: str
    clicks: int


class RollupRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)

    id: str = Field(default="", alias="_id")
    period: RollupPeriod
    link_id: str
    period_key: str  # 2024-03-05 / 2024-W10 / 2024-03
    start: datetime
    end: datetime
    clicks: int
    unique_visitors: int
    top_countries: list[CountryCount] = Field(default_factory=list)
    daily_breakdown: list[BreakdownEntry] = Field(default_factory=list)
    weekly_breakdown: list[BreakdownEntry] = Field(default_factory=list)

    @field_validator("start", "end", mode="after")
    @classmethod
    def _utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @staticmethod
    def make_id(period: str, link_id: str, period_key: str) -> str:
        return f"{RollupPeriod(period).value}:{link_id}:{period_key}"

    def model_post_init(self, __context) -> None:
        if not self.id:
            self.id = self.make_id(self.period, self.link_id, self.period_key)

    def to_mongo(self) -> dict:
        return self.model_dump(by_alias=True, mode="python")

    @classmethod
    def from_mongo(cls, data: Optional[dict]) -> Optional["RollupRecord"]:
        if data is None:
            return None
        return cls.model_validate(data)


class JobOutcome(str, Enum):
    SUCCEEDED = "succeeded"
    COMPLETED_WITH_FAILURES = "completed_with_failures"
    FAILED = "failed"
    SKIPPED = "skipped"


class JobRun(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    job: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    outcome: JobOutcome
    total: int = 0
    processed: int = 0
    failed: int = 0
    failed_ids: list[str] = Field(default_factory=list)
    error: Optional[str] = None
