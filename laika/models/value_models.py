"""LAIKA — Computed Value Models & Run Report Schemas."""

from datetime import date, datetime, timezone
from typing import List, Optional
from pydantic import BaseModel
from sqlmodel import SQLModel, Field, UniqueConstraint


# ─────────────────────────────────────────────
# DATABASE MODELS
# ─────────────────────────────────────────────


class ComputedValue(SQLModel, table=True):
    """One persisted metric result.

    Unique constraint on (site_id, report_month, metric_id): a value is
    written once and never updated or deleted by a run.
    """

    __tablename__ = "computed_values"
    __table_args__ = (
        UniqueConstraint(
            "site_id", "report_month", "metric_id", name="uq_computed_value"
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    report_month: date = Field(index=True, description="First day of the month")
    site_id: int = Field(index=True)
    metric_id: int = Field(index=True)
    value: float
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class RunClaim(SQLModel, table=True):
    """Marks a month as taken by one run; the primary key serialises runs."""

    __tablename__ = "run_claims"

    report_month: date = Field(primary_key=True)
    tenant: str = Field(default="")
    claimed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


# ─────────────────────────────────────────────
# PYDANTIC SCHEMAS — Run Report
# ─────────────────────────────────────────────


class ReportRow(BaseModel):
    """A row of the final report."""

    id: int
    month: date
    site: int
    metric: int
    value: float


class RunReport(BaseModel):
    """Outcome of a successful run."""

    tenant: str
    report_month: date
    started_at: datetime
    finished_at: datetime
    duration_seconds: float
    values_written: int
    metrics_skipped: int
    fetch_calls: int
    registry_version: int
    rows: List[ReportRow] = []

    @property
    def elapsed(self) -> str:
        """Elapsed time as M:SS."""
        minutes, seconds = divmod(int(round(self.duration_seconds)), 60)
        return f"{minutes}:{seconds:02d}"
