"""
Pytest fixtures for LAIKA testing.

Provides:
- In-memory SQLite database with the LAIKA tables
- Seed helpers for sites, metrics and goal mappings
- A fake analytics report client and a recording sleep
- Tenant directories on disk for the CLI/API entry points
"""

from datetime import date
from typing import Dict, List, Optional

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine

from laika.config import settings
from laika.connectors.analytics.adapter import AnalyticsFetchAdapter
from laika.connectors.analytics.client import ReportResult
from laika.core.errors import AnalyticsAPIError
from laika.engine.gateway import PersistenceGateway
from laika.models.reference_models import GoalMapping, Metric, Site
from laika.models.value_models import ComputedValue, RunClaim  # noqa: F401


# =============================================================================
# FAKES
# =============================================================================


class FakeReportClient:
    """Answers report requests from a {profile_id: {ga:metric: total}} table."""

    def __init__(self, totals: Optional[Dict[str, Dict[str, float]]] = None, fail: bool = False):
        self.totals = totals or {}
        self.fail = fail
        self.calls: List[dict] = []

    async def request_report(
        self,
        profile_id,
        dimensions,
        metrics,
        filters,
        start_date,
        end_date,
        start_index=1,
        max_results=0,
    ) -> ReportResult:
        self.calls.append(
            {
                "profile_id": profile_id,
                "dimensions": dimensions,
                "metrics": metrics,
                "filters": filters,
                "start_date": start_date,
                "end_date": end_date,
                "start_index": start_index,
                "max_results": max_results,
            }
        )
        if self.fail:
            raise AnalyticsAPIError("provider unavailable", 503)
        profile = self.totals.get(profile_id, {})
        requested = metrics.split(",")
        return ReportResult(
            profile_id=profile_id,
            metrics=requested,
            totals={m: profile[m] for m in requested if m in profile},
        )

    async def close(self):
        pass


class RecordingSleep:
    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


# =============================================================================
# DATABASE FIXTURES
# =============================================================================


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine, expire_on_commit=False) as session:
        yield session


@pytest.fixture
def gateway(session) -> PersistenceGateway:
    return PersistenceGateway(session)


def seed(
    session: Session,
    sites: List[Site] = (),
    metrics: List[Metric] = (),
    goals: List[GoalMapping] = (),
) -> None:
    """Insert reference rows and commit."""
    for row in (*sites, *metrics, *goals):
        session.add(row)
    session.commit()


@pytest.fixture
def seeder(session):
    def _seed(**kwargs):
        seed(session, **kwargs)

    return _seed


# =============================================================================
# ANALYTICS FIXTURES
# =============================================================================


@pytest.fixture
def report_client() -> FakeReportClient:
    return FakeReportClient({"1001": {"ga:sessions": 500.0, "ga:bounceRate": 42.5}})


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def adapter(report_client, recording_sleep) -> AnalyticsFetchAdapter:
    return AnalyticsFetchAdapter(report_client, throttle_delay=2.0, sleep=recording_sleep)


@pytest.fixture
def april_2016() -> date:
    return date(2016, 4, 1)


# =============================================================================
# TENANT FIXTURES
# =============================================================================


@pytest.fixture
def tenants_dir(tmp_path, monkeypatch):
    """Point settings at a temporary tenants directory."""
    monkeypatch.setattr(settings, "tenants_dir", str(tmp_path))
    return tmp_path


@pytest.fixture
def make_tenant(tenants_dir):
    """Create ``<tenants_dir>/<name>/tenant.env`` with a file database."""

    def _make(name: str = "example.org", **overrides) -> str:
        directory = tenants_dir / name
        directory.mkdir()
        values = {
            "LAIKA_TENANT_DATABASE_URL": f"sqlite:///{directory / 'laika.db'}",
            "LAIKA_TENANT_ANALYTICS_ACCESS_TOKEN": "test-token",
            "LAIKA_TENANT_FETCH_THROTTLE_DELAY": "0",
        }
        values.update(overrides)
        (directory / "tenant.env").write_text(
            "".join(f"{key}={value}\n" for key, value in values.items())
        )
        return values["LAIKA_TENANT_DATABASE_URL"]

    return _make
