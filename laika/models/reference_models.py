"""LAIKA — Reference Data Models (read-only to the engine).

Sites, metric definitions and goal mappings are maintained outside LAIKA;
a run only ever reads them.
"""

from typing import List, Optional
from sqlmodel import SQLModel, Field, UniqueConstraint

from laika.core.errors import SiteConfigurationError


class Site(SQLModel, table=True):
    """A tracked web property."""

    __tablename__ = "sites"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(default="")
    analytics_view_id: str = Field(default="", description="Provider profile/view id")
    ignored: bool = Field(default=False, index=True)
    additional_metrics: str = Field(
        default="", description="Comma-separated metric ids beyond the global set"
    )

    @property
    def additional_metric_ids(self) -> List[int]:
        """Parse the additional metric list, keeping its order."""
        ids: List[int] = []
        for token in self.additional_metrics.split(","):
            token = token.strip()
            if not token:
                continue
            if not (token.isascii() and token.isdigit()):
                raise SiteConfigurationError(
                    f"site {self.id} lists an invalid additional metric id: {token!r}"
                )
            ids.append(int(token))
        return ids


class Metric(SQLModel, table=True):
    """A formula-driven metric definition.

    An empty ``operation`` means the metric is skipped.
    """

    __tablename__ = "metrics"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(default="")
    is_global: bool = Field(default=False, index=True)
    operation: str = Field(default="", description="Formula over the primitive registry")


class GoalMapping(SQLModel, table=True):
    """Binds a (site, metric) pair to a provider goal slot."""

    __tablename__ = "goals"
    __table_args__ = (
        UniqueConstraint("site_id", "metric_id", name="uq_goal_site_metric"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    site_id: int = Field(index=True)
    metric_id: int = Field(index=True)
    analytics_profile_id: str = Field(description="Provider profile holding the goal")
    goal_slot: int = Field(description="Provider goal number, 1-20")
