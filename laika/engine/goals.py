"""LAIKA — Goal Resolver.

Maps a (site, metric) pair to the provider goal slot that tracks it. A site
that does not track a goal reports 0 for it without touching the provider.
"""

from typing import Optional, Tuple

from laika.connectors.analytics.adapter import AnalyticsFetchAdapter
from laika.core.errors import GoalMappingError
from laika.core.logging import get_logger
from laika.core.metric_registry import goal_slot_metric
from laika.engine.context import DateWindow
from laika.engine.gateway import PersistenceGateway
from laika.models.reference_models import GoalMapping, Metric, Site

logger = get_logger("engine.goals")

GOAL_DIMENSIONS = "country"


class GoalResolver:
    def __init__(self, gateway: PersistenceGateway, adapter: AnalyticsFetchAdapter):
        self.gateway = gateway
        self.adapter = adapter

    def lookup(self, site: Site, metric: Metric) -> Optional[Tuple[GoalMapping, str, str]]:
        """Return (mapping, provider metric, accessor), or None when untracked."""
        goal = self.gateway.get_goal(site.id, metric.id)
        if goal is None:
            return None
        try:
            provider_metric, accessor = goal_slot_metric(goal.goal_slot)
        except ValueError as e:
            raise GoalMappingError(
                f"goal mapping for site {site.id}, metric {metric.id}: {e}"
            ) from e
        return goal, provider_metric, accessor

    async def resolve(self, site: Site, metric: Metric, window: DateWindow) -> float:
        found = self.lookup(site, metric)
        if found is None:
            logger.debug(
                f"Site {site.id} does not track a goal for metric {metric.id}; using 0",
                extra={"site_id": site.id, "metric_id": metric.id},
            )
            return 0.0

        goal, provider_metric, accessor = found
        handle = await self.adapter.fetch(
            goal.analytics_profile_id,
            GOAL_DIMENSIONS,
            provider_metric,
            None,
            window.start_iso,
            window.end_iso,
        )
        value = self.adapter.read_accessor(handle, accessor)
        logger.debug(
            f"Site {site.id}, profile {goal.analytics_profile_id}, "
            f"goal {goal.goal_slot} = {value}",
            extra={"site_id": site.id, "metric_id": metric.id},
        )
        return value
