"""LAIKA — Analytics Metric & Accessor Registry.

Defines the closed set of provider metrics a formula may read back, and the
accessor names that read them. Accessors are looked up in explicit tables;
nothing is resolved by building method names at run time.
"""

from typing import Dict, Tuple

GA_PREFIX = "ga:"
MIN_GOAL_SLOT = 1
MAX_GOAL_SLOT = 20


class ProviderMetric:
    """A single provider metric and the accessor that reads its total."""

    def __init__(self, name: str):
        self.name = name

    @property
    def api_name(self) -> str:
        return f"{GA_PREFIX}{self.name}"

    @property
    def accessor(self) -> str:
        return f"get{self.name[0].upper()}{self.name[1:]}"

    def __repr__(self) -> str:
        return f"<ProviderMetric {self.api_name}>"


# ─────────────────────────────────────────────
# GOOGLE ANALYTICS METRICS — Canonical Registry
# ─────────────────────────────────────────────

GA_METRICS: Dict[str, ProviderMetric] = {
    name: ProviderMetric(name)
    for name in (
        # Volume
        "sessions",
        "users",
        "newUsers",
        "pageviews",
        "uniquePageviews",
        "organicSearches",
        "hits",
        # Rates (percent)
        "bounceRate",
        "percentNewSessions",
        "pageviewsPerSession",
        "exitRate",
        # Durations (seconds)
        "avgSessionDuration",
        "avgTimeOnPage",
        # Goals
        "goalCompletionsAll",
        "goalConversionRateAll",
        # Ecommerce
        "transactions",
        "transactionRevenue",
    )
}


# ─────────────────────────────────────────────
# GOAL SLOTS — goal1Completions … goal20Completions
# ─────────────────────────────────────────────

GOAL_SLOT_METRICS: Dict[int, ProviderMetric] = {
    slot: ProviderMetric(f"goal{slot}Completions")
    for slot in range(MIN_GOAL_SLOT, MAX_GOAL_SLOT + 1)
}


# ─────────────────────────────────────────────
# ACCESSORS — accessor name → provider metric
# ─────────────────────────────────────────────

ACCESSORS: Dict[str, ProviderMetric] = {
    m.accessor: m for m in (*GA_METRICS.values(), *GOAL_SLOT_METRICS.values())
}


def get_accessor(name: str) -> ProviderMetric | None:
    """Look up the metric an accessor reads."""
    return ACCESSORS.get(name)


def goal_slot_metric(slot: int) -> Tuple[str, str]:
    """Return (provider metric, accessor) for a goal slot, or raise ValueError."""
    metric = GOAL_SLOT_METRICS.get(slot)
    if metric is None:
        raise ValueError(
            f"goal slot {slot} is outside {MIN_GOAL_SLOT}..{MAX_GOAL_SLOT}"
        )
    return metric.api_name, metric.accessor
