"""LAIKA — Analytics Fetch Adapter.

Wraps one report request for a date window and enforces the throttle delay
after every call. The delay is the system's only protection of the
provider's request quota, so the number of waits always equals the number of
requests made.
"""

import asyncio
import re
from typing import Awaitable, Callable, Protocol

from laika.connectors.analytics.client import ReportResult
from laika.core.errors import AnalyticsAPIError, FormulaError
from laika.core.logging import get_logger
from laika.core.metric_registry import GA_PREFIX, get_accessor

logger = get_logger("analytics.adapter")

Sleep = Callable[[float], Awaitable[None]]

_FILTER_OPERATORS = ("==", "!=", "=@", "!@", "=~", "!~", ">=", "<=", ">", "<")
_FILTER_EXPRESSION = re.compile(
    r"^\s*(?P<name>[A-Za-z][\w:]*)\s*(?P<op>"
    + "|".join(re.escape(op) for op in _FILTER_OPERATORS)
    + r")\s*(?P<value>.*?)\s*$"
)


class ReportClient(Protocol):
    async def request_report(
        self,
        profile_id: str,
        dimensions: str | None,
        metrics: str,
        filters: str | None,
        start_date: str,
        end_date: str,
        start_index: int = 1,
        max_results: int = 0,
    ) -> ReportResult: ...


def normalize_names(names: str | None) -> str | None:
    """``"date, sessions"`` → ``"ga:date,ga:sessions"``."""
    if names is None:
        return None
    parts = [n.strip() for n in names.split(",") if n.strip()]
    if not parts:
        return None
    return ",".join(n if n.startswith(GA_PREFIX) else f"{GA_PREFIX}{n}" for n in parts)


def normalize_filter(expression: str | None) -> str | None:
    """``"country == United States"`` → ``"ga:country==United States"``.

    ``&&`` and ``||`` become the provider's AND (``;``) and OR (``,``); commas
    and semicolons inside a value are backslash-escaped.
    """
    if expression is None or not expression.strip():
        return None
    and_groups = []
    for and_part in expression.split("&&"):
        or_terms = []
        for term in and_part.split("||"):
            match = _FILTER_EXPRESSION.match(term)
            if not match:
                raise FormulaError(f"invalid filter expression: {term.strip()!r}")
            name = match.group("name")
            if not name.startswith(GA_PREFIX):
                name = f"{GA_PREFIX}{name}"
            value = match.group("value").replace(",", r"\,").replace(";", r"\;")
            or_terms.append(f"{name}{match.group('op')}{value}")
        and_groups.append(",".join(or_terms))
    return ";".join(and_groups)


class AnalyticsFetchAdapter:
    """Throttled report fetches plus accessor read-back."""

    def __init__(
        self,
        client: ReportClient,
        throttle_delay: float = 1.0,
        sleep: Sleep | None = None,
    ):
        self.client = client
        self.throttle_delay = throttle_delay
        self._sleep = sleep or asyncio.sleep
        self.fetch_count = 0
        self.throttle_count = 0

    async def fetch(
        self,
        profile_id: str,
        dimensions: str | None,
        metrics: str,
        filter: str | None,
        start_date: str,
        end_date: str,
    ) -> ReportResult:
        """Request aggregate totals only (no rows), then wait out the throttle."""
        metric_spec = normalize_names(metrics)
        if metric_spec is None:
            raise FormulaError("a report needs at least one metric")
        dimension_spec = normalize_names(dimensions)
        filter_spec = normalize_filter(filter)

        self.fetch_count += 1
        try:
            return await self.client.request_report(
                profile_id,
                dimension_spec,
                metric_spec,
                filter_spec,
                start_date,
                end_date,
                start_index=1,
                max_results=0,
            )
        finally:
            await self._throttle()

    async def _throttle(self) -> None:
        self.throttle_count += 1
        logger.debug(f"Throttling {self.throttle_delay}s after fetch #{self.fetch_count}")
        await self._sleep(self.throttle_delay)

    @staticmethod
    def read_accessor(handle: ReportResult, accessor_name: str) -> float:
        """Read one aggregate total through a registered accessor."""
        metric = get_accessor(accessor_name)
        if metric is None:
            raise FormulaError(f"unknown report accessor: {accessor_name}")
        if metric.api_name not in handle.totals:
            raise AnalyticsAPIError(
                f"report for profile {handle.profile_id} lacks {metric.api_name} "
                f"(read by {accessor_name})"
            )
        return handle.totals[metric.api_name]
