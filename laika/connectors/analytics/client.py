"""LAIKA — Google Analytics Reporting Client.

Thin async client over the Core Reporting API (v3). One call, one request:
there is no retry here, the fetch adapter's throttle is the only backpressure.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from laika.core.errors import AnalyticsAPIError
from laika.core.logging import get_logger

logger = get_logger("analytics.client")

REPORT_PATH = "/data/ga"


@dataclass
class ReportResult:
    """Aggregate totals of one report request."""

    profile_id: str
    metrics: List[str]
    totals: Dict[str, float] = field(default_factory=dict)
    total_results: int = 0


class AnalyticsClient:
    """Async HTTP client for the Google Analytics Core Reporting API."""

    def __init__(
        self,
        access_token: str,
        base_url: str = "https://www.googleapis.com/analytics/v3",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.access_token = access_token
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

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
    ) -> ReportResult:
        """Request one report and return its aggregate totals."""
        params: Dict[str, Any] = {
            "ids": f"ga:{profile_id}",
            "metrics": metrics,
            "start-date": start_date,
            "end-date": end_date,
            "start-index": start_index,
            "max-results": max_results,
        }
        if dimensions:
            params["dimensions"] = dimensions
        if filters:
            params["filters"] = filters

        client = await self._get_client()
        try:
            resp = await client.get(
                f"{self.base_url}{REPORT_PATH}",
                params=params,
                headers={"Authorization": f"Bearer {self.access_token}"},
            )
            resp.raise_for_status()
            body = resp.json()
        except httpx.HTTPStatusError as e:
            try:
                error = e.response.json().get("error")
            except (ValueError, AttributeError):
                error = None
            if not isinstance(error, dict):
                error = {}
            error_msg = error.get("message", str(e))
            error_code = error.get("code", 0)
            raise AnalyticsAPIError(
                f"report request for profile {profile_id} failed: {error_msg}",
                e.response.status_code,
                error_code,
            ) from e
        except httpx.RequestError as e:
            raise AnalyticsAPIError(
                f"report request for profile {profile_id} failed: {e}"
            ) from e
        except ValueError as e:
            raise AnalyticsAPIError(
                f"report for profile {profile_id} is not valid JSON"
            ) from e

        return self._parse_report(profile_id, metrics, body)

    @staticmethod
    def _parse_report(profile_id: str, metrics: str, body: Any) -> ReportResult:
        if not isinstance(body, dict) or not isinstance(
            body.get("totalsForAllResults"), dict
        ):
            raise AnalyticsAPIError(
                f"report for profile {profile_id} has no totalsForAllResults"
            )
        totals: Dict[str, float] = {}
        for key, raw in body["totalsForAllResults"].items():
            try:
                totals[key] = float(raw)
            except (TypeError, ValueError) as e:
                raise AnalyticsAPIError(
                    f"report for profile {profile_id} has a non-numeric total "
                    f"for {key}: {raw!r}"
                ) from e

        logger.debug(f"Report for profile {profile_id}: {totals}")
        return ReportResult(
            profile_id=profile_id,
            metrics=metrics.split(","),
            totals=totals,
            total_results=int(body.get("totalResults", 0) or 0),
        )
