"""LAIKA — Run API Routes."""

from typing import List

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel

from laika.core.errors import LaikaError
from laika.core.logging import get_logger
from laika.engine.coordinator import list_month_values, run_for_tenant
from laika.models.value_models import ReportRow, RunReport

logger = get_logger("api.runs")

router = APIRouter(tags=["Runs"])


# ── Request / Response Models ──


class RunRequest(BaseModel):
    """Request body for POST /runs."""

    tenant: str
    report_date: str
    """ISO date inside the month to compute, e.g. 2016-04-01."""

    model_config = {
        "json_schema_extra": {
            "examples": [{"tenant": "example.org", "report_date": "2016-04-01"}]
        }
    }


class RunResponse(BaseModel):
    status: str = "success"
    report: RunReport


class ValuesResponse(BaseModel):
    status: str = "success"
    count: int
    rows: List[ReportRow]


def _http_error(error: LaikaError) -> HTTPException:
    return HTTPException(status_code=error.http_status, detail=error.message)


# ── Endpoints ──


@router.post("/runs", response_model=RunResponse)
async def trigger_run(request: RunRequest):
    """Compute and store every metric of a tenant's month.

    Blocks until the run finishes; the provider throttle makes this take
    several seconds per metric.
    """
    try:
        report = await run_for_tenant(request.tenant, request.report_date)
    except LaikaError as e:
        logger.error(f"Run failed: {e}", extra={"tenant": request.tenant})
        raise _http_error(e)
    return RunResponse(report=report)


@router.get("/tenants/{tenant}/values", response_model=ValuesResponse)
async def get_month_values(
    tenant: str,
    month: str = Query(..., description="Any date of the month (YYYY-MM-DD)"),
):
    """Values stored for a tenant's month, ordered by row id."""
    try:
        rows = list_month_values(tenant, month)
    except LaikaError as e:
        raise _http_error(e)
    return ValuesResponse(count=len(rows), rows=rows)
