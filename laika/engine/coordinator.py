"""LAIKA — Run Coordinator.

Runs one month for one tenant:
  preconditions → claim month → for each site → for each metric → evaluate → persist → report

Sites are processed in id order and each site's metrics in ascending metric
id. That order is the only guarantee a formula has when it reads another
metric's value with priorValue().
"""

from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Callable, List, Optional, Tuple

from laika.config import TenantSettings, load_tenant_settings
from laika.connectors.analytics.adapter import AnalyticsFetchAdapter, Sleep
from laika.connectors.analytics.client import AnalyticsClient
from laika.core.errors import (
    ConfigurationError,
    FutureMonthError,
    MonthAlreadyExistsError,
    NoActiveSitesError,
)
from laika.core.logging import get_logger
from laika.database import get_engine, init_db, open_session, test_connection
from laika.engine.context import EvaluationContext, RunContext, parse_report_date
from laika.engine.evaluator import FormulaEvaluator
from laika.engine.formula import Formula, compile_formula
from laika.engine.gateway import PersistenceGateway
from laika.engine.goals import GoalResolver
from laika.engine.primitives import FETCH_GOAL_COMPLETIONS, REGISTRY_VERSION
from laika.models.reference_models import Metric, Site
from laika.models.value_models import ReportRow, RunReport

logger = get_logger("engine.coordinator")


@dataclass
class SitePlan:
    site: Site
    operations: List[Tuple[Metric, Optional[Formula]]]  # None = skip


class RunCoordinator:
    """Drives one run; aborts on the first failure.

    When the gateway commits every write (the default), rows written before an
    abort are kept. When it does not, the whole run is one transaction and an
    abort rolls it back.
    """

    def __init__(
        self,
        tenant: str,
        gateway: PersistenceGateway,
        adapter: AnalyticsFetchAdapter,
        today: Callable[[], date] = date.today,
    ):
        self.tenant = tenant
        self.gateway = gateway
        self.adapter = adapter
        self.today = today
        self.goals = GoalResolver(gateway, adapter)
        self.evaluator = FormulaEvaluator(adapter, self.goals, gateway)

    @property
    def atomic(self) -> bool:
        return not self.gateway.autocommit

    async def run(self, report_date: str | date) -> RunReport:
        day = parse_report_date(report_date) if isinstance(report_date, str) else report_date
        ctx = RunContext.for_date(self.tenant, day)
        log_extra = {"tenant": self.tenant, "report_month": ctx.report_month.isoformat()}

        plan = self._plan(day, ctx)
        self.gateway.claim_month(ctx.report_month, self.tenant)

        started_at = datetime.now(timezone.utc)
        logger.info(f"🚀 Started {ctx.month_label} for tenant {self.tenant}", extra=log_extra)

        written = skipped = 0
        try:
            for site_plan in plan:
                w, s = await self._run_site(ctx, site_plan)
                written += w
                skipped += s
            if self.atomic:
                self.gateway.commit()
        except Exception as e:
            self._abort(ctx, e, written)
            raise

        finished_at = datetime.now(timezone.utc)
        duration = (finished_at - started_at).total_seconds()
        logger.info(
            f"✅ Finished {ctx.month_label}: {written} values written, "
            f"{skipped} metrics skipped, {self.adapter.fetch_count} fetches",
            extra={**log_extra, "duration_ms": round(duration * 1000)},
        )

        return RunReport(
            tenant=self.tenant,
            report_month=ctx.report_month,
            started_at=started_at,
            finished_at=finished_at,
            duration_seconds=round(duration, 3),
            values_written=written,
            metrics_skipped=skipped,
            fetch_calls=self.adapter.fetch_count,
            registry_version=REGISTRY_VERSION,
            rows=self.gateway.list_for_month(ctx.report_month),
        )

    # ── Preconditions ──

    def _plan(self, day: date, ctx: RunContext) -> List[SitePlan]:
        """Check every precondition, formula and goal slot; no side effects."""
        if day > self.today():
            raise FutureMonthError(
                f"cannot fetch data for {day.isoformat()}, it is in the future"
            )

        sites = self.gateway.list_active_sites()
        if not sites:
            raise NoActiveSitesError("no sites are defined (or all are ignored)")

        if self.gateway.exists_any_for_month(ctx.report_month):
            raise MonthAlreadyExistsError(
                f"data for tenant {self.tenant} already exists for {ctx.month_label} "
                f"({ctx.report_month.isoformat()}); nothing was fetched"
            )

        plan: List[SitePlan] = []
        for site in sites:
            operations: List[Tuple[Metric, Optional[Formula]]] = []
            for metric in self.gateway.applicable_metrics(site):
                if not metric.operation or not metric.operation.strip():
                    operations.append((metric, None))
                    continue
                formula = compile_formula(metric.operation, metric.id)
                if formula.calls(FETCH_GOAL_COMPLETIONS):
                    self.goals.lookup(site, metric)
                operations.append((metric, formula))
            plan.append(SitePlan(site, operations))
        return plan

    # ── Execution ──

    async def _run_site(self, ctx: RunContext, site_plan: SitePlan) -> Tuple[int, int]:
        site = site_plan.site
        extra = {"tenant": self.tenant, "site_id": site.id}
        logger.info(
            f"Fetching data for {site.name} (site {site.id}) for {ctx.month_label} "
            f"on tenant {self.tenant}",
            extra=extra,
        )
        logger.debug(
            f"Operations to perform: {','.join(str(m.id) for m, _ in site_plan.operations)}",
            extra=extra,
        )

        written = skipped = 0
        for metric, formula in site_plan.operations:
            metric_extra = {**extra, "metric_id": metric.id}
            if formula is None:
                logger.info(f"Metric {metric.id} has no operation; skipped", extra=metric_extra)
                skipped += 1
                continue

            logger.debug(f"Metric {metric.id}: {formula.source}", extra=metric_extra)
            value = await self.evaluator.evaluate(
                formula, EvaluationContext(ctx, site, metric)
            )
            self.gateway.write(site.id, ctx.report_month, metric.id, value)
            logger.debug(f"Metric {metric.id} result = {value}", extra=metric_extra)
            written += 1
        return written, skipped

    def _abort(self, ctx: RunContext, error: Exception, written: int) -> None:
        if self.atomic:
            self.gateway.rollback()
            kept = 0
        else:
            kept = self.gateway.count_for_month(ctx.report_month)
        if kept == 0:
            self.gateway.release_claim(ctx.report_month)
        logger.error(
            f"❌ Run for {ctx.month_label} aborted after {written} writes "
            f"({kept} kept): {error}",
            extra={"tenant": self.tenant, "report_month": ctx.report_month.isoformat()},
        )


# ─────────────────────────────────────────────
# TENANT ENTRY POINTS
# ─────────────────────────────────────────────


def _open_tenant_engine(tenant: str, tenant_settings: TenantSettings):
    engine = get_engine(tenant_settings.effective_database_url)
    if not test_connection(engine):
        raise ConfigurationError(f"the database of tenant {tenant} is unreachable")
    init_db(engine)
    return engine


async def run_for_tenant(
    tenant: str,
    report_date: str,
    today: Callable[[], date] = date.today,
    sleep: Sleep | None = None,
) -> RunReport:
    """Load a tenant, open its database and provider client, run one month."""
    tenant_settings = load_tenant_settings(tenant)
    day = parse_report_date(report_date)

    engine = _open_tenant_engine(tenant, tenant_settings)
    client = AnalyticsClient(
        tenant_settings.analytics_access_token,
        tenant_settings.analytics_base_url,
        tenant_settings.request_timeout,
    )
    adapter = AnalyticsFetchAdapter(client, tenant_settings.fetch_throttle_delay, sleep)
    try:
        with open_session(engine) as session:
            gateway = PersistenceGateway(session, autocommit=not tenant_settings.atomic_run)
            return await RunCoordinator(tenant, gateway, adapter, today).run(day)
    finally:
        await client.close()


def list_month_values(tenant: str, report_date: str) -> List[ReportRow]:
    """Stored values of a tenant's month, ordered by row id."""
    tenant_settings = load_tenant_settings(tenant)
    ctx = RunContext.for_date(tenant, parse_report_date(report_date))
    engine = _open_tenant_engine(tenant, tenant_settings)
    with open_session(engine) as session:
        return PersistenceGateway(session).list_for_month(ctx.report_month)


def release_month(tenant: str, report_date: str) -> bool:
    """Drop a stale run claim left behind by a killed run."""
    tenant_settings = load_tenant_settings(tenant)
    ctx = RunContext.for_date(tenant, parse_report_date(report_date))
    engine = _open_tenant_engine(tenant, tenant_settings)
    with open_session(engine) as session:
        return PersistenceGateway(session).release_claim(ctx.report_month)
