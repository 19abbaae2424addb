"""
Unit Tests - Persistence gateway, goal resolver and formula evaluator
"""
from datetime import date

import pytest
from sqlmodel import Session

from laika.core.errors import (
    DuplicateValueError,
    GoalMappingError,
    MissingDependencyError,
    MonthClaimedError,
    SiteConfigurationError,
)
from laika.engine.context import EvaluationContext, RunContext
from laika.engine.evaluator import FormulaEvaluator
from laika.engine.formula import compile_formula
from laika.engine.gateway import PersistenceGateway
from laika.engine.goals import GoalResolver
from laika.models.reference_models import GoalMapping, Metric, Site


@pytest.fixture
def site(seeder) -> Site:
    site = Site(id=1, name="Example", analytics_view_id="1001", additional_metrics="7")
    seeder(
        sites=[site, Site(id=2, name="Ignored", analytics_view_id="1002", ignored=True)],
        metrics=[
            Metric(id=1, is_global=True, operation="fetchScalar(getSessions, date, sessions)"),
            Metric(id=3, is_global=True, operation=""),
            Metric(id=5, is_global=False, operation="fetchGoalCompletions()"),
            Metric(id=7, is_global=False, operation="percentToFraction(priorValue(1))"),
        ],
        goals=[
            GoalMapping(site_id=1, metric_id=5, analytics_profile_id="2001", goal_slot=9),
            GoalMapping(site_id=1, metric_id=6, analytics_profile_id="2001", goal_slot=25),
        ],
    )
    return site


@pytest.fixture
def run_ctx(april_2016) -> RunContext:
    return RunContext.for_date("example.org", april_2016)


class TestPersistenceGateway:
    """Tests for PersistenceGateway"""

    def test_active_sites_skip_ignored(self, gateway, site):
        assert [s.id for s in gateway.list_active_sites()] == [1]

    def test_applicable_metrics_union_in_id_order(self, gateway, site):
        assert [m.id for m in gateway.applicable_metrics(site)] == [1, 3, 7]

    def test_applicable_metrics_global_only(self, gateway, site):
        site.additional_metrics = ""
        assert [m.id for m in gateway.applicable_metrics(site)] == [1, 3]

    def test_invalid_additional_metrics(self):
        with pytest.raises(SiteConfigurationError):
            Site(id=4, additional_metrics="1, x").additional_metric_ids

    def test_non_ascii_digits_are_invalid(self):
        with pytest.raises(SiteConfigurationError):
            Site(id=4, additional_metrics="1,\u00b2").additional_metric_ids

    def test_additional_metric_ids_tolerate_spaces(self):
        assert Site(id=4, additional_metrics=" 12, 4,,9 ").additional_metric_ids == [12, 4, 9]

    def test_write_read_and_exists(self, gateway, site, april_2016):
        assert not gateway.exists_any_for_month(april_2016)
        gateway.write(1, april_2016, 1, 500.0)

        assert gateway.exists_any_for_month(april_2016)
        assert gateway.read(1, april_2016, 1) == 500.0
        assert gateway.read(1, april_2016, 2) is None
        assert gateway.read(1, date(2016, 5, 1), 1) is None
        assert gateway.count_for_month(april_2016) == 1

    def test_duplicate_write_is_rejected(self, gateway, site, april_2016):
        gateway.write(1, april_2016, 1, 500.0)
        with pytest.raises(DuplicateValueError):
            gateway.write(1, april_2016, 1, 600.0)
        assert gateway.read(1, april_2016, 1) == 500.0

    def test_list_for_month_in_row_order(self, gateway, site, april_2016):
        gateway.write(2, april_2016, 9, 1.0)
        gateway.write(1, april_2016, 1, 2.0)
        gateway.write(1, date(2016, 5, 1), 1, 3.0)

        rows = gateway.list_for_month(april_2016)
        assert [(r.site, r.metric, r.value) for r in rows] == [(2, 9, 1.0), (1, 1, 2.0)]
        assert rows[0].id < rows[1].id
        assert rows[0].month == april_2016

    def test_uncommitted_writes_roll_back(self, session, site, april_2016):
        gateway = PersistenceGateway(session, autocommit=False)
        gateway.write(1, april_2016, 1, 500.0)
        assert gateway.read(1, april_2016, 1) == 500.0

        gateway.rollback()
        assert not gateway.exists_any_for_month(april_2016)

    def test_claim_month_once(self, engine, gateway, april_2016):
        gateway.claim_month(april_2016, "example.org")
        with Session(engine) as other:
            with pytest.raises(MonthClaimedError):
                PersistenceGateway(other).claim_month(april_2016, "example.org")

    def test_release_claim(self, gateway, april_2016):
        gateway.claim_month(april_2016, "example.org")
        assert gateway.release_claim(april_2016) is True
        assert gateway.release_claim(april_2016) is False
        gateway.claim_month(april_2016, "example.org")


class TestGoalResolver:
    """Tests for GoalResolver"""

    async def test_untracked_goal_is_zero_without_fetch(self, gateway, adapter, report_client, site, run_ctx):
        metric = Metric(id=8, operation="fetchGoalCompletions()")

        value = await GoalResolver(gateway, adapter).resolve(site, metric, run_ctx.window)

        assert value == 0.0
        assert report_client.calls == []
        assert adapter.throttle_count == 0

    async def test_mapped_goal_reads_its_slot(self, gateway, adapter, report_client, site, run_ctx):
        report_client.totals["2001"] = {"ga:goal9Completions": 17.0}
        metric = Metric(id=5, operation="fetchGoalCompletions()")

        value = await GoalResolver(gateway, adapter).resolve(site, metric, run_ctx.window)

        assert value == 17.0
        assert report_client.calls[0]["profile_id"] == "2001"
        assert report_client.calls[0]["metrics"] == "ga:goal9Completions"
        assert adapter.throttle_count == 1

    async def test_out_of_range_slot(self, gateway, adapter, report_client, site, run_ctx):
        metric = Metric(id=6, operation="fetchGoalCompletions()")

        with pytest.raises(GoalMappingError, match="goal slot 25"):
            await GoalResolver(gateway, adapter).resolve(site, metric, run_ctx.window)
        assert report_client.calls == []


class TestFormulaEvaluator:
    """Tests for FormulaEvaluator"""

    @pytest.fixture
    def evaluator(self, gateway, adapter) -> FormulaEvaluator:
        return FormulaEvaluator(adapter, GoalResolver(gateway, adapter), gateway)

    @staticmethod
    def _ctx(run_ctx, site, metric_id) -> EvaluationContext:
        return EvaluationContext(run_ctx, site, Metric(id=metric_id))

    async def test_fetch_scalar_uses_site_and_window(self, evaluator, report_client, site, run_ctx):
        value = await evaluator.evaluate(
            compile_formula("fetchScalar(getSessions, date, sessions)"), self._ctx(run_ctx, site, 1)
        )

        assert value == 500.0
        call = report_client.calls[0]
        assert call["profile_id"] == "1001"
        assert (call["start_date"], call["end_date"]) == ("2016-04-01", "2016-04-30")

    async def test_fetch_country_visits(self, evaluator, report_client, site, run_ctx):
        value = await evaluator.evaluate("fetchCountryVisits(United States)", self._ctx(run_ctx, site, 2))

        assert value == 500.0
        call = report_client.calls[0]
        assert call["dimensions"] == "ga:country"
        assert call["filters"] == "ga:country==United States"

    async def test_percent_of_fetched_value(self, evaluator, site, run_ctx):
        value = await evaluator.evaluate(
            "percentToFraction(fetchScalar(getBounceRate, date, bounceRate))",
            self._ctx(run_ctx, site, 2),
        )
        assert value == pytest.approx(0.425)

    async def test_prior_value(self, evaluator, gateway, site, run_ctx):
        gateway.write(1, run_ctx.report_month, 1, 500.0)

        value = await evaluator.evaluate("percentToFraction(priorValue(1))", self._ctx(run_ctx, site, 7))

        assert value == 5.0

    async def test_prior_value_missing(self, evaluator, site, run_ctx):
        with pytest.raises(MissingDependencyError) as excinfo:
            await evaluator.evaluate("priorValue(4)", self._ctx(run_ctx, site, 7))

        assert excinfo.value.dependency_id == 4
        assert excinfo.value.metric_id == 7
        assert excinfo.value.site_id == 1

    async def test_goal_completions_use_current_metric(self, evaluator, report_client, site, run_ctx):
        report_client.totals["2001"] = {"ga:goal9Completions": 3.0}

        assert await evaluator.evaluate("fetchGoalData()", self._ctx(run_ctx, site, 5)) == 3.0
        assert await evaluator.evaluate("fetchGoalData()", self._ctx(run_ctx, site, 4)) == 0.0
