"""LAIKA — Formula Evaluator.

Executes a compiled formula by dispatching each call to its bound primitive.
The only side effects are provider requests (each followed by the throttle
delay) and reads of values already written in this run.
"""

from typing import Awaitable, Callable, Dict

from laika.connectors.analytics.adapter import AnalyticsFetchAdapter
from laika.core.errors import FormulaError, MissingDependencyError
from laika.core.logging import get_logger
from laika.engine.context import EvaluationContext
from laika.engine.formula import Call, Formula, compile_formula
from laika.engine.gateway import PersistenceGateway
from laika.engine.goals import GoalResolver
from laika.engine.primitives import (
    FETCH_COUNTRY_VISITS,
    FETCH_GOAL_COMPLETIONS,
    FETCH_SCALAR,
    PERCENT_TO_FRACTION,
    PRIOR_VALUE,
)

logger = get_logger("engine.evaluator")

Handler = Callable[..., Awaitable[float]]


class FormulaEvaluator:
    def __init__(
        self,
        adapter: AnalyticsFetchAdapter,
        goals: GoalResolver,
        gateway: PersistenceGateway,
    ):
        self.adapter = adapter
        self.goals = goals
        self.gateway = gateway
        self._handlers: Dict[str, Handler] = {
            FETCH_SCALAR: self._fetch_scalar,
            FETCH_COUNTRY_VISITS: self._fetch_country_visits,
            FETCH_GOAL_COMPLETIONS: self._fetch_goal_completions,
            PERCENT_TO_FRACTION: self._percent_to_fraction,
            PRIOR_VALUE: self._prior_value,
        }

    async def evaluate(self, formula: Formula | str, ctx: EvaluationContext) -> float:
        """Evaluate a formula for the context's site and metric."""
        if isinstance(formula, str):
            formula = compile_formula(formula, ctx.metric.id)
        return await self._call(formula.root, ctx)

    async def _call(self, call: Call, ctx: EvaluationContext) -> float:
        handler = self._handlers.get(call.name)
        if handler is None:
            raise FormulaError(f"unknown primitive: {call.name}", ctx.metric.id)
        args = []
        for arg in call.args:
            args.append(await self._call(arg, ctx) if isinstance(arg, Call) else arg)
        return float(await handler(ctx, *args))

    # ── Primitives ──

    async def _fetch_scalar(
        self,
        ctx: EvaluationContext,
        accessor: str,
        dimensions: str,
        metrics: str,
        filter: str | None = None,
    ) -> float:
        window = ctx.run.window
        handle = await self.adapter.fetch(
            ctx.site.analytics_view_id,
            dimensions,
            metrics,
            filter,
            window.start_iso,
            window.end_iso,
        )
        return self.adapter.read_accessor(handle, accessor)

    async def _fetch_country_visits(self, ctx: EvaluationContext, country: str) -> float:
        return await self._fetch_scalar(
            ctx, "getSessions", "country", "sessions", f"country == {country}"
        )

    async def _fetch_goal_completions(self, ctx: EvaluationContext) -> float:
        return await self.goals.resolve(ctx.site, ctx.metric, ctx.run.window)

    async def _percent_to_fraction(self, ctx: EvaluationContext, value: float) -> float:
        return value / 100

    async def _prior_value(self, ctx: EvaluationContext, metric_id: int) -> float:
        value = self.gateway.read(ctx.site.id, ctx.run.report_month, metric_id)
        if value is None:
            raise MissingDependencyError(metric_id, ctx.metric.id, ctx.site.id)
        logger.debug(
            f"priorValue({metric_id}) = {value}",
            extra={"site_id": ctx.site.id, "metric_id": ctx.metric.id},
        )
        return value
