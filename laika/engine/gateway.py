"""LAIKA — Persistence Gateway.

All database access of a run goes through here: reference reads, computed
value reads/writes, and the month claim.
"""

from datetime import date
from typing import List, Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from laika.core.errors import DuplicateValueError, MonthClaimedError
from laika.core.logging import get_logger
from laika.models.reference_models import GoalMapping, Metric, Site
from laika.models.value_models import ComputedValue, ReportRow, RunClaim

logger = get_logger("engine.gateway")


class PersistenceGateway:
    """Transactional access to sites, metrics, goals and computed values.

    With ``autocommit`` every write is committed on its own, so rows written
    before an abort survive it. Without it the caller owns the transaction
    and decides between ``commit()`` and ``rollback()``.
    """

    def __init__(self, session: Session, autocommit: bool = True):
        self.session = session
        self.autocommit = autocommit

    # ── Reference data ──

    def list_active_sites(self) -> List[Site]:
        return list(
            self.session.exec(
                select(Site).where(Site.ignored == False).order_by(Site.id)  # noqa: E712
            ).all()
        )

    def applicable_metrics(self, site: Site) -> List[Metric]:
        """Global metrics plus the site's additional ones, ascending id."""
        extra = site.additional_metric_ids
        condition = Metric.is_global == True  # noqa: E712
        if extra:
            condition = or_(condition, Metric.id.in_(extra))  # type: ignore
        return list(
            self.session.exec(select(Metric).where(condition).order_by(Metric.id)).all()
        )

    def get_goal(self, site_id: int, metric_id: int) -> Optional[GoalMapping]:
        return self.session.exec(
            select(GoalMapping).where(
                GoalMapping.site_id == site_id, GoalMapping.metric_id == metric_id
            )
        ).first()

    # ── Computed values ──

    def exists_any_for_month(self, month: date) -> bool:
        return (
            self.session.exec(
                select(ComputedValue.id).where(ComputedValue.report_month == month)
            ).first()
            is not None
        )

    def count_for_month(self, month: date) -> int:
        return self.session.exec(
            select(func.count(ComputedValue.id)).where(
                ComputedValue.report_month == month
            )
        ).one()

    def read(self, site_id: int, month: date, metric_id: int) -> Optional[float]:
        return self.session.exec(
            select(ComputedValue.value).where(
                ComputedValue.site_id == site_id,
                ComputedValue.report_month == month,
                ComputedValue.metric_id == metric_id,
            )
        ).first()

    def write(self, site_id: int, month: date, metric_id: int, value: float) -> ComputedValue:
        """Insert a value; an existing (site, month, metric) key is an error."""
        row = ComputedValue(
            site_id=site_id, report_month=month, metric_id=metric_id, value=value
        )
        self.session.add(row)
        try:
            self.session.flush()
        except IntegrityError as e:
            self.session.rollback()
            raise DuplicateValueError(
                f"a value already exists for site {site_id}, metric {metric_id}, "
                f"month {month.isoformat()}"
            ) from e
        if self.autocommit:
            self.session.commit()
        return row

    def list_for_month(self, month: date) -> List[ReportRow]:
        rows = self.session.exec(
            select(ComputedValue)
            .where(ComputedValue.report_month == month)
            .order_by(ComputedValue.id)
        ).all()
        return [
            ReportRow(
                id=r.id, month=r.report_month, site=r.site_id, metric=r.metric_id, value=r.value
            )
            for r in rows
        ]

    # ── Month claim ──

    def claim_month(self, month: date, tenant: str) -> RunClaim:
        """Take the month for this run; committed immediately."""
        claim = RunClaim(report_month=month, tenant=tenant)
        self.session.add(claim)
        try:
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            raise MonthClaimedError(
                f"another run has already claimed {month.strftime('%B %Y')}; "
                f"release the claim once no run is active"
            ) from e
        return claim

    def release_claim(self, month: date) -> bool:
        claim = self.session.get(RunClaim, month)
        if claim is None:
            return False
        self.session.delete(claim)
        self.session.commit()
        logger.info(f"Released run claim for {month.isoformat()}")
        return True

    # ── Transaction ──

    def commit(self) -> None:
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()
