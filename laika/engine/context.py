"""LAIKA — Run & Evaluation Context.

Explicit values handed to every evaluation; nothing about the current run,
site or metric lives in module state.
"""

import calendar
from dataclasses import dataclass
from datetime import date, datetime

from laika.core.errors import MalformedDateError
from laika.models.reference_models import Metric, Site

DATE_FORMAT = "%Y-%m-%d"


def parse_report_date(text: str) -> date:
    """Parse a strict ``YYYY-MM-DD`` date (``2016-4-1`` is rejected)."""
    try:
        parsed = datetime.strptime(text, DATE_FORMAT).date()
    except (TypeError, ValueError):
        parsed = None
    if parsed is None or parsed.strftime(DATE_FORMAT) != text:
        raise MalformedDateError(f"the date parameter appears to be malformed: {text}")
    return parsed


@dataclass(frozen=True)
class DateWindow:
    start: date
    end: date

    @classmethod
    def for_month(cls, day: date) -> "DateWindow":
        last = calendar.monthrange(day.year, day.month)[1]
        return cls(day.replace(day=1), day.replace(day=last))

    @property
    def start_iso(self) -> str:
        return self.start.isoformat()

    @property
    def end_iso(self) -> str:
        return self.end.isoformat()


@dataclass(frozen=True)
class RunContext:
    tenant: str
    report_month: date  # first day of the month
    window: DateWindow

    @classmethod
    def for_date(cls, tenant: str, day: date) -> "RunContext":
        window = DateWindow.for_month(day)
        return cls(tenant, window.start, window)

    @property
    def month_label(self) -> str:
        return self.report_month.strftime("%B %Y")


@dataclass(frozen=True)
class EvaluationContext:
    run: RunContext
    site: Site
    metric: Metric
