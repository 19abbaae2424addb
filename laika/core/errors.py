"""LAIKA — Error Taxonomy.

Every failure a run can hit is a ``LaikaError``. The coordinator never
recovers from one: it applies the partial-write policy and re-raises, and the
outer surfaces (CLI, API, scheduler) turn it into a diagnostic.
"""


class LaikaError(Exception):
    """Base class for all run failures."""

    http_status = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


# ── Configuration ──


class ConfigurationError(LaikaError):
    """Tenant setup or reference data is unusable."""

    http_status = 400


class TenantNotFoundError(ConfigurationError):
    http_status = 404


class MalformedDateError(ConfigurationError):
    pass


class SiteConfigurationError(ConfigurationError):
    pass


class GoalMappingError(ConfigurationError):
    pass


# ── Preconditions ──


class PreconditionError(LaikaError):
    """The run may not start; nothing has been fetched or written."""

    http_status = 409


class FutureMonthError(PreconditionError):
    pass


class NoActiveSitesError(PreconditionError):
    pass


class MonthAlreadyExistsError(PreconditionError):
    pass


class MonthClaimedError(PreconditionError):
    pass


# ── Evaluation ──


class FormulaError(LaikaError):
    """A stored operation is not a valid call into the primitive registry."""

    http_status = 422

    def __init__(self, message: str, metric_id: int | None = None):
        self.metric_id = metric_id
        if metric_id is not None:
            message = f"metric {metric_id}: {message}"
        super().__init__(message)


class MissingDependencyError(LaikaError):
    """priorValue() referenced a metric not yet computed in this run."""

    def __init__(self, dependency_id: int, metric_id: int, site_id: int):
        self.dependency_id = dependency_id
        self.metric_id = metric_id
        self.site_id = site_id
        super().__init__(
            f"could not find a value for metric {dependency_id} while computing "
            f"metric {metric_id} for site {site_id}; it must be computed earlier "
            f"in the same run"
        )


class AnalyticsAPIError(LaikaError):
    """Raised when the analytics provider fails or answers with garbage."""

    http_status = 502

    def __init__(self, message: str, status_code: int = 0, error_code: int = 0):
        self.status_code = status_code
        self.error_code = error_code
        super().__init__(message)


# ── Persistence ──


class DuplicateValueError(LaikaError):
    """A computed value already exists for (site, month, metric)."""
