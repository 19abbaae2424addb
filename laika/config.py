"""LAIKA — Central Configuration via Pydantic Settings."""

import re
from pathlib import Path
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from laika.core.errors import TenantNotFoundError

TENANT_ENV_FILE = "tenant.env"
_TENANT_NAME = re.compile(r"^[A-Za-z0-9_-][A-Za-z0-9._-]*$")


class Settings(BaseSettings):
    """Process-wide settings loaded from environment variables / .env file."""

    # ── Tenants ──
    tenants_dir: str = "tenants"

    # ── App ──
    log_level: str = "INFO"

    # ── Scheduler ──
    scheduler_enabled: bool = False
    scheduled_tenants: List[str] = []
    schedule_day: int = 2  # Day of month the previous month is fetched
    schedule_hour: int = 3

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )


class TenantSettings(BaseSettings):
    """Per-tenant settings: database, provider credentials, throttle.

    Read from ``<tenants_dir>/<tenant>/tenant.env``. Environment variables use
    the ``LAIKA_TENANT_`` prefix so one tenant's values never leak into another.
    """

    # ── Database ──
    database_url: str = ""

    # ── Analytics provider ──
    analytics_access_token: str = ""
    analytics_base_url: str = "https://www.googleapis.com/analytics/v3"
    request_timeout: float = 30.0

    # ── Run ──
    fetch_throttle_delay: float = 1.0  # seconds, applied after every fetch
    atomic_run: bool = False  # roll back every write when a run aborts

    tenant_dir: Optional[str] = None

    model_config = SettingsConfigDict(
        env_prefix="LAIKA_TENANT_", env_file_encoding="utf-8", extra="ignore"
    )

    @property
    def effective_database_url(self) -> str:
        """Return the configured URL, otherwise a SQLite file in the tenant dir."""
        if self.database_url:
            return self.database_url
        base = Path(self.tenant_dir) if self.tenant_dir else Path(".")
        return f"sqlite:///{base / 'laika.db'}"


def tenant_path(tenant: str) -> Path:
    """Return the configuration directory of a tenant, validating its name."""
    if not tenant or not _TENANT_NAME.match(tenant):
        raise TenantNotFoundError(f"invalid tenant name: {tenant!r}")
    return Path(settings.tenants_dir) / tenant


def load_tenant_settings(tenant: str) -> TenantSettings:
    """Load a tenant's settings, failing if its configuration is missing."""
    directory = tenant_path(tenant)
    env_file = directory / TENANT_ENV_FILE
    if not env_file.is_file():
        raise TenantNotFoundError(
            f"a tenant configuration could not be found at: {env_file}"
        )
    return TenantSettings(_env_file=env_file, tenant_dir=str(directory))


settings = Settings()
