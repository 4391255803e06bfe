"""
Lab Inventory Configuration
===========================
Settings read from environment variables. A ``.env`` file in the working
directory is loaded first (python-dotenv), so local development can keep
credentials out of the shell.

    DATABASE_URL                  SQLAlchemy URL (default: SQLite next to this package)
    SECRET_KEY                    Flask session key
    GOOGLE_OAUTH_CLIENT_ID        Google OAuth client (login disabled if unset)
    GOOGLE_OAUTH_CLIENT_SECRET
    LOW_STOCK_RATIO               Fraction of initial quantity that counts as low (0.1)
    EXPIRATION_WINDOW_MONTHS      Months ahead to warn about expiration (3)
    MAINTENANCE_WINDOW_DAYS       Days ahead to warn about maintenance (7)
    MAINTENANCE_INTERVAL_MONTHS   Default gap to next maintenance for new equipment (6)
    ENFORCE_NON_NEGATIVE_STOCK    Reject usage larger than current stock (false)
    SWEEP_LEASE_ENABLED           Guard sweeps with a lease row (true)
    SWEEP_LEASE_TTL_MINUTES       Lease lifetime (15)
    LOG_LEVEL                     Root log level for the CLIs (INFO)
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None or value == '':
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def get_database_url() -> str:
    """
    Get database URL from environment or use default SQLite.

    Handles Heroku-style ``postgres://`` URLs.
    """
    env_url = os.environ.get('DATABASE_URL')
    if env_url:
        if env_url.startswith('postgres://'):
            env_url = env_url.replace('postgres://', 'postgresql://', 1)
        return env_url

    db_folder = os.path.dirname(os.path.abspath(__file__))
    db_path = os.path.join(db_folder, "labinventory.db")
    return f"sqlite:///{db_path}"


@dataclass
class Settings:
    database_url: str
    secret_key: str = 'labinventory-dev-key-change-in-production'
    google_client_id: Optional[str] = None
    google_client_secret: Optional[str] = None
    low_stock_ratio: float = 0.1
    expiration_window_months: int = 3
    maintenance_window_days: int = 7
    maintenance_interval_months: int = 6
    enforce_non_negative_stock: bool = False
    sweep_lease_enabled: bool = True
    sweep_lease_ttl_minutes: int = 15
    log_level: str = 'INFO'

    @property
    def google_oauth_enabled(self) -> bool:
        return bool(self.google_client_id and self.google_client_secret)

    @classmethod
    def from_env(cls) -> 'Settings':
        """Build settings from the process environment (after loading .env)."""
        load_dotenv()
        return cls(
            database_url=get_database_url(),
            secret_key=os.environ.get('SECRET_KEY', cls.secret_key),
            google_client_id=os.environ.get('GOOGLE_OAUTH_CLIENT_ID'),
            google_client_secret=os.environ.get('GOOGLE_OAUTH_CLIENT_SECRET'),
            low_stock_ratio=float(os.environ.get('LOW_STOCK_RATIO', cls.low_stock_ratio)),
            expiration_window_months=int(os.environ.get('EXPIRATION_WINDOW_MONTHS', cls.expiration_window_months)),
            maintenance_window_days=int(os.environ.get('MAINTENANCE_WINDOW_DAYS', cls.maintenance_window_days)),
            maintenance_interval_months=int(
                os.environ.get('MAINTENANCE_INTERVAL_MONTHS', cls.maintenance_interval_months)
            ),
            enforce_non_negative_stock=_env_bool('ENFORCE_NON_NEGATIVE_STOCK', cls.enforce_non_negative_stock),
            sweep_lease_enabled=_env_bool('SWEEP_LEASE_ENABLED', cls.sweep_lease_enabled),
            sweep_lease_ttl_minutes=int(os.environ.get('SWEEP_LEASE_TTL_MINUTES', cls.sweep_lease_ttl_minutes)),
            log_level=os.environ.get('LOG_LEVEL', cls.log_level).upper(),
        )


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the process-wide settings, loading them on first use."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def configure(settings: Optional[Settings] = None, **overrides) -> Settings:
    """
    Replace the process-wide settings.

    Args:
        settings: A complete Settings object. If None, starts from the environment.
        **overrides: Individual fields to override, e.g. ``low_stock_ratio=0.2``.
    """
    global _settings
    base = settings or Settings.from_env()
    for key, value in overrides.items():
        if not hasattr(base, key):
            raise AttributeError(f"Unknown setting: {key}")
        setattr(base, key, value)
    _settings = base
    return _settings
