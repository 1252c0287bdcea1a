"""
Exporter settings.

Values resolve in the order built-in default, environment variable, then
command-line flag. Environment variables are the upper-cased field names
(``DB_HOST``, ``DB_PORT``, ``DATA_SOURCE_NAME``, ``QUERY_TIMEOUT`` ...);
flags are passed to the constructor and always win.

Example:
    >>> config = ExporterConfig(db_host="tibero.internal")
    >>> config.odbc_connection_string()
    'DRIVER={Tibero 7 ODBC Driver};SERVER=tibero.internal;PORT=8629;DB=tibero;UID=sys;PWD='
"""

import re
from typing import List

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .loader import DEFAULT_METRICS_RESOURCE, MetricsLoader


_PASSWORD_PATTERN = re.compile(r'(PWD|PASSWORD)=([^;]*)', re.IGNORECASE)


def mask_password(connection_string: str) -> str:
    """Replace password values in an ODBC connection string with ***."""
    return _PASSWORD_PATTERN.sub(lambda m: f"{m.group(1)}=***", connection_string)


class ExporterConfig(BaseSettings):
    """Flat exporter configuration."""

    # Database connection
    db_host: str = Field(default="localhost", description="Tibero server hostname")
    db_port: int = Field(default=8629, ge=1, le=65535, description="Tibero listener port")
    db_user: str = Field(default="sys", description="Database user")
    db_password: str = Field(default="", description="Database password")
    db_name: str = Field(default="tibero", description="Database name (SID)")
    data_source_name: str = Field(
        default="",
        description="ODBC DSN name or full connection string; overrides host/port/name"
    )
    odbc_driver: str = Field(
        default="Tibero 7 ODBC Driver",
        description="Name of the installed Tibero ODBC driver"
    )

    # HTTP exposition
    listen_address: str = "0.0.0.0"
    listen_port: int = Field(default=9162, ge=1, le=65535)

    # Queries and scraping
    query_timeout: int = Field(default=30, ge=1, description="Default query timeout (s)")
    scrape_interval: int = Field(
        default=15,
        ge=1,
        description="Expected scrape interval (s); informational only"
    )

    # Metric definitions
    default_metrics_file: str = DEFAULT_METRICS_RESOURCE
    custom_metrics_file: str = ""

    # Connection pool
    max_pool_size: int = Field(default=10, ge=1)
    min_idle: int = Field(default=2, ge=0)
    connection_timeout: int = Field(default=30000, ge=250, description="Checkout/login timeout (ms)")
    idle_timeout: int = Field(default=600000, ge=0, description="Idle connection timeout (ms), 0 = never")
    max_lifetime: int = Field(default=1800000, ge=0, description="Max connection lifetime (ms), 0 = never")

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        case_sensitive=False,
        extra="ignore"
    )

    @model_validator(mode='after')
    def check_pool_sizing(self) -> "ExporterConfig":
        if self.min_idle > self.max_pool_size:
            raise ValueError(
                f"min_idle ({self.min_idle}) must not exceed max_pool_size ({self.max_pool_size})"
            )
        return self

    def validate_runtime(self) -> List[str]:
        """
        Check settings that field constraints cannot express.

        Returns:
            List[str]: Validation errors (empty when valid)
        """
        errors = []

        if not self.db_host:
            errors.append("db_host is required")

        if not self.db_user:
            errors.append("db_user is required")

        if not self.db_name and not self.data_source_name:
            errors.append("Either db_name or data_source_name must be provided")

        if not MetricsLoader.is_available(self.default_metrics_file):
            errors.append(
                f"Metrics file not found (external or embedded): {self.default_metrics_file}"
            )

        return errors

    def odbc_connection_string(self) -> str:
        """
        Build the ODBC connection string for pyodbc.

        A ``data_source_name`` containing ``=`` is used verbatim; otherwise it
        is treated as a configured DSN name.

        Returns:
            str: Connection string including credentials
        """
        dsn = self.data_source_name.strip()
        if dsn and "=" in dsn:
            return dsn
        if dsn:
            return f"DSN={dsn};UID={self.db_user};PWD={self.db_password}"
        return (
            f"DRIVER={{{self.odbc_driver}}};SERVER={self.db_host};PORT={self.db_port};"
            f"DB={self.db_name};UID={self.db_user};PWD={self.db_password}"
        )

    def masked_connection_string(self) -> str:
        return mask_password(self.odbc_connection_string())

    @property
    def connection_timeout_seconds(self) -> float:
        return self.connection_timeout / 1000.0

    @property
    def idle_timeout_seconds(self) -> float:
        return self.idle_timeout / 1000.0

    @property
    def max_lifetime_seconds(self) -> float:
        return self.max_lifetime / 1000.0
