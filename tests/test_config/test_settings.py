"""Tests for ExporterConfig."""

import pytest
from pydantic import ValidationError

from tibero_exporter.config.settings import ExporterConfig, mask_password


class TestResolution:
    """Default, environment, then explicit values."""

    def test_defaults(self):
        config = ExporterConfig()

        assert config.db_host == "localhost"
        assert config.db_port == 8629
        assert config.listen_port == 9162
        assert config.query_timeout == 30
        assert config.max_pool_size == 10
        assert config.min_idle == 2
        assert config.connection_timeout == 30000

    def test_environment_overrides_default(self, monkeypatch):
        monkeypatch.setenv("DB_HOST", "tibero.internal")
        monkeypatch.setenv("DB_PORT", "18629")
        monkeypatch.setenv("DATA_SOURCE_NAME", "TIBERO_DSN")

        config = ExporterConfig()

        assert config.db_host == "tibero.internal"
        assert config.db_port == 18629
        assert config.data_source_name == "TIBERO_DSN"

    def test_flag_overrides_environment(self, monkeypatch):
        monkeypatch.setenv("DB_HOST", "from-env")

        config = ExporterConfig(db_host="from-flag")

        assert config.db_host == "from-flag"

    def test_invalid_port(self):
        with pytest.raises(ValidationError):
            ExporterConfig(db_port=0)

    def test_min_idle_above_max(self):
        with pytest.raises(ValidationError):
            ExporterConfig(max_pool_size=2, min_idle=3)

    def test_connection_timeout_floor(self):
        with pytest.raises(ValidationError):
            ExporterConfig(connection_timeout=100)

    def test_millisecond_conversions(self):
        config = ExporterConfig(connection_timeout=1500, idle_timeout=0, max_lifetime=60000)

        assert config.connection_timeout_seconds == 1.5
        assert config.idle_timeout_seconds == 0.0
        assert config.max_lifetime_seconds == 60.0


class TestValidateRuntime:
    def test_valid(self):
        assert ExporterConfig().validate_runtime() == []

    def test_missing_host_and_user(self):
        errors = ExporterConfig(db_host="", db_user="").validate_runtime()

        assert "db_host is required" in errors
        assert "db_user is required" in errors

    def test_dsn_replaces_name(self):
        assert ExporterConfig(db_name="", data_source_name="TIBERO").validate_runtime() == []
        assert len(ExporterConfig(db_name="").validate_runtime()) == 1

    def test_missing_metrics_file(self, tmp_path):
        config = ExporterConfig(default_metrics_file=str(tmp_path / "absent.yaml"))

        errors = config.validate_runtime()

        assert len(errors) == 1
        assert "absent.yaml" in errors[0]


class TestConnectionString:
    def test_driver_string(self):
        config = ExporterConfig(db_host="db1", db_port=8629, db_name="prod", db_user="mon", db_password="pw")

        assert config.odbc_connection_string() == (
            "DRIVER={Tibero 7 ODBC Driver};SERVER=db1;PORT=8629;DB=prod;UID=mon;PWD=pw"
        )

    def test_dsn_name(self):
        config = ExporterConfig(data_source_name="TIBERO", db_user="mon", db_password="pw")

        assert config.odbc_connection_string() == "DSN=TIBERO;UID=mon;PWD=pw"

    def test_full_connection_string_verbatim(self):
        raw = "DRIVER={Tibero 6 ODBC Driver};SERVER=db2;PORT=8629;DB=t6;UID=a;PWD=b"
        config = ExporterConfig(data_source_name=raw)

        assert config.odbc_connection_string() == raw

    def test_masked(self):
        config = ExporterConfig(db_password="s3cret")

        masked = config.masked_connection_string()

        assert "s3cret" not in masked
        assert "PWD=***" in masked

    def test_mask_password_variants(self):
        assert mask_password("UID=a;Password=x;SERVER=h") == "UID=a;Password=***;SERVER=h"
        assert mask_password("DSN=TIBERO") == "DSN=TIBERO"
