"""Main application entry point for the Tibero Prometheus exporter."""

import argparse
import logging
import signal
import sys
import threading
from typing import Any, Dict, List, Optional, Sequence, Tuple

from prometheus_client import start_http_server
from pydantic import ValidationError

from . import __build_date__, __version__
from .collectors.tibero_collector import CollectionEngine
from .config.loader import MetricsLoader
from .config.settings import ExporterConfig
from .exposition import build_registry
from .utils.logger import setup_logger


# flag -> (ExporterConfig field, type, help)
FLAGS: Dict[str, Tuple[str, type, str]] = {
    "--web.listen-address": ("listen_address", str, "HTTP server bind address (default: 0.0.0.0)"),
    "--web.listen-port": ("listen_port", int, "HTTP server port (default: 9162)"),
    "--db.host": ("db_host", str, "Tibero database host (default: localhost)"),
    "--db.port": ("db_port", int, "Tibero database port (default: 8629)"),
    "--db.user": ("db_user", str, "Database user (default: sys)"),
    "--db.password": ("db_password", str, "Database password"),
    "--db.name": ("db_name", str, "Database name/SID (default: tibero)"),
    "--db.dsn": ("data_source_name", str, "ODBC DSN name or full connection string"),
    "--odbc.driver": ("odbc_driver", str, "Tibero ODBC driver name (default: Tibero 7 ODBC Driver)"),
    "--query.timeout": ("query_timeout", int, "Query timeout in seconds (default: 30)"),
    "--scrape.interval": ("scrape_interval", int, "Expected scrape interval in seconds (default: 15)"),
    "--default.metrics": ("default_metrics_file", str, "Default metrics file (default: default_metrics.yaml)"),
    "--custom.metrics": ("custom_metrics_file", str, "Custom metrics file"),
    "--pool.max-size": ("max_pool_size", int, "Maximum connection pool size (default: 10)"),
    "--pool.min-idle": ("min_idle", int, "Connections opened up front (default: 2)"),
    "--pool.connection-timeout": ("connection_timeout", int, "Connection timeout in ms (default: 30000)"),
    "--pool.idle-timeout": ("idle_timeout", int, "Idle connection timeout in ms (default: 600000)"),
    "--pool.max-lifetime": ("max_lifetime", int, "Maximum connection lifetime in ms (default: 1800000)"),
    "--log.level": ("log_level", str, "Log level (default: INFO or LOG_LEVEL env var)"),
}


class ExporterApp:
    """
    Exporter process.

    Loads metric definitions, builds the collection engine, serves the
    registry over HTTP and shuts everything down on SIGINT/SIGTERM.
    """

    def __init__(self, config: ExporterConfig, logger: logging.Logger = None):
        """
        Initialize exporter application.

        Args:
            config: Validated exporter configuration
            logger: Optional logger instance
        """
        self.config = config
        self.logger = logger or logging.getLogger(__name__)
        self.engine: Optional[CollectionEngine] = None
        self._http_server = None
        self._http_thread = None
        self._stop_event = threading.Event()
        self._stopped = False

    def start(self, block: bool = True) -> None:
        """
        Start serving metrics.

        Args:
            block: Wait until stop() is called or a shutdown signal arrives
        """
        config = self.config
        self.logger.info(f"Starting Tibero Exporter v{__version__}")
        self.logger.info(f"Connecting to {config.db_host}:{config.db_port}")

        specs = MetricsLoader.load_all(config.default_metrics_file, config.custom_metrics_file)
        self.logger.info(f"Loaded {len(specs)} metric definitions")

        self.engine = CollectionEngine.from_config(config, specs, self.logger.getChild("collector"))
        registry = build_registry(self.engine)

        self.logger.info(f"Starting HTTP server at {config.listen_address}:{config.listen_port}")
        self._http_server, self._http_thread = start_http_server(
            config.listen_port,
            addr=config.listen_address,
            registry=registry
        )
        self.logger.info("Tibero Exporter started")
        self.logger.info(
            f"Metrics endpoint: http://{config.listen_address}:{config.listen_port}/metrics"
        )

        if block:
            self._stop_event.wait()
            self.stop()

    def stop(self) -> None:
        """Stop the HTTP server and close the connection pool. Idempotent."""
        if self._stopped:
            return
        self._stopped = True
        self._stop_event.set()
        self.logger.info("Stopping Tibero Exporter...")

        if self._http_server is not None:
            self._http_server.shutdown()
            self._http_server.server_close()

        if self.engine is not None:
            self.engine.close()

        self.logger.info("Tibero Exporter stopped")

    def install_signal_handlers(self) -> None:
        signal.signal(signal.SIGTERM, self._signal_handler)
        signal.signal(signal.SIGINT, self._signal_handler)

    def _signal_handler(self, signum, frame):
        """
        Handle shutdown signals.

        Args:
            signum: Signal number
            frame: Current stack frame
        """
        signal_name = signal.Signals(signum).name
        self.logger.info(f"Received {signal_name}, initiating graceful shutdown...")
        self._stop_event.set()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tibero-exporter",
        description="Tibero Database Prometheus Exporter",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        argument_default=argparse.SUPPRESS,
        epilog="""
Environment variables:
  DB_HOST, DB_PORT, DB_USER, DB_PASSWORD, DB_NAME, DATA_SOURCE_NAME, ODBC_DRIVER
  LISTEN_ADDRESS, LISTEN_PORT, QUERY_TIMEOUT, SCRAPE_INTERVAL
  DEFAULT_METRICS_FILE, CUSTOM_METRICS_FILE
  MAX_POOL_SIZE, MIN_IDLE, CONNECTION_TIMEOUT, IDLE_TIMEOUT, MAX_LIFETIME, LOG_LEVEL

Command-line flags override environment variables.
        """
    )
    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"tibero_exporter v{__version__} ({__build_date__})"
    )
    for flag, (dest, flag_type, help_text) in FLAGS.items():
        parser.add_argument(flag, dest=dest, type=flag_type, metavar=dest.upper(), help=help_text)
    return parser


def parse_args(
    argv: Optional[Sequence[str]] = None,
    logger: logging.Logger = None
) -> Dict[str, Any]:
    """
    Parse command-line flags into ExporterConfig overrides.

    Only flags actually given appear in the result, so environment values
    survive for everything else. Unknown ``--`` flags are warned about and
    ignored.

    Args:
        argv: Arguments (default: sys.argv[1:])
        logger: Optional logger for warnings

    Returns:
        Dict[str, Any]: Field overrides
    """
    logger = logger or logging.getLogger(__name__)
    args, unknown = build_parser().parse_known_args(argv)
    for arg in unknown:
        if arg.startswith("--"):
            logger.warning(f"Unknown argument: {arg}")
    return vars(args)


def load_config(overrides: Dict[str, Any]) -> Tuple[Optional[ExporterConfig], List[str]]:
    """
    Resolve configuration and collect every validation error.

    Returns:
        Tuple of the config (None when field validation failed) and errors
    """
    try:
        config = ExporterConfig(**overrides)
    except ValidationError as e:
        errors = [
            f"{'.'.join(str(loc) for loc in err['loc']) or 'config'}: {err['msg']}"
            for err in e.errors()
        ]
        return None, errors
    return config, config.validate_runtime()


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    CLI entry point.

    Returns:
        int: Process exit code
    """
    bootstrap_logger = setup_logger()
    overrides = parse_args(argv, bootstrap_logger)

    config, errors = load_config(overrides)
    if errors:
        bootstrap_logger.error("Configuration validation failed:")
        for error in errors:
            bootstrap_logger.error(f"  - {error}")
        return 1

    logger = setup_logger(level=config.log_level)

    if not config.db_password:
        logger.warning("Password not provided; connection may fail.")

    app = ExporterApp(config, logger)
    app.install_signal_handlers()

    try:
        app.start()
    except OSError as e:
        logger.error(f"Failed to start exporter: {e}", exc_info=True)
        app.stop()
        return 1
    except Exception as e:
        logger.error(f"Unexpected error: {e}", exc_info=True)
        app.stop()
        return 1

    return 0


if __name__ == '__main__':
    sys.exit(main())
