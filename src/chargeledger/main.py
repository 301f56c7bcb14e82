"""Main entry point for the refund synchronization scheduler."""

import sys
from pathlib import Path

# Add src directory to Python path when running directly (not as installed package)
if __package__ is None:
    src_dir = Path(__file__).parent.parent.parent
    if str(src_dir) not in sys.path:
        sys.path.insert(0, str(src_dir))

import argparse
import asyncio
import logging

from prometheus_client import start_http_server

from chargeledger import config
from chargeledger.database import Database
from chargeledger.logging_utils import JSONFormatter, log_error
from chargeledger.plugins import FluentdAuditPlugin, PrometheusMetricsPlugin, ServicePlugin
from chargeledger.tasks import SynchronizeRefundTransactionsTask


def setup_logging(level: str = "INFO", log_file: str | None = "chargeledger.log"):
    """Configure JSON logging for the application."""
    json_formatter = JSONFormatter()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(json_formatter)
    handlers: list[logging.Handler] = [console_handler]

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(json_formatter)
        handlers.append(file_handler)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))
    root_logger.handlers = handlers

    # Suppress verbose logging from dependencies
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
    logging.getLogger("ocpp").setLevel(logging.WARNING)


def parse_fluentd_endpoint(parser: argparse.ArgumentParser, endpoint: str) -> tuple[str, int]:
    """Split a ``host:port`` endpoint, reporting malformed values through the parser."""
    if ":" not in endpoint:
        parser.error("--fluentd-endpoint must be in host:port format (e.g., localhost:24224)")
    host, port_str = endpoint.rsplit(":", 1)
    if not host:
        parser.error("--fluentd-endpoint host cannot be empty")
    try:
        return host, int(port_str)
    except ValueError:
        parser.error(f"Invalid port in --fluentd-endpoint: {endpoint}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="chargeledger - refund synchronization scheduler for charging transactions"
    )
    parser.add_argument(
        "--db",
        default=config.DB_PATH,
        help=f"Path to SQLite database file (default: {config.DB_PATH})",
    )
    parser.add_argument(
        "--log-level",
        default=config.LOG_LEVEL.upper(),
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help=f"Logging level (default: {config.LOG_LEVEL.upper()})",
    )
    parser.add_argument(
        "--log-file",
        default=config.LOG_FILE,
        help=f"JSON log file, empty to disable (default: {config.LOG_FILE})",
    )
    parser.add_argument(
        "--interval",
        type=int,
        default=config.SYNC_INTERVAL_SECS,
        help=f"Seconds between two synchronization runs (default: {config.SYNC_INTERVAL_SECS})",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single synchronization and exit",
    )
    parser.add_argument(
        "--tenant",
        action="append",
        dest="tenants",
        default=None,
        help="Only synchronize this tenant (repeatable, default: all tenants)",
    )
    parser.add_argument(
        "--metrics-port",
        type=int,
        default=config.METRICS_PORT,
        help="Port for Prometheus metrics HTTP server (default: disabled)",
    )
    parser.add_argument(
        "--fluentd-endpoint",
        default=config.FLUENTD_ENDPOINT,
        help="Fluentd endpoint in host:port format (e.g., localhost:24224). If provided, enables Fluentd audit logging.",
    )
    parser.add_argument(
        "--fluentd-tag",
        default=config.FLUENTD_TAG,
        help=f"Tag prefix for Fluentd events (default: {config.FLUENTD_TAG})",
    )
    return parser


def create_plugins(args, fluentd_host: str | None, fluentd_port: int | None) -> list[ServicePlugin]:
    plugins: list[ServicePlugin] = []
    if args.metrics_port:
        plugins.append(PrometheusMetricsPlugin())
    if fluentd_host:
        plugins.append(
            FluentdAuditPlugin(
                tag_prefix=args.fluentd_tag,
                host=fluentd_host,
                port=fluentd_port,
                timeout=3.0,
            )
        )
    return plugins


async def main(argv: list[str] | None = None):
    """Main application entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    fluentd_host = None
    fluentd_port = None
    if args.fluentd_endpoint:
        fluentd_host, fluentd_port = parse_fluentd_endpoint(parser, args.fluentd_endpoint)

    setup_logging(args.log_level, args.log_file or None)
    logger = logging.getLogger(__name__)

    logger.info(
        "Scheduler starting",
        extra={
            "event_type": "system_startup",
            "event_data": {
                "database": args.db,
                "interval_secs": args.interval,
                "once": args.once,
                "tenants": args.tenants,
                "metrics_port": args.metrics_port,
                "fluentd_enabled": fluentd_host is not None,
                "fluentd_endpoint": args.fluentd_endpoint,
            },
        },
    )

    if args.metrics_port:
        start_http_server(args.metrics_port)

    db = Database(args.db)
    connection = await db.connect()
    await db.initialize_schema()

    task = SynchronizeRefundTransactionsTask(
        connection, plugins=create_plugins(args, fluentd_host, fluentd_port)
    )
    await task.initialize_plugins()

    try:
        while True:
            results = await task.run(args.tenants)
            logger.info(
                f"Refund synchronization run completed for {len(results)} tenant(s)",
                extra={
                    "event_type": "sync_run_completed",
                    "event_data": {
                        "results": {tenant_id: r.to_dict() for tenant_id, r in results.items()}
                    },
                },
            )
            if args.once:
                break
            await asyncio.sleep(args.interval)
    except asyncio.CancelledError:
        logger.info(
            "Scheduler shutting down",
            extra={"event_type": "system_shutdown", "event_data": {"reason": "cancelled"}},
        )
    except Exception as e:
        log_error(logger, "scheduler_error", f"Scheduler error: {e}", exc_info=e)
        raise
    finally:
        await task.cleanup_plugins()
        await db.disconnect()


def run():
    """Entry point for console script."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nShutdown complete")
    except Exception as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    run()
