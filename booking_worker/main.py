"""Main entry point for the booking background worker."""

from dotenv import load_dotenv
load_dotenv()

import argparse
import json
import signal
import sys
import threading
import time
from pathlib import Path
from typing import List, Optional, Tuple

from booking_worker.config.environment import EnvironmentConfig
from booking_worker.config.exceptions import ConfigurationError
from booking_worker.config.loader import load_config
from booking_worker.config.models import AppConfig
from booking_worker.dispatch.runner import Dispatcher
from booking_worker.jobs.base import DatabaseBookingLookup
from booking_worker.jobs.registry import build_default_registry
from booking_worker.logging import get_logger
from booking_worker.logging.config import configure_logging
from booking_worker.notifications.gateway import NotificationGateway
from booking_worker.persistence.database import close_database, get_session, init_database
from booking_worker.scheduler import SchedulerService

logger = get_logger(__name__, component="cli")


def load_runtime_config(
    config_path: Optional[Path], log_level_override: Optional[str]
) -> Tuple[AppConfig, EnvironmentConfig]:
    """
    Load configuration and settle the effective log level.

    Log level priority: CLI flag, then LOG_LEVEL, then the config file.

    Raises:
        ConfigurationError: If configuration is invalid
    """
    app_config, env_config = load_config(config_path)

    if log_level_override:
        env_config.log_level = log_level_override
    elif not env_config.log_level:
        env_config.log_level = app_config.logging.level

    return app_config, env_config


def build_dispatcher(app_config: AppConfig, env_config: EnvironmentConfig) -> Dispatcher:
    """Wire the gateway, booking lookup and handler registry into a Dispatcher.

    The database must already be initialised.
    """
    gateway = NotificationGateway.from_config(env_config, app_config.email)
    if not gateway.configured:
        logger.warning(
            "BREVO_API_KEY not set, every email send will fail",
            extra={"event": "notification.unconfigured"},
        )

    registry = build_default_registry(
        gateway=gateway,
        bookings=DatabaseBookingLookup(get_session),
        jobs_config=app_config.jobs,
        site_url=env_config.site_url,
    )
    logger.info(
        "Services initialized",
        extra={"event": "services.initialized", "job_types": registry.job_types},
    )
    return Dispatcher(registry=registry, gateway=gateway, config=app_config)


def run_once(dispatcher: Dispatcher) -> int:
    """Run a single cycle and print its report as JSON."""
    logger.info("Executing single dispatch cycle", extra={"event": "service.run_once.starting"})
    report = dispatcher.run_cycle()
    print(json.dumps(report.to_dict(), indent=2))
    return 0


def serve(dispatcher: Dispatcher, app_config: AppConfig, env_config: EnvironmentConfig) -> int:
    """Serve the HTTP trigger until uvicorn exits."""
    import uvicorn

    from booking_worker.api import create_app

    if not env_config.auth_enabled:
        logger.warning(
            "CRON_SECRET not set, POST /run will accept unauthenticated calls",
            extra={"event": "api.auth.disabled"},
        )
    logger.info(
        f"Serving trigger on {app_config.server.host}:{app_config.server.port}",
        extra={
            "event": "service.serve.starting",
            "host": app_config.server.host,
            "port": app_config.server.port,
        },
    )
    uvicorn.run(
        create_app(dispatcher, cron_secret=env_config.cron_secret),
        host=app_config.server.host,
        port=app_config.server.port,
        log_config=None,
    )
    return 0


def run_daemon(dispatcher: Dispatcher, app_config: AppConfig) -> int:
    """Trigger cycles on the configured interval until SIGINT/SIGTERM."""
    shutdown_event = threading.Event()
    scheduler_service = SchedulerService(
        cycle_callable=dispatcher.run_cycle,
        interval_seconds=app_config.dispatch.trigger_interval_seconds,
        shutdown_event=shutdown_event,
    )

    def signal_handler(signum, frame):
        logger.info(
            f"Received signal {signum}, shutting down",
            extra={"event": "service.signal_received", "signal": signum},
        )
        scheduler_service.shutdown(wait=False)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    scheduler_service.start()
    logger.info(
        "Daemon running, press Ctrl+C to stop",
        extra={"event": "service.daemon_mode.started"},
    )

    try:
        shutdown_event.wait()
    except KeyboardInterrupt:
        logger.info(
            "Interrupted, stopping scheduler",
            extra={"event": "service.keyboard_interrupt"},
        )
        scheduler_service.shutdown(wait=False)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Booking worker - delivers queued emails and runs scheduled booking jobs"
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to configuration file (default: config.yaml if present)",
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--once",
        action="store_true",
        help="Run a single dispatch cycle, print the report and exit",
    )
    mode.add_argument(
        "--serve",
        action="store_true",
        help="Serve the HTTP trigger (POST /run) instead of scheduling cycles",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (takes precedence over LOG_LEVEL and the config file)",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the booking worker.

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    start_time = time.time()
    args = build_parser().parse_args(argv)
    mode = "once" if args.once else "serve" if args.serve else "daemon"

    try:
        app_config, env_config = load_runtime_config(args.config, args.log_level)

        configure_logging(
            level=env_config.log_level,
            format_type=app_config.logging.format,
            environment=env_config.environment,
        )
        logger.info(
            "Booking worker starting",
            extra={
                "event": "service.starting",
                "config_path": str(args.config) if args.config else None,
                "log_level": env_config.log_level,
                "mode": mode,
            },
        )

        init_database(env_config.database_url)
        dispatcher = build_dispatcher(app_config, env_config)

        try:
            if mode == "once":
                return run_once(dispatcher)
            if mode == "serve":
                return serve(dispatcher, app_config, env_config)
            return run_daemon(dispatcher, app_config)
        finally:
            dispatcher.gateway.close()
            close_database()
            logger.info(
                "Booking worker stopped",
                extra={
                    "event": "service.stopping",
                    "uptime_seconds": round(time.time() - start_time, 2),
                },
            )

    except ConfigurationError as e:
        print(f"Configuration Error: {e}", file=sys.stderr)
        logger.error(
            f"Configuration error: {e}",
            extra={"event": "config.error", "error_type": "ConfigurationError"},
        )
        return 1
    except KeyboardInterrupt:
        print("\nStopped by user", file=sys.stderr)
        return 0
    except Exception as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        logger.critical(
            "Fatal error",
            extra={
                "event": "service.failed",
                "error_type": type(e).__name__,
                "error": str(e),
            },
            exc_info=True,
        )
        return 1


if __name__ == "__main__":
    sys.exit(main())
