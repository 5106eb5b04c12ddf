"""Main entry point for the hosting notifier service."""

from dotenv import load_dotenv
load_dotenv()

import argparse
import signal
import sys
import threading
import time
from pathlib import Path
from typing import List, Optional, Tuple

from hosting_notifier.config.environment import EnvironmentConfig
from hosting_notifier.config.exceptions import ConfigurationError
from hosting_notifier.config.loader import load_config
from hosting_notifier.config.models import AppConfig
from hosting_notifier.dispatch import Dispatcher, DispatchRunResult
from hosting_notifier.logging import get_logger
from hosting_notifier.logging.config import configure_logging
from hosting_notifier.notifications import (
    AttachmentResolver,
    ReportRenderer,
    SettingsAccessor,
    SMTPClient,
)
from hosting_notifier.persistence.database import close_database, init_database
from hosting_notifier.scheduler import SchedulerService

logger = get_logger(__name__, component="cli")


def load_runtime_config(
    config_path: Optional[Path], log_level_override: Optional[str]
) -> Tuple[AppConfig, EnvironmentConfig]:
    """
    Load configuration and settle the effective log level.

    Priority for the log level: CLI > LOG_LEVEL environment variable > config file.

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
    """Wire the dispatcher and its collaborators from configuration."""
    settings = SettingsAccessor(env_config, ttl_seconds=app_config.settings_cache_ttl_seconds)
    transport = SMTPClient(settings.mail_settings, use_tls=app_config.email.use_tls)

    return Dispatcher(
        dispatch_config=app_config.dispatch,
        transport=transport,
        report_renderer=ReportRenderer(app_config.attachments.upload_dir),
        attachment_resolver=AttachmentResolver(app_config.attachments.upload_dir),
        settings=settings,
        zone=app_config.scheduler.zone,
        test_subject_prefix=app_config.email.test_subject_prefix,
    )


def log_result(result: DispatchRunResult) -> None:
    logger.info(
        f"{result.pass_name.capitalize()} run completed: "
        f"{result.sent_count} sent, {result.failed_count} failed, "
        f"{result.skipped_count} skipped, {result.duplicate_count} already notified",
        extra={
            "event": f"service.{result.pass_name}.completed",
            "duration_seconds": result.total_duration_seconds,
            "had_errors": result.had_errors,
            "rules_evaluated": result.rules_evaluated,
        },
    )
    for error in result.errors:
        print(f"Error: {error}", file=sys.stderr)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Hosting Notifier - expiry and report notifications for the hosting panel"
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to configuration file (default: config.yaml or config/config.yaml)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (overrides config and environment)",
    )

    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--run-once",
        action="store_true",
        help="Run one expiry sweep and one recurring tick, then exit",
    )
    mode.add_argument(
        "--trigger-rule",
        type=int,
        metavar="RULE_ID",
        help="Resend an expiry rule now, ignoring the notification log",
    )
    mode.add_argument(
        "--test-rule",
        type=int,
        metavar="RULE_ID",
        help="Send a test message for a rule (requires --to)",
    )

    parser.add_argument(
        "--item",
        type=int,
        metavar="ITEM_ID",
        help="With --trigger-rule: only this hosting record",
    )
    parser.add_argument(
        "--to",
        metavar="EMAIL",
        help="With --test-rule: recipient of the test message",
    )
    return parser


def run_daemon(dispatcher: Dispatcher, app_config: AppConfig, start_time: float) -> int:
    shutdown_event = threading.Event()

    scheduler_service = SchedulerService(
        expiry_callable=dispatcher.run_expiry_pass,
        recurring_callable=dispatcher.run_recurring_pass,
        config=app_config.scheduler,
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
        "Scheduler started. Press Ctrl+C to stop",
        extra={"event": "service.daemon_mode.started"},
    )

    try:
        shutdown_event.wait()
    except KeyboardInterrupt:
        logger.info(
            "Keyboard interrupt received, shutting down",
            extra={"event": "service.keyboard_interrupt"},
        )
        scheduler_service.shutdown(wait=False)

    logger.info(
        "Hosting Notifier stopped",
        extra={
            "event": "service.stopping",
            "uptime_seconds": round(time.time() - start_time, 2),
        },
    )
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the hosting notifier.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    start_time = time.time()
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.item is not None and args.trigger_rule is None:
        parser.error("--item can only be used with --trigger-rule")
    if args.test_rule is not None and not args.to:
        parser.error("--test-rule requires --to")

    try:
        app_config, env_config = load_runtime_config(args.config, args.log_level)

        configure_logging(
            level=env_config.log_level,
            format_type=app_config.logging.format,
            environment=app_config.logging.environment,
        )

        logger.info(
            "Hosting Notifier starting",
            extra={
                "event": "service.starting",
                "config_path": str(args.config) if args.config else None,
                "log_level": env_config.log_level,
            },
        )

        init_database(env_config.database_url)

        logger.info(
            "Configuration loaded",
            extra={
                "event": "config.loaded",
                "timezone": app_config.scheduler.timezone,
                "expiry_sweep_time": app_config.scheduler.expiry_sweep_time,
                "item_timeout_seconds": app_config.dispatch.item_timeout_seconds,
                "upload_dir": app_config.attachments.upload_dir,
            },
        )

        dispatcher = build_dispatcher(app_config, env_config)

        try:
            if args.trigger_rule is not None:
                result = dispatcher.trigger_rule(args.trigger_rule, item_id=args.item)
            elif args.test_rule is not None:
                result = dispatcher.send_test(args.test_rule, args.to)
            elif args.run_once:
                result = dispatcher.run_pass()
            else:
                return run_daemon(dispatcher, app_config, start_time)

            log_result(result)
            return 1 if result.had_errors else 0

        finally:
            dispatcher.close()
            close_database()

    except ConfigurationError as e:
        print(f"Configuration Error: {e}", file=sys.stderr)
        logger.error(
            f"Configuration error: {e}",
            extra={"event": "config.error", "error_type": "ConfigurationError"},
        )
        return 1
    except KeyboardInterrupt:
        print("\nShutdown requested by user", file=sys.stderr)
        return 0
    except Exception as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        logger.critical(
            "Fatal error during startup",
            extra={
                "event": "service.startup.failed",
                "error_type": type(e).__name__,
                "error": str(e),
            },
            exc_info=True,
        )
        return 1


if __name__ == "__main__":
    sys.exit(main())
