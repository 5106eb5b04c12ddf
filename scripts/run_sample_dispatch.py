#!/usr/bin/env python3
"""Sample dispatch harness for end-to-end validation.

Seeds a scratch SQLite database from a YAML fixture, runs one expiry sweep
and one recurring tick at a fixed instant, and prints what would have been
sent. SMTP is replaced by a recorder, so no mail leaves the machine.

Usage:
    # Default fixture, evaluated at 2024-06-01 09:00 UTC
    python scripts/run_sample_dispatch.py

    # Different instant and database
    python scripts/run_sample_dispatch.py --at 2024-05-02T09:00:00 --database /tmp/sample.db
"""

import argparse
import sys
from datetime import datetime
from pathlib import Path
from unittest.mock import Mock

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from hosting_notifier.config.environment import EnvironmentConfig
from hosting_notifier.config.models import DispatchConfig
from hosting_notifier.dispatch import Dispatcher
from hosting_notifier.logging.config import configure_logging
from hosting_notifier.notifications import AttachmentResolver, ReportRenderer, SettingsAccessor
from hosting_notifier.persistence import NotificationLogRepository, close_database, get_session, init_database
from hosting_notifier.utils.timestamps import ensure_utc, parse_iso_datetime
from tests.helpers.seed import load_fixture_panel


def print_header(title: str):
    """Print a formatted section header."""
    width = 80
    print("\n" + "=" * width)
    print(f" {title}")
    print("=" * width + "\n")


def print_summary_table(result):
    """Print outcome tallies of a dispatch run."""
    print_header(f"{result.pass_name.capitalize()} Run Summary")

    metrics = [
        ("Rules Evaluated", result.rules_evaluated),
        ("Sent", result.sent_count),
        ("Failed", result.failed_count),
        ("Skipped", result.skipped_count),
        ("Already Notified", result.duplicate_count),
        ("Rule Errors", len(result.errors)),
        ("Duration (seconds)", f"{result.total_duration_seconds:.2f}"),
    ]

    max_label_width = max(len(label) for label, _ in metrics)
    for label, value in metrics:
        print(f"  {label:<{max_label_width}}  {value}")

    for error in result.errors:
        print(f"  Error: {error}")


def main():
    """Main entry point for the sample dispatch harness."""
    parser = argparse.ArgumentParser(
        description="Run a sample dispatch against fixture data",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--fixtures",
        type=Path,
        default=Path("tests/fixtures/sample_panel.yaml"),
        help="Path to fixture YAML (default: tests/fixtures/sample_panel.yaml)",
    )
    parser.add_argument(
        "--database",
        type=Path,
        default=Path("data/sample_dispatch.db"),
        help="Path to scratch SQLite database (default: data/sample_dispatch.db)",
    )
    parser.add_argument(
        "--at",
        default="2024-06-01T09:00:00Z",
        help="Instant to evaluate rules at, ISO-8601 (default: 2024-06-01T09:00:00Z)",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (default: WARNING)",
    )
    args = parser.parse_args()

    now = ensure_utc(parse_iso_datetime(args.at))
    if now is None:
        print(f"Invalid --at value: {args.at}")
        return 1

    configure_logging(level=args.log_level, format_type="key-value", environment="validation")

    if args.database.exists():
        args.database.unlink()

    print_header("Hosting Notifier - Sample Dispatch Harness")
    print(f"Fixtures: {args.fixtures}")
    print(f"Database: {args.database}")
    print(f"Evaluated at: {now.isoformat()}")

    init_database(f"sqlite:///{args.database.absolute()}")
    try:
        with get_session() as session:
            ids = load_fixture_panel(session, args.fixtures)
        print(f"Seeded {len(ids)} fixture rows")

        env_config = EnvironmentConfig(smtp_host="localhost", smtp_port=25)
        transport = Mock()
        dispatcher = Dispatcher(
            dispatch_config=DispatchConfig(),
            transport=transport,
            report_renderer=ReportRenderer(args.database.parent / "pdfs"),
            attachment_resolver=AttachmentResolver(args.database.parent / "pdfs"),
            settings=SettingsAccessor(env_config),
        )

        try:
            result = dispatcher.run_pass(now)
        finally:
            dispatcher.close()

        print_summary_table(result)

        print_header("Messages")
        for call in transport.send_html.call_args_list:
            to, subject = call.args[0], call.args[1]
            cc = call.args[3]
            print(f"To: {to}" + (f"  Cc: {cc}" if cc else ""))
            print(f"Subject: {subject}\n")

        with get_session() as session:
            records = NotificationLogRepository(session).list_recent()
        print_header("Notification Log")
        for record in records:
            print(f"{record.type:<8} {record.reference_id:<4} {record.recipient:<30} {record.status}")

        return 1 if result.had_errors else 0

    finally:
        close_database()


if __name__ == "__main__":
    sys.exit(main())
