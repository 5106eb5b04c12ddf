#!/usr/bin/env python3
"""Check that config.example.yaml parses and validates against the config models."""

import sys
from pathlib import Path

import yaml

from hosting_notifier.config import ConfigurationError, parse_app_config
from hosting_notifier.config.validators import check_for_warnings


def verify_config_structure(config_file: Path = Path("config.example.yaml")) -> bool:
    """Validate ``config_file`` and print a short summary."""
    if not config_file.exists():
        print(f"✗ {config_file} not found")
        return False

    try:
        with open(config_file, "r", encoding="utf-8") as f:
            config_dict = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        print(f"✗ Failed to parse {config_file}: {e}")
        return False

    try:
        app_config = parse_app_config(config_dict)
    except ConfigurationError as e:
        print(f"✗ {config_file} validation failed:")
        print(e)
        return False

    print(f"✓ {config_file} structure is valid")
    print(f"  - Expiry sweep: {app_config.scheduler.expiry_sweep_time} ({app_config.scheduler.timezone})")
    print(f"  - Startup sweep: {'on' if app_config.scheduler.run_startup_sweep else 'off'}")
    print(f"  - Item timeout: {app_config.dispatch.item_timeout_seconds}s, {app_config.dispatch.max_workers} workers")
    print(f"  - Upload dir: {app_config.attachments.upload_dir}")

    for warning in check_for_warnings(config_dict):
        print(f"  ! {warning}")
    return True


if __name__ == "__main__":
    path = Path(sys.argv[1]) if len(sys.argv) > 1 else Path("config.example.yaml")
    sys.exit(0 if verify_config_structure(path) else 1)
