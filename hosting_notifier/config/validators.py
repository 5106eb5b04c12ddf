"""Non-fatal checks on the raw configuration mapping."""

import warnings
from typing import Any, Dict, List, Optional

from .duration import DurationParseError, parse_duration


def check_for_warnings(config_dict: Dict[str, Any]) -> List[str]:
    """
    Look for settings that are valid but probably not what the operator wants.

    Malformed values are left to the pydantic models to report.

    Args:
        config_dict: Raw configuration dictionary

    Returns:
        List of warning messages
    """
    warning_messages = []

    dispatch = config_dict.get("dispatch", {})
    if isinstance(dispatch, dict):
        item_timeout = dispatch.get("item_timeout")
        seconds = _seconds_or_none(item_timeout)
        # The recurring pass runs every minute
        if seconds is not None and seconds >= 60:
            warning_messages.append(
                f"item_timeout ({item_timeout}) is at least one minute; a stuck send "
                "can make the next recurring tick skip"
            )

    scheduler = config_dict.get("scheduler", {})
    if isinstance(scheduler, dict) and scheduler.get("run_startup_sweep") is False:
        warning_messages.append(
            "run_startup_sweep is disabled; expiry notices are only sent at "
            "expiry_sweep_time"
        )

    ttl = config_dict.get("settings_cache_ttl")
    ttl_seconds = _seconds_or_none(ttl)
    if ttl_seconds is not None and ttl_seconds > 3600:
        warning_messages.append(
            f"settings_cache_ttl ({ttl}) is over an hour; mail settings "
            "changes will take long to apply"
        )

    return warning_messages


def _seconds_or_none(value: Any) -> Optional[int]:
    if not isinstance(value, str):
        return None
    try:
        return parse_duration(value)
    except DurationParseError:
        return None


def emit_warnings(warning_messages: List[str]) -> None:
    """Emit each message through Python's warnings module."""
    for message in warning_messages:
        warnings.warn(message, UserWarning, stacklevel=2)
