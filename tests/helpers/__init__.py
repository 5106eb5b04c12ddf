"""Test helper utilities for hosting notifier tests."""

from .seed import (
    add_client,
    add_domain,
    add_expiry_rule,
    add_hosting,
    add_recurring_rule,
    add_template,
    load_fixture_panel,
    set_app_setting,
    set_company,
)

__all__ = [
    "add_client",
    "add_domain",
    "add_hosting",
    "add_template",
    "add_expiry_rule",
    "add_recurring_rule",
    "set_company",
    "set_app_setting",
    "load_fixture_panel",
]
