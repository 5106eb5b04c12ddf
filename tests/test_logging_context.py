"""Tests for logging context propagation."""

import contextvars
from concurrent.futures import ThreadPoolExecutor

import pytest

from hosting_notifier.logging.context import (
    clear_log_context,
    get_log_context,
    log_context,
    pop_log_context,
    push_log_context,
)


@pytest.fixture(autouse=True)
def clean_context():
    """Clear logging context before and after each test."""
    clear_log_context()
    yield
    clear_log_context()


def test_empty_context():
    """Test that context starts empty."""
    assert get_log_context() == {}


def test_push_and_pop_layers():
    """Pushes stack and pops restore the previous layer."""
    token1 = push_log_context(run_id="3f2a")
    token2 = push_log_context(rule_id=7, rule_type="hosting")
    assert get_log_context() == {"run_id": "3f2a", "rule_id": 7, "rule_type": "hosting"}

    token3 = push_log_context(item_id=42)
    assert get_log_context()["item_id"] == 42

    pop_log_context(token3)
    assert "item_id" not in get_log_context()

    pop_log_context(token2)
    assert get_log_context() == {"run_id": "3f2a"}

    pop_log_context(token1)
    assert get_log_context() == {}


def test_context_override():
    """Test that pushing the same key overwrites previous value."""
    token1 = push_log_context(rule_id=1)
    token2 = push_log_context(rule_id=2)
    assert get_log_context() == {"rule_id": 2}

    pop_log_context(token2)
    assert get_log_context() == {"rule_id": 1}

    pop_log_context(token1)


def test_context_manager_nested():
    """Test nested context managers."""
    with log_context(run_id="3f2a"):
        with log_context(rule_id=7):
            with log_context(item_id=42):
                assert get_log_context() == {"run_id": "3f2a", "rule_id": 7, "item_id": 42}

            assert get_log_context() == {"run_id": "3f2a", "rule_id": 7}

        assert get_log_context() == {"run_id": "3f2a"}

    assert get_log_context() == {}


def test_context_manager_exception():
    """Context is restored when the body raises, and the error propagates."""
    with pytest.raises(ValueError):
        with log_context(rule_id=7):
            raise ValueError("Test exception")

    assert get_log_context() == {}


def test_clear_context():
    """Test clearing all context."""
    push_log_context(run_id="3f2a", rule_id=7)

    clear_log_context()
    assert get_log_context() == {}


def test_context_isolation():
    """Test that get_log_context returns a copy, not the actual dict."""
    with log_context(run_id="3f2a"):
        context = get_log_context()
        context["rule_id"] = "modified"

        assert get_log_context() == {"run_id": "3f2a"}


def test_worker_threads_see_copied_context():
    """Work submitted through copy_context sees the caller's fields."""
    with ThreadPoolExecutor(max_workers=1) as pool:
        with log_context(run_id="3f2a", item_id=42):
            ctx = contextvars.copy_context()
            copied = pool.submit(ctx.run, get_log_context).result()

        bare = pool.submit(get_log_context).result()

    assert copied == {"run_id": "3f2a", "item_id": 42}
    assert bare == {}
