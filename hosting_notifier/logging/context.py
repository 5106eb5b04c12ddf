"""Scoped fields that are added to every log record.

A dispatch pass pushes ``run_id``; each rule and item pushes its own
identifiers on top, so a single ``grep rule_id=7`` shows everything that
happened for one rule across the pass. Worker threads start with an empty
context, so the dispatcher copies it with :func:`contextvars.copy_context`
when it hands work to the pool.
"""

from contextvars import ContextVar, Token
from typing import Any, Dict, Optional

LogContextVar: ContextVar[Dict[str, Any]] = ContextVar("log_context", default={})


def get_log_context() -> Dict[str, Any]:
    """Return a copy of the active context fields."""
    return LogContextVar.get().copy()


def push_log_context(**kwargs) -> Token:
    """Merge ``kwargs`` into the active context.

    Returns:
        Token for :func:`pop_log_context`
    """
    current = LogContextVar.get()
    return LogContextVar.set({**current, **kwargs})


def pop_log_context(token: Token) -> None:
    """Restore the context that was active before the matching push."""
    LogContextVar.reset(token)


def clear_log_context() -> None:
    """Drop all context fields (tests use this between cases)."""
    LogContextVar.set({})


class log_context:
    """Context manager form of push/pop.

    Example:
        >>> with log_context(run_id="3f2a", rule_id=7):
        ...     logger.info("Evaluating rule")
    """

    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.token: Optional[Token] = None

    def __enter__(self):
        self.token = push_log_context(**self.kwargs)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.token is not None:
            pop_log_context(self.token)
        return False
