"""Structured logging helpers.

Every module gets its logger through :func:`get_logger` so records carry a
``component`` field, and every record names what happened in an ``event``
field (``dispatch.item.sent``, ``scheduler.tick.skipped``...).
"""

import logging
from typing import Optional, Union

from .config import configure_logging
from .context import log_context


class ComponentLoggerAdapter(logging.LoggerAdapter):
    """LoggerAdapter whose ``component`` is merged with per-call extras.

    The stdlib adapter replaces the call's ``extra`` wholesale; this one
    merges, with the call's keys taking precedence.
    """

    def process(self, msg, kwargs):
        extra = kwargs.get("extra", {})
        kwargs["extra"] = {**self.extra, **extra}
        return msg, kwargs


def get_logger(
    name: str, component: Optional[str] = None
) -> Union[logging.Logger, ComponentLoggerAdapter]:
    """Return a logger, wrapped so every record carries ``component``.

    Example:
        >>> logger = get_logger(__name__, component="dispatch")
        >>> logger.info("Pass started", extra={"event": "dispatch.pass.started"})
    """
    logger = logging.getLogger(name)

    if component:
        return ComponentLoggerAdapter(logger, {"component": component})

    return logger


__all__ = [
    "ComponentLoggerAdapter",
    "configure_logging",
    "get_logger",
    "log_context",
]
