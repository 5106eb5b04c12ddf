"""Dispatch orchestration: turns due rules into sent messages and log records."""

from .dispatcher import Dispatcher
from .models import (
    DispatchRunResult,
    DispatchTimeoutError,
    ItemOutcome,
    OutcomeStatus,
    WorkerPoolSaturatedError,
)

__all__ = [
    "Dispatcher",
    "DispatchRunResult",
    "DispatchTimeoutError",
    "ItemOutcome",
    "OutcomeStatus",
    "WorkerPoolSaturatedError",
]
