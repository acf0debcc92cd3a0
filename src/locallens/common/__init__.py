"""Common utilities for LocalLens."""

from locallens.common.logging import get_logger, setup_logging
from locallens.common.events import EventBus, Event
from locallens.common.ids import IdGenerator, RandomIds, SequentialIds

__all__ = [
    "get_logger",
    "setup_logging",
    "EventBus",
    "Event",
    "IdGenerator",
    "RandomIds",
    "SequentialIds",
]
