"""Core module - database, security and messaging infrastructure."""

from beacon.core.database import (
    async_engine,
    async_session_factory,
    get_session_context,
)
from beacon.core.events import EventPublisher, ProcessEventDispatcher
from beacon.core.logging_config import configure_logging

__all__ = [
    "EventPublisher",
    "ProcessEventDispatcher",
    "async_engine",
    "async_session_factory",
    "configure_logging",
    "get_session_context",
]
