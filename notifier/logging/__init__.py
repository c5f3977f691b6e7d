"""Structured logging helpers for the notifier service."""

import logging
from typing import Optional


class ComponentLoggerAdapter(logging.LoggerAdapter):
    """LoggerAdapter that stamps a component name onto every record.

    Fields passed through ``extra`` on the individual call win over the
    adapter defaults.
    """

    def process(self, msg, kwargs):
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def get_logger(name: str, component: Optional[str] = None):
    """Return a module logger, optionally bound to a component label.

    Args:
        name: Logger name (usually ``__name__``)
        component: Component label added to every record (dispatcher, guard, ...)

    Returns:
        Logger or ComponentLoggerAdapter instance

    Example:
        >>> logger = get_logger(__name__, component="dispatcher")
        >>> logger.info("Attempt started", extra={"event": "dispatch.attempt"})
    """
    logger = logging.getLogger(name)

    if component:
        return ComponentLoggerAdapter(logger, {"component": component})

    return logger
