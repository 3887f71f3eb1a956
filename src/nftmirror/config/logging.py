"""Logging configuration using structlog.

Context bound with `structlog.contextvars` (the projector binds the event
key and name for each event it processes) is merged into every line, so
concurrent handlers in one batch keep their own context.
"""

import logging
import sys

import structlog
from structlog.typing import Processor

from nftmirror.config.settings import Settings, get_settings

# Chatty below WARNING: every JSON-RPC call and HTTP request
NOISY_LOGGERS = ("httpx", "httpcore", "web3", "urllib3", "hpack")


def build_processors(debug: bool) -> list[Processor]:
    """Processor chain ending in the console renderer (debug) or JSON."""
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]
    if debug:
        processors += [structlog.dev.set_exc_info, structlog.dev.ConsoleRenderer()]
    else:
        processors += [
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(),
        ]
    return processors


def configure_logging(settings: Settings | None = None) -> None:
    """Configure structlog and the stdlib loggers used by httpx and web3."""
    settings = settings or get_settings()
    log_level = getattr(logging, settings.log_level)

    structlog.configure(
        processors=build_processors(settings.debug),
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level)
    third_party_level = log_level if settings.debug else max(log_level, logging.WARNING)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(third_party_level)
