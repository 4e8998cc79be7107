from __future__ import annotations

import logging
import sys
import uuid
from contextlib import contextmanager
from typing import Any, Dict, Iterator

import structlog


def _add_log_level(
    logger: Any, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    event_dict["level"] = method_name
    return event_dict


def configure_logging(env: str = "development", level: int = logging.INFO) -> None:
    """Configure structlog on top of stdlib logging, writing to stdout.

    Development gets the coloured console renderer; staging and production
    emit one JSON object per line.
    """
    timestamper = structlog.processors.TimeStamper(fmt="iso", utc=True)

    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        _add_log_level,
        timestamper,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    renderer: Any
    if env == "development":
        renderer = structlog.dev.ConsoleRenderer(colors=True)
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *shared_processors,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


@contextmanager
def search_context(**fields: Any) -> Iterator[str]:
    """Bind a search_id (plus any extra fields) to every log line in the block.

    Yields the search id so callers can attach it to results.
    """
    search_id = str(fields.pop("search_id", None) or uuid.uuid4())
    tokens = structlog.contextvars.bind_contextvars(search_id=search_id, **fields)
    try:
        yield search_id
    finally:
        structlog.contextvars.reset_contextvars(**tokens)
