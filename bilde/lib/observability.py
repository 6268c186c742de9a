"""Optional Pydantic Logfire tracing for bilde.

Spans emitted:

- ``bilde.ingest``: one upload through the content, index and queue stages
  (attributes ``key`` and ``size``).
- ``bilde.variant``: one variant request (attributes ``key``, ``source`` and
  ``use_cache``), covering the cache read, the resize and the write-through.

When a SQL index is configured its engine is instrumented as well. Every
helper here does nothing unless ``logfire.enabled`` is set and the
``logfire`` extra is installed, so callers never need to check.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

    from bilde.config import LogfireConfig, Settings

INGEST_SPAN = "bilde.ingest"
VARIANT_SPAN = "bilde.variant"

_logfire = None


def is_available() -> bool:
    return _logfire is not None


def _configure_kwargs(config: LogfireConfig, lf) -> dict[str, Any]:
    kwargs: dict[str, Any] = {
        "service_name": config.service_name,
        "send_to_logfire": "if-token-present",
    }
    if config.environment:
        kwargs["environment"] = config.environment
    if config.sample_rate != 1.0:
        kwargs["trace_sample_rate"] = config.sample_rate
    if config.console:
        kwargs["console"] = lf.ConsoleOptions()
    return kwargs


def configure(settings: Settings) -> None:
    """Turn tracing on when the ``logfire`` section enables it."""
    global _logfire

    if not settings.logfire.enabled:
        return

    try:
        import logfire as lf
    except ImportError:
        return

    lf.configure(**_configure_kwargs(settings.logfire, lf))
    _logfire = lf


def instrument_sqlalchemy(engine: AsyncEngine) -> None:
    """Trace the metadata index's SQL statements."""
    if is_available():
        _logfire.instrument_sqlalchemy(engine=engine)


@contextmanager
def span(name: str, **attrs: Any):
    if is_available():
        with _logfire.span(name, **attrs) as s:
            yield s
    else:
        yield None


def warning(msg: str, **kwargs: Any) -> None:
    """Record a degraded operation, e.g. a variant that could not be cached."""
    if is_available():
        _logfire.warn(msg, **kwargs)
