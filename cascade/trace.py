"""
Tracing - Category-tagged debug logging.

Engine and runner log through module loggers. Each record carries a
category such as "MERGE" or "INFO:APPLY"; a CategoryFilter on the output
handler lets through only records whose category shares at least one
colon-separated token with the active allow-list.

Usage:
    configure_tracing(["MERGE", "ORBS"])
    tracer = get_tracer(__name__)
    tracer.trace(TraceCategory.MERGE, "merged %d orbs", 3)
"""

from __future__ import annotations
from enum import Enum
from typing import Iterable
import logging


ROOT_LOGGER = "cascade"


class TraceCategory(str, Enum):
    """Known trace categories."""
    STATE = "STATE"
    ORBS = "ORBS"
    MERGE = "MERGE"
    APPLY = "APPLY"
    INTERACTION = "INTERACTION"
    ERROR = "ERROR"
    INFO = "INFO"


def _tokens(category: str | TraceCategory) -> set[str]:
    value = category.value if isinstance(category, TraceCategory) else str(category)
    return {part.strip().upper() for part in value.split(":") if part.strip()}


class CategoryFilter(logging.Filter):
    """
    Allow-list filter over record categories.

    `categories=None` passes everything. Records without a category pass
    only when the allow-list is None.
    """

    def __init__(self, categories: Iterable[str | TraceCategory] | None = None):
        super().__init__()
        self.categories: set[str] | None = None
        if categories is not None:
            self.categories = set()
            for category in categories:
                self.categories |= _tokens(category)

    def filter(self, record: logging.LogRecord) -> bool:
        if self.categories is None:
            return True
        category = getattr(record, "category", None)
        if category is None:
            return False
        return bool(_tokens(category) & self.categories)


class Tracer(logging.LoggerAdapter):
    """Logger adapter that stamps a category on every record."""

    def process(self, msg, kwargs):
        extra = dict(self.extra or {})
        extra.update(kwargs.pop("extra", {}) or {})
        kwargs["extra"] = extra
        return msg, kwargs

    def enabled(self, level: int = logging.DEBUG) -> bool:
        return self.logger.isEnabledFor(level)

    def trace(self, category, msg, *args, level: int = logging.DEBUG, **kwargs):
        """Log `msg` under `category` (a TraceCategory or "A:B" string)."""
        if not self.logger.isEnabledFor(level):
            return
        value = category.value if isinstance(category, TraceCategory) else str(category)
        extra = kwargs.pop("extra", {}) or {}
        extra["category"] = value
        self.logger.log(level, f"[{value}] {msg}", *args, extra=extra, **kwargs)


def get_tracer(name: str) -> Tracer:
    return Tracer(logging.getLogger(name), {})


def configure_tracing(
    categories: Iterable[str | TraceCategory] | None = None,
    level: int = logging.DEBUG,
    handler: logging.Handler | None = None,
) -> logging.Handler:
    """
    Install a category-filtered handler on the package logger.

    Replaces a handler installed by a previous call. Returns the handler
    so callers (tests, the CLI) can inspect or remove it.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    for existing in list(logger.handlers):
        if getattr(existing, "_cascade_trace", False):
            logger.removeHandler(existing)

    handler = handler or logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(name)s %(message)s"))
    handler.addFilter(CategoryFilter(categories))
    handler._cascade_trace = True
    logger.addHandler(handler)
    logger.setLevel(level)
    return handler
