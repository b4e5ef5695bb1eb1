"""
Utility helpers for the math knowledge graph.

Provides:
- Structured logging configuration with timestamps.
- Wall-clock timing of pipeline stages.
- Slug generation for concept IDs.
- UTC time helpers.
- Order-preserving ID de-duplication.
"""

import contextlib
import logging
import re
import time
from datetime import datetime, timezone
from typing import Generator, Iterable, List, Set

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------


def setup_logging(
    level: int = logging.INFO,
    fmt: str = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt: str = "%Y-%m-%dT%H:%M:%S%z",
) -> None:
    """Configure the root logger with timestamped structured output."""
    logging.basicConfig(level=level, format=fmt, datefmt=datefmt, force=True)


@contextlib.contextmanager
def timed(label: str) -> Generator[None, None, None]:
    """Context manager that logs elapsed wall-clock time for *label*."""
    t0 = time.monotonic()
    yield
    elapsed = time.monotonic() - t0
    logger.info("⏱  %s completed in %.2fs.", label, elapsed)


# ---------------------------------------------------------------------------
# IDs
# ---------------------------------------------------------------------------

_NON_ALNUM = re.compile(r"[^a-z0-9]+")
_SLUG_MAX = 50


def slugify(title: str) -> str:
    """Turn a concept title into an ID: ``"Chain Rule!"`` → ``"chain_rule"``."""
    slug = _NON_ALNUM.sub("_", title.lower()).strip("_")
    return slug[:_SLUG_MAX]


# ---------------------------------------------------------------------------
# Time
# ---------------------------------------------------------------------------

_SECONDS_PER_DAY = 60 * 60 * 24


def utcnow() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(timezone.utc)


def days_between(earlier: datetime, later: datetime) -> float:
    """Fractional days from *earlier* to *later*.

    Naive datetimes are assumed to be UTC.
    """
    if earlier.tzinfo is None:
        earlier = earlier.replace(tzinfo=timezone.utc)
    if later.tzinfo is None:
        later = later.replace(tzinfo=timezone.utc)
    return (later - earlier).total_seconds() / _SECONDS_PER_DAY


# ---------------------------------------------------------------------------
# Collections
# ---------------------------------------------------------------------------


def unique_ids(ids: Iterable[str]) -> List[str]:
    """Drop repeated IDs, keeping first-occurrence order."""
    seen: Set[str] = set()
    out: List[str] = []
    for i in ids:
        if i not in seen:
            seen.add(i)
            out.append(i)
    return out
