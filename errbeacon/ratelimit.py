"""Tracking of server-imposed rate limits for outgoing payloads."""

from __future__ import annotations

import math
import time
from dataclasses import dataclass, field
from datetime import timezone
from email.utils import parsedate_to_datetime
from enum import Enum
from typing import Callable, Dict, Optional


class RateLimitingCategory(Enum):
    """The category of payload that a rate limit refers to."""

    ANY = "any"
    ERROR = "error"
    SESSION = "session"
    TRANSACTION = "transaction"


_HEADER_CATEGORIES = {
    "error": RateLimitingCategory.ERROR,
    "session": RateLimitingCategory.SESSION,
    "transaction": RateLimitingCategory.TRANSACTION,
}


def _parse_seconds(text: str) -> Optional[float]:
    """Parse a number of seconds, rounded up to whole seconds and never negative."""
    if not text or text != text.strip() or "_" in text:
        return None
    try:
        value = float(text)
    except ValueError:
        return None
    if math.isnan(value) or value <= 0:
        return 0.0
    if math.isinf(value):
        return math.inf
    return float(math.ceil(value))


def _parse_http_date(text: str) -> Optional[float]:
    """Parse an HTTP date into a POSIX timestamp."""
    try:
        moment = parsedate_to_datetime(text)
    except (TypeError, ValueError, IndexError):
        return None
    if moment is None:
        return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.timestamp()


@dataclass
class RateLimiter:
    """Remembers until when each category of payload must not be sent.

    ``clock`` returns the current time as a POSIX timestamp.
    """

    clock: Callable[[], float] = time.time
    _until: Dict[RateLimitingCategory, float] = field(
        default_factory=dict, init=False, repr=False
    )

    def update_from_retry_after(self, header: str) -> None:
        """Update the global limit from a ``Retry-After`` header value."""
        seconds = _parse_seconds(header)
        if seconds is not None:
            new_time: Optional[float] = self.clock() + seconds
        else:
            new_time = _parse_http_date(header)
        if new_time is not None:
            self._until[RateLimitingCategory.ANY] = new_time

    def update_from_sentry_header(self, header: str) -> None:
        """Update limits from an ``X-Sentry-Rate-Limits`` header value.

        The header is a comma separated list of groups of the form
        ``<seconds>:<category>;...:<scope>[:<reason>]``; groups that do not
        parse are ignored.
        """
        for group in header.split(","):
            parts = group.strip().split(":")
            if len(parts) < 3:
                continue
            seconds = _parse_seconds(parts[0])
            if seconds is None:
                continue
            categories = parts[1]
            new_time = self.clock() + seconds
            if not categories:
                self._until[RateLimitingCategory.ANY] = new_time
            for name in categories.split(";"):
                category = _HEADER_CATEGORIES.get(name)
                if category is not None:
                    self._until[category] = new_time

    def is_disabled(self, category: RateLimitingCategory) -> Optional[float]:
        """Return the seconds left on the limit for ``category``, or None if sending is allowed."""
        global_until = self._until.get(RateLimitingCategory.ANY)
        if global_until is not None:
            now = self.clock()
            if global_until >= now:
                return global_until - now
        until = self._until.get(category)
        if until is None:
            return None
        now = self.clock()
        if until < now:
            return None
        return until - now