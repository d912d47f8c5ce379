"""Rate-limit response header parsing.

Purpose:
    Turn the optional rate-limit headers of a response into a
    :class:`RateLimitInfo` consumed by the backoff policy (``retry_after``)
    and the adaptive rate limiter (``limit`` / ``remaining``).

Headers (all optional, case-insensitive):
    - ``retry-after``: delay in seconds or an HTTP date.
    - ``x-ratelimit-limit`` / ``anthropic-ratelimit-requests-limit``
    - ``x-ratelimit-remaining`` / ``anthropic-ratelimit-requests-remaining``
    - ``x-ratelimit-reset`` (epoch seconds) /
      ``anthropic-ratelimit-requests-reset`` (RFC 3339)

Failure modes:
    Missing or malformed headers leave the corresponding field ``None``;
    parsing never raises.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Mapping, Optional

from ...config.defaults import DEFAULT_ADAPTATION_FACTOR, MAX_RESET_DELAY

_LIMIT_HEADERS = ("x-ratelimit-limit", "anthropic-ratelimit-requests-limit")
_REMAINING_HEADERS = ("x-ratelimit-remaining", "anthropic-ratelimit-requests-remaining")
_RESET_HEADERS = ("x-ratelimit-reset", "anthropic-ratelimit-requests-reset")


@dataclass(frozen=True)
class RateLimitInfo:
    """Rate-limit information reported by the server for one response."""

    remaining: Optional[int] = None
    limit: Optional[int] = None
    reset: Optional[datetime] = None
    retry_after: Optional[float] = None

    def usage_ratio(self) -> Optional[float]:
        if self.remaining is None or not self.limit:
            return None
        return 1.0 - (self.remaining / self.limit)

    def is_approaching_limit(self, threshold: float = DEFAULT_ADAPTATION_FACTOR) -> bool:
        ratio = self.usage_ratio()
        return ratio is not None and ratio >= threshold

    def recommended_delay(self, now: Optional[datetime] = None) -> Optional[float]:
        """Delay the server is asking for, if any.

        ``retry_after`` wins; otherwise, when usage is at or above the
        adaptation threshold and a future reset time is known, the time until
        reset capped at ``MAX_RESET_DELAY``.
        """
        if self.retry_after is not None:
            return self.retry_after
        if self.reset is not None and self.is_approaching_limit():
            now = now or datetime.now(timezone.utc)
            if self.reset > now:
                return min((self.reset - now).total_seconds(), MAX_RESET_DELAY)
        return None


def _first(headers: Mapping[str, str], names: tuple[str, ...]) -> Optional[str]:
    lowered = {k.lower(): v for k, v in headers.items()}
    for name in names:
        if name in lowered:
            return lowered[name]
    return None


def _parse_int(raw: Optional[str]) -> Optional[int]:
    if raw is None:
        return None
    try:
        return int(raw.strip())
    except ValueError:
        return None


def _parse_reset(raw: Optional[str]) -> Optional[datetime]:
    if raw is None:
        return None
    raw = raw.strip()
    try:
        return datetime.fromtimestamp(int(raw), tz=timezone.utc)
    except (ValueError, OverflowError, OSError):
        pass
    try:
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def parse_retry_after(raw: Optional[str], now: Optional[datetime] = None) -> Optional[float]:
    """Parse a ``Retry-After`` value (delta seconds or HTTP date) into seconds."""
    if raw is None:
        return None
    raw = raw.strip()
    try:
        seconds = float(raw)
    except ValueError:
        try:
            when = parsedate_to_datetime(raw)
        except (TypeError, ValueError):
            return None
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        now = now or datetime.now(timezone.utc)
        return max(0.0, (when - now).total_seconds())
    return seconds if seconds >= 0 else None


def parse_rate_limit_headers(headers: Mapping[str, str]) -> RateLimitInfo:
    """Extract :class:`RateLimitInfo` from a response header mapping."""
    return RateLimitInfo(
        remaining=_parse_int(_first(headers, _REMAINING_HEADERS)),
        limit=_parse_int(_first(headers, _LIMIT_HEADERS)),
        reset=_parse_reset(_first(headers, _RESET_HEADERS)),
        retry_after=parse_retry_after(_first(headers, ("retry-after",))),
    )


__all__ = ["RateLimitInfo", "parse_rate_limit_headers", "parse_retry_after"]
