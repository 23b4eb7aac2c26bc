"""Single-use token storage with per-entry expiry.

A token store maps token values to JSON-serializable payloads. Entries are
written with a TTL and read at most once: ``get_and_invalidate`` removes the
entry in the same atomic step that returns it, so duplicate link clicks
(double clicks, mail scanners prefetching links, browser retries) can never
resolve a request twice.

Entries may share a ``group``. Consuming any entry of a group removes every
other entry of that group in the same step, which is how the approve and
deny tokens of one request stay mutually exclusive.
"""

from __future__ import annotations

import copy
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any, Protocol

from budget_approval.utils.errors import ValidationError

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Default clock: timezone-aware current UTC time."""
    return datetime.now(UTC)


class TokenStore(Protocol):
    """Interface shared by the in-memory and file-backed stores."""

    def put(
        self,
        key: str,
        payload: dict[str, Any],
        ttl_seconds: int,
        group: str | None = None,
    ) -> None:
        """Store ``payload`` under ``key``, replacing any existing entry."""
        ...

    def get_and_invalidate(self, key: str) -> dict[str, Any] | None:
        """Atomically return and remove the entry and its group siblings."""
        ...

    def peek(self, key: str) -> dict[str, Any] | None:
        """Return the live entry for ``key`` without consuming it."""
        ...

    def cleanup_expired(self) -> int:
        """Remove expired entries and return how many were removed."""
        ...

    def pending_count(self) -> int:
        """Return the number of live (non-expired) entries."""
        ...


def validate_ttl(ttl_seconds: int) -> None:
    """Reject TTLs that would create already-expired entries."""
    if ttl_seconds <= 0:
        raise ValidationError(
            "TTL must be a positive number of seconds",
            field="ttl_seconds",
            details={"ttl_seconds": ttl_seconds},
        )


@dataclass
class _Entry:
    payload: dict[str, Any]
    group: str
    expires_at: datetime


class InMemoryTokenStore:
    """Thread-safe in-process token store.

    Suitable for a single server process. Use FileTokenStore when several
    processes handle link visits.

    Example:
        >>> store = InMemoryTokenStore()
        >>> store.put("approve-abc", {"budget": "50"}, ttl_seconds=60, group="req-1")
        >>> store.put("deny-xyz", {"budget": "50"}, ttl_seconds=60, group="req-1")
        >>> store.get_and_invalidate("approve-abc")
        {'budget': '50'}
        >>> store.get_and_invalidate("deny-xyz") is None
        True
    """

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or utc_now
        self._entries: dict[str, _Entry] = {}
        self._groups: dict[str, set[str]] = {}
        self._lock = threading.Lock()
        logger.info("InMemoryTokenStore initialized")

    def put(
        self,
        key: str,
        payload: dict[str, Any],
        ttl_seconds: int,
        group: str | None = None,
    ) -> None:
        """Store a payload with a TTL.

        Args:
            key: Token value.
            payload: JSON-serializable data returned on consumption.
            ttl_seconds: Seconds until the entry stops being observable.
            group: Entries sharing a group are invalidated together.
                Defaults to the key itself.

        Raises:
            ValidationError: If ttl_seconds is not positive.
        """
        validate_ttl(ttl_seconds)
        group = group or key
        entry = _Entry(
            payload=copy.deepcopy(payload),
            group=group,
            expires_at=self._clock() + timedelta(seconds=ttl_seconds),
        )

        with self._lock:
            # Expired entries are reclaimed on every write
            self._sweep_unlocked(self._clock())
            previous = self._entries.get(key)
            if previous is not None and previous.group != group:
                self._forget_member_unlocked(key, previous.group)
            self._entries[key] = entry
            self._groups.setdefault(group, set()).add(key)

        logger.debug(
            "Stored token entry: group=%s, expires_at=%s",
            group,
            entry.expires_at.isoformat(),
        )

    def get_and_invalidate(self, key: str) -> dict[str, Any] | None:
        """Return the payload for ``key`` and invalidate its whole group.

        Returns:
            The stored payload, or None if the key is unknown, already
            consumed, or expired.
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                logger.debug("Token entry not found")
                return None

            removed = self._drop_group_unlocked(entry.group)
            if self._clock() > entry.expires_at:
                logger.info(
                    "Token entry expired at %s (group=%s)",
                    entry.expires_at.isoformat(),
                    entry.group,
                )
                return None

        logger.info(
            "Consumed token entry: group=%s, invalidated=%d", entry.group, removed
        )
        return copy.deepcopy(entry.payload)

    def peek(self, key: str) -> dict[str, Any] | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or self._clock() > entry.expires_at:
                return None
            return copy.deepcopy(entry.payload)

    def cleanup_expired(self) -> int:
        """Remove all expired entries.

        Returns:
            The number of entries removed.
        """
        with self._lock:
            removed = self._sweep_unlocked(self._clock())

        if removed:
            logger.info("Cleaned up %d expired token entries", removed)
        return removed

    def pending_count(self) -> int:
        now = self._clock()
        with self._lock:
            return sum(1 for e in self._entries.values() if now <= e.expires_at)

    def _sweep_unlocked(self, now: datetime) -> int:
        expired = [k for k, e in self._entries.items() if now > e.expires_at]
        for key in expired:
            entry = self._entries.pop(key)
            self._forget_member_unlocked(key, entry.group)
        return len(expired)

    def _drop_group_unlocked(self, group: str) -> int:
        keys = self._groups.pop(group, set())
        for member in keys:
            self._entries.pop(member, None)
        return len(keys)

    def _forget_member_unlocked(self, key: str, group: str) -> None:
        members = self._groups.get(group)
        if members is None:
            return
        members.discard(key)
        if not members:
            del self._groups[group]


__all__ = [
    "Clock",
    "InMemoryTokenStore",
    "TokenStore",
    "utc_now",
    "validate_ttl",
]
