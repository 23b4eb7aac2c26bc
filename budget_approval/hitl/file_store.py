"""File-backed token store shared between processes.

Each pending entry is encrypted with AES-256-GCM and written under the
store directory:

    <base_dir>/index/<key>                 name of the key's group
    <base_dir>/groups/<group>/<key>.entry  sealed {payload, expires_at}
    <base_dir>/claimed/                    groups being consumed

Consumption claims the whole group directory with a single ``os.rename``.
Rename is atomic on POSIX filesystems, so when several processes (or
threads) race on the same link, or on the approve and deny links of the
same request, exactly one of them wins and every other sees no entry.

Security considerations:
- Entries are encrypted at rest (submitter addresses, amounts)
- Files are created with mode 0600, directories with 0700
- Keys and groups are restricted to URL-safe characters so they cannot
  escape the store directory
"""

from __future__ import annotations

import logging
import re
import shutil
import uuid
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

from budget_approval.hitl.store import Clock, utc_now, validate_ttl
from budget_approval.utils.encryption import check_key, open_json, seal_json
from budget_approval.utils.errors import TokenError, ValidationError

logger = logging.getLogger(__name__)

ENTRY_SUFFIX = ".entry"
SAFE_NAME_PATTERN = re.compile(r"[A-Za-z0-9_-]{1,128}")


class FileTokenStore:
    """Encrypted, cross-process token store.

    Attributes:
        _base_dir: Root directory of the store.

    Example:
        >>> store = FileTokenStore(Path("/var/lib/budget-approval"), key)
        >>> store.put("approve-abc", {"budget": "50"}, ttl_seconds=60, group="req1")
        >>> store.get_and_invalidate("approve-abc")
        {'budget': '50'}
    """

    def __init__(
        self,
        base_dir: Path,
        encryption_key: bytes,
        clock: Clock | None = None,
    ) -> None:
        """Initialize the store, creating its directories if needed.

        Args:
            base_dir: Root directory of the store.
            encryption_key: 32-byte AES-256 key.
            clock: Returns the current aware UTC time. Defaults to now().

        Raises:
            ValidationError: If the key has the wrong length.
            TokenError: If the directories cannot be created.
        """
        check_key(encryption_key)

        self._base_dir = base_dir
        self._key = encryption_key
        self._clock = clock or utc_now
        self._index_dir = base_dir / "index"
        self._groups_dir = base_dir / "groups"
        self._claimed_dir = base_dir / "claimed"

        try:
            for directory in (self._index_dir, self._groups_dir, self._claimed_dir):
                directory.mkdir(parents=True, exist_ok=True)
                directory.chmod(0o700)
        except OSError as e:
            raise TokenError(
                "Failed to initialize token store directory",
                details={"path": str(base_dir), "error": str(e)},
            ) from e

        logger.info("FileTokenStore initialized at %s", self._base_dir)

    def put(
        self,
        key: str,
        payload: dict[str, Any],
        ttl_seconds: int,
        group: str | None = None,
    ) -> None:
        """Encrypt and store a payload with a TTL.

        Args:
            key: Token value (URL-safe characters only).
            payload: JSON-serializable data returned on consumption.
            ttl_seconds: Seconds until the entry stops being observable.
            group: Entries sharing a group are invalidated together.
                Defaults to the key itself.

        Raises:
            ValidationError: If key, group or TTL is invalid.
            TokenError: If the entry cannot be written.
        """
        validate_ttl(ttl_seconds)
        group = group or key
        _check_name(key, "key")
        _check_name(group, "group")

        expires_at = self._clock() + timedelta(seconds=ttl_seconds)
        sealed = seal_json(
            {"payload": payload, "expires_at": expires_at.isoformat()},
            self._key,
            bound_to=key,
        )

        try:
            previous_group = self._read_index(key)
            if previous_group is not None and previous_group != group:
                (self._groups_dir / previous_group / f"{key}{ENTRY_SUFFIX}").unlink(
                    missing_ok=True
                )

            group_dir = self._groups_dir / group
            group_dir.mkdir(mode=0o700, exist_ok=True)
            _write_private(group_dir / f"{key}{ENTRY_SUFFIX}", sealed)
            _write_private(self._index_dir / key, group)

        except OSError as e:
            logger.error("Failed to store token entry in group %s: %s", group, e)
            raise TokenError(
                "Failed to store token entry",
                details={"group": group, "error": str(e)},
            ) from e

        logger.debug(
            "Stored token entry: group=%s, expires_at=%s",
            group,
            expires_at.isoformat(),
        )

    def get_and_invalidate(self, key: str) -> dict[str, Any] | None:
        """Return the payload for ``key`` and invalidate its whole group.

        Returns:
            The stored payload, or None if the key is unknown, already
            consumed (by this or another process), or expired.

        Raises:
            TokenError: If the entry exists but cannot be decrypted.
        """
        if not SAFE_NAME_PATTERN.fullmatch(key):
            return None

        group = self._read_index(key)
        if group is None:
            logger.debug("Token entry not found")
            return None

        claimed = self._claim(group)
        if claimed is None:
            logger.info("Token group %s already claimed", group)
            return None

        try:
            members = list(claimed.glob(f"*{ENTRY_SUFFIX}"))
            for member in members:
                (self._index_dir / member.name[: -len(ENTRY_SUFFIX)]).unlink(
                    missing_ok=True
                )

            entry_path = claimed / f"{key}{ENTRY_SUFFIX}"
            if not entry_path.exists():
                return None
            entry = self._load_entry(entry_path)
        finally:
            shutil.rmtree(claimed, ignore_errors=True)

        if self._is_expired(entry):
            logger.info("Token entry expired at %s (group=%s)", entry["expires_at"], group)
            return None

        logger.info(
            "Consumed token entry: group=%s, invalidated=%d", group, len(members)
        )
        payload: dict[str, Any] = entry["payload"]
        return payload

    def peek(self, key: str) -> dict[str, Any] | None:
        if not SAFE_NAME_PATTERN.fullmatch(key):
            return None
        group = self._read_index(key)
        if group is None:
            return None
        try:
            entry = self._load_entry(self._groups_dir / group / f"{key}{ENTRY_SUFFIX}")
        except FileNotFoundError:
            return None
        if self._is_expired(entry):
            return None
        payload: dict[str, Any] = entry["payload"]
        return payload

    def cleanup_expired(self) -> int:
        """Remove groups whose entries have all expired.

        Also removes index files left pointing at groups that no longer
        exist.

        Returns:
            The number of expired entries removed.
        """
        removed = 0
        for group_dir in list(self._groups_dir.iterdir()):
            try:
                entries = [
                    self._load_entry(path)
                    for path in group_dir.glob(f"*{ENTRY_SUFFIX}")
                ]
            except FileNotFoundError:
                continue  # consumed concurrently
            except TokenError as e:
                logger.warning("Skipping unreadable token group %s: %s", group_dir.name, e)
                continue

            if any(not self._is_expired(entry) for entry in entries):
                continue

            claimed = self._claim(group_dir.name)
            if claimed is None:
                continue
            for member in claimed.glob(f"*{ENTRY_SUFFIX}"):
                (self._index_dir / member.name[: -len(ENTRY_SUFFIX)]).unlink(
                    missing_ok=True
                )
            shutil.rmtree(claimed, ignore_errors=True)
            removed += len(entries)

        for index_path in list(self._index_dir.iterdir()):
            group = self._read_index(index_path.name)
            if group is not None and not (self._groups_dir / group).exists():
                index_path.unlink(missing_ok=True)

        if removed:
            logger.info("Cleaned up %d expired token entries", removed)
        return removed

    def pending_count(self) -> int:
        count = 0
        for path in self._groups_dir.glob(f"*/*{ENTRY_SUFFIX}"):
            try:
                if not self._is_expired(self._load_entry(path)):
                    count += 1
            except (FileNotFoundError, TokenError):
                continue
        return count

    def _read_index(self, key: str) -> str | None:
        try:
            group = (self._index_dir / key).read_text().strip()
        except FileNotFoundError:
            return None
        return group if SAFE_NAME_PATTERN.fullmatch(group) else None

    def _claim(self, group: str) -> Path | None:
        target = self._claimed_dir / f"{group}.{uuid.uuid4().hex}"
        try:
            (self._groups_dir / group).rename(target)
        except FileNotFoundError:
            return None
        return target

    def _load_entry(self, path: Path) -> dict[str, Any]:
        token = path.name[: -len(ENTRY_SUFFIX)]
        entry = open_json(path.read_text(), self._key, bound_to=token)
        if "payload" not in entry or "expires_at" not in entry:
            raise TokenError(
                "Token entry is missing required fields",
                details={"entry": path.name},
            )
        return entry

    def _is_expired(self, entry: dict[str, Any]) -> bool:
        try:
            expires_at = datetime.fromisoformat(str(entry["expires_at"]))
        except ValueError as e:
            raise TokenError(
                "Token entry has an invalid expiry",
                details={"error": str(e)},
            ) from e
        return self._clock() > expires_at


def _check_name(name: str, field: str) -> None:
    if not SAFE_NAME_PATTERN.fullmatch(name):
        raise ValidationError(
            f"Invalid token store {field}: only letters, digits, '-' and '_' allowed",
            field=field,
            details={field: name[:50]},
        )


def _write_private(path: Path, text: str) -> None:
    """Write ``text`` to ``path`` atomically with mode 0600."""
    tmp = path.with_name(f".{path.name}.{uuid.uuid4().hex}.tmp")
    tmp.write_text(text)
    tmp.chmod(0o600)
    tmp.replace(path)


__all__ = ["FileTokenStore"]
