"""Durable storage of the long-lived platform token across restarts."""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from connectors.skland.interfaces import Persistence

logger = logging.getLogger(__name__)

STORAGE_KEY = "authState"
FORMAT_VERSION = 1
DEFAULT_EXPIRY_SECONDS = 30 * 24 * 60 * 60


class StorageCorruptError(ValueError):
    """Raised when a persisted session record fails parsing or schema validation."""


@dataclass(frozen=True)
class StoredSession:
    platform_token: str
    account_id: str
    saved_at: float
    format_version: int = FORMAT_VERSION
    profile_snapshot: dict[str, Any] | None = None

    def to_record(self) -> dict[str, Any]:
        return {
            "platformToken": self.platform_token,
            "accountId": self.account_id,
            "cachedProfileSnapshot": self.profile_snapshot,
            "savedAt": self.saved_at,
            "formatVersion": self.format_version,
        }

    @classmethod
    def from_record(cls, record: Any) -> "StoredSession":
        if not isinstance(record, Mapping):
            raise StorageCorruptError("session record must be a JSON object")

        platform_token = record.get("platformToken")
        if not isinstance(platform_token, str) or not platform_token:
            raise StorageCorruptError("platformToken must be a non-empty string")

        account_id = record.get("accountId")
        if not isinstance(account_id, str):
            raise StorageCorruptError("accountId must be a string")

        saved_at = record.get("savedAt")
        if isinstance(saved_at, bool) or not isinstance(saved_at, (int, float)):
            raise StorageCorruptError("savedAt must be a number")

        format_version = record.get("formatVersion")
        if format_version != FORMAT_VERSION:
            raise StorageCorruptError(f"unsupported formatVersion: {format_version!r}")

        snapshot = record.get("cachedProfileSnapshot")
        if snapshot is not None and not isinstance(snapshot, Mapping):
            raise StorageCorruptError("cachedProfileSnapshot must be an object")

        return cls(
            platform_token=platform_token,
            account_id=account_id,
            saved_at=float(saved_at),
            format_version=FORMAT_VERSION,
            profile_snapshot=dict(snapshot) if snapshot is not None else None,
        )


async def _maybe_await(result: Any) -> Any:
    if inspect.isawaitable(result):
        return await result
    return result


def _consume_result(task: asyncio.Task[None]) -> None:
    if not task.cancelled() and task.exception() is not None:
        logger.error("skland_session_save_failed", extra={"event": "session_store", "error": str(task.exception())})


class SessionStore:
    """Debounced, validated persistence of a single ``StoredSession``.

    Saves issued within the debounce window collapse into one write of the
    most recent record, and every caller awaits that write. Writes and removals
    are serialized so two saves never interleave.
    """

    def __init__(
        self,
        persistence: Persistence,
        *,
        expiry_seconds: float = DEFAULT_EXPIRY_SECONDS,
        debounce_seconds: float = 0.3,
        clock: Callable[[], float] = time.time,
        key: str = STORAGE_KEY,
    ) -> None:
        self._persistence = persistence
        self._expiry_seconds = expiry_seconds
        self._debounce_seconds = debounce_seconds
        self._clock = clock
        self._key = key
        self._pending: StoredSession | None = None
        self._flush_task: asyncio.Task[None] | None = None
        self._write_lock = asyncio.Lock()

    @property
    def clock(self) -> Callable[[], float]:
        return self._clock

    async def save(self, session: StoredSession) -> None:
        self._pending = session
        task = self._flush_task
        if task is None:
            task = asyncio.create_task(self._flush_after_debounce(), name="skland-session-save")
            task.add_done_callback(_consume_result)
            self._flush_task = task
        await asyncio.shield(task)

    async def load(self) -> StoredSession | None:
        """Return the stored session, or ``None`` after deleting an invalid one."""

        if self._pending is not None:
            return self._pending

        raw = await _maybe_await(self._persistence.get(self._key))
        if raw is None:
            return None

        try:
            session = StoredSession.from_record(json.loads(raw))
        except (ValueError, TypeError) as exc:
            logger.warning(
                "skland_session_storage_corrupt",
                extra={"event": "session_store", "kind": "storage_corrupt", "reason": str(exc)},
            )
            await self._remove()
            return None

        if session.saved_at + self._expiry_seconds <= self._clock():
            logger.info(
                "skland_session_expired",
                extra={"event": "session_store", "saved_at": session.saved_at, "expiry_seconds": self._expiry_seconds},
            )
            await self._remove()
            return None
        return session

    async def clear(self) -> None:
        self._pending = None
        await self._remove()
        logger.info("skland_session_cleared", extra={"event": "session_store"})

    async def flush(self) -> None:
        task = self._flush_task
        if task is not None:
            await asyncio.shield(task)

    async def _flush_after_debounce(self) -> None:
        await asyncio.sleep(self._debounce_seconds)
        self._flush_task = None
        session, self._pending = self._pending, None
        if session is None:
            return
        payload = json.dumps(session.to_record(), ensure_ascii=False, separators=(",", ":"))
        async with self._write_lock:
            await _maybe_await(self._persistence.set(self._key, payload))
        logger.debug("skland_session_saved", extra={"event": "session_store", "account_id": session.account_id})

    async def _remove(self) -> None:
        async with self._write_lock:
            await _maybe_await(self._persistence.remove(self._key))
