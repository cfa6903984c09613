from __future__ import annotations

import asyncio
import json

from adapters.storage.kv_store import InMemoryPersistence
from services.session.session_store import STORAGE_KEY, SessionStore, StoredSession

DAY = 24 * 60 * 60


class CountingPersistence(InMemoryPersistence):
    def __init__(self, initial: dict[str, str] | None = None):
        super().__init__(initial)
        self.writes: list[str] = []
        self.removals = 0

    def set(self, key: str, value: str) -> None:
        self.writes.append(value)
        super().set(key, value)

    def remove(self, key: str) -> None:
        self.removals += 1
        super().remove(key)


class AsyncPersistence:
    def __init__(self) -> None:
        self.values: dict[str, str] = {}

    async def get(self, key: str) -> str | None:
        return self.values.get(key)

    async def set(self, key: str, value: str) -> None:
        self.values[key] = value

    async def remove(self, key: str) -> None:
        self.values.pop(key, None)


def _session(token: str = "tokA", saved_at: float = 1_000.0) -> StoredSession:
    return StoredSession(platform_token=token, account_id="id1", saved_at=saved_at, profile_snapshot={"defaultUid": "1"})


def test_save_then_load_round_trips_record_format() -> None:
    async def _scenario() -> None:
        persistence = CountingPersistence()
        store = SessionStore(persistence, debounce_seconds=0.0, clock=lambda: 1_000.0 + DAY)

        await store.save(_session())
        record = json.loads(persistence.get(STORAGE_KEY) or "")
        loaded = await store.load()

        assert record == {
            "platformToken": "tokA",
            "accountId": "id1",
            "cachedProfileSnapshot": {"defaultUid": "1"},
            "savedAt": 1_000.0,
            "formatVersion": 1,
        }
        assert loaded == _session()

    asyncio.run(_scenario())


def test_expired_record_is_deleted_on_load() -> None:
    async def _scenario() -> None:
        now = {"value": 1_000.0}
        persistence = CountingPersistence()
        store = SessionStore(persistence, expiry_seconds=30 * DAY, debounce_seconds=0.0, clock=lambda: now["value"])
        await store.save(_session(saved_at=1_000.0))

        now["value"] = 1_000.0 + 30 * DAY - 1
        assert await store.load() is not None

        now["value"] = 1_000.0 + 30 * DAY
        assert await store.load() is None
        assert persistence.get(STORAGE_KEY) is None

    asyncio.run(_scenario())


def test_corrupt_records_are_deleted_and_reported_missing() -> None:
    corrupt_values = [
        "{not json",
        "[]",
        json.dumps({"platformToken": "", "accountId": "id1", "savedAt": 1.0, "formatVersion": 1}),
        json.dumps({"accountId": "id1", "savedAt": 1.0, "formatVersion": 1}),
        json.dumps({"platformToken": "tokA", "accountId": "id1", "savedAt": "yesterday", "formatVersion": 1}),
        json.dumps({"platformToken": "tokA", "accountId": "id1", "savedAt": 1.0, "formatVersion": 99}),
    ]

    async def _scenario(value: str) -> None:
        persistence = CountingPersistence({STORAGE_KEY: value})
        store = SessionStore(persistence, clock=lambda: 2.0)

        assert await store.load() is None
        assert persistence.get(STORAGE_KEY) is None
        assert persistence.removals == 1

    for value in corrupt_values:
        asyncio.run(_scenario(value))


def test_missing_record_is_not_found_without_removal() -> None:
    async def _scenario() -> None:
        persistence = CountingPersistence()
        store = SessionStore(persistence)

        assert await store.load() is None
        assert persistence.removals == 0

    asyncio.run(_scenario())


def test_rapid_saves_coalesce_into_last_write() -> None:
    async def _scenario() -> None:
        persistence = CountingPersistence()
        store = SessionStore(persistence, debounce_seconds=0.05, clock=lambda: 1_000.0)

        await asyncio.gather(*(store.save(_session(token=f"tok{index}")) for index in range(5)))

        assert len(persistence.writes) == 1
        assert json.loads(persistence.writes[0])["platformToken"] == "tok4"

    asyncio.run(_scenario())


def test_clear_drops_pending_write_and_removes_key() -> None:
    async def _scenario() -> None:
        persistence = CountingPersistence({STORAGE_KEY: json.dumps(_session().to_record())})
        store = SessionStore(persistence, debounce_seconds=0.05, clock=lambda: 1_000.0)

        pending = asyncio.create_task(store.save(_session(token="tokB")))
        await asyncio.sleep(0)
        await store.clear()
        await pending

        assert persistence.writes == []
        assert persistence.get(STORAGE_KEY) is None

    asyncio.run(_scenario())


def test_load_prefers_pending_save_and_flush_writes_it() -> None:
    async def _scenario() -> None:
        persistence = AsyncPersistence()
        store = SessionStore(persistence, debounce_seconds=0.05, clock=lambda: 1_000.0)

        pending = asyncio.create_task(store.save(_session(token="tokB")))
        await asyncio.sleep(0)
        assert (await store.load()).platform_token == "tokB"

        await store.flush()
        await pending
        assert json.loads(persistence.values[STORAGE_KEY])["platformToken"] == "tokB"

    asyncio.run(_scenario())
