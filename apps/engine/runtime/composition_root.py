"""Session engine startup composition root and lifecycle orchestration."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from adapters.storage import SQLitePersistence
from connectors.skland.config import SklandConfig
from connectors.skland.dependencies import SklandDependencies, build_skland_dependencies
from connectors.skland.interfaces import Persistence
from services.session.orchestrator import AuthOrchestrator, AuthSnapshot
from services.session.session_store import SessionStore

logger = logging.getLogger(__name__)

HealthPublisher = Callable[["LifecycleState"], None]
StateListener = Callable[[AuthSnapshot], None]


@dataclass(slots=True)
class LifecycleState:
    config_ready: bool = False
    storage_ready: bool = False
    connectors_ready: bool = False
    orchestrator_ready: bool = False
    restored: bool = False
    logged_in: bool = False
    shutdown_phase: str = "running"
    last_error: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return {
            "readiness": {
                "orchestrator": self.orchestrator_ready,
                "restored": self.restored,
                "logged_in": self.logged_in,
            },
            "startup": {
                "config": self.config_ready,
                "storage": self.storage_ready,
                "connectors": self.connectors_ready,
            },
            "shutdown_phase": self.shutdown_phase,
            "last_error": self.last_error,
        }


def default_storage_factory(config: SklandConfig) -> Persistence:
    storage = SQLitePersistence(db_path=config.state_db_path)
    storage.open()
    return storage


def default_connector_factory(config: SklandConfig) -> SklandDependencies:
    return build_skland_dependencies(config)


@dataclass(slots=True)
class AuthCompositionRoot:
    """Builds the session engine and owns its startup and shutdown order."""

    config_loader: Callable[[], SklandConfig] = SklandConfig.from_env
    storage_factory: Callable[[SklandConfig], Persistence] = default_storage_factory
    connector_factory: Callable[[SklandConfig], SklandDependencies] = default_connector_factory
    health_publisher: HealthPublisher = lambda _: None
    state_listener: StateListener | None = None
    restore_on_start: bool = True

    _state: LifecycleState = field(default_factory=LifecycleState, init=False)
    _resolved: dict[str, Any] = field(default_factory=dict, init=False)

    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def orchestrator(self) -> AuthOrchestrator:
        orchestrator = self._resolved.get("orchestrator")
        if orchestrator is None:
            raise RuntimeError("composition root not started")
        return orchestrator

    async def start(self) -> dict[str, Any]:
        try:
            config = self.config_loader()
            self._resolved["config"] = config
            self._state.config_ready = True
            self._publish()

            self._resolved["storage"] = self.storage_factory(config)
            self._state.storage_ready = True
            self._publish()

            connectors = self.connector_factory(config)
            self._resolved["connectors"] = connectors
            self._state.connectors_ready = True
            self._publish()

            store = SessionStore(
                self._resolved["storage"],
                expiry_seconds=config.session.session_expiry_seconds,
                debounce_seconds=config.session.save_debounce_seconds,
            )
            self._resolved["store"] = store
            self._resolved["orchestrator"] = AuthOrchestrator(
                connectors.chain,
                store,
                api=connectors.api,
                retry=config.retry,
                policy=config.session,
                state_listener=self._on_auth_state,
            )
            self._state.orchestrator_ready = True
            self._publish()

            if self.restore_on_start:
                snapshot = await self._resolved["orchestrator"].restore()
                self._state.restored = True
                self._state.logged_in = snapshot.logged_in
                self._publish()
            logger.info("session_engine_started", extra={"event": "composition_root", "logged_in": self._state.logged_in})
            return self._resolved
        except Exception as exc:  # noqa: BLE001
            self._state.last_error = str(exc)
            self._state.orchestrator_ready = False
            self._publish()
            raise

    async def shutdown(self) -> None:
        self._state.shutdown_phase = "stop_background"
        self._publish()
        orchestrator = self._resolved.get("orchestrator")
        if orchestrator is not None:
            await orchestrator.aclose()

        self._state.shutdown_phase = "flush_store"
        self._publish()
        store = self._resolved.get("store")
        if store is not None:
            await store.flush()

        self._state.shutdown_phase = "close_connectors"
        self._publish()
        connectors = self._resolved.get("connectors")
        await self._close_resource(connectors.transport if connectors is not None else None)

        self._state.shutdown_phase = "close_storage"
        self._publish()
        await self._close_resource(self._resolved.get("storage"))

        self._state.shutdown_phase = "stopped"
        self._state.orchestrator_ready = False
        self._publish()
        logger.info("session_engine_stopped", extra={"event": "composition_root"})

    async def _close_resource(self, resource: Any) -> None:
        if resource is None:
            return
        close = getattr(resource, "aclose", None) or getattr(resource, "close", None)
        if close is None:
            return
        result = close()
        if asyncio.iscoroutine(result):
            await result

    def _on_auth_state(self, snapshot: AuthSnapshot) -> None:
        self._state.logged_in = snapshot.logged_in
        if self.state_listener is not None:
            self.state_listener(snapshot)

    def _publish(self) -> None:
        self.health_publisher(self._state)
