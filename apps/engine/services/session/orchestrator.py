"""Session state machine: login, restore, credential refresh and logout."""

from __future__ import annotations

import asyncio
import copy
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Mapping, TypeVar

from connectors.skland.client import SklandApiClient, TokenExchangeChain
from connectors.skland.config import RetryConfig, SessionPolicy
from connectors.skland.errors import CredentialClass, ErrorKind, ExchangeError
from connectors.skland.models import (
    CredentialResult,
    IdentityProof,
    PasswordProof,
    SessionCredential,
    SmsCodeProof,
    pick_default_role,
)

from .credential_cache import CredentialCache
from .errors import AuthError, CredentialError
from .session_store import SessionStore, StoredSession

logger = logging.getLogger(__name__)

T = TypeVar("T")


class AuthState(str, Enum):
    LOGGED_OUT = "logged_out"
    LOGGING_IN = "logging_in"
    RESTORING = "restoring"
    LOGGED_IN = "logged_in"


class CredentialStatus(str, Enum):
    FRESH = "fresh"
    STALE = "stale"
    REFRESHING = "refreshing"
    NONE = "none"


@dataclass(frozen=True)
class AuthSnapshot:
    """Read-only view of the session handed to feature code."""

    state: AuthState
    credential_status: CredentialStatus
    account_id: str | None = None
    profile: Mapping[str, Any] | None = None
    last_error_kind: ErrorKind | None = None
    last_error_code: str | None = None

    @property
    def logged_in(self) -> bool:
        return self.state == AuthState.LOGGED_IN


StateListener = Callable[[AuthSnapshot], None]


def _consume_result(task: asyncio.Task[Any]) -> None:
    if not task.cancelled():
        task.exception()


class AuthOrchestrator:
    """Owns the platform token and drives every transition of the session.

    Entry points raise ``AuthError`` and nothing else. An auth-classified
    failure logs the session out and clears the stored session; network and
    unknown failures leave state and cached data untouched.
    """

    def __init__(
        self,
        chain: TokenExchangeChain,
        store: SessionStore,
        *,
        api: SklandApiClient | None = None,
        retry: RetryConfig | None = None,
        policy: SessionPolicy | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        state_listener: StateListener | None = None,
    ) -> None:
        self._chain = chain
        self._store = store
        self._api = api
        self._retry = retry or RetryConfig()
        self._policy = policy or SessionPolicy()
        self._sleep = sleep
        self._state_listener = state_listener
        self._cache = CredentialCache(
            self._derive_credential,
            freshness_window_seconds=self._policy.freshness_window_seconds,
            clock=clock,
        )

        self._state = AuthState.LOGGED_OUT
        self._platform_token: str | None = None
        self._account_id: str | None = None
        self._profile: dict[str, Any] | None = None
        self._last_error: AuthError | None = None
        self._epoch = 0
        self._login_lock = asyncio.Lock()
        self._restore_task: asyncio.Task[AuthSnapshot] | None = None
        self._background_task: asyncio.Task[None] | None = None

    @property
    def state(self) -> AuthState:
        return self._state

    @property
    def last_error(self) -> AuthError | None:
        return self._last_error

    @property
    def snapshot(self) -> AuthSnapshot:
        if self._state != AuthState.LOGGED_IN:
            status = CredentialStatus.NONE
        elif self._cache.refreshing:
            status = CredentialStatus.REFRESHING
        elif self._cache.is_fresh():
            status = CredentialStatus.FRESH
        else:
            status = CredentialStatus.STALE
        error = self._last_error
        return AuthSnapshot(
            state=self._state,
            credential_status=status,
            account_id=self._account_id,
            profile=copy.deepcopy(self._profile) if self._profile is not None else None,
            last_error_kind=error.kind if error is not None else None,
            last_error_code=error.catalog.code if error is not None else None,
        )

    async def login(self, proof: IdentityProof) -> AuthSnapshot:
        async with self._login_lock:
            self._epoch += 1
            self._cache.reset()
            self._cancel_background()
            self._platform_token = None
            self._account_id = None
            self._profile = None
            self._last_error = None
            epoch = self._epoch
            self._set_state(AuthState.LOGGING_IN)

            try:
                proof_result = await self._with_retry(lambda: self._chain.prove_identity(proof), operation="prove_identity")
                credential = await self._cache.ensure(proof_result.platform_token)
            except (ExchangeError, CredentialError) as exc:
                error = AuthError(exc.kind, str(exc), cause=exc)
                if epoch == self._epoch:
                    self._cache.reset()
                    self._last_error = error
                    self._set_state(AuthState.LOGGED_OUT)
                logger.warning(
                    "skland_login_failed",
                    extra={"event": "auth_orchestrator", "kind": error.kind.value, "code": error.catalog.code},
                )
                raise error from exc

            if epoch != self._epoch:
                logger.info("skland_login_superseded", extra={"event": "auth_orchestrator"})
                raise AuthError(ErrorKind.AUTH_EXPIRED, "login was superseded by logout")

            self._platform_token = proof_result.platform_token
            self._account_id = credential.account_id
            self._set_state(AuthState.LOGGED_IN)
            logger.info("skland_login_succeeded", extra={"event": "auth_orchestrator", "account_id": credential.account_id})
            await self._persist()
            return self.snapshot

    async def login_with_password(self, phone: str, password: str) -> AuthSnapshot:
        return await self.login(PasswordProof(phone=phone, password=password))

    async def login_with_sms_code(self, phone: str, code: str) -> AuthSnapshot:
        return await self.login(SmsCodeProof(phone=phone, code=code))

    async def send_sms_code(self, phone: str) -> None:
        try:
            await self._chain.send_sms_code(phone)
        except ExchangeError as exc:
            raise AuthError(exc.kind, str(exc), cause=exc) from exc

    async def restore(self) -> AuthSnapshot:
        """Resume a stored session without waiting on the network.

        Concurrent callers share one run. A missing, expired or corrupt record
        ends in ``LOGGED_OUT`` without an error.
        """

        task = self._restore_task
        if task is None:
            task = asyncio.create_task(self._run_restore(), name="skland-session-restore")
            task.add_done_callback(_consume_result)
            self._restore_task = task
        return await asyncio.shield(task)

    async def restore_session(self) -> AuthSnapshot:
        return await self.restore()

    async def ensure_credential(self) -> SessionCredential:
        token = self._platform_token
        if self._state != AuthState.LOGGED_IN or token is None:
            raise AuthError(ErrorKind.AUTH_EXPIRED, "no active session")

        try:
            credential = await self._cache.ensure(token)
        except CredentialError as exc:
            raise await self._handle_failure(exc.kind, exc, token) from exc

        if token == self._platform_token and self._last_error is not None:
            self._last_error = None
            self._publish()
        return credential

    async def refresh_profile(self) -> AuthSnapshot:
        """Re-read bindings and player data and store them with the session."""

        credential = await self.ensure_credential()
        token = self._platform_token
        epoch = self._epoch
        try:
            roles = await self._chain.binding_lookup(credential)
            role = pick_default_role(roles)
            profile: dict[str, Any] = {
                "accountId": credential.account_id,
                "defaultUid": role.uid if role is not None else None,
                "roles": [item.to_snapshot() for item in roles],
            }
            if self._api is not None and role is not None:
                player = await self._api.get_player_info(credential, role.uid)
                profile["player"] = player
        except ExchangeError as exc:
            raise await self._handle_failure(exc.kind, exc, token) from exc

        if epoch != self._epoch:
            return self.snapshot

        self._account_id = credential.account_id
        self._profile = profile
        logger.info(
            "skland_profile_refreshed",
            extra={"event": "auth_orchestrator", "account_id": credential.account_id, "roles": len(roles)},
        )
        self._publish()
        await self._persist()
        return self.snapshot

    async def run_signed(self, operation: Callable[[SessionCredential], Awaitable[T]]) -> T:
        """Run a signed call with a fresh credential, classifying its failures."""

        credential = await self.ensure_credential()
        token = self._platform_token
        try:
            return await operation(credential)
        except ExchangeError as exc:
            raise await self._handle_failure(exc.kind, exc, token) from exc

    async def logout(self) -> AuthSnapshot:
        self._reset_session()
        self._last_error = None
        try:
            await self._store.clear()
        except Exception as exc:
            raise AuthError(ErrorKind.UNKNOWN, "stored session could not be cleared", cause=exc) from exc
        finally:
            self._publish()
        logger.info("skland_logged_out", extra={"event": "auth_orchestrator"})
        return self.snapshot

    async def wait_for_background(self) -> None:
        task = self._background_task
        if task is not None:
            await asyncio.wait({task})

    async def aclose(self) -> None:
        task = self._background_task
        self._cancel_background()
        if task is not None:
            await asyncio.wait({task})

    async def _run_restore(self) -> AuthSnapshot:
        try:
            if self._state == AuthState.LOGGED_IN:
                if self._cache.current is None and self._background_task is None:
                    self._start_background_refresh()
                return self.snapshot
            if self._state != AuthState.LOGGED_OUT:
                return self.snapshot

            epoch = self._epoch
            self._set_state(AuthState.RESTORING)
            try:
                stored = await self._store.load()
            except Exception as exc:
                error = AuthError(ErrorKind.UNKNOWN, "stored session could not be read", cause=exc)
                self._last_error = error
                self._set_state(AuthState.LOGGED_OUT)
                logger.error("skland_restore_failed", extra={"event": "auth_orchestrator", "error": str(exc)})
                raise error from exc

            if epoch != self._epoch or self._state != AuthState.RESTORING:
                return self.snapshot
            if stored is None:
                self._set_state(AuthState.LOGGED_OUT)
                logger.info("skland_restore_cold_start", extra={"event": "auth_orchestrator"})
                return self.snapshot

            self._platform_token = stored.platform_token
            self._account_id = stored.account_id or None
            self._profile = dict(stored.profile_snapshot) if stored.profile_snapshot is not None else None
            self._set_state(AuthState.LOGGED_IN)
            logger.info("skland_session_restored", extra={"event": "auth_orchestrator", "account_id": stored.account_id})
            self._start_background_refresh()
            return self.snapshot
        finally:
            self._restore_task = None

    def _start_background_refresh(self) -> None:
        attempts = self._cache.attempts
        if attempts.restore_attempts >= self._policy.max_restore_attempts:
            logger.warning(
                "skland_restore_attempts_exhausted",
                extra={"event": "auth_orchestrator", "restore_attempts": attempts.restore_attempts},
            )
            return
        attempts.restore_attempts += 1
        task = asyncio.create_task(self._background_refresh(), name="skland-profile-refresh")
        task.add_done_callback(self._background_done)
        self._background_task = task

    async def _background_refresh(self) -> None:
        try:
            await self.refresh_profile()
        except AuthError as exc:
            logger.warning(
                "skland_background_refresh_failed",
                extra={"event": "auth_orchestrator", "kind": exc.kind.value, "code": exc.catalog.code},
            )

    def _background_done(self, task: asyncio.Task[None]) -> None:
        if self._background_task is task:
            self._background_task = None
        _consume_result(task)

    def _cancel_background(self) -> None:
        task = self._background_task
        self._background_task = None
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    async def _derive_credential(self, platform_token: str) -> CredentialResult:
        async def _exchange() -> CredentialResult:
            grant = await self._chain.request_grant(platform_token)
            return await self._chain.redeem_grant(grant.grant_code)

        return await self._with_retry(_exchange, operation="derive_credential")

    async def _with_retry(self, step: Callable[[], Awaitable[T]], *, operation: str) -> T:
        attempts = 1 + max(0, self._retry.max_retries)
        for attempt in range(1, attempts + 1):
            try:
                return await step()
            except ExchangeError as exc:
                if exc.classification != CredentialClass.NETWORK:
                    raise
                if attempt == attempts:
                    logger.error(
                        "skland_exchange_retries_exhausted",
                        extra={"event": "auth_orchestrator", "operation": operation, "attempts": attempt, "kind": exc.kind.value},
                    )
                    raise
                logger.warning(
                    "skland_exchange_retry",
                    extra={
                        "event": "auth_orchestrator",
                        "operation": operation,
                        "attempt": attempt,
                        "kind": exc.kind.value,
                        "delay_seconds": self._retry.delay_seconds,
                    },
                )
                await self._sleep(self._retry.delay_seconds)
        raise AssertionError("unreachable")

    async def _handle_failure(self, kind: ErrorKind, cause: Exception, token: str | None) -> AuthError:
        error = AuthError(kind, str(cause), cause=cause)
        if token is None or token != self._platform_token:
            # the session this failure belongs to is already gone
            return error

        if error.classification == CredentialClass.AUTH:
            logger.warning(
                "skland_forced_logout",
                extra={"event": "auth_orchestrator", "kind": kind.value, "code": error.catalog.code},
            )
            self._reset_session()
            self._last_error = error
            try:
                await self._store.clear()
            except Exception:
                logger.exception("skland_session_clear_failed", extra={"event": "auth_orchestrator"})
            self._publish()
            return error

        logger.warning(
            "skland_credential_unavailable",
            extra={
                "event": "auth_orchestrator",
                "kind": kind.value,
                "classification": error.classification.value,
                "code": error.catalog.code,
            },
        )
        self._last_error = error
        self._publish()
        return error

    def _reset_session(self) -> None:
        self._epoch += 1
        self._cache.reset()
        self._cancel_background()
        self._platform_token = None
        self._account_id = None
        self._profile = None
        self._set_state(AuthState.LOGGED_OUT)

    async def _persist(self) -> None:
        token = self._platform_token
        if token is None:
            return
        session = StoredSession(
            platform_token=token,
            account_id=self._account_id or "",
            saved_at=self._store.clock(),
            profile_snapshot=self._profile,
        )
        try:
            await self._store.save(session)
        except Exception:
            # the in-memory session stays usable for this process
            logger.warning("skland_session_persist_failed", extra={"event": "auth_orchestrator"}, exc_info=True)

    def _set_state(self, state: AuthState) -> None:
        previous = self._state
        self._state = state
        if previous != state:
            logger.info(
                "skland_auth_state_changed",
                extra={"event": "auth_orchestrator", "from_state": previous.value, "to_state": state.value},
            )
        self._publish()

    def _publish(self) -> None:
        if self._state_listener is not None:
            self._state_listener(self.snapshot)
