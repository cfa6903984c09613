"""Single-flight cache for the short-lived session credential."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable

from connectors.skland.errors import ErrorKind, ExchangeError
from connectors.skland.models import CredentialResult, SessionCredential

from .errors import CredentialError

logger = logging.getLogger(__name__)

CredentialExchange = Callable[[str], Awaitable[CredentialResult]]


@dataclass
class RefreshAttemptState:
    attempt_count: int = 0
    restore_attempts: int = 0
    last_error: CredentialError | None = None
    in_flight: asyncio.Task[SessionCredential] | None = None


def _to_credential_error(error: Exception) -> CredentialError:
    if isinstance(error, CredentialError):
        return error
    if isinstance(error, ExchangeError):
        return CredentialError(error.kind, str(error), cause=error)
    return CredentialError(ErrorKind.UNKNOWN, str(error) or error.__class__.__name__, cause=error)


def _consume_result(task: asyncio.Task[SessionCredential]) -> None:
    # Callers may have stopped waiting; mark the outcome as observed.
    if not task.cancelled():
        task.exception()


class CredentialCache:
    """Owns the current ``SessionCredential`` and the one exchange allowed in flight.

    ``ensure`` returns the cached credential while it is inside the freshness
    window. Otherwise every concurrent caller awaits the same exchange task, so
    a one-time grant code is never redeemed twice. A caller that is cancelled
    stops waiting but does not cancel the shared exchange.
    """

    def __init__(
        self,
        exchange: CredentialExchange,
        *,
        freshness_window_seconds: float = 600.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._exchange = exchange
        self._freshness_window_seconds = freshness_window_seconds
        self._clock = clock
        self._current: SessionCredential | None = None
        self._state = RefreshAttemptState()
        self._generation = 0

    @property
    def current(self) -> SessionCredential | None:
        return self._current

    @property
    def attempts(self) -> RefreshAttemptState:
        return self._state

    @property
    def refreshing(self) -> bool:
        return self._state.in_flight is not None

    def is_fresh(self) -> bool:
        return self._current is not None and self._current.is_fresh(self._clock(), self._freshness_window_seconds)

    async def ensure(self, platform_token: str) -> SessionCredential:
        current = self._current
        if current is not None and current.is_fresh(self._clock(), self._freshness_window_seconds):
            logger.debug("skland_credential_cache_hit", extra={"event": "credential_cache", "account_id": current.account_id})
            return current

        task = self._state.in_flight
        if task is None:
            task = asyncio.create_task(self._refresh(platform_token, self._generation), name="skland-credential-refresh")
            task.add_done_callback(_consume_result)
            self._state.in_flight = task
            logger.info("skland_credential_refresh_started", extra={"event": "credential_cache"})
        else:
            logger.debug("skland_credential_refresh_joined", extra={"event": "credential_cache"})
        return await asyncio.shield(task)

    def reset(self) -> None:
        """Forget the current credential and detach any in-flight exchange.

        A detached exchange still runs to completion for the callers already
        awaiting it, but its outcome is no longer recorded here.
        """

        self._generation += 1
        self._current = None
        self._state = RefreshAttemptState()

    async def _refresh(self, platform_token: str, generation: int) -> SessionCredential:
        try:
            result = await self._exchange(platform_token)
        except Exception as exc:  # classified for the orchestrator
            error = _to_credential_error(exc)
            if generation == self._generation:
                self._state.in_flight = None
                self._state.attempt_count += 1
                self._state.last_error = error
            logger.warning(
                "skland_credential_refresh_failed",
                extra={
                    "event": "credential_cache",
                    "kind": error.kind.value,
                    "classification": error.classification.value,
                    "attempt_count": self._state.attempt_count,
                },
            )
            if error is exc:
                raise
            raise error from exc

        credential = SessionCredential(
            cred=result.cred,
            sign_token=result.sign_token,
            account_id=result.account_id,
            acquired_at=self._clock(),
        )
        if generation == self._generation:
            self._current = credential
            self._state = RefreshAttemptState()
            logger.info(
                "skland_credential_refreshed",
                extra={"event": "credential_cache", "account_id": credential.account_id},
            )
        else:
            logger.info("skland_credential_refresh_discarded", extra={"event": "credential_cache"})
        return credential
