"""Per-identity session context and the in-process registry that holds them."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from threading import Lock
from typing import Any

from src.core.store import Subscription
from src.schemas.auth import UserContext

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    """Lifecycle of a signed-in identity."""

    UNAUTHENTICATED = "UNAUTHENTICATED"
    AUTHENTICATED_NO_PROFILE = "AUTHENTICATED_NO_PROFILE"
    AUTHENTICATED_WITH_PROFILE = "AUTHENTICATED_WITH_PROFILE"
    READY = "READY"


@dataclass
class SessionContext:
    """Everything the record layer needs to know about the caller.

    Built when an identity authenticates and torn down on sign-out. Live
    subscriptions are registered here under a scope key so that replacing a
    scope (a new date range, a different connection) cancels the old query.
    """

    identity: UserContext
    state: SessionState = SessionState.UNAUTHENTICATED
    profile: dict[str, Any] | None = None
    connections: list[dict[str, Any]] = field(default_factory=list)
    active_connection_id: str | None = None
    subscriptions: dict[str, Subscription] = field(default_factory=dict)
    last_seen: float = field(default_factory=time.monotonic)

    @property
    def user_id(self) -> str:
        return self.identity.id

    @property
    def user_type(self) -> str | None:
        return self.profile.get("user_type") if self.profile else None

    @property
    def connection_ids(self) -> list[str]:
        return [c["id"] for c in self.connections]

    @property
    def active_connection(self) -> dict[str, Any] | None:
        for connection in self.connections:
            if connection["id"] == self.active_connection_id:
                return connection
        return None

    def get_connection(self, connection_id: str) -> dict[str, Any] | None:
        for connection in self.connections:
            if connection["id"] == connection_id:
                return connection
        return None

    def touch(self) -> None:
        self.last_seen = time.monotonic()

    def track(self, key: str, subscription: Subscription) -> Subscription:
        """Register a subscription, cancelling whatever held ``key`` before."""
        previous = self.subscriptions.pop(key, None)
        if previous is not None:
            previous.cancel()
        self.subscriptions[key] = subscription
        return subscription

    def release(self, key: str) -> bool:
        subscription = self.subscriptions.pop(key, None)
        if subscription is None:
            return False
        subscription.cancel()
        return True

    def release_prefix(self, prefix: str) -> int:
        """Cancel every subscription whose key starts with ``prefix``."""
        keys = [key for key in self.subscriptions if key.startswith(prefix)]
        for key in keys:
            self.release(key)
        return len(keys)

    def teardown(self) -> None:
        """Cancel all subscriptions and drop loaded state."""
        for subscription in self.subscriptions.values():
            subscription.cancel()
        count = len(self.subscriptions)
        self.subscriptions.clear()
        self.profile = None
        self.connections = []
        self.active_connection_id = None
        self.state = SessionState.UNAUTHENTICATED
        logger.debug("Session for %s torn down, %d subscriptions cancelled", self.user_id, count)


class SessionRegistry:
    """Thread-safe map of user id to live session context."""

    cleanup_interval_seconds = 300

    def __init__(self, idle_timeout_seconds: int | None = None) -> None:
        self.idle_timeout_seconds = idle_timeout_seconds
        self._sessions: dict[str, SessionContext] = {}
        self._lock = Lock()
        self._cleanup_task: asyncio.Task | None = None

    async def start_cleanup_task(self) -> None:
        """Start background idle-session expiry."""
        if self._cleanup_task is None:
            self._cleanup_task = asyncio.create_task(self._cleanup_loop())
            logger.info("Session cleanup task started")

    async def stop_cleanup_task(self) -> None:
        """Stop background idle-session expiry."""
        if self._cleanup_task:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
            self._cleanup_task = None
            logger.info("Session cleanup task stopped")

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self.cleanup_interval_seconds)
            count = self.expire_idle()
            if count > 0:
                logger.info("Expired %d idle sessions", count)

    def get(self, user_id: str) -> SessionContext | None:
        with self._lock:
            context = self._sessions.get(user_id)
        if context is not None:
            context.touch()
        return context

    def peek(self, user_id: str) -> SessionContext | None:
        """Look up a session without counting it as activity."""
        with self._lock:
            return self._sessions.get(user_id)

    def put(self, context: SessionContext) -> SessionContext:
        with self._lock:
            previous = self._sessions.get(context.user_id)
            self._sessions[context.user_id] = context
        if previous is not None and previous is not context:
            previous.teardown()
        return context

    def remove(self, user_id: str) -> SessionContext | None:
        with self._lock:
            context = self._sessions.pop(user_id, None)
        if context is not None:
            context.teardown()
        return context

    def expire_idle(self) -> int:
        """Tear down sessions idle for longer than the configured timeout."""
        if not self.idle_timeout_seconds:
            return 0
        cutoff = time.monotonic() - self.idle_timeout_seconds
        with self._lock:
            stale = [uid for uid, ctx in self._sessions.items() if ctx.last_seen < cutoff]
        for user_id in stale:
            self.remove(user_id)
        return len(stale)

    def clear(self) -> None:
        with self._lock:
            contexts = list(self._sessions.values())
            self._sessions.clear()
        for context in contexts:
            context.teardown()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)


# Global singleton instance
_registry: SessionRegistry | None = None


def get_session_registry() -> SessionRegistry:
    """Get or create the global session registry."""
    global _registry
    if _registry is None:
        from src.core.config import get_settings

        _registry = SessionRegistry(get_settings().session_idle_timeout_seconds)
    return _registry


async def init_session_registry() -> SessionRegistry:
    """Start idle-session expiry. Call at app startup."""
    registry = get_session_registry()
    await registry.start_cleanup_task()
    return registry


async def shutdown_session_registry() -> None:
    """Stop expiry and tear down every open session. Call at app shutdown."""
    if _registry:
        await _registry.stop_cleanup_task()
        _registry.clear()
