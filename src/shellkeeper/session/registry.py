"""Session registry: per-key handles and per-session serialization."""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Coroutine

from ..errors import StorageError
from ..memory import MemoryManager, Session, SessionStore, validate_session_key
from ..terminal.history import CommandHistory

logger = logging.getLogger(__name__)


@dataclass
class SessionHandle:
    """In-memory state for one session key."""

    key: str
    session: Session
    history: CommandHistory
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    last_activity: float = field(default_factory=time.time)
    saved_state: dict[str, Any] = field(default_factory=dict)

    def touch(self) -> None:
        """Update last activity timestamp."""
        self.last_activity = time.time()

    def is_expired(self, ttl_seconds: float) -> bool:
        """Check if the handle has been idle longer than the TTL."""
        return (time.time() - self.last_activity) > ttl_seconds

    @property
    def dirty(self) -> bool:
        """True when the session differs from what was last loaded or saved."""
        return self.session.to_dict() != self.saved_state

    @property
    def busy(self) -> bool:
        return self.lock.locked() or self.history.has_pending


class SessionRegistry:
    """Maps session keys to handles.

    The map itself is guarded by one lock held only while a handle is looked
    up, created or evicted. Work on a session runs under that session's own
    lock, so turns for the same key are serialized while different keys
    proceed in parallel.

    Handles that are idle past ``ttl_seconds``, not busy and fully persisted
    are evicted by ``cleanup_expired``. Their command history goes with them.
    """

    def __init__(
        self,
        store: SessionStore,
        *,
        evolution_enabled: bool = True,
        ttl_seconds: float = 3600,
        cleanup_interval: float = 300,
        on_evict: Callable[[str], None] | None = None,
    ) -> None:
        self.store = store
        self.evolution_enabled = evolution_enabled
        self.ttl_seconds = ttl_seconds
        self.cleanup_interval = cleanup_interval
        self.on_evict = on_evict
        self._handles: dict[str, SessionHandle] = {}
        self._map_lock = asyncio.Lock()
        self._tasks: set[asyncio.Task[Any]] = set()
        self._cleanup_task: asyncio.Task[None] | None = None

    def __len__(self) -> int:
        return len(self._handles)

    async def get(self, key: str) -> SessionHandle:
        """Get or lazily load the handle for a key.

        Loading an unknown key creates nothing on disk.

        Raises:
            InvalidSessionKey: If the key cannot be used.
            StorageError: If the stored session is corrupt. Nothing is cached.
        """
        validate_session_key(key)
        async with self._map_lock:
            handle = self._handles.get(key)
            if handle is None:
                session = self.store.load(key, evolution_enabled=self.evolution_enabled)
                handle = SessionHandle(
                    key=key,
                    session=session,
                    history=CommandHistory(key),
                    saved_state=session.to_dict(),
                )
                self._handles[key] = handle
                logger.info("Session loaded: %s", key)
            handle.touch()
        return handle

    @asynccontextmanager
    async def acquire(self, key: str) -> AsyncIterator[SessionHandle]:
        """Hold a session exclusively for a read-modify-write cycle."""
        handle = await self.get(key)
        async with handle.lock:
            handle.touch()
            yield handle

    def persist(self, handle: SessionHandle) -> None:
        """Write the handle's session. Raises StorageError on failure."""
        self.store.persist(handle.key, handle.session)
        handle.saved_state = handle.session.to_dict()

    async def clear(self, key: str, memory: MemoryManager) -> SessionHandle:
        """Reset a session to the empty state and persist it."""
        async with self.acquire(key) as handle:
            memory.clear(handle.session, evolution_enabled=self.evolution_enabled)
            self.persist(handle)
            logger.info("Session cleared: %s", key)
            return handle

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        """Run a coroutine as a task the registry keeps alive until shutdown."""
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def cleanup_expired(self) -> int:
        """Evict idle handles. Returns count of evicted handles."""
        count = 0
        async with self._map_lock:
            for key, handle in list(self._handles.items()):
                if handle.busy or handle.dirty or not handle.is_expired(self.ttl_seconds):
                    continue
                del self._handles[key]
                if self.on_evict is not None:
                    self.on_evict(key)
                count += 1
        if count:
            logger.info("Evicted %d idle sessions", count)
        return count

    async def _cleanup_loop(self) -> None:
        """Background task for periodic cleanup."""
        while True:
            try:
                await asyncio.sleep(self.cleanup_interval)
                await self.cleanup_expired()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Session cleanup failed: %s", e)

    def start_cleanup_task(self) -> None:
        """Start the background cleanup task."""
        if self._cleanup_task is None or self._cleanup_task.done():
            self._cleanup_task = asyncio.create_task(self._cleanup_loop())

    def stop_cleanup_task(self) -> None:
        """Stop the background cleanup task."""
        if self._cleanup_task and not self._cleanup_task.done():
            self._cleanup_task.cancel()

    async def close(self) -> None:
        """Wait for in-flight tasks, then persist every session with unsaved changes."""
        self.stop_cleanup_task()
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

        for handle in list(self._handles.values()):
            if not handle.dirty:
                continue
            try:
                self.persist(handle)
            except StorageError as e:
                logger.error("Failed to persist session %s at shutdown: %s", handle.key, e)
        self._handles.clear()
