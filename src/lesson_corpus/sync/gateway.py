from __future__ import annotations

import asyncio
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Iterable, NamedTuple, Optional, Set, Tuple, TypeVar

from lesson_corpus.errors import RemoteSyncError
from lesson_corpus.storage.local_cache import LocalCache
from lesson_corpus.storage.remote_store import OfflineRemoteStore, RemoteStore
from lesson_corpus.utils.logging import get_logger

from .events import SyncEvent, SyncEventBus

logger = get_logger(__name__)

T = TypeVar("T")
RemoteLeg = Callable[[RemoteStore], Awaitable[Any]]


class StagedWrite(NamedTuple):
    """One local document plus the remote leg that mirrors it, built before anything is written."""

    key: str
    value: Any
    operation: str
    remote: Optional[RemoteLeg] = None


def _is_empty(value: Any) -> bool:
    return value is None or (hasattr(value, "__len__") and len(value) == 0)


class SyncGateway:
    """
    Offline-first mediator between the local cache and the remote mirror.

    Writes are two-legged. The local leg runs before ``write`` returns and any failure in it
    reaches the caller. The remote leg is scheduled afterwards: as an ``asyncio`` task when an
    event loop is running, otherwise queued until ``drain``. Remote failures are logged,
    published on the event bus and otherwise ignored; they never undo the local write.

    Remote legs receive the store as their only argument and must capture their payload when
    they are created, so a later mutation cannot change what an earlier write sends.
    """

    def __init__(
        self,
        cache: LocalCache,
        remote: Optional[RemoteStore] = None,
        events: Optional[SyncEventBus] = None,
    ):
        self.cache = cache
        self.remote = remote or OfflineRemoteStore()
        self.events = events or SyncEventBus()
        self._pending: Deque[Tuple[str, RemoteLeg]] = deque()
        self._tasks: Set[asyncio.Task] = set()

    @property
    def online(self) -> bool:
        return self.remote.is_configured

    @property
    def pending(self) -> int:
        """Remote legs scheduled but not yet finished."""
        return len(self._pending) + len(self._tasks)

    def write(self, local: Callable[[LocalCache], None], remote: Optional[RemoteLeg], *, operation: str) -> None:
        local(self.cache)
        if remote is not None:
            self.schedule(remote, operation=operation)

    def apply(self, writes: Iterable[StagedWrite]) -> None:
        """
        Write several local documents as one unit, then schedule their remote legs.

        A local failure restores the documents already written and propagates; no remote leg
        is scheduled in that case.
        """
        batch = list(writes)
        self.cache.set_many((write.key, write.value) for write in batch)
        for write in batch:
            if write.remote is not None:
                self.schedule(write.remote, operation=write.operation)

    def schedule(self, remote: RemoteLeg, *, operation: str) -> None:
        """Queue a remote leg without a local counterpart."""
        if not self.online:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._pending.append((operation, remote))
            return
        task = loop.create_task(self._run_remote(operation, remote))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_remote(self, operation: str, remote: RemoteLeg) -> None:
        try:
            await remote(self.remote)
        except Exception as exc:
            error = exc if isinstance(exc, RemoteSyncError) else RemoteSyncError(operation, exc)
            logger.warning("remote_sync_failed", operation=operation, error=str(error))
            self.events.publish(SyncEvent(operation=operation, ok=False, error=error))
            return
        logger.debug("remote_sync_ok", operation=operation)
        self.events.publish(SyncEvent(operation=operation, ok=True))

    async def drain(self) -> None:
        """Run queued remote legs in order, then wait for every in-flight task."""
        while self._pending or self._tasks:
            while self._pending:
                operation, remote = self._pending.popleft()
                await self._run_remote(operation, remote)
            if self._tasks:
                await asyncio.gather(*list(self._tasks))

    def drain_sync(self) -> None:
        """Flush the queue from synchronous code such as the CLI."""
        if self._pending:
            asyncio.run(self.drain())

    def load(
        self,
        operation: str,
        fetch: Callable[[RemoteStore], Awaitable[Optional[T]]],
        read_local: Callable[[LocalCache], Optional[T]],
        write_local: Callable[[LocalCache, T], None],
        default: Callable[[], T],
        push: Optional[Callable[[T], RemoteLeg]] = None,
    ) -> T:
        """
        Read one collection for startup: remote first, then the local cache, then a default.

        A non-empty remote answer is mirrored into the local cache. When the remote is empty
        but the cache has data, ``push`` (if given) schedules the cached copy for upload. A
        default is persisted locally so the next start finds it.
        """
        reached, remote_value = self._fetch_remote(operation, fetch)
        if not _is_empty(remote_value):
            write_local(self.cache, remote_value)
            return remote_value

        local_value = read_local(self.cache)
        if not _is_empty(local_value):
            if push is not None and reached:
                self.schedule(push(local_value), operation=f"{operation}:migrate")
            return local_value

        value = default()
        write_local(self.cache, value)
        logger.info("local_default_created", operation=operation)
        return value

    def _fetch_remote(self, operation: str, fetch: Callable[[RemoteStore], Awaitable[Optional[T]]]) -> Tuple[bool, Optional[T]]:
        if not self.online:
            return False, None
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            pass
        else:
            logger.debug("remote_read_skipped_in_loop", operation=operation)
            return False, None
        try:
            return True, asyncio.run(fetch(self.remote))
        except Exception as exc:
            error = exc if isinstance(exc, RemoteSyncError) else RemoteSyncError(operation, exc)
            logger.warning("remote_read_failed", operation=operation, error=str(error))
            self.events.publish(SyncEvent(operation=operation, ok=False, error=error))
            return False, None
