"""
Live Queries
Keeps filtered collection snapshots up to date and pushes them to subscribers.

A live query re-runs its filter every ``live_query_interval_seconds`` (or
immediately on ``refresh``) and delivers the result to every subscriber
whenever it differs from the last delivered snapshot. Subscriptions are
disposable handles; one polling task is shared per distinct filter.
"""
import asyncio
import inspect
import json
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from config import settings
from services.errors import BloodMatchError, TransientStoreFailure, store_errors

logger = logging.getLogger(__name__)

Listener = Callable[[Any], Any]
ErrorListener = Callable[[BloodMatchError], Any]
Transform = Callable[[List[dict]], Any]
SortSpec = Optional[Sequence[Tuple[str, int]]]


async def maybe_await(value):
    if inspect.isawaitable(value):
        return await value
    return value


class Subscription:
    """Handle returned by ``LiveQueryHub.subscribe``; ``dispose`` stops delivery."""

    def __init__(self, hub: Optional["LiveQueryHub"], key: Optional[str], listener: Listener,
                 on_error: Optional[ErrorListener] = None, transform: Optional[Transform] = None):
        self._hub = hub
        self.key = key
        self.listener = listener
        self.on_error = on_error
        self.transform = transform
        self.active = hub is not None

    @classmethod
    def inert(cls, listener: Listener) -> "Subscription":
        """A handle that was never attached to a live query."""
        return cls(None, None, listener)

    async def deliver(self, docs: List[dict]) -> None:
        if not self.active:
            return
        try:
            payload = docs
            if self.transform is not None:
                payload = await maybe_await(self.transform(docs))
            if self.active:
                await maybe_await(self.listener(payload))
        except Exception:
            logger.exception("Live query listener failed for %s", self.key)

    async def fail(self, error: BloodMatchError) -> None:
        if not self.active or self.on_error is None:
            return
        try:
            await maybe_await(self.on_error(error))
        except Exception:
            logger.exception("Live query error handler failed for %s", self.key)

    def dispose(self) -> None:
        if not self.active:
            return
        self.active = False
        if self._hub is not None:
            self._hub._detach(self)


class LiveQuery:
    def __init__(self, collection, query: dict, sort: SortSpec, interval: float):
        self.collection = collection
        self.query = query
        self.sort = list(sort) if sort else None
        self.interval = interval
        self.subscriptions: List[Subscription] = []
        self.snapshot: Optional[List[dict]] = None
        self.task: Optional[asyncio.Task] = None
        self._wake = asyncio.Event()
        self._lock = asyncio.Lock()

    async def fetch(self) -> List[dict]:
        cursor = self.collection.find(self.query, {"_id": 0})
        if self.sort:
            cursor = cursor.sort(self.sort)
        return await cursor.to_list(None)

    async def poll_once(self) -> None:
        async with self._lock:
            try:
                async with store_errors("refresh live results"):
                    docs = await self.fetch()
            except TransientStoreFailure as e:
                logger.warning("Live query on %s failed: %s", self.collection.name, e)
                await self._fail_all(e)
                return
            except Exception:
                logger.exception("Live query on %s raised unexpectedly", self.collection.name)
                await self._fail_all(BloodMatchError("Live results could not be refreshed"))
                return

            if docs == self.snapshot:
                return
            self.snapshot = docs
            for sub in list(self.subscriptions):
                await sub.deliver(docs)

    async def _fail_all(self, error: BloodMatchError) -> None:
        for sub in list(self.subscriptions):
            await sub.fail(error)

    async def run(self) -> None:
        while True:
            try:
                await self.poll_once()
            except Exception:
                logger.exception("Live query on %s failed to deliver", self.collection.name)
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass
            self._wake.clear()

    def wake(self) -> None:
        self._wake.set()


class LiveQueryHub:
    """Registry of running live queries for one database."""

    def __init__(self, db, interval: Optional[float] = None):
        self.db = db
        self.interval = interval if interval is not None else settings.live_query_interval_seconds
        self._queries: Dict[str, LiveQuery] = {}
        self._handles: Dict[Tuple[str, Listener, Optional[ErrorListener]], Subscription] = {}
        self._pending = set()

    @staticmethod
    def query_key(collection_name: str, query: dict, sort: SortSpec = None) -> str:
        return json.dumps(
            {"collection": collection_name, "query": query, "sort": list(sort) if sort else None},
            sort_keys=True,
            default=str,
        )

    def subscribe(
        self,
        collection_name: str,
        query: dict,
        listener: Listener,
        on_error: Optional[ErrorListener] = None,
        sort: SortSpec = None,
        transform: Optional[Transform] = None,
    ) -> Subscription:
        """
        Start (or join) the live query for ``query`` on ``collection_name``.

        Subscribing the same listener to the same filter again returns the
        existing handle instead of registering a second delivery.
        """
        key = self.query_key(collection_name, query, sort)
        existing = self._handles.get((key, listener, on_error))
        if existing is not None and existing.active:
            return existing

        live = self._queries.get(key)
        if live is None:
            live = LiveQuery(self.db[collection_name], query, sort, self.interval)
            self._queries[key] = live
            live.task = asyncio.get_running_loop().create_task(live.run())
            logger.debug("Started live query %s", key)

        sub = Subscription(self, key, listener, on_error, transform)
        live.subscriptions.append(sub)
        self._handles[(key, listener, on_error)] = sub

        if live.snapshot is not None:
            self._spawn(sub.deliver(live.snapshot))
        return sub

    def _spawn(self, coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def _detach(self, sub: Subscription) -> None:
        self._handles.pop((sub.key, sub.listener, sub.on_error), None)
        live = self._queries.get(sub.key)
        if live is None:
            return
        if sub in live.subscriptions:
            live.subscriptions.remove(sub)
        if not live.subscriptions:
            del self._queries[sub.key]
            if live.task is not None:
                live.task.cancel()
            logger.debug("Stopped live query %s", sub.key)

    @property
    def active_queries(self) -> int:
        return len(self._queries)

    async def refresh(self, collection_name: Optional[str] = None) -> None:
        """Re-run live queries now instead of waiting for the next interval."""
        for live in list(self._queries.values()):
            if collection_name is None or live.collection.name == collection_name:
                await live.poll_once()

    def notify(self, collection_name: Optional[str] = None) -> None:
        """Ask the background tasks to re-poll without waiting for them."""
        for live in list(self._queries.values()):
            if collection_name is None or live.collection.name == collection_name:
                live.wake()

    async def close(self) -> None:
        tasks = [live.task for live in self._queries.values() if live.task is not None]
        tasks.extend(self._pending)
        for sub in list(self._handles.values()):
            sub.active = False
        self._queries.clear()
        self._handles.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
