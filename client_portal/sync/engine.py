"""
SyncEngine - keeps the collection mirrors in step with the collaborator.

On session acquisition the engine bulk-loads every collection concurrently,
installs the results, then opens one change subscription per collection.
On session loss it closes the subscriptions and clears the mirrors.

Every async result is stamped with the session generation that issued it;
anything arriving after that generation ended is discarded.
"""

import asyncio
from typing import Callable, Coroutine, Dict, Iterable, List, Optional, Set, Tuple

from pydantic import ValidationError as PydanticValidationError

from client_portal.backend.base import PortalBackend
from client_portal.config import Settings, get_settings
from client_portal.kernel.errors import DataError, SubscriptionError
from client_portal.kernel.events.channel import EventChannel
from client_portal.kernel.events.event_types import ChangeEvent
from client_portal.kernel.identity.session import Session
from client_portal.kernel.identity.session_store import SessionStore
from client_portal.logging_config import generation_var, get_logger
from client_portal.orchestration.state_machine import SyncState, transition_trigger
from client_portal.schemas.records import PortalRecord
from client_portal.sync.collections import DEFAULT_COLLECTIONS, CollectionSpec
from client_portal.sync.mirror import CollectionMirror
from client_portal.sync.notices import NoticeBoard
from client_portal.sync.reconciler import ChangeReconciler
from client_portal.sync.retry import RetryPolicy

logger = get_logger(__name__)

StateListener = Callable[[SyncState, SyncState], None]


class SyncEngine:
    """
    Orchestrates bulk-loads, change subscriptions and teardown.

    Usage:
        engine = SyncEngine(backend, sessions, notices)
        engine.start()
        ...
        await engine.refresh()
        await engine.stop()
    """

    def __init__(
        self,
        backend: PortalBackend,
        sessions: SessionStore,
        notices: NoticeBoard,
        settings: Optional[Settings] = None,
        collections: Iterable[CollectionSpec] = DEFAULT_COLLECTIONS,
    ):
        settings = settings or get_settings()
        self.backend = backend
        self.sessions = sessions
        self.notices = notices
        self._specs: Dict[str, CollectionSpec] = {spec.name: spec for spec in collections}
        self.mirrors: Dict[str, CollectionMirror] = {
            name: spec.create_mirror() for name, spec in self._specs.items()
        }
        self.reconciler = ChangeReconciler(self.mirrors)
        self._load_policy = RetryPolicy.for_loads(settings)
        self._resubscribe_policy = RetryPolicy.for_resubscribe(settings)

        self._state = SyncState.IDLE
        self._generation: Optional[int] = None
        self._channels: Dict[str, EventChannel] = {}
        self._pumps: Dict[str, asyncio.Task] = {}
        self._load_task: Optional[asyncio.Task] = None
        self._reload_requested = False
        # Events held back while a refresh is replacing mirror content
        self._buffers: Optional[Dict[str, List[ChangeEvent]]] = None
        self._background: Set[asyncio.Task] = set()
        self._state_listeners: List[StateListener] = []
        self._unregister: Optional[Callable[[], None]] = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def generation(self) -> Optional[int]:
        """Session generation currently being served, if any."""
        return self._generation

    def mirror(self, name: str) -> CollectionMirror:
        return self.mirrors[name]

    def snapshot(self, name: str) -> Tuple[PortalRecord, ...]:
        return self.mirrors[name].snapshot()

    def open_channels(self) -> Dict[str, EventChannel]:
        return dict(self._channels)

    def on_state_change(self, listener: StateListener) -> Callable[[], None]:
        self._state_listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._state_listeners:
                self._state_listeners.remove(listener)

        return unsubscribe

    def start(self) -> None:
        """Follow the session store; begin loading if a session is active."""
        if self._unregister is not None:
            return
        self._unregister = self.sessions.subscribe(self._on_session_change)
        if self.sessions.current() is not None:
            self._generation = self.sessions.generation
            self._begin(self.sessions.current())

    async def stop(self) -> None:
        """Detach from the session store and release every subscription."""
        if self._unregister is not None:
            self._unregister()
            self._unregister = None
        self._teardown()
        self._generation = None
        await self.drain()

    async def refresh(self) -> SyncState:
        """
        Re-run the bulk-load for every collection without touching the
        open subscriptions. Concurrent requests coalesce into one re-run.

        Returns:
            The engine state once the load has finished
        """
        if self._state == SyncState.IDLE or self._generation is None:
            return self._state

        task = self._load_task
        if task is not None and not task.done():
            self._reload_requested = True
        else:
            self._set_state(SyncState.LOADING)
            task = self._load_task = self._spawn(self._run_load(self._generation))

        await asyncio.wait({task})
        return self._state

    async def drain(self) -> None:
        """Wait until background work has finished and every queued event is applied."""
        while True:
            pending = [t for t in self._background if not t.done()]
            if pending:
                await asyncio.wait(pending)
                continue
            if any(
                channel.pending() and name in self._pumps and not self._pumps[name].done()
                for name, channel in self._channels.items()
            ):
                await asyncio.sleep(0)
                continue
            return

    # ------------------------------------------------------------------
    # Session handling
    # ------------------------------------------------------------------

    def _on_session_change(
        self,
        previous: Optional[Session],
        current: Optional[Session],
        generation: int,
    ) -> None:
        if generation == self._generation:
            # Token refresh for the same identity
            return
        self._teardown()
        self._generation = generation
        if current is not None:
            self._begin(current)

    def _begin(self, session: Session) -> None:
        self.reconciler.owner_id = session.user_id
        self._set_state(SyncState.LOADING)
        self._load_task = self._spawn(self._run_load(self._generation))

    def _teardown(self) -> None:
        if self._load_task is not None:
            self._load_task.cancel()
            self._load_task = None
        for task in self._pumps.values():
            task.cancel()
        self._pumps.clear()

        channels = list(self._channels.values())
        self._channels.clear()
        for channel in channels:
            channel.close()
            self._spawn(self._close_channel(channel))

        self._buffers = None
        self._reload_requested = False
        for mirror in self.mirrors.values():
            mirror.clear()
        self.reconciler.owner_id = None
        self._set_state(SyncState.IDLE)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def _run_load(self, generation: int) -> None:
        while True:
            self._reload_requested = False
            loaded = await self._load_with_retry(generation)
            if generation != self._generation:
                return
            if not loaded:
                self._flush_buffers()
                self._set_state(SyncState.SUSPENDED)
                return

            subscribed = await self._open_subscriptions(generation)
            if generation != self._generation:
                return
            if not subscribed:
                self._set_state(SyncState.SUSPENDED)
                return

            if not self._reload_requested:
                break
            logger.debug("Re-running load for coalesced refresh")

        self._set_state(SyncState.LIVE)

    async def _load_with_retry(self, generation: int) -> bool:
        if self._channels and self._buffers is None:
            self._buffers = {name: [] for name in self._specs}

        for attempt in range(self._load_policy.max_attempts):
            try:
                results = await self._fetch_all()
            except DataError as e:
                if generation != self._generation:
                    return False
                self.notices.report(e)
                if not self._load_policy.should_retry(attempt):
                    logger.error(
                        "Bulk-load failed after %d attempts", attempt + 1,
                        extra={"error": e.message},
                    )
                    return False
                delay = self._load_policy.delay(attempt)
                logger.warning("Bulk-load failed, retrying in %.2fs", delay, extra={"attempt": attempt + 1})
                await asyncio.sleep(delay)
                if generation != self._generation:
                    return False
                self._set_state(SyncState.LOADING)
                continue

            if generation != self._generation:
                return False
            for name, records in results:
                self.mirrors[name].replace_all(records)
            self._flush_buffers()
            logger.info(
                "Mirrors loaded",
                extra={"counts": {name: len(records) for name, records in results}},
            )
            return True
        return False

    async def _fetch_all(self) -> List[Tuple[str, List[PortalRecord]]]:
        tasks = [asyncio.create_task(self._fetch(spec)) for spec in self._specs.values()]
        try:
            return await asyncio.gather(*tasks)
        except BaseException:
            # A single failure aborts the join
            for task in tasks:
                task.cancel()
            raise

    async def _fetch(self, spec: CollectionSpec) -> Tuple[str, List[PortalRecord]]:
        rows = await self.backend.select_all(spec.name, order_by=spec.order_by, descending=spec.descending)
        owner_id = self.reconciler.owner_id
        records: List[PortalRecord] = []
        for row in rows:
            try:
                record = spec.model.model_validate(row)
            except PydanticValidationError as e:
                raise DataError(f"Malformed {spec.name} record: {e.error_count()} error(s)") from e
            if owner_id is not None and record.user_id is not None and record.user_id != owner_id:
                continue
            records.append(record)
        return spec.name, records

    def _flush_buffers(self) -> None:
        buffers, self._buffers = self._buffers, None
        if not buffers:
            return
        for events in buffers.values():
            for event in events:
                self._apply(event)

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    async def _open_subscriptions(self, generation: int) -> bool:
        for spec in self._specs.values():
            if spec.name in self._channels:
                continue
            channel = await self._subscribe_with_retry(spec, generation)
            if channel is None:
                return False
        return True

    async def _subscribe_with_retry(self, spec: CollectionSpec, generation: int) -> Optional[EventChannel]:
        for attempt in range(self._resubscribe_policy.max_attempts):
            try:
                channel = await self.backend.subscribe(spec.name, spec.event_filter)
            except SubscriptionError as e:
                if generation != self._generation:
                    return None
                if not self._resubscribe_policy.should_retry(attempt):
                    self.notices.report(e)
                    return None
                delay = self._resubscribe_policy.delay(attempt)
                logger.warning(
                    "Subscribe to %s failed, retrying in %.2fs", spec.name, delay,
                    extra={"error": e.message},
                )
                await asyncio.sleep(delay)
                if generation != self._generation:
                    return None
                continue

            if generation != self._generation:
                channel.close()
                self._spawn(self._close_channel(channel))
                return None
            existing = self._channels.get(spec.name)
            if existing is not None:
                # Another path (load or recovery) subscribed while this call was in flight
                channel.close()
                self._spawn(self._close_channel(channel))
                return existing
            self._channels[spec.name] = channel
            self._pumps[spec.name] = self._spawn(self._pump(spec, channel, generation), track=False)
            logger.debug("Subscribed to %s", spec.name)
            return channel
        return None

    async def _pump(self, spec: CollectionSpec, channel: EventChannel, generation: int) -> None:
        try:
            async for event in channel:
                if generation != self._generation:
                    return
                self._deliver(event)
        except SubscriptionError as e:
            if generation != self._generation:
                return
            logger.warning("Subscription to %s dropped: %s", spec.name, e.message)
            if self._channels.get(spec.name) is channel:
                del self._channels[spec.name]
                self._pumps.pop(spec.name, None)
            self._spawn(self._recover(spec, generation))

    async def _recover(self, spec: CollectionSpec, generation: int) -> None:
        channel = await self._subscribe_with_retry(spec, generation)
        if generation != self._generation:
            return
        if channel is None:
            # A running load re-opens missing subscriptions itself
            if self._state == SyncState.LIVE:
                self._set_state(SyncState.SUSPENDED)
            return
        # Events may have been missed while disconnected
        await self.refresh()

    def _deliver(self, event: ChangeEvent) -> None:
        if self._buffers is not None and event.collection in self._buffers:
            self._buffers[event.collection].append(event)
            return
        self._apply(event)

    def _apply(self, event: ChangeEvent) -> None:
        try:
            self.reconciler.apply(event)
        except SubscriptionError as e:
            self.notices.report(e)

    async def _close_channel(self, channel: EventChannel) -> None:
        try:
            await self.backend.unsubscribe(channel)
        except SubscriptionError as e:
            logger.warning("Unsubscribe from %s failed: %s", channel.collection, e.message)

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def _set_state(self, to_state: SyncState) -> None:
        from_state = self._state
        trigger = transition_trigger(from_state, to_state)
        self._state = to_state
        if from_state != to_state:
            logger.info(
                "Sync %s -> %s (%s)", from_state.value, to_state.value, trigger,
            )
            for listener in list(self._state_listeners):
                listener(from_state, to_state)

    def _spawn(self, coro: Coroutine, track: bool = True) -> asyncio.Task:
        token = generation_var.set(self._generation)
        try:
            task = asyncio.create_task(coro)
        finally:
            generation_var.reset(token)
        if track:
            self._background.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Sync task failed", exc_info=exc)
