"""
In-memory collaborator for offline development and tests.

Behaves like a hosted backend with row-level security: queries return only
the signed-in user's rows, while change notifications go to every open
subscription (filtering them is the client's job).
"""

import asyncio
import itertools
import uuid
from copy import deepcopy
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from client_portal.backend.base import PortalBackend, SessionCallback
from client_portal.kernel.errors import AuthError, DataError, PortalError, SubscriptionError
from client_portal.kernel.events.channel import EventChannel
from client_portal.kernel.events.event_types import ALL_EVENTS, ChangeEvent, matches_filter
from client_portal.kernel.identity.session import Session
from client_portal.schemas.records import RecordId


class InMemoryBackend(PortalBackend):
    """
    Dictionary-backed implementation of PortalBackend.

    Test hooks:
        fail(operation, error)      -- make the next call(s) raise
        hold(operation)             -- block calls until the returned event is set
        update(...)                 -- server-side change that emits an UPDATE
        deliver(event)              -- push a raw event (duplicates, foreign rows)
        drop_subscriptions(...)     -- break the open channels of a collection
        change_session(session)     -- simulate refresh/revocation
    """

    def __init__(self, collections: Tuple[str, ...] = ("projects", "assets", "feedback")):
        self.tables: Dict[str, Dict[RecordId, Dict[str, Any]]] = {name: {} for name in collections}
        self.calls: List[Tuple[str, Optional[str]]] = []
        self._users: Dict[str, Dict[str, Any]] = {}
        self._session: Optional[Session] = None
        self._session_callbacks: List[SessionCallback] = []
        self._channels: Dict[int, EventChannel] = {}
        self._failures: Dict[str, List[PortalError]] = {}
        self._gates: Dict[str, asyncio.Event] = {}
        self._ids = itertools.count(1)

    # ------------------------------------------------------------------
    # Test hooks
    # ------------------------------------------------------------------

    def add_user(self, email: str, password: str, verified: bool = True, **metadata: Any) -> str:
        """Create an account directly; returns the user id."""
        user_id = str(uuid.uuid4())
        self._users[email.lower()] = {
            "id": user_id,
            "password": password,
            "verified": verified,
            "metadata": metadata,
        }
        return user_id

    def verify_email(self, email: str) -> None:
        self._users[email.lower()]["verified"] = True

    def fail(self, operation: str, error: PortalError, times: int = 1) -> None:
        """
        Make the next `times` calls of an operation raise `error`.

        operation is a method name ("select_all") or method:collection
        ("select_all:assets").
        """
        self._failures.setdefault(operation, []).extend([error] * times)

    def hold(self, operation: str) -> asyncio.Event:
        """Block calls of an operation until the returned event is set."""
        gate = asyncio.Event()
        self._gates[operation] = gate
        return gate

    def seed(self, collection: str, *rows: Dict[str, Any]) -> None:
        """Store rows without emitting change events."""
        for row in rows:
            stored = self._stamp(collection, row)
            self.tables[collection][stored["id"]] = stored

    def update(self, collection: str, record_id: RecordId, **fields: Any) -> None:
        row = self.tables[collection][record_id]
        row.update(fields)
        self._publish(ChangeEvent.update(collection, deepcopy(row)))

    def deliver(self, event: ChangeEvent) -> None:
        self._publish(event)

    def drop_subscriptions(self, collection: str, message: str = "channel error") -> None:
        for channel in list(self._channels.values()):
            if channel.collection == collection:
                channel.fail(SubscriptionError(message))
                del self._channels[channel.id]

    def open_channels(self, collection: Optional[str] = None) -> List[EventChannel]:
        return [
            channel for channel in self._channels.values()
            if collection is None or channel.collection == collection
        ]

    def change_session(self, session: Optional[Session]) -> None:
        """Simulate an external session change (token refresh, revocation)."""
        if session == self._session:
            return
        self._session = session
        for callback in list(self._session_callbacks):
            callback(session)

    def count_calls(self, operation: str, collection: Optional[str] = None) -> int:
        return sum(
            1 for op, coll in self.calls
            if op == operation and (collection is None or coll == collection)
        )

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    async def get_session(self) -> Optional[Session]:
        await self._enter("get_session")
        return self._session

    async def sign_in(self, email: str, password: str) -> Session:
        await self._enter("sign_in")
        user = self._users.get(email.lower())
        if user is None or user["password"] != password:
            raise AuthError("Invalid login credentials")
        if not user["verified"]:
            raise AuthError("Email not confirmed")
        self._session = Session(
            access_token=f"token-{uuid.uuid4().hex}",
            refresh_token=f"refresh-{uuid.uuid4().hex}",
            user_id=user["id"],
            email=email.lower(),
            expires_in=3600,
            user_metadata=dict(user["metadata"]),
        )
        return self._session

    async def sign_up(self, email: str, password: str) -> None:
        await self._enter("sign_up")
        if email.lower() in self._users:
            raise AuthError("User already registered")
        self.add_user(email, password, verified=False)

    async def sign_out(self) -> None:
        await self._enter("sign_out")
        self._session = None

    def on_session_change(self, callback: SessionCallback) -> Callable[[], None]:
        self._session_callbacks.append(callback)

        def unregister() -> None:
            if callback in self._session_callbacks:
                self._session_callbacks.remove(callback)

        return unregister

    # ------------------------------------------------------------------
    # Collections
    # ------------------------------------------------------------------

    async def select_all(
        self,
        collection: str,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> List[Dict[str, Any]]:
        await self._enter("select_all", collection)
        table = self._table(collection)
        user_id = self._session.user_id if self._session else None
        rows = [deepcopy(row) for row in table.values() if row.get("user_id") == user_id]
        if order_by:
            rows.sort(key=lambda row: row.get(order_by) or "", reverse=descending)
        return rows

    async def insert(self, collection: str, record: Dict[str, Any]) -> None:
        await self._enter("insert", collection)
        table = self._table(collection)
        if self._session is None:
            raise DataError("new row violates row-level security policy")
        row = self._stamp(collection, record)
        table[row["id"]] = row
        self._publish(ChangeEvent.insert(collection, deepcopy(row)))

    async def delete_by_id(self, collection: str, record_id: RecordId) -> None:
        await self._enter("delete_by_id", collection)
        table = self._table(collection)
        if self._session is None:
            raise DataError("permission denied")
        if table.pop(record_id, None) is not None:
            self._publish(ChangeEvent.delete(collection, record_id))

    # ------------------------------------------------------------------
    # Change streams
    # ------------------------------------------------------------------

    async def subscribe(self, collection: str, event_filter: str = ALL_EVENTS) -> EventChannel:
        await self._enter("subscribe", collection)
        channel = EventChannel(collection, event_filter)
        self._channels[channel.id] = channel
        return channel

    async def unsubscribe(self, channel: EventChannel) -> None:
        await self._enter("unsubscribe", channel.collection)
        self._channels.pop(channel.id, None)
        channel.close()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _enter(self, operation: str, collection: Optional[str] = None) -> None:
        self.calls.append((operation, collection))
        for key in (f"{operation}:{collection}", operation):
            gate = self._gates.get(key)
            if gate is not None:
                await gate.wait()
                break
        else:
            await asyncio.sleep(0)
        for key in (f"{operation}:{collection}", operation):
            queued = self._failures.get(key)
            if queued:
                raise queued.pop(0)

    def _table(self, collection: str) -> Dict[RecordId, Dict[str, Any]]:
        try:
            return self.tables[collection]
        except KeyError:
            raise DataError(f'relation "{collection}" does not exist') from None

    def _stamp(self, collection: str, record: Dict[str, Any]) -> Dict[str, Any]:
        row = deepcopy(record)
        if "id" not in row:
            record_id = next(self._ids)
            while record_id in self.tables[collection]:
                record_id = next(self._ids)
            row["id"] = record_id
        row.setdefault("created_at", datetime.now(timezone.utc).isoformat())
        return row

    def _publish(self, event: ChangeEvent) -> None:
        for channel in list(self._channels.values()):
            if channel.collection == event.collection and matches_filter(channel.event_filter, event.kind):
                channel.put(event)
