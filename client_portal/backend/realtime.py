"""
Realtime change-stream client (Phoenix channel protocol over websockets).

One websocket carries every subscription; each subscription joins its own
topic and owns an EventChannel. Frames for a topic are pushed into that
channel in arrival order.
"""

import asyncio
import itertools
import json
from typing import Any, Callable, Dict, Optional
from urllib.parse import urlencode, urlsplit, urlunsplit

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from client_portal.kernel.errors import SubscriptionError
from client_portal.kernel.events.channel import EventChannel
from client_portal.kernel.events.event_types import ALL_EVENTS, ChangeEvent, ChangeKind
from client_portal.logging_config import get_logger

logger = get_logger(__name__)

PROTOCOL_VERSION = "1.0.0"
_KINDS = {
    "INSERT": ChangeKind.INSERT,
    "UPDATE": ChangeKind.UPDATE,
    "DELETE": ChangeKind.DELETE,
}


def realtime_url(base_url: str, api_key: str) -> str:
    """Derive the websocket endpoint from the project's HTTP URL."""
    parts = urlsplit(base_url.rstrip("/"))
    scheme = "wss" if parts.scheme == "https" else "ws"
    query = urlencode({"apikey": api_key, "vsn": PROTOCOL_VERSION})
    return urlunsplit((scheme, parts.netloc, f"{parts.path}/realtime/v1/websocket", query, ""))


def build_join(
    topic: str,
    table: str,
    event_filter: str,
    access_token: Optional[str],
    ref: str,
    schema: str = "public",
) -> Dict[str, Any]:
    """Build the phx_join frame for a postgres_changes subscription."""
    event = "*" if event_filter == ALL_EVENTS else event_filter.upper()
    payload: Dict[str, Any] = {
        "config": {
            "broadcast": {"self": False},
            "presence": {"key": ""},
            "postgres_changes": [{"event": event, "schema": schema, "table": table}],
        },
    }
    if access_token:
        payload["access_token"] = access_token
    return {"topic": topic, "event": "phx_join", "payload": payload, "ref": ref, "join_ref": ref}


def parse_change_message(message: Dict[str, Any], collection: str) -> Optional[ChangeEvent]:
    """
    Convert a postgres_changes frame into a ChangeEvent.

    Returns None for frames that carry no usable change (unknown type,
    delete without a primary key).
    """
    data = (message.get("payload") or {}).get("data") or {}
    kind = _KINDS.get(str(data.get("type", "")).upper())
    if kind is None:
        return None
    if kind == ChangeKind.DELETE:
        old = data.get("old_record") or {}
        if old.get("id") is None:
            return None
        return ChangeEvent.delete(collection, old["id"])
    record = data.get("record")
    if not isinstance(record, dict):
        return None
    return ChangeEvent(collection=collection, kind=kind, record=record)


class RealtimeClient:
    """Multiplexes subscriptions over a single websocket connection."""

    def __init__(
        self,
        url: str,
        token_provider: Callable[[], Optional[str]],
        heartbeat_seconds: float = 25.0,
    ):
        self.url = url
        self._token_provider = token_provider
        self._heartbeat_seconds = heartbeat_seconds
        self._ws: Optional[Any] = None
        self._reader: Optional[asyncio.Task] = None
        self._heartbeat: Optional[asyncio.Task] = None
        self._connect_lock = asyncio.Lock()
        self._refs = itertools.count(1)
        self._pending: Dict[str, asyncio.Future] = {}
        # topic -> (channel, collection)
        self._topics: Dict[str, tuple] = {}

    async def join(self, collection: str, table: str, event_filter: str) -> EventChannel:
        """Join a topic for the table and return its channel."""
        await self._ensure_connected()
        channel = EventChannel(collection, event_filter)
        topic = f"realtime:{collection}-changes-{channel.id}"
        ref = str(next(self._refs))
        frame = build_join(topic, table, event_filter, self._token_provider(), ref)

        reply = await self._request(ref, frame)
        response = reply.get("payload") or {}
        if response.get("status") != "ok":
            reason = (response.get("response") or {}).get("reason", "join rejected")
            raise SubscriptionError(f"Subscribe to {collection} failed: {reason}")

        self._topics[topic] = (channel, collection)
        logger.debug("Joined %s", topic)
        return channel

    async def leave(self, channel: EventChannel) -> None:
        topic = next((t for t, (c, _) in self._topics.items() if c is channel), None)
        channel.close()
        if topic is None:
            return
        del self._topics[topic]
        if self._ws is not None:
            frame = {"topic": topic, "event": "phx_leave", "payload": {}, "ref": str(next(self._refs))}
            await self._send(frame)

    async def close(self) -> None:
        for task in (self._heartbeat, self._reader):
            if task is not None:
                task.cancel()
        self._heartbeat = self._reader = None
        self._fail_all("realtime connection closed")
        if self._ws is not None:
            ws, self._ws = self._ws, None
            await ws.close()

    async def _ensure_connected(self) -> None:
        async with self._connect_lock:
            if self._ws is not None:
                return
            try:
                self._ws = await websockets.connect(self.url)
            except (OSError, WebSocketException) as e:
                raise SubscriptionError(f"Realtime connection failed: {e}") from e
            self._reader = asyncio.create_task(self._read_loop(self._ws))
            self._heartbeat = asyncio.create_task(self._heartbeat_loop())
            logger.info("Realtime connected")

    async def _request(self, ref: str, frame: Dict[str, Any]) -> Dict[str, Any]:
        future = asyncio.get_running_loop().create_future()
        self._pending[ref] = future
        try:
            await self._send(frame)
            return await future
        finally:
            self._pending.pop(ref, None)

    async def _send(self, frame: Dict[str, Any]) -> None:
        if self._ws is None:
            raise SubscriptionError("Realtime connection is not open")
        try:
            await self._ws.send(json.dumps(frame))
        except (ConnectionClosed, OSError) as e:
            raise SubscriptionError(f"Realtime send failed: {e}") from e

    async def _read_loop(self, ws: Any) -> None:
        try:
            async for raw in ws:
                try:
                    message = json.loads(raw)
                except ValueError:
                    logger.warning("Discarding non-JSON realtime frame")
                    continue
                self._dispatch(message)
        except ConnectionClosed as e:
            logger.warning("Realtime connection lost: %s", e)
        finally:
            if self._ws is ws:
                self._ws = None
                if self._heartbeat is not None:
                    self._heartbeat.cancel()
                    self._heartbeat = None
            self._fail_all("realtime connection lost")

    def _dispatch(self, message: Dict[str, Any]) -> None:
        event = message.get("event")
        topic = message.get("topic")

        if event == "phx_reply":
            future = self._pending.get(str(message.get("ref")))
            if future is not None and not future.done():
                future.set_result(message)
            return

        entry = self._topics.get(topic)
        if entry is None:
            return
        channel, collection = entry

        if event == "postgres_changes":
            change = parse_change_message(message, collection)
            if change is not None:
                channel.put(change)
        elif event in ("phx_error", "phx_close", "system") and self._is_failure(message):
            del self._topics[topic]
            channel.fail(SubscriptionError(f"Subscription to {collection} closed by server"))

    @staticmethod
    def _is_failure(message: Dict[str, Any]) -> bool:
        if message.get("event") != "system":
            return True
        return (message.get("payload") or {}).get("status") == "error"

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self._heartbeat_seconds)
            frame = {"topic": "phoenix", "event": "heartbeat", "payload": {}, "ref": str(next(self._refs))}
            try:
                await self._send(frame)
            except SubscriptionError as e:
                logger.warning("Heartbeat failed: %s", e.message)
                return

    def _fail_all(self, reason: str) -> None:
        topics, self._topics = self._topics, {}
        for channel, _ in topics.values():
            channel.fail(SubscriptionError(reason))
        pending, self._pending = self._pending, {}
        for future in pending.values():
            if not future.done():
                future.set_exception(SubscriptionError(reason))
