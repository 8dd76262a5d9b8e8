"""
Supabase-style collaborator: GoTrue auth and PostgREST over httpx,
change streams over the realtime websocket.
"""

from typing import Any, Callable, Dict, List, Mapping, Optional, Type

import asyncio

import httpx

from client_portal.backend.base import PortalBackend, SessionCallback
from client_portal.backend.realtime import RealtimeClient, realtime_url
from client_portal.config import Settings
from client_portal.kernel.errors import AuthError, DataError, PortalError
from client_portal.kernel.events.channel import EventChannel
from client_portal.kernel.events.event_types import ALL_EVENTS
from client_portal.kernel.identity.session import Session
from client_portal.logging_config import get_logger
from client_portal.schemas.records import RecordId

logger = get_logger(__name__)


def _error_message(response: httpx.Response) -> str:
    """Pull the human-readable message out of a GoTrue/PostgREST error body."""
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        for key in ("error_description", "msg", "message", "error"):
            if body.get(key):
                return str(body[key])
    return f"HTTP {response.status_code}"


def _json(response: httpx.Response, error_cls: Type[PortalError]) -> Any:
    """Decode a JSON body; proxies and gateways sometimes answer 200 with HTML."""
    try:
        return response.json()
    except ValueError as e:
        raise error_cls(f"Unexpected non-JSON response (HTTP {response.status_code})") from e


def session_from_payload(payload: Mapping[str, Any]) -> Session:
    """Build a Session from a GoTrue token response."""
    if not isinstance(payload, Mapping):
        raise AuthError("Malformed session payload")
    user = payload.get("user") or {}
    try:
        return Session(
            access_token=payload["access_token"],
            refresh_token=payload.get("refresh_token"),
            expires_in=payload.get("expires_in"),
            user_id=str(user["id"]),
            email=user.get("email"),
            user_metadata=user.get("user_metadata") or {},
        )
    except KeyError as e:
        raise AuthError(f"Malformed session payload: missing {e.args[0]}") from e


class SupabaseBackend(PortalBackend):
    """
    PortalBackend speaking to a Supabase project.

    Logical collection names map to tables through `table_names`
    (feedback is stored in the "intelligence" table by default).
    """

    def __init__(
        self,
        url: str,
        api_key: str,
        table_names: Optional[Mapping[str, str]] = None,
        heartbeat_seconds: float = 25.0,
        timeout: float = 30.0,
        refresh_margin_seconds: float = 60.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.url = url.rstrip("/")
        self.api_key = api_key
        self.table_names: Dict[str, str] = {"feedback": "intelligence"}
        self.table_names.update(table_names or {})
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=self.url, timeout=timeout)
        self._session: Optional[Session] = None
        self._refresh_margin = refresh_margin_seconds
        self._refresh_task: Optional[asyncio.Task] = None
        self._callbacks: List[SessionCallback] = []
        self._realtime = RealtimeClient(
            realtime_url(self.url, api_key),
            token_provider=lambda: self._session.access_token if self._session else None,
            heartbeat_seconds=heartbeat_seconds,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "SupabaseBackend":
        return cls(
            settings.supabase_url,
            settings.supabase_anon_key,
            table_names={"feedback": settings.feedback_table},
            heartbeat_seconds=settings.realtime_heartbeat_seconds,
            timeout=settings.http_timeout_seconds,
            refresh_margin_seconds=settings.token_refresh_margin_seconds,
        )

    def table(self, collection: str) -> str:
        return self.table_names.get(collection, collection)

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    async def get_session(self) -> Optional[Session]:
        return self._session

    async def sign_in(self, email: str, password: str) -> Session:
        response = await self._request(
            "POST", "/auth/v1/token",
            error_cls=AuthError,
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        self._session = session_from_payload(_json(response, AuthError))
        self._schedule_refresh(self._session)
        return self._session

    async def sign_up(self, email: str, password: str) -> None:
        await self._request(
            "POST", "/auth/v1/signup",
            error_cls=AuthError,
            json={"email": email, "password": password},
        )

    async def sign_out(self) -> None:
        if self._session is None:
            return
        try:
            await self._request("POST", "/auth/v1/logout", error_cls=AuthError)
        finally:
            self._session = None
            self._cancel_refresh()

    async def refresh_session(self) -> Session:
        """
        Exchange the refresh token for a new session.

        Listeners are told about the new session; a rejected refresh
        invalidates the session and tells them about that instead.
        Runs on its own shortly before the access token expires.
        """
        if self._session is None or not self._session.refresh_token:
            raise AuthError("No session to refresh")
        try:
            response = await self._request(
                "POST", "/auth/v1/token",
                error_cls=AuthError,
                params={"grant_type": "refresh_token"},
                json={"refresh_token": self._session.refresh_token},
            )
            session = session_from_payload(_json(response, AuthError))
        except AuthError:
            self._set_session(None)
            raise
        self._set_session(session)
        return session

    def on_session_change(self, callback: SessionCallback) -> Callable[[], None]:
        self._callbacks.append(callback)

        def unregister() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

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
        params = {"select": "*"}
        if order_by:
            params["order"] = f"{order_by}.{'desc' if descending else 'asc'}"
        response = await self._request("GET", f"/rest/v1/{self.table(collection)}", params=params)
        rows = _json(response, DataError)
        if not isinstance(rows, list):
            raise DataError(f"Unexpected response for {collection}")
        return rows

    async def insert(self, collection: str, record: Dict[str, Any]) -> None:
        await self._request(
            "POST", f"/rest/v1/{self.table(collection)}",
            json=record,
            headers={"Prefer": "return=minimal"},
        )

    async def delete_by_id(self, collection: str, record_id: RecordId) -> None:
        await self._request(
            "DELETE", f"/rest/v1/{self.table(collection)}",
            params={"id": f"eq.{record_id}"},
        )

    # ------------------------------------------------------------------
    # Change streams
    # ------------------------------------------------------------------

    async def subscribe(self, collection: str, event_filter: str = ALL_EVENTS) -> EventChannel:
        return await self._realtime.join(collection, self.table(collection), event_filter)

    async def unsubscribe(self, channel: EventChannel) -> None:
        await self._realtime.leave(channel)

    async def aclose(self) -> None:
        self._cancel_refresh()
        await self._realtime.close()
        if self._owns_client:
            await self._client.aclose()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _headers(self) -> Dict[str, str]:
        token = self._session.access_token if self._session else self.api_key
        return {"apikey": self.api_key, "Authorization": f"Bearer {token}"}

    async def _request(
        self,
        method: str,
        path: str,
        *,
        error_cls: Type[PortalError] = DataError,
        headers: Optional[Dict[str, str]] = None,
        **kwargs: Any,
    ) -> httpx.Response:
        merged = self._headers()
        merged.update(headers or {})
        try:
            response = await self._client.request(method, path, headers=merged, **kwargs)
        except httpx.HTTPError as e:
            logger.warning("%s %s failed: %s", method, path, e)
            raise error_cls(f"Network error: {e}") from e

        if response.status_code >= 400:
            message = _error_message(response)
            if response.status_code == 401 and error_cls is DataError and self._session is not None:
                # Expired or revoked token: the session is no longer valid
                self._set_session(None)
            raise error_cls(message)
        return response

    def _set_session(self, session: Optional[Session]) -> None:
        if session == self._session:
            return
        self._session = session
        self._schedule_refresh(session)
        for callback in list(self._callbacks):
            callback(session)

    def _schedule_refresh(self, session: Optional[Session]) -> None:
        self._cancel_refresh()
        if session is None or not session.expires_in or not session.refresh_token:
            return
        delay = max(session.expires_in - self._refresh_margin, 0.0)
        self._refresh_task = asyncio.create_task(self._refresh_later(delay))

    def _cancel_refresh(self) -> None:
        task, self._refresh_task = self._refresh_task, None
        # A refresh reschedules itself from inside the task it runs in
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    async def _refresh_later(self, delay: float) -> None:
        await asyncio.sleep(delay)
        try:
            await self.refresh_session()
        except AuthError as e:
            # The session is already invalidated and listeners told
            logger.warning("Token refresh failed: %s", e.message)
