"""
Server-Side Browser Sessions
============================

Per-browser key/value storage for the sign-in flow. The cookie only carries
a signed, random session id; the data (flow state, token cache, account)
stays on the server because an MSAL token cache does not fit in a cookie.

Components:
-----------
- SessionStore: storage interface (load / save / delete)
- MemorySessionStore: in-process store with inactivity expiry
- ServerSession: dict exposed as ``request.session``, with ``destroy()``
- ServerSessionMiddleware: ASGI middleware binding the cookie to the store

Cookie signing follows Starlette's own SessionMiddleware (itsdangerous
TimestampSigner), so an expired or tampered cookie is treated as absent.
"""

import json
import logging
import secrets
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Tuple

import itsdangerous
from itsdangerous.exc import BadSignature
from starlette.datastructures import MutableHeaders
from starlette.requests import HTTPConnection, Request
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from portal.auth.errors import SessionError

logger = logging.getLogger(__name__)


def new_session_id() -> str:
    return secrets.token_urlsafe(32)


# =============================================================================
# Stores
# =============================================================================

class SessionStore(ABC):
    """Storage backend for session data, keyed by session id."""

    @abstractmethod
    async def load(self, session_id: str) -> Optional[Dict[str, Any]]:
        """Return the session data, or None if unknown or expired."""

    @abstractmethod
    async def save(self, session_id: str, data: Dict[str, Any], ttl_seconds: int) -> None:
        """Store the data and reset the inactivity expiry."""

    @abstractmethod
    async def delete(self, session_id: str) -> None:
        """Remove the session. Unknown ids are ignored."""


class MemorySessionStore(SessionStore):
    """
    In-memory session store with inactivity expiry.

    Entries are stored as JSON so only serializable data is accepted and
    callers never share mutable objects across requests. Expired entries
    are evicted lazily; when ``max_entries`` is reached the entry closest
    to expiry is dropped.

    Note: appropriate for a single portal instance. Multiple instances need
    a shared store behind the same interface.
    """

    def __init__(self, max_entries: int = 10000):
        self.max_entries = max_entries
        self._entries: Dict[str, Tuple[str, float]] = {}  # id -> (json, expires_at)

    def __len__(self) -> int:
        return len(self._entries)

    def _evict_expired(self) -> None:
        now = time.monotonic()
        expired = [sid for sid, (_, expires_at) in self._entries.items() if expires_at <= now]
        for sid in expired:
            del self._entries[sid]

    async def load(self, session_id: str) -> Optional[Dict[str, Any]]:
        self._evict_expired()
        entry = self._entries.get(session_id)
        if entry is None:
            return None
        return json.loads(entry[0])

    async def save(self, session_id: str, data: Dict[str, Any], ttl_seconds: int) -> None:
        self._evict_expired()
        if session_id not in self._entries and len(self._entries) >= self.max_entries:
            oldest = min(self._entries, key=lambda sid: self._entries[sid][1])
            del self._entries[oldest]
            logger.warning("Session store full, evicted oldest session")
        self._entries[session_id] = (json.dumps(data), time.monotonic() + ttl_seconds)

    async def delete(self, session_id: str) -> None:
        self._entries.pop(session_id, None)


# =============================================================================
# Session Object
# =============================================================================

class ServerSession(dict):
    """
    Session data for one browser, exposed as ``request.session``.

    Mutations are persisted by the middleware when the response starts.
    ``destroy()`` deletes the stored entry immediately and makes the
    middleware expire the cookie.
    """

    def __init__(
        self,
        data: Optional[Dict[str, Any]] = None,
        session_id: Optional[str] = None,
        store: Optional[SessionStore] = None,
    ):
        super().__init__(data or {})
        self.session_id = session_id
        self.destroyed = False
        self._store = store

    async def destroy(self) -> None:
        """
        Delete the session from the store and clear its data.

        Raises:
            SessionError: If the store fails to delete the entry
        """
        if self.session_id is not None and self._store is not None:
            try:
                await self._store.delete(self.session_id)
            except Exception as e:
                raise SessionError("Unable to end your session. Please try again.") from e
        self.clear()
        self.destroyed = True

    async def cycle_id(self) -> None:
        """Drop the current id; the data is saved under a new id."""
        if self.session_id is not None and self._store is not None:
            try:
                await self._store.delete(self.session_id)
            except Exception as e:
                raise SessionError("Unable to start your session. Please try again.") from e
        self.session_id = None


def get_session(request: Request) -> ServerSession:
    """
    Return the server-side session bound to the request.

    Raises:
        SessionError: If ServerSessionMiddleware is not installed
    """
    session = request.scope.get("session")
    if not isinstance(session, ServerSession):
        raise SessionError("Session support is not configured")
    return session


# =============================================================================
# Middleware
# =============================================================================

class ServerSessionMiddleware:
    """
    ASGI middleware loading and saving ``ServerSession`` objects.

    Args:
        app: Wrapped ASGI application
        store: Session store backend
        secret_key: Key used to sign the session id cookie
        session_cookie: Cookie name
        max_age: Inactivity expiry in seconds (cookie Max-Age and store TTL)
        same_site: SameSite attribute ("none" so the provider's cross-site
            form post carries the cookie)
        https_only: Add the Secure attribute
    """

    def __init__(
        self,
        app: ASGIApp,
        store: SessionStore,
        secret_key: str,
        session_cookie: str = "session",
        max_age: int = 60,
        path: str = "/",
        same_site: str = "none",
        https_only: bool = False,
    ) -> None:
        self.app = app
        self.store = store
        self.signer = itsdangerous.TimestampSigner(str(secret_key))
        self.session_cookie = session_cookie
        self.max_age = max_age
        self.path = path
        self.security_flags = "httponly; samesite=" + same_site
        if https_only:
            self.security_flags += "; secure"

    def _read_session_id(self, connection: HTTPConnection) -> Optional[str]:
        cookie = connection.cookies.get(self.session_cookie)
        if not cookie:
            return None
        try:
            return self.signer.unsign(cookie.encode("utf-8"), max_age=self.max_age).decode("utf-8")
        except BadSignature:
            logger.debug("Ignoring session cookie with invalid or expired signature")
            return None

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] not in ("http", "websocket"):
            await self.app(scope, receive, send)
            return

        connection = HTTPConnection(scope)
        session_id = self._read_session_id(connection)
        had_cookie = session_id is not None
        data = None

        if session_id is not None:
            data = await self.store.load(session_id)
            if data is None:
                session_id = None

        session = ServerSession(data, session_id=session_id, store=self.store)
        scope["session"] = session

        async def send_wrapper(message: Message) -> None:
            if message["type"] == "http.response.start":
                headers = MutableHeaders(scope=message)
                if session:
                    if session.session_id is None:
                        session.session_id = new_session_id()
                    try:
                        await self.store.save(session.session_id, dict(session), self.max_age)
                    except Exception as e:
                        logger.error("Failed to save session: %s", e)
                        raise SessionError("Unable to save your session. Please try again.") from e
                    signed = self.signer.sign(session.session_id.encode("utf-8")).decode("utf-8")
                    headers.append(
                        "Set-Cookie",
                        f"{self.session_cookie}={signed}; path={self.path}; "
                        f"Max-Age={self.max_age}; {self.security_flags}",
                    )
                elif had_cookie or session.destroyed:
                    if session.session_id is not None:
                        try:
                            await self.store.delete(session.session_id)
                        except Exception as e:
                            logger.error("Failed to delete session: %s", e)
                            raise SessionError("Unable to end your session. Please try again.") from e
                    headers.append(
                        "Set-Cookie",
                        f"{self.session_cookie}=null; path={self.path}; "
                        f"expires=Thu, 01 Jan 1970 00:00:00 GMT; {self.security_flags}",
                    )
            await send(message)

        await self.app(scope, receive, send_wrapper)
