from __future__ import annotations

import logging
from enum import Enum
from typing import Awaitable, Callable, List, Optional

from fedrita.auth.storage import SESSION_KEY, TEMP_USER_KEY, KeyValueStore
from fedrita.backend.base import Backend
from fedrita.domain.models import Identity, Session
from fedrita.exceptions import AuthError, DataLookupError

logger = logging.getLogger("fedrita.auth")


class SessionEvent(str, Enum):
    SIGNED_IN = "SIGNED_IN"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    SIGNED_OUT = "SIGNED_OUT"


SessionListener = Callable[[SessionEvent, Optional[Session]], Awaitable[None]]


class SessionStore:
    """
    Owns the credential session of one browser session.

    The session snapshot lives in the key-value store under SESSION_KEY so it
    survives restarts. Listeners registered with on_session_change are awaited
    in registration order after every login, refresh and logout.
    """

    def __init__(self, backend: Backend, storage: KeyValueStore):
        self.backend = backend
        self.storage = storage
        self._current: Optional[Session] = None
        self._listeners: List[SessionListener] = []

    @property
    def current(self) -> Optional[Session]:
        return self._current

    def on_session_change(self, listener: SessionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def _emit(self, event: SessionEvent, session: Optional[Session]) -> None:
        for listener in list(self._listeners):
            await listener(event, session)

    def _persist(self, session: Optional[Session]) -> None:
        self._current = session
        if session is None:
            self.storage.remove(SESSION_KEY)
        else:
            self.storage.set(SESSION_KEY, session.to_dict())

    def _snapshot(self) -> Optional[Session]:
        raw = self.storage.get(SESSION_KEY)
        if not raw:
            return None
        try:
            return Session.from_dict(raw)
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("Dropping malformed session snapshot", extra={"error": str(exc)})
            self.storage.remove(SESSION_KEY)
            return None

    async def get_current_session(self) -> Optional[Session]:
        """
        Restore the persisted session, validating it against the backend.
        Expired sessions are refreshed when a refresh token is available.
        Rejected tokens clear the snapshot; an unreachable backend yields None
        and keeps the snapshot for the next attempt. No events are emitted.
        """
        snapshot = self._snapshot()
        if snapshot is None:
            self._current = None
            return None

        try:
            if snapshot.is_expired():
                if not snapshot.refresh_token:
                    self._persist(None)
                    return None
                session = await self.backend.refresh_session(snapshot.refresh_token)
            else:
                identity = await self.backend.get_user(snapshot.access_token)
                session = Session(
                    access_token=snapshot.access_token,
                    refresh_token=snapshot.refresh_token,
                    expires_at=snapshot.expires_at,
                    identity=identity,
                )
        except AuthError as exc:
            logger.info("Persisted session rejected", extra={"error": str(exc)})
            self._persist(None)
            return None
        except DataLookupError as exc:
            logger.warning("Could not validate persisted session", extra={"error": str(exc)})
            self._current = None
            return None

        self._persist(session)
        return session

    async def login(self, email: str, password: str) -> Identity:
        session = await self.backend.sign_in_with_password(email.strip(), password)
        self._persist(session)
        logger.info("Signed in", extra={"identity_id": session.identity.id})
        await self._emit(SessionEvent.SIGNED_IN, session)
        return session.identity

    async def register(self, email: str, password: str) -> Identity:
        """
        Create the identity. The returned identity is flagged as needing company
        setup and also kept under TEMP_USER_KEY, so it is still known while the
        backend waits for email confirmation and issues no session.
        """
        result = await self.backend.sign_up(email.strip(), password)
        identity = result.identity.model_copy(update={"needs_company_setup": True})
        self.storage.set(TEMP_USER_KEY, identity.model_dump(mode="json"))
        logger.info(
            "Registered identity",
            extra={"identity_id": identity.id, "confirmed": result.session is not None},
        )
        if result.session is not None:
            session = Session(
                access_token=result.session.access_token,
                refresh_token=result.session.refresh_token,
                expires_at=result.session.expires_at,
                identity=identity,
            )
            self._persist(session)
            await self._emit(SessionEvent.SIGNED_IN, session)
        return identity

    async def logout(self) -> None:
        session = self._current or self._snapshot()
        if session is not None:
            try:
                await self.backend.sign_out(session.access_token)
            except (AuthError, DataLookupError) as exc:
                logger.warning("Backend sign-out failed; dropping local session anyway", extra={"error": str(exc)})
        self._persist(None)
        await self._emit(SessionEvent.SIGNED_OUT, None)

    async def refresh(self) -> Session:
        session = self._current or self._snapshot()
        if session is None or not session.refresh_token:
            raise AuthError("No session to refresh")
        try:
            fresh = await self.backend.refresh_session(session.refresh_token)
        except AuthError:
            self._persist(None)
            await self._emit(SessionEvent.SIGNED_OUT, None)
            raise
        if session.identity.needs_company_setup is not None:
            fresh.identity = fresh.identity.model_copy(
                update={"needs_company_setup": session.identity.needs_company_setup}
            )
        self._persist(fresh)
        await self._emit(SessionEvent.TOKEN_REFRESHED, fresh)
        return fresh
