from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from fedrita.auth.profile import ProfileResolver
from fedrita.auth.session_store import SessionEvent, SessionStore
from fedrita.auth.storage import COMPANY_KEY, TEMP_USER_KEY, KeyValueStore
from fedrita.domain.models import Company, Identity, Profile, Role, Salon, Session

logger = logging.getLogger("fedrita.auth")


@dataclass(frozen=True)
class AuthState:
    session: Optional[Session] = None
    identity: Optional[Identity] = None
    profile: Profile = field(default_factory=Profile.none)
    loading: bool = False
    company_hint: Optional[Company] = None  # cached company shown before resolution settles

    @property
    def role(self) -> Role:
        return self.profile.role

    @property
    def company(self) -> Optional[Company]:
        return self.profile.company

    @property
    def managed_salon(self) -> Optional[Salon]:
        return self.profile.managed_salon

    @property
    def access_token(self) -> Optional[str]:
        return self.session.access_token if self.session else None

    @property
    def needs_setup(self) -> bool:
        if self.identity is None:
            return False
        if self.identity.needs_company_setup is None:
            return self.company is None
        return self.identity.needs_company_setup

    @property
    def is_active_manager(self) -> bool:
        return self.role == Role.MANAGER and self.managed_salon is not None

    def to_dict(self) -> Dict[str, Any]:
        def dump(model):
            return model.model_dump(mode="json") if model is not None else None

        return {
            "identity": dump(self.identity),
            "role": self.role.value,
            "company": dump(self.company),
            "managed_salon": dump(self.managed_salon),
            "needs_setup": self.needs_setup,
            "loading": self.loading,
            "company_hint": dump(self.company_hint),
        }


StateListener = Callable[[AuthState], None]


class AuthContext:
    """
    Application-state handle combining session, identity and resolved profile.

    Lifecycle: start() restores the session and subscribes to the session store,
    close() unsubscribes. Each profile resolution captures a generation number and
    is applied only if no newer resolution or logout happened in the meantime.
    """

    def __init__(self, sessions: SessionStore, resolver: ProfileResolver, storage: KeyValueStore):
        self.sessions = sessions
        self.resolver = resolver
        self.storage = storage
        self._state = AuthState(loading=True)
        self._generation = 0
        self._listeners: List[StateListener] = []
        self._unsubscribe_session: Optional[Callable[[], None]] = None

    @property
    def state(self) -> AuthState:
        return self._state

    @property
    def generation(self) -> int:
        return self._generation

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _publish(self, state: AuthState) -> None:
        self._state = state
        for listener in list(self._listeners):
            listener(state)

    def _set_loading(self, loading: bool) -> None:
        if self._state.loading != loading:
            self._publish(replace(self._state, loading=loading))

    def _cached_company(self) -> Optional[Company]:
        raw = self.storage.get(COMPANY_KEY)
        if not raw:
            return None
        try:
            return Company.model_validate(raw)
        except ValidationError:
            self.storage.remove(COMPANY_KEY)
            return None

    def _temp_identity(self) -> Optional[Identity]:
        raw = self.storage.get(TEMP_USER_KEY)
        if not raw:
            return None
        try:
            return Identity.model_validate(raw)
        except ValidationError:
            self.storage.remove(TEMP_USER_KEY)
            return None

    async def start(self) -> AuthState:
        self._publish(AuthState(loading=True, company_hint=self._cached_company()))
        if self._unsubscribe_session is None:
            self._unsubscribe_session = self.sessions.on_session_change(self._on_session_change)

        session = await self.sessions.get_current_session()
        if session is not None:
            await self._resolve(session, session.identity)
        else:
            self._publish(replace(self._state, identity=self._temp_identity(), loading=False))
        return self._state

    def close(self) -> None:
        if self._unsubscribe_session is not None:
            self._unsubscribe_session()
            self._unsubscribe_session = None
        self._listeners.clear()

    async def _on_session_change(self, event: SessionEvent, session: Optional[Session]) -> None:
        logger.debug("Session change", extra={"event": event.value})
        if event == SessionEvent.SIGNED_OUT or session is None:
            self._clear()
            return
        self._publish(replace(self._state, session=session, identity=session.identity, loading=True))
        await self._resolve(session, session.identity)

    def _next_generation(self) -> int:
        self._generation += 1
        return self._generation

    async def _resolve(
        self, session: Optional[Session], identity: Identity, generation: Optional[int] = None
    ) -> bool:
        if generation is None:
            generation = self._next_generation()
        profile = await self.resolver.resolve(
            identity.id, session.access_token if session else None, mirror=False
        )
        if generation != self._generation:
            logger.info(
                "Discarding stale profile resolution",
                extra={"identity_id": identity.id, "generation": generation, "current": self._generation},
            )
            return False

        self.resolver.mirror(profile.company)
        if profile.company is not None and identity.needs_company_setup:
            identity = identity.model_copy(update={"needs_company_setup": False})
            self.storage.remove(TEMP_USER_KEY)
            if session is not None:
                session = replace(session, identity=identity)

        self._publish(
            AuthState(
                session=session,
                identity=identity,
                profile=profile,
                loading=False,
                company_hint=profile.company,
            )
        )
        return True

    def _clear(self) -> None:
        self._generation += 1
        self.storage.remove(COMPANY_KEY)
        self._publish(AuthState(loading=False))

    async def login(self, email: str, password: str) -> Identity:
        self._set_loading(True)
        try:
            return await self.sessions.login(email, password)
        finally:
            self._set_loading(False)

    async def register(self, email: str, password: str) -> Identity:
        self._set_loading(True)
        try:
            identity = await self.sessions.register(email, password)
            if self.sessions.current is None:
                # awaiting email confirmation: known identity, no session yet
                self._generation += 1
                self._publish(AuthState(identity=identity, loading=False))
            return identity
        finally:
            self._set_loading(False)

    async def logout(self) -> None:
        self._generation += 1
        self._set_loading(True)
        try:
            await self.sessions.logout()
        finally:
            self.storage.remove(TEMP_USER_KEY)
            self.storage.remove(COMPANY_KEY)
            self._publish(AuthState(loading=False))

    async def refresh_profile(self, identity_id: str) -> Profile:
        """
        Re-run profile resolution for identity_id, e.g. after creating a company.
        Returns the profile in effect afterwards; a result made stale by a logout
        or a newer resolution is dropped.
        """
        current = self._state.identity
        identity = current if current is not None and current.id == identity_id else Identity(id=identity_id)
        self._set_loading(True)
        generation = self._next_generation()
        try:
            await self._resolve(self._state.session, identity, generation)
        finally:
            # a newer resolution or a logout now owns the loading flag
            if generation == self._generation:
                self._set_loading(False)
        return self._state.profile
