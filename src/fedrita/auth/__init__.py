from fedrita.auth.context import AuthContext, AuthState
from fedrita.auth.guards import ROUTES, DecisionKind, Guard, GuardDecision, PageRoute, decide, evaluate, route_for
from fedrita.auth.profile import ProfileResolver
from fedrita.auth.session_store import SessionEvent, SessionStore
from fedrita.auth.storage import (
    COMPANY_KEY,
    SESSION_KEY,
    TEMP_USER_KEY,
    JsonFileStore,
    KeyValueStore,
    MemoryStore,
)


def build_auth_context(backend, storage: KeyValueStore) -> AuthContext:
    return AuthContext(
        sessions=SessionStore(backend, storage),
        resolver=ProfileResolver(backend, storage),
        storage=storage,
    )


__all__ = [
    "AuthContext",
    "AuthState",
    "COMPANY_KEY",
    "DecisionKind",
    "Guard",
    "GuardDecision",
    "JsonFileStore",
    "KeyValueStore",
    "MemoryStore",
    "PageRoute",
    "ProfileResolver",
    "ROUTES",
    "SESSION_KEY",
    "SessionEvent",
    "SessionStore",
    "TEMP_USER_KEY",
    "build_auth_context",
    "decide",
    "evaluate",
    "route_for",
]
