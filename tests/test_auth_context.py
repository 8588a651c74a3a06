import asyncio

import pytest

from fedrita.auth import (
    COMPANY_KEY,
    SESSION_KEY,
    TEMP_USER_KEY,
    AuthContext,
    AuthState,
    MemoryStore,
    ProfileResolver,
    SessionStore,
    build_auth_context,
)
from fedrita.backend import LocalBackend
from fedrita.domain.models import Identity, Role

from helpers import admin_state, make_company, make_salon, make_user


class GatedResolver(ProfileResolver):
    """Blocks inside resolve() while a gate is set, to interleave a logout."""

    def __init__(self, backend, storage):
        super().__init__(backend, storage)
        self.gate = None
        self.waiting = False

    async def resolve(self, identity_id, access_token=None, *, mirror=True):
        profile = await super().resolve(identity_id, access_token, mirror=mirror)
        if self.gate is not None:
            self.waiting = True
            await self.gate.wait()
        return profile


class QueuedResolver(ProfileResolver):
    """While queueing, each resolve() waits on its own gate so tests pick the finishing order."""

    def __init__(self, backend, storage):
        super().__init__(backend, storage)
        self.queueing = False
        self.gates = []

    async def resolve(self, identity_id, access_token=None, *, mirror=True):
        profile = await super().resolve(identity_id, access_token, mirror=mirror)
        if self.queueing:
            gate = asyncio.Event()
            self.gates.append(gate)
            await gate.wait()
        return profile


@pytest.mark.asyncio
async def test_start_without_session(auth_context):
    state = await auth_context.start()
    assert state == AuthState(loading=False)
    assert state.role == Role.NONE


@pytest.mark.asyncio
async def test_start_restores_temporary_identity(backend):
    storage = MemoryStore({TEMP_USER_KEY: {"id": "u-temp", "email": "t@example.com", "needs_company_setup": True}})
    state = await build_auth_context(backend, storage).start()

    assert state.identity.id == "u-temp"
    assert state.needs_setup
    assert state.loading is False


@pytest.mark.asyncio
async def test_start_restores_admin_session(backend, storage):
    owner = await make_user(backend, "owner@example.com")
    company = await make_company(backend, owner.id)
    await SessionStore(backend, storage).login("owner@example.com", "secret123")

    state = await build_auth_context(backend, storage).start()

    assert state.role == Role.ADMIN
    assert state.company.id == company["id"]
    assert state.company_hint.id == company["id"]
    assert state.access_token is not None


@pytest.mark.asyncio
async def test_login_resolves_admin(backend, auth_context, storage):
    owner = await make_user(backend, "owner@example.com")
    await make_company(backend, owner.id)
    await auth_context.start()

    await auth_context.login("owner@example.com", "secret123")

    state = auth_context.state
    assert state.identity.id == owner.id
    assert state.role == Role.ADMIN
    assert not state.needs_setup
    assert not state.loading
    assert storage.get(COMPANY_KEY)["owner_id"] == owner.id


@pytest.mark.asyncio
async def test_login_resolves_manager(backend, auth_context):
    owner = await make_user(backend, "owner@example.com")
    manager = await make_user(backend, "manager@example.com")
    company = await make_company(backend, owner.id)
    salon = await make_salon(backend, company["id"], owner.id, manager_id=manager.id)
    await auth_context.start()

    await auth_context.login("manager@example.com", "secret123")

    assert auth_context.state.is_active_manager
    assert auth_context.state.managed_salon.id == salon["id"]
    assert auth_context.state.company.id == company["id"]


@pytest.mark.asyncio
async def test_register_then_company_creation(backend, auth_context, storage):
    await auth_context.start()
    identity = await auth_context.register("new@example.com", "secret123")

    state = auth_context.state
    assert state.identity.id == identity.id
    assert state.needs_setup
    assert state.company is None
    assert state.role == Role.NONE

    await make_company(backend, identity.id, name="Nuevo")
    profile = await auth_context.refresh_profile(identity.id)

    state = auth_context.state
    assert profile.role == Role.ADMIN
    assert state.company.name == "Nuevo"
    assert state.needs_setup is False
    assert state.session.identity.needs_company_setup is False
    assert storage.get(TEMP_USER_KEY) is None
    assert storage.get(COMPANY_KEY)["name"] == "Nuevo"


@pytest.mark.asyncio
async def test_register_without_confirmation_keeps_identity(tmp_path):
    backend = LocalBackend(tmp_path / "db.sqlite", tmp_path / "files", autoconfirm=False)
    context = build_auth_context(backend, MemoryStore())
    await context.start()

    identity = await context.register("pending@example.com", "secret123")

    assert context.state.session is None
    assert context.state.identity.id == identity.id
    assert context.state.needs_setup


@pytest.mark.asyncio
async def test_logout_resets_state_and_storage(backend, auth_context, storage):
    owner = await make_user(backend, "owner@example.com")
    await make_company(backend, owner.id)
    await auth_context.start()
    await auth_context.login("owner@example.com", "secret123")

    await auth_context.logout()

    assert auth_context.state == AuthState(loading=False)
    for key in (SESSION_KEY, TEMP_USER_KEY, COMPANY_KEY):
        assert storage.get(key) is None


@pytest.mark.asyncio
async def test_stale_resolution_after_logout_is_discarded(backend, storage):
    owner = await make_user(backend, "owner@example.com")
    await make_company(backend, owner.id)
    resolver = GatedResolver(backend, storage)
    context = AuthContext(sessions=SessionStore(backend, storage), resolver=resolver, storage=storage)
    await context.start()
    await context.login("owner@example.com", "secret123")
    generation = context.generation

    resolver.gate = asyncio.Event()
    pending = asyncio.create_task(context.refresh_profile(owner.id))
    while not resolver.waiting:
        await asyncio.sleep(0)

    await context.logout()
    resolver.gate.set()
    profile = await pending

    assert context.generation > generation
    assert profile.role == Role.NONE
    assert context.state.identity is None
    assert storage.get(COMPANY_KEY) is None


@pytest.mark.asyncio
async def test_older_refresh_does_not_end_loading_of_newer_one(backend, storage):
    owner = await make_user(backend, "owner@example.com")
    await make_company(backend, owner.id)
    resolver = QueuedResolver(backend, storage)
    context = AuthContext(sessions=SessionStore(backend, storage), resolver=resolver, storage=storage)
    await context.start()
    await context.login("owner@example.com", "secret123")

    resolver.queueing = True
    older = asyncio.create_task(context.refresh_profile(owner.id))
    while len(resolver.gates) < 1:
        await asyncio.sleep(0)
    newer = asyncio.create_task(context.refresh_profile(owner.id))
    while len(resolver.gates) < 2:
        await asyncio.sleep(0)

    resolver.gates[0].set()
    await older
    assert context.state.loading is True

    resolver.gates[1].set()
    profile = await newer
    assert context.state.loading is False
    assert profile.role == Role.ADMIN
    assert context.state.role == Role.ADMIN

@pytest.mark.asyncio
async def test_subscribers_see_loading_then_resolved(backend, auth_context):
    owner = await make_user(backend, "owner@example.com")
    await make_company(backend, owner.id)
    await auth_context.start()
    seen = []
    unsubscribe = auth_context.subscribe(seen.append)

    await auth_context.login("owner@example.com", "secret123")

    assert any(state.loading for state in seen)
    assert seen[-1].role == Role.ADMIN
    assert seen[-1].loading is False

    unsubscribe()
    count = len(seen)
    await auth_context.logout()
    assert len(seen) == count


@pytest.mark.asyncio
async def test_close_detaches_from_session_store(backend, auth_context):
    await make_user(backend, "owner@example.com")
    await auth_context.start()
    auth_context.close()

    await auth_context.sessions.login("owner@example.com", "secret123")

    assert auth_context.state.identity is None


def test_state_to_dict_for_admin():
    state = admin_state(Identity(id="u1", email="a@example.com"), {"id": "c1", "name": "Glow", "owner_id": "u1"})
    data = state.to_dict()

    assert data["role"] == "admin"
    assert data["company"]["name"] == "Glow"
    assert data["managed_salon"] is None
    assert data["needs_setup"] is False
