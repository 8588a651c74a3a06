import pytest
from fastapi.testclient import TestClient

from fedrita.auth import AuthContext, MemoryStore, ProfileResolver, SessionStore
from fedrita.backend import LocalBackend
from fedrita.config import settings


@pytest.fixture
def backend(tmp_path):
    return LocalBackend(db_path=tmp_path / "fedrita.db", storage_dir=tmp_path / "storage")


@pytest.fixture
def storage():
    return MemoryStore()


@pytest.fixture
def auth_context(backend, storage):
    return AuthContext(
        sessions=SessionStore(backend, storage),
        resolver=ProfileResolver(backend, storage),
        storage=storage,
    )


@pytest.fixture
def api_client(tmp_path, monkeypatch):
    """
    App wired to a LocalBackend under tmp_path, with in-memory per-browser state.
    Redirects are not followed so guard decisions can be asserted.
    """
    from fedrita.api.main import create_app

    monkeypatch.setattr(settings, "paths", settings.paths.model_copy())
    monkeypatch.setattr(settings, "state", settings.state.model_copy(update={"backend": "memory"}))
    app = create_app(data_dir=tmp_path)
    with TestClient(app, follow_redirects=False) as client:
        yield client
