import uuid

import httpx
import pytest

from app.core import settings as settings_module
from app.db.base import Base
from app.db.models import LifeSession
from app.db.session import get_engine, init_engine, session_scope
from app.main import app


@pytest.fixture(autouse=True)
def _use_test_db(tmp_path, monkeypatch):
    db_path = tmp_path / "test.db"
    database_url = f"sqlite+pysqlite:///{db_path}"

    monkeypatch.setattr(settings_module.settings, "database_url", database_url)
    monkeypatch.setattr(settings_module.settings, "db_auto_create", True)

    init_engine(database_url)
    Base.metadata.create_all(bind=get_engine())

    yield


@pytest.fixture(autouse=True)
def _offline_collaborators(monkeypatch):
    monkeypatch.setattr(settings_module.settings, "enable_external_lookups", False)
    monkeypatch.setattr(settings_module.settings, "gemini_api_key", None)
    monkeypatch.setattr(settings_module.settings, "google_cloud_project", None)
    monkeypatch.setattr(settings_module.settings, "unsplash_access_key", None)
    monkeypatch.setattr(settings_module.settings, "log_file", None)


@pytest.fixture()
async def client():
    async with app.router.lifespan_context(app):
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
            yield client


@pytest.fixture()
def make_session():
    """Insert a bare LifeSession row and return its id."""

    def _make(**fields) -> uuid.UUID:
        session_id = uuid.uuid4()
        with session_scope() as db:
            db.add(LifeSession(session_id=session_id, title=fields.pop("title", "What if"), **fields))
        return session_id

    return _make


@pytest.fixture()
def anyio_backend():
    return "asyncio"
