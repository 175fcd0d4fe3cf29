"""Shared test fixtures for API and module tests."""
import json

import pytest
from unittest.mock import MagicMock
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from liquidapp.api.routes import get_vision_client
from liquidapp.database import get_db, get_session_factory
from liquidapp.main import app
from liquidapp.models import Base
from liquidapp.modules.llm_client import Completion
from liquidapp.modules.storage import LocalObjectStorage, get_storage


VALID_ANALYSIS = {
    "antifraude": {
        "score": 0.1,
        "nivel": "bajo",
        "indicadores": [],
        "justificacion": "Daño consistente con el relato",
    },
    "triage": {
        "severidad": "moderado",
        "partes_danadas": ["parachoque_delantero", "capot"],
        "descripcion": "Abolladura frontal",
    },
    "costos": {
        "min": 100,
        "max": 200,
        "desglose": [{"parte": "parachoque_delantero", "costo_min": 100, "costo_max": 200}],
    },
}


class FakeVision:
    """Stand-in for VisionAnalysisClient returning a canned answer."""

    def __init__(self, content=None, model="test-vision-model", error=None, configured=True):
        self.content = json.dumps(VALID_ANALYSIS) if content is None else content
        self.model = model
        self.error = error
        self.configured = configured
        self.calls = []

    def analyze_image(self, image_url):
        self.calls.append(image_url)
        if self.error is not None:
            raise self.error
        return Completion(content=self.content, model=self.model, total_tokens=321)


@pytest.fixture(autouse=True)
def reset_rate_limits():
    app.state.limiter.reset()
    yield


@pytest.fixture
def mock_db():
    """MagicMock database session: returns None for all queries by default."""
    session = MagicMock()
    session.query.return_value.filter.return_value.first.return_value = None
    session.query.return_value.filter.return_value.all.return_value = []
    return session


@pytest.fixture
def fake_vision():
    return FakeVision()


@pytest.fixture
def api_client(mock_db, fake_vision):
    """TestClient with DB dependency overridden to use a MagicMock session."""
    def override_get_db():
        yield mock_db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_vision_client] = lambda: fake_vision
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def db():
    """In-memory SQLite database with all tables, shared across threads."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragmas(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(bind=engine)
    Session = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    session = Session()
    yield session
    session.close()
    engine.dispose()


@pytest.fixture
def storage(tmp_path):
    return LocalObjectStorage(tmp_path / "objects", "test-secret", "http://testserver")


@pytest.fixture
def sqlite_client(db, storage, fake_vision):
    """TestClient backed by the in-memory SQLite session and a temp storage root.

    Background work reuses the same session (closing it only detaches its
    objects), so queued analyses are visible to the test afterwards.
    """
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: (lambda: db)
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_vision_client] = lambda: fake_vision
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def claim(db):
    from liquidapp.models.claim import Claim

    c = Claim(patente="ABCD12", nombre_asegurado="Juan Pérez", marca="Toyota", modelo="Yaris", anio=2020)
    db.add(c)
    db.commit()
    return c


@pytest.fixture
def evidence(db, claim, storage):
    """One evidence row whose object exists in storage."""
    from liquidapp.models.evidence import Evidence

    key = f"{claim.id}/1700000000000-abcd1234.jpg"
    storage.put(key, b"\xff\xd8\xff fake jpeg")
    ev = Evidence(siniestro_id=claim.id, storage_path=key, descripcion="front", orden=0)
    db.add(ev)
    db.commit()
    return ev
