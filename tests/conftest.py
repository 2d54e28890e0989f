"""
Test configuration and fixtures
"""

import io

import pytest
from fastapi.testclient import TestClient

from clipshare import models, schemas
from clipshare.config import Settings
from clipshare.database import create_database_engine, create_session_factory
from clipshare.main import create_app
from clipshare.service import ClipService
from clipshare.storage import BlobStore

OPERATOR_TOKEN = "operator-secret"
PRIVILEGED_HEADERS = {"X-User-Type": OPERATOR_TOKEN}


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings pointing at a throwaway database and storage root"""
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'clips.db'}",
        storage_root=str(tmp_path / "uploads"),
        environment="test",
        privileged_token=OPERATOR_TOKEN,
        privileged_origins=["https://clips.example.com"],
        stream_chunk_size=4,
    )


@pytest.fixture
def engine(settings):
    engine = create_database_engine(settings)
    models.Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def store(settings) -> BlobStore:
    return BlobStore(settings.storage_root, chunk_size=settings.stream_chunk_size)


@pytest.fixture
def service(db, store, settings) -> ClipService:
    return ClipService(db, store, settings)


@pytest.fixture
def video_bytes() -> bytes:
    return bytes(range(256)) * 4


@pytest.fixture
def upload_clip(service, video_bytes):
    """Upload helper returning the created clip"""
    def _upload(title="Clutch", game="Valorant", filename="clutch.mp4",
                content_type="video/mp4", **extra):
        metadata = schemas.ClipCreate(title=title, game=game, **extra)
        return service.upload(metadata, io.BytesIO(video_bytes), filename, content_type)
    return _upload


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def post_clip(client, video_bytes):
    """Upload through the HTTP API and return the response"""
    def _post(title="Clutch", game="Valorant", filename="clutch.mp4",
              content_type="video/mp4", **fields):
        data = {"title": title, "game": game}
        data.update(fields)
        files = {"file": (filename, io.BytesIO(video_bytes), content_type)}
        return client.post("/clips", data=data, files=files)
    return _post
