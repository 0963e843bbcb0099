"""
Pytest Configuration and Test Fixtures for the Tubely Backend

This module provides shared test fixtures including:
- Test settings pointing staging at a per-test temporary directory
- Bearer tokens signed with the test secret via python-jose
- An in-memory video repository with optimistic version checks
- A mocked S3 storage client that records what was uploaded
- Fake ffmpeg/ffprobe implementations that never spawn processes
- A FastAPI TestClient with all infrastructure dependencies overridden

No test needs MongoDB, S3, ffmpeg or network access.
"""

import shutil

from collections.abc import Generator
from datetime import UTC, datetime, timedelta
from io import BytesIO
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, Mock
from uuid import UUID, uuid4

import pytest

from fastapi.testclient import TestClient
from jose import jwt
from starlette.datastructures import Headers, UploadFile

from tubely.config import Settings, get_settings
from tubely.core.errors import Conflict, NotFound
from tubely.core.storage import StorageClient, get_storage_client
from tubely.main import app
from tubely.models.video import Video
from tubely.services.media_tools import (
    ContainerIntrospector,
    FastStartTranscoder,
    VideoGeometry,
    fast_start_output_path,
    get_introspector,
    get_transcoder,
)
from tubely.services.video_repository import get_video_repository


TEST_JWT_SECRET = "test-secret-key-for-jwt-signing-minimum-32-chars"
TEST_DELIVERY_DOMAIN = "cdn.tubely.test"
TEST_BUCKET = "test-bucket"

# Minimal ISO base media header: an ``ftyp`` box with the isom brand
MP4_HEADER = b"\x00\x00\x00\x20ftypisom\x00\x00\x02\x00isomiso2avc1mp41"
MP4_BYTES = MP4_HEADER + b"\x00\x00\x00\x08free" + b"\x00" * 2048

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


# ==============================================================================
# Settings Fixtures
# ==============================================================================


@pytest.fixture
def staging_root(tmp_path: Path) -> Path:
    """Base directory for staging; tests assert it is empty after each run."""
    root = tmp_path / "staging"
    root.mkdir()
    return root


@pytest.fixture
def test_settings(staging_root: Path) -> Settings:
    """Settings instance with test-specific configuration values."""
    return Settings(
        app_env="testing",
        app_name="Tubely-Test",
        debug=True,
        jwt_secret=TEST_JWT_SECRET,
        jwt_algorithm="HS256",
        mongodb_uri="mongodb://localhost:27017",
        mongodb_db_name="test_tubely",
        s3_endpoint_url="http://localhost:9000",
        s3_access_key_id="test-access-key",
        s3_secret_access_key="test-secret-key",
        s3_bucket_name=TEST_BUCKET,
        delivery_domain=TEST_DELIVERY_DOMAIN,
        upload_temp_dir=str(staging_root),
        disconnect_poll_interval_seconds=0.01,
    )


# ==============================================================================
# Identity Fixtures
# ==============================================================================


@pytest.fixture
def owner_id() -> UUID:
    return uuid4()


@pytest.fixture
def other_user_id() -> UUID:
    return uuid4()


def make_token(
    subject: Any,
    secret: str = TEST_JWT_SECRET,
    algorithm: str = "HS256",
    expires_in: timedelta | None = timedelta(hours=1),
    **claims: Any,
) -> str:
    """Encode a bearer token for tests."""
    now = datetime.now(UTC)
    payload: dict[str, Any] = {"iat": now, **claims}
    if subject is not None:
        payload["sub"] = str(subject)
    if expires_in is not None:
        payload["exp"] = now + expires_in
    return jwt.encode(payload, secret, algorithm=algorithm)


@pytest.fixture
def auth_headers(owner_id: UUID) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(owner_id)}"}


@pytest.fixture
def other_auth_headers(other_user_id: UUID) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(other_user_id)}"}


# ==============================================================================
# In-memory Repository
# ==============================================================================


class InMemoryVideoRepository:
    """Dict-backed stand-in for VideoRepository with the same semantics."""

    def __init__(self) -> None:
        self.videos: dict[UUID, Video] = {}
        self.update_calls = 0

    def add(self, video: Video) -> Video:
        self.videos[video.id] = video
        return video

    async def get_video(self, video_id: UUID) -> Video:
        if video_id not in self.videos:
            raise NotFound(f"Video {video_id} not found")
        return self.videos[video_id].model_copy()

    async def create_video(self, video: Video) -> Video:
        self.videos[video.id] = video
        return video

    async def list_videos(self, user_id: UUID) -> list[Video]:
        owned = [video for video in self.videos.values() if video.user_id == user_id]
        return sorted(owned, key=lambda video: video.created_at, reverse=True)

    async def update_video(self, video: Video, expected_version: int) -> Video:
        self.update_calls += 1
        stored = self.videos.get(video.id)
        if stored is None:
            raise NotFound(f"Video {video.id} not found")
        if stored.version != expected_version:
            raise Conflict()
        updated = video.model_copy(
            update={"version": stored.version + 1, "updated_at": datetime.now(UTC)}
        )
        self.videos[video.id] = updated
        return updated

    async def delete_video(self, video_id: UUID) -> None:
        if self.videos.pop(video_id, None) is None:
            raise NotFound(f"Video {video_id} not found")


@pytest.fixture
def repository() -> InMemoryVideoRepository:
    return InMemoryVideoRepository()


@pytest.fixture
def owned_video(repository: InMemoryVideoRepository, owner_id: UUID) -> Video:
    return repository.add(Video(user_id=owner_id, title="Boots on the trail"))


# ==============================================================================
# S3/Storage Fixtures
# ==============================================================================


@pytest.fixture
def mock_storage() -> Mock:
    """
    Mocked StorageClient that records uploaded bytes by key.

    ``put_object`` reads the file it is given, so a test can check the
    processed file existed at upload time and what it contained.
    """
    mock = Mock(spec=StorageClient)
    mock.bucket_name = TEST_BUCKET
    mock.uploaded = {}

    async def _put_object(bucket: str, key: str, file_path: Any, content_type: str) -> None:
        mock.uploaded[key] = Path(file_path).read_bytes()

    mock.put_object = AsyncMock(side_effect=_put_object)
    mock.delete_object = AsyncMock(return_value=None)
    return mock


# ==============================================================================
# Media Tool Fakes
# ==============================================================================


class FakeTranscoder(FastStartTranscoder):
    """Copies the input to the fast-start path instead of running ffmpeg."""

    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.calls: list[Path] = []

    async def process(self, input_path: Path) -> Path:
        self.calls.append(input_path)
        output_path = fast_start_output_path(input_path)
        # Partial output exists before a failure, like a real tool run
        output_path.write_bytes(b"partial")
        if self.error is not None:
            raise self.error
        shutil.copyfile(input_path, output_path)
        return output_path


class FakeIntrospector(ContainerIntrospector):
    """Returns fixed geometry instead of running ffprobe."""

    def __init__(self, width: int = 1920, height: int = 1080, error: Exception | None = None):
        self.geometry = VideoGeometry(width=width, height=height)
        self.error = error
        self.calls: list[Path] = []

    async def probe(self, path: Path) -> VideoGeometry:
        self.calls.append(path)
        if self.error is not None:
            raise self.error
        return self.geometry


@pytest.fixture
def transcoder() -> FakeTranscoder:
    return FakeTranscoder()


@pytest.fixture
def introspector() -> FakeIntrospector:
    return FakeIntrospector()


# ==============================================================================
# Upload Helpers
# ==============================================================================


def make_upload(
    data: bytes = MP4_BYTES,
    content_type: str | None = "video/mp4",
    filename: str = "clip.mp4",
) -> UploadFile:
    """Build the multipart part object the form parser would produce."""
    headers = Headers({"content-type": content_type}) if content_type is not None else Headers()
    return UploadFile(file=BytesIO(data), filename=filename, headers=headers)


# ==============================================================================
# FastAPI Test Client Fixtures
# ==============================================================================


@pytest.fixture
def test_client(
    test_settings: Settings,
    repository: InMemoryVideoRepository,
    mock_storage: Mock,
    transcoder: FakeTranscoder,
    introspector: FakeIntrospector,
) -> Generator[TestClient, None, None]:
    """
    TestClient with settings, repository, storage and media tools overridden.

    Lifespan is not entered, so no database connection is attempted.
    """
    app.dependency_overrides[get_settings] = lambda: test_settings
    app.dependency_overrides[get_video_repository] = lambda: repository
    app.dependency_overrides[get_storage_client] = lambda: mock_storage
    app.dependency_overrides[get_transcoder] = lambda: transcoder
    app.dependency_overrides[get_introspector] = lambda: introspector

    yield TestClient(app)

    app.dependency_overrides.clear()
