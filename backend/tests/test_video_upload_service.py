"""
VideoUploadService Test Suite

Exercises the upload pipeline end to end with in-process fakes for the
repository, object store and media tools:

- TestSuccessfulUpload: key layout, delivery URL, stored bytes, record update
- TestRejections: ownership, missing records, media types and size limits
- TestProcessingFailures: tool and storage failures leave no trace
- TestConcurrentModification: a lost record update discards the stored object
- TestCancellation: a cancelled upload removes its staged files

Every test asserts on the staging root where it matters: no staged file may
outlive the pipeline, whatever the outcome.
"""

import asyncio
import re

from pathlib import Path
from unittest.mock import Mock, patch
from uuid import UUID, uuid4

import pytest

from tests.conftest import (
    MP4_BYTES,
    PNG_BYTES,
    FakeIntrospector,
    FakeTranscoder,
    InMemoryVideoRepository,
    make_upload,
)
from tubely.config import Settings
from tubely.core.auth import CallerIdentity
from tubely.core.errors import (
    BadRequest,
    Conflict,
    Forbidden,
    NoStreamsFound,
    NotFound,
    ProcessingFailed,
    StorageUnavailable,
    UnsupportedMediaType,
)
from tubely.models.video import Video
from tubely.services.video_upload_service import VideoUploadService


URL_RE = re.compile(r"^https://cdn\.tubely\.test/(landscape|portrait|other)/[A-Za-z0-9_-]{43}\.mp4$")


def build_service(
    repository: InMemoryVideoRepository,
    storage: Mock,
    settings: Settings,
    transcoder: FakeTranscoder | None = None,
    introspector: FakeIntrospector | None = None,
) -> VideoUploadService:
    return VideoUploadService(
        repository=repository,
        storage=storage,
        transcoder=transcoder or FakeTranscoder(),
        introspector=introspector or FakeIntrospector(),
        settings=settings,
    )


@pytest.fixture
def service(
    repository: InMemoryVideoRepository,
    mock_storage: Mock,
    test_settings: Settings,
    transcoder: FakeTranscoder,
    introspector: FakeIntrospector,
) -> VideoUploadService:
    return build_service(repository, mock_storage, test_settings, transcoder, introspector)


@pytest.fixture
def caller(owner_id: UUID) -> CallerIdentity:
    return CallerIdentity(user_id=owner_id)


def assert_nothing_staged(staging_root: Path) -> None:
    assert list(staging_root.iterdir()) == []


# =============================================================================
# SUCCESSFUL UPLOADS
# =============================================================================


class TestSuccessfulUpload:
    @pytest.mark.asyncio
    async def test_landscape_upload(
        self,
        service: VideoUploadService,
        owned_video: Video,
        caller: CallerIdentity,
        repository: InMemoryVideoRepository,
        mock_storage: Mock,
        transcoder: FakeTranscoder,
        introspector: FakeIntrospector,
        staging_root: Path,
    ):
        result = await service.process_upload(owned_video.id, caller, make_upload())

        assert URL_RE.match(result.video_url)
        assert "/landscape/" in result.video_url
        assert result.version == owned_video.version + 1
        assert repository.videos[owned_video.id].video_url == result.video_url

        key = result.video_url.removeprefix("https://cdn.tubely.test/")
        bucket, stored_key, path, content_type = mock_storage.put_object.call_args.args
        assert bucket == "test-bucket"
        assert stored_key == key
        assert content_type == "video/mp4"
        # The remuxed file is what gets uploaded, and it was probed
        assert Path(path).name == "upload.mp4.processing"
        assert introspector.calls == [Path(path)]
        assert transcoder.calls[0].name == "upload.mp4"
        assert mock_storage.uploaded[key] == MP4_BYTES

        assert_nothing_staged(staging_root)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("width", "height", "prefix"),
        [(1080, 1920, "portrait"), (1000, 1000, "other"), (640, 480, "other")],
    )
    async def test_classification_prefix(
        self,
        repository: InMemoryVideoRepository,
        mock_storage: Mock,
        test_settings: Settings,
        owned_video: Video,
        caller: CallerIdentity,
        width: int,
        height: int,
        prefix: str,
    ):
        service = build_service(
            repository, mock_storage, test_settings, introspector=FakeIntrospector(width, height)
        )

        result = await service.process_upload(owned_video.id, caller, make_upload())

        assert result.video_url.startswith(f"https://cdn.tubely.test/{prefix}/")

    @pytest.mark.asyncio
    async def test_generic_type_is_sniffed(
        self, service: VideoUploadService, owned_video: Video, caller: CallerIdentity
    ):
        upload = make_upload(content_type="application/octet-stream")
        with patch("tubely.utils.file_validator.magic.from_buffer", return_value="video/mp4"):
            result = await service.process_upload(owned_video.id, caller, upload)

        assert URL_RE.match(result.video_url)

    @pytest.mark.asyncio
    async def test_declared_type_with_parameters(
        self,
        service: VideoUploadService,
        owned_video: Video,
        caller: CallerIdentity,
        mock_storage: Mock,
    ):
        upload = make_upload(content_type="video/mp4; codecs=avc1")

        await service.process_upload(owned_video.id, caller, upload)

        assert mock_storage.put_object.call_args.args[3] == "video/mp4"

    @pytest.mark.asyncio
    async def test_reupload_replaces_url_with_fresh_key(
        self, service: VideoUploadService, owned_video: Video, caller: CallerIdentity
    ):
        first = await service.process_upload(owned_video.id, caller, make_upload())
        second = await service.process_upload(owned_video.id, caller, make_upload())

        assert first.video_url != second.video_url
        assert second.version == first.version + 1


# =============================================================================
# REJECTIONS
# =============================================================================


class TestRejections:
    @pytest.mark.asyncio
    async def test_non_owner(
        self,
        service: VideoUploadService,
        owned_video: Video,
        other_user_id: UUID,
        transcoder: FakeTranscoder,
        mock_storage: Mock,
        staging_root: Path,
    ):
        with pytest.raises(Forbidden):
            await service.process_upload(
                owned_video.id, CallerIdentity(user_id=other_user_id), make_upload()
            )

        assert transcoder.calls == []
        mock_storage.put_object.assert_not_called()
        assert_nothing_staged(staging_root)

    @pytest.mark.asyncio
    async def test_unknown_video(self, service: VideoUploadService, caller: CallerIdentity):
        with pytest.raises(NotFound):
            await service.process_upload(uuid4(), caller, make_upload())

    @pytest.mark.asyncio
    async def test_png_rejected(
        self,
        service: VideoUploadService,
        owned_video: Video,
        caller: CallerIdentity,
        transcoder: FakeTranscoder,
        staging_root: Path,
    ):
        upload = make_upload(data=PNG_BYTES, content_type="image/png", filename="x.png")

        with pytest.raises(UnsupportedMediaType):
            await service.process_upload(owned_video.id, caller, upload)

        assert transcoder.calls == []
        assert_nothing_staged(staging_root)

    @pytest.mark.asyncio
    async def test_sniffed_non_mp4_rejected(
        self, service: VideoUploadService, owned_video: Video, caller: CallerIdentity
    ):
        upload = make_upload(data=PNG_BYTES, content_type=None)
        with patch("tubely.utils.file_validator.magic.from_buffer", return_value="image/png"):
            with pytest.raises(UnsupportedMediaType):
                await service.process_upload(owned_video.id, caller, upload)

    @pytest.mark.asyncio
    async def test_declared_size_over_limit(
        self,
        service: VideoUploadService,
        owned_video: Video,
        caller: CallerIdentity,
        test_settings: Settings,
    ):
        with pytest.raises(BadRequest) as exc_info:
            await service.process_upload(
                owned_video.id,
                caller,
                make_upload(),
                content_length=test_settings.max_upload_size_bytes + 1,
            )

        assert exc_info.value.details == {"max_bytes": test_settings.max_upload_size_bytes}

    @pytest.mark.asyncio
    async def test_streamed_size_over_limit(
        self,
        repository: InMemoryVideoRepository,
        mock_storage: Mock,
        test_settings: Settings,
        owned_video: Video,
        caller: CallerIdentity,
        staging_root: Path,
    ):
        small = test_settings.model_copy(update={"max_upload_size_bytes": 1024})
        service = build_service(repository, mock_storage, small)

        with pytest.raises(BadRequest):
            await service.process_upload(owned_video.id, caller, make_upload())

        mock_storage.put_object.assert_not_called()
        assert_nothing_staged(staging_root)


# =============================================================================
# PROCESSING FAILURES
# =============================================================================


class TestProcessingFailures:
    @pytest.mark.asyncio
    async def test_transcode_failure(
        self,
        repository: InMemoryVideoRepository,
        mock_storage: Mock,
        test_settings: Settings,
        owned_video: Video,
        caller: CallerIdentity,
        staging_root: Path,
    ):
        transcoder = FakeTranscoder(error=ProcessingFailed("ffmpeg failed"))
        service = build_service(repository, mock_storage, test_settings, transcoder=transcoder)

        with pytest.raises(ProcessingFailed):
            await service.process_upload(owned_video.id, caller, make_upload())

        mock_storage.put_object.assert_not_called()
        assert repository.videos[owned_video.id].video_url is None
        # Partial tool output is removed along with the staged upload
        assert_nothing_staged(staging_root)

    @pytest.mark.asyncio
    async def test_no_video_stream(
        self,
        repository: InMemoryVideoRepository,
        mock_storage: Mock,
        test_settings: Settings,
        owned_video: Video,
        caller: CallerIdentity,
        staging_root: Path,
    ):
        introspector = FakeIntrospector(error=NoStreamsFound(details={"stream_count": 0}))
        service = build_service(repository, mock_storage, test_settings, introspector=introspector)

        with pytest.raises(NoStreamsFound):
            await service.process_upload(owned_video.id, caller, make_upload())

        mock_storage.put_object.assert_not_called()
        assert_nothing_staged(staging_root)

    @pytest.mark.asyncio
    async def test_storage_failure(
        self,
        service: VideoUploadService,
        repository: InMemoryVideoRepository,
        mock_storage: Mock,
        owned_video: Video,
        caller: CallerIdentity,
        staging_root: Path,
    ):
        mock_storage.put_object.side_effect = StorageUnavailable()

        with pytest.raises(StorageUnavailable):
            await service.process_upload(owned_video.id, caller, make_upload())

        assert repository.update_calls == 0
        assert repository.videos[owned_video.id].video_url is None
        assert_nothing_staged(staging_root)


# =============================================================================
# CONCURRENT MODIFICATION
# =============================================================================


class ConcurrentEditTranscoder(FakeTranscoder):
    """Simulates another writer updating the record mid-pipeline."""

    def __init__(self, repository: InMemoryVideoRepository, video_id: UUID) -> None:
        super().__init__()
        self.repository = repository
        self.video_id = video_id

    async def process(self, input_path: Path) -> Path:
        stored = self.repository.videos[self.video_id]
        self.repository.videos[self.video_id] = stored.model_copy(
            update={"title": "Edited elsewhere", "version": stored.version + 1}
        )
        return await super().process(input_path)


class TestConcurrentModification:
    @pytest.mark.asyncio
    async def test_conflict_discards_stored_object(
        self,
        repository: InMemoryVideoRepository,
        mock_storage: Mock,
        test_settings: Settings,
        owned_video: Video,
        caller: CallerIdentity,
    ):
        transcoder = ConcurrentEditTranscoder(repository, owned_video.id)
        service = build_service(repository, mock_storage, test_settings, transcoder=transcoder)

        with pytest.raises(Conflict):
            await service.process_upload(owned_video.id, caller, make_upload())

        stored_key = mock_storage.put_object.call_args.args[1]
        mock_storage.delete_object.assert_awaited_once_with("test-bucket", stored_key)
        # The other writer's change survives
        assert repository.videos[owned_video.id].title == "Edited elsewhere"
        assert repository.videos[owned_video.id].video_url is None

    @pytest.mark.asyncio
    async def test_conflict_reported_even_if_discard_fails(
        self,
        repository: InMemoryVideoRepository,
        mock_storage: Mock,
        test_settings: Settings,
        owned_video: Video,
        caller: CallerIdentity,
    ):
        mock_storage.delete_object.side_effect = StorageUnavailable()
        transcoder = ConcurrentEditTranscoder(repository, owned_video.id)
        service = build_service(repository, mock_storage, test_settings, transcoder=transcoder)

        with pytest.raises(Conflict):
            await service.process_upload(owned_video.id, caller, make_upload())

    @pytest.mark.asyncio
    async def test_record_deleted_mid_pipeline(
        self,
        repository: InMemoryVideoRepository,
        mock_storage: Mock,
        test_settings: Settings,
        owned_video: Video,
        caller: CallerIdentity,
    ):
        class DeletingTranscoder(FakeTranscoder):
            async def process(self, input_path: Path) -> Path:
                repository.videos.pop(owned_video.id)
                return await super().process(input_path)

        service = build_service(
            repository, mock_storage, test_settings, transcoder=DeletingTranscoder()
        )

        with pytest.raises(NotFound):
            await service.process_upload(owned_video.id, caller, make_upload())

        mock_storage.delete_object.assert_awaited_once()


# =============================================================================
# CANCELLATION
# =============================================================================


class HangingTranscoder(FakeTranscoder):
    """Writes partial output, then blocks until cancelled."""

    def __init__(self) -> None:
        super().__init__()
        self.started = asyncio.Event()

    async def process(self, input_path: Path) -> Path:
        self.calls.append(input_path)
        input_path.with_name(input_path.name + ".processing").write_bytes(b"partial")
        self.started.set()
        await asyncio.sleep(60)
        raise AssertionError("not reached")


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_removes_staged_files(
        self,
        repository: InMemoryVideoRepository,
        mock_storage: Mock,
        test_settings: Settings,
        owned_video: Video,
        caller: CallerIdentity,
        staging_root: Path,
    ):
        transcoder = HangingTranscoder()
        service = build_service(repository, mock_storage, test_settings, transcoder=transcoder)

        task = asyncio.create_task(service.process_upload(owned_video.id, caller, make_upload()))
        await transcoder.started.wait()
        assert list(staging_root.iterdir()) != []

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        mock_storage.put_object.assert_not_called()
        assert repository.videos[owned_video.id].video_url is None
        assert_nothing_staged(staging_root)
