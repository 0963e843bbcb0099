"""
Private per-request staging for uploaded video bytes.

Each upload gets its own directory created with ``tempfile.mkdtemp`` (mode
0700), so staged bytes are never visible to other requests or users. The
directory and everything registered in it are removed when the ``async with``
block exits, whether it completes, raises or is cancelled.

Example:
    ```python
    async with staging_area(settings.upload_temp_dir) as area:
        source = await area.write_stream(upload, "upload.mp4")
        output = area.register(fast_start_output_path(source))
        ...
    # source and output are gone here
    ```
"""

import logging
import shutil
import tempfile

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Protocol

import aiofiles

from tubely.core.errors import BadRequest


logger = logging.getLogger(__name__)

STAGING_PREFIX = "tubely-upload-"

# 1 MiB per read while copying the upload part to disk
DEFAULT_CHUNK_SIZE = 1024 * 1024


class AsyncReadable(Protocol):
    async def read(self, size: int = -1) -> bytes: ...


class StagingArea:
    """
    A private directory holding the files of one in-flight upload.

    Attributes:
        directory: The per-request directory.
        files: Paths registered for removal, in registration order.
    """

    def __init__(self, directory: Path) -> None:
        self.directory = directory
        self.files: list[Path] = []

    def register(self, path: Path) -> Path:
        """
        Register a path that a later step (e.g. an external tool) will create.

        Raises:
            ValueError: If ``path`` lies outside the staging directory.
        """
        path = Path(path)
        if path.parent != self.directory:
            raise ValueError(f"{path} is outside staging directory {self.directory}")
        self.files.append(path)
        return path

    async def write_stream(
        self,
        source: AsyncReadable,
        name: str,
        prefix: bytes = b"",
        max_bytes: int | None = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> Path:
        """
        Copy ``prefix`` followed by the rest of ``source`` into a staged file.

        Args:
            source: Readable positioned after ``prefix``.
            name: File name inside the staging directory.
            prefix: Bytes already read from ``source`` (e.g. for sniffing).
            max_bytes: Ceiling on the total size written.
            chunk_size: Read size per iteration.

        Returns:
            Path: The staged file.

        Raises:
            BadRequest: If the content exceeds ``max_bytes``.
        """
        path = self.register(self.directory / name)
        written = 0

        async with aiofiles.open(path, "wb") as staged:
            chunk = prefix
            while True:
                if chunk:
                    written += len(chunk)
                    if max_bytes is not None and written > max_bytes:
                        raise BadRequest(
                            "Upload exceeds the maximum allowed size",
                            details={"max_bytes": max_bytes},
                        )
                    await staged.write(chunk)
                chunk = await source.read(chunk_size)
                if not chunk:
                    break

        logger.debug("Staged %d bytes at %s", written, path)
        return path

    def cleanup(self) -> None:
        """Remove every staged file and the directory itself."""
        for path in self.files:
            try:
                path.unlink(missing_ok=True)
            except OSError as cleanup_error:
                logger.warning("Failed to remove staged file '%s': %s", path, cleanup_error)

        try:
            shutil.rmtree(self.directory)
        except FileNotFoundError:
            pass
        except OSError as cleanup_error:
            logger.warning(
                "Failed to remove staging directory '%s': %s", self.directory, cleanup_error
            )
        else:
            logger.debug("Cleaned up staging directory: %s", self.directory)


@asynccontextmanager
async def staging_area(base_dir: str | None = None) -> AsyncIterator[StagingArea]:
    """Create a private staging directory and remove it on exit."""
    # Setup and teardown never await, cancellation cannot interrupt them
    area = StagingArea(Path(tempfile.mkdtemp(prefix=STAGING_PREFIX, dir=base_dir)))
    try:
        yield area
    finally:
        area.cleanup()


__all__ = ["StagingArea", "staging_area"]
