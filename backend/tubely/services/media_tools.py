"""
External media tools: ffmpeg fast-start remux and ffprobe introspection.

Both tools run as async subprocesses. When the awaiting task is cancelled
the child process is killed and reaped before the cancellation propagates,
so no ffmpeg or ffprobe outlives the request that started it.

The abstract FastStartTranscoder and ContainerIntrospector are the seams the
upload orchestrator depends on; tests provide in-process fakes.
"""

import asyncio
import logging

from abc import ABC, abstractmethod
from pathlib import Path

from pydantic import BaseModel, ConfigDict, ValidationError

from tubely.config import get_settings
from tubely.core.errors import NoStreamsFound, ProcessingFailed


logger = logging.getLogger(__name__)

FAST_START_SUFFIX = ".processing"

# Upper bound on stderr carried in error details
MAX_STDERR_CHARS = 2000


class VideoGeometry(BaseModel):
    """Pixel dimensions of a video stream."""

    model_config = ConfigDict(frozen=True)

    width: int
    height: int


class ProbeStream(BaseModel):
    model_config = ConfigDict(extra="ignore")

    index: int = 0
    codec_type: str | None = None
    width: int = 0
    height: int = 0


class ProbeResult(BaseModel):
    model_config = ConfigDict(extra="ignore")

    streams: list[ProbeStream] = []


# =============================================================================
# Interfaces
# =============================================================================


class FastStartTranscoder(ABC):
    """Rewrites a container so its index sits before the media data."""

    @abstractmethod
    async def process(self, input_path: Path) -> Path:
        """Write the fast-start copy of ``input_path`` and return its path."""


class ContainerIntrospector(ABC):
    """Reads stream geometry from a media container."""

    @abstractmethod
    async def probe(self, path: Path) -> VideoGeometry:
        """Return the geometry of the first video stream in ``path``."""


def fast_start_output_path(input_path: Path) -> Path:
    """Path the fast-start copy of ``input_path`` is written to."""
    input_path = Path(input_path)
    return input_path.with_name(input_path.name + FAST_START_SUFFIX)


# =============================================================================
# Subprocess runner
# =============================================================================


async def run_tool(*argv: str) -> tuple[bytes, bytes]:
    """
    Run an external tool to completion and capture its output.

    Returns:
        tuple: (stdout, stderr)

    Raises:
        ProcessingFailed: If the tool cannot be started or exits non-zero.
    """
    tool = Path(argv[0]).name
    try:
        process = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        logger.error("Failed to start %s: %s", tool, e)
        raise ProcessingFailed(f"Could not run {tool}", details={"tool": tool}) from e

    try:
        stdout, stderr = await process.communicate()
    except asyncio.CancelledError:
        if process.returncode is None:
            process.kill()
        await process.wait()
        logger.info("Killed %s (pid %s) after cancellation", tool, process.pid)
        raise

    if process.returncode != 0:
        error_output = stderr.decode("utf-8", errors="replace")[-MAX_STDERR_CHARS:]
        logger.error("%s exited with status %s: %s", tool, process.returncode, error_output)
        raise ProcessingFailed(
            f"{tool} failed",
            details={"tool": tool, "returncode": process.returncode, "stderr": error_output},
        )

    return stdout, stderr


# =============================================================================
# ffmpeg / ffprobe implementations
# =============================================================================


class FFmpegFastStartTranscoder(FastStartTranscoder):
    """Stream-copy remux with ``-movflags faststart``; no re-encoding."""

    def __init__(self, ffmpeg_path: str = "ffmpeg") -> None:
        self.ffmpeg_path = ffmpeg_path

    async def process(self, input_path: Path) -> Path:
        output_path = fast_start_output_path(input_path)
        await run_tool(
            self.ffmpeg_path,
            "-i",
            str(input_path),
            "-c",
            "copy",
            "-movflags",
            "faststart",
            "-f",
            "mp4",
            str(output_path),
        )
        logger.debug("Fast-start copy written to %s", output_path)
        return output_path


class FFprobeIntrospector(ContainerIntrospector):
    """Geometry of the first video stream as reported by ffprobe."""

    def __init__(self, ffprobe_path: str = "ffprobe") -> None:
        self.ffprobe_path = ffprobe_path

    async def probe(self, path: Path) -> VideoGeometry:
        stdout, _ = await run_tool(
            self.ffprobe_path,
            "-v",
            "error",
            "-print_format",
            "json",
            "-show_streams",
            str(path),
        )

        try:
            result = ProbeResult.model_validate_json(stdout)
        except ValidationError as e:
            logger.error("Unparseable ffprobe output for %s", path)
            raise ProcessingFailed("Could not parse ffprobe output") from e

        for stream in result.streams:
            if stream.codec_type == "video":
                return VideoGeometry(width=stream.width, height=stream.height)

        raise NoStreamsFound(details={"stream_count": len(result.streams)})


# =============================================================================
# Dependencies
# =============================================================================


def get_transcoder() -> FastStartTranscoder:
    return FFmpegFastStartTranscoder(get_settings().ffmpeg_path)


def get_introspector() -> ContainerIntrospector:
    return FFprobeIntrospector(get_settings().ffprobe_path)


__all__ = [
    "ContainerIntrospector",
    "FFmpegFastStartTranscoder",
    "FFprobeIntrospector",
    "FastStartTranscoder",
    "VideoGeometry",
    "fast_start_output_path",
    "get_introspector",
    "get_transcoder",
    "run_tool",
]
