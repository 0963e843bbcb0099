"""
Streaming access to one file field of a multipart/form-data request body.

The body is fed to python-multipart's ``MultipartParser`` as it arrives and
the wanted file part is exposed as an async readable. Its bytes go straight
from the request stream to whoever reads the part (the staging area), with
at most one request chunk buffered in memory and no spool file on disk.

Example:
    ```python
    upload = MultipartFilePart.from_request(request, "video")
    try:
        await upload.open()
        head = await upload.read(512)
        ...
    finally:
        await upload.aclose()
    ```
"""

import logging

from collections.abc import AsyncGenerator

from python_multipart.exceptions import MultipartParseError
from python_multipart.multipart import MultipartParser, parse_options_header
from starlette.requests import ClientDisconnect, Request

from tubely.core.errors import BadRequest, RequestCancelled


logger = logging.getLogger(__name__)

MULTIPART_FORM_DATA = b"multipart/form-data"


class MultipartFilePart:
    """
    A file field of a multipart body, read off the request stream on demand.

    Parts other than the first file part named ``field_name`` are parsed and
    discarded. Reading stops once that part ends; the rest of the body is
    never pulled.

    Attributes:
        field_name: Form field holding the file.
        filename: Client-supplied file name, set by ``open()``.
        content_type: The part's declared Content-Type, None when absent.
    """

    def __init__(self, chunks: AsyncGenerator[bytes, None], boundary: bytes, field_name: str) -> None:
        self.field_name = field_name
        self.filename: str | None = None
        self.content_type: str | None = None

        self._chunks = chunks
        self._buffer = bytearray()
        self._found = False
        self._in_part = False
        self._part_complete = False
        self._body_complete = False
        self._exhausted = False

        self._headers: dict[bytes, bytes] = {}
        self._header_field = bytearray()
        self._header_value = bytearray()

        self._parser = MultipartParser(
            boundary,
            callbacks={
                "on_part_begin": self._on_part_begin,
                "on_part_data": self._on_part_data,
                "on_part_end": self._on_part_end,
                "on_header_field": self._on_header_field,
                "on_header_value": self._on_header_value,
                "on_header_end": self._on_header_end,
                "on_headers_finished": self._on_headers_finished,
                "on_end": self._on_end,
            },
        )

    @classmethod
    def from_request(cls, request: Request, field_name: str) -> "MultipartFilePart":
        """
        Raises:
            BadRequest: If the request is not multipart/form-data with a boundary.
        """
        media_type, params = parse_options_header(request.headers.get("content-type"))
        boundary = params.get(b"boundary")
        if media_type != MULTIPART_FORM_DATA or not boundary:
            raise BadRequest("Expected a multipart/form-data body")
        return cls(request.stream(), boundary, field_name)

    @property
    def receiving(self) -> bool:
        """True while the file part may still have bytes in flight."""
        return not (self._part_complete or self._body_complete or self._exhausted)

    async def open(self) -> "MultipartFilePart":
        """
        Consume the body up to the end of the file part's headers.

        Raises:
            BadRequest: If the body ends without a file in ``field_name``, or is malformed.
            RequestCancelled: If the client disconnects mid-body.
        """
        while not self._found:
            if not await self._pull():
                raise BadRequest(f"Missing file field '{self.field_name}'")
        logger.debug("Found file part '%s' (%s)", self.filename, self.content_type)
        return self

    async def read(self, size: int = -1) -> bytes:
        """
        Read up to ``size`` bytes of the part, or all that remain when negative.

        Returns b"" once the part has been read to its end.

        Raises:
            BadRequest: If the body ends inside the part, or is malformed.
            RequestCancelled: If the client disconnects mid-body.
        """
        if not self._found:
            raise RuntimeError("open() must be awaited before reading")

        while self._in_part and (size < 0 or len(self._buffer) < size):
            if not await self._pull():
                raise BadRequest(f"Request body ended inside the '{self.field_name}' part")

        if size < 0 or size >= len(self._buffer):
            data = bytes(self._buffer)
            self._buffer.clear()
        else:
            data = bytes(self._buffer[:size])
            del self._buffer[:size]
        return data

    async def aclose(self) -> None:
        await self._chunks.aclose()

    async def _pull(self) -> bool:
        """Feed the next body chunk to the parser; False once nothing is left to feed."""
        if self._body_complete or self._exhausted:
            return False

        try:
            chunk = await anext(self._chunks)
        except StopAsyncIteration:
            self._exhausted = True
            return False
        except ClientDisconnect as e:
            raise RequestCancelled() from e

        if chunk:
            try:
                self._parser.write(chunk)
            except MultipartParseError as e:
                raise BadRequest("Malformed multipart body") from e
        return True

    # Parser callbacks

    def _on_part_begin(self) -> None:
        self._headers = {}

    def _on_header_field(self, data: bytes, start: int, end: int) -> None:
        self._header_field += data[start:end]

    def _on_header_value(self, data: bytes, start: int, end: int) -> None:
        self._header_value += data[start:end]

    def _on_header_end(self) -> None:
        self._headers[bytes(self._header_field).lower()] = bytes(self._header_value)
        self._header_field.clear()
        self._header_value.clear()

    def _on_headers_finished(self) -> None:
        _, options = parse_options_header(self._headers.get(b"content-disposition"))
        if self._found or b"filename" not in options:
            return
        if options.get(b"name") != self.field_name.encode():
            return

        self._found = True
        self._in_part = True
        self.filename = options[b"filename"].decode("utf-8", errors="replace")
        declared = self._headers.get(b"content-type")
        self.content_type = declared.decode("latin-1") if declared is not None else None

    def _on_part_data(self, data: bytes, start: int, end: int) -> None:
        if self._in_part:
            self._buffer += data[start:end]

    def _on_part_end(self) -> None:
        if self._in_part:
            self._in_part = False
            self._part_complete = True

    def _on_end(self) -> None:
        self._body_complete = True


__all__ = ["MULTIPART_FORM_DATA", "MultipartFilePart"]
