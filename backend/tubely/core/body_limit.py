"""
Request body size ceiling as a pure ASGI middleware.

Counts the bytes of every ``http.request`` message as the application pulls
them. Reading past the ceiling raises BodyTooLarge from ``receive`` so the
consumer (multipart parsing, in practice) fails instead of seeing a silently
truncated body.
"""

from starlette.types import ASGIApp, Message, Receive, Scope, Send

from tubely.core.errors import BadRequest


class BodyTooLarge(BadRequest):
    """Raised when a request body grows past the configured ceiling."""

    default_message = "Request body exceeds the maximum allowed size"


class MaxBodySizeMiddleware:
    def __init__(self, app: ASGIApp, max_body_size: int) -> None:
        self.app = app
        self.max_body_size = max_body_size

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        received = 0

        async def limited_receive() -> Message:
            nonlocal received
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > self.max_body_size:
                    raise BodyTooLarge(details={"max_bytes": self.max_body_size})
            return message

        await self.app(scope, limited_receive, send)


__all__ = ["BodyTooLarge", "MaxBodySizeMiddleware"]
