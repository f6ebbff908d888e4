"""
Request-body cap for upload routes, enforced while the body is received.

Starlette spools a multipart body in full before the route runs, so the
per-file cap in LocalStorage.save_stream alone cannot keep an oversized
request off the disk. A declared Content-Length over the cap is refused
without reading the body; a chunked body is cut off as soon as the running
total passes the cap.
"""
from typing import Callable, Iterable, Optional

import structlog
from fastapi import HTTPException
from starlette.responses import JSONResponse

log = structlog.get_logger()

MIB = 1024 * 1024
# multipart boundaries and part headers on top of the file itself
MULTIPART_OVERHEAD = 64 * 1024


def configured_max_mb() -> int:
    from resonance.config import settings
    return settings.MAX_UPLOAD_SIZE_MB


def too_large_message(max_mb: int) -> str:
    return f"File too large. Maximum size is {max_mb} MB"


def _content_length(scope) -> Optional[int]:
    for name, value in scope.get("headers", []):
        if name == b"content-length":
            try:
                return int(value)
            except ValueError:
                return None
    return None


class UploadLimitMiddleware:

    def __init__(self, app, paths: Iterable[str], max_mb: Callable[[], int] = configured_max_mb):
        self.app = app
        self.paths = set(paths)
        self.max_mb = max_mb

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http" or scope["path"] not in self.paths:
            await self.app(scope, receive, send)
            return

        max_mb = self.max_mb()
        max_bytes = max_mb * MIB + MULTIPART_OVERHEAD

        declared = _content_length(scope)
        if declared is not None and declared > max_bytes:
            log.warning("upload_rejected", reason="content_length", declared=declared, max_bytes=max_bytes)
            response = JSONResponse(status_code=413, content={"detail": too_large_message(max_mb)})
            await response(scope, receive, send)
            return

        received = 0

        async def limited_receive():
            nonlocal received
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > max_bytes:
                    log.warning("upload_rejected", reason="stream", received=received, max_bytes=max_bytes)
                    # FastAPI re-raises HTTPException out of body parsing unchanged
                    raise HTTPException(413, detail=too_large_message(max_mb))
            return message

        await self.app(scope, limited_receive, send)
