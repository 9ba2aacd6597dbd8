"""Same-origin relay that fetches a remote file on the caller's behalf."""

from __future__ import annotations

import logging
from typing import Optional

import requests
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from .config import DEFAULT_CONTENT_TYPE, RELAY_PATH, RelaySettings
from .utils import is_valid_url

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}

UPSTREAM_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36",
    "Accept": "*/*",
}


def _error(status_code: int, **body) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=body, headers=CORS_HEADERS)


def create_app(
    *,
    settings: RelaySettings | None = None,
    session: requests.Session | None = None,
) -> FastAPI:
    """Build the relay application; *session* is injectable for tests."""
    settings = settings or RelaySettings()
    max_bytes = settings.max_attachment_bytes
    timeout = settings.fetch_timeout_seconds
    app = FastAPI(title="link2attach relay")
    http = session or requests.Session()

    @app.options(RELAY_PATH)
    def preflight() -> Response:
        return Response(status_code=200, headers=CORS_HEADERS)

    @app.get(RELAY_PATH)
    def proxy(url: Optional[str] = None) -> Response:
        if not url:
            return _error(400, error="Missing or invalid url parameter")
        if not is_valid_url(url):
            return _error(400, error="Invalid URL")

        try:
            upstream = http.get(url, headers=UPSTREAM_HEADERS, timeout=timeout, stream=True)
        except requests.RequestException as exc:
            logger.error("Relay fetch of %s failed: %s", url, exc)
            return _error(500, error=str(exc) or "Internal server error", details=repr(exc))

        try:
            if not upstream.ok:
                logger.warning("Upstream %s answered %s", url, upstream.status_code)
                return _error(
                    upstream.status_code,
                    error=f"Failed to fetch file: {upstream.status_code} {upstream.reason or ''}".strip(),
                    status=upstream.status_code,
                )

            declared = upstream.headers.get("Content-Length")
            if declared and declared.isdigit() and int(declared) > max_bytes:
                return _error(413, error=f"File size exceeds {max_bytes} bytes")

            content = bytearray()
            for chunk in upstream.iter_content(CHUNK_SIZE):
                content.extend(chunk)
                if len(content) > max_bytes:
                    return _error(413, error=f"File size exceeds {max_bytes} bytes")
        except requests.RequestException as exc:
            logger.error("Relay read of %s failed: %s", url, exc)
            return _error(500, error=str(exc) or "Internal server error", details=repr(exc))
        finally:
            upstream.close()

        content_type = upstream.headers.get("Content-Type") or DEFAULT_CONTENT_TYPE
        headers = {**CORS_HEADERS, "Cache-Control": "public, max-age=3600"}
        return Response(content=bytes(content), media_type=content_type, headers=headers)

    @app.api_route(RELAY_PATH, methods=["POST", "PUT", "PATCH", "DELETE"])
    def not_allowed(request: Request) -> Response:
        return _error(405, error=f"Method {request.method} not allowed")

    return app


app = create_app()
