from __future__ import annotations

import logging
from http import HTTPStatus

from fastapi import FastAPI, Request, Response
from fastapi.exception_handlers import http_exception_handler
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.requests import ClientDisconnect

from ..errors import GateError, UploadTooLargeError
from ..pipeline import UploadPipeline
from ..settings import Settings


def _status_response(status: int) -> Response:
    return Response(content=HTTPStatus(status).phrase, status_code=status, media_type="text/plain")


def _declared_length(request: Request) -> int | None:
    raw = request.headers.get("content-length")
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the upload service; refuses to start without a usable data dir."""
    settings = settings or Settings()
    settings.require_data_dir()
    if not settings.appid:
        logging.warning("appid is empty; only manifests with an empty application-identifier will pass")
    pipeline = UploadPipeline(settings)

    app = FastAPI(title="ipa-gate", docs_url=None, redoc_url=None, openapi_url=None)
    app.state.settings = settings
    app.state.pipeline = pipeline

    async def _receive_and_inspect(request: Request) -> None:
        declared = _declared_length(request)
        if declared is not None and declared > settings.max_upload_bytes:
            raise UploadTooLargeError(f"declared content-length {declared} exceeds {settings.max_upload_bytes}")
        # Disk writes and the fsync in commit() stay off the event loop
        with pipeline.store.pending() as pending:
            async for chunk in request.stream():
                if chunk:
                    await run_in_threadpool(pending.write, chunk)
            stored = await run_in_threadpool(pending.commit)
        if settings.debug:
            logging.debug("stored %s (%d bytes)", stored.path, stored.size)
        await run_in_threadpool(pipeline.inspect, stored.path)

    @app.put("/upload")
    async def upload(request: Request):
        status = HTTPStatus.OK
        try:
            await _receive_and_inspect(request)
        except GateError as e:
            status = HTTPStatus(e.status_code)
            level = logging.ERROR if status >= 500 else logging.WARNING
            logging.log(level, "error at upload (%s): %s", e.stage.value, e)
        except ClientDisconnect:
            status = HTTPStatus.BAD_REQUEST
            logging.warning("error at upload: client disconnected before the body was complete")
        return _status_response(status)

    @app.get("/")
    def index():
        return Response(content="Welcome to the home page!", media_type="text/plain")

    # Unknown paths and known paths hit with another method are both a plain 404
    @app.exception_handler(StarletteHTTPException)
    async def not_found(request: Request, exc: StarletteHTTPException):
        if exc.status_code in (HTTPStatus.NOT_FOUND, HTTPStatus.METHOD_NOT_ALLOWED):
            return _status_response(HTTPStatus.NOT_FOUND)
        return await http_exception_handler(request, exc)

    return app
