from __future__ import annotations

import json

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from pydantic import ValidationError

from aocd_sandbox.auth import SANDBOX_REALM, SANDBOX_USERNAME, basic_auth_ok
from aocd_sandbox.schema import SubmitRequest, SubmitResponse
from aocd_source.types import SourceProvider


logger = structlog.get_logger(__name__)


def _parse_int(value: str | None) -> int | None:
    s = str(value or "").strip()
    if not s:
        return None
    try:
        return int(s)
    except ValueError:
        return None


def _internal_error(exc: Exception) -> Response:
    return PlainTextResponse(f"{type(exc).__name__}: {exc}", status_code=500)


def create_app(
    source: SourceProvider,
    *,
    password: str,
    submit_enabled: bool,
    username: str = SANDBOX_USERNAME,
) -> FastAPI:
    """
    Loopback service used by `aocd safe-run`. It exposes only getInput and
    submit of `source`, and only to callers holding the session password.
    """
    app = FastAPI(title="aocd sandbox", docs_url=None, redoc_url=None, openapi_url=None)
    app.state.source = source
    app.state.submit_enabled = bool(submit_enabled)

    @app.middleware("http")
    async def _require_basic_auth(request: Request, call_next):
        if not basic_auth_ok(request.headers.get("authorization"), username=username, password=password):
            return PlainTextResponse(
                "401 Unauthorized",
                status_code=401,
                headers={"WWW-Authenticate": f'Basic realm="{SANDBOX_REALM}"'},
            )
        return await call_next(request)

    @app.get("/getInput")
    async def get_input(request: Request) -> Response:
        year = _parse_int(request.query_params.get("year"))
        day = _parse_int(request.query_params.get("day"))
        if year is None or day is None:
            return PlainTextResponse("Invalid query", status_code=400)
        try:
            text = await app.state.source.get_input(year, day)
        except Exception as exc:
            logger.exception("getInput failed", year=year, day=day)
            return _internal_error(exc)
        return PlainTextResponse(text, status_code=200, media_type="text/plain")

    @app.post("/submit")
    async def submit(request: Request) -> Response:
        if not app.state.submit_enabled:
            return PlainTextResponse("Forbidden", status_code=403)
        try:
            body = SubmitRequest.model_validate(json.loads(await request.body()))
        except (ValueError, ValidationError):
            return PlainTextResponse("Invalid body", status_code=400)
        try:
            correct = await app.state.source.submit(body.year, body.day, body.part, body.solution)
        except Exception as exc:
            logger.exception("submit failed", year=body.year, day=body.day, part=body.part)
            return _internal_error(exc)
        return JSONResponse(SubmitResponse(correct=bool(correct)).model_dump(), status_code=200)

    @app.api_route("/{path:path}", methods=["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"])
    async def not_found(path: str) -> Response:
        # Wrong method on a known path is also a plain 404.
        return PlainTextResponse("Not Found", status_code=404)

    return app
