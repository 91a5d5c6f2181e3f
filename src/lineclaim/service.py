from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from fastapi.staticfiles import StaticFiles

from lineclaim.config import DEFAULT_KEY_LINES, DEFAULT_LOG_LINES, ServiceConfig
from lineclaim.coordinator import ClaimCoordinator, CoordinatorStopped
from lineclaim.schemas import (
    AppendRequest,
    AppendResponse,
    ClaimRequest,
    ClaimResponse,
    HealthResponse,
)
from lineclaim.store import LineStore, StoreError, clean_lines, ensure_text_file
from lineclaim.telemetry import Telemetry

logger = logging.getLogger(__name__)

TEXT_MEDIA_TYPE = "text/plain; charset=utf-8"


@dataclass
class Services:
    config: ServiceConfig
    telemetry: Telemetry
    store: LineStore
    coordinator: ClaimCoordinator


def _build_services(config: ServiceConfig) -> Services:
    telemetry = Telemetry()
    store = LineStore(config.granted_path, cache=config.cache_granted_set)
    return Services(
        config=config,
        telemetry=telemetry,
        store=store,
        coordinator=ClaimCoordinator(store=store, telemetry=telemetry),
    )


def _prepare_data_files(services: Services) -> None:
    services.store.ensure_initialized()
    if services.config.seed_auxiliary_files:
        ensure_text_file(services.config.logs_path, DEFAULT_LOG_LINES)
        ensure_text_file(services.config.keys_path, DEFAULT_KEY_LINES)


async def _json_body(request: Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def create_app(config: ServiceConfig | None = None) -> FastAPI:
    app_config = config or ServiceConfig()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        services = _build_services(config=app_config)
        await asyncio.to_thread(_prepare_data_files, services)
        app.state.services = services
        await services.coordinator.start()
        yield
        await services.coordinator.stop()

    app = FastAPI(title="Line Claim Service", version="0.1.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_config.cors_allow_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.post("/claim", response_model=ClaimResponse)
    async def claim(request: Request) -> JSONResponse:
        services: Services = app.state.services
        payload = ClaimRequest.model_validate(await _json_body(request))

        try:
            result = await services.coordinator.claim(payload.lines, limit=payload.limit)
        except CoordinatorStopped as exc:
            response = ClaimResponse(claimed=[], rejected=clean_lines(payload.lines), error=str(exc))
            return JSONResponse(status_code=503, content=response.model_dump())

        response = ClaimResponse(
            claimed=result.claimed,
            rejected=result.rejected,
            error=result.error,
        )
        if not result.ok:
            return JSONResponse(status_code=503, content=response.model_dump())
        return JSONResponse(content=response.model_dump(exclude_none=True))

    @app.post("/provided_append", response_model=AppendResponse)
    async def provided_append(request: Request) -> JSONResponse:
        services: Services = app.state.services
        payload = AppendRequest.model_validate(await _json_body(request))

        try:
            added = await asyncio.to_thread(services.store.append_new, payload.lines)
        except StoreError as exc:
            logger.exception("bulk append of %d lines failed", len(payload.lines))
            services.telemetry.record_store_failure("ingest")
            response = AppendResponse(ok=False, added=0, error=str(exc))
            return JSONResponse(status_code=500, content=response.model_dump())

        services.telemetry.add_ingested(added)
        return JSONResponse(content=AppendResponse(ok=True, added=added).model_dump(exclude_none=True))

    @app.get("/provided.txt")
    async def provided_listing() -> Response:
        services: Services = app.state.services
        try:
            body = await asyncio.to_thread(services.store.read_text)
        except StoreError as exc:
            logger.error("could not read granted log: %s", exc)
            return PlainTextResponse("", status_code=500)
        return PlainTextResponse(body, media_type=TEXT_MEDIA_TYPE)

    @app.get("/logs.txt")
    async def logs_listing() -> Response:
        services: Services = app.state.services
        return await _text_file_response(services.config.logs_path, missing_status=500)

    @app.get("/keys.txt")
    async def keys_listing() -> Response:
        services: Services = app.state.services
        return await _text_file_response(services.config.keys_path, missing_status=404)

    @app.get("/metrics")
    async def metrics() -> Response:
        body, content_type = Telemetry.scrape()
        return Response(content=body, media_type=content_type)

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        services: Services = app.state.services
        return HealthResponse(
            status="ok" if services.coordinator.is_running else "stopped",
            queue_depth=services.coordinator.queue_depth,
            cycles_completed=services.coordinator.cycles_completed,
            granted_path=str(services.store.path),
        )

    if app_config.public_dir is not None and app_config.public_dir.is_dir():
        app.mount("/", StaticFiles(directory=app_config.public_dir, html=True), name="public")

    return app


async def _text_file_response(path: Path, missing_status: int) -> Response:
    try:
        body = await asyncio.to_thread(path.read_text, encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        logger.warning("could not serve %s: %s", path, exc)
        return PlainTextResponse("", status_code=missing_status)
    return PlainTextResponse(body, media_type=TEXT_MEDIA_TYPE)
