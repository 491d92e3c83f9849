"""FastAPI application for the background replacement service."""

from __future__ import annotations

import asyncio
import base64
import binascii
import json
import traceback
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Set, Tuple

import uvicorn
from fastapi import Depends, FastAPI, File, Form, Request, UploadFile, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.websockets import WebSocketDisconnect

from . import __version__
from .config import Settings, get_settings
from .errors import CapacityError, PayloadTooLargeError, StageError, UploadError
from .limits import AdmissionPool, check_upload_size
from .logger import log, setup_logger
from .models import Asset, ProcessingResult, resolve_prompt
from .pipelines import PipelineOrchestrator, SimulatedOrchestrator
from .progress import ClientConnection, ProgressChannel
from .schemas import CameraUploadPayload, ErrorResponse, ServiceStatus, TestUploadResponse, UploadResponse

TEST_UPLOAD_PROMPT = "beach sunset background"
SIMULATION_NOTE = "This is a simulation. Enable real processing in production."


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


async def _read_upload(photo: Optional[UploadFile], settings: Settings) -> Asset:
    if photo is None or not photo.filename:
        raise UploadError("No file uploaded")
    data = await photo.read()
    check_upload_size(len(data), settings.max_upload_bytes)
    return Asset.from_bytes(data, photo.filename, photo.content_type)


def _decode_camera_image(payload: CameraUploadPayload, settings: Settings) -> Optional[Asset]:
    if not payload.image:
        return None
    raw = payload.image
    mime_type = "image/jpeg"
    if raw.startswith("data:"):
        header, _, raw = raw.partition(",")
        mime_type = header[5:].split(";")[0] or mime_type
    try:
        data = base64.b64decode(raw, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise UploadError("Invalid image payload") from exc
    if not data:
        raise UploadError("No file uploaded")
    check_upload_size(len(data), settings.max_upload_bytes)
    return Asset.from_bytes(data, payload.filename, mime_type)


def _parse_frame(text: str) -> Tuple[Optional[str], Dict[str, Any]]:
    try:
        frame = json.loads(text)
    except json.JSONDecodeError:
        return None, {}
    if not isinstance(frame, dict):
        return None, {}
    data = frame.get("data")
    return frame.get("event"), data if isinstance(data, dict) else {}


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    if settings is None:
        get_settings.cache_clear()
        settings = get_settings()
    setup_logger(settings.log_level, settings.log_dir)

    orchestrator = PipelineOrchestrator.from_settings(settings)
    simulator = SimulatedOrchestrator.from_settings(settings)
    pool = AdmissionPool(settings.max_concurrent_jobs, settings.max_queued_jobs)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        log.info("Starting Background Replacement API")
        log.info(f"Port: {settings.port}")
        log.info(f"Environment: {settings.environment}")
        log.info(f"Removal provider: {orchestrator.removal.provider_name}")
        log.info(f"Generation provider: {orchestrator.generation.provider_name}")
        yield
        log.info("Shutting down Background Replacement API")
        await orchestrator.aclose()

    app = FastAPI(
        title="Background Replacement API",
        description="Removes a photo's background and generates a new one from a prompt",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.orchestrator = orchestrator
    app.state.simulator = simulator
    app.state.admission = pool

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    def get_settings_dep() -> Settings:
        return settings

    def get_orchestrator() -> PipelineOrchestrator:
        return orchestrator

    def get_simulator() -> SimulatedOrchestrator:
        return simulator

    @app.exception_handler(UploadError)
    async def upload_error_handler(request: Request, exc: UploadError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc)})

    @app.exception_handler(PayloadTooLargeError)
    async def too_large_handler(request: Request, exc: PayloadTooLargeError) -> JSONResponse:
        log.warning(f"Rejected upload: {exc}")
        return JSONResponse(status_code=exc.status_code, content={"error": "File too large"})

    @app.exception_handler(CapacityError)
    async def capacity_handler(request: Request, exc: CapacityError) -> JSONResponse:
        log.warning(f"Rejected upload: {exc}")
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc)})

    @app.exception_handler(StageError)
    async def stage_error_handler(request: Request, exc: StageError) -> JSONResponse:
        log.error(f"Processing error: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": "Image processing failed", "details": exc.message},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        log.error(f"Unhandled exception: {exc}")
        log.error(traceback.format_exc())
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "details": str(exc)},
        )

    @app.get("/")
    async def root() -> Dict[str, Any]:
        return {
            "message": "Background Replacement API is live",
            "version": __version__,
            "endpoints": {
                "upload": "POST /api/upload",
                "test": "POST /api/test-upload",
                "status": "GET /api/status",
                "progress": "WS /ws",
            },
        }

    @app.get("/api/status", response_model=ServiceStatus)
    async def status(settings: Settings = Depends(get_settings_dep)) -> ServiceStatus:
        return ServiceStatus(
            status="operational",
            timestamp=_timestamp(),
            environment=settings.environment,
            services={"remove_bg": "configured", "ai_generation": "configured"},
            providers={
                "removal": orchestrator.removal.provider_name,
                "generation": orchestrator.generation.provider_name,
            },
        )

    @app.post(
        "/api/upload",
        response_model=UploadResponse,
        responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    )
    async def upload(
        photo: UploadFile | None = File(default=None),
        prompt: str | None = Form(default=None),
        settings: Settings = Depends(get_settings_dep),
        pipeline: PipelineOrchestrator = Depends(get_orchestrator),
    ) -> UploadResponse:
        asset = await _read_upload(photo, settings)
        prompt_text = resolve_prompt(prompt)
        log.info(f"Processing image: {asset.original_name}, prompt: {prompt_text!r}")
        async with pool.slot():
            result = await pipeline.process(asset, prompt_text)
        return UploadResponse(
            message="Image processed successfully",
            original=result.foreground_description,
            processed=result.processed_reference,
            prompt=result.prompt,
            processingTime=result.processing_time,
            timestamp=_timestamp(),
        )

    @app.post(
        "/api/test-upload",
        response_model=TestUploadResponse,
        responses={400: {"model": ErrorResponse}},
    )
    async def test_upload(
        photo: UploadFile | None = File(default=None),
        prompt: str | None = Form(default=None),
        settings: Settings = Depends(get_settings_dep),
        pipeline: SimulatedOrchestrator = Depends(get_simulator),
    ) -> TestUploadResponse:
        asset = await _read_upload(photo, settings)
        result = await pipeline.process(asset, resolve_prompt(prompt, TEST_UPLOAD_PROMPT))
        return TestUploadResponse(
            message="TEST MODE - Image processing simulated",
            original=result.foreground_description,
            processed=result.processed_reference,
            prompt=result.prompt,
            processingTime=result.processing_time,
            note=SIMULATION_NOTE,
            steps=result.steps,
            timestamp=_timestamp(),
        )

    async def run_camera_upload(connection: ClientConnection, data: Dict[str, Any]) -> None:
        try:
            payload = CameraUploadPayload.model_validate(data)
        except ValidationError as exc:
            log.warning(f"Client {connection.id} sent an invalid camera-upload, ignoring it: {exc}")
            return
        channel = ProgressChannel(connection)
        prompt_text = resolve_prompt(payload.prompt)
        await channel.start(prompt_text)
        try:
            asset = _decode_camera_image(payload, settings)
            result: ProcessingResult
            if asset is None:
                placeholder = Asset.from_bytes(b"", payload.filename)
                result = await simulator.process(placeholder, prompt_text, observer=channel)
            else:
                async with pool.slot():
                    result = await orchestrator.process(asset, prompt_text, observer=channel)
        except (UploadError, PayloadTooLargeError, CapacityError) as exc:
            await channel.fail(str(exc))
            return
        except StageError as exc:
            await channel.fail(f"Image processing failed: {exc.message}")
            return
        except Exception as exc:
            log.error(f"Camera upload for client {connection.id} crashed: {exc}")
            log.error(traceback.format_exc())
            await channel.fail("Internal server error")
            return
        await channel.complete(result)

    @app.websocket("/ws")
    async def progress_socket(websocket: WebSocket) -> None:
        await websocket.accept()
        connection = ClientConnection(websocket, uuid.uuid4().hex[:12])
        log.info(f"Client connected: {connection.id}")
        uploads: Set[asyncio.Task] = set()
        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    raise WebSocketDisconnect(message.get("code", 1000))
                text = message.get("text")
                if text is None:
                    log.warning(f"Client {connection.id} sent a binary frame, ignoring it")
                    continue
                event, data = _parse_frame(text)
                if event != "camera-upload":
                    log.warning(f"Client {connection.id} sent unsupported event {event!r}")
                    continue
                log.info(f"Camera upload received from {connection.id}")
                task = asyncio.create_task(run_camera_upload(connection, data))
                uploads.add(task)
                task.add_done_callback(uploads.discard)
        except WebSocketDisconnect:
            log.info(f"Client disconnected: {connection.id}")
        finally:
            connection.mark_closed()

    return app


def main():
    """Run the FastAPI application."""
    settings = get_settings()
    uvicorn.run(
        "backdrop.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


app = create_app()


if __name__ == "__main__":
    main()
