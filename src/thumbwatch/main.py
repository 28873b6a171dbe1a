"""
Thumbwatch Main Application
===========================

FastAPI entry point for the thumbnail health service.

Endpoints:
    POST /thumbnail                          - Ingest a thumbnail (JSON or image/jpeg)
    GET  /streams                            - Latest health per stream
    GET  /streams/{streamId}/{feedId}/latest - URL of the newest archived frame
    GET  /metrics                            - Prometheus text exposition
    GET  /                                   - Service information
    GET  /health                             - Liveness check
    GET  /ready                              - Readiness check
    WS   /ws/health                          - Real-time health board stream

Background Tasks (started in lifespan):
    - alert_dispatcher: webhook delivery worker
    - freeze_sweeper:   idle freeze-state eviction
"""

import asyncio
import logging
import os
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional

from fastapi import APIRouter, FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse, Response

from thumbwatch.alerts import AlertDispatcher
from thumbwatch.archive import ArchiveError, ArchiveWriter, BlobStore, InMemoryBlobStore, S3BlobStore
from thumbwatch.classify import FrameClassifier
from thumbwatch.config import Settings, settings
from thumbwatch.freeze import FreezeDetector, FreezeStateRegistry
from thumbwatch.ingest import SubmissionError, normalize, parse_envelope
from thumbwatch.models.output import IngestResponse
from thumbwatch.observability import MetricsRecorder, StreamHealthBoard
from thumbwatch.pipeline import IngestPipeline


logger = logging.getLogger(__name__)


# =============================================================================
# Runtime State
# =============================================================================

@dataclass
class ServiceRuntime:
    """Components and background tasks owned by one application instance."""

    settings: Settings
    pipeline: IngestPipeline
    dispatcher: AlertDispatcher
    dispatcher_task: Optional[asyncio.Task] = None
    sweeper_task: Optional[asyncio.Task] = None
    startup_time: float = 0.0
    ready: bool = False


def get_runtime(request: Request) -> ServiceRuntime:
    return request.app.state.runtime


# =============================================================================
# Component Factories
# =============================================================================

def create_store(app_settings: Settings) -> BlobStore:
    """
    Create the blob store based on config.

    Fails fast on an unknown backend.
    """
    storage = app_settings.storage

    if storage.backend == "memory":
        logger.info("Using InMemoryBlobStore")
        return InMemoryBlobStore()

    elif storage.backend == "s3":
        logger.info(f"Using S3BlobStore: bucket={storage.bucket}, endpoint={storage.endpoint_url}")
        return S3BlobStore(
            bucket=storage.bucket,
            endpoint_url=storage.endpoint_url,
            region=storage.region,
            access_key=storage.access_key,
            secret_key=storage.secret_key,
            public_read=storage.public_read,
        )

    else:
        raise ValueError(f"Unknown storage backend: {storage.backend}")


def create_dispatcher(app_settings: Settings) -> AlertDispatcher:
    alerts = app_settings.alerts
    return AlertDispatcher(
        webhook_url=alerts.webhook_url,
        timeout_seconds=alerts.timeout_seconds,
        max_queue_size=alerts.max_queue_size,
        max_attempts=alerts.max_attempts,
        backoff_base_seconds=alerts.backoff_base_seconds,
        breaker_threshold=alerts.breaker_threshold,
        breaker_reset_seconds=alerts.breaker_reset_seconds,
    )


def build_pipeline(
    app_settings: Settings,
    store: BlobStore,
    dispatcher: AlertDispatcher,
) -> IngestPipeline:
    """Wire classifier, freeze detector, metrics, archive and alerts."""
    cls = app_settings.classifier
    classifier = FrameClassifier(
        black_policy=cls.black_policy,
        luma_threshold=cls.luma_threshold,
        pixel_cutoff=cls.pixel_cutoff,
        black_ratio_threshold=cls.black_ratio_threshold,
        hash_size=cls.hash_size,
        highfreq_factor=cls.highfreq_factor,
    )
    detector = FreezeDetector(
        FreezeStateRegistry(),
        match_distance=app_settings.freeze.match_distance,
    )
    recorder = MetricsRecorder(
        include_process_metrics=app_settings.metrics.include_process_metrics,
    )
    archive = ArchiveWriter(
        store=store,
        public_url_base=app_settings.storage.resolved_public_url_base,
        include_quality=app_settings.archive.include_quality,
        log_prefix=app_settings.archive.log_prefix,
        log_max_retries=app_settings.archive.log_max_retries,
    )
    return IngestPipeline(
        classifier=classifier,
        detector=detector,
        recorder=recorder,
        archive=archive,
        dispatcher=dispatcher,
        board=StreamHealthBoard(),
    )


# =============================================================================
# Background Tasks
# =============================================================================

async def sweep_freeze_state(runtime: ServiceRuntime) -> None:
    """Periodically evict idle freeze state."""
    freeze = runtime.settings.freeze
    logger.info(
        f"Freeze sweeper started: ttl={freeze.idle_ttl_seconds}s, "
        f"interval={freeze.sweep_interval_seconds}s"
    )
    while True:
        await asyncio.sleep(freeze.sweep_interval_seconds)
        try:
            runtime.pipeline.sweep_idle(ttl=freeze.idle_ttl_seconds)
        except Exception as e:
            logger.error(f"Freeze sweep failed: {e}")


# =============================================================================
# Lifespan Management
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan manager with graceful shutdown."""
    runtime: ServiceRuntime = app.state.runtime

    runtime.startup_time = time.time()
    logger.info(f"Starting {runtime.settings.service.name} {runtime.settings.service.version}")

    runtime.dispatcher_task = asyncio.create_task(
        runtime.dispatcher.run(),
        name="alert_dispatcher",
    )
    runtime.sweeper_task = asyncio.create_task(
        sweep_freeze_state(runtime),
        name="freeze_sweeper",
    )
    runtime.ready = True

    logger.info("All components started")

    yield

    logger.info("Shutting down gracefully...")
    runtime.ready = False

    for task in (runtime.sweeper_task, runtime.dispatcher_task):
        if task:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    await runtime.dispatcher.stop()

    logger.info("Shutdown complete")


# =============================================================================
# HTTP Endpoints
# =============================================================================

router = APIRouter()


@router.post("/thumbnail")
async def upload_thumbnail(request: Request) -> JSONResponse:
    """Ingest one thumbnail."""
    runtime = get_runtime(request)
    max_body = runtime.settings.server.max_body_bytes

    declared = request.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > max_body:
        return JSONResponse({"error": "Payload too large"}, status_code=413)

    try:
        body = await request.body()
        if len(body) > max_body:
            return JSONResponse({"error": "Payload too large"}, status_code=413)

        envelope = parse_envelope(request.headers.get("content-type"), body, request.headers)
        submission = normalize(envelope)
    except SubmissionError as e:
        return JSONResponse({"error": e.message}, status_code=e.status_code)

    try:
        result = await runtime.pipeline.ingest(submission)
    except ArchiveError as e:
        logger.error(f"Upload failed: {e}")
        return JSONResponse({"error": "Upload failed", "details": str(e)}, status_code=500)
    except Exception:
        logger.exception(f"Unexpected error ingesting {submission!r}")
        return JSONResponse({"error": "Internal error"}, status_code=500)

    response = IngestResponse(
        key=result.key,
        url=result.url,
        status=result.status,
        quality=result.quality,
        freeze=result.freeze.is_freeze_now,
        freeze_ended_seconds=result.freeze.freeze_ended_duration,
    )
    return JSONResponse(response.model_dump(mode="json", by_alias=True))


@router.get("/streams/{stream_id}/{feed_id}/latest")
async def latest_thumbnail(stream_id: str, feed_id: str, request: Request) -> JSONResponse:
    """Public URL of the newest archived frame for a stream."""
    archive = get_runtime(request).pipeline.archive

    try:
        key = await archive.latest_key(stream_id, feed_id)
    except ArchiveError as e:
        logger.error(f"Failed to fetch latest thumbnail: {e}")
        return JSONResponse(
            {"error": "Failed to fetch latest thumbnail", "details": str(e)},
            status_code=500,
        )

    if key is None:
        return JSONResponse({"error": "No thumbnails found"}, status_code=404)

    return JSONResponse({
        "streamId": stream_id,
        "feedId": feed_id,
        "latest": archive.url_for(key),
    })


@router.get("/streams")
async def streams(request: Request) -> JSONResponse:
    """Latest health snapshot for every stream seen."""
    return JSONResponse(get_runtime(request).pipeline.board.to_json())


@router.get("/metrics")
async def metrics(request: Request) -> Response:
    """Prometheus text exposition."""
    try:
        body, content_type = get_runtime(request).pipeline.recorder.render()
    except Exception as e:
        logger.error(f"Metrics rendering failed: {e}")
        return Response(str(e), status_code=500, media_type="text/plain")
    return Response(body, media_type=content_type)


@router.get("/")
async def root(request: Request) -> JSONResponse:
    """Service information endpoint."""
    runtime = get_runtime(request)
    return JSONResponse({
        "service": runtime.settings.service.name,
        "version": runtime.settings.service.version,
        "status": "running",
        "storage_backend": runtime.settings.storage.backend,
        "alerts_enabled": runtime.dispatcher.enabled,
    })


@router.get("/health")
async def health(request: Request) -> JSONResponse:
    """
    Liveness check - is the process alive?

    Always returns 200 if the service is running.
    """
    runtime = get_runtime(request)
    return JSONResponse({
        "status": "healthy",
        "uptime_seconds": round(time.time() - runtime.startup_time, 1),
    })


@router.get("/ready")
async def ready(request: Request) -> JSONResponse:
    """
    Readiness check - is the service ready to accept thumbnails?

    Returns 200 once background tasks are running, 503 otherwise.
    """
    runtime = get_runtime(request)
    pipeline = runtime.pipeline

    if runtime.ready:
        return JSONResponse({
            "status": "ready",
            "submissions_processed": pipeline.submissions_processed,
            "archive_failures": pipeline.archive_failures,
            "tracked_streams": len(pipeline.detector.registry),
            "alerts": runtime.dispatcher.metrics.to_dict(),
        })
    return JSONResponse({"status": "not_ready"}, status_code=503)


# =============================================================================
# WebSocket Endpoints
# =============================================================================

@router.websocket("/ws/health")
async def health_stream(websocket: WebSocket) -> None:
    """WebSocket endpoint for real-time stream health."""
    runtime: ServiceRuntime = websocket.app.state.runtime
    interval = runtime.settings.server.ws_push_interval_seconds

    await websocket.accept()
    logger.info("Client connected to /ws/health")

    try:
        while runtime.ready:
            await websocket.send_json(runtime.pipeline.board.to_json())
            # Waiting on receive surfaces client disconnects between pushes
            try:
                await asyncio.wait_for(websocket.receive_text(), timeout=interval)
            except asyncio.TimeoutError:
                pass
    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.warning(f"WebSocket error: {e}")
    finally:
        logger.info("Client disconnected from /ws/health")


# =============================================================================
# FastAPI Application
# =============================================================================

def create_app(
    app_settings: Optional[Settings] = None,
    store: Optional[BlobStore] = None,
    dispatcher: Optional[AlertDispatcher] = None,
) -> FastAPI:
    """
    Build a FastAPI application with its own pipeline and state.

    Args:
        app_settings: Settings to use (module settings if None)
        store: Blob store override (built from settings if None)
        dispatcher: Alert dispatcher override (built from settings if None)
    """
    app_settings = app_settings or settings
    store = store if store is not None else create_store(app_settings)
    dispatcher = dispatcher if dispatcher is not None else create_dispatcher(app_settings)

    app = FastAPI(
        title="Thumbwatch",
        description="Live stream thumbnail health monitoring",
        version=app_settings.service.version,
        lifespan=lifespan,
    )
    app.state.runtime = ServiceRuntime(
        settings=app_settings,
        pipeline=build_pipeline(app_settings, store, dispatcher),
        dispatcher=dispatcher,
    )
    app.include_router(router)
    return app


app = create_app()


# =============================================================================
# Main Entry Point
# =============================================================================

def run() -> None:
    import uvicorn

    # PaaS platforms use PORT env var
    port = int(os.environ.get("PORT", settings.server.port))

    uvicorn.run(
        "thumbwatch.main:app",
        host=settings.server.host,
        port=port,
        reload=False,
    )


if __name__ == "__main__":
    run()
