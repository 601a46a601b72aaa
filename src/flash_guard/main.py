"""
FlashGuard Main Application
===========================

FastAPI entry point for the photosensitive flash detection service.

Video clients connect to /ws/video, push frames and playback events for one
video element, and receive pause commands and warnings back. Optionally a
VideoStreamConsumer pulls the same protocol from a remote capture stream.

Endpoints:
    GET  /          - Service information
    GET  /health    - Liveness probe (is process alive?)
    GET  /ready     - Readiness probe (session registry loaded?)
    GET  /metrics   - Detector, storage and stats metrics
    GET  /stats     - Cumulative counters
    POST /control   - enable | disable | resetStats
    WS   /ws/video  - Per-element video session
    WS   /ws/stats  - Counter updates as they are persisted
"""

import asyncio
import itertools
import logging
import os
import signal
import threading
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from flash_guard.config import settings
from flash_guard.messaging import MessageChannel
from flash_guard.models.input import ControlMessage, VideoMessage
from flash_guard.models.stats import STATS_KEY
from flash_guard.monitor import VideoMonitor
from flash_guard.session import SessionRegistry
from flash_guard.stats import StatsAggregator
from flash_guard.storage import StorageTier, TieredStorage
from flash_guard.stream import VideoEventDispatcher, VideoStreamConsumer


logger = logging.getLogger(__name__)


# =============================================================================
# Global State
# =============================================================================

# Shutdown flag
_shutdown_flag: bool = False

_storage: Optional[TieredStorage] = None
_registry: Optional[SessionRegistry] = None
_stats: Optional[StatsAggregator] = None
_channel: Optional[MessageChannel] = None
_monitor: Optional[VideoMonitor] = None

# Optional remote capture stream
_stream_consumer: Optional[VideoStreamConsumer] = None
_consumer_task: Optional[asyncio.Task] = None

_startup_time: float = 0.0
_session_ids = itertools.count(1)
_active_sessions: int = 0
_invalid_messages: int = 0


# =============================================================================
# Getters
# =============================================================================

def get_storage() -> Optional[TieredStorage]:
    return _storage

def get_monitor() -> Optional[VideoMonitor]:
    return _monitor

def get_stats() -> Optional[StatsAggregator]:
    return _stats

def get_channel() -> Optional[MessageChannel]:
    return _channel

def get_stream_consumer() -> Optional[VideoStreamConsumer]:
    return _stream_consumer

def is_ready() -> bool:
    return _registry is not None and _registry.loaded


# =============================================================================
# Signal Handlers
# =============================================================================

def _handle_sigterm(signum, frame):
    """Handle SIGTERM for graceful shutdown."""
    global _shutdown_flag
    logger.info("Received SIGTERM, initiating graceful shutdown...")
    _shutdown_flag = True


# =============================================================================
# Lifespan Management
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan manager with graceful shutdown."""
    global _storage, _registry, _stats, _channel, _monitor
    global _stream_consumer, _consumer_task, _startup_time, _shutdown_flag

    # Signal handlers can only be installed from the main thread
    if threading.current_thread() is threading.main_thread():
        signal.signal(signal.SIGTERM, _handle_sigterm)

    _startup_time = time.time()
    _shutdown_flag = False
    logger.info(f"Starting {settings.service.name} {settings.service.version}")

    # Persistence channel
    logger.info(f"Storage directory: {settings.persistence.directory}")
    _storage = TieredStorage.from_directory(
        settings.persistence.directory,
        max_retries=settings.persistence.max_retries,
        retry_backoff_ms=settings.persistence.retry_backoff_ms,
    )

    # Registry, stats actor, message channel, monitor
    _registry = SessionRegistry(_storage)
    _stats = StatsAggregator(_storage)
    _channel = MessageChannel()
    _monitor = VideoMonitor(
        storage=_storage,
        registry=_registry,
        stats=_stats,
        channel=_channel,
        detection=settings.detection,
        policy=settings.policy,
        capture=settings.capture,
    )
    _stats.start()
    await _monitor.load()

    # Optional remote capture stream
    if settings.stream.enabled:
        logger.info(f"Stream URL: {settings.stream.url}")
        _stream_consumer = VideoStreamConsumer(
            url=settings.stream.url,
            monitor=_monitor,
            reconnect_backoff_ms=settings.stream.reconnect_backoff_ms,
            max_reconnect_attempts=settings.stream.max_reconnect_attempts,
            max_queue_size=settings.stream.max_queue_size,
        )
        _consumer_task = asyncio.create_task(
            _stream_consumer.run(),
            name="video_stream_consumer",
        )

    logger.info("All components started")

    yield

    # Shutdown
    logger.info("Shutting down gracefully...")
    _shutdown_flag = True

    if _stream_consumer:
        await _stream_consumer.stop()

    if _consumer_task:
        try:
            await asyncio.wait_for(_consumer_task, timeout=5.0)
        except asyncio.TimeoutError:
            _consumer_task.cancel()
            try:
                await _consumer_task
            except asyncio.CancelledError:
                pass

    await _monitor.shutdown()
    await _stats.stop()

    _stream_consumer = None
    _consumer_task = None

    logger.info("Shutdown complete")


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="FlashGuard",
    description="Real-time photosensitive flash detection service",
    version=settings.service.version,
    lifespan=lifespan,
)


# =============================================================================
# HTTP Endpoints
# =============================================================================

@app.get("/")
async def root() -> JSONResponse:
    """Service information endpoint."""
    return JSONResponse({
        "service": "FlashGuard",
        "version": settings.service.version,
        "name": settings.service.name,
        "status": "running",
        "protection_enabled": _monitor.enabled if _monitor else False,
        "stream_enabled": settings.stream.enabled,
    })


@app.get("/health")
async def health() -> JSONResponse:
    """
    Liveness probe - is the process alive?

    Always returns 200 if the service is running.
    """
    return JSONResponse({
        "status": "healthy",
        "uptime_seconds": round(time.time() - _startup_time, 1),
    })


@app.get("/ready")
async def ready() -> JSONResponse:
    """
    Readiness probe - can video sessions be accepted?

    Returns 200 once the session registry has loaded, 503 before.
    """
    consumer = get_stream_consumer()
    stream_connected = consumer.connected if consumer else False

    if is_ready():
        return JSONResponse({
            "status": "ready",
            "registry_loaded": True,
            "stream_connected": stream_connected,
            "active_sessions": _active_sessions,
        })
    return JSONResponse(
        {
            "status": "not_ready",
            "registry_loaded": False,
            "stream_connected": stream_connected,
        },
        status_code=503,
    )


@app.get("/metrics")
async def metrics() -> JSONResponse:
    """Detailed metrics for observability."""
    monitor = get_monitor()
    storage = get_storage()
    stats = get_stats()
    channel = get_channel()
    consumer = get_stream_consumer()

    return JSONResponse({
        "uptime_seconds": round(time.time() - _startup_time, 1),
        "active_sessions": _active_sessions,
        "invalid_messages": _invalid_messages,
        "degraded": storage.degraded if storage else False,
        "storage": storage.metrics() if storage else {},
        "monitor": monitor.get_metrics() if monitor else {},
        "stats_aggregator": stats.get_metrics() if stats else {},
        "channel": channel.metrics() if channel else {},
        "stream": consumer.get_metrics() if consumer else {},
        "detectors": monitor.detector_metrics() if monitor else [],
    })


@app.get("/stats")
async def stats() -> JSONResponse:
    """Cumulative counters."""
    aggregator = get_stats()
    if aggregator is None:
        return JSONResponse({"error": "Service not started"}, status_code=503)

    snapshot = await aggregator.snapshot()
    return JSONResponse({
        **snapshot.to_store(),
        "degraded": _storage.degraded if _storage else False,
    })


@app.post("/control")
async def control(request: ControlMessage) -> JSONResponse:
    """Apply a control action. Responds with {"success": bool}."""
    channel = get_channel()
    if channel is None:
        return JSONResponse({"success": False}, status_code=503)

    result = await channel.send({"action": request.action})
    if not result.success:
        logger.error(f"Control action {request.action} failed: {result.error}")
        return JSONResponse({"success": False, "error": result.error}, status_code=500)

    return JSONResponse(result.response)


# =============================================================================
# WebSocket Endpoints
# =============================================================================

async def _write_outbound(websocket: WebSocket, dispatcher: VideoEventDispatcher) -> None:
    """Forward pause commands and warnings queued by the detector."""
    while True:
        outbound = await dispatcher.sink.get()
        await websocket.send_json(outbound)


@app.websocket("/ws/video")
async def video_session(websocket: WebSocket) -> None:
    """WebSocket endpoint for one monitored video element."""
    global _active_sessions, _invalid_messages

    await websocket.accept()
    if _monitor is None:
        await websocket.close(code=1013)
        return

    handle = f"ws-{next(_session_ids)}"
    dispatcher = VideoEventDispatcher(
        _monitor,
        handle=handle,
        maxsize=settings.stream.max_queue_size,
        max_width=settings.capture.max_width,
        max_height=settings.capture.max_height,
    )
    writer = asyncio.create_task(_write_outbound(websocket, dispatcher), name=f"writer-{handle}")
    _active_sessions += 1
    logger.info(f"Client connected to /ws/video [{handle}]")

    try:
        while not _shutdown_flag:
            raw = await websocket.receive_text()
            try:
                message = VideoMessage.model_validate_json(raw)
            except ValidationError as e:
                _invalid_messages += 1
                logger.warning(f"Invalid video message [{handle}]: {e.error_count()} errors")
                await websocket.send_json({"event": "error", "detail": e.errors(include_url=False)[0]["msg"]})
                continue
            await dispatcher.dispatch(message)

    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.warning(f"WebSocket error [{handle}]: {e}")
    finally:
        writer.cancel()
        dispatcher.close()
        _active_sessions -= 1
        logger.info(f"Client disconnected from /ws/video [{handle}]")


@app.websocket("/ws/stats")
async def stats_stream(websocket: WebSocket) -> None:
    """Push the counters whenever they are written to the local tier."""
    await websocket.accept()
    if _storage is None or _stats is None:
        await websocket.close(code=1013)
        return

    updates: asyncio.Queue = asyncio.Queue()

    def on_change(items: dict, tier: StorageTier) -> None:
        if tier == StorageTier.LOCAL and STATS_KEY in items:
            updates.put_nowait(items[STATS_KEY])

    unsubscribe = _storage.subscribe(on_change)
    logger.info("Client connected to /ws/stats")

    receiver = asyncio.create_task(websocket.receive_text())
    try:
        await websocket.send_json((await _stats.snapshot()).to_store())
        while not _shutdown_flag:
            update = asyncio.create_task(updates.get())
            done, _ = await asyncio.wait(
                {receiver, update},
                return_when=asyncio.FIRST_COMPLETED,
            )
            if receiver in done:
                update.cancel()
                if receiver.exception() is not None:
                    break
                # Inbound text is ignored
                receiver = asyncio.create_task(websocket.receive_text())
                continue
            await websocket.send_json(update.result())

    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.warning(f"WebSocket error: {e}")
    finally:
        unsubscribe()
        receiver.cancel()
        logger.info("Client disconnected from /ws/stats")


# =============================================================================
# Main Entry Point
# =============================================================================

def run() -> None:
    """Console entry point."""
    import uvicorn

    port = int(os.environ.get("PORT", settings.server.port))

    uvicorn.run(
        "flash_guard.main:app",
        host=settings.server.host,
        port=port,
        reload=False,
    )


if __name__ == "__main__":
    run()
