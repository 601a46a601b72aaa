"""
Video Stream Consumer
=====================

WebSocket client that pulls the video socket protocol from a remote
capture stream instead of waiting for clients to connect.

This module provides the VideoStreamConsumer class which:
    - Connects to the configured capture stream URL
    - Parses and validates VideoMessage payloads
    - Warns on out-of-order frame timestamps
    - Dispatches messages to a VideoEventDispatcher
    - Sends pause/warning commands back over the same socket
    - Reconnects with backoff on disconnect

Design Rules:
    - Does NOT decode image data (the detector does, lazily)
    - Logs validation errors but continues processing
    - Each connection is a fresh video session
"""

import asyncio
import json
import logging
from typing import TYPE_CHECKING, Optional

import websockets
from pydantic import ValidationError
from websockets.exceptions import ConnectionClosed, ConnectionClosedError, ConnectionClosedOK

from flash_guard.models.input import VideoMessage
from flash_guard.stream.dispatcher import VideoEventDispatcher

if TYPE_CHECKING:
    from flash_guard.monitor import VideoMonitor


logger = logging.getLogger(__name__)


class VideoStreamConsumerMetrics:
    """Metrics for VideoStreamConsumer observability."""

    __slots__ = (
        "messages_received",
        "frames_received",
        "commands_sent",
        "reconnect_count",
        "last_timestamp_ms",
        "validation_warnings",
        "parse_errors",
    )

    def __init__(self) -> None:
        self.messages_received: int = 0
        self.frames_received: int = 0
        self.commands_sent: int = 0
        self.reconnect_count: int = 0
        self.last_timestamp_ms: float = -1.0
        self.validation_warnings: int = 0
        self.parse_errors: int = 0

    def to_dict(self) -> dict:
        """Export metrics as dict."""
        return {
            "messages_received": self.messages_received,
            "frames_received": self.frames_received,
            "commands_sent": self.commands_sent,
            "reconnect_count": self.reconnect_count,
            "last_timestamp_ms": self.last_timestamp_ms,
            "validation_warnings": self.validation_warnings,
            "parse_errors": self.parse_errors,
        }


class VideoStreamConsumer:
    """
    WebSocket consumer for a remote capture stream.

    Attributes:
        url: WebSocket URL to connect to
        monitor: VideoMonitor that owns the detectors
        connected: Whether currently connected
        metrics: Operational metrics

    Example:
        consumer = VideoStreamConsumer(
            url="ws://localhost:8000/ws/capture",
            monitor=monitor,
            reconnect_backoff_ms=500,
        )
        task = asyncio.create_task(consumer.run())
        ...
        await consumer.stop()
        await task
    """

    def __init__(
        self,
        url: str,
        monitor: "VideoMonitor",
        reconnect_backoff_ms: int = 500,
        max_reconnect_attempts: int = 0,
        max_queue_size: int = 8,
    ) -> None:
        """
        Initialize stream consumer.

        Args:
            url: WebSocket URL of the capture stream
            monitor: VideoMonitor receiving lifecycle events
            reconnect_backoff_ms: Backoff between reconnect attempts
            max_reconnect_attempts: Max attempts (0 = unlimited)
            max_queue_size: Frame buffer size per session
        """
        self.url = url
        self.monitor = monitor
        self.reconnect_backoff_ms = reconnect_backoff_ms
        self.max_reconnect_attempts = max_reconnect_attempts
        self.max_queue_size = max_queue_size

        self._websocket = None
        self._connected: bool = False
        self._running: bool = False
        self._stop_event: asyncio.Event = asyncio.Event()
        self._session_count: int = 0

        self.metrics = VideoStreamConsumerMetrics()

    @property
    def connected(self) -> bool:
        """Whether currently connected to the capture stream."""
        return self._connected

    async def run(self) -> None:
        """
        Start consuming.

        Runs until stop() is called, reconnecting on disconnect.
        """
        self._running = True
        self._stop_event.clear()

        logger.info(f"VideoStreamConsumer starting, connecting to {self.url}")

        while self._running:
            try:
                await self._connect_and_consume()
            except Exception as e:
                if not self._running:
                    break

                logger.error(f"Connection error: {e}")
                self._connected = False

                if (
                    self.max_reconnect_attempts > 0
                    and self.metrics.reconnect_count >= self.max_reconnect_attempts
                ):
                    logger.error(
                        f"Max reconnect attempts ({self.max_reconnect_attempts}) exceeded"
                    )
                    break

                self.metrics.reconnect_count += 1
                backoff_sec = self.reconnect_backoff_ms / 1000.0
                logger.info(
                    f"Reconnecting in {backoff_sec:.1f}s "
                    f"(attempt {self.metrics.reconnect_count})"
                )

                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=backoff_sec)
                    break
                except asyncio.TimeoutError:
                    pass
            else:
                # Closed normally by the server; wait before reconnecting
                if self._running:
                    try:
                        await asyncio.wait_for(
                            self._stop_event.wait(),
                            timeout=self.reconnect_backoff_ms / 1000.0,
                        )
                    except asyncio.TimeoutError:
                        pass

        logger.info("VideoStreamConsumer stopped")

    async def stop(self) -> None:
        """Signal the run loop to exit and close the connection."""
        logger.info("VideoStreamConsumer stopping...")
        self._running = False
        self._stop_event.set()

        if self._websocket is not None:
            try:
                await self._websocket.close()
            except ConnectionClosed as e:
                logger.debug(f"Connection already closed: {e}")

        self._connected = False

    async def _connect_and_consume(self) -> None:
        """Connect and run one video session until disconnect."""
        async with websockets.connect(
            self.url,
            ping_interval=20,
            ping_timeout=10,
            close_timeout=5,
        ) as ws:
            self._websocket = ws
            self._connected = True
            self._session_count += 1
            self.metrics.last_timestamp_ms = -1.0
            logger.info(f"Connected to capture stream: {self.url}")

            dispatcher = VideoEventDispatcher(
                self.monitor,
                handle=f"stream-{self._session_count}",
                maxsize=self.max_queue_size,
                max_width=self.monitor.capture.max_width,
                max_height=self.monitor.capture.max_height,
            )
            writer = asyncio.create_task(self._write_commands(ws, dispatcher))

            try:
                async for raw in ws:
                    if not self._running:
                        break

                    message = self._parse_and_validate(raw)
                    if message is not None:
                        await dispatcher.dispatch(message)

            except ConnectionClosedOK:
                logger.info("Connection closed normally")
            except ConnectionClosedError as e:
                logger.warning(f"Connection closed with error: {e}")
                raise
            finally:
                writer.cancel()
                dispatcher.close()
                self._connected = False
                self._websocket = None

    async def _write_commands(self, ws, dispatcher: VideoEventDispatcher) -> None:
        while True:
            outbound = await dispatcher.sink.get()
            try:
                await ws.send(json.dumps(outbound))
            except ConnectionClosed:
                logger.warning(f"Dropped outbound message, connection closed: {outbound}")
                return
            self.metrics.commands_sent += 1

    def _parse_and_validate(self, raw) -> Optional[VideoMessage]:
        """
        Parse and validate a raw WebSocket message.

        Timestamp ordering violations are logged, not rejected; the flash
        tracker discards its window when time goes backwards.
        """
        try:
            message = VideoMessage.model_validate_json(raw)
        except ValidationError as e:
            self.metrics.parse_errors += 1
            logger.error(f"Invalid video message: {e.error_count()} errors: {e.errors()[0]['msg']}")
            return None

        self.metrics.messages_received += 1

        if message.type == "frame":
            self.metrics.frames_received += 1
            if 0 <= self.metrics.last_timestamp_ms and message.timestamp_ms < self.metrics.last_timestamp_ms:
                self.metrics.validation_warnings += 1
                logger.warning(
                    f"Timestamp went backwards: got {message.timestamp_ms:.1f}ms, "
                    f"previous was {self.metrics.last_timestamp_ms:.1f}ms"
                )
            self.metrics.last_timestamp_ms = message.timestamp_ms
        elif message.type == "seeking":
            self.metrics.last_timestamp_ms = -1.0

        return message

    def get_metrics(self) -> dict:
        return {
            "connected": self._connected,
            "sessions": self._session_count,
            **self.metrics.to_dict(),
        }
