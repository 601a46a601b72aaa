"""
Message Channel
===============

In-process request/response messaging between detectors and the background
services (stats aggregator, control actions).

Messages are dicts with an ``action`` key:

    {"action": "updateStats", "stat": "videosMonitored", "count": 1}

``send`` never raises for delivery problems. It returns a SendResult
whose ``success`` is False when no receiver is registered for the action
or the receiver failed. ``fire_and_forget`` schedules a send and only logs
failures; it is the documented path for sends whose result is not needed.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from flash_guard.errors import ReceiverUnavailableError


logger = logging.getLogger(__name__)


Handler = Callable[[Dict[str, Any]], Awaitable[Any]]


@dataclass(frozen=True, slots=True)
class SendResult:
    """Outcome of a send."""

    success: bool
    response: Any = None
    error: Optional[str] = None


class MessageChannel:
    """
    Action-routed message channel.

    Example:
        channel = MessageChannel()
        channel.register("updateStats", aggregator.handle_message)
        result = await channel.send({"action": "updateStats", "stat": "warningsIssued"})
        if not result.success:
            ...
    """

    def __init__(self) -> None:
        self._handlers: Dict[str, Handler] = {}
        self._pending: Set[asyncio.Task] = set()
        self._sent: int = 0
        self._failed: int = 0

    def register(self, action: str, handler: Handler) -> None:
        """Register the receiver for an action, replacing any previous one."""
        self._handlers[action] = handler
        logger.debug(f"Registered receiver for action '{action}'")

    def unregister(self, action: str) -> None:
        self._handlers.pop(action, None)

    def has_receiver(self, action: str) -> bool:
        return action in self._handlers

    async def send(self, message: Dict[str, Any]) -> SendResult:
        """
        Deliver a message to the receiver of its action.

        Args:
            message: Dict with an ``action`` key

        Returns:
            SendResult with the receiver's response, or the failure reason.
        """
        self._sent += 1
        action = message.get("action")

        try:
            handler = self._handlers.get(action) if isinstance(action, str) else None
            if handler is None:
                raise ReceiverUnavailableError(f"No receiver for action {action!r}")
            response = await handler(message)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._failed += 1
            return SendResult(success=False, error=str(e))

        return SendResult(success=True, response=response)

    def fire_and_forget(self, message: Dict[str, Any]) -> asyncio.Task:
        """
        Send without waiting for the result. Failures are logged.

        Must be called inside a running event loop.
        """
        task = asyncio.create_task(self._send_logged(message))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _send_logged(self, message: Dict[str, Any]) -> None:
        result = await self.send(message)
        if not result.success:
            logger.warning(f"Message {message.get('action')!r} not delivered: {result.error}")

    async def drain(self) -> None:
        """Wait for all outstanding fire-and-forget sends."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def metrics(self) -> dict:
        return {
            "messages_sent": self._sent,
            "messages_failed": self._failed,
            "pending_sends": len(self._pending),
            "receivers": sorted(self._handlers),
        }
