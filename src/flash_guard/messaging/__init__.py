"""
Messaging Module
================

Action-routed request/response channel with a fire-and-forget wrapper.
"""

from flash_guard.messaging.channel import MessageChannel, SendResult

__all__ = ["MessageChannel", "SendResult"]
