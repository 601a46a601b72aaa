"""
Error Types
===========

Exception hierarchy for FlashGuard.

None of these are fatal to the service as a whole. Each one is caught at
the boundary of the component that owns the failing resource:

    - FrameCaptureError: raised by frame sources, swallowed per-frame by the detector
    - ImageDecodeError: raised by the decoder, surfaced as a capture failure
    - PersistenceError: raised by storage tiers after retries are exhausted
    - ReceiverUnavailableError: no handler registered for a message action
"""


class FlashGuardError(Exception):
    """Base class for all FlashGuard errors."""
    pass


class FrameCaptureError(FlashGuardError):
    """Raised when a frame snapshot cannot be obtained from a source."""
    pass


class ImageDecodeError(FrameCaptureError):
    """Raised when an encoded frame cannot be decoded into pixels."""
    pass


class PersistenceError(FlashGuardError):
    """Raised when a storage write fails after all retries."""
    pass


class ReceiverUnavailableError(FlashGuardError):
    """Raised when a message is sent to an action nobody listens for."""
    pass
