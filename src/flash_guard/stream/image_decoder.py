"""
Image Decoder
=============

Decoding of encoded frames into capped RGBA bitmaps.

Design Rules:
    - This is the ONLY place in the codebase that decodes images
    - Every bitmap leaving this module is RGBA uint8 and fits the capture cap
    - Malformed shapes are coerced, never rejected; only undecodable
      payloads raise ImageDecodeError
"""

import base64
import binascii
import logging
from typing import Optional

import cv2
import numpy as np

from flash_guard.errors import ImageDecodeError
from flash_guard.stream.frame import EncodedFrame, FrameSample


logger = logging.getLogger(__name__)


def to_rgba(pixels: np.ndarray) -> Optional[np.ndarray]:
    """
    Coerce a bitmap to RGBA uint8.

    Accepts grayscale (H, W), RGB (H, W, 3) and RGBA (H, W, 4) arrays.

    Returns:
        RGBA array, or None if the bitmap has no pixels or an unusable shape.
    """
    pixels = np.asarray(pixels)
    if pixels.size == 0 or pixels.ndim not in (2, 3):
        return None

    if pixels.dtype != np.uint8:
        pixels = np.clip(pixels, 0, 255).astype(np.uint8)

    if pixels.ndim == 2:
        return cv2.cvtColor(pixels, cv2.COLOR_GRAY2RGBA)

    channels = pixels.shape[2]
    if channels == 4:
        return pixels
    if channels == 3:
        return cv2.cvtColor(pixels, cv2.COLOR_RGB2RGBA)
    if channels == 1:
        return cv2.cvtColor(pixels[:, :, 0], cv2.COLOR_GRAY2RGBA)
    return None


def cap_resolution(pixels: np.ndarray, max_width: int = 640, max_height: int = 360) -> np.ndarray:
    """
    Downscale a bitmap so it fits within max_width x max_height.

    Aspect ratio is preserved. Bitmaps already within the cap are
    returned unchanged.
    """
    height, width = pixels.shape[:2]
    if width <= max_width and height <= max_height:
        return pixels

    scale = min(max_width / width, max_height / height)
    new_width = max(1, min(max_width, int(round(width * scale))))
    new_height = max(1, min(max_height, int(round(height * scale))))
    return cv2.resize(pixels, (new_width, new_height), interpolation=cv2.INTER_AREA)


def decode_image_rgba(image_b64: str) -> np.ndarray:
    """
    Decode a base64 JPEG/PNG payload to an RGBA numpy array.

    Raises:
        ImageDecodeError: If the payload is not valid base64 or not an image
    """
    try:
        image_bytes = base64.b64decode(image_b64, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ImageDecodeError(f"Base64 decode failed: {e}")

    nparr = np.frombuffer(image_bytes, np.uint8)
    if nparr.size == 0:
        raise ImageDecodeError("Empty image payload")

    bgr = cv2.imdecode(nparr, cv2.IMREAD_COLOR)
    if bgr is None:
        raise ImageDecodeError("cv2.imdecode returned None")

    return cv2.cvtColor(bgr, cv2.COLOR_BGR2RGBA)


def decode_frame(
    frame: EncodedFrame,
    max_width: int = 640,
    max_height: int = 360,
) -> FrameSample:
    """
    Decode an encoded frame into a capped FrameSample.

    Raises:
        ImageDecodeError: If decoding fails
    """
    try:
        rgba = decode_image_rgba(frame.image_b64)
    except ImageDecodeError as e:
        raise ImageDecodeError(f"Frame {frame.frame_id}: {e}")

    return FrameSample.from_pixels(
        cap_resolution(rgba, max_width, max_height),
        frame.timestamp_ms,
    )


def bgr_to_sample(
    bgr: np.ndarray,
    timestamp_ms: float,
    max_width: int = 640,
    max_height: int = 360,
) -> FrameSample:
    """Convert a BGR frame read by cv2.VideoCapture into a capped FrameSample."""
    rgba = cv2.cvtColor(bgr, cv2.COLOR_BGR2RGBA)
    return FrameSample.from_pixels(
        cap_resolution(rgba, max_width, max_height),
        timestamp_ms,
    )


def encode_image_b64(rgba: np.ndarray, ext: str = ".png") -> str:
    """Encode an RGBA bitmap as base64 PNG/JPEG (used by capture clients and tests)."""
    bgr = cv2.cvtColor(rgba, cv2.COLOR_RGBA2BGR)
    ok, buf = cv2.imencode(ext, bgr)
    if not ok:
        raise ImageDecodeError(f"cv2.imencode failed for {ext}")
    return base64.b64encode(buf.tobytes()).decode("ascii")
