"""Render access code payloads as PNG images."""

import io
import logging

import qrcode
from qrcode.exceptions import DataOverflowError

from .const import (
    DEFAULT_SCALE_FACTOR,
    MAX_SCALE_FACTOR,
    MIN_SCALE_FACTOR,
    QR_BORDER,
    QR_BOX_SIZE,
)

_LOGGER = logging.getLogger(__name__)


class ArtifactRenderError(Exception):
    """Raised when a payload cannot be rendered as a QR code."""


def box_size_for_scale(scale_factor: float) -> int:
    """Return the pixel size of one QR module for a display scale."""
    scale = max(MIN_SCALE_FACTOR, min(MAX_SCALE_FACTOR, scale_factor))
    return max(1, round(QR_BOX_SIZE * scale))


def render_qr_code(payload: str, scale_factor: float = DEFAULT_SCALE_FACTOR) -> bytes:
    """Render ``payload`` as a PNG encoded QR code.

    Args:
        payload: Access code string.
        scale_factor: Display scale preference (0.4-1.0).

    Returns:
        PNG image bytes.

    Raises:
        ArtifactRenderError: If the payload is empty or too long to encode.

    """
    if not payload:
        error_msg = "Cannot render an empty access code"
        raise ArtifactRenderError(error_msg)

    code = qrcode.QRCode(
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=box_size_for_scale(scale_factor),
        border=QR_BORDER,
    )
    code.add_data(payload)
    try:
        code.make(fit=True)
    except DataOverflowError as err:
        error_msg = f"Access code too long to encode ({len(payload)} characters)"
        raise ArtifactRenderError(error_msg) from err

    buffer = io.BytesIO()
    code.make_image(fill_color="black", back_color="white").save(buffer, format="PNG")
    _LOGGER.debug("Rendered access code (version %s)", code.version)
    return buffer.getvalue()
