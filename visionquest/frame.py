"""Turn uploaded images and camera frames into the classifier's input buffer."""

import numpy as np
from PIL import Image, ImageOps

from .config import IMG_SIZE
from .exceptions import InputUnavailableError


def load_image(uploaded_file) -> Image.Image:
    """Load and auto-rotate mobile/desktop images."""
    img = Image.open(uploaded_file)
    img = ImageOps.exif_transpose(img)
    return img.convert("RGB")


def crop_box(width: int, height: int) -> tuple[int, float, float]:
    """Largest centered square: ``(size, offset_x, offset_y)``."""
    size = min(width, height)
    return size, (width - size) / 2, (height - size) / 2


def _as_image(source) -> Image.Image:
    if isinstance(source, Image.Image):
        return source
    frame = np.asarray(source)
    if frame.ndim < 2 or frame.shape[0] == 0 or frame.shape[1] == 0:
        raise InputUnavailableError("Input source unavailable")
    if frame.dtype != np.uint8:
        frame = np.clip(frame, 0, 255).astype(np.uint8)
    return Image.fromarray(frame)


class FrameNormalizer:
    """Center-crops a source to a square and scales it to ``size`` x ``size``.

    The same output buffer is reused for every call, so hold on to a copy
    if a previous frame is still needed.
    """

    def __init__(self, size: int = IMG_SIZE):
        self.size = size
        self._buffer = np.zeros((size, size, 3), dtype=np.uint8)

    def normalize(self, source, is_mirrored: bool = False) -> np.ndarray:
        if source is None:
            raise InputUnavailableError("Input source unavailable")
        img = _as_image(source)
        width, height = img.size
        if width == 0 or height == 0:
            raise InputUnavailableError("Input source unavailable")
        if img.mode != "RGB":
            img = img.convert("RGB")

        side, offset_x, offset_y = crop_box(width, height)
        square = img.resize(
            (self.size, self.size),
            resample=Image.BILINEAR,
            box=(offset_x, offset_y, offset_x + side, offset_y + side),
        )
        if is_mirrored:
            square = ImageOps.mirror(square)

        np.copyto(self._buffer, np.asarray(square, dtype=np.uint8))
        return self._buffer
