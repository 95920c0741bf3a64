from __future__ import annotations

import io

import numpy as np
from PIL import Image

TEMPLATE_COLOR = (255, 0, 0)


def png_bytes(img: Image.Image) -> bytes:
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def solid(size: tuple[int, int], color: tuple[int, ...], mode: str = "RGB") -> Image.Image:
    return Image.new(mode, size, color)


def gradient_photo(size: tuple[int, int]) -> Image.Image:
    """A colorful photo stand-in: every channel varies differently across the frame."""
    ramp = Image.linear_gradient("L").resize((256, 256))
    rgb = Image.merge("RGB", (ramp, ramp.rotate(90), ramp.transpose(Image.Transpose.FLIP_TOP_BOTTOM)))
    return rgb.resize(size, Image.Resampling.BILINEAR)


def disc_pixels(img: Image.Image, cx: float, cy: float, radius: float) -> np.ndarray:
    """RGBA values of all pixels whose centers lie within `radius` of (cx, cy)."""
    arr = np.asarray(img.convert("RGBA"))
    ys, xs = np.mgrid[0 : arr.shape[0], 0 : arr.shape[1]]
    inside = np.hypot(xs + 0.5 - cx, ys + 0.5 - cy) <= radius
    return arr[inside]
