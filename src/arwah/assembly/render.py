from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

import numpy as np
from PIL import Image, ImageChops, ImageDraw, ImageFont, ImageOps

from arwah.config import PACKAGE_DIR, settings
from arwah.errors import DecodeError, EncodeError

logger = logging.getLogger(__name__)

# The template's photo slot sits this far above the vertical center.
ANCHOR_OFFSET_PX = 50
# Distance from the bottom of the circle to the caption baseline.
CAPTION_GAP_PX = 50
SHADOW_OFFSET_PX = 2
MIN_CAPTION_PX = 36

CIRCLE_SIZE_RANGE = (0.10, 0.30)
FEATHER_RANGE = (0.0, 1.0)


@dataclass(frozen=True)
class CompositionParameters:
    """
    Everything besides the photo and the template that decides how a card looks.

    circle_size is a fraction of the template's smaller side, feather a fraction
    of the radius (halved) that fades out towards the circle edge.
    """

    circle_size: float = 0.18
    feather: float = 0.30
    caption: str = ""

    def __post_init__(self) -> None:
        lo, hi = CIRCLE_SIZE_RANGE
        if not lo <= self.circle_size <= hi:
            raise ValueError(f"circle_size must be within [{lo}, {hi}], got {self.circle_size}")
        lo, hi = FEATHER_RANGE
        if not lo <= self.feather <= hi:
            raise ValueError(f"feather must be within [{lo}, {hi}], got {self.feather}")

    @classmethod
    def from_percent(cls, circle_size: float, feather: float, caption: str | None = "") -> CompositionParameters:
        """Build parameters from the slider scale (10-30 and 0-100)."""
        return cls(circle_size=float(circle_size) / 100.0, feather=float(feather) / 100.0, caption=caption or "")


@dataclass(frozen=True)
class CardGeometry:
    center_x: float
    center_y: float
    radius: float
    # The square crop that carries the photo, in canvas pixels.
    side: int
    left: int
    top: int

    @property
    def caption_baseline(self) -> float:
        return self.center_y + self.radius + CAPTION_GAP_PX


def card_geometry(size: tuple[int, int], circle_size: float) -> CardGeometry:
    w, h = size
    cx = w / 2
    cy = h / 2 - ANCHOR_OFFSET_PX
    radius = min(w, h) * circle_size
    side = max(1, int(round(radius * 2)))
    return CardGeometry(
        center_x=cx,
        center_y=cy,
        radius=radius,
        side=side,
        left=int(round(cx - side / 2)),
        top=int(round(cy - side / 2)),
    )


def composite(source: Image.Image, template: Image.Image, params: CompositionParameters) -> Image.Image:
    """
    Deterministic card renderer:
    - template drawn unscaled as the background
    - photo cover-fit into the circle, desaturated, alpha-feathered at the rim
    - optional upper-cased caption under the circle

    Neither input image is modified.
    """
    canvas = template.convert("RGBA")
    geo = card_geometry(canvas.size, params.circle_size)

    crop = _resize_cover(source.convert("RGBA"), (geo.side, geo.side))
    disc = _feather(_desaturate(crop), geo.radius, params.feather)

    # Paste onto a transparent layer first so a slot hanging off the canvas is clipped.
    layer = Image.new("RGBA", canvas.size, (0, 0, 0, 0))
    layer.paste(disc, (geo.left, geo.top))
    canvas = Image.alpha_composite(canvas, layer)

    caption = (params.caption or "").strip()
    if caption:
        canvas = _draw_caption(canvas, caption.upper(), geo)

    logger.debug(
        "composited %sx%s card: radius=%.1f feather=%.2f caption=%r",
        canvas.width,
        canvas.height,
        geo.radius,
        params.feather,
        caption,
    )
    return canvas


def render_card_png(source: Image.Image, template: Image.Image, params: CompositionParameters) -> bytes:
    return encode_png(composite(source, template, params))


def decode_photo(data: bytes) -> Image.Image:
    """
    Decode uploaded bytes into an upright image. Raises DecodeError for anything
    Pillow cannot read.
    """
    if not data:
        raise DecodeError("no image data supplied")
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (OSError, SyntaxError, ValueError, Image.DecompressionBombError) as exc:
        raise DecodeError(f"could not decode photo: {exc}") from exc
    # Phones store rotation in EXIF; render what the user sees.
    return ImageOps.exif_transpose(img)


def encode_png(img: Image.Image) -> bytes:
    buf = io.BytesIO()
    try:
        img.save(buf, format="PNG")
    except (OSError, ValueError) as exc:
        raise EncodeError(f"could not encode card as PNG: {exc}") from exc
    data = buf.getvalue()
    if not data:
        raise EncodeError("PNG encoder produced no data")
    return data


def load_template(path: Path | str | None = None) -> Image.Image:
    """
    Load the card template once per path. The returned image is shared, callers
    must not mutate it.
    """
    return _read_template(str(path or settings.template_path))


@lru_cache(maxsize=4)
def _read_template(path: str) -> Image.Image:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(
            f"Card template not found: {p}. Place the template image there or set ARWAH_TEMPLATE_PATH."
        )
    with Image.open(p) as im:
        template = im.convert("RGBA")
    logger.info("loaded template %s (%sx%s)", p, template.width, template.height)
    return template


def _resize_cover(img: Image.Image, size: tuple[int, int]) -> Image.Image:
    """
    Resize to cover the target box (no stretching), then center-crop.
    """
    tw, th = size
    iw, ih = img.size
    scale = max(tw / iw, th / ih)
    # Never round below the target or the crop would pick up empty pixels.
    nw, nh = max(tw, int(round(iw * scale))), max(th, int(round(ih * scale)))
    resized = img.resize((nw, nh), Image.Resampling.LANCZOS)

    left = (nw - tw) // 2
    top = (nh - th) // 2
    return resized.crop((left, top, left + tw, top + th))


def _desaturate(img_rgba: Image.Image) -> Image.Image:
    """
    Replace RGB with ITU-R 601 luma (0.299 R + 0.587 G + 0.114 B), keep alpha.
    """
    gray = img_rgba.convert("L")
    return Image.merge("RGBA", (gray, gray, gray, img_rgba.getchannel("A")))


def _feather_mask(side: int, radius: float, feather: float) -> Image.Image:
    """
    Radial alpha: opaque up to the inner radius, transparent from the circle edge
    outwards, linear in between. A band thinner than a pixel gives a hard edge.
    """
    inner = max(0.0, radius * (1.0 - feather / 2.0))
    outer = radius

    # Distance of every pixel center from the middle of the square.
    coords = np.arange(side, dtype=np.float64) + 0.5 - side / 2.0
    dist = np.hypot(coords[np.newaxis, :], coords[:, np.newaxis])

    if outer - inner < 1.0:
        alpha = (dist < outer).astype(np.float64)
    else:
        alpha = np.clip((outer - dist) / (outer - inner), 0.0, 1.0)
    return Image.fromarray(np.round(alpha * 255.0).astype(np.uint8))


def _feather(img_rgba: Image.Image, radius: float, feather: float) -> Image.Image:
    mask = _feather_mask(img_rgba.width, radius, feather)
    out = img_rgba.copy()
    out.putalpha(ImageChops.multiply(img_rgba.getchannel("A"), mask))
    return out


def _draw_caption(canvas: Image.Image, text: str, geo: CardGeometry) -> Image.Image:
    """
    Center the caption under the circle, baseline-anchored, with a light shadow
    drawn first for contrast against busy templates.
    """
    font_px = int(round(max(MIN_CAPTION_PX, canvas.width * 0.045)))
    font = _load_font(font_px)
    x, y = geo.center_x, geo.caption_baseline

    shadow = Image.new("RGBA", canvas.size, (0, 0, 0, 0))
    ImageDraw.Draw(shadow).text(
        (x + SHADOW_OFFSET_PX, y + SHADOW_OFFSET_PX),
        text,
        font=font,
        fill=tuple(settings.caption_shadow_fill),
        anchor="ms",
    )
    canvas = Image.alpha_composite(canvas, shadow)

    solid = Image.new("RGBA", canvas.size, (0, 0, 0, 0))
    ImageDraw.Draw(solid).text((x, y), text, font=font, fill=settings.caption_fill, anchor="ms")
    return Image.alpha_composite(canvas, solid)


@lru_cache(maxsize=16)
def _load_font(size: int) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    """
    Prefer a bold TTF font (configured, bundled or system). If none is found, fall
    back to Pillow's default font at the requested size.
    """
    candidates: list[str] = [
        str(PACKAGE_DIR / "assets" / "fonts" / "DejaVuSerif-Bold.ttf"),
        "/usr/share/fonts/truetype/dejavu/DejaVuSerif-Bold.ttf",
        "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
        "/System/Library/Fonts/Supplemental/Times New Roman Bold.ttf",
        "/Library/Fonts/Arial Bold.ttf",
        "C:\\Windows\\Fonts\\timesbd.ttf",
        "C:\\Windows\\Fonts\\arialbd.ttf",
    ]
    if settings.caption_font_path:
        candidates.insert(0, settings.caption_font_path)

    for c in candidates:
        p = Path(c)
        if not p.exists():
            continue
        try:
            return ImageFont.truetype(str(p), size=size)
        except OSError:
            logger.warning("could not load font %s", p)
    return ImageFont.load_default(size=size)
