"""Visible provenance watermarks for rendered pages.

The label identifies who was shown the page and when.  It is tiled over
the whole surface at an angle so cropping a region does not remove it.
Output depends only on the inputs: no jitter, no random offsets.
"""

import io
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from PIL import Image, ImageDraw, ImageFont

SEPARATOR = " | "
SHORT_ID_LENGTH = 8

PATTERN_WIDTH = 400
PATTERN_HEIGHT = 100
ANGLE = 30  # counter-clockwise, degrees
DEFAULT_OPACITY = 0.15
DEFAULT_FONT_SIZE = 14
DEFAULT_COLOR = (0x88, 0x88, 0x88)


@dataclass(frozen=True)
class WatermarkInfo:
    ip: Optional[str] = None
    timestamp: Optional[str] = None
    session_id: Optional[str] = None
    request_id: Optional[str] = None
    custom_text: Optional[str] = None


@dataclass(frozen=True)
class WatermarkStyle:
    opacity: float = DEFAULT_OPACITY
    font_size: int = DEFAULT_FONT_SIZE
    color: tuple[int, int, int] = DEFAULT_COLOR


def build_watermark_text(info: WatermarkInfo) -> str:
    """Join the present fields; absent ones are left out entirely.

    Session and request ids only ever appear as their first eight characters.
    """
    parts: list[str] = []
    if info.ip:
        parts.append(f"IP: {info.ip}")
    if info.timestamp:
        parts.append(f"Time: {info.timestamp}")
    if info.session_id:
        parts.append(f"Session: {info.session_id[:SHORT_ID_LENGTH]}")
    if info.request_id:
        parts.append(f"Req: {info.request_id[:SHORT_ID_LENGTH]}")
    if info.custom_text:
        parts.append(info.custom_text)
    return SEPARATOR.join(parts)


def watermark_info_for(
    policy,
    ip: str | None,
    timestamp: str | None,
    session_id: str | None,
) -> WatermarkInfo:
    """Apply a document's WatermarkPolicy to the request's provenance."""
    return WatermarkInfo(
        ip=ip if policy.show_ip else None,
        timestamp=timestamp if policy.show_timestamp else None,
        session_id=session_id if policy.show_session_id else None,
        custom_text=policy.custom_text or None,
    )


@lru_cache(maxsize=8)
def _font(size: int) -> ImageFont.ImageFont:
    return ImageFont.load_default(size=size)


def _label_tile(text: str, style: WatermarkStyle) -> Image.Image:
    """One rotated copy of the label on a transparent background."""
    font = _font(style.font_size)
    scratch = ImageDraw.Draw(Image.new("RGBA", (1, 1)))
    left, top, right, bottom = scratch.textbbox((0, 0), text, font=font)
    width, height = max(1, right - left), max(1, bottom - top)

    alpha = max(0, min(255, round(255 * style.opacity)))
    tile = Image.new("RGBA", (width + 4, height + 4), (0, 0, 0, 0))
    ImageDraw.Draw(tile).text(
        (2 - left, 2 - top), text, font=font, fill=(*style.color, alpha),
    )
    return tile.rotate(ANGLE, expand=True, resample=Image.Resampling.BICUBIC)


def compose(
    image: bytes,
    info: WatermarkInfo,
    style: WatermarkStyle | None = None,
) -> bytes:
    """Tile the watermark label over ``image`` and return PNG bytes.

    With nothing to show the input is returned untouched, byte for byte.
    """
    text = build_watermark_text(info)
    if not text:
        return image

    style = style or WatermarkStyle()
    with Image.open(io.BytesIO(image)) as src:
        base = src.convert("RGBA")

    tile = _label_tile(text, style)
    overlay = Image.new("RGBA", base.size, (0, 0, 0, 0))
    # odd rows shift by half a cell; tiles hanging off the edges are clipped
    for row, y in enumerate(range(-tile.height, base.height + tile.height, PATTERN_HEIGHT)):
        shift = (PATTERN_WIDTH // 2) if row % 2 else 0
        for x in range(-tile.width + shift, base.width + tile.width, PATTERN_WIDTH):
            overlay.paste(tile, (x, y), tile)

    out = io.BytesIO()
    Image.alpha_composite(base, overlay).save(out, format="PNG")
    return out.getvalue()
