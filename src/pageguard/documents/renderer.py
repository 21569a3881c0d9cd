"""Rasterize documents to PNG page images."""

import io
from dataclasses import dataclass

import fitz  # PyMuPDF
from PIL import Image

# PDF user space is 72 units per inch; scale 1.0 renders at 72 dpi
DEFAULT_SCALE = 2.0


@dataclass(frozen=True)
class PageInfo:
    page_number: int
    width: int
    height: int


def _open_pdf(data: bytes) -> fitz.Document:
    return fitz.open(stream=data, filetype="pdf")


def get_page_count(data: bytes) -> int:
    with _open_pdf(data) as doc:
        return doc.page_count


def render_page(data: bytes, page_number: int, scale: float = DEFAULT_SCALE) -> bytes:
    """Render one 1-based page of a PDF to PNG bytes."""
    with _open_pdf(data) as doc:
        if page_number < 1 or page_number > doc.page_count:
            raise ValueError(
                f"Page {page_number} does not exist. Document has {doc.page_count} pages."
            )
        page = doc[page_number - 1]
        pix = page.get_pixmap(matrix=fitz.Matrix(scale, scale), alpha=False)
        return pix.tobytes("png")


def get_page_info(data: bytes, page_number: int) -> PageInfo:
    """Page dimensions at scale 1.0, without rendering."""
    with _open_pdf(data) as doc:
        if page_number < 1 or page_number > doc.page_count:
            raise ValueError(f"Page {page_number} does not exist.")
        rect = doc[page_number - 1].rect
        return PageInfo(
            page_number=page_number,
            width=round(rect.width),
            height=round(rect.height),
        )


def is_valid_pdf(data: bytes) -> bool:
    try:
        with _open_pdf(data) as doc:
            return doc.page_count > 0
    except (RuntimeError, ValueError):
        return False


def normalize_image(data: bytes) -> bytes:
    """Re-encode a stored raster image as PNG, dropping any embedded metadata."""
    with Image.open(io.BytesIO(data)) as img:
        img.load()
        if img.mode not in ("RGB", "RGBA", "L", "LA"):
            img = img.convert("RGBA" if "A" in img.getbands() else "RGB")
        out = io.BytesIO()
        img.save(out, format="PNG")
        return out.getvalue()
