"""
Signature page rendering and document assembly.

This module turns the facts of a signing event into one human-readable
page and appends it to the original document.

- Page drawing and text metrics: reportlab (standard Helvetica faces).
- Loading, page appending and serialization: pikepdf.

Trust boundary:
- This module does NOT compute digests or persist anything.
- Values are drawn exactly as supplied; long values are word-wrapped to
  the frame width and unbreakable tokens (hex digests) are hard-split.
"""

from __future__ import annotations

import io
from typing import List, Sequence, Tuple

import pikepdf
from pydantic import BaseModel, ConfigDict
from reportlab.lib.pagesizes import A4
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.pdfgen import canvas

BANNER_TEXT = "DIGITAL SIGNATURE PROTOCOL"

INSTRUCTIONS_TITLE = "Verification Instructions:"

INSTRUCTIONS = (
    "To verify this document, visit walletsign.io and use the verification tool.",
    "Upload this complete PDF file (including this signature protocol page). The",
    "platform will verify the document's authenticity and display all signature",
    "details.",
)

BOLD_FONT = "Helvetica-Bold"
REGULAR_FONT = "Helvetica"

VALUE_FONT_SIZE = 12
MIN_VALUE_FONT_SIZE = 7
LINE_HEIGHT = 15
LABEL_GAP = 8
DETAIL_GAP = 25

ACCENT = (0.25, 0.53, 0.96)
MUTED = (0.4, 0.4, 0.4)
BANNER_FILL = (0.95, 0.97, 1.0)

INSTRUCTIONS_Y = 100

# Lowest point a detail frame may reach
INSTRUCTIONS_TOP = INSTRUCTIONS_Y + 25

# Signature pages are always A4 portrait, whatever the original uses
PAGE_SIZE = A4


class PdfAssemblyError(RuntimeError):
    """Raised when the original document cannot be loaded or re-serialized."""


class PageDetail(BaseModel):
    """One labelled value on the signature page."""

    label: str
    value: str

    model_config = ConfigDict(frozen=True)


# ------------------------------------------------------------------
# Text layout
# ------------------------------------------------------------------

def _split_token(token: str, font: str, size: float, max_width: float) -> List[str]:
    pieces: List[str] = []
    current = ""
    for char in token:
        candidate = current + char
        if current and stringWidth(candidate, font, size) > max_width:
            pieces.append(current)
            current = char
        else:
            current = candidate
    if current:
        pieces.append(current)
    return pieces


def wrap_text(text: str, font: str, size: float, max_width: float) -> List[str]:
    """
    Break ``text`` into lines no wider than ``max_width`` points.

    Explicit newlines are preserved as paragraph breaks.
    """
    lines: List[str] = []

    for paragraph in text.split("\n"):
        line = ""
        for word in paragraph.split(" "):
            if not word:
                continue

            if stringWidth(word, font, size) > max_width:
                if line:
                    lines.append(line)
                *complete, line = _split_token(word, font, size, max_width)
                lines.extend(complete)
                continue

            candidate = f"{line} {word}" if line else word
            if line and stringWidth(candidate, font, size) > max_width:
                lines.append(line)
                line = word
            else:
                line = candidate

        lines.append(line)

    return lines


# ------------------------------------------------------------------
# Rendering
# ------------------------------------------------------------------

def _frame_height(line_count: int, line_height: float) -> float:
    return 10 + line_height * line_count


def _fit_values(
    details: Sequence[PageDetail],
    max_width: float,
    available: float,
) -> Tuple[float, float, List[List[str]]]:
    """
    Pick the largest value font size whose wrapped details fit ``available``.

    Returns ``(font_size, line_height, lines_per_detail)``. Stops at
    ``MIN_VALUE_FONT_SIZE`` even if the details still do not fit.
    """
    size = VALUE_FONT_SIZE
    while True:
        line_height = LINE_HEIGHT * size / VALUE_FONT_SIZE
        wrapped = [
            wrap_text(detail.value, REGULAR_FONT, size, max_width)
            for detail in details
        ]
        needed = sum(
            LABEL_GAP + _frame_height(len(lines), line_height) + DETAIL_GAP
            for lines in wrapped
        )
        if needed <= available or size <= MIN_VALUE_FONT_SIZE:
            return size, line_height, wrapped
        size -= 1


def render_signature_page(
    *,
    details: Sequence[PageDetail],
    branding_line: str,
    page_size: Tuple[float, float] = PAGE_SIZE,
) -> bytes:
    """
    Render the signature page as a single-page PDF.

    Every detail is drawn between the branding line and the verification
    instructions; values shrink when they would not fit.
    """
    width, height = page_size
    buffer = io.BytesIO()

    c = canvas.Canvas(buffer, pagesize=(width, height), invariant=1)
    c.setTitle("Signature Protocol")

    # Banner
    c.setFillColorRGB(*BANNER_FILL)
    c.rect(40, height - 80, width - 80, 50, stroke=0, fill=1)

    c.setFont(BOLD_FONT, 24)
    c.setFillColorRGB(*ACCENT)
    c.drawString(50, height - 50, BANNER_TEXT)

    c.setFont(REGULAR_FONT, 14)
    c.setFillColorRGB(*MUTED)
    c.drawString(50, height - 110, branding_line)

    # Labelled values
    max_width = width - 120
    y = height - 170
    available = y - INSTRUCTIONS_TOP + DETAIL_GAP

    value_size, line_height, wrapped = _fit_values(details, max_width, available)

    for detail, lines in zip(details, wrapped):
        c.setFont(BOLD_FONT, 14)
        c.setFillColorRGB(*ACCENT)
        c.drawString(50, y, detail.label)

        frame_height = _frame_height(len(lines), line_height)
        frame_top = y - LABEL_GAP
        frame_bottom = frame_top - frame_height

        c.setStrokeColorRGB(*ACCENT)
        c.setFillColorRGB(1, 1, 1)
        c.setLineWidth(1)
        c.rect(50, frame_bottom, width - 100, frame_height, stroke=1, fill=1)

        c.setFont(REGULAR_FONT, value_size)
        c.setFillColorRGB(0, 0, 0)
        line_y = frame_top - line_height
        for line in lines:
            c.drawString(60, line_y, line)
            line_y -= line_height

        y = frame_bottom - DETAIL_GAP

    # Verification instructions
    c.setFont(BOLD_FONT, 14)
    c.setFillColorRGB(*ACCENT)
    c.drawString(50, INSTRUCTIONS_Y, INSTRUCTIONS_TITLE)

    c.setFont(REGULAR_FONT, VALUE_FONT_SIZE)
    c.setFillColorRGB(*MUTED)
    for index, line in enumerate(INSTRUCTIONS):
        c.drawString(50, INSTRUCTIONS_Y - 25 - index * 20, line)

    c.showPage()
    c.save()
    return buffer.getvalue()


# ------------------------------------------------------------------
# Assembly
# ------------------------------------------------------------------

def append_page(original_bytes: bytes, page_pdf: bytes) -> bytes:
    """
    Append the first page of ``page_pdf`` to the original document.

    The original pages are carried over unchanged; the result is a
    fresh serialization of the combined document.

    Raises:
        PdfAssemblyError: loading or serialization failed.
    """
    output = io.BytesIO()

    try:
        with pikepdf.open(io.BytesIO(original_bytes)) as pdf, pikepdf.open(
            io.BytesIO(page_pdf)
        ) as page_doc:
            pdf.pages.append(page_doc.pages[0])
            pdf.save(output, deterministic_id=True)
    except pikepdf.PdfError as exc:
        raise PdfAssemblyError(f"Failed to assemble signed document: {exc}") from exc

    return output.getvalue()
