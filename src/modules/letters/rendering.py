"""Stateless PDF helpers used at checkout."""

from __future__ import annotations

import re
from io import BytesIO
from xml.sax.saxutils import escape

from reportlab.lib.pagesizes import LETTER
from reportlab.lib.styles import ParagraphStyle
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer

_PAGE_PATTERN = re.compile(rb"/Type\s*/Page(?!s)")

LETTER_STYLE = ParagraphStyle(
    "letter-body",
    fontName="Helvetica",
    fontSize=12,
    leading=16,
)


def count_pdf_pages(content: bytes) -> int:
    """Count ``/Type /Page`` objects; never less than one."""
    return max(len(_PAGE_PATTERN.findall(content)), 1)


def render_letter_pdf(text: str) -> tuple[bytes, int]:
    """Typeset plain text on US Letter pages with one-inch margins.

    Returns the PDF bytes and its page count.
    """
    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=LETTER,
        leftMargin=inch,
        rightMargin=inch,
        topMargin=inch,
        bottomMargin=inch,
        title="Letter",
    )

    elements = []
    for block in re.split(r"\n\s*\n", text.replace("\r\n", "\n").strip()):
        markup = "<br/>".join(escape(line) for line in block.split("\n"))
        elements.append(Paragraph(markup or "&nbsp;", LETTER_STYLE))
        elements.append(Spacer(1, 12))
    if not elements:
        elements.append(Paragraph("&nbsp;", LETTER_STYLE))

    doc.build(elements)
    content = buffer.getvalue()
    return content, count_pdf_pages(content)
