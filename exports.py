"""
PDF and Excel renderers for approved achievements.

Both take the already-fetched records (each tagged with `submitted_by`) and
return the file as bytes, so routes can stream them back directly.
"""

import base64
import logging
from datetime import date
from io import BytesIO
from typing import Any, Dict, List, Optional

from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader, simpleSplit
from reportlab.pdfgen import canvas

import config
from achievements import EXPORT_COLUMNS, academic_year, display_name, export_row, roll_number
from schemas import DATA_URL

logger = logging.getLogger(__name__)

PDF_MEDIA_TYPE = "application/pdf"
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

MARGIN = 20 * mm
IMAGE_W = 150 * mm
IMAGE_H = 120 * mm
DESCRIPTION_MAX_LINES = 5

BORDER = colors.HexColor("#CBD5E1")
BANNER = colors.HexColor("#4F46E5")
PANEL = colors.HexColor("#F8FAFC")
PLACEHOLDER = colors.HexColor("#F1F5F9")
MUTED = colors.HexColor("#94A3B8")
TEXT = colors.HexColor("#334155")
APPROVED = colors.HexColor("#10B981")


def export_filename(kind: str, today: Optional[date] = None) -> str:
    stamp = (today or date.today()).isoformat()
    if kind == "pdf":
        return f"{config.INSTITUTION_CODE}_Achievements_Report_{stamp}.pdf"
    return f"{config.INSTITUTION_CODE}_Achievements_{stamp}.xlsx"


# -------------------- PDF -------------------- #

def load_image(src: str) -> ImageReader:
    """Decode an inline data URL. Anything else, including paths and URLs, raises."""
    m = DATA_URL.match(src)
    if not m:
        raise ValueError("only inline data URL images are rendered")
    reader = ImageReader(BytesIO(base64.b64decode(m.group("payload"))))
    reader.getSize()
    return reader


def _placeholder(c: canvas.Canvas, x: float, bottom: float, label: str):
    c.setFillColor(PLACEHOLDER)
    c.roundRect(x, bottom, IMAGE_W, IMAGE_H, 3 * mm, stroke=0, fill=1)
    c.setFillColor(MUTED)
    c.setFont("Helvetica", 10)
    c.drawCentredString(x + IMAGE_W / 2, bottom + IMAGE_H / 2, label)


def _draw_labelled(c: canvas.Canvas, pieces, center_x: float, y: float, size: int = 11):
    """Draw (text, bold) pieces as one centred line."""
    fonts = [("Helvetica-Bold" if bold else "Helvetica", text) for text, bold in pieces]
    total = sum(c.stringWidth(text, font, size) for font, text in fonts)
    x = center_x - total / 2
    for font, text in fonts:
        c.setFont(font, size)
        c.drawString(x, y, text)
        x += c.stringWidth(text, font, size)


def _draw_page(c: canvas.Canvas, doc: Dict[str, Any], index: int, total: int):
    width, height = A4

    c.setStrokeColor(BORDER)
    c.setLineWidth(1)
    c.roundRect(MARGIN, MARGIN, width - 2 * MARGIN, height - 2 * MARGIN, 5 * mm, stroke=1, fill=0)

    # Title banner
    c.setFillColor(BANNER)
    c.roundRect(MARGIN + 5 * mm, height - MARGIN - 25 * mm, width - 2 * MARGIN - 10 * mm, 20 * mm,
                3 * mm, stroke=0, fill=1)
    c.setFillColor(colors.white)
    c.setFont("Helvetica-Bold", 16)
    title_lines = simpleSplit(doc.get("title") or "", "Helvetica-Bold", 16, width - 2 * MARGIN - 20 * mm)
    c.drawCentredString(width / 2, height - MARGIN - 16 * mm, title_lines[0] if title_lines else "")

    # y runs down from the top of the page
    y = MARGIN + 35 * mm
    x = (width - IMAGE_W) / 2
    image_bottom = height - y - IMAGE_H
    src = doc.get("image")
    if src:
        try:
            reader = load_image(src)
            c.setFillColor(PANEL)
            c.roundRect(x - 2 * mm, image_bottom - 2 * mm, IMAGE_W + 4 * mm, IMAGE_H + 4 * mm,
                        3 * mm, stroke=0, fill=1)
            c.drawImage(reader, x, image_bottom, IMAGE_W, IMAGE_H, mask="auto")
            c.setStrokeColor(BORDER)
            c.setLineWidth(0.5)
            c.roundRect(x, image_bottom, IMAGE_W, IMAGE_H, 3 * mm, stroke=1, fill=0)
            y += IMAGE_H + 15 * mm
        except Exception as e:
            logger.warning("Image for achievement %s could not be rendered: %s", doc.get("_id"), e)
            _placeholder(c, x, image_bottom, "Image not available")
            y += 135 * mm
    else:
        _placeholder(c, x, image_bottom, "No image uploaded")
        y += 135 * mm

    # Name / roll number / academic year panel
    c.setFillColor(PANEL)
    c.roundRect(MARGIN + 10 * mm, height - y - 30 * mm, width - 2 * MARGIN - 20 * mm, 30 * mm,
                3 * mm, stroke=0, fill=1)
    y += 12 * mm
    c.setFillColor(TEXT)
    _draw_labelled(c, [("Name: ", True), (display_name(doc), False),
                       (" | Roll No: ", True), (roll_number(doc) or "N/A", False)], width / 2, height - y)
    y += 10 * mm
    _draw_labelled(c, [("Year: ", True), (academic_year(doc.get("date")), False)], width / 2, height - y)

    description = doc.get("description")
    if description:
        y += 20 * mm
        c.setFont("Helvetica-Bold", 11)
        c.drawString(MARGIN + 20 * mm, height - y, "Description:")
        c.setFont("Helvetica", 10)
        lines = simpleSplit(description, "Helvetica", 10, width - 2 * MARGIN - 40 * mm)
        for n, line in enumerate(lines[:DESCRIPTION_MAX_LINES]):
            c.drawString(MARGIN + 20 * mm, height - y - 6 * mm - n * 5 * mm, line)

    # Every exported record is approved
    c.setFillColor(APPROVED)
    c.roundRect(width - MARGIN - 28 * mm, MARGIN + 6 * mm, 24 * mm, 6 * mm, 2 * mm, stroke=0, fill=1)
    c.setFillColor(colors.white)
    c.setFont("Helvetica-Bold", 7)
    c.drawCentredString(width - MARGIN - 16 * mm, MARGIN + 8 * mm, "APPROVED")

    c.setFillColor(MUTED)
    c.setFont("Helvetica", 8)
    c.drawCentredString(width / 2, MARGIN - 5 * mm, f"Page {index} of {total}")


def render_pdf(docs: List[Dict[str, Any]]) -> bytes:
    """One A4 page per achievement."""
    buffer = BytesIO()
    c = canvas.Canvas(buffer, pagesize=A4)
    c.setTitle(f"{config.INSTITUTION_NAME} - Achievements Report")
    total = len(docs)
    for i, doc in enumerate(docs, start=1):
        _draw_page(c, doc, i, total)
        c.showPage()
    c.save()
    return buffer.getvalue()


# -------------------- Excel -------------------- #

def render_xlsx(docs: List[Dict[str, Any]]) -> bytes:
    rows = [export_row(d) for d in docs]

    wb = Workbook()
    ws = wb.active
    ws.title = "Achievements"
    ws.append(EXPORT_COLUMNS)
    for cell in ws[1]:
        cell.font = Font(bold=True)
    for row in rows:
        ws.append([row[col] for col in EXPORT_COLUMNS])
        # stored text stays text, never a formula
        for cell in ws[ws.max_row]:
            if isinstance(cell.value, str) and cell.value.startswith("="):
                cell.data_type = "s"

    for idx, col in enumerate(EXPORT_COLUMNS, start=1):
        longest = max([len(col)] + [len(str(r[col])) for r in rows])
        ws.column_dimensions[get_column_letter(idx)].width = longest + 2

    output = BytesIO()
    wb.save(output)
    return output.getvalue()
