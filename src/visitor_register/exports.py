"""
Export helpers: QR code images, spreadsheet and PDF documents.

Every function returns the document as bytes so the API can stream it.
"""

import datetime
import io
import logging
from typing import List, Optional, Sequence
from xml.sax.saxutils import escape

import qrcode
from openpyxl import Workbook
from openpyxl.styles import Alignment, Font
from openpyxl.utils import get_column_letter
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from .errors import NothingToExport
from .models import Entry

logger = logging.getLogger(__name__)

TIME_FORMAT = "%Y-%m-%d %H:%M"

COLUMNS = [
    "No",
    "Number",
    "Name",
    "Phone",
    "Address/Company",
    "Meeting",
    "Purpose",
    "Status",
    "Entry Time",
    "Exit Time",
]

STATUS_LABELS = {"entered": "Inside", "exited": "Exited"}

# QR batch sheet layout
QR_SIZE = 50 * mm
QR_COLS = 3
QR_ROWS = 4


def _fmt_time(value: Optional[datetime.datetime]) -> str:
    return value.strftime(TIME_FORMAT) if value else "-"


def _row(index: int, entry: Entry) -> list:
    return [
        index,
        entry.number,
        entry.name,
        entry.phone_number or "-",
        entry.address,
        entry.whom_to_meet or "-",
        entry.purpose or "-",
        STATUS_LABELS.get(entry.status, entry.status),
        _fmt_time(entry.entry_time),
        _fmt_time(entry.exit_time),
    ]


# PUBLIC_INTERFACE
def qr_png(payload: str, box_size: int = 10, border: int = 4) -> bytes:
    """
    Render a QR code as PNG.

    Args:
        payload (str): Text to encode; for entries this is the entry id.

    Returns:
        bytes: PNG image data.
    """
    qr = qrcode.QRCode(
        error_correction=qrcode.constants.ERROR_CORRECT_H,
        box_size=box_size,
        border=border,
    )
    qr.add_data(payload)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")

    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


# PUBLIC_INTERFACE
def sort_for_report(entries: Sequence[Entry]) -> List[Entry]:
    """
    Exited entries first, then newest entry time first.
    """
    ordered = sorted(entries, key=lambda e: e.entry_time, reverse=True)
    return sorted(ordered, key=lambda e: 0 if e.is_exited else 1)


# PUBLIC_INTERFACE
def entries_to_xlsx(entries: Sequence[Entry]) -> bytes:
    """
    Build a spreadsheet with one row per entry.
    """
    wb = Workbook()
    ws = wb.active
    ws.title = "Visitors"

    ws.append(COLUMNS)
    for cell in ws[1]:
        cell.font = Font(bold=True)
        cell.alignment = Alignment(horizontal="center")

    for index, entry in enumerate(entries, start=1):
        ws.append(_row(index, entry))

    for column_cells in ws.columns:
        column = get_column_letter(column_cells[0].column)
        max_length = max(len(str(cell.value)) if cell.value is not None else 0 for cell in column_cells)
        ws.column_dimensions[column].width = max_length + 2

    file_stream = io.BytesIO()
    wb.save(file_stream)
    return file_stream.getvalue()


# PUBLIC_INTERFACE
def entries_pdf(entries: Sequence[Entry], generated_at: Optional[datetime.datetime] = None) -> bytes:
    """
    Build the visitor list PDF: title, date, total and a table of entries.

    Args:
        entries: Entries to list; re-ordered with sort_for_report.
        generated_at: Date printed in the header; defaults to now.

    Returns:
        bytes: PDF document.
    """
    generated_at = generated_at or datetime.datetime.now()
    entries = sort_for_report(entries)

    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=landscape(A4),
        leftMargin=10 * mm,
        rightMargin=10 * mm,
        topMargin=15 * mm,
        bottomMargin=15 * mm,
        title="Visitor List",
    )
    styles = getSampleStyleSheet()
    cell_style = styles["BodyText"].clone("cell", fontSize=7, leading=8)

    elements = [
        Paragraph("Visitor List", styles["Title"]),
        Paragraph(f"Date: {generated_at.strftime('%Y-%m-%d')}", styles["Normal"]),
        Paragraph(f"Total: {len(entries)} visitors", styles["Normal"]),
        Spacer(1, 6 * mm),
    ]

    data = [COLUMNS]
    for index, entry in enumerate(entries, start=1):
        data.append([Paragraph(escape(str(value)), cell_style) for value in _row(index, entry)])

    # rows taller than a page split across pages instead of failing the layout
    table = Table(data, repeatRows=1, splitInRow=1)
    table.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (-1, 0), colors.Color(37 / 255, 99 / 255, 235 / 255)),
        ('TEXTCOLOR', (0, 0), (-1, 0), colors.whitesmoke),
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), 7),
        ('VALIGN', (0, 0), (-1, -1), 'TOP'),
        ('GRID', (0, 0), (-1, -1), 0.5, colors.grey),
    ]))
    elements.append(table)

    doc.build(elements)
    logger.info(f"Visitor list PDF generated with {len(entries)} entries")
    return buffer.getvalue()


# PUBLIC_INTERFACE
def qr_batch_pdf(entries: Sequence[Entry]) -> bytes:
    """
    Build a printable sheet of QR codes, 3 x 4 per A4 page, with the visit
    number and visitor name under each code.

    Raises:
        NothingToExport: No entries given.
    """
    if not entries:
        raise NothingToExport()

    buffer = io.BytesIO()
    c = canvas.Canvas(buffer, pagesize=A4)
    width, height = A4
    margin_x = (width - QR_COLS * QR_SIZE) / (QR_COLS + 1)
    margin_y = 20 * mm
    spacing_y = (height - margin_y - QR_ROWS * QR_SIZE) / QR_ROWS
    per_page = QR_COLS * QR_ROWS

    for i, entry in enumerate(entries):
        if i > 0 and i % per_page == 0:
            c.showPage()

        row = (i % per_page) // QR_COLS
        col = (i % per_page) % QR_COLS
        x = margin_x + col * (QR_SIZE + margin_x)
        # reportlab's origin is bottom-left
        y = height - margin_y - QR_SIZE - row * (QR_SIZE + spacing_y)

        img_reader = ImageReader(io.BytesIO(qr_png(entry.id)))
        c.drawImage(img_reader, x, y, width=QR_SIZE, height=QR_SIZE)

        center = x + QR_SIZE / 2
        c.setFont("Helvetica-Bold", 8)
        c.drawCentredString(center, y - 4 * mm, entry.number)
        c.setFont("Helvetica", 7)
        c.drawCentredString(center, y - 8 * mm, entry.name[:40])

    c.save()
    logger.info(f"QR batch PDF generated with {len(entries)} codes")
    return buffer.getvalue()
