"""CSV and PDF exports of the member list."""

import csv
import html
import io
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

logger = logging.getLogger(__name__)

EXPORT_COLUMNS = [
    ("full_name", "Full Name"),
    ("email", "Email"),
    ("organization_name", "Organization"),
    ("role_job_title", "Job Title"),
    ("approval_status", "Status"),
    ("approved_by_name", "Reviewed By"),
    ("created_at", "Registered"),
]


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%d %H:%M")
    if hasattr(value, "value"):
        return str(value.value)
    return str(value)


def export_csv(rows: List[Dict[str, Any]]) -> bytes:
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow([label for _, label in EXPORT_COLUMNS])
    for row in rows:
        writer.writerow([_cell(row.get(key)) for key, _ in EXPORT_COLUMNS])
    # BOM so spreadsheet apps pick up UTF-8
    return ("\ufeff" + buffer.getvalue()).encode("utf-8")


def export_pdf(rows: List[Dict[str, Any]], title: str = "Users") -> bytes:
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=landscape(A4),
        rightMargin=0.5 * inch,
        leftMargin=0.5 * inch,
        topMargin=0.6 * inch,
        bottomMargin=0.6 * inch,
        title=title,
    )
    styles = getSampleStyleSheet()
    cell_style = styles["BodyText"]
    cell_style.fontSize = 8
    cell_style.leading = 10

    generated = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")
    story = [
        Paragraph(title, styles["Title"]),
        Paragraph(f"{len(rows)} record(s), generated {generated}", styles["Normal"]),
        Spacer(1, 0.2 * inch),
    ]

    data = [[label for _, label in EXPORT_COLUMNS]]
    for row in rows:
        data.append([Paragraph(html.escape(_cell(row.get(key))), cell_style) for key, _ in EXPORT_COLUMNS])

    table = Table(data, repeatRows=1)
    table.setStyle(
        TableStyle([
            ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#28A8E0")),
            ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
            ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
            ("FONTSIZE", (0, 0), (-1, 0), 9),
            ("VALIGN", (0, 0), (-1, -1), "TOP"),
            ("GRID", (0, 0), (-1, -1), 0.5, colors.HexColor("#e2e8f0")),
            ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, colors.HexColor("#f8fafc")]),
        ])
    )
    story.append(table)

    doc.build(story)
    pdf_bytes = buffer.getvalue()
    buffer.close()
    logger.info("Generated PDF export with %d rows", len(rows))
    return pdf_bytes
