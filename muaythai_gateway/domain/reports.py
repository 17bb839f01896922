"""Scheduled report rendering (CSV and PDF)"""

import csv
import io
from datetime import datetime
from typing import Any, List, Mapping, Sequence

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from muaythai_gateway.domain.exceptions import UnsupportedReportFormatError
from muaythai_gateway.domain.models import ReportFile

PDF_CELL_LIMIT = 50
UTF8_BOM = "\ufeff"


def _headers(columns: Sequence[str], column_headers: Sequence[str]) -> List[str]:
    return list(column_headers) if column_headers else list(columns)


def _cell(row: Mapping[str, Any], column: str) -> str:
    value = row.get(column)
    return "" if value is None else str(value)


def render_csv(rows: Sequence[Mapping[str, Any]], columns: Sequence[str], column_headers: Sequence[str]) -> bytes:
    """
    Render rows as CSV with a UTF-8 BOM so spreadsheet tools pick up Thai text.

    Values containing commas, quotes or newlines are quoted with doubled quotes.
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n", quoting=csv.QUOTE_MINIMAL)
    writer.writerow(_headers(columns, column_headers))
    for row in rows:
        writer.writerow([_cell(row, col) for col in columns])
    return (UTF8_BOM + buffer.getvalue().rstrip("\n")).encode("utf-8")


def render_pdf(
    rows: Sequence[Mapping[str, Any]],
    title: str,
    columns: Sequence[str],
    column_headers: Sequence[str],
    generated_at: datetime,
) -> bytes:
    """Render rows as a single PDF table; cells are truncated to keep the layout readable"""
    headers = list(column_headers) if column_headers else [c.upper().replace("_", " ") for c in columns]
    body = [[_cell(row, col)[:PDF_CELL_LIMIT] for col in columns] for row in rows]

    buffer = io.BytesIO()
    doc = SimpleDocTemplate(buffer, pagesize=A4, title=title)
    styles = getSampleStyleSheet()

    table = Table([headers] + body, repeatRows=1)
    table.setStyle(
        TableStyle(
            [
                ("BACKGROUND", (0, 0), (-1, 0), colors.Color(220 / 255, 53 / 255, 69 / 255)),
                ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
                ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                ("FONTSIZE", (0, 0), (-1, -1), 8),
                ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, colors.Color(0.96, 0.96, 0.96)]),
            ]
        )
    )

    doc.build(
        [
            Paragraph(title, styles["Title"]),
            Paragraph(f"Generated: {generated_at.strftime('%Y-%m-%d %H:%M')}", styles["Normal"]),
            Paragraph(f"Total Records: {len(rows)}", styles["Normal"]),
            Spacer(1, 12),
            table,
        ]
    )
    return buffer.getvalue()


def render_report(
    report_format: str,
    name: str,
    rows: Sequence[Mapping[str, Any]],
    columns: Sequence[str],
    column_headers: Sequence[str],
    generated_at: datetime,
) -> ReportFile:
    """
    Render a report in the requested format.

    Raises:
        UnsupportedReportFormatError: For anything other than csv or pdf
    """
    stamp = generated_at.strftime("%Y-%m-%d")
    if report_format == "pdf":
        return ReportFile(
            file_name=f"{name}-{stamp}.pdf",
            content=render_pdf(rows, name, columns, column_headers, generated_at),
            mime_type="application/pdf",
        )
    if report_format == "csv":
        return ReportFile(
            file_name=f"{name}-{stamp}.csv",
            content=render_csv(rows, columns, column_headers),
            mime_type="text/csv",
        )
    raise UnsupportedReportFormatError(f"Unsupported format: {report_format}")
