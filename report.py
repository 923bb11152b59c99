# report.py
from __future__ import annotations

import io
import re
from datetime import date, datetime
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from domain import ReportData, resolve_type_name
from utils import calculate_duration, format_date_de, format_hours, format_hours_signed, short_vehicle_label

TITLE = "Schichttagebuch - Auswertung"
TABLE_HEADER = ["Datum", "Schichtart", "Zeit", "Wache", "Fahrzeug", "Stunden"]
ORANGE = colors.Color(249 / 255, 115 / 255, 22 / 255)
GREEN = colors.Color(34 / 255, 197 / 255, 94 / 255)
RED = colors.Color(239 / 255, 68 / 255, 68 / 255)


def build_filename(label: str, today: date | None = None) -> str:
    """Schichttagebuch_<label>_<YYYY-MM-DD>.pdf"""
    today = today or date.today()
    safe_label = re.sub(r"\s+", "_", label.strip())
    return f"Schichttagebuch_{safe_label}_{today.isoformat()}.pdf"


def _summary_rows(report: ReportData) -> list[list[str]]:
    return [
        [f"Geleistete Stunden: {format_hours(report.stats.actual_hours)}"],
        [f"Anzahl Schichten: {report.stats.shift_count}"],
        [f"Soll-Stunden: {format_hours(report.target_hours)}"],
        [f"Saldo: {format_hours_signed(report.delta)}"],
    ]


def _distribution_lines(report: ReportData) -> list[str]:
    count = report.stats.shift_count
    lines = []
    for item in report.stats.distribution_series:
        share = item.value / count * 100 if count else 0.0
        lines.append(f"{item.name}: {item.value} ({share:.1f}%)")
    return lines


def _detail_rows(report: ReportData) -> list[list[str]]:
    rows = []
    for s in sorted(report.shifts, key=lambda s: s.date or ""):
        rows.append([
            format_date_de(s.date),
            resolve_type_name(s.type_id, report.shift_types),
            f"{s.start_time} - {s.end_time}",
            s.station or "-",
            short_vehicle_label(s.vehicle),
            format_hours(calculate_duration(s.start_time, s.end_time)),
        ])
    return rows


def export_pdf(report: ReportData, generated_at: datetime | None = None) -> bytes:
    """Renders summary, distribution and the itemized shift table as a landscape A4 PDF."""
    generated_at = generated_at or datetime.now()
    buf = io.BytesIO()
    doc = SimpleDocTemplate(buf, pagesize=landscape(A4), topMargin=40, bottomMargin=40,
                            leftMargin=40, rightMargin=40, title=TITLE)
    styles = getSampleStyleSheet()
    title_style = ParagraphStyle(name="ReportTitle", parent=styles["Title"], alignment=0, spaceAfter=4)
    period_style = ParagraphStyle(name="Period", parent=styles["Normal"], fontSize=12,
                                  textColor=colors.Color(100 / 255, 100 / 255, 100 / 255), spaceAfter=10)
    section_style = ParagraphStyle(name="Section", parent=styles["Heading2"], spaceBefore=10, spaceAfter=6)
    line_style = ParagraphStyle(name="Line", parent=styles["Normal"], fontSize=11, leading=15, leftIndent=14)

    story = [Paragraph(TITLE, title_style), Paragraph(escape(report.label), period_style)]

    story.append(Paragraph("Zusammenfassung", section_style))
    summary = Table(_summary_rows(report), colWidths=[doc.width], hAlign="LEFT")
    summary.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (-1, -1), colors.Color(245 / 255, 245 / 255, 245 / 255)),
        ("FONTSIZE", (0, 0), (-1, -1), 11),
        ("LEFTPADDING", (0, 0), (-1, -1), 14),
        ("FONTNAME", (0, -1), (-1, -1), "Helvetica-Bold"),
        ("TEXTCOLOR", (0, -1), (-1, -1), GREEN if report.delta >= 0 else RED),
    ]))
    story.append(summary)

    distribution = _distribution_lines(report)
    if distribution:
        story.append(Paragraph("Verteilung nach Schichtart", section_style))
        story += [Paragraph(escape(line), line_style) for line in distribution]

    rows = _detail_rows(report)
    if rows:
        story += [Spacer(1, 6), Paragraph("Schichten im Detail", section_style)]
        widths = [w * doc.width for w in (0.13, 0.18, 0.18, 0.2, 0.2, 0.11)]
        table = Table([TABLE_HEADER] + rows, colWidths=widths, repeatRows=1, hAlign="LEFT")
        table.setStyle(TableStyle([
            ("BACKGROUND", (0, 0), (-1, 0), ORANGE),
            ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
            ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
            ("FONTSIZE", (0, 0), (-1, -1), 10),
            ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.Color(250 / 255, 250 / 255, 250 / 255), colors.white]),
            ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ]))
        story.append(table)

    footer = f"Erstellt am {generated_at.strftime('%d.%m.%Y')} um {generated_at.strftime('%H:%M:%S')}"

    def draw_page(canvas, doc_obj):
        canvas.saveState()
        w, h = doc_obj.pagesize
        canvas.setStrokeColor(colors.HexColor("#C7CCD6"))
        canvas.setLineWidth(0.8)
        margin = 12
        canvas.rect(margin, margin, w - 2*margin, h - 2*margin)
        canvas.setFont("Helvetica", 8)
        canvas.setFillColor(colors.Color(150 / 255, 150 / 255, 150 / 255))
        canvas.drawCentredString(w / 2, 24, footer)
        canvas.restoreState()

    doc.build(story, onFirstPage=draw_page, onLaterPages=draw_page)
    return buf.getvalue()
