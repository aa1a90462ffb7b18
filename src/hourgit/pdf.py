from __future__ import annotations

import calendar
from pathlib import Path
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from .durations import format_minutes
from .timetrack import ExportData

HEADER_COLOR = colors.HexColor("#323232")
MUTED_COLOR = colors.HexColor("#787878")
LINE_COLOR = colors.HexColor("#C8C8C8")

styles = getSampleStyleSheet()
styles.add(ParagraphStyle(name="SheetTitle", parent=styles["Title"], fontName="Helvetica-Bold", fontSize=16, leading=20, alignment=0, textColor=HEADER_COLOR, spaceAfter=2))
styles.add(ParagraphStyle(name="SheetSubtitle", parent=styles["Normal"], fontName="Helvetica", fontSize=12, leading=16, textColor=MUTED_COLOR))
styles.add(ParagraphStyle(name="DayLabel", parent=styles["Normal"], fontName="Helvetica-Bold", fontSize=10, leading=13, textColor=HEADER_COLOR))
styles.add(ParagraphStyle(name="Task", parent=styles["Normal"], fontName="Helvetica", fontSize=9, leading=12, leftIndent=8))
styles.add(ParagraphStyle(name="TaskBold", parent=styles["Task"], fontName="Helvetica-Bold"))
styles.add(ParagraphStyle(name="EntryLine", parent=styles["Normal"], fontName="Helvetica", fontSize=8, leading=10, leftIndent=18, textColor=MUTED_COLOR))
styles.add(ParagraphStyle(name="GrandTotal", parent=styles["Normal"], fontName="Helvetica-Bold", fontSize=12, leading=15, textColor=HEADER_COLOR))


def p(text: str, style: str) -> Paragraph:
    return Paragraph(escape(text), styles[style])


def right(text: str, style: str) -> Paragraph:
    return Paragraph(escape(text), ParagraphStyle(name=f"{style}Right", parent=styles[style], alignment=2, leftIndent=0))


def footer(canvas, doc) -> None:
    canvas.saveState()
    canvas.setFont("Helvetica", 8)
    canvas.setFillColor(MUTED_COLOR)
    canvas.drawString(doc.leftMargin, 8 * mm, doc.title)
    canvas.drawRightString(A4[0] - doc.rightMargin, 8 * mm, f"Page {doc.page}")
    canvas.restoreState()


def build_rows(data: ExportData) -> tuple[list[list[Paragraph]], list[tuple]]:
    rows: list[list[Paragraph]] = []
    commands: list[tuple] = []
    for day in data.days:
        label = f"{calendar.month_name[day.day.month]} {day.day.day}, {day.day:%A}"
        commands.append(("LINEABOVE", (0, len(rows)), (-1, len(rows)), 0.4, LINE_COLOR))
        rows.append([p(label, "DayLabel"), right(format_minutes(day.total_minutes), "DayLabel")])
        for group in day.groups:
            single = len(group.entries) == 1 and group.entries[0].message == group.task
            style = "Task" if single else "TaskBold"
            rows.append([p(group.task, style), right(format_minutes(group.total_minutes), style)])
            if single:
                continue
            for item in group.entries:
                rows.append([p(item.message, "EntryLine"), right(format_minutes(item.minutes), "EntryLine")])
    return rows, commands


def render_export_pdf(data: ExportData, output: Path) -> Path:
    title = f"{data.project_name} timesheet"
    doc = SimpleDocTemplate(
        str(output),
        pagesize=A4,
        leftMargin=15 * mm,
        rightMargin=15 * mm,
        topMargin=15 * mm,
        bottomMargin=15 * mm,
        title=title,
        author="hourgit",
    )
    story = [
        p(data.project_name, "SheetTitle"),
        p(f"{calendar.month_name[data.month]} {data.year}", "SheetSubtitle"),
        Spacer(1, 4 * mm),
    ]
    rows, commands = build_rows(data)
    rows.append([p("Total", "GrandTotal"), right(format_minutes(data.total_minutes), "GrandTotal")])
    width = A4[0] - doc.leftMargin - doc.rightMargin
    table = Table(rows, colWidths=[width * 0.75, width * 0.25])
    table.setStyle(
        TableStyle(
            commands
            + [
                ("VALIGN", (0, 0), (-1, -1), "TOP"),
                ("LEFTPADDING", (0, 0), (-1, -1), 2),
                ("RIGHTPADDING", (0, 0), (-1, -1), 2),
                ("TOPPADDING", (0, 0), (-1, -1), 2),
                ("BOTTOMPADDING", (0, 0), (-1, -1), 2),
                ("LINEABOVE", (0, -1), (-1, -1), 0.8, LINE_COLOR),
                ("TOPPADDING", (0, -1), (-1, -1), 6),
            ]
        )
    )
    story.append(table)
    output.parent.mkdir(parents=True, exist_ok=True)
    doc.build(story, onFirstPage=footer, onLaterPages=footer)
    return output
