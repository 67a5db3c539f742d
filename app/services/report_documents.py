import io
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer

logger = logging.getLogger(__name__)

NO_CLASSROOM_DATA = "No classroom data in this range"

# (title, lines)
Section = Tuple[str, List[str]]


def format_percent(value: float) -> str:
    return f"{value * 100:.2f}%"


def format_range(date_range: Dict[str, Any]) -> str:
    return f"{date_range['start'].isoformat()} → {date_range['end'].isoformat()}"


def classroom_label(summary: Dict[str, Any], separator: str = "-") -> str:
    grade = summary.get("grade") or {}
    section = summary.get("section") or {}
    parts = separator.join(part for part in (grade.get("name"), section.get("label")) if part)
    return f"{summary['classroom_id']} ({parts})" if parts else str(summary["classroom_id"])


def _ranking_lines(entries: List[Dict[str, Any]]) -> List[str]:
    if not entries:
        return [NO_CLASSROOM_DATA]
    return [
        f"{index}. {classroom_label(entry)} - {format_percent(entry['attendance_rate'])} "
        f"over {entry['total_records']} records"
        for index, entry in enumerate(entries, start=1)
    ]


def school_report_sections(report: Dict[str, Any]) -> List[Section]:
    return [
        ("Summary", [
            f"School ID: {report['school_id']}",
            f"Range: {format_range(report['range'])}",
            f"Sessions counted: {report['totals']['sessions']}",
            f"Overall attendance rate: {format_percent(report['totals']['attendance_rate'])}",
        ]),
        ("Top Classrooms", _ranking_lines(report["top_classrooms"])),
        ("Lowest Attendance Classrooms", _ranking_lines(report["bottom_classrooms"])),
    ]


def teacher_report_sections(report: Dict[str, Any]) -> List[Section]:
    sections = [
        ("Teacher Summary", [
            f"Teacher ID: {report['teacher_id']}",
            f"School ID: {report['school_id']}",
            f"Range: {format_range(report['range'])}",
            f"Classrooms included: {len(report['classrooms'])}",
        ]),
    ]
    for classroom in report["classrooms"]:
        roles = []
        if classroom["roles"]["homeroom"]:
            roles.append("Homeroom")
        if classroom["roles"]["subjects"]:
            codes = ", ".join(subject["subject_code"] for subject in classroom["roles"]["subjects"])
            roles.append(f"Subjects: {codes}")
        sections.append((
            f"Classroom {classroom_label(classroom, separator=' ')}",
            [
                f"Roles: {' | '.join(roles)}" if roles else "Roles: Subject support",
                f"Sessions counted: {classroom['total_sessions']}",
                f"Attendance rate: {format_percent(classroom['attendance_rate'])}",
                f"Trend points: {len(classroom['trend'])}",
            ],
        ))
    return sections


def build_pdf_buffer(title: str, sections: List[Section], generated_at: Optional[datetime] = None) -> bytes:
    """Render titled sections of plain text lines into a PDF document."""
    generated_at = generated_at or datetime.now(timezone.utc)
    buffer = io.BytesIO()
    styles = getSampleStyleSheet()
    generated_style = ParagraphStyle(
        "Generated", parent=styles["Normal"], alignment=1, textColor=colors.HexColor("#555555"), fontSize=10
    )
    section_style = ParagraphStyle("SectionTitle", parent=styles["Heading2"], fontSize=14)

    doc = SimpleDocTemplate(buffer, pagesize=A4, leftMargin=50, rightMargin=50, topMargin=50, bottomMargin=50)
    elements = [
        Paragraph(escape(title), styles["Title"]),
        Paragraph(f"Generated on {generated_at.strftime('%Y-%m-%d %H:%M:%S %Z').strip()}", generated_style),
        Spacer(1, 24),
    ]
    for section_title, lines in sections:
        elements.append(Paragraph(f"<u>{escape(section_title)}</u>", section_style))
        for line in lines:
            elements.append(Paragraph(escape(line), styles["Normal"]))
        elements.append(Spacer(1, 12))

    doc.build(elements)
    logger.debug(f"Rendered PDF '{title}' with {len(sections)} sections")
    return buffer.getvalue()
