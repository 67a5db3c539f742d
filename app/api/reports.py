import logging
from datetime import date, datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status, Query, Path
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.config import settings
from app.database import get_db
from app.middleware.authentication import RoleChecker, ensure_school_access, get_current_user, user_school_id
from app.models.schools import School
from app.models.users import Student, Teacher, User
from app.schemas.reports import SchoolAttendanceReport, StudentAttendanceSummary, TeacherAttendanceReport
from app.services.attendance_reports import (
    DateRange,
    ReportScopeError,
    build_school_attendance_report,
    build_student_attendance_summary,
    build_teacher_attendance_report,
)
from app.services.report_documents import build_pdf_buffer, school_report_sections, teacher_report_sections
from app.services.report_repository import AttendanceReportRepository

router = APIRouter()
logger = logging.getLogger(__name__)

# Role-based access control
allow_school_reports = RoleChecker(["ADMIN", "GOVERNMENT", "PRINCIPAL"])
allow_teacher_reports = RoleChecker(["TEACHER"])


def normalize_range(start: Optional[date], end: Optional[date]) -> DateRange:
    """Validate an inclusive reporting range before any aggregation runs."""
    if start is None or end is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="start and end query params are required (ISO date strings)"
        )
    if start > end:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="start date must be before end date"
        )
    return DateRange(start=start, end=end)


def pdf_response(content: bytes, filename: str) -> Response:
    return Response(
        content=content,
        media_type="application/pdf",
        headers={"Content-Disposition": f'inline; filename="{filename}"'},
    )


async def resolve_school_scope(current_user: User, school_id: Optional[int], db: AsyncSession) -> int:
    """
    School a school-level report covers.

    Principals are pinned to their own school; ADMIN and GOVERNMENT users may
    name any existing school.
    """
    if school_id is None:
        school_id = user_school_id(current_user)
        if school_id is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="School scope is required"
            )
        return school_id

    ensure_school_access(current_user, school_id, "Not authorized to view reports for this school")

    result = await db.execute(select(School.id).where(School.id == school_id))
    if result.scalar_one_or_none() is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="School not found"
        )
    return school_id


async def _teacher_report(
    db: AsyncSession,
    teacher: Teacher,
    date_range: DateRange,
    classroom_id: Optional[int],
) -> dict:
    try:
        return await build_teacher_attendance_report(
            AttendanceReportRepository(db),
            teacher_id=teacher.id,
            school_id=teacher.school_id,
            date_range=date_range,
            classroom_filter=classroom_id,
        )
    except ReportScopeError as e:
        logger.warning(f"Teacher {teacher.id} requested classroom {classroom_id} outside their assignments")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=str(e)
        )


def _own_teacher_profile(current_user: User) -> Teacher:
    if current_user.teacher_id is None or current_user.teacher is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Teacher profile missing"
        )
    return current_user.teacher


@router.get("/reports/attendance/principal", response_model=SchoolAttendanceReport)
async def get_school_attendance_report(
    start: Optional[date] = Query(None),
    end: Optional[date] = Query(None),
    school_id: Optional[int] = Query(None, gt=0),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(allow_school_reports)
):
    """
    Attendance rollup for a school with top and bottom classroom rankings.
    """
    date_range = normalize_range(start, end)
    scope = await resolve_school_scope(current_user, school_id, db)

    return await build_school_attendance_report(
        AttendanceReportRepository(db),
        school_id=scope,
        date_range=date_range,
        ranking_size=settings.REPORT_RANKING_SIZE,
    )


@router.get("/reports/attendance/principal/pdf")
async def get_school_attendance_report_pdf(
    start: Optional[date] = Query(None),
    end: Optional[date] = Query(None),
    school_id: Optional[int] = Query(None, gt=0),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(allow_school_reports)
):
    """
    School attendance rollup rendered as a PDF document.
    """
    date_range = normalize_range(start, end)
    scope = await resolve_school_scope(current_user, school_id, db)

    report = await build_school_attendance_report(
        AttendanceReportRepository(db),
        school_id=scope,
        date_range=date_range,
        ranking_size=settings.REPORT_RANKING_SIZE,
    )
    content = build_pdf_buffer(
        f"Attendance Report - School {report['school_id']}",
        school_report_sections(report),
        generated_at=report["generated_at"],
    )
    return pdf_response(content, f"attendance-principal-{report['school_id']}.pdf")


@router.get("/reports/attendance/teacher", response_model=TeacherAttendanceReport)
async def get_my_teacher_attendance_report(
    start: Optional[date] = Query(None),
    end: Optional[date] = Query(None),
    classroom_id: Optional[int] = Query(None, gt=0),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(allow_teacher_reports)
):
    """
    Attendance for the classrooms the calling teacher teaches, with per-session trends.
    """
    teacher = _own_teacher_profile(current_user)
    date_range = normalize_range(start, end)

    return await _teacher_report(db, teacher, date_range, classroom_id)


@router.get("/reports/attendance/teacher/pdf")
async def get_my_teacher_attendance_report_pdf(
    start: Optional[date] = Query(None),
    end: Optional[date] = Query(None),
    classroom_id: Optional[int] = Query(None, gt=0),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(allow_teacher_reports)
):
    teacher = _own_teacher_profile(current_user)
    date_range = normalize_range(start, end)

    report = await _teacher_report(db, teacher, date_range, classroom_id)
    content = build_pdf_buffer(
        f"Teacher Attendance Report - {report['teacher_id']}",
        teacher_report_sections(report),
        generated_at=report["generated_at"],
    )
    return pdf_response(content, f"attendance-teacher-{report['teacher_id']}.pdf")


@router.get("/reports/attendance/teachers/{teacher_id}", response_model=TeacherAttendanceReport)
async def get_teacher_attendance_report(
    teacher_id: int = Path(..., gt=0),
    start: Optional[date] = Query(None),
    end: Optional[date] = Query(None),
    classroom_id: Optional[int] = Query(None, gt=0),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(allow_school_reports)
):
    """
    Attendance report for any teacher, for school leadership and oversight roles.
    """
    date_range = normalize_range(start, end)

    result = await db.execute(select(Teacher).where(Teacher.id == teacher_id))
    teacher = result.scalars().first()
    if not teacher:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Teacher not found"
        )

    ensure_school_access(current_user, teacher.school_id, "Not authorized to view teachers from another school")

    return await _teacher_report(db, teacher, date_range, classroom_id)


@router.get("/reports/attendance/students/{student_id}/summary", response_model=StudentAttendanceSummary)
async def get_student_attendance_summary(
    student_id: int = Path(..., gt=0),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Today, this-week and overall attendance for a student.
    """
    result = await db.execute(select(Student).where(Student.id == student_id))
    student = result.scalars().first()
    if not student:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Student not found"
        )

    if current_user.role == "STUDENT":
        if current_user.student_id != student.id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Students may only view their own attendance"
            )
    else:
        ensure_school_access(current_user, student.school_id, "Not authorized to view students from another school")

    return await build_student_attendance_summary(
        AttendanceReportRepository(db),
        student_id=student.id,
        now=datetime.now(timezone.utc),
    )
