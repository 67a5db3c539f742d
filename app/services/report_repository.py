"""
Read-side queries used by the attendance report builders.

Everything the aggregation engine needs from the database goes through
``AttendanceReportRepository`` so that the builders stay free of SQL and can
be exercised against any object exposing the same coroutines.
"""
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterable, List, Optional

from sqlalchemy import and_, asc, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.models.attendance import AttendanceSession, StudentAttendance
from app.models.schools import Classroom, Grade, Section, Subject
from app.models.users import Student, TeacherSubject

logger = logging.getLogger(__name__)


@dataclass
class SessionRow:
    id: int
    classroom_id: int
    session_date: date
    statuses: List[str] = field(default_factory=list)


@dataclass
class ClassroomMeta:
    grade: Optional[dict] = None
    section: Optional[dict] = None


@dataclass
class SubjectAssignmentRow:
    classroom_id: int
    subject_id: int
    subject_code: str
    subject_name: str


class AttendanceReportRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def fetch_sessions(
        self,
        start: date,
        end: date,
        school_id: Optional[int] = None,
        classroom_ids: Optional[Iterable[int]] = None,
    ) -> List[SessionRow]:
        """
        Sessions within [start, end] ordered by date, each with the statuses recorded for it.

        Sessions without any attendance records are returned with an empty status list.

        Args:
            start: First session date, inclusive
            end: Last session date, inclusive
            school_id: Restrict to one school
            classroom_ids: Restrict to these classrooms

        Returns:
            List of SessionRow ordered by session date, then id
        """
        query = select(
            AttendanceSession.id,
            AttendanceSession.classroom_id,
            AttendanceSession.session_date,
        ).where(
            and_(
                AttendanceSession.session_date >= start,
                AttendanceSession.session_date <= end,
            )
        )
        if school_id is not None:
            query = query.where(AttendanceSession.school_id == school_id)
        if classroom_ids is not None:
            query = query.where(AttendanceSession.classroom_id.in_(list(classroom_ids)))
        query = query.order_by(asc(AttendanceSession.session_date), asc(AttendanceSession.id))

        result = await self.db.execute(query)
        sessions = [
            SessionRow(id=row.id, classroom_id=row.classroom_id, session_date=row.session_date)
            for row in result.all()
        ]
        if not sessions:
            return sessions

        by_id = {session.id: session for session in sessions}
        records_result = await self.db.execute(
            select(StudentAttendance.attendance_session_id, StudentAttendance.status)
            .where(StudentAttendance.attendance_session_id.in_(list(by_id)))
            .order_by(StudentAttendance.id)
        )
        for session_id, status in records_result.all():
            by_id[session_id].statuses.append(status)

        logger.debug(f"Fetched {len(sessions)} attendance sessions between {start} and {end}")
        return sessions

    async def fetch_classrooms_by_ids(self, classroom_ids: Iterable[int]) -> Dict[int, ClassroomMeta]:
        """
        Grade and section of each classroom in one query.

        Returns:
            Mapping of classroom id to ClassroomMeta; grade or section is None
            when the classroom has none
        """
        ids = list(classroom_ids)
        if not ids:
            return {}

        result = await self.db.execute(
            select(Classroom.id, Grade, Section)
            .select_from(Classroom)
            .outerjoin(Grade, Grade.id == Classroom.grade_id)
            .outerjoin(Section, Section.id == Classroom.section_id)
            .where(Classroom.id.in_(ids))
        )
        meta = {}
        for classroom_id, grade, section in result.all():
            meta[classroom_id] = ClassroomMeta(
                grade={"id": grade.id, "name": grade.name, "level": grade.level} if grade else None,
                section={"id": section.id, "label": section.label} if section else None,
            )
        return meta

    async def fetch_homeroom_classroom_ids(self, teacher_id: int, school_id: int) -> List[int]:
        """Classrooms of the school holding at least one student whose class teacher is ``teacher_id``."""
        result = await self.db.execute(
            select(Classroom.id)
            .join(Student, Student.classroom_id == Classroom.id)
            .where(
                and_(
                    Classroom.school_id == school_id,
                    Student.class_teacher_id == teacher_id,
                )
            )
            .distinct()
            .order_by(Classroom.id)
        )
        return list(result.scalars().all())

    async def fetch_teacher_subject_assignments(self, teacher_id: int, school_id: int) -> List[SubjectAssignmentRow]:
        result = await self.db.execute(
            select(TeacherSubject.classroom_id, Subject.id, Subject.code, Subject.name)
            .select_from(TeacherSubject)
            .join(Subject, Subject.id == TeacherSubject.subject_id)
            .join(Classroom, Classroom.id == TeacherSubject.classroom_id)
            .where(
                and_(
                    TeacherSubject.teacher_id == teacher_id,
                    TeacherSubject.classroom_id.isnot(None),
                    Classroom.school_id == school_id,
                )
            )
            .order_by(TeacherSubject.id)
        )
        return [
            SubjectAssignmentRow(
                classroom_id=classroom_id,
                subject_id=subject_id,
                subject_code=code,
                subject_name=name,
            )
            for classroom_id, subject_id, code, name in result.all()
        ]

    async def count_by_status(
        self,
        student_id: int,
        on: Optional[date] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> Dict[str, int]:
        """
        Count a student's attendance records grouped by status.

        ``on`` restricts to sessions held on exactly that date; ``start``/``end``
        bound the session date inclusively. With neither, every record counts.
        """
        query = (
            select(StudentAttendance.status, func.count(StudentAttendance.id))
            .join(AttendanceSession, AttendanceSession.id == StudentAttendance.attendance_session_id)
            .where(StudentAttendance.student_id == student_id)
        )
        if on is not None:
            query = query.where(AttendanceSession.session_date == on)
        if start is not None:
            query = query.where(AttendanceSession.session_date >= start)
        if end is not None:
            query = query.where(AttendanceSession.session_date <= end)
        query = query.group_by(StudentAttendance.status)

        result = await self.db.execute(query)
        return {status: count for status, count in result.all()}
