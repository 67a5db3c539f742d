from datetime import date, datetime
from typing import List, Optional

from app.schemas.common import BigId, CamelModel


class GradeInfo(CamelModel):
    id: BigId
    name: str
    level: int


class SectionInfo(CamelModel):
    id: BigId
    label: str


class SubjectRole(CamelModel):
    subject_id: BigId
    subject_code: str
    subject_name: str


class ClassroomRoles(CamelModel):
    homeroom: bool = False
    subjects: List[SubjectRole] = []


class TrendPoint(CamelModel):
    date: date
    present: int
    absent: int
    late: int
    excused: int
    attendance_rate: float


class ClassroomSummary(CamelModel):
    classroom_id: BigId
    grade: Optional[GradeInfo] = None
    section: Optional[SectionInfo] = None
    total_sessions: int
    total_records: int
    present: int
    absent: int
    late: int
    excused: int
    attendance_rate: float
    trend: List[TrendPoint] = []
    roles: ClassroomRoles = ClassroomRoles()


class ReportRange(CamelModel):
    start: date
    end: date


class ReportTotals(CamelModel):
    sessions: int
    total_records: int
    present: int
    absent: int
    late: int
    excused: int
    attendance_rate: float


class SchoolAttendanceReport(CamelModel):
    school_id: BigId
    range: ReportRange
    totals: ReportTotals
    classrooms: List[ClassroomSummary]
    top_classrooms: List[ClassroomSummary]
    bottom_classrooms: List[ClassroomSummary]
    generated_at: datetime


class TeacherAttendanceReport(CamelModel):
    teacher_id: BigId
    school_id: BigId
    range: ReportRange
    classrooms: List[ClassroomSummary]
    generated_at: datetime


class StatusTally(CamelModel):
    total_records: int
    present: int
    absent: int
    late: int
    excused: int
    attendance_rate: float


class StudentAttendanceSummary(CamelModel):
    student_id: BigId
    today: StatusTally
    this_week: StatusTally
    overall: StatusTally
    generated_at: datetime
