"""
Attendance aggregation for school, teacher and student reports.

Raw attendance sessions are folded into per-classroom accumulators and
finalized into summaries with attendance rates. All storage access goes
through an ``AttendanceReportRepository`` (or any object with the same
coroutines); every report is built from fresh accumulators on each call.
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional

from app.schemas.attendance import AttendanceStatusEnum

logger = logging.getLogger(__name__)

# Rounding applied to report figures and to the lighter student summary
REPORT_RATE_PLACES = 4
SUMMARY_RATE_PLACES = 2


class ReportScopeError(Exception):
    """Raised when a report filter points outside what the requester may see."""


class ClassroomNotAssignedError(ReportScopeError):
    def __init__(self, classroom_id: int):
        self.classroom_id = classroom_id
        super().__init__("Classroom is not assigned to teacher")


@dataclass
class DateRange:
    start: date
    end: date

    def as_dict(self) -> Dict[str, date]:
        return {"start": self.start, "end": self.end}


def compute_rate(present: int, total: int, places: int = REPORT_RATE_PLACES) -> float:
    """Share of ``present`` in ``total``, rounded half-up; 0 when there is nothing to count."""
    if not total:
        return 0
    quantum = Decimal(1).scaleb(-places)
    rate = (Decimal(present) / Decimal(total)).quantize(quantum, rounding=ROUND_HALF_UP)
    return float(rate)


@dataclass
class AttendanceCounters:
    total_records: int = 0
    present: int = 0
    absent: int = 0
    late: int = 0
    excused: int = 0

    def tally(self, status) -> None:
        key = AttendanceStatusEnum(status).value
        self.total_records += 1
        setattr(self, key, getattr(self, key) + 1)

    def as_dict(self, places: int = REPORT_RATE_PLACES) -> Dict[str, Any]:
        return {
            "total_records": self.total_records,
            "present": self.present,
            "absent": self.absent,
            "late": self.late,
            "excused": self.excused,
            "attendance_rate": compute_rate(self.present, self.total_records, places),
        }


@dataclass
class ClassroomRoles:
    homeroom: bool = False
    subjects: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class ClassroomAccumulator(AttendanceCounters):
    classroom_id: int = 0
    total_sessions: int = 0
    grade: Optional[Dict[str, Any]] = None
    section: Optional[Dict[str, Any]] = None
    trend: Optional[List[Dict[str, Any]]] = None
    roles: Optional[ClassroomRoles] = None


def ensure_accumulator(
    accumulators: Dict[int, ClassroomAccumulator], classroom_id: int, with_trend: bool = False
) -> ClassroomAccumulator:
    acc = accumulators.get(classroom_id)
    if acc is None:
        acc = ClassroomAccumulator(classroom_id=classroom_id, trend=[] if with_trend else None)
        accumulators[classroom_id] = acc
    return acc


async def attach_classroom_meta(repository, accumulators: Dict[int, ClassroomAccumulator]) -> None:
    """Fill in grade and section for every accumulated classroom with a single lookup."""
    if not accumulators:
        return
    meta = await repository.fetch_classrooms_by_ids(list(accumulators))
    for classroom_id, acc in accumulators.items():
        detail = meta.get(classroom_id)
        if detail is not None:
            acc.grade = detail.grade
            acc.section = detail.section


def summarize_accumulator(acc: ClassroomAccumulator) -> Dict[str, Any]:
    roles = acc.roles or ClassroomRoles()
    return {
        "classroom_id": acc.classroom_id,
        "grade": acc.grade,
        "section": acc.section,
        "total_sessions": acc.total_sessions,
        **acc.as_dict(),
        "trend": list(acc.trend or []),
        "roles": {"homeroom": roles.homeroom, "subjects": list(roles.subjects)},
    }


async def build_school_attendance_report(
    repository, school_id: int, date_range: DateRange, ranking_size: int = 5
) -> Dict[str, Any]:
    """
    Roll up every attendance session of a school within ``date_range``.

    Each classroom's ``total_sessions`` counts every session scanned for it,
    including sessions where nobody was recorded; such sessions add nothing to
    the record counts and so leave the rate untouched.

    Args:
        repository: Source of sessions and classroom metadata
        school_id: School to report on
        date_range: Inclusive range of session dates
        ranking_size: Number of classrooms in the top and bottom rankings

    Returns:
        Report dict with totals, per-classroom summaries, rankings and the
        generation timestamp
    """
    sessions = await repository.fetch_sessions(date_range.start, date_range.end, school_id=school_id)

    accumulators: Dict[int, ClassroomAccumulator] = {}
    totals = AttendanceCounters()

    for session in sessions:
        acc = ensure_accumulator(accumulators, session.classroom_id)
        acc.total_sessions += 1
        for status in session.statuses:
            acc.tally(status)
            totals.tally(status)

    await attach_classroom_meta(repository, accumulators)
    classrooms = [summarize_accumulator(acc) for acc in accumulators.values()]
    # sorted() is stable, so equal rates keep their scan order
    ordered = sorted(classrooms, key=lambda summary: summary["attendance_rate"], reverse=True)
    bottom_ordered = list(reversed(ordered))

    logger.info(
        f"Built school attendance report for school {school_id}: "
        f"{len(sessions)} sessions, {len(classrooms)} classrooms"
    )
    return {
        "school_id": school_id,
        "range": date_range.as_dict(),
        "totals": {"sessions": len(sessions), **totals.as_dict()},
        "classrooms": classrooms,
        "top_classrooms": ordered[:ranking_size],
        "bottom_classrooms": bottom_ordered[:ranking_size],
        "generated_at": datetime.now(timezone.utc),
    }


async def build_teacher_classroom_map(repository, teacher_id: int, school_id: int) -> Dict[int, ClassroomAccumulator]:
    """
    Classrooms a teacher may report on, tagged with the role(s) held in each.

    Homeroom classrooms come first, followed by classrooms reached only through
    subject assignments. A classroom reached both ways carries both tags.
    """
    accumulators: Dict[int, ClassroomAccumulator] = {}

    for classroom_id in await repository.fetch_homeroom_classroom_ids(teacher_id, school_id):
        acc = ensure_accumulator(accumulators, classroom_id, with_trend=True)
        acc.roles = acc.roles or ClassroomRoles()
        acc.roles.homeroom = True

    for assignment in await repository.fetch_teacher_subject_assignments(teacher_id, school_id):
        if assignment.classroom_id is None:
            continue
        acc = ensure_accumulator(accumulators, assignment.classroom_id, with_trend=True)
        acc.roles = acc.roles or ClassroomRoles()
        acc.roles.subjects.append({
            "subject_id": assignment.subject_id,
            "subject_code": assignment.subject_code,
            "subject_name": assignment.subject_name,
        })

    return accumulators


async def build_teacher_attendance_report(
    repository,
    teacher_id: int,
    school_id: int,
    date_range: DateRange,
    classroom_filter: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Per-classroom attendance for the classrooms a teacher is assigned to, with a
    trend point for every session in ``date_range``.

    Args:
        repository: Source of assignments, sessions and classroom metadata
        teacher_id: Teacher whose classrooms are reported
        school_id: School the assignments are resolved in
        date_range: Inclusive range of session dates
        classroom_filter: Optional classroom to restrict the report to

    Returns:
        Report dict with one summary per classroom, each carrying its roles and
        trend points

    Raises:
        ClassroomNotAssignedError: If ``classroom_filter`` names a classroom
            outside the teacher's assignments
    """
    accumulators = await build_teacher_classroom_map(repository, teacher_id, school_id)
    report = {
        "teacher_id": teacher_id,
        "school_id": school_id,
        "range": date_range.as_dict(),
        "classrooms": [],
    }

    if not accumulators:
        logger.info(f"Teacher {teacher_id} has no classrooms in school {school_id}")
        report["generated_at"] = datetime.now(timezone.utc)
        return report

    target_ids = list(accumulators)
    if classroom_filter is not None:
        target_ids = [classroom_id for classroom_id in target_ids if classroom_id == classroom_filter]
        if not target_ids:
            raise ClassroomNotAssignedError(classroom_filter)

    sessions = await repository.fetch_sessions(date_range.start, date_range.end, classroom_ids=target_ids)

    for session in sessions:
        acc = accumulators.get(session.classroom_id)
        if acc is None:
            continue
        acc.total_sessions += 1
        session_counters = AttendanceCounters()
        for status in session.statuses:
            acc.tally(status)
            session_counters.tally(status)
        point = session_counters.as_dict()
        del point["total_records"]
        acc.trend.append({"date": session.session_date, **point})

    targets = {classroom_id: accumulators[classroom_id] for classroom_id in target_ids}
    await attach_classroom_meta(repository, targets)

    logger.info(
        f"Built teacher attendance report for teacher {teacher_id}: "
        f"{len(targets)} classrooms, {len(sessions)} sessions"
    )
    report["classrooms"] = [summarize_accumulator(acc) for acc in targets.values()]
    report["generated_at"] = datetime.now(timezone.utc)
    return report


def week_start(day: date) -> date:
    """Monday of the ISO week containing ``day``."""
    return day - timedelta(days=day.isoweekday() - 1)


async def _window_tally(repository, student_id: int, **window) -> Dict[str, Any]:
    counts = await repository.count_by_status(student_id, **window)
    counters = AttendanceCounters()
    for status in AttendanceStatusEnum:
        count = counts.get(status.value, 0)
        setattr(counters, status.value, count)
        counters.total_records += count
    return counters.as_dict(SUMMARY_RATE_PLACES)


async def build_student_attendance_summary(repository, student_id: int, now: datetime) -> Dict[str, Any]:
    """
    Today, this-week and overall attendance for a student as of ``now``.

    The week runs from Monday through the day of ``now`` inclusive. Each window
    is counted independently.

    Args:
        repository: Source of per-status record counts
        student_id: Student to summarize
        now: Reference time; its date is 'today'

    Returns:
        Dict with ``today``, ``this_week`` and ``overall`` tallies
    """
    today = now.date()
    return {
        "student_id": student_id,
        "today": await _window_tally(repository, student_id, on=today),
        "this_week": await _window_tally(repository, student_id, start=week_start(today), end=today),
        "overall": await _window_tally(repository, student_id),
        "generated_at": now,
    }
