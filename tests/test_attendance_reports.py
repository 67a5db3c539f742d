from datetime import date, datetime

import pytest

from app.services.attendance_reports import (
    AttendanceCounters,
    ClassroomNotAssignedError,
    DateRange,
    ReportScopeError,
    build_school_attendance_report,
    build_student_attendance_summary,
    build_teacher_attendance_report,
    build_teacher_classroom_map,
    compute_rate,
    ensure_accumulator,
    week_start,
)
from app.services.report_repository import ClassroomMeta, SessionRow, SubjectAssignmentRow

JANUARY = DateRange(start=date(2024, 1, 1), end=date(2024, 1, 31))


class FakeReportRepository:
    """In-memory stand-in for AttendanceReportRepository."""

    def __init__(self, sessions=(), meta=None, homerooms=(), assignments=(), student_records=()):
        self.sessions = list(sessions)
        self.meta = meta or {}
        self.homerooms = list(homerooms)
        self.assignments = list(assignments)
        # (session_date, status) pairs for a single student
        self.student_records = list(student_records)
        self.meta_lookups = []
        self.session_queries = []

    async def fetch_sessions(self, start, end, school_id=None, classroom_ids=None):
        self.session_queries.append({"school_id": school_id, "classroom_ids": classroom_ids})
        rows = [
            session for session in self.sessions
            if start <= session.session_date <= end
            and (classroom_ids is None or session.classroom_id in classroom_ids)
        ]
        return sorted(rows, key=lambda session: (session.session_date, session.id))

    async def fetch_classrooms_by_ids(self, classroom_ids):
        self.meta_lookups.append(list(classroom_ids))
        return {classroom_id: self.meta[classroom_id] for classroom_id in classroom_ids if classroom_id in self.meta}

    async def fetch_homeroom_classroom_ids(self, teacher_id, school_id):
        return list(self.homerooms)

    async def fetch_teacher_subject_assignments(self, teacher_id, school_id):
        return list(self.assignments)

    async def count_by_status(self, student_id, on=None, start=None, end=None):
        counts = {}
        for session_date, status in self.student_records:
            if on is not None and session_date != on:
                continue
            if start is not None and session_date < start:
                continue
            if end is not None and session_date > end:
                continue
            counts[status] = counts.get(status, 0) + 1
        return counts


def session(session_id, classroom_id, day, *statuses):
    return SessionRow(id=session_id, classroom_id=classroom_id, session_date=day, statuses=list(statuses))


def assignment(classroom_id, subject_id, code):
    return SubjectAssignmentRow(
        classroom_id=classroom_id, subject_id=subject_id, subject_code=code, subject_name=code.title()
    )


class TestComputeRate:
    def test_zero_total_is_zero(self):
        assert compute_rate(0, 0) == 0

    def test_rounds_to_four_places_by_default(self):
        assert compute_rate(2, 3) == 0.6667
        assert compute_rate(1, 3) == 0.3333

    def test_rounds_half_up(self):
        assert compute_rate(1, 8, places=2) == 0.13
        assert compute_rate(2, 3, places=2) == 0.67

    def test_stays_within_bounds(self):
        for total in range(0, 25):
            for present in range(0, total + 1):
                assert 0 <= compute_rate(present, total) <= 1
        assert compute_rate(7, 7) == 1


class TestAttendanceCounters:
    def test_total_matches_status_counts_after_every_fold(self):
        counters = AttendanceCounters()
        for status in ["present", "absent", "late", "present", "excused", "late", "present"]:
            counters.tally(status)
            assert counters.total_records == counters.present + counters.absent + counters.late + counters.excused
        assert (counters.present, counters.absent, counters.late, counters.excused) == (3, 1, 2, 1)

    def test_fold_order_does_not_matter(self):
        statuses = ["present", "absent", "late", "excused", "present"]
        forward, backward = AttendanceCounters(), AttendanceCounters()
        for status in statuses:
            forward.tally(status)
        for status in reversed(statuses):
            backward.tally(status)
        assert forward == backward

    def test_rejects_unknown_status(self):
        with pytest.raises(ValueError):
            AttendanceCounters().tally("sleeping")


def test_ensure_accumulator_is_idempotent():
    accumulators = {}
    first = ensure_accumulator(accumulators, 7, with_trend=True)
    first.tally("present")
    first.total_sessions = 2

    again = ensure_accumulator(accumulators, 7)

    assert again is first
    assert again.total_records == 1
    assert again.total_sessions == 2
    assert again.trend == []
    assert ensure_accumulator(accumulators, 8).trend is None


class TestSchoolReport:
    async def test_empty_range_yields_zeroed_report(self):
        repository = FakeReportRepository()

        report = await build_school_attendance_report(repository, school_id=1, date_range=JANUARY)

        assert report["totals"] == {
            "sessions": 0, "total_records": 0, "present": 0, "absent": 0,
            "late": 0, "excused": 0, "attendance_rate": 0,
        }
        assert report["classrooms"] == []
        assert report["top_classrooms"] == []
        assert report["bottom_classrooms"] == []
        assert repository.meta_lookups == []

    async def test_single_session_example(self):
        repository = FakeReportRepository(
            sessions=[session(1, 10, date(2024, 1, 10), "present", "present", "absent")],
            meta={10: ClassroomMeta(grade={"id": 1, "name": "Grade 5", "level": 5}, section={"id": 2, "label": "A"})},
        )

        report = await build_school_attendance_report(repository, school_id=1, date_range=JANUARY)

        classroom = report["classrooms"][0]
        assert classroom["classroom_id"] == 10
        assert classroom["total_sessions"] == 1
        assert classroom["total_records"] == 3
        assert (classroom["present"], classroom["absent"], classroom["late"], classroom["excused"]) == (2, 1, 0, 0)
        assert classroom["attendance_rate"] == 0.6667
        assert classroom["grade"]["name"] == "Grade 5"
        assert classroom["section"]["label"] == "A"
        assert report["totals"] == {
            "sessions": 1, "total_records": 3, "present": 2, "absent": 1,
            "late": 0, "excused": 0, "attendance_rate": 0.6667,
        }
        assert report["range"] == {"start": JANUARY.start, "end": JANUARY.end}

    async def test_ranks_classrooms_by_rate(self):
        repository = FakeReportRepository(sessions=[
            session(1, 1, date(2024, 1, 2), *(["present"] * 9 + ["absent"])),
            session(2, 2, date(2024, 1, 2), *(["present"] * 5 + ["absent"] * 5)),
            session(3, 3, date(2024, 1, 2), *(["present"] * 7 + ["late"] * 3)),
        ])

        report = await build_school_attendance_report(repository, school_id=1, date_range=JANUARY)

        assert [c["attendance_rate"] for c in report["top_classrooms"]] == [0.9, 0.7, 0.5]
        assert [c["attendance_rate"] for c in report["bottom_classrooms"]] == [0.5, 0.7, 0.9]
        assert [c["classroom_id"] for c in report["classrooms"]] == [1, 2, 3]

    async def test_rankings_are_capped_and_stable_for_ties(self):
        sessions = [session(i, i, date(2024, 1, 3), "present", "absent") for i in range(1, 8)]
        sessions.append(session(8, 8, date(2024, 1, 3), "present"))
        repository = FakeReportRepository(sessions=sessions)

        report = await build_school_attendance_report(repository, school_id=1, date_range=JANUARY)

        assert len(report["classrooms"]) == 8
        assert [c["classroom_id"] for c in report["top_classrooms"]] == [8, 1, 2, 3, 4]
        assert [c["classroom_id"] for c in report["bottom_classrooms"]] == [7, 6, 5, 4, 3]

    async def test_ranking_size_is_configurable(self):
        sessions = [session(i, i, date(2024, 1, 3), "present") for i in range(1, 5)]
        report = await build_school_attendance_report(
            FakeReportRepository(sessions=sessions), school_id=1, date_range=JANUARY, ranking_size=2
        )
        assert len(report["top_classrooms"]) == 2
        assert len(report["bottom_classrooms"]) == 2

    async def test_session_without_records_counts_as_session_only(self):
        repository = FakeReportRepository(sessions=[
            session(1, 10, date(2024, 1, 8), "present", "absent"),
            session(2, 10, date(2024, 1, 9)),
        ])

        report = await build_school_attendance_report(repository, school_id=1, date_range=JANUARY)

        classroom = report["classrooms"][0]
        assert classroom["total_sessions"] == 2
        assert classroom["total_records"] == 2
        assert classroom["attendance_rate"] == 0.5
        assert report["totals"]["sessions"] == 2

    async def test_classroom_metadata_is_fetched_once(self):
        repository = FakeReportRepository(
            sessions=[session(i, 100 + i, date(2024, 1, 4), "present") for i in range(1, 4)],
            meta={101: ClassroomMeta(grade={"id": 1, "name": "Grade 1", "level": 1})},
        )

        report = await build_school_attendance_report(repository, school_id=1, date_range=JANUARY)

        assert repository.meta_lookups == [[101, 102, 103]]
        by_id = {c["classroom_id"]: c for c in report["classrooms"]}
        assert by_id[101]["section"] is None
        assert by_id[102]["grade"] is None
        assert by_id[102]["section"] is None

    async def test_sessions_outside_range_are_ignored(self):
        repository = FakeReportRepository(sessions=[
            session(1, 10, date(2023, 12, 31), "absent"),
            session(2, 10, date(2024, 1, 1), "present"),
            session(3, 10, date(2024, 1, 31), "present"),
            session(4, 10, date(2024, 2, 1), "absent"),
        ])

        report = await build_school_attendance_report(repository, school_id=1, date_range=JANUARY)

        assert report["totals"]["sessions"] == 2
        assert report["totals"]["attendance_rate"] == 1


class TestTeacherClassroomMap:
    async def test_homeroom_and_subject_roles_merge(self):
        repository = FakeReportRepository(
            homerooms=[5],
            assignments=[assignment(5, 1, "MATH"), assignment(6, 2, "SCI"), assignment(5, 3, "ART")],
        )

        accumulators = await build_teacher_classroom_map(repository, teacher_id=1, school_id=1)

        assert list(accumulators) == [5, 6]
        assert accumulators[5].roles.homeroom is True
        assert [s["subject_code"] for s in accumulators[5].roles.subjects] == ["MATH", "ART"]
        assert accumulators[6].roles.homeroom is False
        assert accumulators[6].roles.subjects[0] == {"subject_id": 2, "subject_code": "SCI", "subject_name": "Sci"}
        assert accumulators[5].trend == []

    async def test_assignment_without_classroom_contributes_nothing(self):
        repository = FakeReportRepository(assignments=[assignment(None, 1, "MATH")])

        assert await build_teacher_classroom_map(repository, teacher_id=1, school_id=1) == {}


class TestTeacherReport:
    async def test_unassigned_teacher_gets_empty_report(self):
        repository = FakeReportRepository()

        report = await build_teacher_attendance_report(repository, teacher_id=3, school_id=1, date_range=JANUARY)

        assert report["classrooms"] == []
        assert report["teacher_id"] == 3
        assert repository.session_queries == []

    async def test_filter_outside_assignments_is_rejected(self):
        repository = FakeReportRepository(homerooms=[5])

        with pytest.raises(ClassroomNotAssignedError) as excinfo:
            await build_teacher_attendance_report(
                repository, teacher_id=1, school_id=1, date_range=JANUARY, classroom_filter=99
            )

        assert isinstance(excinfo.value, ReportScopeError)
        assert excinfo.value.classroom_id == 99
        assert repository.session_queries == []

    async def test_trend_follows_session_order(self):
        repository = FakeReportRepository(
            sessions=[
                session(2, 5, date(2024, 1, 9), "present", "late"),
                session(1, 5, date(2024, 1, 8), "present", "present", "absent", "excused"),
                session(3, 6, date(2024, 1, 8), "absent"),
            ],
            homerooms=[5],
            assignments=[assignment(5, 1, "MATH"), assignment(6, 2, "SCI")],
            meta={5: ClassroomMeta(grade={"id": 1, "name": "Grade 5", "level": 5}, section={"id": 1, "label": "A"})},
        )

        report = await build_teacher_attendance_report(repository, teacher_id=1, school_id=1, date_range=JANUARY)

        first, second = report["classrooms"]
        assert first["classroom_id"] == 5
        assert first["roles"]["homeroom"] is True
        assert first["roles"]["subjects"][0]["subject_code"] == "MATH"
        assert first["total_sessions"] == 2
        assert first["total_records"] == 6
        assert first["attendance_rate"] == 0.5
        assert first["trend"] == [
            {"date": date(2024, 1, 8), "present": 2, "absent": 1, "late": 0, "excused": 1, "attendance_rate": 0.5},
            {"date": date(2024, 1, 9), "present": 1, "absent": 0, "late": 1, "excused": 0, "attendance_rate": 0.5},
        ]
        assert second["classroom_id"] == 6
        assert second["roles"]["homeroom"] is False
        assert second["attendance_rate"] == 0
        assert second["grade"] is None
        assert repository.meta_lookups == [[5, 6]]

    async def test_filter_narrows_to_one_classroom(self):
        repository = FakeReportRepository(
            sessions=[session(1, 5, date(2024, 1, 8), "present"), session(2, 6, date(2024, 1, 8), "absent")],
            homerooms=[5],
            assignments=[assignment(6, 2, "SCI")],
        )

        report = await build_teacher_attendance_report(
            repository, teacher_id=1, school_id=1, date_range=JANUARY, classroom_filter=6
        )

        assert [c["classroom_id"] for c in report["classrooms"]] == [6]
        assert report["classrooms"][0]["trend"][0]["absent"] == 1
        assert repository.session_queries[-1]["classroom_ids"] == [6]

    async def test_classroom_without_sessions_reports_zeroes(self):
        repository = FakeReportRepository(homerooms=[5])

        report = await build_teacher_attendance_report(repository, teacher_id=1, school_id=1, date_range=JANUARY)

        classroom = report["classrooms"][0]
        assert classroom["total_sessions"] == 0
        assert classroom["trend"] == []
        assert classroom["attendance_rate"] == 0


class TestStudentSummary:
    def test_week_starts_on_monday(self):
        assert week_start(date(2024, 1, 10)) == date(2024, 1, 8)
        assert week_start(date(2024, 1, 8)) == date(2024, 1, 8)
        assert week_start(date(2024, 1, 14)) == date(2024, 1, 8)

    async def test_windows_around_a_wednesday(self):
        repository = FakeReportRepository(student_records=[
            (date(2024, 1, 7), "present"),
            (date(2024, 1, 8), "absent"),
            (date(2024, 1, 10), "present"),
            (date(2024, 1, 11), "late"),
        ])
        now = datetime(2024, 1, 10, 14, 30)

        summary = await build_student_attendance_summary(repository, student_id=42, now=now)

        assert summary["student_id"] == 42
        assert summary["today"] == {
            "total_records": 1, "present": 1, "absent": 0, "late": 0, "excused": 0, "attendance_rate": 1,
        }
        assert summary["this_week"]["total_records"] == 2
        assert summary["this_week"]["attendance_rate"] == 0.5
        assert summary["overall"]["total_records"] == 4
        assert summary["overall"]["present"] == 2
        assert summary["overall"]["late"] == 1
        assert summary["overall"]["attendance_rate"] == 0.5
        assert summary["generated_at"] == now

    async def test_summary_rates_use_two_places(self):
        repository = FakeReportRepository(student_records=[
            (date(2024, 1, 8), "present"), (date(2024, 1, 9), "present"), (date(2024, 1, 9), "absent"),
        ])

        summary = await build_student_attendance_summary(repository, student_id=1, now=datetime(2024, 1, 9, 8, 0))

        assert summary["this_week"]["attendance_rate"] == 0.67

    async def test_no_records_gives_zero_rates(self):
        summary = await build_student_attendance_summary(
            FakeReportRepository(), student_id=1, now=datetime(2024, 1, 9, 8, 0)
        )
        for window in ("today", "this_week", "overall"):
            assert summary[window]["total_records"] == 0
            assert summary[window]["attendance_rate"] == 0
