import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from datetime import date
from types import SimpleNamespace

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.database import get_db
from app.main import app
from app.models import (
    AttendanceSession, Base, Classroom, Grade, School, Section, Student, StudentAttendance,
    Subject, Teacher, TeacherSubject, User,
)
from app.services.auth import create_access_token


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


async def add(db, obj):
    db.add(obj)
    await db.flush()
    return obj


async def add_session(db, classroom, session_date, records=None, subject=None):
    """Create an attendance session with ``records`` given as (student, status) pairs."""
    session = await add(db, AttendanceSession(
        school_id=classroom.school_id,
        classroom_id=classroom.id,
        subject_id=subject.id if subject else None,
        session_date=session_date,
    ))
    for student, status in records or []:
        db.add(StudentAttendance(attendance_session_id=session.id, student_id=student.id, status=status))
    await db.flush()
    return session


def auth_headers(user):
    token = create_access_token({"sub": str(user.id), "role": user.role})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def school_data(db):
    """
    Two schools. In the first, teacher ``homeroom_teacher`` is class teacher of
    classroom ``room_a`` and also teaches MATH there, and teaches SCI in
    ``room_b``. ``room_c`` has no grade or section.
    """
    school = await add(db, School(name="Riverside Primary", district="North"))
    other_school = await add(db, School(name="Hillside Primary", district="South"))

    grade = await add(db, Grade(school_id=school.id, name="Grade 5", level=5))
    section_a = await add(db, Section(grade_id=grade.id, label="A"))
    section_b = await add(db, Section(grade_id=grade.id, label="B"))

    room_a = await add(db, Classroom(school_id=school.id, grade_id=grade.id, section_id=section_a.id, academic_year="2023-2024"))
    room_b = await add(db, Classroom(school_id=school.id, grade_id=grade.id, section_id=section_b.id, academic_year="2023-2024"))
    room_c = await add(db, Classroom(school_id=school.id, academic_year="2023-2024"))
    foreign_room = await add(db, Classroom(school_id=other_school.id, academic_year="2023-2024"))

    homeroom_teacher = await add(db, Teacher(school_id=school.id, first_name="Ada", last_name="Obi", email="ada@riverside.test"))
    idle_teacher = await add(db, Teacher(school_id=school.id, first_name="Ben", last_name="Eze", email="ben@riverside.test"))
    foreign_teacher = await add(db, Teacher(school_id=other_school.id, first_name="Cy", last_name="Lee", email="cy@hillside.test"))

    math = await add(db, Subject(school_id=school.id, code="MATH", name="Mathematics"))
    science = await add(db, Subject(school_id=school.id, code="SCI", name="Science"))

    def student(code, classroom, class_teacher=None):
        return Student(
            school_id=classroom.school_id,
            classroom_id=classroom.id,
            class_teacher_id=class_teacher.id if class_teacher else None,
            code=code,
            first_name=code,
            last_name="Student",
            enrolled_at=date(2023, 9, 1),
        )

    a1 = await add(db, student("A001", room_a, homeroom_teacher))
    a2 = await add(db, student("A002", room_a, homeroom_teacher))
    a3 = await add(db, student("A003", room_a, homeroom_teacher))
    b1 = await add(db, student("B001", room_b))
    b2 = await add(db, student("B002", room_b))
    c1 = await add(db, student("C001", room_c))
    foreign_student = await add(db, student("F001", foreign_room))

    await add(db, TeacherSubject(teacher_id=homeroom_teacher.id, subject_id=math.id, classroom_id=room_a.id, start_date=date(2023, 9, 1)))
    await add(db, TeacherSubject(teacher_id=homeroom_teacher.id, subject_id=science.id, classroom_id=room_b.id, start_date=date(2023, 9, 1)))
    await add(db, TeacherSubject(teacher_id=homeroom_teacher.id, subject_id=science.id, classroom_id=None, start_date=date(2023, 9, 1)))

    def user(email, role, **links):
        return User(email=email, full_name=email.split("@")[0], role=role, hashed_password="x", **links)

    admin = await add(db, user("admin@gov.test", "ADMIN"))
    principal = await add(db, user("principal@riverside.test", "PRINCIPAL", school_id=school.id))
    teacher_user = await add(db, user("ada.user@riverside.test", "TEACHER", teacher_id=homeroom_teacher.id))
    idle_teacher_user = await add(db, user("ben.user@riverside.test", "TEACHER", teacher_id=idle_teacher.id))
    profileless_teacher = await add(db, user("nobody@riverside.test", "TEACHER", school_id=school.id))
    student_user = await add(db, user("a001@riverside.test", "STUDENT", student_id=a1.id))
    blocked = await add(db, user("blocked@riverside.test", "PRINCIPAL", school_id=school.id, status="blocked"))

    await db.commit()

    return SimpleNamespace(
        school=school, other_school=other_school, grade=grade, section_a=section_a, section_b=section_b,
        room_a=room_a, room_b=room_b, room_c=room_c, foreign_room=foreign_room,
        homeroom_teacher=homeroom_teacher, idle_teacher=idle_teacher, foreign_teacher=foreign_teacher,
        math=math, science=science,
        a1=a1, a2=a2, a3=a3, b1=b1, b2=b2, c1=c1, foreign_student=foreign_student,
        admin=admin, principal=principal, teacher_user=teacher_user, idle_teacher_user=idle_teacher_user,
        profileless_teacher=profileless_teacher, student_user=student_user, blocked=blocked,
    )
