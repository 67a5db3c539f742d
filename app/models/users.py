from sqlalchemy import Column, String, ForeignKey, Text, Date, DateTime, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base, BigIntId

# Users
class User(Base):
    __tablename__ = "users"
    
    id = Column(BigIntId, primary_key=True, index=True)
    school_id = Column(BigIntId, ForeignKey("schools.id", ondelete="CASCADE"))
    teacher_id = Column(BigIntId, ForeignKey("teachers.id", ondelete="SET NULL"))
    student_id = Column(BigIntId, ForeignKey("students.id", ondelete="SET NULL"))
    role = Column(String(20), nullable=False)
    status = Column(String(20), nullable=False, default="active")
    full_name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    hashed_password = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    
    __table_args__ = (
        CheckConstraint(
            "role IN ('ADMIN', 'GOVERNMENT', 'PRINCIPAL', 'TEACHER', 'STUDENT')",
            name="check_user_role",
        ),
        CheckConstraint("status IN ('active', 'blocked')", name="check_user_status"),
    )
    
    # Relationships
    teacher = relationship("Teacher", lazy="joined")
    student = relationship("Student", lazy="joined")

# Teacher model
class Teacher(Base):
    __tablename__ = "teachers"
    
    id = Column(BigIntId, primary_key=True, index=True)
    school_id = Column(BigIntId, ForeignKey("schools.id", ondelete="CASCADE"), nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    
    # Relationships
    school = relationship("School", back_populates="teachers")
    homeroom_students = relationship("Student", back_populates="class_teacher")
    subject_assignments = relationship("TeacherSubject", back_populates="teacher")

# Teacher-Subject assignment; classroom is optional
class TeacherSubject(Base):
    __tablename__ = "teacher_subjects"
    
    id = Column(BigIntId, primary_key=True, index=True)
    teacher_id = Column(BigIntId, ForeignKey("teachers.id", ondelete="CASCADE"), nullable=False, index=True)
    subject_id = Column(BigIntId, ForeignKey("subjects.id", ondelete="CASCADE"), nullable=False)
    classroom_id = Column(BigIntId, ForeignKey("classrooms.id", ondelete="SET NULL"))
    start_date = Column(Date, nullable=False)
    end_date = Column(Date)
    
    # Relationships
    teacher = relationship("Teacher", back_populates="subject_assignments")
    subject = relationship("Subject", back_populates="teacher_subjects")
    classroom = relationship("Classroom")

# Student model
class Student(Base):
    __tablename__ = "students"
    
    id = Column(BigIntId, primary_key=True, index=True)
    school_id = Column(BigIntId, ForeignKey("schools.id", ondelete="CASCADE"), nullable=False)
    classroom_id = Column(BigIntId, ForeignKey("classrooms.id"), nullable=False)
    class_teacher_id = Column(BigIntId, ForeignKey("teachers.id", ondelete="SET NULL"), index=True)
    code = Column(String(50), unique=True, nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    enrolled_at = Column(Date)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    
    # Relationships
    school = relationship("School", back_populates="students")
    classroom = relationship("Classroom", back_populates="students")
    class_teacher = relationship("Teacher", back_populates="homeroom_students")
    attendances = relationship("StudentAttendance", back_populates="student")
