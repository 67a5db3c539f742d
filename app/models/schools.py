from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base, BigIntId

# School model
class School(Base):
    __tablename__ = "schools"
    
    id = Column(BigIntId, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    district = Column(String(255))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    
    # Relationships
    grades = relationship("Grade", back_populates="school")
    classrooms = relationship("Classroom", back_populates="school")
    subjects = relationship("Subject", back_populates="school")
    teachers = relationship("Teacher", back_populates="school")
    students = relationship("Student", back_populates="school")

# Grade model
class Grade(Base):
    __tablename__ = "grades"
    
    id = Column(BigIntId, primary_key=True, index=True)
    school_id = Column(BigIntId, ForeignKey("schools.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(100), nullable=False)
    level = Column(Integer, nullable=False)
    
    # Relationships
    school = relationship("School", back_populates="grades")
    sections = relationship("Section", back_populates="grade")

# Section model
class Section(Base):
    __tablename__ = "sections"
    
    id = Column(BigIntId, primary_key=True, index=True)
    grade_id = Column(BigIntId, ForeignKey("grades.id", ondelete="CASCADE"), nullable=False)
    label = Column(String(10), nullable=False)
    
    # Relationships
    grade = relationship("Grade", back_populates="sections")

# Classroom model
class Classroom(Base):
    __tablename__ = "classrooms"
    
    id = Column(BigIntId, primary_key=True, index=True)
    school_id = Column(BigIntId, ForeignKey("schools.id", ondelete="CASCADE"), nullable=False, index=True)
    grade_id = Column(BigIntId, ForeignKey("grades.id"))
    section_id = Column(BigIntId, ForeignKey("sections.id"))
    academic_year = Column(String(9))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    
    # Relationships
    school = relationship("School", back_populates="classrooms")
    grade = relationship("Grade")
    section = relationship("Section")
    students = relationship("Student", back_populates="classroom")
    attendance_sessions = relationship("AttendanceSession", back_populates="classroom")

# Subject model
class Subject(Base):
    __tablename__ = "subjects"
    
    id = Column(BigIntId, primary_key=True, index=True)
    school_id = Column(BigIntId, ForeignKey("schools.id", ondelete="CASCADE"), nullable=False)
    code = Column(String(20), nullable=False)
    name = Column(String(100), nullable=False)
    
    __table_args__ = (
        UniqueConstraint("school_id", "code", name="uq_subject_school_code"),
    )
    
    # Relationships
    school = relationship("School", back_populates="subjects")
    teacher_subjects = relationship("TeacherSubject", back_populates="subject")
