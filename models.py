import uuid
from datetime import datetime

from sqlalchemy import (Column, String, Boolean, ForeignKey, DateTime, Date, Text, Float,
                        Integer, UniqueConstraint)
from sqlalchemy.orm import relationship

from database import Base

ROLES             = ("student", "faculty", "admin")
ATTENDANCE_STATUS = ("present", "absent", "late")
REQUEST_STATUS    = ("pending", "approved", "rejected")

# (field, maximum marks) in display order; grace marks are added on top of the components
MARK_COMPONENTS = (
    ("assignment1", 5.0), ("assignment2", 5.0),
    ("quiz1", 2.5), ("quiz2", 2.5), ("quiz3", 2.5), ("quiz4", 2.5),
    ("mid1", 15.0), ("mid2", 15.0),
    ("final_exam", 50.0),
)
GRACE_MARKS_MAX = 8.0


def new_id():
    return str(uuid.uuid4())


class User(Base):
    __tablename__ = "users"
    id         = Column(String(36), primary_key=True, default=new_id)
    first_name = Column(String, nullable=False)
    last_name  = Column(String, nullable=False)
    email      = Column(String, unique=True, nullable=False)
    password   = Column(String, nullable=False)
    role       = Column(String, nullable=False)   # student | faculty | admin
    student_id = Column(String, nullable=True)    # roll number, students only
    section    = Column(String, nullable=True)    # free-text label, not a key
    is_active  = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}".strip()


class Course(Base):
    __tablename__ = "courses"
    id           = Column(String(36), primary_key=True, default=new_id)
    code         = Column(String, unique=True, nullable=False)
    title        = Column(String, nullable=False)
    credit_hours = Column(Integer, default=3)
    sections     = relationship("CourseSection", back_populates="course",
                                order_by="CourseSection.name")


class CourseSection(Base):
    __tablename__ = "course_sections"
    __table_args__ = (UniqueConstraint("course_id", "name", name="uq_section_course_name"),)
    id            = Column(String(36), primary_key=True, default=new_id)
    course_id     = Column(String(36), ForeignKey("courses.id"), nullable=False)
    name          = Column(String, nullable=False)
    instructor_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    course        = relationship("Course", back_populates="sections")
    instructor    = relationship("User", foreign_keys=[instructor_id])


class Term(Base):
    __tablename__ = "terms"
    id         = Column(String(36), primary_key=True, default=new_id)
    name       = Column(String, nullable=False)
    start_date = Column(Date, nullable=False)
    end_date   = Column(Date, nullable=False)
    is_active  = Column(Boolean, default=False)


class Enrollment(Base):
    __tablename__ = "enrollments"
    __table_args__ = (UniqueConstraint("user_id", "course_id", "term_id", name="uq_enrollment"),)
    id         = Column(String(36), primary_key=True, default=new_id)
    user_id    = Column(String(36), ForeignKey("users.id"), nullable=False)
    course_id  = Column(String(36), ForeignKey("courses.id"), nullable=False)
    term_id    = Column(String(36), ForeignKey("terms.id"), nullable=False)
    # null = not yet assigned; membership then falls back to users.section
    section_id = Column(String(36), ForeignKey("course_sections.id"), nullable=True)
    status     = Column(String, default="enrolled")   # enrolled | completed
    created_at = Column(DateTime, default=datetime.utcnow)
    user       = relationship("User", foreign_keys=[user_id])
    course     = relationship("Course")
    term       = relationship("Term")
    section    = relationship("CourseSection")
    mark       = relationship("StudentMark", back_populates="enrollment", uselist=False)


class Attendance(Base):
    __tablename__ = "attendance"
    __table_args__ = (UniqueConstraint("user_id", "course_id", "term_id", "date",
                                       name="uq_attendance_cell"),)
    id         = Column(String(36), primary_key=True, default=new_id)
    user_id    = Column(String(36), ForeignKey("users.id"), nullable=False)
    course_id  = Column(String(36), ForeignKey("courses.id"), nullable=False)
    term_id    = Column(String(36), ForeignKey("terms.id"), nullable=False)
    date       = Column(Date, nullable=False)
    status     = Column(String, nullable=False)   # present | absent | late
    marked_by  = Column(String(36), ForeignKey("users.id"), nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Transcript(Base):
    __tablename__ = "transcripts"
    __table_args__ = (UniqueConstraint("user_id", "course_id", "term_id", name="uq_transcript"),)
    id           = Column(String(36), primary_key=True, default=new_id)
    user_id      = Column(String(36), ForeignKey("users.id"), nullable=False)
    course_id    = Column(String(36), ForeignKey("courses.id"), nullable=False)
    term_id      = Column(String(36), ForeignKey("terms.id"), nullable=False)
    grade        = Column(String, nullable=True)
    grade_points = Column(Float, nullable=True)
    status       = Column(String, default="draft")   # draft | final
    updated_at   = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class StudentMark(Base):
    __tablename__ = "student_marks"
    id            = Column(String(36), primary_key=True, default=new_id)
    enrollment_id = Column(String(36), ForeignKey("enrollments.id"), unique=True, nullable=False)
    assignment1   = Column(Float, nullable=True)
    assignment2   = Column(Float, nullable=True)
    quiz1         = Column(Float, nullable=True)
    quiz2         = Column(Float, nullable=True)
    quiz3         = Column(Float, nullable=True)
    quiz4         = Column(Float, nullable=True)
    mid1          = Column(Float, nullable=True)
    mid2          = Column(Float, nullable=True)
    final_exam    = Column(Float, nullable=True)
    grace_marks   = Column(Float, nullable=True)
    updated_at    = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    enrollment    = relationship("Enrollment", back_populates="mark")

    def _values(self):
        return [getattr(self, field) for field, _ in MARK_COMPONENTS] + [self.grace_marks]

    @property
    def recorded(self):
        """False for a sheet with every component empty."""
        return any(v is not None for v in self._values())

    @property
    def total(self):
        """Sum of the recorded components plus grace marks; missing values add nothing."""
        return sum(v for v in self._values() if v is not None)


class StudentNote(Base):
    __tablename__ = "student_notes"
    __table_args__ = (UniqueConstraint("faculty_id", "student_id", "course_id", "term_id", "title",
                                       name="uq_student_note"),)
    id         = Column(String(36), primary_key=True, default=new_id)
    faculty_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    student_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    course_id  = Column(String(36), ForeignKey("courses.id"), nullable=False)
    term_id    = Column(String(36), ForeignKey("terms.id"), nullable=False)
    title      = Column(String, nullable=False)
    content    = Column(Text, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    course     = relationship("Course")
    term       = relationship("Term")


class GradeRequest(Base):
    __tablename__ = "grade_requests"
    id              = Column(String(36), primary_key=True, default=new_id)
    user_id         = Column(String(36), ForeignKey("users.id"), nullable=False)
    course_id       = Column(String(36), ForeignKey("courses.id"), nullable=False)
    term_id         = Column(String(36), ForeignKey("terms.id"), nullable=False)
    current_grade   = Column(String, nullable=True)    # posted grade when the request was filed
    requested_grade = Column(String, nullable=False)
    reason          = Column(Text, nullable=False)
    status          = Column(String, default="pending", nullable=False)
    notes           = Column(Text, nullable=True)      # reviewer's notes
    submitted_at    = Column(DateTime, default=datetime.utcnow)
    reviewed_at     = Column(DateTime, nullable=True)
    reviewed_by     = Column(String(36), ForeignKey("users.id"), nullable=True)
    user            = relationship("User", foreign_keys=[user_id])
    course          = relationship("Course")
    term            = relationship("Term")
