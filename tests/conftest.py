# tests/conftest.py

import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["APP_ENV"] = "development"

from datetime import date, timedelta
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

import models
from auth import hash_password, sign_token
from database import Base, SessionLocal, engine

TERM_START = date(2025, 9, 1)


class Factory:
    def __init__(self, db):
        self.db = db
        self._seq = 0

    def _next(self):
        self._seq += 1
        return self._seq

    def user(self, first, last, role="student", section=None, password="secret"):
        n = self._next()
        u = models.User(first_name=first, last_name=last, email=f"{first.lower()}{n}@campus.edu",
                        password=hash_password(password), role=role, section=section,
                        student_id=f"2025-{n:03d}" if role == "student" else None)
        self.db.add(u)
        self.db.flush()
        return u

    def course(self, code, title="Course"):
        c = models.Course(code=code, title=title)
        self.db.add(c)
        self.db.flush()
        return c

    def section(self, course, name, instructor=None):
        s = models.CourseSection(course_id=course.id, name=name,
                                 instructor_id=instructor.id if instructor else None)
        self.db.add(s)
        self.db.flush()
        return s

    def term(self, name="Fall 2025", start=TERM_START):
        t = models.Term(name=name, start_date=start, end_date=start + timedelta(days=120),
                        is_active=True)
        self.db.add(t)
        self.db.flush()
        return t

    def enroll(self, user, course, term, section=None):
        e = models.Enrollment(user_id=user.id, course_id=course.id, term_id=term.id,
                              section_id=section.id if section else None)
        self.db.add(e)
        self.db.flush()
        return e

    def attendance(self, user, course, term, day, status):
        a = models.Attendance(user_id=user.id, course_id=course.id, term_id=term.id,
                              date=day, status=status)
        self.db.add(a)
        self.db.flush()
        return a

    def marks(self, enrollment, **values):
        m = models.StudentMark(enrollment_id=enrollment.id, **values)
        self.db.add(m)
        self.db.flush()
        return m


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    yield session
    session.close()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def make(db):
    return Factory(db)


@pytest.fixture
def campus(db, make):
    """
    Course C has sections A (instructor X) and B (instructor Y).
    S1 is labelled "A", S2 has no label, S3 is labelled "C" (no such
    section) and S4 is labelled "B".
    """
    x = make.user("Xavier", "Instructor", role="faculty")
    y = make.user("Yasmin", "Lecturer", role="faculty")
    course = make.course("C101", "Course C")
    sec_a = make.section(course, "A", x)
    sec_b = make.section(course, "B", y)
    term = make.term()
    s1 = make.user("Sam", "Adams", section="A")
    s2 = make.user("Sue", "Baker", section="")
    s3 = make.user("Sid", "Clark", section="C")
    s4 = make.user("Sal", "Dunn", section="B")
    enrollments = {s.id: make.enroll(s, course, term) for s in (s1, s2, s3, s4)}
    db.commit()
    return SimpleNamespace(x=x, y=y, course=course, sec_a=sec_a, sec_b=sec_b, term=term,
                           s1=s1, s2=s2, s3=s3, s4=s4, enrollments=enrollments)


@pytest.fixture
def client(db):
    from main import app
    with TestClient(app) as c:
        yield c


def auth_headers(user):
    return {"Authorization": f"Bearer {sign_token(user.id)}"}


@pytest.fixture
def headers():
    return auth_headers
