"""Demo data for a fresh database; run.py loads it on first launch."""
import logging
import random
from datetime import date, timedelta

from auth import hash_password
from database import SessionLocal, engine
from logging_config import setup_logging
import models

logger = logging.getLogger(__name__)

models.Base.metadata.create_all(bind=engine)


def seed():
    db = SessionLocal()
    if db.query(models.User).count():
        logger.info("Already seeded.")
        db.close()
        return

    # ── Admin
    db.add(models.User(first_name="Admin", last_name="Office", email="admin@college.edu",
                       password=hash_password("admin123"), role="admin"))

    # ── Faculty
    faculty_data = [
        ("Sarah", "Khan",  "s.khan@college.edu"),
        ("Raj",   "Patel", "r.patel@college.edu"),
    ]
    faculty = []
    for first, last, email in faculty_data:
        f = models.User(first_name=first, last_name=last, email=email,
                        password=hash_password("faculty123"), role="faculty")
        db.add(f); db.flush(); faculty.append(f)

    # ── Students; the last one carries a label that names no section
    student_data = [
        ("Ali",    "Hassan",  "ali@student.edu",    "2024-CS-001", "BCS-23A"),
        ("Priya",  "Sharma",  "priya@student.edu",  "2024-CS-002", "BCS-23A"),
        ("Omar",   "Farooq",  "omar@student.edu",   "2024-CS-003", "bcs-23a "),
        ("Zara",   "Ahmed",   "zara@student.edu",   "2024-CS-004", "BCS-23B"),
        ("Rohan",  "Verma",   "rohan@student.edu",  "2024-CS-005", "BCS-23B"),
        ("Fatima", "Malik",   "fatima@student.edu", "2024-CS-006", ""),
        ("Dev",    "Patel",   "dev@student.edu",    "2024-CS-007", "BCS-23C"),
    ]
    students = []
    for first, last, email, roll, section in student_data:
        s = models.User(first_name=first, last_name=last, email=email,
                        password=hash_password("student123"), role="student",
                        student_id=roll, section=section or None)
        db.add(s); db.flush(); students.append(s)

    # ── Term
    start = date.today() - timedelta(days=30)
    term = models.Term(name="Fall 2025", start_date=start, end_date=start + timedelta(days=120),
                       is_active=True)
    db.add(term); db.flush()

    # ── Courses and sections
    courses_data = [
        ("CS201", "Data Structures",  [("BCS-23A", faculty[0]), ("BCS-23B", faculty[1])]),
        ("CS202", "Database Systems", [("BCS-23A", faculty[1]), ("BCS-23B", faculty[1])]),
    ]
    courses = []
    for code, title, sections in courses_data:
        c = models.Course(code=code, title=title, credit_hours=3)
        db.add(c); db.flush(); courses.append(c)
        for name, instructor in sections:
            db.add(models.CourseSection(course_id=c.id, name=name, instructor_id=instructor.id))
    db.flush()

    # ── Enrollments (all students in all courses)
    enrollments = []
    for student in students:
        for c in courses:
            e = models.Enrollment(user_id=student.id, course_id=c.id, term_id=term.id)
            db.add(e); enrollments.append(e)
    db.flush()

    # ── Demo attendance over the past weekdays; Rohan and Fatima fall short
    rng = random.Random(42)
    days = [date.today() - timedelta(days=i) for i in range(1, 15)]
    days = [d for d in days if d.weekday() < 5]
    for c in courses:
        instructor = c.sections[0].instructor_id
        for d in days:
            for student in students:
                cutoff = {4: 0.55, 5: 0.45}.get(students.index(student), 0.1)
                roll = rng.random()
                status = "absent" if roll < cutoff else ("late" if roll < cutoff + 0.05 else "present")
                db.add(models.Attendance(user_id=student.id, course_id=c.id, term_id=term.id,
                                         date=d, status=status, marked_by=instructor))

    # ── Component marks
    for e in enrollments:
        db.add(models.StudentMark(
            enrollment_id=e.id,
            assignment1=round(rng.uniform(2, 5), 1), assignment2=round(rng.uniform(2, 5), 1),
            quiz1=round(rng.uniform(1, 2.5), 1), quiz2=round(rng.uniform(1, 2.5), 1),
            quiz3=round(rng.uniform(1, 2.5), 1), quiz4=None,
            mid1=round(rng.uniform(6, 15), 1), mid2=round(rng.uniform(6, 15), 1),
            final_exam=None, grace_marks=0.0))

    # ── One open grade change request
    db.add(models.GradeRequest(user_id=students[0].id, course_id=courses[0].id, term_id=term.id,
                               requested_grade="A-", reason="Quiz 3 was marked out of 2 instead of 2.5"))

    db.commit()
    logger.info("Seeded successfully! Demo logins: s.khan@college.edu / faculty123, "
                "ali@student.edu / student123")
    db.close()


if __name__ == "__main__":
    setup_logging()
    seed()
