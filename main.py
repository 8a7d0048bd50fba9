import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Depends, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.orm import Session

import models
import attendance, grades, notes
from auth import authenticate, get_current_user, require_faculty, require_student, sign_token
from database import engine, get_db
from errors import PortalError, Unauthenticated
from logging_config import setup_logging
from membership import teaching_overview
from utils import parse_date

setup_logging()
logger = logging.getLogger(__name__)

models.Base.metadata.create_all(bind=engine)

app = FastAPI(title="Campus Records")


def today():
    return datetime.now(timezone.utc).date()


# ══════════════════════════════════════════
# ERRORS
# ══════════════════════════════════════════
@app.exception_handler(PortalError)
async def portal_error(request: Request, exc: PortalError):
    return JSONResponse(status_code=exc.status_code, content={"message": exc.message})


@app.exception_handler(RequestValidationError)
async def invalid_request(request: Request, exc: RequestValidationError):
    fields = [".".join(str(p) for p in e.get("loc", ()) if p != "body") for e in exc.errors()]
    return JSONResponse(status_code=400, content={"message": "Invalid input", "fields": fields})


@app.exception_handler(Exception)
async def unexpected_error(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"message": "Internal server error"})


# ══════════════════════════════════════════
# AUTH
# ══════════════════════════════════════════
class LoginReq(BaseModel):
    email: str
    password: str


def user_dict(u: models.User):
    return {"id": u.id, "first_name": u.first_name, "last_name": u.last_name,
            "email": u.email, "role": u.role, "student_id": u.student_id, "section": u.section}


@app.post("/api/login")
def login(req: LoginReq, db: Session = Depends(get_db)):
    u = authenticate(db, req.email, req.password)
    if not u:
        raise Unauthenticated("Invalid credentials")
    return {"token": sign_token(u.id), "user": user_dict(u)}


@app.get("/api/me")
def me(user: models.User = Depends(get_current_user)):
    return user_dict(user)


# ══════════════════════════════════════════
# FACULTY: TEACHING SCOPE
# ══════════════════════════════════════════
@app.get("/api/faculty/teaching")
def faculty_teaching(user: models.User = Depends(require_faculty), db: Session = Depends(get_db)):
    return {"courses": teaching_overview(db, user.id)}


# ══════════════════════════════════════════
# FACULTY: ATTENDANCE
# ══════════════════════════════════════════
class AttendanceSubmit(BaseModel):
    course_id: str
    term_id: str
    date: str
    section_id: Optional[str] = None
    entries: list = []   # [{user_id, status}]


@app.get("/api/faculty/attendance")
def get_attendance(course_id: str, term_id: str, date: Optional[str] = None,
                   section_id: Optional[str] = None,
                   user: models.User = Depends(require_faculty), db: Session = Depends(get_db)):
    day = parse_date(date) if date else today()
    records = attendance.session_statuses(db, user, course_id, term_id, day, section_id)
    return {"date": day.isoformat(), "records": records}


@app.post("/api/faculty/attendance")
def submit_attendance(req: AttendanceSubmit, detail: bool = False,
                      user: models.User = Depends(require_faculty), db: Session = Depends(get_db)):
    result = attendance.save_attendance(db, user, req.course_id, req.term_id, req.date,
                                        req.entries, req.section_id)
    return result.as_dict("Attendance saved", detail)


@app.get("/api/faculty/attendance/low-attendance")
def get_low_attendance(course_id: str, term_id: str, section_id: Optional[str] = None,
                       user: models.User = Depends(require_faculty), db: Session = Depends(get_db)):
    return {"threshold": attendance.LOW_ATTENDANCE_THRESHOLD,
            "students": attendance.low_attendance(db, user, course_id, term_id, section_id)}


@app.get("/api/faculty/attendance/summary")
def get_attendance_summary(course_id: str, term_id: str, section_id: Optional[str] = None,
                           user: models.User = Depends(require_faculty),
                           db: Session = Depends(get_db)):
    return attendance.attendance_summary(db, user, course_id, term_id, section_id)


# ══════════════════════════════════════════
# FACULTY: GRADES & MARKS
# ══════════════════════════════════════════
class GradesSubmit(BaseModel):
    course_id: str
    term_id: str
    entries: list = []   # [{user_id, grade, grade_points}]


class MarksSubmit(BaseModel):
    course_id: str
    term_id: str
    section_id: Optional[str] = None
    entries: list = []   # [{user_id, assignment1, ..., grace_marks}]


class FinalizeReq(BaseModel):
    course_id: str
    term_id: str
    section_id: Optional[str] = None


@app.get("/api/faculty/grades")
def get_gradebook(course_id: str, term_id: str, section_id: Optional[str] = None,
                  user: models.User = Depends(require_faculty), db: Session = Depends(get_db)):
    return {"grade_points": grades.GRADE_POINTS,
            "records": grades.gradebook(db, user, course_id, term_id, section_id)}


@app.post("/api/faculty/grades")
def submit_grades(req: GradesSubmit, detail: bool = False,
                  user: models.User = Depends(require_faculty), db: Session = Depends(get_db)):
    result = grades.save_grades(db, user, req.course_id, req.term_id, req.entries)
    return result.as_dict("Grades saved", detail)


class ReviewReq(BaseModel):
    status: str
    notes: Optional[str] = None


@app.get("/api/faculty/grade-requests")
def get_grade_requests(status: Optional[str] = None, user: models.User = Depends(require_faculty),
                       db: Session = Depends(get_db)):
    return grades.faculty_grade_requests(db, user, status)


@app.patch("/api/faculty/grade-requests/{request_id}")
def review_grade_request(request_id: str, req: ReviewReq,
                         user: models.User = Depends(require_faculty),
                         db: Session = Depends(get_db)):
    r = grades.review_grade_request(db, user, request_id, req.status, req.notes)
    return {"message": "Grade request updated", "grade_request": grades.request_dict(r)}


@app.get("/api/faculty/marks")
def get_marks_sheet(course_id: str, term_id: str, section_id: Optional[str] = None,
                    user: models.User = Depends(require_faculty), db: Session = Depends(get_db)):
    return grades.marks_sheet(db, user, course_id, term_id, section_id)


@app.post("/api/faculty/marks")
def submit_marks(req: MarksSubmit, detail: bool = False,
                 user: models.User = Depends(require_faculty), db: Session = Depends(get_db)):
    result = grades.save_marks(db, user, req.course_id, req.term_id, req.entries, req.section_id)
    return result.as_dict("Marks saved", detail)


@app.post("/api/faculty/marks/finalize")
def finalize_marks(req: FinalizeReq, user: models.User = Depends(require_faculty),
                   db: Session = Depends(get_db)):
    return grades.finalize_grades(db, user, req.course_id, req.term_id, req.section_id)


# ══════════════════════════════════════════
# FACULTY: STUDENT NOTES
# ══════════════════════════════════════════
class NoteReq(BaseModel):
    student_id: str
    course_id: str
    term_id: str
    title: str
    content: str


@app.get("/api/faculty/student-notes")
def get_student_notes(student_id: str, course_id: Optional[str] = None,
                      term_id: Optional[str] = None,
                      user: models.User = Depends(require_faculty), db: Session = Depends(get_db)):
    return {"notes": notes.list_notes(db, user, student_id, course_id, term_id)}


@app.post("/api/faculty/student-notes")
def save_student_note(req: NoteReq, user: models.User = Depends(require_faculty),
                      db: Session = Depends(get_db)):
    note = notes.save_note(db, user, req.student_id, req.course_id, req.term_id,
                           req.title, req.content)
    return {"message": "Note saved", "note_id": note.id}


# ══════════════════════════════════════════
# STUDENT
# ══════════════════════════════════════════
@app.get("/api/student/marks")
def get_student_marks(user: models.User = Depends(require_student), db: Session = Depends(get_db)):
    return {"marks": grades.student_marks(db, user)}


class GradeRequestReq(BaseModel):
    course_id: str
    term_id: str
    requested_grade: str
    reason: str


@app.get("/api/student/grade-requests")
def get_my_grade_requests(user: models.User = Depends(require_student),
                          db: Session = Depends(get_db)):
    return grades.student_grade_requests(db, user)


@app.post("/api/student/grade-requests")
def file_grade_request(req: GradeRequestReq, user: models.User = Depends(require_student),
                       db: Session = Depends(get_db)):
    r = grades.file_grade_request(db, user, req.course_id, req.term_id,
                                  req.requested_grade, req.reason)
    return {"message": "Grade request submitted", "grade_request": grades.request_dict(r)}


@app.get("/api/student/attendance")
def get_student_attendance(user: models.User = Depends(require_student),
                           db: Session = Depends(get_db)):
    return {"courses": attendance.student_attendance(db, user)}
