import logging
import math
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

import models
from batch import BatchResult, screen_entries
from errors import InvalidInput, NotFound
from membership import (authorize_course, instructor_scopes, load_scope, member_ids,
                        members_in_scope, student_dict)
from utils import rounded, upsert

logger = logging.getLogger(__name__)

# UI default only; a stored grade_points value always wins
GRADE_POINTS = {
    "A+": 4.00, "A": 4.00, "A-": 3.67,
    "B+": 3.33, "B": 3.00, "B-": 2.67,
    "C+": 2.33, "C": 2.00, "C-": 1.67,
    "D+": 1.33, "D": 1.00,
    "F": 0.00,
}

# (minimum total, grade) used when finalizing from marks
TOTAL_CUTOFFS = (
    (85, "A"), (80, "A-"), (75, "B+"), (70, "B"), (65, "B-"),
    (60, "C+"), (55, "C"), (50, "C-"), (40, "D"),
)

MARK_LIMITS = dict(models.MARK_COMPONENTS, grace_marks=models.GRACE_MARKS_MAX)
STAT_FIELDS = [field for field, _ in models.MARK_COMPONENTS] + ["grace_marks", "total"]


def default_grade_points(grade: str) -> float:
    return GRADE_POINTS.get(grade, 0.0)


def total_to_grade(total: float):
    for cutoff, grade in TOTAL_CUTOFFS:
        if total >= cutoff:
            return grade, GRADE_POINTS[grade]
    return "F", GRADE_POINTS["F"]


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def marks_dict(mark: Optional[models.StudentMark]) -> Optional[dict]:
    if mark is None:
        return None
    out = {field: rounded(getattr(mark, field)) for field in MARK_LIMITS}
    out["total"] = rounded(mark.total)
    return out


def component_stats(marks: List[models.StudentMark]) -> Dict[str, dict]:
    """
    Min, max and average of every component over the given mark sheets.
    Students with no value for a component do not count towards it.
    """
    stats = {}
    for field in STAT_FIELDS:
        if field == "total":
            values = [m.total for m in marks if m.recorded]
        else:
            values = [getattr(m, field) for m in marks if getattr(m, field) is not None]
        if not values:
            stats[field] = {"min": None, "max": None, "avg": None}
            continue
        stats[field] = {"min": rounded(min(values)), "max": rounded(max(values)),
                        "avg": rounded(math.fsum(values) / len(values))}
    return stats


# ══════════════════════════════════════════
# GRADEBOOK
# ══════════════════════════════════════════
def gradebook(db: Session, instructor: models.User, course_id: str, term_id: str,
              section_id: Optional[str] = None) -> List[dict]:
    scope = authorize_course(db, instructor.id, course_id, term_id)
    members = members_in_scope(db, scope, term_id, section_id)
    ids = [m.user_id for m in members]

    posted = {}
    if ids:
        posted = {t.user_id: t for t in db.query(models.Transcript).filter(
            models.Transcript.course_id == course_id,
            models.Transcript.term_id == term_id,
            models.Transcript.status == "final",
            models.Transcript.user_id.in_(ids)).all()}

    rows = []
    for m in members:
        t = posted.get(m.user_id)
        rows.append({**student_dict(m),
                     "grade": t.grade if t else None,
                     "grade_points": t.grade_points if t else None})
    return rows


def _clean_grade(entry: dict):
    grade = entry.get("grade")
    if not isinstance(grade, str) or not grade.strip():
        return None, "missing grade"
    grade = grade.strip()
    points = entry.get("grade_points")
    if points is None:
        points = default_grade_points(grade)
    elif not _is_number(points) or points < 0:
        return None, "invalid grade_points"
    return {"grade": grade, "grade_points": float(points)}, None


def save_grades(db: Session, instructor: models.User, course_id: str, term_id: str,
                entries: list) -> BatchResult:
    if not course_id or not term_id:
        raise InvalidInput("course_id and term_id are required")
    if not isinstance(entries, list):
        raise InvalidInput("entries must be a list")

    scope = authorize_course(db, instructor.id, course_id, term_id)
    members = members_in_scope(db, scope, term_id)
    accepted, result = screen_entries(entries, (m.user_id for m in members), _clean_grade)

    for user_id, values in accepted.items():
        upsert(db, models.Transcript,
               keys={"user_id": user_id, "course_id": course_id, "term_id": term_id},
               values={**values, "status": "final"})
    db.commit()

    logger.info(f"Grades saved by {instructor.id} for {course_id}/{term_id}: "
                f"{result.saved} saved, {result.dropped} dropped")
    return result


# ══════════════════════════════════════════
# COMPONENT MARKS
# ══════════════════════════════════════════
def marks_sheet(db: Session, instructor: models.User, course_id: str, term_id: str,
                section_id: Optional[str] = None) -> dict:
    scope = authorize_course(db, instructor.id, course_id, term_id)
    members = members_in_scope(db, scope, term_id, section_id)
    sheets = [m.enrollment.mark for m in members if m.enrollment.mark is not None]
    return {"students": [{**student_dict(m), "marks": marks_dict(m.enrollment.mark),
                          "finalized": m.enrollment.status == "completed"} for m in members],
            "max_marks": MARK_LIMITS,
            "stats": component_stats(sheets)}


def _clean_marks(entry: dict):
    values = {}
    for field, limit in MARK_LIMITS.items():
        if field not in entry:
            continue
        value = entry[field]
        if value is None:
            values[field] = None
            continue
        if not _is_number(value) or not 0 <= value <= limit:
            return None, f"invalid {field}"
        values[field] = float(value)
    if all(v is None for v in values.values()):
        return None, "no marks"
    return values, None


def save_marks(db: Session, instructor: models.User, course_id: str, term_id: str,
               entries: list, section_id: Optional[str] = None) -> BatchResult:
    if not course_id or not term_id:
        raise InvalidInput("course_id and term_id are required")
    if not isinstance(entries, list):
        raise InvalidInput("entries must be a list")

    scope = authorize_course(db, instructor.id, course_id, term_id)
    members = {m.user_id: m for m in members_in_scope(db, scope, term_id, section_id)}
    accepted, result = screen_entries(entries, members, _clean_marks)

    for user_id, values in accepted.items():
        upsert(db, models.StudentMark,
               keys={"enrollment_id": members[user_id].enrollment.id}, values=values)
    db.commit()

    logger.info(f"Marks saved by {instructor.id} for {course_id}/{term_id}: "
                f"{result.saved} saved, {result.dropped} dropped")
    return result


def finalize_grades(db: Session, instructor: models.User, course_id: str, term_id: str,
                    section_id: Optional[str] = None) -> dict:
    """
    Turns mark totals into final transcript grades and closes the
    enrollments. Students with no mark sheet, or an empty one, are skipped.
    """
    scope = authorize_course(db, instructor.id, course_id, term_id)
    members = members_in_scope(db, scope, term_id, section_id)

    details = []
    for m in members:
        mark = m.enrollment.mark
        if mark is None or not mark.recorded:
            continue
        grade, points = total_to_grade(mark.total)
        upsert(db, models.Transcript,
               keys={"user_id": m.user_id, "course_id": course_id, "term_id": term_id},
               values={"grade": grade, "grade_points": points, "status": "final"})
        m.enrollment.status = "completed"
        details.append({"user_id": m.user_id, "grade": grade, "grade_points": points})
    db.commit()

    logger.info(f"Grades finalized by {instructor.id} for {course_id}/{term_id}: "
                f"{len(details)} processed, {len(members) - len(details)} skipped")
    return {"message": "Finalization completed", "processed": len(details),
            "skipped": len(members) - len(details), "details": details}


# ══════════════════════════════════════════
# STUDENT VIEW
# ══════════════════════════════════════════
def class_marks(db: Session, course_id: str, term_id: str) -> List[models.StudentMark]:
    return db.query(models.StudentMark).join(
        models.Enrollment, models.StudentMark.enrollment_id == models.Enrollment.id
    ).filter(models.Enrollment.course_id == course_id,
             models.Enrollment.term_id == term_id).all()


def student_marks(db: Session, student: models.User) -> List[dict]:
    """
    The student's own mark sheet per enrolled course, next to anonymous
    statistics over every mark sheet in that course and term.
    """
    enrollments = db.query(models.Enrollment).join(
        models.Term, models.Enrollment.term_id == models.Term.id
    ).filter(models.Enrollment.user_id == student.id).order_by(
        models.Term.start_date.desc()).all()

    return [{"course_code": e.course.code, "course_title": e.course.title,
             "term_name": e.term.name,
             "marks": marks_dict(e.mark),
             "stats": component_stats(class_marks(db, e.course_id, e.term_id))}
            for e in enrollments]


# ══════════════════════════════════════════
# GRADE CHANGE REQUESTS
# ══════════════════════════════════════════
def request_dict(r: models.GradeRequest) -> dict:
    return {"id": r.id, "course_id": r.course_id, "course_code": r.course.code,
            "course_title": r.course.title, "term_id": r.term_id, "term_name": r.term.name,
            "current_grade": r.current_grade, "requested_grade": r.requested_grade,
            "reason": r.reason, "status": r.status, "notes": r.notes,
            "submitted_at": r.submitted_at.isoformat() if r.submitted_at else None,
            "reviewed_at": r.reviewed_at.isoformat() if r.reviewed_at else None}


def request_summary(items: List[dict]) -> dict:
    summary = {"total": len(items)}
    for status in models.REQUEST_STATUS:
        summary[status] = sum(1 for i in items if i["status"] == status)
    return summary


def posted_grade(db: Session, user_id: str, course_id: str, term_id: str) -> Optional[str]:
    t = db.query(models.Transcript).filter_by(user_id=user_id, course_id=course_id,
                                              term_id=term_id, status="final").first()
    return t.grade if t else None


def student_grade_requests(db: Session, student: models.User) -> dict:
    rows = db.query(models.GradeRequest).filter(
        models.GradeRequest.user_id == student.id
    ).order_by(models.GradeRequest.submitted_at.desc()).all()
    items = [request_dict(r) for r in rows]

    enrollments = db.query(models.Enrollment).filter(
        models.Enrollment.user_id == student.id).all()
    options = [{"course_id": e.course_id, "course_code": e.course.code,
                "course_title": e.course.title, "term_id": e.term_id, "term_name": e.term.name,
                "current_grade": posted_grade(db, student.id, e.course_id, e.term_id)}
               for e in enrollments]
    options.sort(key=lambda o: (o["course_code"], o["term_name"]))

    return {"grade_requests": items, "course_options": options,
            "summary": request_summary(items)}


def file_grade_request(db: Session, student: models.User, course_id: str, term_id: str,
                       requested_grade: str, reason: str) -> models.GradeRequest:
    """
    Opens a pending request against one of the student's own enrollments.
    The current grade is copied from the posted transcript, not taken from
    the caller.
    """
    reason = (reason or "").strip()
    if not course_id or not term_id or not requested_grade or not reason:
        raise InvalidInput("course_id, term_id, requested_grade, and reason are required")
    grade = requested_grade.strip().upper()
    if grade not in GRADE_POINTS:
        raise InvalidInput("Unknown grade")

    enrolled = db.query(models.Enrollment).filter_by(
        user_id=student.id, course_id=course_id, term_id=term_id).first()
    if enrolled is None:
        raise NotFound("Enrollment not found")

    req = models.GradeRequest(user_id=student.id, course_id=course_id, term_id=term_id,
                              current_grade=posted_grade(db, student.id, course_id, term_id),
                              requested_grade=grade, reason=reason, status="pending")
    db.add(req)
    db.commit()
    db.refresh(req)
    logger.info(f"Grade request {req.id} filed by {student.id} for {course_id}/{term_id}")
    return req


def faculty_grade_requests(db: Session, instructor: models.User,
                           status: Optional[str] = None) -> dict:
    """Requests from students the instructor can see in any course they teach."""
    if status and status not in models.REQUEST_STATUS:
        raise InvalidInput("A valid status value is required")

    scopes = instructor_scopes(db, instructor.id)
    items = []
    if scopes:
        q = db.query(models.GradeRequest).filter(models.GradeRequest.course_id.in_(list(scopes)))
        if status:
            q = q.filter(models.GradeRequest.status == status)

        visible = {}
        for r in q.order_by(models.GradeRequest.submitted_at.desc()).all():
            key = (r.course_id, r.term_id)
            if key not in visible:
                visible[key] = member_ids(members_in_scope(db, scopes[r.course_id], r.term_id))
            member = visible[key].get(r.user_id)
            if member is not None:
                items.append({**request_dict(r), "student": student_dict(member)})

    courses = sorted(({"course_id": s.course_id, "code": s.sections[0].course.code,
                       "title": s.sections[0].course.title} for s in scopes.values()),
                     key=lambda c: c["code"])
    return {"grade_requests": items, "summary": request_summary(items),
            "filters": {"courses": courses, "statuses": list(models.REQUEST_STATUS)}}


def review_grade_request(db: Session, instructor: models.User, request_id: str, status: str,
                         notes: Optional[str] = None) -> models.GradeRequest:
    """
    Sets the request's status. Approving posts the requested grade as the
    final transcript grade in the same transaction.
    """
    if status not in models.REQUEST_STATUS:
        raise InvalidInput("A valid status value is required")

    req = db.get(models.GradeRequest, request_id)
    if req is None:
        raise NotFound("Grade request not found")
    scope = load_scope(db, instructor.id, req.course_id)
    if not scope or req.user_id not in member_ids(members_in_scope(db, scope, req.term_id)):
        raise NotFound("Grade request not found")

    notes = notes.strip() if isinstance(notes, str) else ""
    req.status = status
    req.notes = notes or None
    if status == "pending":
        req.reviewed_at, req.reviewed_by = None, None
    else:
        req.reviewed_at, req.reviewed_by = datetime.utcnow(), instructor.id

    if status == "approved":
        upsert(db, models.Transcript,
               keys={"user_id": req.user_id, "course_id": req.course_id, "term_id": req.term_id},
               values={"grade": req.requested_grade,
                       "grade_points": default_grade_points(req.requested_grade),
                       "status": "final"})
    db.commit()

    logger.info(f"Grade request {req.id} marked {status} by {instructor.id}")
    return req
