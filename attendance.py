import logging
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

import models
from batch import BatchResult, screen_entries
from errors import InvalidInput
from membership import Member, authorize_course, members_in_scope, student_dict
from utils import parse_date, rounded, upsert

logger = logging.getLogger(__name__)

LOW_ATTENDANCE_THRESHOLD = 80
ATTENDED = ("present", "late")


def attendance_rate(attended: int, total: int) -> float:
    """Percentage of recorded sessions attended; 0 when nothing is recorded."""
    if total == 0:
        return 0.0
    return attended / total * 100


def _records_by_user(db: Session, course_id: str, term_id: str,
                     user_ids: List[str]) -> Dict[str, List[models.Attendance]]:
    grouped: Dict[str, List[models.Attendance]] = {uid: [] for uid in user_ids}
    if not user_ids:
        return grouped
    rows = db.query(models.Attendance).filter(
        models.Attendance.course_id == course_id,
        models.Attendance.term_id == term_id,
        models.Attendance.user_id.in_(user_ids),
    ).order_by(models.Attendance.date).all()
    for r in rows:
        grouped[r.user_id].append(r)
    return grouped


def tally(records: List[models.Attendance]) -> dict:
    counts = {status: 0 for status in models.ATTENDANCE_STATUS}
    for r in records:
        counts[r.status] = counts.get(r.status, 0) + 1
    attended = sum(counts[s] for s in ATTENDED)
    total = len(records)
    return {"attended": attended, "total": total, "present": counts["present"],
            "late": counts["late"], "absent": counts["absent"],
            "rate": attendance_rate(attended, total)}


def student_rates(db: Session, members: List[Member], course_id: str, term_id: str) -> List[dict]:
    records = _records_by_user(db, course_id, term_id, [m.user_id for m in members])
    rows = []
    for m in members:
        history = records[m.user_id]
        t = tally(history)
        rows.append({**student_dict(m),
                     "name": m.user.full_name,
                     "attended": t["attended"], "late": t["late"], "total": t["total"],
                     "rate": t["rate"],
                     "history": [{"date": r.date.isoformat(), "status": r.status} for r in history]})
    return rows


def _present(row: dict) -> dict:
    out = {k: v for k, v in row.items() if k != "rate"}
    out["percentage"] = rounded(row["rate"])
    return out


# ══════════════════════════════════════════
# READS
# ══════════════════════════════════════════
def session_statuses(db: Session, instructor: models.User, course_id: str, term_id: str,
                     day, section_id: Optional[str] = None) -> List[dict]:
    """Status of every visible student on one date; unrecorded students read as absent."""
    day = parse_date(day)
    scope = authorize_course(db, instructor.id, course_id, term_id)
    members = members_in_scope(db, scope, term_id, section_id)
    ids = [m.user_id for m in members]

    recorded = {}
    if ids:
        recorded = {r.user_id: r.status for r in db.query(models.Attendance).filter(
            models.Attendance.course_id == course_id,
            models.Attendance.term_id == term_id,
            models.Attendance.date == day,
            models.Attendance.user_id.in_(ids)).all()}

    return [{**student_dict(m),
             "status": recorded.get(m.user_id, "absent"),
             "recorded": m.user_id in recorded} for m in members]


def low_attendance(db: Session, instructor: models.User, course_id: str, term_id: str,
                   section_id: Optional[str] = None) -> List[dict]:
    scope = authorize_course(db, instructor.id, course_id, term_id)
    members = members_in_scope(db, scope, term_id, section_id)
    flagged = [r for r in student_rates(db, members, course_id, term_id)
               if r["rate"] < LOW_ATTENDANCE_THRESHOLD]
    flagged.sort(key=lambda r: (r["rate"], r["last_name"].casefold(), r["first_name"].casefold()))
    return [_present(r) for r in flagged]


def attendance_summary(db: Session, instructor: models.User, course_id: str, term_id: str,
                       section_id: Optional[str] = None) -> dict:
    scope = authorize_course(db, instructor.id, course_id, term_id)
    members = members_in_scope(db, scope, term_id, section_id)
    rows = student_rates(db, members, course_id, term_id)
    attended = sum(r["attended"] for r in rows)
    total = sum(r["total"] for r in rows)
    return {"course_id": course_id, "term_id": term_id,
            "attended": attended, "total": total,
            "percentage": rounded(attendance_rate(attended, total)),
            "students": [_present({k: v for k, v in r.items() if k != "history"}) for r in rows]}


def student_attendance(db: Session, student: models.User) -> List[dict]:
    """The calling student's own attendance in every enrolled course."""
    enrollments = db.query(models.Enrollment).filter(
        models.Enrollment.user_id == student.id).all()
    result = []
    for e in enrollments:
        records = db.query(models.Attendance).filter(
            models.Attendance.user_id == student.id,
            models.Attendance.course_id == e.course_id,
            models.Attendance.term_id == e.term_id,
        ).order_by(models.Attendance.date).all()
        t = tally(records)
        result.append({"course_id": e.course_id, "code": e.course.code, "title": e.course.title,
                       "term_id": e.term_id, "term_name": e.term.name,
                       "total": t["total"], "present": t["present"], "late": t["late"],
                       "absent": t["absent"], "percentage": rounded(t["rate"]),
                       "low_attendance": t["rate"] < LOW_ATTENDANCE_THRESHOLD,
                       "history": [{"date": r.date.isoformat(), "status": r.status} for r in records]})
    return sorted(result, key=lambda x: (x["percentage"], x["code"]))


# ══════════════════════════════════════════
# WRITES
# ══════════════════════════════════════════
def _clean_status(entry: dict):
    status = entry.get("status")
    if status not in models.ATTENDANCE_STATUS:
        return None, "invalid status"
    return {"status": status}, None


def save_attendance(db: Session, instructor: models.User, course_id: str, term_id: str,
                    day, entries: list, section_id: Optional[str] = None) -> BatchResult:
    """
    Upserts one status per student for ``day``. Entries for students outside
    the instructor's resolved scope, or with a status other than
    present/absent/late, are left out without failing the batch.
    """
    if not course_id or not term_id:
        raise InvalidInput("course_id, term_id, and date are required")
    day = parse_date(day)
    if not isinstance(entries, list):
        raise InvalidInput("entries must be a list")

    scope = authorize_course(db, instructor.id, course_id, term_id)
    members = members_in_scope(db, scope, term_id, section_id)
    accepted, result = screen_entries(entries, (m.user_id for m in members), _clean_status)

    for user_id, values in accepted.items():
        upsert(db, models.Attendance,
               keys={"user_id": user_id, "course_id": course_id, "term_id": term_id, "date": day},
               values={"status": values["status"], "marked_by": instructor.id})
    db.commit()

    logger.info(f"Attendance saved by {instructor.id} for {course_id}/{term_id} on {day}: "
                f"{result.saved} saved, {result.dropped} dropped")
    return result
