import logging
from typing import List, Optional

from sqlalchemy.orm import Session

import models
from errors import InvalidInput, NotFound
from membership import authorize_course, member_ids, members_in_scope
from utils import upsert

logger = logging.getLogger(__name__)


def note_dict(n: models.StudentNote) -> dict:
    return {"id": n.id, "title": n.title, "content": n.content,
            "updated_at": n.updated_at.isoformat() if n.updated_at else None,
            "course_code": n.course.code if n.course else None,
            "term_name": n.term.name if n.term else None}


def list_notes(db: Session, faculty: models.User, student_id: str,
               course_id: Optional[str] = None, term_id: Optional[str] = None) -> List[dict]:
    if not student_id:
        raise InvalidInput("student_id is required")
    q = db.query(models.StudentNote).filter(
        models.StudentNote.faculty_id == faculty.id,
        models.StudentNote.student_id == student_id)
    if course_id:
        q = q.filter(models.StudentNote.course_id == course_id)
    if term_id:
        q = q.filter(models.StudentNote.term_id == term_id)
    return [note_dict(n) for n in q.order_by(models.StudentNote.updated_at.desc()).all()]


def save_note(db: Session, faculty: models.User, student_id: str, course_id: str, term_id: str,
              title: str, content: str) -> models.StudentNote:
    if not all([student_id, course_id, term_id, title, content]):
        raise InvalidInput("student_id, course_id, term_id, title, and content are required")

    scope = authorize_course(db, faculty.id, course_id, term_id)
    if student_id not in member_ids(members_in_scope(db, scope, term_id)):
        raise NotFound("Student is not enrolled in this course and term")

    keys = {"faculty_id": faculty.id, "student_id": student_id, "course_id": course_id,
            "term_id": term_id, "title": title}
    upsert(db, models.StudentNote, keys=keys,
           values={"content": content})
    db.commit()
    logger.info(f"Note {title!r} saved by {faculty.id} for student {student_id}")
    return db.query(models.StudentNote).filter_by(**keys).one()
