"""
Section membership resolution.

Students are tied to course sections in two ways: the explicit
``enrollments.section_id`` column, and the legacy free-text ``users.section``
label that predates it. Every faculty-facing read and write goes through
:func:`resolve_members` so that attendance, marks and grades are all computed
over the same set of students.
"""
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from sqlalchemy.orm import Session, joinedload

import models
from errors import NotFound

logger = logging.getLogger(__name__)

ALL_SECTIONS = "__all__"
UNASSIGNED   = "__unassigned__"


def normalize_label(value: Optional[str]) -> str:
    return (value or "").strip().casefold()


@dataclass
class Member:
    user: models.User
    enrollment: models.Enrollment
    section: Optional[models.CourseSection]   # None = open membership

    @property
    def user_id(self):
        return self.user.id

    @property
    def section_name(self):
        return self.section.name if self.section else None


@dataclass
class SectionScope:
    """The sections of one course that one instructor is responsible for."""
    course_id: str
    sections: List[models.CourseSection]

    def __post_init__(self):
        self.by_id = {s.id: s for s in self.sections}
        self.by_name = {normalize_label(s.name): s for s in self.sections}

    def __bool__(self):
        return bool(self.sections)

    def place(self, enrollment: models.Enrollment) -> Tuple[bool, Optional[models.CourseSection]]:
        """
        Returns (visible, section) for one enrollment.

        An explicit section assignment wins over the label. Without one, an
        empty label means open membership, a label naming an owned section
        places the student there, and anything else keeps the student hidden.
        """
        if enrollment.section_id:
            section = self.by_id.get(enrollment.section_id)
            return section is not None, section

        label = normalize_label(enrollment.user.section if enrollment.user else None)
        if not label:
            return True, None
        section = self.by_name.get(label)
        return section is not None, section


def owned_sections(db: Session, instructor_id: str, course_id: str) -> List[models.CourseSection]:
    return db.query(models.CourseSection).filter(
        models.CourseSection.course_id == course_id,
        models.CourseSection.instructor_id == instructor_id,
    ).order_by(models.CourseSection.name).all()


def load_scope(db: Session, instructor_id: str, course_id: str) -> SectionScope:
    return SectionScope(course_id, owned_sections(db, instructor_id, course_id))


def authorize_course(db: Session, instructor_id: str, course_id: str,
                     term_id: Optional[str] = None) -> SectionScope:
    """
    Scope check for faculty endpoints. Unknown courses and courses where the
    instructor owns no section both raise NotFound with the same message.
    """
    scope = load_scope(db, instructor_id, course_id)
    if not scope:
        raise NotFound("Course not found")
    if term_id is not None and db.get(models.Term, term_id) is None:
        raise NotFound("Term not found")
    return scope


def check_section(scope: SectionScope, section_id: Optional[str]) -> Optional[str]:
    """Normalizes the section filter; None means every owned section."""
    if not section_id or section_id == ALL_SECTIONS:
        return None
    if section_id != UNASSIGNED and section_id not in scope.by_id:
        raise NotFound("Section not found")
    return section_id


def _matches(section_filter: Optional[str], section: Optional[models.CourseSection]) -> bool:
    if section_filter is None:
        return True
    if section_filter == UNASSIGNED:
        return section is None
    return section is not None and section.id == section_filter


def members_in_scope(db: Session, scope: SectionScope, term_id: str,
                     section_id: Optional[str] = None) -> List[Member]:
    section_filter = check_section(scope, section_id)
    if not scope:
        return []

    enrollments = db.query(models.Enrollment).options(joinedload(models.Enrollment.user)).filter(
        models.Enrollment.course_id == scope.course_id,
        models.Enrollment.term_id == term_id,
    ).all()

    members = []
    for e in enrollments:
        visible, section = scope.place(e)
        if visible and _matches(section_filter, section):
            members.append(Member(user=e.user, enrollment=e, section=section))

    members.sort(key=lambda m: (m.user.last_name.casefold(), m.user.first_name.casefold(), m.user.id))
    return members


def resolve_members(db: Session, instructor_id: str, course_id: str, term_id: str,
                    section_id: Optional[str] = None) -> List[Member]:
    """
    Students of ``course_id``/``term_id`` visible to ``instructor_id``,
    ordered by last name. An instructor with no section in the course gets an
    empty list.
    """
    scope = load_scope(db, instructor_id, course_id)
    if not scope:
        return []
    return members_in_scope(db, scope, term_id, section_id)


def member_ids(members: List[Member]) -> Dict[str, Member]:
    return {m.user_id: m for m in members}


def instructor_scopes(db: Session, instructor_id: str) -> Dict[str, SectionScope]:
    """One scope per course in which ``instructor_id`` owns a section."""
    sections = db.query(models.CourseSection).filter(
        models.CourseSection.instructor_id == instructor_id
    ).order_by(models.CourseSection.name).all()
    by_course: Dict[str, List[models.CourseSection]] = {}
    for s in sections:
        by_course.setdefault(s.course_id, []).append(s)
    return {course_id: SectionScope(course_id, owned) for course_id, owned in by_course.items()}


def teaching_overview(db: Session, instructor_id: str) -> List[dict]:
    result = []
    for course_id, scope in instructor_scopes(db, instructor_id).items():
        course = scope.sections[0].course
        term_ids = [row[0] for row in db.query(models.Enrollment.term_id).filter(
            models.Enrollment.course_id == course_id).distinct().all()]
        terms = []
        for term_id in term_ids:
            term = db.get(models.Term, term_id)
            members = members_in_scope(db, scope, term_id)
            terms.append({"term_id": term_id, "term_name": term.name if term else "",
                          "students": [student_dict(m) for m in members]})
        result.append({"course_id": course.id, "code": course.code, "title": course.title,
                       "sections": [{"id": s.id, "name": s.name} for s in scope.sections],
                       "terms": sorted(terms, key=lambda t: t["term_name"])})
    return sorted(result, key=lambda c: c["code"])


def student_dict(m: Member) -> dict:
    u = m.user
    return {"user_id": u.id, "student_id": u.student_id, "first_name": u.first_name,
            "last_name": u.last_name, "email": u.email, "section": m.section_name}


# ── Section assignment backfill ─────────────────────────────────────────────

def backfill_enrollment_sections(db: Session) -> Tuple[int, List[models.Enrollment]]:
    """
    Copies the legacy ``users.section`` label onto ``enrollments.section_id``
    wherever it names a section of the enrolled course.

    Empty labels stay unassigned (open membership). Labels naming no section
    are returned as orphans and left unassigned, so they stay hidden from
    every instructor exactly as before.
    """
    sections_by_course: Dict[str, Dict[str, models.CourseSection]] = {}
    for s in db.query(models.CourseSection).all():
        sections_by_course.setdefault(s.course_id, {})[normalize_label(s.name)] = s

    assigned = 0
    orphans = []
    pending = db.query(models.Enrollment).filter(models.Enrollment.section_id.is_(None)).all()
    for e in pending:
        label = normalize_label(e.user.section if e.user else None)
        if not label:
            continue
        section = sections_by_course.get(e.course_id, {}).get(label)
        if section is None:
            orphans.append(e)
            logger.warning(f"Enrollment {e.id}: section label {e.user.section!r} "
                           f"matches no section of course {e.course_id}")
            continue
        e.section_id = section.id
        assigned += 1

    db.commit()
    logger.info(f"Section backfill assigned {assigned} enrollments, {len(orphans)} orphaned")
    return assigned, orphans
