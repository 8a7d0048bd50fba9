# tests/test_grades.py

from datetime import date

import pytest

import models
from grades import (GRADE_POINTS, component_stats, finalize_grades, gradebook, marks_sheet,
                    save_grades, save_marks, student_marks, total_to_grade)


def transcripts(db):
    db.expire_all()
    return {t.user_id: (t.grade, t.grade_points, t.status)
            for t in db.query(models.Transcript).all()}


# --- statistics ---


def test_stats_exclude_missing_values(db, campus, make):
    for student, score in ((campus.s1, 5), (campus.s2, 4), (campus.s3, 3)):
        make.marks(campus.enrollments[student.id], assignment1=score)
    make.marks(campus.enrollments[campus.s4.id], quiz1=2.0)
    db.commit()
    sheets = db.query(models.StudentMark).all()
    stats = component_stats(sheets)
    assert stats["assignment1"] == {"min": 3, "max": 5, "avg": 4.0}


def test_stats_for_component_nobody_has(db, campus, make):
    make.marks(campus.enrollments[campus.s1.id], assignment1=5)
    db.commit()
    stats = component_stats(db.query(models.StudentMark).all())
    assert stats["final_exam"] == {"min": None, "max": None, "avg": None}


def test_stats_round_only_for_display(db, campus, make):
    for student, score in ((campus.s1, 1.0), (campus.s2, 1.0), (campus.s4, 2.0)):
        make.marks(campus.enrollments[student.id], quiz1=score)
    db.commit()
    stats = component_stats(db.query(models.StudentMark).all())
    assert stats["quiz1"]["avg"] == 1.33


def test_total_includes_grace_marks(db, campus, make):
    mark = make.marks(campus.enrollments[campus.s1.id], assignment1=4.5, quiz1=2.0, mid1=12.0,
                      grace_marks=3.0)
    assert mark.total == pytest.approx(21.5)


# --- student marks view ---


def test_student_marks_benchmarks_against_whole_class(db, campus, make):
    make.marks(campus.enrollments[campus.s1.id], assignment1=5, grace_marks=1)
    make.marks(campus.enrollments[campus.s3.id], assignment1=3)
    make.marks(campus.enrollments[campus.s4.id], assignment1=4)
    db.commit()

    view = student_marks(db, campus.s1)

    assert len(view) == 1
    course = view[0]
    assert course["course_code"] == "C101"
    assert course["term_name"] == "Fall 2025"
    assert course["marks"]["assignment1"] == 5
    assert course["marks"]["total"] == 6
    assert course["stats"]["assignment1"] == {"min": 3, "max": 5, "avg": 4.0}
    assert course["stats"]["total"] == {"min": 3, "max": 6, "avg": 4.33}
    assert "user_id" not in str(course["stats"])


def test_student_marks_without_sheet(db, campus):
    view = student_marks(db, campus.s2)
    assert view[0]["marks"] is None


def test_student_marks_newest_term_first(db, campus, make):
    later = make.term("Spring 2026", start=date(2026, 2, 1))
    make.enroll(campus.s1, campus.course, later)
    db.commit()
    assert [c["term_name"] for c in student_marks(db, campus.s1)] == ["Spring 2026", "Fall 2025"]


# --- gradebook ---


def test_gradebook_lists_visible_students_with_nulls(db, campus):
    save_grades(db, campus.x, campus.course.id, campus.term.id,
                [{"user_id": campus.s1.id, "grade": "B+"}])
    rows = gradebook(db, campus.x, campus.course.id, campus.term.id)
    assert [r["user_id"] for r in rows] == [campus.s1.id, campus.s2.id]
    assert (rows[0]["grade"], rows[0]["grade_points"]) == ("B+", 3.33)
    assert (rows[1]["grade"], rows[1]["grade_points"]) == (None, None)


def test_save_grades_uses_table_default_and_override(db, campus):
    result = save_grades(db, campus.x, campus.course.id, campus.term.id, [
        {"user_id": campus.s1.id, "grade": "A-"},
        {"user_id": campus.s2.id, "grade": "B", "grade_points": 3.1},
    ])
    assert result.saved == 2
    stored = transcripts(db)
    assert stored[campus.s1.id] == ("A-", GRADE_POINTS["A-"], "final")
    assert stored[campus.s2.id] == ("B", 3.1, "final")


def test_save_grades_drops_invalid_and_foreign_entries(db, campus):
    result = save_grades(db, campus.x, campus.course.id, campus.term.id, [
        {"user_id": campus.s1.id, "grade": "A"},
        {"user_id": campus.s3.id, "grade": "A"},
        {"user_id": campus.s4.id, "grade": "A"},
        {"user_id": campus.s2.id, "grade": ""},
        {"user_id": campus.s2.id, "grade": "C", "grade_points": "high"},
    ])
    assert result.saved == 1
    assert result.dropped == 4
    assert set(transcripts(db)) == {campus.s1.id}


def test_save_grades_overwrites(db, campus):
    save_grades(db, campus.x, campus.course.id, campus.term.id,
                [{"user_id": campus.s1.id, "grade": "C"}])
    save_grades(db, campus.x, campus.course.id, campus.term.id,
                [{"user_id": campus.s1.id, "grade": "B"}])
    assert transcripts(db)[campus.s1.id] == ("B", 3.0, "final")
    assert db.query(models.Transcript).count() == 1


def test_unknown_letter_defaults_to_zero_points(db, campus):
    save_grades(db, campus.x, campus.course.id, campus.term.id,
                [{"user_id": campus.s1.id, "grade": "P"}])
    assert transcripts(db)[campus.s1.id][1] == 0.0


# --- component marks ---


def test_save_marks_validates_ranges(db, campus):
    result = save_marks(db, campus.x, campus.course.id, campus.term.id, [
        {"user_id": campus.s1.id, "assignment1": 4.5, "mid1": 14},
        {"user_id": campus.s2.id, "assignment1": 6},
        {"user_id": campus.s4.id, "assignment1": 2},
    ])
    assert result.saved == 1
    db.expire_all()
    mark = campus.enrollments[campus.s1.id].mark
    assert (mark.assignment1, mark.mid1, mark.final_exam) == (4.5, 14.0, None)
    assert campus.enrollments[campus.s2.id].mark is None


def test_save_marks_only_touches_submitted_fields(db, campus, make):
    make.marks(campus.enrollments[campus.s1.id], assignment1=3, quiz1=2)
    db.commit()
    save_marks(db, campus.x, campus.course.id, campus.term.id,
               [{"user_id": campus.s1.id, "quiz1": 1.5}])
    db.expire_all()
    mark = campus.enrollments[campus.s1.id].mark
    assert (mark.assignment1, mark.quiz1) == (3.0, 1.5)


def test_marks_sheet(db, campus, make):
    make.marks(campus.enrollments[campus.s1.id], assignment1=5)
    db.commit()
    sheet = marks_sheet(db, campus.x, campus.course.id, campus.term.id)
    assert [s["user_id"] for s in sheet["students"]] == [campus.s1.id, campus.s2.id]
    assert sheet["students"][0]["marks"]["total"] == 5
    assert sheet["students"][1]["marks"] is None
    assert sheet["max_marks"]["final_exam"] == 50


# --- finalize ---


@pytest.mark.parametrize("total, grade", [
    (85, "A"), (84.99, "A-"), (70, "B"), (40, "D"), (39.5, "F"), (0, "F"),
])
def test_total_to_grade(total, grade):
    assert total_to_grade(total)[0] == grade


def test_finalize_grades(db, campus, make):
    make.marks(campus.enrollments[campus.s1.id], assignment1=5, assignment2=5, mid1=15, mid2=15,
               final_exam=43, grace_marks=2)
    db.commit()
    summary = finalize_grades(db, campus.x, campus.course.id, campus.term.id)
    assert summary["processed"] == 1
    assert summary["skipped"] == 1
    assert transcripts(db)[campus.s1.id] == ("A", 4.0, "final")
    assert campus.enrollments[campus.s1.id].status == "completed"
    assert campus.enrollments[campus.s2.id].status == "enrolled"


def test_empty_sheet_is_left_out_of_total_stats(db, campus, make):
    make.marks(campus.enrollments[campus.s1.id], assignment1=5, final_exam=40)
    make.marks(campus.enrollments[campus.s4.id])
    db.commit()
    stats = student_marks(db, campus.s1)[0]["stats"]
    assert stats["total"] == {"min": 45, "max": 45, "avg": 45}


def test_save_marks_drops_entry_with_only_nulls(db, campus):
    result = save_marks(db, campus.x, campus.course.id, campus.term.id,
                        [{"user_id": campus.s2.id, "assignment1": None}])
    assert (result.saved, result.dropped) == (0, 1)
    assert result.results[0].reason == "no marks"
    db.expire_all()
    assert campus.enrollments[campus.s2.id].mark is None


def test_finalize_skips_empty_sheet(db, campus, make):
    make.marks(campus.enrollments[campus.s2.id])
    db.commit()
    summary = finalize_grades(db, campus.x, campus.course.id, campus.term.id)
    assert (summary["processed"], summary["skipped"]) == (0, 2)
    assert transcripts(db) == {}
