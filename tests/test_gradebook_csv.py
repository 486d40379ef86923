import io

import pandas as pd
import pytest

from ngo_platform.exceptions import InvalidFileError
from ngo_platform.models import UserGrade
from ngo_platform.services import EnrollmentService, GradebookCSVProcessor, GradingService


@pytest.fixture
def processor():
    return GradebookCSVProcessor()


@pytest.fixture
def course(make_course, organization):
    return make_course(organization, course_type="hybrid", pass_score=60, title="Sewing Workshop")


def test_export_one_row_per_student(db, processor, course, make_module, field, learner, admin, organization):
    module = make_module(course, [field("q1", correct="B")], title="Measuring")
    EnrollmentService().enroll(learner.id, course.id, organization.id, db)
    grading = GradingService()
    grading.submit_module_form(learner.id, module.id, {"q1": "B"}, organization.id, db)
    grading.record_course_grade(course.id, learner.id, 8.5, organization.id, db)

    content = processor.export_gradebook(course.id, organization.id, db)
    df = pd.read_csv(io.StringIO(content))

    assert list(df.columns) == ["email", "name", "progress", "status", "Measuring",
                                "final_grade", "certificate_number"]
    assert len(df) == 1
    row = df.iloc[0]
    assert row["email"] == learner.email
    assert row["Measuring"] == 10.0
    assert row["final_grade"] == 8.5


def test_import_records_valid_rows_and_reports_invalid(db, processor, course, learner, make_user, organization):
    other = make_user("jose@example.org", organization, "beneficiary")
    csv_bytes = (
        "Email,Grade,Feedback\n"
        f"{learner.email},7.5,Very good\n"
        f"{other.email},5.0,\n"
        "ghost@example.org,9,\n"
        f"{learner.email},11,\n"
        ",8,\n"
    ).encode("utf-8")

    result = processor.import_grades(course.id, "grades.csv", csv_bytes, organization.id, db)

    assert result["imported"] == 2
    assert result["total_rows"] == 5
    assert [e["row"] for e in result["errors"]] == [4, 5, 6]

    learner_grade = db.query(UserGrade).filter_by(user_id=learner.id, grade_type="course").one()
    assert learner_grade.grade_scale == 7.5
    assert learner_grade.passed is True
    assert learner_grade.feedback == "Very good"
    other_grade = db.query(UserGrade).filter_by(user_id=other.id, grade_type="course").one()
    assert other_grade.passed is False


def test_import_reads_latin1(db, processor, course, make_user, organization):
    user = make_user("joao@example.org", organization, "beneficiary")
    csv_bytes = f"email,grade,feedback\n{user.email},9,Ótimo trabalho\n".encode("latin-1")

    result = processor.import_grades(course.id, "notas.csv", csv_bytes, organization.id, db)

    assert result["imported"] == 1
    grade = db.query(UserGrade).filter_by(user_id=user.id).one()
    assert grade.feedback == "Ótimo trabalho"


@pytest.mark.parametrize("filename,content", [
    ("grades.xlsx", b"email,grade\na@b.org,7\n"),
    ("grades.csv", b""),
    ("grades.csv", b"name,score\nAna,7\n"),
])
def test_import_rejects_bad_files(db, processor, course, organization, filename, content):
    with pytest.raises(InvalidFileError):
        processor.import_grades(course.id, filename, content, organization.id, db)
