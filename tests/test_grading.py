import pytest

from ngo_platform.exceptions import InvalidAnswersError, InvalidGradeError, PreconditionFailedError
from ngo_platform.models import UserGrade, UserModuleFormSubmission
from ngo_platform.services import GradingService
from ngo_platform.services.grading_service import (
    answer_matches, percentage_to_grade_scale, round_half_up, score_form, validate_responses,
)


@pytest.fixture
def service():
    return GradingService()


@pytest.mark.parametrize("field_type,answer,correct,expected", [
    ("radio", "B", "B", True),
    ("radio", "b", "B", False),
    ("select", "Option 2", "Option 2", True),
    ("checkbox", "on", True, True),
    ("checkbox", "true", "true", True),
    ("checkbox", True, "true", True),
    ("checkbox", False, "true", False),
    ("checkbox", 1, True, True),
    ("checkbox", False, True, False),
    ("checkbox", ["b", "a"], ["a", "b"], True),
    ("checkbox", ["a"], ["a", "b"], False),
    ("text", "  Brasília ", "brasília", True),
    ("textarea", "Water Cycle", "water cycle", True),
    ("text", "Rio", "Brasília", False),
    ("radio", None, "B", False),
])
def test_answer_matches(field_type, answer, correct, expected):
    assert answer_matches(field_type, answer, correct) is expected


@pytest.mark.parametrize("percentage,grade", [
    (0, 1.0),
    (25, 3.3),
    (50, 5.5),
    (70, 7.3),
    (100, 10.0),
    (150, 10.0),
])
def test_percentage_to_grade_scale(percentage, grade):
    assert percentage_to_grade_scale(percentage) == grade


def test_score_form_ignores_ungraded_fields(field):
    fields = [
        field("q1", correct="B", points=10),
        field("q2", correct="yes", points=5, field_type="text"),
        {"id": "comment", "type": "textarea", "label": "Comments", "required": False},
        field("q3", correct="A", points=0),
    ]

    result = score_form(fields, {"q1": "B", "q2": "no", "comment": "great", "q3": "A"})

    assert result["score"] == 10
    assert result["max_score"] == 15
    assert result["percentage"] == pytest.approx(66.67)
    assert result["passed"] is False
    assert result["correct_answers"] == 1
    assert result["total_questions"] == 2
    assert [r["field_id"] for r in result["detailed_results"]] == ["q1", "q2"]


def test_score_form_without_gradable_fields_is_zero():
    fields = [{"id": "name", "type": "text", "label": "Name", "required": False}]

    result = score_form(fields, {"name": "Maria"})

    assert result["percentage"] == 0
    assert result["grade_scale"] == 1.0
    assert result["passed"] is False


@pytest.mark.parametrize("responses", [None, ["B"], "B", 42])
def test_validate_rejects_non_mapping(field, responses):
    with pytest.raises(InvalidAnswersError):
        validate_responses([field("q1")], responses)


def test_validate_rejects_blank_required_answer(field):
    with pytest.raises(InvalidAnswersError):
        validate_responses([field("q1", required=True)], {"q1": "   "})


def test_validate_accepts_missing_optional_answer(field):
    assert validate_responses([field("q1", required=False)], {}) == {}


def test_submit_overwrites_previous_attempt(db, service, make_course, make_module, field,
                                           learner, organization):
    course = make_course(organization)
    module = make_module(course, [field("q1", correct="B", points=10)])

    first = service.submit_module_form(learner.id, module.id, {"q1": "A"}, organization.id, db)
    second = service.submit_module_form(learner.id, module.id, {"q1": "B"}, organization.id, db)

    assert first["passed"] is False
    assert second["passed"] is True
    assert second["percentage"] == 100
    assert second["grade_scale"] == 10.0
    assert db.query(UserModuleFormSubmission).filter_by(user_id=learner.id).count() == 1

    grades = db.query(UserGrade).filter_by(user_id=learner.id, grade_type="module").all()
    assert len(grades) == 1
    assert grades[0].module_id == module.id
    assert grades[0].passed is True


def test_submit_module_without_form_is_rejected(db, service, make_course, make_module, learner,
                                                organization):
    course = make_course(organization)
    module = make_module(course)

    with pytest.raises(PreconditionFailedError):
        service.submit_module_form(learner.id, module.id, {"q1": "B"}, organization.id, db)


@pytest.mark.parametrize("grade", [0.5, 10.5, "ten"])
def test_course_grade_outside_scale_is_rejected(db, service, make_course, learner, organization, grade):
    course = make_course(organization, course_type="in_person")

    with pytest.raises(InvalidGradeError):
        service.record_course_grade(course.id, learner.id, grade, organization.id, db)


def test_course_grade_passed_defaults_to_pass_score(db, service, make_course, learner, organization):
    course = make_course(organization, course_type="in_person", pass_score=70)

    low = service.record_course_grade(course.id, learner.id, 6.9, organization.id, db)
    assert low.passed is False

    high = service.record_course_grade(course.id, learner.id, 7.0, organization.id, db)
    assert high.passed is True
    assert high.id == low.id


def test_list_module_grades_in_module_order(db, service, make_course, make_module, field,
                                            learner, organization):
    course = make_course(organization)
    second = make_module(course, [field("q1", correct="B")], order_index=1, title="Second")
    first = make_module(course, [field("q1", correct="A")], order_index=0, title="First")
    service.submit_module_form(learner.id, second.id, {"q1": "B"}, organization.id, db)
    service.submit_module_form(learner.id, first.id, {"q1": "C"}, organization.id, db)

    grades = service.list_module_grades(learner.id, course.id, organization.id, db)

    assert [g["module_title"] for g in grades] == ["First", "Second"]
    assert [g["passed"] for g in grades] == [False, True]


@pytest.mark.parametrize("value,digits,expected", [
    (12.5, 0, 13),
    (32.5, 0, 33),
    (2.5, 0, 3),
    (66.665, 2, 66.67),
    (12.4, 0, 12),
])
def test_round_half_up(value, digits, expected):
    assert round_half_up(value, digits) == expected
