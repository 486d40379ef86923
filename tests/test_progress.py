import pytest

from ngo_platform.exceptions import CourseModuleNotFoundError, CourseNotFoundError
from ngo_platform.models import utcnow
from ngo_platform.services import ProgressService
from ngo_platform.services.progress_service import serialize_progress


@pytest.fixture
def service():
    return ProgressService()


@pytest.fixture
def course(make_course, organization):
    return make_course(organization)


@pytest.fixture
def modules(make_module, course):
    return [make_module(course, order_index=i) for i in range(3)]


def test_first_completion_creates_progress(db, service, course, modules, learner, organization):
    progress = service.mark_module_complete(learner.id, course.id, modules[0].id, organization.id, db)

    assert progress.status == "in_progress"
    assert progress.completed_modules == [modules[0].id]
    assert progress.progress == 33


def test_marking_same_module_twice_is_idempotent(db, service, course, modules, learner, organization):
    service.mark_module_complete(learner.id, course.id, modules[0].id, organization.id, db)
    first_access = service.get_progress(learner.id, course.id, organization.id, db).last_accessed_at

    progress = service.mark_module_complete(learner.id, course.id, modules[0].id, organization.id, db)

    assert progress.completed_modules == [modules[0].id]
    assert progress.progress == 33
    assert progress.last_accessed_at >= first_access


def test_all_modules_complete_the_course(db, service, course, modules, learner, organization):
    for module in modules:
        progress = service.mark_module_complete(learner.id, course.id, module.id, organization.id, db)

    assert progress.progress == 100
    assert progress.status == "completed"
    assert progress.completed_at is not None


def test_progress_stays_within_bounds(db, service, course, modules, learner, organization):
    for module in modules + modules:
        progress = service.mark_module_complete(learner.id, course.id, module.id, organization.id, db)
        assert 0 <= progress.progress <= 100
        assert len(progress.completed_modules) == len(set(progress.completed_modules))


def test_module_from_another_course_is_rejected(db, service, course, make_course, make_module,
                                                learner, organization):
    other_course = make_course(organization, title="Financial Basics")
    foreign_module = make_module(other_course)

    with pytest.raises(CourseModuleNotFoundError):
        service.mark_module_complete(learner.id, course.id, foreign_module.id, organization.id, db)


def test_course_of_another_organization_is_not_found(db, service, make_course, make_module, learner,
                                                     other_organization, organization):
    foreign_course = make_course(other_organization)
    module = make_module(foreign_course)

    with pytest.raises(CourseNotFoundError):
        service.mark_module_complete(learner.id, foreign_course.id, module.id, organization.id, db)


def test_half_percent_rounds_up(db, service, make_course, make_module, learner, organization):
    course = make_course(organization, title="Eight Steps")
    eight = [make_module(course, order_index=i) for i in range(8)]

    progress = service.mark_module_complete(learner.id, course.id, eight[0].id, organization.id, db)

    assert progress.progress == 13


def test_timestamps_compare_after_reload(db, service, course, modules, learner, organization):
    before = utcnow()
    service.mark_module_complete(learner.id, course.id, modules[0].id, organization.id, db)
    db.expire_all()

    progress = service.get_progress(learner.id, course.id, organization.id, db)

    assert progress.last_accessed_at >= before
    assert "+" not in serialize_progress(progress)["last_accessed_at"]
