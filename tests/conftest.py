import os

os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from ngo_platform.database import Base, build_engine
from ngo_platform.main import app
from ngo_platform.models import Course, CourseModule, Organization, User, UserRole
from ngo_platform.services.auth_service import hash_password
from ngo_platform.utils.database import get_db, reset_database

PASSWORD = "secret123"


@pytest.fixture
def engine():
    engine = build_engine("sqlite://")
    reset_database(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(session_factory):
    def get_test_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = get_test_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def organization(db):
    org = Organization(name="Helping Hands", slug="helping-hands", email="contact@helpinghands.org")
    db.add(org)
    db.commit()
    return org


@pytest.fixture
def other_organization(db):
    org = Organization(name="Green Future", slug="green-future", email="hello@greenfuture.org")
    db.add(org)
    db.commit()
    return org


@pytest.fixture
def make_user(db):
    def _make_user(email, organization=None, role=None, name=None, is_global_admin=False):
        user = User(
            email=email,
            name=name or email.split("@")[0].title(),
            password_hash=hash_password(PASSWORD),
            is_global_admin=is_global_admin,
        )
        db.add(user)
        db.flush()
        if organization is not None and role:
            db.add(UserRole(user_id=user.id, organization_id=organization.id, role=role, is_active=True))
        db.commit()
        return user
    return _make_user


@pytest.fixture
def admin(make_user, organization):
    return make_user("admin@helpinghands.org", organization, "admin", name="Ana Admin")


@pytest.fixture
def learner(make_user, organization):
    return make_user("maria@example.org", organization, "beneficiary", name="Maria Learner")


@pytest.fixture
def make_course(db):
    def _make_course(organization, **fields):
        data = {"title": "Digital Literacy", "course_type": "online", "pass_score": 70}
        data.update(fields)
        course = Course(organization_id=organization.id, **data)
        db.add(course)
        db.commit()
        return course
    return _make_course


@pytest.fixture
def make_module(db):
    def _make_module(course, form_fields=None, order_index=0, title=None):
        blocks = [{"type": "text", "content": "Read this first"}]
        if form_fields is not None:
            blocks.append({"type": "form", "formFields": form_fields})
        module = CourseModule(
            course_id=course.id,
            title=title or f"Module {order_index + 1}",
            order_index=order_index,
            content={"blocks": blocks},
        )
        db.add(module)
        db.commit()
        return module
    return _make_module


def quiz_field(field_id="q1", correct="B", points=10, field_type="radio", required=True, label=None):
    return {
        "id": field_id,
        "type": field_type,
        "label": label or f"Question {field_id}",
        "required": required,
        "options": ["A", "B", "C"] if field_type in ("radio", "select") else None,
        "correctAnswer": correct,
        "points": points,
    }


@pytest.fixture
def field():
    return quiz_field


@pytest.fixture
def login(client):
    def _login(user):
        response = client.post("/api/auth/login", data={"email": user.email, "password": PASSWORD})
        assert response.status_code == 200, response.text
        return response.json()
    return _login
