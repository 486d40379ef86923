from ngo_platform.models import UserCourseRole


def _create_course(client, **overrides):
    payload = {"title": "First Aid", "course_type": "online", "pass_score": 70}
    payload.update(overrides)
    response = client.post("/api/courses", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


def _quiz_module(client, course_id, correct="B"):
    content = {"blocks": [{"type": "form", "formFields": [
        {"id": "q1", "type": "radio", "label": "Pick one", "required": True,
         "options": ["A", "B"], "correctAnswer": correct, "points": 10},
    ]}]}
    response = client.post(f"/api/courses/{course_id}/modules", json={"title": "Quiz", "content": content})
    assert response.status_code == 201, response.text
    return response.json()


def test_register_login_and_me(client):
    response = client.post("/api/auth/register", json={
        "email": "founder@ngo.org", "password": "secret123", "name": "Founder",
        "organization_name": "Casa Aberta", "organization_slug": "casa-aberta",
    })
    assert response.status_code == 200, response.text
    organization_id = response.json()["organization"]["id"]

    me = client.get("/api/auth/me").json()
    assert me["user"]["email"] == "founder@ngo.org"
    assert me["current_organization_id"] == organization_id

    client.post("/api/auth/logout")
    assert client.get("/api/auth/me").status_code == 401

    login = client.post("/api/auth/login", data={"email": "founder@ngo.org", "password": "secret123"})
    assert login.status_code == 200
    assert [o["slug"] for o in login.json()["organizations"]] == ["casa-aberta"]


def test_duplicate_registration_conflicts(client):
    payload = {"email": "dup@ngo.org", "password": "secret123", "name": "Dup",
               "organization_name": "Dup", "organization_slug": "dup"}
    client.post("/api/auth/register", json=payload)
    response = client.post("/api/auth/register", json=payload)
    assert response.status_code == 409


def test_wrong_password_is_unauthorized(client, admin):
    response = client.post("/api/auth/login", data={"email": admin.email, "password": "nope"})
    assert response.status_code == 401


def test_courses_require_session(client):
    assert client.get("/api/courses").status_code == 401


def test_switch_to_foreign_organization_is_forbidden(client, login, admin, other_organization):
    login(admin)
    response = client.post("/api/organizations/switch", json={"organization_id": other_organization.id})
    assert response.status_code == 403


def test_beneficiary_cannot_create_course(client, login, learner):
    login(learner)
    response = client.post("/api/courses", json={"title": "Nope"})
    assert response.status_code == 403


def test_online_course_flow(client, login, admin, learner):
    login(admin)
    course = _create_course(client)
    module = _quiz_module(client, course["id"])

    login(learner)
    assert client.post(f"/api/courses/{course['id']}/enroll").status_code == 200

    listing = client.get("/api/courses").json()["courses"]
    assert listing[0]["enrolled"] is True

    bad = client.post(f"/api/modules/{module['id']}/form-submission", json={"responses": ["B"]})
    assert bad.status_code == 422

    submitted = client.post(f"/api/modules/{module['id']}/form-submission", json={"responses": {"q1": "B"}})
    assert submitted.status_code == 200, submitted.text
    body = submitted.json()
    assert body["passed"] is True
    assert body["grade_scale"] == 10.0
    assert body["detailed_results"][0]["is_correct"] is True

    progress = client.post(f"/api/courses/{course['id']}/modules/{module['id']}/complete").json()
    assert progress["progress"] == 100
    assert progress["status"] == "completed"

    eligibility = client.get(f"/api/courses/{course['id']}/certificate/eligibility").json()
    assert eligibility["eligible"] is True

    issued = client.post(f"/api/courses/{course['id']}/certificate/issue")
    assert issued.status_code == 201
    again = client.post(f"/api/courses/{course['id']}/certificate/issue")
    assert again.status_code == 409
    assert again.json()["detail"] == "already issued"

    html = client.get(f"/api/courses/{course['id']}/certificate/download")
    assert html.status_code == 200
    assert issued.json()["certificate_number"] in html.text

    client.post("/api/auth/logout")
    verified = client.get(f"/api/certificates/verify/{issued.json()['verification_code']}")
    assert verified.status_code == 200
    assert verified.json()["holder_name"] == learner.name


def test_ineligible_issue_returns_reason(client, login, admin, learner):
    login(admin)
    course = _create_course(client, course_type="in_person")

    login(learner)
    response = client.post(f"/api/courses/{course['id']}/certificate/issue")
    assert response.status_code == 409
    assert response.json()["detail"] == "awaiting grade"


def test_enrollments_are_for_course_staff(client, login, db, admin, learner, make_user, organization):
    instructor = make_user("teacher@ngo.org", organization, "volunteer")
    login(admin)
    course = _create_course(client, course_type="in_person")
    assign = client.post(f"/api/courses/{course['id']}/assign",
                         json={"user_id": instructor.id, "role": "instructor"})
    assert assign.status_code == 200, assign.text

    login(learner)
    client.post(f"/api/courses/{course['id']}/enroll")
    assert client.get(f"/api/courses/{course['id']}/enrollments").status_code == 403

    login(instructor)
    enrollments = client.get(f"/api/courses/{course['id']}/enrollments").json()["enrollments"]
    assert {e["role"] for e in enrollments} == {"instructor", "student"}

    graded = client.post(f"/api/courses/{course['id']}/grades",
                         json={"user_id": learner.id, "grade_scale": 7.5, "passed": True})
    assert graded.status_code == 201
    out_of_range = client.post(f"/api/courses/{course['id']}/grades",
                               json={"user_id": learner.id, "grade_scale": 12})
    assert out_of_range.status_code == 422

    export = client.get(f"/api/courses/{course['id']}/gradebook.csv")
    assert export.status_code == 200
    assert export.headers["content-type"].startswith("text/csv")
    assert learner.email in export.text

    assert db.query(UserCourseRole).filter_by(course_id=course["id"]).count() == 2


def test_grade_import_upload(client, login, admin, learner):
    login(admin)
    course = _create_course(client, course_type="in_person")
    csv_content = f"email,grade\n{learner.email},8\n".encode("utf-8")

    response = client.post(f"/api/courses/{course['id']}/grades/import",
                           files={"file": ("grades.csv", csv_content, "text/csv")})

    assert response.status_code == 200, response.text
    assert response.json()["imported"] == 1
    grades = client.get(f"/api/courses/{course['id']}/grades").json()["grades"]
    assert grades[0]["email"] == learner.email


def test_record_crud(client, login, admin, learner):
    login(admin)
    created = client.post("/api/projects", json={"name": "Clean Water", "budget": 1000})
    assert created.status_code == 201, created.text
    project_id = created.json()["id"]

    updated = client.put(f"/api/projects/{project_id}", json={"status": "active"})
    assert updated.json()["status"] == "active"
    assert updated.json()["name"] == "Clean Water"

    invalid = client.put(f"/api/projects/{project_id}", json={"status": "unknown"})
    assert invalid.status_code == 422

    beneficiary = client.post("/api/beneficiaries", json={
        "registration_number": "B-1", "name": "Lucia", "email": "lucia@ngo.org",
    })
    assert beneficiary.json()["user_id"] is not None

    login(learner)
    assert client.get("/api/projects").status_code == 200
    assert client.post("/api/projects", json={"name": "Nope"}).status_code == 403

    login(admin)
    assert client.delete(f"/api/projects/{project_id}").status_code == 204
    assert client.get(f"/api/projects/{project_id}").status_code == 404
