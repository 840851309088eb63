"""
Tests for the portal API.

Each test gets a fresh app and database from the conftest fixtures.
"""

import pytest


def add_job(client, applicant_id, **fields):
    response = client.post(f"/api/applicants/{applicant_id}/employment", json=fields)
    assert response.status_code == 201, response.get_json()
    return response.get_json()


@pytest.fixture
def history(client, applicant):
    """
    Applicant with a six-month gap and a previous referee missing an email.
    """
    previous = add_job(
        client, applicant["id"],
        employer="City Social Services",
        start_date="2018-07-01",
        end_date="2020-06-30",
        worked_with_vulnerable_people=True,
        reference_name="Jane Wilson",
    )
    current = add_job(
        client, applicant["id"],
        employer="County Care Services",
        start_date="2021-01-01",
        is_current=True,
        reference_name="Michael Roberts",
        reference_email="m.roberts@countycare.example",
    )
    return {"previous": previous["entry"], "current": current["entry"]}


def navigate(client, applicant_id, **body):
    response = client.post(f"/api/applicants/{applicant_id}/progress/navigate", json=body)
    assert response.status_code == 200
    return response.get_json()


@pytest.fixture
def submitted(client, applicant, history):
    """
    Applicant whose application has passed every gate and been submitted.
    """
    applicant_id = applicant["id"]
    client.put(f"/api/applicants/{applicant_id}/gaps", json={"explanations": [{
        "start_date": "2020-07-01", "end_date": "2021-01-01", "explanation": "Travelling",
    }]})
    client.patch(f"/api/employment/{history['previous']['id']}", json={
        "reference_email": "jane.wilson@citysocial.example",
    })
    navigate(client, applicant_id, target=7)

    response = client.post(f"/api/applicants/{applicant_id}/submit")
    assert response.get_json()["success"] is True
    return history


def tracked_references(client, applicant_id):
    body = client.get(f"/api/applicants/{applicant_id}/references").get_json()
    return {row["employment_entry_id"]: row for row in body["tracking"]}


# ============== Applicants ==============

def test_create_applicant(applicant):
    """Test that a new application starts in progress."""
    assert applicant["id"] > 0
    assert applicant["status"] == "in_progress"


def test_create_applicant_requires_fields(client):
    """Test that name and email are required."""
    response = client.post("/api/applicants", json={"first_name": "Jane"})

    assert response.status_code == 400
    assert "last_name" in response.get_json()["error"]


def test_duplicate_applicant_conflict(client, applicant):
    """Test that an email can only be registered once."""
    response = client.post("/api/applicants", json={
        "first_name": "Janet", "last_name": "Smith", "email": applicant["email"],
    })

    assert response.status_code == 409


def test_unknown_applicant_is_404(client):
    """Test 404s for a missing applicant."""
    assert client.get("/api/applicants/999").status_code == 404
    assert client.get("/api/applicants/999/gaps").status_code == 404
    assert client.get("/api/applicants/999/progress").status_code == 404
    assert client.post("/api/applicants/999/progress/navigate", json={"direction": "next"}).status_code == 404


def test_update_applicant(client, applicant):
    """Test editing personal details."""
    response = client.patch(f"/api/applicants/{applicant['id']}", json={
        "phone": "01234 567890", "status": "submitted",
    })

    body = response.get_json()
    assert body["phone"] == "01234 567890"
    assert body["status"] == "in_progress"


def test_applicant_fields_must_be_strings(client, applicant):
    """Test that non-text personal details are rejected, not stored."""
    created = client.post("/api/applicants", json={
        "first_name": "Jane", "last_name": "Smith", "email": ["jane@example.com"],
    })
    updated = client.patch(f"/api/applicants/{applicant['id']}", json={"phone": 1234567})

    assert created.status_code == 400
    assert created.get_json()["error"] == "email must be a string"
    assert updated.status_code == 400
    assert client.get(f"/api/applicants/{applicant['id']}").get_json()["phone"] is None


@pytest.mark.parametrize("method, path", [
    ("post", "/api/applicants"),
    ("patch", "/api/applicants/{applicant}"),
    ("post", "/api/applicants/{applicant}/employment"),
    ("patch", "/api/employment/{entry}"),
    ("put", "/api/applicants/{applicant}/gaps"),
    ("patch", "/api/applicants/{applicant}/reference-policy"),
    ("patch", "/api/references/1"),
    ("post", "/api/applicants/{applicant}/progress/navigate"),
    ("post", "/api/applicants/{applicant}/progress/complete"),
])
def test_non_object_body_rejected(client, applicant, history, method, path):
    """Test that a JSON list body gets a 400 instead of a server error."""
    url = path.format(applicant=applicant["id"], entry=history["previous"]["id"])

    response = getattr(client, method)(url, json=[1])

    assert response.status_code == 400
    assert response.get_json()["error"] == "Request body must be a JSON object"


# ============== Employment and gaps ==============

def test_add_employment_reports_gap(client, applicant):
    """Test that adding jobs returns the recomputed gaps."""
    add_job(client, applicant["id"], employer="A", start_date="2020-01-01", end_date="2020-06-30")
    body = add_job(client, applicant["id"], employer="B", start_date="2021-01-01", is_current=True)

    assert body["gaps"] == [{
        "start_date": "2020-07-01",
        "end_date": "2021-01-01",
        "length_in_days": 184,
        "explanation": "",
    }]
    assert body["entry"]["is_current"] is True
    assert body["entry"]["end_date"] is None


@pytest.mark.parametrize("payload, message", [
    ({"start_date": "2020-01-01"}, "Employer required"),
    ({"employer": "A"}, "Start date required"),
    ({"employer": "A", "start_date": "01/02/2020"}, "Invalid start_date"),
    ({"employer": "A", "start_date": "2020-06-01", "end_date": "2020-01-01"}, "End date cannot be before"),
    ({"employer": 5, "start_date": "2020-01-01"}, "employer must be a string"),
    ({"employer": "A", "start_date": "2020-01-01", "reference_email": ["a@b.example"]}, "reference_email must be a string"),
])
def test_add_employment_validation(client, applicant, payload, message):
    """Test employment payload validation."""
    response = client.post(f"/api/applicants/{applicant['id']}/employment", json=payload)

    assert response.status_code == 400
    assert message in response.get_json()["error"]


def test_explain_gap(client, applicant, history):
    """Test saving an explanation marks the gap explained."""
    url = f"/api/applicants/{applicant['id']}/gaps"
    assert client.get(url).get_json()["all_gaps_explained"] is False

    response = client.put(url, json={"explanations": [{
        "start_date": "2020-07-01", "end_date": "2021-01-01", "explanation": "Caring for my mother",
    }]})

    body = response.get_json()
    assert response.status_code == 200
    assert body["all_gaps_explained"] is True
    assert client.get(url).get_json()["gaps"][0]["explanation"] == "Caring for my mother"


def test_explain_gap_validation(client, applicant):
    """Test that explanations must be a list of dated entries."""
    url = f"/api/applicants/{applicant['id']}/gaps"

    assert client.put(url, json={"explanations": "Travelling"}).status_code == 400
    assert client.put(url, json={"explanations": [{"explanation": "Travelling"}]}).status_code == 400
    assert client.put(url, json={"explanations": [{
        "start_date": "2020-07-01", "end_date": "2021-01-01", "explanation": 5,
    }]}).status_code == 400


def test_moving_dates_orphans_explanation(client, applicant, history):
    """Test that editing a job start leaves the old explanation orphaned."""
    url = f"/api/applicants/{applicant['id']}/gaps"
    client.put(url, json={"explanations": [{
        "start_date": "2020-07-01", "end_date": "2021-01-01", "explanation": "Travelling",
    }]})

    response = client.patch(f"/api/employment/{history['current']['id']}", json={"start_date": "2021-03-01"})
    assert response.status_code == 200

    body = client.get(url).get_json()
    assert body["all_gaps_explained"] is False
    assert body["orphaned_explanations"] == ["2020-07-01/2021-01-01"]


def test_update_employment_to_current_clears_end_date(client, applicant, history):
    """Test that marking a past job current drops its old end date before validating."""
    response = client.patch(f"/api/employment/{history['previous']['id']}", json={
        "is_current": True, "start_date": "2020-09-01",
    })

    body = response.get_json()
    assert response.status_code == 200
    assert body["is_current"] is True
    assert body["start_date"] == "2020-09-01"
    assert body["end_date"] is None


def test_update_employment_rejects_non_string(client, history):
    """Test partial updates are type checked too."""
    response = client.patch(f"/api/employment/{history['current']['id']}", json={"position": 7})

    assert response.status_code == 400
    assert response.get_json()["error"] == "position must be a string"


def test_delete_employment_removes_gap(client, applicant, history):
    """Test that deleting a job recomputes gaps and references."""
    response = client.delete(f"/api/employment/{history['previous']['id']}")
    assert response.get_json() == {"success": True}

    assert client.get(f"/api/applicants/{applicant['id']}/gaps").get_json()["gaps"] == []
    assert client.delete(f"/api/employment/{history['previous']['id']}").status_code == 404


# ============== References ==============

def test_required_references(client, applicant, history):
    """Test the resolved reference set and missing contacts."""
    body = client.get(f"/api/applicants/{applicant['id']}/references").get_json()

    ids = [r["id"] for r in body["required_references"]]
    assert ids == [history["current"]["id"], history["previous"]["id"]]
    assert body["missing_contacts"] == [history["previous"]["id"]]
    assert body["reference_policy"]["require_current_employer"] is True


def test_reference_policy_update(client, applicant, history):
    """Test switching rules off for one applicant."""
    url = f"/api/applicants/{applicant['id']}/reference-policy"
    response = client.patch(url, json={
        "require_previous_employer": False,
        "require_vulnerable_work_employers": False,
    })

    body = response.get_json()
    assert response.status_code == 200
    assert [r["id"] for r in body["required_references"]] == [history["current"]["id"]]

    # The override is persisted
    refs = client.get(f"/api/applicants/{applicant['id']}/references").get_json()
    assert refs["reference_policy"]["require_previous_employer"] is False
    assert refs["missing_contacts"] == []


def test_reference_policy_rejects_unknown_setting(client, applicant):
    """Test 400 for an unknown policy toggle."""
    response = client.patch(
        f"/api/applicants/{applicant['id']}/reference-policy", json={"require_pets": True}
    )

    assert response.status_code == 400


def test_reference_tracking_starts_pending(client, applicant, history):
    """Test that every required referee gets a pending tracking row."""
    tracked = tracked_references(client, applicant["id"])

    assert set(tracked) == {history["current"]["id"], history["previous"]["id"]}
    for row in tracked.values():
        assert row["status"] == "pending"
        assert row["requested_at"] is None


def test_reference_status_lifecycle(client, applicant, history):
    """Test moving a reference forward and refusing moves back."""
    reference = tracked_references(client, applicant["id"])[history["current"]["id"]]
    url = f"/api/references/{reference['id']}"

    requested = client.patch(url, json={"status": "requested"}).get_json()
    assert requested["status"] == "requested"
    assert requested["requested_at"]

    # Steps can be skipped
    verified = client.patch(url, json={"status": "verified"}).get_json()
    assert verified["status"] == "verified"
    assert verified["verified_at"]
    assert verified["received_at"] is None

    same = client.patch(url, json={"status": "verified"})
    assert same.status_code == 200
    assert same.get_json()["verified_at"] == verified["verified_at"]

    back = client.patch(url, json={"status": "requested"})
    assert back.status_code == 400
    assert "cannot move from verified back to requested" in back.get_json()["error"]


@pytest.mark.parametrize("body", [{}, {"status": "lost"}, {"status": 3}])
def test_reference_status_validation(client, applicant, history, body):
    """Test 400 for a missing or unknown status."""
    reference = tracked_references(client, applicant["id"])[history["current"]["id"]]

    response = client.patch(f"/api/references/{reference['id']}", json=body)

    assert response.status_code == 400


def test_unknown_reference_is_404(client):
    """Test 404 for a missing reference."""
    assert client.patch("/api/references/999", json={"status": "requested"}).status_code == 404


def test_reference_status_survives_employment_edit(client, applicant, history):
    """Test that re-resolving after an edit keeps the tracked status."""
    previous_id = history["previous"]["id"]
    reference = tracked_references(client, applicant["id"])[previous_id]
    client.patch(f"/api/references/{reference['id']}", json={"status": "requested"})

    client.patch(f"/api/employment/{previous_id}", json={
        "reference_email": "jane.wilson@citysocial.example",
    })

    row = tracked_references(client, applicant["id"])[previous_id]
    assert row["id"] == reference["id"]
    assert row["status"] == "requested"
    assert row["reference_email"] == "jane.wilson@citysocial.example"


def test_reference_status_after_submission(client, applicant, submitted):
    """Test that references are still tracked once the application is in."""
    reference = tracked_references(client, applicant["id"])[submitted["current"]["id"]]

    response = client.patch(f"/api/references/{reference['id']}", json={"status": "received"})

    assert response.status_code == 200
    assert response.get_json()["received_at"]


# ============== Progress ==============

def test_progress_starts_on_first_step(client, applicant):
    """Test the initial progress record."""
    body = client.get(f"/api/applicants/{applicant['id']}/progress").get_json()

    assert body["current_step"] == 0
    assert body["current_step_id"] == "privacy_notice"
    assert body["is_first_step"] is True
    assert body["total_steps"] == 8


def test_navigate_validation(client, applicant):
    """Test malformed navigation requests."""
    url = f"/api/applicants/{applicant['id']}/progress/navigate"

    assert client.post(url, json={}).status_code == 400
    assert client.post(url, json={"direction": "sideways"}).status_code == 400
    assert client.post(url, json={"target": "3"}).status_code == 400


def test_navigate_out_of_range_is_not_an_error(client, applicant):
    """Test that refused navigation returns success false."""
    body = navigate(client, applicant["id"], target=42)

    assert body["success"] is False
    assert body["progress"]["current_step"] == 0


def test_employment_step_blocks_until_explained(client, applicant, history):
    """Test the employment gate over the API, with progress persisted."""
    applicant_id = applicant["id"]

    assert navigate(client, applicant_id, target=3)["success"] is True

    blocked = navigate(client, applicant_id, direction="next")
    assert blocked["success"] is False
    assert "explanation" in blocked["reason"]

    client.put(f"/api/applicants/{applicant_id}/gaps", json={"explanations": [{
        "start_date": "2020-07-01", "end_date": "2021-01-01", "explanation": "Travelling",
    }]})

    moved = navigate(client, applicant_id, direction="next")
    assert moved["success"] is True
    assert moved["progress"]["current_step_id"] == "skills"

    saved = client.get(f"/api/applicants/{applicant_id}/progress").get_json()
    assert saved["current_step"] == 4
    assert saved["completed_steps"] == [0, 3]


def test_complete_step(client, applicant):
    """Test marking a step complete without moving."""
    url = f"/api/applicants/{applicant['id']}/progress/complete"

    body = client.post(url, json={"step": 2}).get_json()
    assert body["success"] is True
    assert body["progress"]["completed_steps"] == [2]

    assert client.post(url, json={"step": 20}).get_json()["success"] is False
    assert client.post(url, json={}).status_code == 400


def test_reset_progress(client, applicant):
    """Test starting over."""
    navigate(client, applicant["id"], target=2)

    body = client.post(f"/api/applicants/{applicant['id']}/progress/reset").get_json()

    assert body["progress"]["current_step"] == 0
    assert body["progress"]["completed_steps"] == []


def test_full_application_submission(client, applicant, history):
    """Test walking through every gate and submitting."""
    applicant_id = applicant["id"]

    client.put(f"/api/applicants/{applicant_id}/gaps", json={"explanations": [{
        "start_date": "2020-07-01", "end_date": "2021-01-01", "explanation": "Travelling",
    }]})

    assert navigate(client, applicant_id, target=5)["success"] is True

    blocked = navigate(client, applicant_id, direction="next")
    assert blocked["success"] is False
    assert "reference" in blocked["reason"]

    client.patch(f"/api/employment/{history['previous']['id']}", json={
        "reference_email": "jane.wilson@citysocial.example",
    })
    assert navigate(client, applicant_id, direction="next")["success"] is True

    early = client.post(f"/api/applicants/{applicant_id}/submit").get_json()
    assert early["success"] is False

    assert navigate(client, applicant_id, target=7)["success"] is True

    response = client.post(f"/api/applicants/{applicant_id}/submit")
    body = response.get_json()
    assert body["success"] is True
    assert body["applicant"]["status"] == "submitted"
    assert body["applicant"]["completed_at"]
    assert body["progress"]["is_finished"] is True

    assert client.post(f"/api/applicants/{applicant_id}/submit").status_code == 409


@pytest.mark.parametrize("method, path, body", [
    ("patch", "/api/applicants/{applicant}", {"phone": "01234 567890"}),
    ("post", "/api/applicants/{applicant}/employment", {"employer": "D", "start_date": "2017-01-01"}),
    ("patch", "/api/employment/{entry}", {"position": "Manager"}),
    ("delete", "/api/employment/{entry}", None),
    ("put", "/api/applicants/{applicant}/gaps", {"explanations": []}),
    ("patch", "/api/applicants/{applicant}/reference-policy", {"require_previous_employer": False}),
    ("post", "/api/applicants/{applicant}/progress/navigate", {"direction": "previous"}),
    ("post", "/api/applicants/{applicant}/progress/complete", {"step": 1}),
    ("post", "/api/applicants/{applicant}/progress/reset", None),
])
def test_submitted_application_is_read_only(client, applicant, submitted, method, path, body):
    """Test that every edit is refused with 409 after submission."""
    url = path.format(applicant=applicant["id"], entry=submitted["previous"]["id"])

    response = getattr(client, method)(url, json=body)

    assert response.status_code == 409
    assert response.get_json()["error"] == "Application already submitted"

    stored = client.get(f"/api/applicants/{applicant['id']}").get_json()
    assert stored["status"] == "submitted"
    progress = client.get(f"/api/applicants/{applicant['id']}/progress").get_json()
    assert progress["current_step"] == 7
    assert len(client.get(f"/api/applicants/{applicant['id']}/employment").get_json()["items"]) == 2


# ============== Dashboard ==============

def test_dashboard_lists_applications(client, applicant):
    """Test the recruitment dashboard."""
    body = client.get("/").get_json()

    assert body["organisation"] == "Test Foster Care"
    assert body["total_steps"] == 8
    assert body["applications"][0]["name"] == "Jane Smith"
    assert body["applications"][0]["current_step"] == "Privacy Notice"


def test_health_check(client):
    """Test the health endpoint against the test database."""
    response = client.get("/api/health")

    assert response.status_code == 200
    assert response.get_json()["checks"]["database"]["applicant_count"] == 0
