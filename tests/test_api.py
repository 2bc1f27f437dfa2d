"""
End-to-end API tests: login, URL-level and operation-level authorization,
error envelopes and the hospital endpoints.
"""

from conftest import ADMIN, DOCTOR, OTHER_DOCTOR, PATIENT, login


def assert_envelope(response, status):
    assert response.status_code == status
    body = response.json()
    assert set(body) == {"timestamp", "error", "status"}
    assert body["status"] == status


# ── authentication ──────────────────────────────────────────────────

def test_login_returns_token_and_user_id(client):
    response = client.post("/auth/login", json={"username": DOCTOR[0], "password": DOCTOR[1]})
    assert response.status_code == 200
    body = response.json()
    assert body["user_id"] == 6
    assert body["token_type"] == "bearer"
    assert body["expires_in"] == 600


def test_login_wrong_password(client):
    response = client.post("/auth/login", json={"username": DOCTOR[0], "password": "nope"})
    assert_envelope(response, 401)


def test_login_unknown_user(client):
    response = client.post("/auth/login", json={"username": "ghost@example.com", "password": "nope"})
    assert_envelope(response, 404)


def test_signup_then_login(client):
    response = client.post("/auth/signup", json={
        "username": "new.patient@example.com", "password": "password123", "name": "New Patient",
    })
    assert response.status_code == 201
    headers = login(client, ("new.patient@example.com", "password123"))

    profile = client.get("/patients/profile", headers=headers)
    assert profile.status_code == 200
    assert profile.json()["name"] == "New Patient"


def test_signup_duplicate_is_conflict(client):
    response = client.post("/auth/signup", json={
        "username": PATIENT[0], "password": "password123", "name": "Again",
    })
    assert_envelope(response, 409)


def test_current_user(client):
    response = client.get("/users/me", headers=login(client, DOCTOR))
    assert response.status_code == 200
    body = response.json()
    assert body["id"] == 6
    assert body["roles"] == ["DOCTOR"]
    assert "appointment:delete" in body["permissions"]
    assert "user:manage" not in body["permissions"]


# ── request authentication ──────────────────────────────────────────

def test_anonymous_request_to_protected_route(client):
    assert_envelope(client.get("/users/me"), 401)


def test_anonymous_request_to_public_route(client):
    response = client.get("/public/doctors")
    assert response.status_code == 200
    assert [d["id"] for d in response.json()] == [6, 7, 8]


def test_rejected_token_is_never_treated_as_anonymous(client):
    response = client.get("/public/doctors", headers={"Authorization": "Bearer not-a-token"})
    assert_envelope(response, 401)


def test_non_bearer_scheme_is_rejected(client):
    response = client.get("/users/me", headers={"Authorization": "Basic YWRtaW46YWRtaW4="})
    assert_envelope(response, 401)


def test_unknown_route_is_not_found_for_authenticated_caller(client):
    response = client.get("/nothing-here", headers=login(client, PATIENT))
    assert_envelope(response, 404)


def test_openapi_declares_bearer_scheme(client):
    schema = client.get("/openapi.json").json()
    assert schema["components"]["securitySchemes"]["HTTPBearer"]["scheme"] == "bearer"


# ── URL-level rules ─────────────────────────────────────────────────

def test_patient_cannot_reach_admin_or_doctor_routes(client):
    headers = login(client, PATIENT)
    assert_envelope(client.get("/admin/patients", headers=headers), 403)
    assert_envelope(client.get("/doctors/appointments", headers=headers), 403)
    assert_envelope(client.delete("/admin/appointments/1", headers=headers), 403)


def test_doctor_cannot_list_patients_but_can_delete_appointments(client):
    headers = login(client, DOCTOR)
    assert_envelope(client.get("/admin/patients", headers=headers), 403)
    assert client.delete("/admin/appointments/3", headers=headers).status_code == 204
    assert_envelope(client.delete("/admin/appointments/3", headers=headers), 404)


def test_doctor_delete_of_patient_fails_permission_check(client):
    response = client.delete("/admin/patients/1", headers=login(client, DOCTOR))
    assert_envelope(response, 403)


# ── operation-level rules ───────────────────────────────────────────

def test_doctor_reads_own_appointments_only(client):
    headers = login(client, DOCTOR)
    own = client.get("/doctors/6/appointments", headers=headers)
    assert own.status_code == 200
    assert {a["doctor_id"] for a in own.json()} == {6}
    assert len(own.json()) == 3

    mine = client.get("/doctors/appointments", headers=headers)
    assert mine.json() == own.json()

    assert_envelope(client.get("/doctors/7/appointments", headers=headers), 403)


def test_admin_reads_any_doctor_appointments(client):
    response = client.get("/doctors/7/appointments", headers=login(client, ADMIN))
    assert response.status_code == 200
    assert {a["doctor_id"] for a in response.json()} == {7}


def test_patient_reads_own_record_only(client):
    headers = login(client, PATIENT)
    assert client.get("/patients/2", headers=headers).status_code == 200
    assert_envelope(client.get("/patients/1", headers=headers), 403)
    assert client.get("/patients/1", headers=login(client, DOCTOR)).status_code == 200


def test_patient_books_appointment(client):
    response = client.post("/patients/appointments", headers=login(client, PATIENT), json={
        "doctor_id": 7, "appointment_time": "2025-08-01T09:00:00", "reason": "Rash follow-up",
    })
    assert response.status_code == 201
    body = response.json()
    assert body["patient_id"] == 2
    assert body["doctor_id"] == 7

    listed = client.get("/doctors/appointments", headers=login(client, OTHER_DOCTOR)).json()
    assert body["id"] in {a["id"] for a in listed}


def test_booking_with_unknown_doctor(client):
    response = client.post("/patients/appointments", headers=login(client, PATIENT), json={
        "doctor_id": 99, "appointment_time": "2025-08-01T09:00:00", "reason": "Checkup",
    })
    assert_envelope(response, 404)


def test_doctor_reassigns_appointment(client):
    response = client.put("/doctors/appointments/1/reassign", headers=login(client, DOCTOR), json={"doctor_id": 8})
    assert response.status_code == 200
    assert response.json()["doctor_id"] == 8


# ── administration ──────────────────────────────────────────────────

def test_admin_pages_through_patients(client):
    headers = login(client, ADMIN)
    first = client.get("/admin/patients", params={"page": 0, "size": 2}, headers=headers).json()
    assert first["total_elements"] == 5
    assert first["total_pages"] == 3
    assert [p["id"] for p in first["content"]] == [1, 2]

    last = client.get("/admin/patients", params={"page": 2, "size": 2}, headers=headers).json()
    assert [p["name"] for p in last["content"]] == ["Kabir Singh"]


def test_invalid_page_size_is_rejected(client):
    response = client.get("/admin/patients", params={"size": 0}, headers=login(client, ADMIN))
    assert_envelope(response, 422)
    assert "size" in response.json()["error"]


def test_malformed_body_uses_error_envelope(client):
    response = client.post("/auth/signup", json={"username": "short@example.com", "password": "x", "name": "Short"})
    assert_envelope(response, 422)
    assert "password" in response.json()["error"]


def test_onboarding_promotes_user_to_doctor(client):
    headers = login(client, ADMIN)
    payload = {"user_id": 1, "name": "Dr. Aarav Sharma", "specialization": "Neurology"}

    response = client.post("/admin/onBoardNewDoctor", json=payload, headers=headers)
    assert response.status_code == 201
    assert response.json()["email"] == "aarav.sharma@example.com"

    assert_envelope(client.post("/admin/onBoardNewDoctor", json=payload, headers=headers), 409)

    me = client.get("/users/me", headers=login(client, ("aarav.sharma@example.com", "password123"))).json()
    assert me["roles"] == ["DOCTOR", "PATIENT"]


def test_onboarding_unknown_user(client):
    response = client.post("/admin/onBoardNewDoctor", headers=login(client, ADMIN), json={
        "user_id": 999, "name": "Nobody", "specialization": "None",
    })
    assert_envelope(response, 404)


def test_insurance_assignment_and_removal(client):
    headers = login(client, ADMIN)
    response = client.post("/admin/patients/3/insurance", headers=headers, json={
        "policy_number": "HDFC-001", "provider": "HDFC Ergo", "valid_until": "2030-12-31",
    })
    assert response.status_code == 200
    assert response.json()["insurance"]["policy_number"] == "HDFC-001"

    taken = client.post("/admin/patients/4/insurance", headers=headers, json={
        "policy_number": "HDFC-001", "provider": "HDFC Ergo", "valid_until": "2030-12-31",
    })
    assert_envelope(taken, 409)

    removed = client.delete("/admin/patients/3/insurance", headers=headers)
    assert removed.status_code == 200
    assert removed.json()["insurance"] is None
    assert_envelope(client.delete("/admin/patients/3/insurance", headers=headers), 404)


def test_departments(client):
    headers = login(client, ADMIN)
    created = client.post("/admin/departments", headers=headers, json={"name": "Cardiology", "head_doctor_id": 6})
    assert created.status_code == 201
    department = created.json()
    assert department["doctor_ids"] == [6]

    assert_envelope(client.post("/admin/departments", headers=headers, json={"name": "Cardiology"}), 409)

    updated = client.put(f"/admin/departments/{department['id']}/doctors/7", headers=headers)
    assert updated.json()["doctor_ids"] == [6, 7]
    assert_envelope(client.put(f"/admin/departments/{department['id']}/doctors/99", headers=headers), 404)

    listed = client.get("/admin/departments", headers=headers).json()
    assert [d["name"] for d in listed] == ["Cardiology"]


def test_admin_deletes_patient(client):
    headers = login(client, ADMIN)
    assert client.delete("/admin/patients/5", headers=headers).status_code == 204
    assert_envelope(client.get("/patients/5", headers=headers), 404)
