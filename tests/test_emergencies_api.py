from app.models.all_models import AmbulanceStatus, EmergencyStatus, Message, UserRole

from conftest import auth_headers, make_ambulance, make_emergency, make_hospital, make_user


def _report(**overrides):
    payload = {
        "severity": "critical",
        "emergency_type": "cardiac",
        "symptoms": ["chest pain"],
        "location": {
            "pickup": {"address": "Area 47, Lilongwe", "coordinates": {"lat": -13.95, "lng": 33.78}},
        },
    }
    payload.update(overrides)
    return payload


def test_report_emergency(client, services, db):
    user = make_user(db)

    response = client.post("/api/emergencies/", json=_report(), headers=auth_headers(user))

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["status"] == "pending"
    assert data["patient"]["id"] == str(user.id)
    assert data["requested_by"]["id"] == str(user.id)
    assert data["location"]["pickup"]["coordinates"] == {"lat": -13.95, "lng": 33.78}
    assert data["timeline"][0]["status"] == "emergency_requested"
    assert services.realtime.names() == ["new-emergency"]


def test_report_on_behalf_of_patient(client, db):
    caller = make_user(db)
    patient = make_user(db)

    response = client.post(
        "/api/emergencies/", json=_report(patient_id=str(patient.id)), headers=auth_headers(caller)
    )
    data = response.json()["data"]
    assert data["patient"]["id"] == str(patient.id)
    assert data["requested_by"]["id"] == str(caller.id)


def test_report_requires_verified_account(client, db):
    unverified = make_user(db, verified=False)
    response = client.post("/api/emergencies/", json=_report(), headers=auth_headers(unverified))
    assert response.status_code == 403


def test_report_validation(client, db):
    user = make_user(db)
    bad = _report(location={"pickup": {"address": "x", "coordinates": {"lat": 200, "lng": 0}}})
    assert client.post("/api/emergencies/", json=bad, headers=auth_headers(user)).status_code == 400
    assert client.post(
        "/api/emergencies/", json=_report(severity="mild"), headers=auth_headers(user)
    ).status_code == 400


def test_list_scoped_by_role(client, db):
    patient = make_user(db)
    driver = make_user(db, UserRole.DRIVER)
    hospital_admin = make_user(db, UserRole.HOSPITAL_ADMIN)
    hospital = make_hospital(db, admins=[hospital_admin])
    ambulance = make_ambulance(db, driver=driver, status=AmbulanceStatus.BUSY)
    mine = make_emergency(db, patient, status=EmergencyStatus.EN_ROUTE, ambulance=ambulance, hospital=hospital)
    other = make_emergency(db, make_user(db))

    def ids(user, query=""):
        body = client.get(f"/api/emergencies/{query}", headers=auth_headers(user)).json()
        return [e["id"] for e in body["data"]]

    assert ids(patient) == [str(mine.id)]
    assert ids(driver) == [str(mine.id)]
    assert ids(hospital_admin) == [str(mine.id)]
    assert set(ids(make_user(db, UserRole.ADMIN))) == {str(mine.id), str(other.id)}
    assert ids(patient, "?status=pending") == []


def test_get_emergency_authorization(client, db):
    patient = make_user(db)
    emergency = make_emergency(db, patient)

    assert client.get(f"/api/emergencies/{emergency.id}", headers=auth_headers(patient)).status_code == 200
    assert client.get(f"/api/emergencies/{emergency.id}", headers=auth_headers(make_user(db))).status_code == 403


def test_assign_and_advance_over_http(client, services, db):
    admin = make_user(db, UserRole.ADMIN)
    patient = make_user(db)
    driver = make_user(db, UserRole.DRIVER)
    hospital = make_hospital(db, total=3, available=1)
    ambulance = make_ambulance(db, driver=driver)
    emergency = make_emergency(db, patient)

    response = client.put(
        f"/api/emergencies/{emergency.id}/assign",
        json={"ambulance_id": str(ambulance.id), "hospital_id": str(hospital.id)},
        headers=auth_headers(admin),
    )
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["emergency"]["status"] == "assigned"
    assert data["ambulance"]["status"] == "busy"
    assert data["hospital"]["id"] == str(hospital.id)

    again = client.put(
        f"/api/emergencies/{emergency.id}/assign",
        json={"ambulance_id": str(ambulance.id)},
        headers=auth_headers(admin),
    )
    assert again.status_code == 400
    assert again.json()["current_status"] == "assigned"

    moved = client.put(
        f"/api/emergencies/{emergency.id}/status",
        json={"status": "en_route", "notes": "leaving station"},
        headers=auth_headers(driver),
    )
    assert moved.status_code == 200
    assert moved.json()["data"]["status"] == "en_route"
    assert moved.json()["data"]["timeline"][-1]["notes"] == "leaving station"

    db.expire_all()
    assert hospital.capacity_available == 0


def test_illegal_status_change_is_rejected(client, db):
    admin = make_user(db, UserRole.ADMIN)
    emergency = make_emergency(db, make_user(db))

    response = client.put(
        f"/api/emergencies/{emergency.id}/status", json={"status": "completed"}, headers=auth_headers(admin)
    )
    assert response.status_code == 400
    assert response.json()["requested_status"] == "completed"


def test_assign_busy_ambulance_conflicts(client, db):
    admin = make_user(db, UserRole.ADMIN)
    ambulance = make_ambulance(db, driver=make_user(db, UserRole.DRIVER), status=AmbulanceStatus.BUSY)
    emergency = make_emergency(db, make_user(db))

    response = client.put(
        f"/api/emergencies/{emergency.id}/assign",
        json={"ambulance_id": str(ambulance.id)},
        headers=auth_headers(admin),
    )
    assert response.status_code == 409


def test_feedback_over_http(client, db):
    patient = make_user(db)
    hospital = make_hospital(db)
    emergency = make_emergency(db, patient, status=EmergencyStatus.COMPLETED, hospital=hospital)
    url = f"/api/emergencies/{emergency.id}/feedback"

    assert client.post(url, json={"rating": 0}, headers=auth_headers(patient)).status_code == 400

    response = client.post(url, json={"rating": 4, "comment": "fast"}, headers=auth_headers(patient))
    assert response.status_code == 200
    assert response.json()["data"]["rating"] == 4

    assert client.post(url, json={"rating": 5}, headers=auth_headers(patient)).status_code == 409

    db.expire_all()
    assert hospital.rating == {"average": 4.0, "count": 1}


def test_messages(client, services, db):
    patient = make_user(db)
    driver = make_user(db, UserRole.DRIVER)
    ambulance = make_ambulance(db, driver=driver, status=AmbulanceStatus.BUSY)
    emergency = make_emergency(db, patient, status=EmergencyStatus.EN_ROUTE, ambulance=ambulance)
    base = f"/api/emergencies/{emergency.id}/messages"

    sent = client.post(
        base,
        json={
            "receiver_id": str(driver.id),
            "text": "Gate is blue",
            "attachments": [{"type": "image", "url": "https://cdn.example/gate.jpg"}],
            "location": {"lat": -15.8, "lng": 35.02},
        },
        headers=auth_headers(patient),
    )
    assert sent.status_code == 201
    message = sent.json()["data"]
    assert message["has_media"] is True
    assert message["status"] == "sent"
    assert message["location"] == {"lat": -15.8, "lng": 35.02}
    assert services.realtime.events[-1][0] == "new-message"
    assert services.realtime.events[-1][2] == str(emergency.id)

    outsider = make_user(db)
    stranger_receiver = client.post(
        base, json={"receiver_id": str(outsider.id), "text": "hi"}, headers=auth_headers(patient)
    )
    assert stranger_receiver.status_code == 400
    assert client.get(base, headers=auth_headers(outsider)).status_code == 403

    listed = client.get(base, headers=auth_headers(driver)).json()
    assert listed["count"] == 1

    read_url = f"{base}/{message['id']}/read"
    assert client.put(read_url, headers=auth_headers(patient)).status_code == 403
    read = client.put(read_url, headers=auth_headers(driver))
    assert read.status_code == 200
    assert read.json()["data"]["status"] == "read"
    assert read.json()["data"]["read_at"] is not None

    db.expire_all()
    assert db.query(Message).one().status.value == "read"
