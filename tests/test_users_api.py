from app.models.all_models import AmbulanceStatus, User, UserRole

from conftest import auth_headers, make_ambulance, make_emergency, make_hospital, make_user


def test_list_users_admin_only(client, db):
    admin = make_user(db, UserRole.ADMIN)
    user = make_user(db)

    assert client.get("/api/users/", headers=auth_headers(user)).status_code == 403

    response = client.get("/api/users/", headers=auth_headers(admin))
    assert response.status_code == 200
    assert response.json()["count"] == 2
    assert "password" not in response.json()["data"][0]


def test_list_drivers(client, db):
    hospital_admin = make_user(db, UserRole.HOSPITAL_ADMIN)
    driver = make_user(db, UserRole.DRIVER)
    make_user(db)

    response = client.get("/api/users/drivers", headers=auth_headers(hospital_admin))
    assert response.status_code == 200
    assert [d["id"] for d in response.json()["data"]] == [str(driver.id)]

    assert client.get("/api/users/drivers", headers=auth_headers(driver)).status_code == 403


def test_get_user_self_or_admin(client, db):
    admin = make_user(db, UserRole.ADMIN)
    user = make_user(db)
    other = make_user(db)

    assert client.get(f"/api/users/{user.id}", headers=auth_headers(user)).status_code == 200
    assert client.get(f"/api/users/{user.id}", headers=auth_headers(admin)).status_code == 200
    assert client.get(f"/api/users/{user.id}", headers=auth_headers(other)).status_code == 403


def test_update_user_role(client, db):
    admin = make_user(db, UserRole.ADMIN)
    user = make_user(db)

    response = client.put(f"/api/users/{user.id}", json={"role": "driver"}, headers=auth_headers(admin))
    assert response.status_code == 200
    assert response.json()["data"]["role"] == "driver"


def test_delete_user_detaches_ambulances(client, db):
    admin = make_user(db, UserRole.ADMIN)
    driver = make_user(db, UserRole.DRIVER)
    ambulance = make_ambulance(db, driver=driver)
    driver_id = driver.id

    response = client.delete(f"/api/users/{driver_id}", headers=auth_headers(admin))
    assert response.status_code == 200

    db.expire_all()
    assert db.query(User).filter(User.id == driver_id).first() is None
    assert ambulance.driver_id is None
    assert ambulance.status == AmbulanceStatus.OFFLINE


def test_delete_user_with_history_conflicts(client, db):
    admin = make_user(db, UserRole.ADMIN)
    patient = make_user(db)
    make_emergency(db, patient)

    response = client.delete(f"/api/users/{patient.id}", headers=auth_headers(admin))
    assert response.status_code == 409


def test_delete_busy_driver_conflicts(client, db):
    admin = make_user(db, UserRole.ADMIN)
    driver = make_user(db, UserRole.DRIVER)
    make_ambulance(db, driver=driver, status=AmbulanceStatus.BUSY)

    response = client.delete(f"/api/users/{driver.id}", headers=auth_headers(admin))
    assert response.status_code == 409


def test_delete_hospital_admin_clears_administration(client, db):
    admin = make_user(db, UserRole.ADMIN)
    hospital_admin = make_user(db, UserRole.HOSPITAL_ADMIN)
    hospital = make_hospital(db, admins=[hospital_admin])

    response = client.delete(f"/api/users/{hospital_admin.id}", headers=auth_headers(admin))
    assert response.status_code == 200

    db.expire_all()
    assert hospital.administrators == []


def test_missing_user_is_not_found(client, db):
    admin = make_user(db, UserRole.ADMIN)
    response = client.get("/api/users/00000000-0000-0000-0000-000000000000", headers=auth_headers(admin))
    assert response.status_code == 404
    assert response.json()["message"] == "User not found"
