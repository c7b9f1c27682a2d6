from datetime import timedelta

from app.models.all_models import User, UserRole, utc_now

from conftest import PASSWORD, auth_headers, make_user


def _register(client, **overrides):
    payload = {
        "name": "Chikondi Banda",
        "email": "Chikondi@Example.com",
        "phone": "+265 999-123-456",
        "password": "hunter22",
    }
    payload.update(overrides)
    return client.post("/api/auth/register", json=payload)


def test_register_sends_otp_and_returns_token(client, services, db):
    response = _register(client)

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["data"]["email"] == "chikondi@example.com"
    assert body["data"]["phone"] == "+265999123456"
    assert body["data"]["role"] == "user"
    assert body["data"]["is_verified"] is False
    assert body["data"]["otp_sent"] is True
    assert body["data"]["token"]

    kind, phone, otp = services.sms.sent[-1]
    assert (kind, phone) == ("otp", "+265999123456")
    stored = db.query(User).filter(User.email == "chikondi@example.com").one()
    assert stored.otp_code == otp
    assert stored.password != "hunter22"


def test_register_cannot_self_assign_admin(client):
    response = _register(client, role="admin")
    assert response.json()["data"]["role"] == "user"


def test_register_survives_sms_failure(client, services):
    services.sms.fail = True
    response = _register(client)
    assert response.status_code == 201
    assert response.json()["data"]["otp_sent"] is False


def test_register_duplicate_conflicts(client):
    _register(client)
    response = _register(client, phone="+265888000111")
    assert response.status_code == 409
    assert response.json()["success"] is False


def test_register_validation_envelope(client):
    response = _register(client, phone="call me")
    assert response.status_code == 400
    body = response.json()
    assert body["message"] == "Validation failed"
    assert body["errors"][0]["field"] == "phone"


def test_login(client, db):
    user = make_user(db)

    ok = client.post("/api/auth/login", json={"email": user.email, "password": PASSWORD})
    assert ok.status_code == 200
    assert ok.json()["data"]["id"] == str(user.id)

    bad = client.post("/api/auth/login", json={"email": user.email, "password": "wrong"})
    assert bad.status_code == 401
    assert bad.json()["message"] == "Invalid email or password"


def test_verify_otp_flow(client, services, db):
    _register(client)
    otp = services.sms.sent[-1][2]
    wrong = "000000" if otp != "000000" else "111111"

    assert client.post("/api/auth/verify-otp", json={"email": "chikondi@example.com", "otp": wrong}).status_code == 400

    response = client.post("/api/auth/verify-otp", json={"email": "chikondi@example.com", "otp": otp})
    assert response.status_code == 200
    assert response.json()["data"]["is_verified"] is True

    user = db.query(User).filter(User.email == "chikondi@example.com").one()
    assert user.is_verified
    assert user.otp_code is None


def test_expired_otp_rejected(client, db):
    user = make_user(db, verified=False)
    user.otp_code = "123456"
    user.otp_expires_at = utc_now() - timedelta(minutes=1)
    db.commit()

    response = client.post("/api/auth/verify-otp", json={"email": user.email, "otp": "123456"})
    assert response.status_code == 400
    assert response.json()["message"] == "OTP has expired"


def test_password_reset(client, services, db):
    user = make_user(db)
    assert client.post("/api/auth/forgot-password", json={"email": user.email}).status_code == 200
    otp = services.sms.sent[-1][2]

    response = client.post(
        "/api/auth/reset-password",
        json={"email": user.email, "otp": otp, "new_password": "brandnew1"},
    )
    assert response.status_code == 200

    login = client.post("/api/auth/login", json={"email": user.email, "password": "brandnew1"})
    assert login.status_code == 200


def test_unknown_email_is_not_found(client):
    response = client.post("/api/auth/resend-otp", json={"email": "nobody@dispatch.org"})
    assert response.status_code == 404


def test_profile_requires_token(client):
    response = client.get("/api/auth/profile")
    assert response.status_code == 401
    assert response.json() == {"success": False, "message": "Not authorized, no token"}


def test_profile_update(client, db):
    user = make_user(db)
    other = make_user(db, UserRole.DRIVER)

    taken = client.put("/api/auth/profile", json={"email": other.email}, headers=auth_headers(user))
    assert taken.status_code == 409

    response = client.put(
        "/api/auth/profile",
        json={"name": "Renamed", "address": {"city": "Lilongwe"}, "health_info": {"blood_type": "O+"}},
        headers=auth_headers(user),
    )
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["name"] == "Renamed"
    assert data["address"]["city"] == "Lilongwe"
    assert data["health_info"]["blood_type"] == "O+"
