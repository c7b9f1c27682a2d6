import itertools
import os
import time

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENVIRONMENT", "test")

import pytest
from fastapi.testclient import TestClient

from app.database import create_db_engine, create_session_factory, init_db
from app.models.all_models import (
    Ambulance, AmbulanceStatus, Emergency, EmergencyStatus, Hospital, Severity, User, UserRole,
)
from app.services.container import Services
from app.services.sms import SmsReceipt
from app.utils.auth import create_access_token, hash_password
from main import create_app

PASSWORD = "Secret123!"
PASSWORD_HASH = hash_password(PASSWORD)

_seq = itertools.count(1)


class FakeMaps:
    def __init__(self):
        self.route = {
            "distance": {"text": "2.1 km", "value": 2100},
            "duration": {"text": "6 mins", "value": 360},
            "duration_in_traffic": None,
            "polyline": "abc123",
        }
        self.places = []
        self.fail = False
        self.calls = []
        self.delay = 0

    def calculate_route(self, origin, destination):
        self.calls.append(("route", origin, destination))
        if self.fail:
            raise RuntimeError("maps unavailable")
        return dict(self.route)

    def nearby_hospitals(self, location, radius=5000):
        self.calls.append(("nearby", location, radius))
        if self.delay:
            time.sleep(self.delay)
        if self.fail:
            raise RuntimeError("maps unavailable")
        return list(self.places)

    def close(self):
        pass


class FakeSms:
    def __init__(self):
        self.sent = []
        self.fail = False

    def _record(self, kind, to, *args):
        if self.fail:
            raise RuntimeError("sms provider down")
        self.sent.append((kind, to) + args)
        return SmsReceipt(sid=f"TEST_{len(self.sent)}", mock=True)

    def send_otp(self, phone, otp, expires_minutes=10):
        return self._record("otp", phone, otp)

    def send_emergency_confirmation(self, phone, registration_number, eta):
        return self._record("confirmation", phone, registration_number, eta)

    def notify_driver(self, phone, severity, address):
        return self._record("driver", phone, severity, address)

    def close(self):
        pass


class RecordingRealtime:
    """Stands in for ConnectionManager where tests only care what was emitted."""

    def __init__(self):
        self.events = []

    def emit(self, event, data, room=None, exclude=None):
        self.events.append((event, data, room))

    def names(self):
        return [event for event, _, _ in self.events]

    def bind_loop(self, loop):
        pass

    async def close(self):
        pass


@pytest.fixture
def services():
    engine = create_db_engine("sqlite://")
    init_db(engine)
    handles = Services(
        engine=engine,
        session_factory=create_session_factory(engine),
        maps=FakeMaps(),
        sms=FakeSms(),
        realtime=RecordingRealtime(),
    )
    yield handles
    engine.dispose()


@pytest.fixture
def db(services):
    session = services.session_factory()
    yield session
    session.close()


@pytest.fixture
def client(services):
    app = create_app(services=services)
    with TestClient(app) as test_client:
        yield test_client


def auth_headers(user):
    return {"Authorization": f"Bearer {create_access_token({'sub': str(user.id)})}"}

# ================================
# FACTORIES
# ================================

def make_user(db, role=UserRole.USER, verified=True, name=None):
    n = next(_seq)
    user = User(
        name=name or f"{role.value.title()} {n}",
        email=f"{role.value}{n}@dispatch.org",
        phone=f"+26599{n:07d}",
        password=PASSWORD_HASH,
        role=role,
        is_verified=verified,
    )
    db.add(user)
    db.commit()
    return user


def make_hospital(db, total=5, available=5, admins=(), name=None, lat=-15.78, lng=35.0, **kwargs):
    n = next(_seq)
    hospital = Hospital(
        name=name or f"General Hospital {n}",
        email=f"hospital{n}@dispatch.org",
        phone=f"+26511{n:07d}",
        address={"street": f"{n} Main Rd", "city": "Blantyre", "state": "South", "zip_code": "0000", "country": "MW"},
        latitude=lat,
        longitude=lng,
        capacity_total=total,
        capacity_available=available,
        specialties=kwargs.pop("specialties", ["emergency"]),
        **kwargs,
    )
    hospital.administrators = list(admins)
    db.add(hospital)
    db.commit()
    return hospital


def make_ambulance(db, driver=None, hospital=None, status=AmbulanceStatus.AVAILABLE, lat=-15.79, lng=35.01, **kwargs):
    n = next(_seq)
    ambulance = Ambulance(
        registration_number=f"AMB-{n:04d}",
        driver=driver,
        hospital=hospital,
        status=status,
        current_lat=lat,
        current_lng=lng,
        **kwargs,
    )
    db.add(ambulance)
    db.commit()
    return ambulance


def make_emergency(db, patient, status=EmergencyStatus.PENDING, ambulance=None, hospital=None, requested_by=None):
    emergency = Emergency(
        patient=patient,
        requested_by=requested_by or patient,
        severity=Severity.HIGH,
        status=status,
        pickup_address="12 Chipembere Hwy",
        pickup_lat=-15.80,
        pickup_lng=35.02,
        ambulance=ambulance,
        hospital=hospital,
    )
    emergency.record(EmergencyStatus.PENDING, "test")
    db.add(emergency)
    db.commit()
    if ambulance is not None and ambulance.status == AmbulanceStatus.BUSY:
        ambulance.active_emergency_id = emergency.id
        db.commit()
    return emergency
