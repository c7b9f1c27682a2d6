import pytest

from app.database import commit_or_conflict
from app.models.all_models import Ambulance, AmbulanceStatus
from app.utils.errors import Conflict

from conftest import make_ambulance


def test_duplicate_insert_becomes_conflict_and_session_recovers(db):
    existing = make_ambulance(db)
    db.add(Ambulance(
        registration_number=existing.registration_number,
        status=AmbulanceStatus.OFFLINE,
        current_lat=-15.79,
        current_lng=35.01,
    ))

    with pytest.raises(Conflict, match="Registration taken"):
        commit_or_conflict(db, duplicate="Registration taken")

    assert db.query(Ambulance).count() == 1
    make_ambulance(db)
    assert db.query(Ambulance).count() == 2
