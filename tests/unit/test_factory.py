"""
Saga de creación de matches: inserción, compensación y notificación
best-effort.
"""

from datetime import timedelta

import pytest
from structlog.testing import capture_logs

from permuta.matching.allocator import allocate
from permuta.models import MatchStatus, MatchType


# ─── Helpers ─────────────────────────────────────────────────────────────────

def _pair_group(make_request):
    pool = [
        make_request("r1", 1, [2], user_id="u1"),
        make_request("r2", 2, [1], user_id="u2"),
    ]
    (group,) = allocate(pool).groups
    return group


def _seed_users(db):
    db.users["u1"] = {"id": "u1", "first_name": "Nimal", "last_name": "Perera"}
    db.users["u2"] = {"id": "u2", "first_name": "Kamala", "last_name": "Silva"}


# ─── Tests ───────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_create_persists_match_and_participants(db, factory, make_request, now):
    _seed_users(db)
    created = await factory.create(_pair_group(make_request), now)

    assert created is not None
    assert created.match.status is MatchStatus.PENDING
    assert created.match.match_type is MatchType.TWO_WAY
    assert created.match.match_algorithm_version == "v1.0"
    assert created.match.expires_at == now + timedelta(days=7)

    rows = db.participants_of(created.match.id)
    assert [(p["transfer_request_id"], p["swap_position"]) for p in rows] == [("r1", 1), ("r2", 2)]
    assert all(p["response_status"] == "pending" for p in rows)


@pytest.mark.asyncio
async def test_create_notifies_each_participant_about_the_others(db, factory, make_request, now):
    _seed_users(db)
    created = await factory.create(_pair_group(make_request), now)

    by_user = {n["user_id"]: n for n in db.notifications}
    assert set(by_user) == {"u1", "u2"}
    assert "Kamala Silva" in by_user["u1"]["body"]
    assert "Nimal Perera" in by_user["u2"]["body"]
    assert by_user["u1"]["related_entity_id"] == created.match.id
    assert by_user["u1"]["type"] == "match_created"


@pytest.mark.asyncio
async def test_participant_failure_rolls_back_match(db, factory, make_request, now):
    db.failures.add("transfer_match_participants.create_many")
    created = await factory.create(_pair_group(make_request), now)

    assert created is None
    assert db.matches == {}
    assert db.participants == []
    assert db.notifications == []


@pytest.mark.asyncio
async def test_match_insert_failure_drops_group(db, factory, make_request, now):
    db.failures.add("transfer_matches.create")
    assert await factory.create(_pair_group(make_request), now) is None
    assert db.matches == {}
    assert db.participants == []


@pytest.mark.asyncio
async def test_notification_failure_keeps_match(db, factory, make_request, now):
    _seed_users(db)
    db.failures.add("notifications.create_bulk")
    created = await factory.create(_pair_group(make_request), now)

    assert created is not None
    assert created.match.id in db.matches
    assert len(db.participants_of(created.match.id)) == 2


@pytest.mark.asyncio
async def test_user_lookup_failure_keeps_match(db, factory, make_request, now):
    db.failures.add("users.get_display_names")
    created = await factory.create(_pair_group(make_request), now)
    assert created is not None
    assert db.notifications == []


@pytest.mark.asyncio
async def test_rollback_retries_transient_delete_failure(db, factory, make_request, now):
    db.failures.add("transfer_match_participants.create_many")
    db.fail_once.add("transfer_matches.delete")

    assert await factory.create(_pair_group(make_request), now) is None
    assert db.matches == {}


@pytest.mark.asyncio
async def test_failed_rollback_logs_orphan_match(db, factory, make_request, now):
    db.failures.update({"transfer_match_participants.create_many", "transfer_matches.delete"})

    with capture_logs() as logs:
        assert await factory.create(_pair_group(make_request), now) is None

    (orphan_id,) = db.matches
    orphans = [entry for entry in logs if entry.get("orphan_match")]
    assert len(orphans) == 1
    assert orphans[0]["log_level"] == "error"
    assert orphans[0]["match_id"] == orphan_id
