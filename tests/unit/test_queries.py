"""
Consultas de matches por usuario y enmascarado de perfiles privados.
"""

import pytest
import pytest_asyncio

from permuta.errors import NotParticipantError
from permuta.matching import MatchQueryService
from permuta.matching.queries import mask_private_profiles
from permuta.models import MatchStatus


@pytest.fixture
def queries(repos):
    return MatchQueryService(match_repo=repos["matches"], participant_repo=repos["participants"])


@pytest_asyncio.fixture
async def pair_match(db, engine, now):
    db.add_request("r1", "u1", 1, [2], ["math"])
    db.add_request("r2", "u2", 2, [1], ["math"])
    await engine.run_matching_algorithm(now)
    (match_id,) = db.matches
    return match_id


def test_mask_hides_contact_of_private_profiles():
    participants = [
        {"user_id": "u1", "user": {"mobile": "1", "profile_image_url": "a", "profile_visible": False}},
        {"user_id": "u2", "user": {"mobile": "2", "profile_image_url": "b", "profile_visible": False}},
        {"user_id": "u3", "user": {"mobile": "3", "profile_image_url": "c", "profile_visible": True}},
    ]
    masked = mask_private_profiles(participants, viewer_id="u1")

    assert masked[0]["user"]["mobile"] == "1"
    assert masked[1]["user"]["mobile"] is None
    assert masked[1]["user"]["profile_image_url"] is None
    assert masked[2]["user"]["mobile"] == "3"
    # la entrada original no se modifica
    assert participants[1]["user"]["mobile"] == "2"


@pytest.mark.asyncio
async def test_counts_follow_responses(queries, responses, pair_match, now):
    assert queries.pending_count("u1") == 1
    assert queries.accepted_count("u1") == 0

    await responses.accept(pair_match, "u1", now)
    assert queries.pending_count("u1") == 0
    assert queries.pending_count("u2") == 1

    await responses.accept(pair_match, "u2", now)
    assert queries.pending_count("u2") == 0
    assert queries.accepted_count("u1") == 1


@pytest.mark.asyncio
async def test_list_for_user_filters_by_status(queries, pair_match):
    assert [m.id for m in queries.list_for_user("u1")] == [pair_match]
    assert queries.list_for_user("u1", statuses=[MatchStatus.REJECTED]) == []
    assert queries.list_for_user("nobody") == []


@pytest.mark.asyncio
async def test_get_participants_masks_private_profiles(db, queries, pair_match):
    db.users["u2"]["profile_visible"] = False

    participants = queries.get_participants(pair_match, "u1")

    assert [p["swap_position"] for p in participants] == [1, 2]
    assert participants[1]["user"]["mobile"] is None
    assert participants[0]["user"]["mobile"] == "0771234567"


@pytest.mark.asyncio
async def test_get_participants_rejects_outsiders(queries, pair_match):
    with pytest.raises(NotParticipantError):
        queries.get_participants(pair_match, "intruder")
