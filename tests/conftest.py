"""
Fixtures compartidas: repositorios en memoria con la misma interfaz que
los repositorios de Supabase, y builders de solicitudes.
"""

import itertools
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from permuta.config import Settings
from permuta.errors import PersistenceError
from permuta.models import (
    LocationChain,
    MatchStatus,
    PreferredDestination,
    TransferRequest,
)

NOW = datetime(2026, 3, 1, 2, 0, tzinfo=timezone.utc)


def _parse(value: str) -> datetime:
    return datetime.fromisoformat(value)


# ─── Base de datos en memoria ────────────────────────────────────────────────

class FakeDatabase:
    """Tablas en memoria con fallas inyectables por nombre de operación."""

    def __init__(self):
        self.requests: dict[str, dict] = {}
        self.preferences: list[dict] = []
        self.subjects: list[dict] = []
        self.matches: dict[str, dict] = {}
        self.participants: list[dict] = []
        self.users: dict[str, dict] = {}
        self.notifications: list[dict] = []
        self.failures: set[str] = set()
        self.fail_once: set[str] = set()
        self._ids = itertools.count(1)

    def check(self, operation: str) -> None:
        if operation in self.fail_once:
            self.fail_once.discard(operation)
            raise PersistenceError(operation, "falla transitoria simulada")
        if operation in self.failures:
            raise PersistenceError(operation, "falla simulada")

    def next_id(self, prefix: str) -> str:
        return f"{prefix}-{next(self._ids)}"

    def add_request(
        self,
        request_id: str,
        user_id: str,
        school_id: int,
        preferred: list[int],
        subjects: list[str],
        district_id: Optional[int] = 10,
        province_id: Optional[int] = 1,
        category: int = 1,
        medium: str = "sinhala",
        urgency: str = "normal",
        flexibility: str = "district_only",
        status: str = "submitted",
        expires_at: Optional[datetime] = None,
    ) -> None:
        school = None
        if district_id is not None:
            school = {
                "id": school_id,
                "division": {
                    "zone": {
                        "district": {"id": district_id, "province": {"id": province_id}}
                    }
                },
            }
        self.requests[request_id] = {
            "id": request_id,
            "user_id": user_id,
            "current_school_id": school_id,
            "appointment_category_id": category,
            "medium_of_instruction": medium,
            "geographic_flexibility": flexibility,
            "urgency_level": urgency,
            "status": status,
            "expires_at": (expires_at or NOW + timedelta(days=90)).isoformat(),
            "current_school": school,
        }
        for rank, preferred_id in enumerate(preferred, start=1):
            self.preferences.append({
                "transfer_request_id": request_id,
                "preferred_school_id": preferred_id,
                "preference_rank": rank,
            })
        for subject in subjects:
            self.subjects.append({"transfer_request_id": request_id, "subject_id": subject})
        self.users.setdefault(
            user_id,
            {"id": user_id, "first_name": user_id.title(), "last_name": "Perera",
             "mobile": "0771234567", "profile_image_url": f"https://img/{user_id}",
             "profile_visible": True},
        )

    def participants_of(self, match_id: str) -> list[dict]:
        return sorted(
            (p for p in self.participants if p["match_id"] == match_id),
            key=lambda p: p["swap_position"],
        )


class FakeTransferRequestRepository:
    def __init__(self, db: FakeDatabase):
        self.db = db

    def get_submitted(self, now: datetime) -> list[dict]:
        self.db.check("transfer_requests.get_submitted")
        rows = [
            dict(r) for r in self.db.requests.values()
            if r["status"] == "submitted" and _parse(r["expires_at"]) > now
        ]
        return rows

    def get_preferences(self, request_ids: list[str]) -> list[dict]:
        self.db.check("transfer_request_preferences.get")
        return [dict(p) for p in self.db.preferences if p["transfer_request_id"] in request_ids]

    def get_subjects(self, request_ids: list[str]) -> list[dict]:
        self.db.check("transfer_request_subjects.get")
        return [dict(s) for s in self.db.subjects if s["transfer_request_id"] in request_ids]

    def update_status(self, request_ids: list[str], status) -> list[dict]:
        self.db.check("transfer_requests.update_status")
        for request_id in request_ids:
            self.db.requests[request_id]["status"] = status.value
        return [dict(self.db.requests[r]) for r in request_ids]


class FakeMatchRepository:
    def __init__(self, db: FakeDatabase):
        self.db = db

    def create(self, match) -> dict:
        self.db.check("transfer_matches.create")
        row = {**match.to_db_dict(), "id": self.db.next_id("match"),
               "created_at": NOW.isoformat()}
        self.db.matches[row["id"]] = row
        return dict(row)

    def delete(self, match_id: str) -> None:
        self.db.check("transfer_matches.delete")
        self.db.matches.pop(match_id, None)

    def get_by_id(self, match_id: str) -> Optional[dict]:
        self.db.check("transfer_matches.get_by_id")
        row = self.db.matches.get(match_id)
        return dict(row) if row else None

    def get_by_ids(self, match_ids, statuses=None) -> list[dict]:
        wanted = None if statuses is None else {s.value for s in statuses}
        return [
            dict(m) for m in self.db.matches.values()
            if m["id"] in match_ids and (wanted is None or m["status"] in wanted)
        ]

    def update_status(self, match_id, status, from_status=MatchStatus.PENDING):
        self.db.check("transfer_matches.update_status")
        from_status.ensure_transition(status)
        row = self.db.matches.get(match_id)
        if row is None or row["status"] != from_status.value:
            return None
        row["status"] = status.value
        return dict(row)

    def expire_pending(self, now: datetime) -> list[dict]:
        self.db.check("transfer_matches.expire_pending")
        expired = []
        for row in self.db.matches.values():
            if row["status"] == "pending" and _parse(row["expires_at"]) < now:
                row["status"] = "expired"
                expired.append(dict(row))
        return expired


class FakeParticipantRepository:
    def __init__(self, db: FakeDatabase):
        self.db = db

    def create_many(self, participants) -> list[dict]:
        self.db.check("transfer_match_participants.create_many")
        rows = []
        for participant in participants:
            row = {**participant.to_db_dict(), "id": self.db.next_id("participant")}
            self.db.participants.append(row)
            rows.append(dict(row))
        return rows

    def get_active_request_ids(self, request_ids: list[str]) -> set[str]:
        self.db.check("transfer_match_participants.get_active")
        return {
            p["transfer_request_id"] for p in self.db.participants
            if p["transfer_request_id"] in request_ids
            and self.db.matches.get(p["match_id"], {}).get("status") in ("pending", "accepted")
        }

    def get_by_match(self, match_id: str) -> list[dict]:
        return [dict(p) for p in self.db.participants_of(match_id)]

    def get_by_match_with_users(self, match_id: str) -> list[dict]:
        return [
            {**p, "user": dict(self.db.users[p["user_id"]])}
            for p in self.db.participants_of(match_id)
        ]

    def get_by_user(self, user_id: str, response_status=None) -> list[dict]:
        return [
            dict(p) for p in self.db.participants
            if p["user_id"] == user_id
            and (response_status is None or p["response_status"] == response_status.value)
        ]

    def update_response(self, match_id, user_id, response_status, responded_at):
        self.db.check("transfer_match_participants.update_response")
        for row in self.db.participants:
            if row["match_id"] == match_id and row["user_id"] == user_id:
                row["response_status"] = response_status.value
                row["responded_at"] = responded_at.isoformat()
                return dict(row)
        return None


class FakeUserRepository:
    def __init__(self, db: FakeDatabase):
        self.db = db

    def get_display_names(self, user_ids: list[str]) -> list[dict]:
        self.db.check("users.get_display_names")
        return [
            {k: self.db.users[u][k] for k in ("id", "first_name", "last_name")}
            for u in user_ids if u in self.db.users
        ]


class FakeNotificationRepository:
    def __init__(self, db: FakeDatabase):
        self.db = db

    def create_bulk(self, notifications: list[dict]) -> list[dict]:
        self.db.check("notifications.create_bulk")
        self.db.notifications.extend(notifications)
        return notifications


# ─── Fixtures ─────────────────────────────────────────────────────────────────

@pytest.fixture(autouse=True)
def supabase_env(monkeypatch):
    """Credenciales ficticias para que get_settings() no falle."""
    from permuta.config import get_settings

    monkeypatch.setenv("SUPABASE_URL", "http://localhost:54321")
    monkeypatch.setenv("SUPABASE_KEY", "test-anon-key")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def settings():
    return Settings(supabase_url="http://localhost:54321", supabase_key="test-anon-key")


@pytest.fixture
def db():
    return FakeDatabase()


@pytest.fixture
def repos(db):
    return {
        "requests": FakeTransferRequestRepository(db),
        "matches": FakeMatchRepository(db),
        "participants": FakeParticipantRepository(db),
        "users": FakeUserRepository(db),
        "notifications": FakeNotificationRepository(db),
    }


@pytest.fixture
def notifier(repos):
    from permuta.notifications import NotificationService

    return NotificationService(repository=repos["notifications"])


@pytest.fixture
def factory(repos, notifier, settings):
    from permuta.matching import MatchFactory

    return MatchFactory(
        match_repo=repos["matches"],
        participant_repo=repos["participants"],
        user_repo=repos["users"],
        notifier=notifier,
        settings=settings,
    )


@pytest.fixture
def engine(repos, factory, settings):
    from permuta.matching import EligibilityFilter, MatchingEngine

    eligibility = EligibilityFilter(
        request_repo=repos["requests"],
        participant_repo=repos["participants"],
    )
    return MatchingEngine(
        eligibility=eligibility,
        factory=factory,
        match_repo=repos["matches"],
        settings=settings,
    )


@pytest.fixture
def responses(repos, notifier):
    from permuta.matching import MatchResponseService

    return MatchResponseService(
        match_repo=repos["matches"],
        participant_repo=repos["participants"],
        request_repo=repos["requests"],
        user_repo=repos["users"],
        notifier=notifier,
    )


@pytest.fixture
def make_request():
    """Builder de TransferRequest ya enriquecidas para tests puros."""

    def _make(
        request_id: str,
        school_id: int,
        preferred: list[int],
        subjects: tuple[str, ...] = ("math",),
        user_id: Optional[str] = None,
        district_id: Optional[int] = 10,
        province_id: Optional[int] = 1,
        category: int = 1,
        medium: str = "sinhala",
        urgency: str = "normal",
        flexibility: str = "district_only",
    ) -> TransferRequest:
        return TransferRequest(
            id=request_id,
            user_id=user_id or f"user-{request_id}",
            current_school_id=school_id,
            appointment_category_id=category,
            medium_of_instruction=medium,
            preferred_schools=tuple(
                PreferredDestination(school_id=s, rank=rank)
                for rank, s in enumerate(preferred, start=1)
            ),
            subjects=frozenset(subjects),
            urgency_level=urgency,
            geographic_flexibility=flexibility,
            location=LocationChain(district_id=district_id, province_id=province_id),
        )

    return _make
