"""
Módulo de base de datos.

Provee acceso a Supabase y operaciones CRUD.
"""

from permuta.database.supabase_client import get_supabase_client, SupabaseClient
from permuta.database.repositories import (
    TransferRequestRepository,
    MatchRepository,
    ParticipantRepository,
    UserRepository,
    NotificationRepository,
)

__all__ = [
    "get_supabase_client",
    "SupabaseClient",
    "TransferRequestRepository",
    "MatchRepository",
    "ParticipantRepository",
    "UserRepository",
    "NotificationRepository",
]
