"""
Repositorios para operaciones CRUD en Supabase.

Cada repositorio maneja una tabla/entidad específica. Toda falla de
Supabase se propaga como PersistenceError.
"""

from datetime import datetime
from typing import Iterable, Optional

import structlog

from permuta.database.supabase_client import get_supabase_client, SupabaseClient
from permuta.errors import PersistenceError
from permuta.models import (
    Match,
    MatchParticipant,
    MatchStatus,
    RequestStatus,
    ResponseStatus,
)

logger = structlog.get_logger()

# Escuela actual -> división -> zona -> distrito -> provincia
_REQUEST_COLUMNS = """
    id,
    user_id,
    current_school_id,
    appointment_category_id,
    medium_of_instruction,
    geographic_flexibility,
    urgency_level,
    status,
    expires_at,
    current_school:schools!current_school_id(
        id,
        division:divisions(
            zone:zones(
                district:districts(
                    id,
                    province:provinces(id)
                )
            )
        )
    )
"""


class BaseRepository:
    """Clase base para repositorios."""

    def __init__(self, client: Optional[SupabaseClient] = None):
        self._client = client or get_supabase_client()

    @property
    def client(self) -> SupabaseClient:
        return self._client


class TransferRequestRepository(BaseRepository):
    """Repositorio para solicitudes de traslado y sus tablas hijas."""

    TABLE = "transfer_requests"
    PREFERENCES_TABLE = "transfer_request_preferences"
    SUBJECTS_TABLE = "transfer_request_subjects"

    def get_submitted(self, now: datetime) -> list[dict]:
        """
        Obtiene solicitudes enviadas y no vencidas, con su cadena geográfica.

        Ordenadas por fecha de envío para que la corrida sea determinista.
        """
        query = (
            self.client.table(self.TABLE)
            .select(_REQUEST_COLUMNS)
            .eq("status", RequestStatus.SUBMITTED.value)
            .gt("expires_at", now.isoformat())
            .order("submitted_at")
            .order("id")
        )
        return self.client.fetch(query, "transfer_requests.get_submitted")

    def get_preferences(self, request_ids: list[str]) -> list[dict]:
        """Escuelas preferidas con su ranking."""
        if not request_ids:
            return []
        query = (
            self.client.table(self.PREFERENCES_TABLE)
            .select("transfer_request_id, preferred_school_id, preference_rank")
            .in_("transfer_request_id", request_ids)
        )
        return self.client.fetch(query, "transfer_request_preferences.get")

    def get_subjects(self, request_ids: list[str]) -> list[dict]:
        """Materias de cada solicitud."""
        if not request_ids:
            return []
        query = (
            self.client.table(self.SUBJECTS_TABLE)
            .select("transfer_request_id, subject_id")
            .in_("transfer_request_id", request_ids)
        )
        return self.client.fetch(query, "transfer_request_subjects.get")

    def update_status(self, request_ids: list[str], status: RequestStatus) -> list[dict]:
        """Actualiza el estado de varias solicitudes."""
        if not request_ids:
            return []
        query = (
            self.client.table(self.TABLE)
            .update({"status": status.value})
            .in_("id", request_ids)
        )
        rows = self.client.execute(query, "transfer_requests.update_status")
        logger.info(
            "Estado de solicitudes actualizado",
            request_ids=request_ids,
            status=status.value,
        )
        return rows


class MatchRepository(BaseRepository):
    """Repositorio para matches (transfer_matches)."""

    TABLE = "transfer_matches"

    def create(self, match: Match) -> dict:
        """
        Inserta un nuevo match.

        Returns:
            El registro insertado con su ID
        """
        query = self.client.table(self.TABLE).insert(match.to_db_dict())
        rows = self.client.execute(query, "transfer_matches.create")
        if not rows:
            raise PersistenceError("transfer_matches.create", "la inserción no devolvió filas")
        return rows[0]

    def delete(self, match_id: str) -> None:
        """Borra un match (compensación de una creación fallida)."""
        query = self.client.table(self.TABLE).delete().eq("id", match_id)
        self.client.execute(query, "transfer_matches.delete")

    def get_by_id(self, match_id: str) -> Optional[dict]:
        """Obtiene un match por su UUID."""
        query = (
            self.client.table(self.TABLE)
            .select("*")
            .eq("id", match_id)
            .limit(1)
        )
        rows = self.client.fetch(query, "transfer_matches.get_by_id")
        return rows[0] if rows else None

    def get_by_ids(
        self,
        match_ids: list[str],
        statuses: Optional[Iterable[MatchStatus]] = None,
    ) -> list[dict]:
        """Obtiene matches por ID, opcionalmente filtrando por estado."""
        if not match_ids:
            return []
        query = self.client.table(self.TABLE).select("*").in_("id", match_ids)
        if statuses is not None:
            query = query.in_("status", [s.value for s in statuses])
        query = query.order("created_at", desc=True)
        return self.client.fetch(query, "transfer_matches.get_by_ids")

    def update_status(
        self,
        match_id: str,
        status: MatchStatus,
        from_status: MatchStatus = MatchStatus.PENDING,
    ) -> Optional[dict]:
        """
        Cambia el estado solo si el match sigue en `from_status`.

        Returns:
            El registro actualizado, o None si el match ya no estaba en ese estado
        """
        from_status.ensure_transition(status)
        query = (
            self.client.table(self.TABLE)
            .update({"status": status.value})
            .eq("id", match_id)
            .eq("status", from_status.value)
        )
        rows = self.client.execute(query, "transfer_matches.update_status")
        return rows[0] if rows else None

    def expire_pending(self, now: datetime) -> list[dict]:
        """Pasa a expired todos los matches pendientes vencidos."""
        query = (
            self.client.table(self.TABLE)
            .update({"status": MatchStatus.EXPIRED.value})
            .eq("status", MatchStatus.PENDING.value)
            .lt("expires_at", now.isoformat())
        )
        return self.client.execute(query, "transfer_matches.expire_pending")


class ParticipantRepository(BaseRepository):
    """Repositorio para participantes de matches."""

    TABLE = "transfer_match_participants"

    def create_many(self, participants: list[MatchParticipant]) -> list[dict]:
        """Inserta todos los participantes de un match en un solo insert."""
        query = self.client.table(self.TABLE).insert(
            [p.to_db_dict() for p in participants]
        )
        return self.client.execute(query, "transfer_match_participants.create_many")

    def get_active_request_ids(self, request_ids: list[str]) -> set[str]:
        """IDs de solicitudes que ya participan de un match pendiente o aceptado."""
        if not request_ids:
            return set()
        query = (
            self.client.table(self.TABLE)
            .select("transfer_request_id, match:transfer_matches!match_id(status)")
            .in_("transfer_request_id", request_ids)
        )
        rows = self.client.fetch(query, "transfer_match_participants.get_active")

        active = set()
        for row in rows:
            match = row.get("match")
            if isinstance(match, list):
                match = match[0] if match else None
            status = (match or {}).get("status")
            if status in (MatchStatus.PENDING.value, MatchStatus.ACCEPTED.value):
                active.add(row["transfer_request_id"])
        return active

    def get_by_match(self, match_id: str) -> list[dict]:
        """Participantes de un match ordenados por swap_position."""
        query = (
            self.client.table(self.TABLE)
            .select("*")
            .eq("match_id", match_id)
            .order("swap_position")
        )
        return self.client.fetch(query, "transfer_match_participants.get_by_match")

    def get_by_match_with_users(self, match_id: str) -> list[dict]:
        """Participantes con los datos de perfil de cada usuario."""
        query = (
            self.client.table(self.TABLE)
            .select(
                "*, user:users(id, first_name, last_name, email, mobile, "
                "profile_image_url, profile_visible)"
            )
            .eq("match_id", match_id)
            .order("swap_position")
        )
        return self.client.fetch(
            query, "transfer_match_participants.get_by_match_with_users"
        )

    def get_by_user(
        self,
        user_id: str,
        response_status: Optional[ResponseStatus] = None,
    ) -> list[dict]:
        """Participaciones de un usuario."""
        query = self.client.table(self.TABLE).select("*").eq("user_id", user_id)
        if response_status is not None:
            query = query.eq("response_status", response_status.value)
        return self.client.fetch(query, "transfer_match_participants.get_by_user")

    def update_response(
        self,
        match_id: str,
        user_id: str,
        response_status: ResponseStatus,
        responded_at: datetime,
    ) -> Optional[dict]:
        """Registra la respuesta de un participante."""
        query = (
            self.client.table(self.TABLE)
            .update({
                "response_status": response_status.value,
                "responded_at": responded_at.isoformat(),
            })
            .eq("match_id", match_id)
            .eq("user_id", user_id)
        )
        rows = self.client.execute(query, "transfer_match_participants.update_response")
        return rows[0] if rows else None


class UserRepository(BaseRepository):
    """Repositorio de usuarios (solo lectura desde el motor)."""

    TABLE = "users"

    def get_display_names(self, user_ids: list[str]) -> list[dict]:
        """Campos mínimos para armar notificaciones."""
        if not user_ids:
            return []
        query = (
            self.client.table(self.TABLE)
            .select("id, first_name, last_name")
            .in_("id", user_ids)
        )
        return self.client.fetch(query, "users.get_display_names")


class NotificationRepository(BaseRepository):
    """Repositorio para notificaciones in-app."""

    TABLE = "notifications"

    def create_bulk(self, notifications: list[dict]) -> list[dict]:
        """Inserta varias notificaciones en un solo insert."""
        if not notifications:
            return []
        query = self.client.table(self.TABLE).insert(notifications)
        rows = self.client.execute(query, "notifications.create_bulk")
        logger.info("Notificaciones creadas", count=len(rows))
        return rows

