"""
Cliente de Supabase.

Singleton para conexión a la base de datos.
"""

from functools import lru_cache

import structlog
from supabase import create_client, Client
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from permuta.config import get_settings
from permuta.errors import PersistenceError

logger = structlog.get_logger()


class SupabaseClient:
    """Wrapper del cliente de Supabase con métodos de utilidad."""

    def __init__(self, client: Client):
        self._client = client

    @property
    def client(self) -> Client:
        """Acceso directo al cliente de Supabase."""
        return self._client

    def table(self, name: str):
        """Acceso a una tabla específica."""
        return self._client.table(name)

    def execute(self, query, operation: str) -> list:
        """
        Ejecuta un query builder y devuelve sus filas.

        Args:
            query: Query armado con table(...).select/insert/update/delete
            operation: Nombre de la operación para logs y errores

        Returns:
            Lista de filas devueltas por PostgREST

        Raises:
            PersistenceError: Si Supabase responde con error
        """
        try:
            response = query.execute()
        except Exception as e:
            logger.error(
                "Error ejecutando query",
                operation=operation,
                error=str(e),
            )
            raise PersistenceError(operation, str(e)) from e
        return response.data or []

    @retry(
        retry=retry_if_exception_type(PersistenceError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def fetch(self, query, operation: str) -> list:
        """
        Igual que execute, con reintentos. Solo para lecturas: una
        escritura reintentada podría duplicar filas.
        """
        return self.execute(query, operation)


@lru_cache
def get_supabase_client() -> SupabaseClient:
    """
    Obtiene el cliente de Supabase (singleton cacheado).

    Returns:
        SupabaseClient configurado

    Raises:
        ValueError: Si las credenciales no están configuradas
    """
    settings = get_settings()

    if not settings.supabase_url or not settings.supabase_key:
        raise ValueError(
            "SUPABASE_URL y SUPABASE_KEY son requeridos. "
            "Configura las variables de entorno."
        )

    # Usar service key si está disponible: el motor escribe matches de varios usuarios
    key = settings.supabase_service_key or settings.supabase_key

    client = create_client(settings.supabase_url, key)
    logger.info("Cliente de Supabase inicializado", url=settings.supabase_url)

    return SupabaseClient(client)
