"""
Excepciones del dominio.

Los descartes de candidatos (gates de validación, score bajo umbral)
no son errores: el scorer los informa como motivo de rechazo.
"""


class PermutaError(Exception):
    """Error base del sistema."""


class PersistenceError(PermutaError):
    """Falló una llamada a Supabase."""

    def __init__(self, operation: str, message: str):
        self.operation = operation
        super().__init__(f"{operation}: {message}")


class MatchNotFoundError(PermutaError):
    """El match solicitado no existe."""

    def __init__(self, match_id: str):
        self.match_id = match_id
        super().__init__(f"Match no encontrado: {match_id}")


class StateConflictError(PermutaError):
    """La operación no es válida para el estado actual del match."""


class InvalidTransitionError(StateConflictError):
    """Transición de estado no permitida por la tabla de transiciones."""

    def __init__(self, entity: str, current: str, target: str):
        self.entity = entity
        self.current = current
        self.target = target
        super().__init__(f"{entity}: transición {current} -> {target} no permitida")


class NotParticipantError(StateConflictError):
    """El usuario no participa del match."""

    def __init__(self, match_id: str, user_id: str):
        self.match_id = match_id
        self.user_id = user_id
        super().__init__(f"El usuario {user_id} no participa del match {match_id}")
