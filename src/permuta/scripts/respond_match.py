"""
Script administrativo para responder un match en nombre de un participante.

Uso:
    python -m permuta.scripts.respond_match --match-id <uuid> --user-id <uuid> --action accept
    python -m permuta.scripts.respond_match --match-id <uuid> --user-id <uuid> --action reject
"""

import argparse
import asyncio
import sys

import structlog

from permuta.config import get_settings
from permuta.errors import MatchNotFoundError, StateConflictError
from permuta.log import configure_logging
from permuta.matching import MatchResponseService

settings = get_settings()
configure_logging(settings.log_level)

logger = structlog.get_logger()


async def respond(match_id: str, user_id: str, action: str):
    service = MatchResponseService()
    if action == "accept":
        return await service.accept(match_id, user_id)
    return await service.reject(match_id, user_id)


def main():
    """Entry point del script."""
    parser = argparse.ArgumentParser(description="Responder un match")
    parser.add_argument("--match-id", required=True, help="UUID del match")
    parser.add_argument("--user-id", required=True, help="UUID del participante")
    parser.add_argument("--action", required=True, choices=["accept", "reject"])
    args = parser.parse_args()

    try:
        participant = asyncio.run(respond(args.match_id, args.user_id, args.action))
        logger.info(
            "Respuesta registrada",
            match_id=args.match_id,
            user_id=args.user_id,
            response=participant.response_status.value,
        )
        sys.exit(0)
    except (MatchNotFoundError, StateConflictError) as e:
        logger.warning("Respuesta rechazada", error=str(e))
        sys.exit(2)
    except Exception as e:
        logger.error("Error registrando respuesta", error=str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
