"""
Script para ejecutar la corrida diaria de matching.

Busca permutas entre las solicitudes enviadas, crea los matches y
después expira los matches pendientes vencidos.

El scheduler debe evitar corridas superpuestas de este script.

Uso:
    python -m permuta.scripts.run_matching
    python -m permuta.scripts.run_matching --skip-expiration
"""

import argparse
import asyncio
import sys

import structlog

from permuta.config import get_settings
from permuta.log import configure_logging
from permuta.matching import MatchingEngine

settings = get_settings()
configure_logging(settings.log_level)

logger = structlog.get_logger()


async def run_matching(skip_expiration: bool = False) -> dict:
    """Ejecuta la corrida de matching y el barrido de expiración."""
    engine = MatchingEngine(settings=settings)
    result = await engine.run_matching_algorithm()

    expired = 0
    if not skip_expiration:
        expired = await engine.expire_old_matches()

    return {**result.to_dict(), "expired": expired}


def main():
    """Entry point del script."""
    parser = argparse.ArgumentParser(description="Corrida de matching de permutas")
    parser.add_argument(
        "--skip-expiration",
        action="store_true",
        help="No expirar matches vencidos al terminar",
    )
    args = parser.parse_args()

    logger.info("Iniciando corrida de matching...")

    try:
        stats = asyncio.run(run_matching(skip_expiration=args.skip_expiration))

        logger.info(
            "Matching completado",
            matches=stats["matchesCreated"],
            requests=stats["requestsProcessed"],
            expired=stats["expired"],
        )
        sys.exit(0)

    except KeyboardInterrupt:
        logger.info("Matching interrumpido por usuario")
        sys.exit(130)
    except Exception as e:
        logger.error("Error fatal en matching", error=str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
