"""
Script para el barrido horario de matches vencidos.

Uso:
    python -m permuta.scripts.run_expiration
"""

import asyncio
import sys

import structlog

from permuta.config import get_settings
from permuta.log import configure_logging
from permuta.matching import MatchingEngine

settings = get_settings()
configure_logging(settings.log_level)

logger = structlog.get_logger()


def main():
    """Entry point del script."""
    try:
        engine = MatchingEngine(settings=settings)
        expired = asyncio.run(engine.expire_old_matches())
        logger.info("Barrido de expiración completado", expired=expired)
        sys.exit(0)
    except Exception as e:
        logger.error("Error en barrido de expiración", error=str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
