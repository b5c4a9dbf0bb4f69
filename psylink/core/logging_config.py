"""
Configuration du logging PsyLink.

Chaque module déclare son propre logger via logging.getLogger(__name__) ;
ce module configure une seule fois le format et le niveau global.
"""
import logging

from psylink.core.config import settings

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

_configured = False


def configure_logging(level: str | None = None) -> None:
    """
    Configure le logging racine de l'application.

    Args:
        level: Niveau de log (par défaut settings.LOG_LEVEL)
    """
    global _configured
    if _configured:
        return

    logging.basicConfig(
        level=getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO),
        format=LOG_FORMAT,
    )

    # SQLAlchemy est très bavard en DEBUG
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    _configured = True
