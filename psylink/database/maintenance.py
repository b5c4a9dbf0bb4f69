"""
Tâches de maintenance de la base PsyLink (hors requêtes HTTP).

Usage:
    python -m psylink.database.maintenance expire-invitations

Destiné à un planificateur externe (cron, job Kubernetes) : le moteur
n'exécute aucun balayage de lui-même.
"""
import argparse
import logging
import sys
from datetime import datetime
from typing import Optional

from psylink.core.logging_config import configure_logging
from psylink.database.session import check_database_connection, db_session
from psylink.services.invitation_service import InvitationService

logger = logging.getLogger(__name__)


def expire_invitations(now: Optional[datetime] = None) -> Optional[int]:
    """
    Passe en EXPIRED les invitations dont la validité est dépassée.

    Returns:
        Nombre d'invitations expirées, None si la base est injoignable
    """
    logger.info("📡 Vérification de la connexion à la base...")
    if not check_database_connection():
        logger.error("❌ Base de données injoignable, balayage annulé")
        return None

    with db_session() as db:
        expired = InvitationService(db).expire_stale(now)

    logger.info(f"✅ Balayage terminé : {expired} invitation(s) expirée(s)")
    return expired


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Maintenance de la base PsyLink")
    parser.add_argument(
        "task",
        choices=["expire-invitations"],
        help="Tâche à exécuter",
    )
    args = parser.parse_args(argv)

    configure_logging()
    if args.task == "expire-invitations":
        return 0 if expire_invitations() is not None else 1
    return 1


if __name__ == "__main__":
    sys.exit(main())
