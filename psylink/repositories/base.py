"""
Socle des repositories : traduction des erreurs du stockage.

Les services ne manipulent jamais directement les exceptions SQLAlchemy :
- IntegrityError        → ConflictError (index d'unicité)
- autre SQLAlchemyError → ExternalServiceFailureError
La session est annulée (rollback) avant de propager l'erreur typée.
"""
import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from psylink.core.exceptions import ConflictError, ExternalServiceFailureError

logger = logging.getLogger(__name__)


class BaseRepository:
    """Repository typé au-dessus d'une session SQLAlchemy."""

    def __init__(self, db: Session):
        self.db = db

    @contextmanager
    def translate_errors(self, operation: str) -> Iterator[None]:
        """Context manager traduisant les erreurs SQLAlchemy en erreurs du moteur."""
        try:
            yield
        except IntegrityError as e:
            self.db.rollback()
            logger.info(f"⚠️ Conflit d'intégrité pendant {operation} : {e.orig}")
            raise ConflictError(f"Conflit pendant {operation}") from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Erreur du stockage pendant {operation} : {e}")
            raise ExternalServiceFailureError(f"Stockage indisponible pendant {operation}") from e

    def flush(self, operation: str) -> None:
        with self.translate_errors(operation):
            self.db.flush()

    def commit(self, operation: str) -> None:
        """Valide l'unité de travail courante."""
        with self.translate_errors(operation):
            self.db.commit()
