"""
Configuration de la session SQLAlchemy
Fournit l'engine, la factory de sessions, et la dependency FastAPI
"""
import logging
from typing import Any, Dict, Generator, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker, Session

from psylink.core.config import settings

logger = logging.getLogger(__name__)


# === 1. ENGINE ===

def _engine_kwargs(url: str) -> Dict[str, Any]:
    """Options de l'engine selon le dialecte (pool PostgreSQL, thread SQLite)."""
    kwargs: Dict[str, Any] = {
        "echo": settings.DEBUG and settings.is_development,
        "pool_pre_ping": True,
    }
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
    elif url.startswith("postgresql"):
        kwargs.update(
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            pool_timeout=30,
            pool_recycle=1800,
            connect_args={
                "application_name": "psylink",
                "options": "-c timezone=UTC",
            },
        )
    return kwargs


engine = create_engine(settings.DATABASE_URL, **_engine_kwargs(settings.DATABASE_URL))


# === 2. SESSION LOCAL ===

SessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,         # Pas de commit automatique (on contrôle explicitement)
    autoflush=False,          # Pas de flush automatique (meilleur contrôle)
    expire_on_commit=False,   # Garder les objets accessibles après commit
)


# === 3. DEPENDENCY FASTAPI ===

def get_db() -> Generator[Session, None, None]:
    """
    Fournit une session par requête HTTP.

    Les services commitent eux-mêmes chaque unité de travail ;
    la session est simplement fermée en fin de requête.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


class db_session:
    """
    Context manager pour utiliser une session hors FastAPI (scripts, balayages).

    Usage:
        with db_session() as db:
            InvitationService(db).expire_stale()
    """

    def __init__(self, commit_on_exit: bool = True):
        self.db: Optional[Session] = None
        self.commit_on_exit = commit_on_exit

    def __enter__(self) -> Session:
        self.db = SessionLocal()
        return self.db

    def __exit__(self, exc_type, exc_val, exc_tb):
        try:
            if exc_type is None and self.commit_on_exit:
                self.db.commit()
            else:
                self.db.rollback()
        finally:
            self.db.close()

        # Ne pas supprimer l'exception (la propager)
        return False


# === 4. VÉRIFICATION DE CONNEXION ===

def check_database_connection() -> bool:
    """
    Vérifie que la connexion à la base de données fonctionne.

    Returns:
        True si la connexion est OK, False sinon
    """
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"❌ Erreur de connexion à la base de données : {e}")
        return False
