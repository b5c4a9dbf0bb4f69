"""
Alembic Environment Configuration - PsyLink

Ce fichier configure Alembic pour :
1. Charger l'URL de la base depuis psylink/core/config.py (qui lit le .env)
2. Importer tous les modèles SQLAlchemy pour la détection automatique
3. Supporter les migrations online (base connectée) et offline (génération SQL)
"""

from logging.config import fileConfig

from sqlalchemy import create_engine, pool

from alembic import context

# === Import de la configuration PsyLink ===
from psylink.core.config import settings

# === Import de la Base et des modèles ===
# Cet import charge tous les modèles pour que Alembic détecte les tables
from psylink.database.base import Base

# Configuration Alembic depuis alembic.ini
config = context.config

# Configuration du logging depuis alembic.ini
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# Métadonnées des modèles pour autogenerate
target_metadata = Base.metadata


# === Helpers ===

def get_url() -> str:
    """Retourne l'URL de la base de données depuis les settings."""
    return settings.DATABASE_URL


def run_migrations_offline() -> None:
    """
    Exécute les migrations en mode 'offline' (génération SQL).

    Usage:
        alembic upgrade head --sql > migration.sql
    """
    context.configure(
        url=get_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
        compare_server_default=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """
    Exécute les migrations en mode 'online'.

    Usage:
        alembic upgrade head
    """
    connectable = create_engine(
        get_url(),
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            compare_server_default=True,
            # SQLite ne supporte pas ALTER TABLE : mode batch
            render_as_batch=connection.dialect.name == "sqlite",
        )

        with context.begin_transaction():
            context.run_migrations()


# === Point d'entrée ===

if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
