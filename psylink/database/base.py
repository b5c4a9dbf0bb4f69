"""
Base de données SQLAlchemy - Configuration centrale
Importe tous les modèles pour que SQLAlchemy connaisse toutes les relations
"""
from psylink.database.base_class import Base

# IMPORTANT : tous les modèles doivent être importés ici pour que
# Alembic et create_all() voient l'ensemble des tables
from psylink.models import (  # noqa: F401
    Psychologist,
    Company,
    Patient,
    Association,
    Invitation,
    LicensePlan,
    CompanyLicense,
)

metadata = Base.metadata


def get_table_names() -> list[str]:
    """Retourne la liste des noms de toutes les tables."""
    return list(metadata.tables.keys())
