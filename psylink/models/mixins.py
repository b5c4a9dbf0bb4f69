"""
Mixins réutilisables pour les modèles SQLAlchemy.

Ce module définit des mixins qui ajoutent des fonctionnalités communes
à plusieurs modèles (timestamps, versioning).
"""

from datetime import datetime, timezone

from sqlalchemy import DateTime, Integer
from sqlalchemy.orm import Mapped, mapped_column


def utcnow() -> datetime:
    """Horodatage UTC courant (timezone-aware)."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Rend un datetime timezone-aware (SQLite relit des datetimes naïfs)."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class TimestampMixin:
    """
    Mixin ajoutant les colonnes created_at et updated_at.

    - created_at : auto-rempli à la création
    - updated_at : auto-mis à jour à chaque modification ORM
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        doc="Date et heure de création",
        info={"description": "Timestamp de création", "auto_generated": True}
    )

    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        default=None,
        onupdate=utcnow,
        doc="Date et heure de dernière modification",
        info={"description": "Timestamp de mise à jour", "auto_generated": True}
    )


class VersionedMixin:
    """
    Mixin ajoutant une colonne de version pour la concurrence optimiste.

    La colonne `version` est incrémentée par chaque UPDATE conditionnel
    sur les compteurs ; elle permet de détecter une écriture concurrente.
    """

    version: Mapped[int] = mapped_column(
        Integer,
        default=1,
        nullable=False,
        doc="Version pour verrouillage optimiste",
        info={"description": "Incrémenté à chaque modification", "auto_generated": True}
    )
