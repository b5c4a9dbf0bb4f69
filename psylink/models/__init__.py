"""
Modèles SQLAlchemy PsyLink.

Usage:
    from psylink.models import Association, CompanyLicense
"""

from psylink.models.enums import (
    ActorRole,
    RelationKind,
    AssociationStatus,
    AssociationSide,
    InvitationStatus,
    LicenseStatus,
    PaymentStatus,
)
from psylink.models.mixins import TimestampMixin, VersionedMixin
from psylink.models.actors import Psychologist, Company, Patient
from psylink.models.license import LicensePlan, CompanyLicense
from psylink.models.association import Association
from psylink.models.invitation import Invitation

__all__ = [
    # Enums
    "ActorRole",
    "RelationKind",
    "AssociationStatus",
    "AssociationSide",
    "InvitationStatus",
    "LicenseStatus",
    "PaymentStatus",
    # Mixins
    "TimestampMixin",
    "VersionedMixin",
    # Acteurs
    "Psychologist",
    "Company",
    "Patient",
    # Licences
    "LicensePlan",
    "CompanyLicense",
    # Relations
    "Association",
    "Invitation",
]
