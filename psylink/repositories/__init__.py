"""Repositories typés : un contrat étroit par entité."""

from psylink.repositories.actor_repository import ActorRepository, normalize_email
from psylink.repositories.association_repository import AssociationRepository
from psylink.repositories.invitation_repository import InvitationRepository
from psylink.repositories.license_repository import LicenseRepository

__all__ = [
    "ActorRepository",
    "AssociationRepository",
    "InvitationRepository",
    "LicenseRepository",
    "normalize_email",
]
