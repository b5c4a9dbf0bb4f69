"""
AssociationStore - Persistance des associations avec unicité à l'écriture.

L'unicité « au plus une association PENDING/ACTIVE par triplet » est
vérifiée avant l'écriture puis garantie par l'index partiel
uq_associations_open_triple : deux créations concurrentes ne peuvent
pas toutes deux réussir, la perdante reçoit ConflictError.
"""
import logging
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from psylink.core.context import RequestContext
from psylink.core.exceptions import ConflictError, InvalidTransitionError, NotFoundError
from psylink.models.association import Association
from psylink.models.enums import (
    AssociationSide,
    AssociationStatus,
    OPEN_ASSOCIATION_STATUSES,
    RelationKind,
)
from psylink.models.mixins import utcnow
from psylink.repositories.association_repository import AssociationRepository

logger = logging.getLogger(__name__)


class AssociationStore:
    """CRUD sur les associations."""

    def __init__(self, db: Session):
        self.db = db
        self.associations = AssociationRepository(db)

    # =========================================================================
    # LECTURE
    # =========================================================================

    def get(self, association_id: int) -> Association:
        association = self.associations.get(association_id)
        if association is None:
            raise NotFoundError(f"Association {association_id} non trouvée", association_id=association_id)
        return association

    def find_active_or_pending(
            self,
            subject_id: int,
            object_id: int,
            relation_kind: RelationKind,
    ) -> Optional[Association]:
        return self.associations.find_open(subject_id, object_id, relation_kind)

    def list_by_actor(
            self,
            ctx: RequestContext,
            relation_kind: Optional[RelationKind] = None,
            status_filter: Optional[Iterable[AssociationStatus]] = None,
            initiated_by: Optional[AssociationSide] = None,
    ) -> List[Association]:
        """Associations dont l'acteur du contexte est partie."""
        return self.associations.list_by_actor(
            ctx.actor_id,
            ctx.role,
            relation_kind=relation_kind,
            statuses=status_filter,
            initiated_by=initiated_by,
        )

    def list_pending_for_recipient(self, ctx: RequestContext) -> List[Association]:
        """Demandes en attente d'une réponse de l'acteur."""
        return self.associations.list_pending_for_recipient(ctx.actor_id, ctx.role)

    def count_pending_for_recipient(self, ctx: RequestContext) -> int:
        return self.associations.count_pending_for_recipient(ctx.actor_id, ctx.role)

    def list_derived(
            self,
            company_id: int,
            psychologist_id: Optional[int] = None,
            statuses: Iterable[AssociationStatus] = (AssociationStatus.ACTIVE,),
    ) -> List[Association]:
        return self.associations.list_derived(company_id, psychologist_id, statuses)

    # =========================================================================
    # ÉCRITURE
    # =========================================================================

    def create(
            self,
            subject_id: int,
            object_id: int,
            relation_kind: RelationKind,
            *,
            initiated_by: AssociationSide = AssociationSide.SUBJECT,
            status: AssociationStatus = AssociationStatus.PENDING,
            company_id: Optional[int] = None,
            license_id: Optional[int] = None,
    ) -> Association:
        """
        Crée une association, ou réutilise le dernier enregistrement terminal
        du même triplet.

        Args:
            status: PENDING (demande) ou ACTIVE (lien dérivé d'une cascade)

        Raises:
            ConflictError: une association PENDING/ACTIVE existe déjà
        """
        if status not in OPEN_ASSOCIATION_STATUSES:
            raise InvalidTransitionError(f"Création impossible au statut {status.value}")

        existing = self.associations.find_open(subject_id, object_id, relation_kind)
        if existing is not None:
            raise ConflictError(
                f"Association {existing.id} déjà {existing.status.value} "
                f"({relation_kind.value} {subject_id}→{object_id})",
                association_id=existing.id,
            )

        now = utcnow()
        terminal = self.associations.find_latest_terminal(subject_id, object_id, relation_kind)
        if terminal is not None:
            reopened = self.associations.reopen_terminal(
                terminal.id, initiated_by, status, company_id, license_id, now
            )
            if not reopened:
                self.db.rollback()
                raise ConflictError(
                    f"Association {terminal.id} rouverte concurremment "
                    f"({relation_kind.value} {subject_id}→{object_id})",
                    association_id=terminal.id,
                )
            association_id, reused = terminal.id, True
        else:
            association = Association(
                subject_id=subject_id,
                object_id=object_id,
                relation_kind=relation_kind,
                initiated_by=initiated_by,
                status=status,
                started_at=now if status == AssociationStatus.ACTIVE else None,
                company_id=company_id,
                license_id=license_id,
            )
            self.associations.add(association)
            association_id, reused = association.id, False

        self.associations.commit("création association")
        association = self.get(association_id)

        logger.info(
            f"🔗 Association {association.id} {'réouverte' if reused else 'créée'} : "
            f"{relation_kind.value} {subject_id}→{object_id} ({status.value})"
        )
        return association

    def set_status(self, association_id: int, new_status: AssociationStatus) -> Association:
        """
        Applique une transition (bas niveau, réservé à ConnectionStateMachine).

        L'écriture est conditionnée au statut lu : si un appel concurrent a
        changé le statut entre-temps, rien n'est écrit.

        Raises:
            InvalidTransitionError: transition hors du graphe
            ConflictError: statut modifié concurremment
        """
        association = self.get(association_id)
        previous = AssociationStatus(association.status)

        if not association.can_transition_to(new_status):
            raise InvalidTransitionError(
                f"Association {association_id} : {previous.value} → {new_status.value} interdit",
                status=previous.value,
            )

        now = utcnow()
        if new_status == AssociationStatus.ACTIVE:
            started_at, ended_at = association.started_at or now, None
        else:
            started_at, ended_at = association.started_at, now

        changed = self.associations.compare_and_set_status(
            association_id, previous, new_status, started_at, ended_at
        )
        if not changed:
            self.db.rollback()
            raise ConflictError(
                f"Association {association_id} modifiée concurremment",
                association_id=association_id,
            )

        self.associations.commit("transition association")
        association = self.get(association_id)
        logger.info(f"🔁 Association {association_id} : {previous.value} → {new_status.value}")
        return association
