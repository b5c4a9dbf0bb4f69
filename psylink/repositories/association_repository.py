"""Repository des associations (table `associations`)."""
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy import and_, func, select, update

from psylink.models.association import Association
from psylink.models.enums import (
    ActorRole,
    AssociationSide,
    AssociationStatus,
    OBJECT_ROLE_BY_KIND,
    OPEN_ASSOCIATION_STATUSES,
    RelationKind,
    TERMINAL_ASSOCIATION_STATUSES,
)
from psylink.models.mixins import utcnow
from psylink.repositories.base import BaseRepository


class AssociationRepository(BaseRepository):
    """Contrat étroit sur les enregistrements Association."""

    # =========================================================================
    # LECTURE
    # =========================================================================

    def get(self, association_id: int) -> Optional[Association]:
        """Relit l'association depuis la base (écrase l'état en mémoire)."""
        with self.translate_errors("lecture association"):
            return self.db.get(Association, association_id, populate_existing=True)

    def _triple(self, subject_id: int, object_id: int, relation_kind: RelationKind):
        return select(Association).where(
            Association.subject_id == subject_id,
            Association.object_id == object_id,
            Association.relation_kind == relation_kind,
        )

    def find_open(
            self,
            subject_id: int,
            object_id: int,
            relation_kind: RelationKind,
    ) -> Optional[Association]:
        query = self._triple(subject_id, object_id, relation_kind).where(
            Association.status.in_(OPEN_ASSOCIATION_STATUSES)
        )
        with self.translate_errors("recherche association ouverte"):
            return self.db.execute(query).scalars().first()

    def find_latest_terminal(
            self,
            subject_id: int,
            object_id: int,
            relation_kind: RelationKind,
    ) -> Optional[Association]:
        query = (
            self._triple(subject_id, object_id, relation_kind)
            .where(Association.status.in_(TERMINAL_ASSOCIATION_STATUSES))
            .order_by(Association.ended_at.desc(), Association.id.desc())
        )
        with self.translate_errors("recherche association terminée"):
            return self.db.execute(query).scalars().first()

    def _actor_clause(self, actor_id: int, role: ActorRole, relation_kind: Optional[RelationKind]):
        """Filtre « l'acteur est partie » selon son rôle."""
        if role == ActorRole.PSYCHOLOGIST:
            clause = Association.subject_id == actor_id
            if relation_kind is not None:
                clause = and_(clause, Association.relation_kind == relation_kind)
            return clause

        kinds = [kind for kind, object_role in OBJECT_ROLE_BY_KIND.items() if object_role == role]
        if relation_kind is not None:
            kinds = [kind for kind in kinds if kind == relation_kind]
        return and_(Association.object_id == actor_id, Association.relation_kind.in_(kinds))

    def list_by_actor(
            self,
            actor_id: int,
            role: ActorRole,
            relation_kind: Optional[RelationKind] = None,
            statuses: Optional[Iterable[AssociationStatus]] = None,
            initiated_by: Optional[AssociationSide] = None,
    ) -> List[Association]:
        query = select(Association).where(self._actor_clause(actor_id, role, relation_kind))
        if statuses:
            query = query.where(Association.status.in_(list(statuses)))
        if initiated_by is not None:
            query = query.where(Association.initiated_by == initiated_by)
        query = query.order_by(Association.id)

        with self.translate_errors("liste des associations"):
            return list(self.db.execute(query).scalars().all())

    def _pending_for_recipient(self, actor_id: int, role: ActorRole):
        # Destinataire = côté opposé à initiated_by
        if role == ActorRole.PSYCHOLOGIST:
            side_clause = Association.initiated_by == AssociationSide.OBJECT
        else:
            side_clause = Association.initiated_by == AssociationSide.SUBJECT
        return and_(
            self._actor_clause(actor_id, role, None),
            Association.status == AssociationStatus.PENDING,
            side_clause,
        )

    def list_pending_for_recipient(self, actor_id: int, role: ActorRole) -> List[Association]:
        query = (
            select(Association)
            .where(self._pending_for_recipient(actor_id, role))
            .order_by(Association.created_at.desc(), Association.id.desc())
        )
        with self.translate_errors("demandes en attente"):
            return list(self.db.execute(query).scalars().all())

    def count_pending_for_recipient(self, actor_id: int, role: ActorRole) -> int:
        query = select(func.count(Association.id)).where(self._pending_for_recipient(actor_id, role))
        with self.translate_errors("comptage demandes en attente"):
            return self.db.execute(query).scalar() or 0

    def list_derived(
            self,
            company_id: int,
            psychologist_id: Optional[int] = None,
            statuses: Iterable[AssociationStatus] = (AssociationStatus.ACTIVE,),
    ) -> List[Association]:
        """Liens employé ↔ psychologue créés par la cascade d'une entreprise."""
        query = select(Association).where(
            Association.relation_kind == RelationKind.PSYCHOLOGIST_PATIENT,
            Association.company_id == company_id,
            Association.status.in_(list(statuses)),
        )
        if psychologist_id is not None:
            query = query.where(Association.subject_id == psychologist_id)
        query = query.order_by(Association.id)

        with self.translate_errors("liste des liens dérivés"):
            return list(self.db.execute(query).scalars().all())

    def list_by_license(self, license_id: int) -> List[Association]:
        """Associations actives consommant une place de la licence."""
        query = (
            select(Association)
            .where(Association.license_id == license_id, Association.status == AssociationStatus.ACTIVE)
            .order_by(Association.id)
        )
        with self.translate_errors("liste des places occupées"):
            return list(self.db.execute(query).scalars().all())

    def list_active_psychologist_ids(self, company_id: int) -> List[int]:
        """Psychologues actuellement connectés à une entreprise."""
        query = (
            select(Association.subject_id)
            .where(
                Association.relation_kind == RelationKind.PSYCHOLOGIST_COMPANY,
                Association.object_id == company_id,
                Association.status == AssociationStatus.ACTIVE,
            )
            .order_by(Association.subject_id)
        )
        with self.translate_errors("psychologues de l'entreprise"):
            return list(self.db.execute(query).scalars().all())

    # =========================================================================
    # ÉCRITURE
    # =========================================================================

    def add(self, association: Association) -> Association:
        """Insère l'association ; ConflictError si l'index d'unicité refuse."""
        self.db.add(association)
        self.flush("écriture association")
        return association

    def compare_and_set_status(
            self,
            association_id: int,
            expected: AssociationStatus,
            new_status: AssociationStatus,
            started_at: Optional[datetime],
            ended_at: Optional[datetime],
    ) -> bool:
        """
        UPDATE conditionnel sur le statut courant.

        Returns:
            True si la ligne a été modifiée, False si le statut avait changé entre-temps
        """
        statement = (
            update(Association)
            .where(Association.id == association_id, Association.status == expected)
            .values(
                status=new_status,
                started_at=started_at,
                ended_at=ended_at,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        with self.translate_errors("transition association"):
            result = self.db.execute(statement)
        return result.rowcount == 1

    def reopen_terminal(
            self,
            association_id: int,
            initiated_by: AssociationSide,
            status: AssociationStatus,
            company_id: Optional[int],
            license_id: Optional[int],
            now: datetime,
    ) -> bool:
        """
        Rouvre un enregistrement terminal par UPDATE conditionnel.

        L'écriture n'a lieu que si la ligne est encore REJECTED/INACTIVE ;
        l'index partiel refuse en plus toute réouverture concurrente d'un
        autre enregistrement du même triplet (ConflictError).

        Returns:
            True si la ligne a été rouverte, False si un appel concurrent l'a déjà fait
        """
        statement = (
            update(Association)
            .where(
                Association.id == association_id,
                Association.status.in_(TERMINAL_ASSOCIATION_STATUSES),
            )
            .values(
                status=status,
                initiated_by=initiated_by,
                company_id=company_id,
                license_id=license_id,
                started_at=now if status == AssociationStatus.ACTIVE else None,
                ended_at=None,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        with self.translate_errors("réouverture association"):
            result = self.db.execute(statement)
        return result.rowcount == 1
