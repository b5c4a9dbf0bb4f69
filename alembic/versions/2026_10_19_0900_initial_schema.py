"""initial_schema

Revision ID: 5c1d7a9e2b40
Revises:
Create Date: 2026-10-19 09:00:00.000000+00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '5c1d7a9e2b40'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


OPEN_STATUS_CLAUSE = "status IN ('PENDING', 'ACTIVE')"

# =============================================================================
# ENUMS
# =============================================================================

actor_role_enum = postgresql.ENUM(
    'PSYCHOLOGIST', 'COMPANY', 'PATIENT', 'SYSTEM', name='actor_role_enum', create_type=False
)
relation_kind_enum = postgresql.ENUM(
    'PSYCHOLOGIST_PATIENT', 'PSYCHOLOGIST_COMPANY', name='relation_kind_enum', create_type=False
)
association_side_enum = postgresql.ENUM(
    'SUBJECT', 'OBJECT', name='association_side_enum', create_type=False
)
association_status_enum = postgresql.ENUM(
    'PENDING', 'ACTIVE', 'REJECTED', 'INACTIVE', name='association_status_enum', create_type=False
)
invitation_status_enum = postgresql.ENUM(
    'PENDING', 'ACCEPTED', 'CANCELED', 'EXPIRED', name='invitation_status_enum', create_type=False
)
license_status_enum = postgresql.ENUM(
    'PENDING', 'ACTIVE', 'CANCELED', name='license_status_enum', create_type=False
)
payment_status_enum = postgresql.ENUM(
    'PENDING', 'COMPLETED', 'CANCELED', 'FAILED', name='payment_status_enum', create_type=False
)

ALL_ENUMS = (
    actor_role_enum,
    relation_kind_enum,
    association_side_enum,
    association_status_enum,
    invitation_status_enum,
    license_status_enum,
    payment_status_enum,
)


def _timestamps() -> list:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    ]


def _actor_table(name: str, comment: str, *extra) -> None:
    op.create_table(
        name,
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        *extra,
        *_timestamps(),
        comment=comment,
    )
    op.create_index(f'ix_{name}_email', name, ['email'])


def upgrade() -> None:
    """Upgrade schema."""

    # Types ENUM créés une seule fois, partagés entre tables
    bind = op.get_bind()
    for enum in ALL_ENUMS:
        enum.create(bind, checkfirst=True)

    # ==========================================================================
    # 1. ANNUAIRE DES ACTEURS
    # ==========================================================================

    _actor_table('psychologists', 'Annuaire des psychologues')
    _actor_table('companies', 'Annuaire des entreprises clientes')
    _actor_table(
        'patients',
        'Annuaire des patients (employés ou directs)',
        sa.Column(
            'company_id', sa.Integer(),
            sa.ForeignKey('companies.id', ondelete='SET NULL'), nullable=True,
        ),
    )
    op.create_index('ix_patients_company_id', 'patients', ['company_id'])

    # ==========================================================================
    # 2. LICENCES
    # ==========================================================================

    op.create_table(
        'license_plans',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('max_users', sa.Integer(), nullable=False),
        sa.Column('price_monthly', sa.Numeric(10, 2), nullable=False),
        sa.Column('price_yearly', sa.Numeric(10, 2), nullable=False),
        sa.Column('active', sa.Boolean(), nullable=False),
        *_timestamps(),
        comment='Catalogue des offres de licences',
    )

    op.create_table(
        'company_licenses',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column(
            'company_id', sa.Integer(),
            sa.ForeignKey('companies.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column(
            'plan_id', sa.Integer(),
            sa.ForeignKey('license_plans.id', ondelete='RESTRICT'), nullable=False,
        ),
        sa.Column('total_licenses', sa.Integer(), nullable=False),
        sa.Column('used_licenses', sa.Integer(), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('expiry_date', sa.Date(), nullable=True),
        sa.Column('status', license_status_enum, nullable=False),
        sa.Column('payment_status', payment_status_enum, nullable=False),
        sa.Column('canceled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint(
            'used_licenses >= 0 AND used_licenses <= total_licenses',
            name='ck_company_licenses_used_within_total',
        ),
        sa.CheckConstraint('total_licenses >= 1', name='ck_company_licenses_total_positive'),
        comment='Licences achetées par les entreprises',
    )
    op.create_index('ix_company_licenses_company_id', 'company_licenses', ['company_id'])

    # ==========================================================================
    # 3. ASSOCIATIONS
    # ==========================================================================

    op.create_table(
        'associations',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column(
            'subject_id', sa.Integer(),
            sa.ForeignKey('psychologists.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('object_id', sa.Integer(), nullable=False),
        sa.Column('relation_kind', relation_kind_enum, nullable=False),
        sa.Column('initiated_by', association_side_enum, nullable=False),
        sa.Column('status', association_status_enum, nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('ended_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            'company_id', sa.Integer(),
            sa.ForeignKey('companies.id', ondelete='SET NULL'), nullable=True,
        ),
        sa.Column(
            'license_id', sa.Integer(),
            sa.ForeignKey('company_licenses.id', ondelete='SET NULL'), nullable=True,
        ),
        *_timestamps(),
        sa.CheckConstraint(
            f'(ended_at IS NULL) = ({OPEN_STATUS_CLAUSE})',
            name='ck_associations_ended_at_terminal',
        ),
        comment='Relations psychologue-patient et psychologue-entreprise',
    )
    op.create_index('ix_associations_subject_id', 'associations', ['subject_id'])
    op.create_index('ix_associations_license_id', 'associations', ['license_id'])
    op.create_index('ix_associations_object', 'associations', ['object_id', 'relation_kind'])
    op.create_index('ix_associations_derived', 'associations', ['company_id', 'subject_id', 'status'])

    # Au plus une association PENDING/ACTIVE par triplet
    op.create_index(
        'uq_associations_open_triple',
        'associations',
        ['subject_id', 'object_id', 'relation_kind'],
        unique=True,
        postgresql_where=sa.text(OPEN_STATUS_CLAUSE),
        sqlite_where=sa.text(OPEN_STATUS_CLAUSE),
    )

    # ==========================================================================
    # 4. INVITATIONS
    # ==========================================================================

    op.create_table(
        'invitations',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('code', sa.String(length=64), nullable=False, unique=True),
        sa.Column('target_email', sa.String(length=255), nullable=False),
        sa.Column('issuer_id', sa.Integer(), nullable=False),
        sa.Column('issuer_role', actor_role_enum, nullable=False),
        sa.Column('relation_kind', relation_kind_enum, nullable=False),
        sa.Column('status', invitation_status_enum, nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('accepted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('redeemed_by_id', sa.Integer(), nullable=True),
        sa.Column(
            'association_id', sa.Integer(),
            sa.ForeignKey('associations.id', ondelete='SET NULL'), nullable=True,
        ),
        *_timestamps(),
        comment='Invitations par email en attente d\'inscription',
    )
    op.create_index('ix_invitations_email_status', 'invitations', ['target_email', 'status'])
    op.create_index('ix_invitations_issuer', 'invitations', ['issuer_role', 'issuer_id'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('invitations')
    op.drop_table('associations')
    op.drop_table('company_licenses')
    op.drop_table('license_plans')
    op.drop_table('patients')
    op.drop_table('companies')
    op.drop_table('psychologists')

    bind = op.get_bind()
    for enum in reversed(ALL_ENUMS):
        enum.drop(bind, checkfirst=True)
