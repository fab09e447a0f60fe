"""director network tables

Revision ID: 7c2e41d9a8b0
Revises:
Create Date: 2026-10-19 09:12:44.518203

Creates the director network schema: directors, appointments, per-practice
network edges and their connecting directors, registry company details and
build job records. New databases may also be created with create_all()
(see app/main.py lifespan) and then stamped with:

    alembic stamp head
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '7c2e41d9a8b0'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'network_build_jobs',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('practice_id', sa.String(length=64), nullable=False),
        sa.Column('company_number', sa.String(length=20), nullable=False),
        sa.Column('status', sa.Enum('PENDING', 'RUNNING', 'SUCCESS', 'FAILED',
                                    name='jobstatus', native_enum=False, length=20),
                  nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('officers_processed', sa.Integer(), nullable=True),
        sa.Column('total_opportunities', sa.Integer(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_network_build_jobs_practice_id', 'network_build_jobs', ['practice_id'])
    op.create_index('ix_network_build_jobs_company_number', 'network_build_jobs', ['company_number'])
    op.create_index('ix_network_build_jobs_status', 'network_build_jobs', ['status'])
    op.create_index('ix_network_build_jobs_target', 'network_build_jobs',
                    ['practice_id', 'company_number'])

    op.create_table(
        'directors',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('external_officer_id', sa.String(length=100), nullable=True),
        sa.Column('name', sa.String(length=500), nullable=False),
        sa.Column('date_of_birth', sa.String(length=20), nullable=True),
        sa.Column('nationality', sa.String(length=100), nullable=True),
        sa.Column('surname_prefix', sa.String(length=8), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.CheckConstraint("name <> ''", name='ck_directors_name_not_empty'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('external_officer_id'),
    )
    op.create_index('ix_directors_name', 'directors', ['name'])
    op.create_index('ix_directors_surname_prefix', 'directors', ['surname_prefix'])

    op.create_table(
        'director_appointments',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('director_id', sa.Integer(), nullable=False),
        sa.Column('company_number', sa.String(length=20), nullable=False),
        sa.Column('role', sa.String(length=100), nullable=False),
        sa.Column('appointed_on', sa.Date(), nullable=True),
        sa.Column('resigned_on', sa.Date(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('last_observed_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['director_id'], ['directors.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('director_id', 'company_number', 'role',
                            name='uq_director_appointment'),
    )
    op.create_index('ix_director_appointments_company_number', 'director_appointments',
                    ['company_number'])
    op.create_index('ix_director_appointments_director', 'director_appointments',
                    ['director_id'])
    op.create_index('ix_director_appointments_company_active', 'director_appointments',
                    ['company_number', 'is_active'])

    op.create_table(
        'director_networks',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('practice_id', sa.String(length=64), nullable=False),
        sa.Column('source_company', sa.String(length=20), nullable=False),
        sa.Column('target_company', sa.String(length=20), nullable=False),
        sa.Column('connection_type', sa.String(length=30), nullable=False),
        sa.Column('connection_strength', sa.Integer(), nullable=False),
        sa.Column('target_company_name', sa.String(length=500), nullable=True),
        sa.Column('target_sector', sa.String(length=20), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('last_updated', sa.DateTime(), nullable=False),
        sa.Column('last_observed_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('practice_id', 'source_company', 'target_company',
                            name='uq_director_network'),
    )
    op.create_index('ix_director_networks_practice_created', 'director_networks',
                    ['practice_id', 'created_at'])

    op.create_table(
        'director_network_members',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('network_id', sa.Integer(), nullable=False),
        sa.Column('director_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['network_id'], ['director_networks.id']),
        sa.ForeignKeyConstraint(['director_id'], ['directors.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('network_id', 'director_id', name='uq_director_network_member'),
    )
    op.create_index('ix_director_network_members_director', 'director_network_members',
                    ['director_id'])

    op.create_table(
        'registry_companies',
        sa.Column('company_number', sa.String(length=20), nullable=False),
        sa.Column('company_name', sa.String(length=500), nullable=True),
        sa.Column('company_status', sa.String(length=50), nullable=True),
        sa.Column('sector', sa.String(length=20), nullable=True),
        sa.Column('sic_codes', sa.JSON(), nullable=True),
        sa.Column('last_fetched_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('company_number'),
    )
    op.create_index('ix_registry_companies_company_status', 'registry_companies',
                    ['company_status'])


def downgrade() -> None:
    op.drop_table('registry_companies')
    op.drop_table('director_network_members')
    op.drop_table('director_networks')
    op.drop_table('director_appointments')
    op.drop_table('directors')
    op.drop_table('network_build_jobs')
