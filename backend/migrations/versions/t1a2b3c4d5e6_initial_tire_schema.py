"""initial tire schema

Revision ID: t1a2b3c4d5e6
Revises:
Create Date: 2026-10-19 00:00:00.000000

This migration creates the complete TireTrack schema from scratch:
- tire_models, containers, drivers, cars, seasons, season_driver_associations:
  reference data
- tires: current-state registry with optimistic-lock version_id
- tire_history: append-only transition ledger
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 't1a2b3c4d5e6'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps(with_updated: bool = True):
    cols = [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
    ]
    if with_updated:
        cols.append(
            sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                      server_default=sa.text('CURRENT_TIMESTAMP'))
        )
    return cols


def upgrade():
    # ============================================================================
    # Reference data
    # ============================================================================
    op.create_table(
        'tire_models',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('type', sa.String(length=64), nullable=False),
        sa.Column('compound', sa.String(length=64), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_tire_models_name', 'tire_models', ['name'], unique=True)

    op.create_table(
        'containers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('capacity', sa.Integer(), nullable=False),
        sa.Column('is_disposal', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('capacity > 0', name='ck_containers_capacity_positive'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_containers_name', 'containers', ['name'], unique=True)

    op.create_table(
        'drivers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('full_name', sa.String(length=255), nullable=False),
        sa.Column('nickname', sa.String(length=64), nullable=True),
        *_timestamps(with_updated=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'cars',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('chassis', sa.String(length=64), nullable=False),
        *_timestamps(with_updated=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('chassis', name='uq_cars_chassis'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'seasons',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        *_timestamps(with_updated=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('year', name='uq_seasons_year'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'season_driver_associations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('season_id', sa.Integer(), nullable=False),
        sa.Column('driver_id', sa.Integer(), nullable=False),
        sa.Column('car_id', sa.Integer(), nullable=False),
        sa.Column('car_number', sa.Integer(), nullable=False),
        sa.Column('category', sa.String(length=16), nullable=False),
        *_timestamps(with_updated=False),
        sa.ForeignKeyConstraint(['season_id'], ['seasons.id'], ),
        sa.ForeignKeyConstraint(['driver_id'], ['drivers.id'], ),
        sa.ForeignKeyConstraint(['car_id'], ['cars.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('season_id', 'driver_id', name='uq_season_driver'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_season_driver_associations_season_id', 'season_driver_associations', ['season_id'])
    op.create_index('ix_season_driver_associations_driver_id', 'season_driver_associations', ['driver_id'])
    op.create_index('ix_season_driver_associations_car_id', 'season_driver_associations', ['car_id'])

    # ============================================================================
    # tires: current-state registry
    # ============================================================================
    # location_ref points at containers.id or drivers.id depending on
    # location_kind, so it carries no foreign key.
    op.create_table(
        'tires',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('barcode', sa.String(length=128), nullable=False),
        sa.Column('model_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('location_kind', sa.String(length=16), nullable=False),
        sa.Column('location_ref', sa.Integer(), nullable=True),
        sa.Column('holder_ref', sa.Integer(), nullable=True),
        sa.Column('position', sa.String(length=32), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['model_id'], ['tire_models.id'], ),
        sa.ForeignKeyConstraint(['holder_ref'], ['drivers.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_tires_barcode', 'tires', ['barcode'], unique=True)
    op.create_index('ix_tires_model_id', 'tires', ['model_id'])
    op.create_index('ix_tires_holder_ref', 'tires', ['holder_ref'])
    op.create_index('ix_tires_location', 'tires', ['location_kind', 'location_ref'])
    op.create_index('ix_tires_status', 'tires', ['status'])

    # ============================================================================
    # tire_history: append-only ledger
    # ============================================================================
    op.create_table(
        'tire_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tire_id', sa.Integer(), nullable=False),
        sa.Column('event_type', sa.String(length=32), nullable=False),
        sa.Column('from_status', sa.String(length=16), nullable=True),
        sa.Column('to_status', sa.String(length=16), nullable=True),
        sa.Column('from_location_kind', sa.String(length=16), nullable=True),
        sa.Column('from_location_ref', sa.Integer(), nullable=True),
        sa.Column('to_location_kind', sa.String(length=16), nullable=True),
        sa.Column('to_location_ref', sa.Integer(), nullable=True),
        sa.Column('holder_ref', sa.Integer(), nullable=True),
        sa.Column('position', sa.String(length=32), nullable=True),
        sa.Column('performed_by', sa.String(length=128), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.ForeignKeyConstraint(['tire_id'], ['tires.id'], ),
        sa.ForeignKeyConstraint(['holder_ref'], ['drivers.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_tire_history_tire_id', 'tire_history', ['tire_id'])
    op.create_index('ix_tire_history_event_type', 'tire_history', ['event_type'])
    op.create_index('ix_tire_history_occurred_at', 'tire_history', ['occurred_at'])
    op.create_index('ix_tire_history_tire_occurred', 'tire_history', ['tire_id', 'occurred_at', 'id'])


def downgrade():
    op.drop_table('tire_history')
    op.drop_table('tires')
    op.drop_table('season_driver_associations')
    op.drop_table('seasons')
    op.drop_table('cars')
    op.drop_table('drivers')
    op.drop_table('containers')
    op.drop_table('tire_models')
