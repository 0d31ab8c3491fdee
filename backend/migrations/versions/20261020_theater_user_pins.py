"""Theater user PIN claims

Revision ID: 20261020_user_pins
Revises: 20261019_initial
Create Date: 2026-10-20

This migration adds:
1. theateruserpins (one row per claimed PIN, unique across all theaters)

Existing PINs are copied from the theaterusers array documents.
"""
import json

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261020_user_pins'
down_revision = '20261019_initial'
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('theateruserpins',
        sa.Column('pin', sa.String(length=4), nullable=False),
        sa.Column('theater_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(length=32), nullable=False),
        sa.ForeignKeyConstraint(['theater_id'], ['theaters.id'], name='fk_theateruserpins_theater_id_theaters'),
        sa.PrimaryKeyConstraint('pin', name='pk_theateruserpins'),
    )
    with op.batch_alter_table('theateruserpins', schema=None) as batch_op:
        batch_op.create_index('ix_theateruserpins_theater_id', ['theater_id'], unique=False)
        batch_op.create_index('ix_theateruserpins_user_id', ['user_id'], unique=False)

    # Backfill from existing user documents
    conn = op.get_bind()
    pins = sa.table('theateruserpins',
        sa.column('pin', sa.String),
        sa.column('theater_id', sa.Integer),
        sa.column('user_id', sa.String),
    )
    rows = []
    for theater_id, items in conn.execute(sa.text('SELECT theater_id, items FROM theaterusers')):
        if isinstance(items, str):
            items = json.loads(items)
        for user in items or []:
            if user.get('pin'):
                rows.append({'pin': user['pin'], 'theater_id': theater_id, 'user_id': user['_id']})
    if rows:
        op.bulk_insert(pins, rows)


def downgrade():
    with op.batch_alter_table('theateruserpins', schema=None) as batch_op:
        batch_op.drop_index('ix_theateruserpins_user_id')
        batch_op.drop_index('ix_theateruserpins_theater_id')
    op.drop_table('theateruserpins')
