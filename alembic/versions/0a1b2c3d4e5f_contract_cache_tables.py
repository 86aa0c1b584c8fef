"""contract_cache_tables

Revision ID: 0a1b2c3d4e5f
Revises:
Create Date: 2026-10-17 10:00:00.000000

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op


revision: str = '0a1b2c3d4e5f'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the verified-contract cache and website analysis tables."""
    op.create_table(
        'contracts',
        sa.Column('address', sa.String(), nullable=False),
        sa.Column('chain', sa.String(), nullable=False),
        sa.Column('name', sa.Text(), nullable=True),
        sa.Column('compiler_version', sa.Text(), nullable=True),
        sa.Column('optimization_used', sa.Boolean(), nullable=True),
        sa.Column('runs', sa.Integer(), nullable=True),
        sa.Column('license_type', sa.Text(), nullable=True),
        sa.Column('is_proxy', sa.Boolean(), nullable=True),
        sa.Column('implementation_address', sa.Text(), nullable=True),
        sa.Column('verified_at', sa.Text(), nullable=True),
        sa.Column('created_at', sa.Text(), nullable=False),
        sa.Column('updated_at', sa.Text(), nullable=False),
        sa.PrimaryKeyConstraint('address', 'chain'),
    )
    op.create_table(
        'contract_source_code',
        sa.Column('address', sa.String(), nullable=False),
        sa.Column('chain', sa.String(), nullable=False),
        sa.Column('source_code', sa.Text(), nullable=False, server_default=''),
        sa.Column('constructor_arguments', sa.Text(), nullable=True),
        sa.Column('evm_version', sa.Text(), nullable=True),
        sa.Column('library', sa.Text(), nullable=True),
        sa.Column('swarm_source', sa.Text(), nullable=True),
        sa.Column('created_at', sa.Text(), nullable=False),
        sa.PrimaryKeyConstraint('address', 'chain'),
    )
    op.create_table(
        'contract_abis',
        sa.Column('address', sa.String(), nullable=False),
        sa.Column('chain', sa.String(), nullable=False),
        sa.Column('abi', sa.Text(), nullable=False, server_default='[]'),
        sa.Column('created_at', sa.Text(), nullable=False),
        sa.PrimaryKeyConstraint('address', 'chain'),
    )
    op.create_table(
        'website_analyses',
        sa.Column('address', sa.String(), nullable=False),
        sa.Column('chain', sa.String(), nullable=False),
        sa.Column('website_url', sa.Text(), nullable=False, server_default=''),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('roadmap', sa.Text(), nullable=False, server_default=''),
        sa.Column('services_analysis', sa.Text(), nullable=False, server_default=''),
        sa.Column('confidence', sa.Text(), nullable=False, server_default='low'),
        sa.Column('source_urls', sa.Text(), nullable=False, server_default='[]'),
        sa.Column('raw_content', sa.Text(), nullable=False, server_default=''),
        sa.Column('analyzed_at', sa.Text(), nullable=False),
        sa.PrimaryKeyConstraint('address', 'chain'),
    )


def downgrade() -> None:
    op.drop_table('website_analyses')
    op.drop_table('contract_abis')
    op.drop_table('contract_source_code')
    op.drop_table('contracts')
