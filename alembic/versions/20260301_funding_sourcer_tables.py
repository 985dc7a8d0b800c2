"""Create companies, funding_rounds, funding_sources and company_enrichments tables

Revision ID: 20260301_funding_sourcer_tables
Revises:
Create Date: 2026-03-01

- companies.slug is unique so racing sources converge via ON CONFLICT
- funding_rounds.source_url is unique (NULLs allowed) and is the primary
  anti-duplicate key
- funding_sources holds one checkpoint per source name
- company_enrichments logs what each import wrote to a company
"""
from typing import Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '20260301_funding_sourcer_tables'
down_revision: Union[str, None] = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'companies',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('slug', sa.String(), nullable=False),
        sa.Column('aliases', postgresql.JSONB(), nullable=False, server_default='[]'),
        sa.Column('description', sa.String(), nullable=True),
        sa.Column('last_round_stage', sa.String(), nullable=True),
        sa.Column('last_round_date', sa.Date(), nullable=True),
        sa.Column('total_raised', sa.Numeric(14, 2), nullable=True),
        sa.Column('data_quality', sa.Integer(), nullable=False, server_default='20'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_companies_slug', 'companies', ['slug'], unique=True)
    # Alias membership lookups (aliases @> '["Foo Inc"]')
    op.create_index('ix_companies_aliases', 'companies', ['aliases'], postgresql_using='gin')

    op.create_table(
        'funding_rounds',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('company_id', sa.Integer(), sa.ForeignKey('companies.id'), nullable=False),
        sa.Column('company_name', sa.String(), nullable=False),
        sa.Column('company_slug', sa.String(), nullable=True),
        sa.Column('description', sa.String(), nullable=True),
        sa.Column('amount', sa.Numeric(14, 2), nullable=True),
        sa.Column('amount_usd', sa.Numeric(14, 2), nullable=True),
        sa.Column('currency', sa.String(), nullable=False, server_default='USD'),
        sa.Column('stage', sa.String(), nullable=True),
        sa.Column('stage_normalized', sa.String(), nullable=True),
        sa.Column('investors', postgresql.JSONB(), nullable=False, server_default='[]'),
        sa.Column('lead_investor', sa.String(), nullable=True),
        sa.Column('funding_date', sa.Date(), nullable=True),
        sa.Column('source', sa.String(), nullable=False),
        sa.Column('source_url', sa.String(), nullable=True),
        sa.Column('is_migrated', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_funding_rounds_company_id', 'funding_rounds', ['company_id'])
    op.create_index('ix_funding_rounds_company_slug', 'funding_rounds', ['company_slug'])
    op.create_index('ix_funding_rounds_stage_normalized', 'funding_rounds', ['stage_normalized'])
    op.create_index('ix_funding_rounds_funding_date', 'funding_rounds', ['funding_date'])
    op.create_index('ix_funding_rounds_source', 'funding_rounds', ['source'])
    op.create_index('ix_funding_rounds_source_url', 'funding_rounds', ['source_url'], unique=True)
    op.create_index('ix_funding_rounds_created_at', 'funding_rounds', ['created_at'])
    # Dedup window query: rounds of one company around a date
    op.create_index('ix_funding_rounds_company_date', 'funding_rounds', ['company_id', 'funding_date'])

    op.create_table(
        'funding_sources',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('display_name', sa.String(), nullable=False),
        sa.Column('source_type', sa.String(), nullable=False, server_default='rss'),
        sa.Column('cursor', sa.String(), nullable=True),
        sa.Column('cursor_type', sa.String(), nullable=True),
        sa.Column('historical_import_complete', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('oldest_date_imported', sa.Date(), nullable=True),
        sa.Column('last_import_at', sa.DateTime(), nullable=True),
        sa.Column('last_import_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_rounds', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_funding_sources_name', 'funding_sources', ['name'], unique=True)

    op.create_table(
        'company_enrichments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('company_id', sa.Integer(), sa.ForeignKey('companies.id'), nullable=False),
        sa.Column('source', sa.String(), nullable=False, server_default='ARTICLE_IMPORT'),
        sa.Column('source_url', sa.String(), nullable=True),
        sa.Column('source_date', sa.Date(), nullable=True),
        sa.Column('fields_updated', postgresql.JSONB(), nullable=False, server_default='[]'),
        sa.Column('new_data', postgresql.JSONB(), nullable=True),
        sa.Column('confidence', sa.Integer(), nullable=False, server_default='70'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_company_enrichments_company_id', 'company_enrichments', ['company_id'])


def downgrade() -> None:
    op.drop_table('company_enrichments')
    op.drop_table('funding_sources')
    op.drop_table('funding_rounds')
    op.drop_table('companies')
