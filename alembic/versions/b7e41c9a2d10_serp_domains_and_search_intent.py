"""serp_domains_and_search_intent

Revision ID: b7e41c9a2d10
Revises: a1f0c2d3e4b5
Create Date: 2026-10-16

Organic domains on cached SERP analyses and DataForSEO search intent on
keyword metrics.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'b7e41c9a2d10'
down_revision: Union[str, Sequence[str], None] = 'a1f0c2d3e4b5'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column('keyword_serp_features', sa.Column('organic_domains', sa.JSON(), nullable=True))
    op.add_column('keyword_metrics', sa.Column('dataforseo_intent', sa.String(20), nullable=True))
    op.add_column('keyword_metrics', sa.Column('dataforseo_intent_probability', sa.Float(), nullable=True))
    op.add_column('keyword_metrics', sa.Column('dataforseo_intent_fetched_at', sa.DateTime(), nullable=True))


def downgrade() -> None:
    op.drop_column('keyword_metrics', 'dataforseo_intent_fetched_at')
    op.drop_column('keyword_metrics', 'dataforseo_intent_probability')
    op.drop_column('keyword_metrics', 'dataforseo_intent')
    op.drop_column('keyword_serp_features', 'organic_domains')
