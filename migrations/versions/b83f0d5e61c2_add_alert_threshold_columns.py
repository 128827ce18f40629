"""Add alert threshold columns

Revision ID: b83f0d5e61c2
Revises: 4a1c9e7d2b10
Create Date: 2026-09-28 16:03:11.905127

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'b83f0d5e61c2'
down_revision: Union[str, None] = '4a1c9e7d2b10'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    # Nullable: repositories without a stored value use the default thresholds.
    op.add_column('repositories', sa.Column('no_activity_days', sa.Integer(), nullable=True))
    op.add_column('repositories', sa.Column('long_open_prs_days', sa.Integer(), nullable=True))
    op.add_column('repositories', sa.Column('commit_drop_percentage', sa.Integer(), nullable=True))


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_column('repositories', 'commit_drop_percentage')
    op.drop_column('repositories', 'long_open_prs_days')
    op.drop_column('repositories', 'no_activity_days')
