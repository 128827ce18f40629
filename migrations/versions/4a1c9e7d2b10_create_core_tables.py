"""create users, repositories, alerts and reports tables

Revision ID: 4a1c9e7d2b10
Revises: 
Create Date: 2026-09-14 10:12:40.318204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '4a1c9e7d2b10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table('users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('github_id', sa.String(length=64), nullable=False),
        sa.Column('username', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('avatar_url', sa.String(length=511), nullable=True),
        sa.Column('access_token', sa.Text(), nullable=False),
        sa.Column('email_reports_enabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('email_reports_frequency', sa.String(length=16), nullable=False, server_default='weekly'),
        sa.Column('email_reports_last_sent', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('github_id')
    )
    op.create_index('ix_users_email_reports_frequency', 'users', ['email_reports_frequency'])

    op.create_table('repositories',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('owner', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('full_name', sa.String(length=511), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('url', sa.String(length=511), nullable=True),
        sa.Column('api_url', sa.String(length=511), nullable=True),
        sa.Column('default_branch', sa.String(length=255), nullable=False, server_default='main'),
        sa.Column('stars', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('forks', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('watchers', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('open_issues', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('metrics', sa.JSON(), nullable=False),
        sa.Column('last_fetched', sa.DateTime(), nullable=True),
        sa.Column('alert_no_activity', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('alert_long_open_prs', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('alert_commit_drops', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('full_name')
    )
    op.create_index('ix_repositories_last_fetched', 'repositories', ['last_fetched'])

    op.create_table('repository_subscribers',
        sa.Column('repository_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['repository_id'], ['repositories.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('repository_id', 'user_id')
    )

    op.create_table('alerts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('repository_id', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=32), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('threshold', sa.Float(), nullable=False),
        sa.Column('value', sa.Float(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='active'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('resolved_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['repository_id'], ['repositories.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_alerts_user_repo_type_status', 'alerts',
                    ['user_id', 'repository_id', 'type', 'status'])

    op.create_table('reports',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('repository_id', sa.Integer(), nullable=False),
        sa.Column('report_type', sa.String(length=16), nullable=False, server_default='weekly'),
        sa.Column('start_date', sa.DateTime(), nullable=False),
        sa.Column('end_date', sa.DateTime(), nullable=False),
        sa.Column('data', sa.JSON(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('sent_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['repository_id'], ['repositories.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_reports_user_id', 'reports', ['user_id'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('ix_reports_user_id', 'reports')
    op.drop_table('reports')
    op.drop_index('idx_alerts_user_repo_type_status', 'alerts')
    op.drop_table('alerts')
    op.drop_table('repository_subscribers')
    op.drop_index('ix_repositories_last_fetched', 'repositories')
    op.drop_table('repositories')
    op.drop_index('ix_users_email_reports_frequency', 'users')
    op.drop_table('users')
