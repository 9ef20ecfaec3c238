"""add nda_agreements, notifications and audit_events tables

Revision ID: c4d5e6f7a8b9
Revises:
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect

# revision identifiers, used by Alembic.
revision = 'c4d5e6f7a8b9'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    conn = op.get_bind()
    inspector = inspect(conn)
    tables = inspector.get_table_names()

    if 'user' not in tables:
        op.create_table(
            'user',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('username', sa.String(length=80), nullable=False),
            sa.Column('email', sa.String(length=120), nullable=False),
            sa.Column('full_name', sa.String(length=160), nullable=False),
            sa.Column('phone', sa.String(length=20), nullable=True),
            sa.Column('role', sa.String(length=20), nullable=False, server_default='entrepreneur'),
            sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
            sa.PrimaryKeyConstraint('id', name='pk_user'),
            sa.UniqueConstraint('username', name='uq_user_username'),
            sa.UniqueConstraint('email', name='uq_user_email')
        )

    if 'company_profiles' not in tables:
        op.create_table(
            'company_profiles',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('user_id', sa.Integer(), nullable=False),
            sa.Column('legal_name', sa.String(length=200), nullable=True),
            sa.Column('contact_email', sa.String(length=120), nullable=True),
            sa.Column('contact_phone', sa.String(length=20), nullable=True),
            sa.Column('city', sa.String(length=100), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=True, server_default=sa.text('CURRENT_TIMESTAMP')),
            sa.Column('updated_at', sa.DateTime(), nullable=True, server_default=sa.text('CURRENT_TIMESTAMP')),
            sa.ForeignKeyConstraint(['user_id'], ['user.id'], name='fk_company_profiles_user_id', ondelete='CASCADE'),
            sa.PrimaryKeyConstraint('id', name='pk_company_profiles'),
            sa.UniqueConstraint('user_id', name='uq_company_profiles_user_id')
        )

    if 'projects' not in tables:
        op.create_table(
            'projects',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('owner_id', sa.Integer(), nullable=False),
            sa.Column('title', sa.String(length=200), nullable=False),
            sa.Column('description', sa.Text(), nullable=True),
            sa.Column('nda_status', sa.String(length=30), nullable=True),
            sa.Column('active_nda_id', sa.Integer(), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
            sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
            sa.ForeignKeyConstraint(['owner_id'], ['user.id'], name='fk_projects_owner_id'),
            sa.PrimaryKeyConstraint('id', name='pk_projects')
        )

    if 'nda_agreements' not in tables:
        op.create_table(
            'nda_agreements',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('project_id', sa.Integer(), nullable=False),
            sa.Column('company_user_id', sa.Integer(), nullable=False),
            sa.Column('status', sa.String(length=30), nullable=False, server_default='awaiting_entrepreneur'),
            sa.Column('company_info', sa.JSON(), nullable=False),
            sa.Column('entrepreneur_info', sa.JSON(), nullable=True),
            sa.Column('provider_document_id', sa.String(length=100), nullable=True),
            sa.Column('provider_envelope_id', sa.String(length=100), nullable=True),
            sa.Column('provider_reference_number', sa.String(length=100), nullable=True),
            sa.Column('provider_envelope_status', sa.String(length=50), nullable=True),
            sa.Column('provider_signers', sa.JSON(), nullable=True),
            sa.Column('provider_payload_hash', sa.String(length=64), nullable=True),
            sa.Column('last_provider_error', sa.Text(), nullable=True),
            sa.Column('fallback_used', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('fallback_sent_at', sa.DateTime(), nullable=True),
            sa.Column('pdf_url', sa.String(length=500), nullable=True),
            sa.Column('invitations_sent_at', sa.DateTime(), nullable=True),
            sa.Column('signed_at', sa.DateTime(), nullable=True),
            sa.Column('expires_at', sa.DateTime(), nullable=True),
            sa.Column('cancelled_at', sa.DateTime(), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
            sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
            sa.ForeignKeyConstraint(['project_id'], ['projects.id'], name='fk_nda_agreements_project_id'),
            sa.ForeignKeyConstraint(['company_user_id'], ['user.id'], name='fk_nda_agreements_company_user_id'),
            sa.PrimaryKeyConstraint('id', name='pk_nda_agreements'),
            sa.UniqueConstraint('provider_reference_number', name='uq_nda_agreements_provider_reference_number')
        )
        op.create_index('ix_nda_agreements_project_id', 'nda_agreements', ['project_id'])
        op.create_index('ix_nda_agreements_company_user_id', 'nda_agreements', ['company_user_id'])
        op.create_index('ix_nda_agreements_status', 'nda_agreements', ['status'])

    if 'notifications' not in tables:
        op.create_table(
            'notifications',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('user_id', sa.Integer(), nullable=False),
            sa.Column('type', sa.String(length=50), nullable=False),
            sa.Column('title', sa.String(length=200), nullable=False),
            sa.Column('message', sa.Text(), nullable=True),
            sa.Column('nda_id', sa.Integer(), nullable=True),
            sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
            sa.ForeignKeyConstraint(['user_id'], ['user.id'], name='fk_notifications_user_id', ondelete='CASCADE'),
            sa.ForeignKeyConstraint(['nda_id'], ['nda_agreements.id'], name='fk_notifications_nda_id', ondelete='SET NULL'),
            sa.PrimaryKeyConstraint('id', name='pk_notifications')
        )
        op.create_index('ix_notifications_user_id', 'notifications', ['user_id'])

    if 'audit_events' not in tables:
        op.create_table(
            'audit_events',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('nda_id', sa.Integer(), nullable=True),
            sa.Column('project_id', sa.Integer(), nullable=True),
            sa.Column('actor_id', sa.Integer(), nullable=True),
            sa.Column('event_type', sa.String(length=50), nullable=False),
            sa.Column('description', sa.String(length=500), nullable=True),
            sa.Column('event_data', sa.JSON(), nullable=True),
            sa.Column('source', sa.String(length=50), nullable=True, server_default='app'),
            sa.Column('ip_address', sa.String(length=45), nullable=True),
            sa.Column('user_agent', sa.String(length=500), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=True, server_default=sa.text('CURRENT_TIMESTAMP')),
            sa.ForeignKeyConstraint(['nda_id'], ['nda_agreements.id'], name='fk_audit_events_nda_id', ondelete='SET NULL'),
            sa.ForeignKeyConstraint(['project_id'], ['projects.id'], name='fk_audit_events_project_id', ondelete='SET NULL'),
            sa.ForeignKeyConstraint(['actor_id'], ['user.id'], name='fk_audit_events_actor_id', ondelete='SET NULL'),
            sa.PrimaryKeyConstraint('id', name='pk_audit_events')
        )
        op.create_index('ix_audit_events_nda_id', 'audit_events', ['nda_id'])
        op.create_index('ix_audit_events_project_id', 'audit_events', ['project_id'])
        op.create_index('ix_audit_events_event_type', 'audit_events', ['event_type'])
        op.create_index('ix_audit_events_created_at', 'audit_events', ['created_at'])


def downgrade():
    op.drop_table('audit_events')
    op.drop_table('notifications')
    op.drop_table('nda_agreements')
    op.drop_table('projects')
    op.drop_table('company_profiles')
    op.drop_table('user')
