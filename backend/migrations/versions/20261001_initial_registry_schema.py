"""Initial registry schema: directory, register configurations, documents, workflow steps

Revision ID: 20261001_initial
Revises:
Create Date: 2026-10-01

This migration adds:
1. Directory tables (parishes, departments, department_members, users, session_tokens)
2. Register configurations and their per-scope counters
3. Documents and workflow steps
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ==========================================================================
    # 1. DIRECTORY
    # ==========================================================================
    op.create_table('parishes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_parishes_code', 'parishes', ['code'], unique=True)
    op.create_index('ix_parishes_is_active', 'parishes', ['is_active'])

    op.create_table('users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('parish_id', sa.Integer(), nullable=True),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=16), nullable=False, server_default='clerk'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['parish_id'], ['parishes.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_users_parish_id', 'users', ['parish_id'])
    op.create_index('ix_users_username', 'users', ['username'], unique=True)

    op.create_table('departments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('parish_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['parish_id'], ['parishes.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('parish_id', 'name', name='uq_departments_parish_name'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_departments_parish_id', 'departments', ['parish_id'])

    op.create_table('department_members',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('department_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('added_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['department_id'], ['departments.id']),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('department_id', 'user_id', name='uq_department_members'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_department_members_department_id', 'department_members', ['department_id'])
    op.create_index('ix_department_members_user_id', 'department_members', ['user_id'])

    op.create_table('session_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('token_hash', sa.String(length=64), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_used_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_revoked', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('revoked_reason', sa.String(length=255), nullable=True),
        sa.Column('user_agent', sa.String(length=255), nullable=True),
        sa.Column('ip_address', sa.String(length=64), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_session_tokens_user_id', 'session_tokens', ['user_id'])
    op.create_index('ix_session_tokens_token_hash', 'session_tokens', ['token_hash'], unique=True)

    # ==========================================================================
    # 2. REGISTER CONFIGURATIONS + COUNTERS
    # ==========================================================================
    op.create_table('register_configurations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('parish_id', sa.Integer(), nullable=True),
        sa.Column('starting_number', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('resets_annually', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        sa.Column('updated_by_user_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['parish_id'], ['parishes.id']),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['updated_by_user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_register_configurations_parish', 'register_configurations', ['parish_id'])

    op.create_table('register_counters',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('configuration_id', sa.Integer(), nullable=False),
        sa.Column('scope_year', sa.Integer(), nullable=False),
        sa.Column('current_value', sa.Integer(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['configuration_id'], ['register_configurations.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('configuration_id', 'scope_year', name='uq_register_counters_scope'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_register_counters_configuration_id', 'register_counters', ['configuration_id'])

    # ==========================================================================
    # 3. DOCUMENTS + WORKFLOW STEPS
    # ==========================================================================
    op.create_table('documents',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('parish_id', sa.Integer(), nullable=False),
        sa.Column('configuration_id', sa.Integer(), nullable=False),
        sa.Column('document_type', sa.String(length=16), nullable=False),
        sa.Column('registration_year', sa.Integer(), nullable=True),
        sa.Column('registration_number', sa.Integer(), nullable=True),
        sa.Column('formatted_number', sa.String(length=32), nullable=True),
        sa.Column('registration_date', sa.Date(), nullable=True),
        sa.Column('subject', sa.String(length=500), nullable=False),
        sa.Column('content', sa.Text(), nullable=True),
        sa.Column('priority', sa.String(length=16), nullable=False, server_default='normal'),
        sa.Column('sender_name', sa.String(length=255), nullable=True),
        sa.Column('recipient_name', sa.String(length=255), nullable=True),
        sa.Column('external_number', sa.String(length=64), nullable=True),
        sa.Column('external_date', sa.Date(), nullable=True),
        sa.Column('due_date', sa.Date(), nullable=True),
        sa.Column('department_id', sa.Integer(), nullable=True),
        sa.Column('assigned_to_user_id', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='draft'),
        sa.Column('resolution', sa.Text(), nullable=True),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('archive_indicator', sa.String(length=64), nullable=True),
        sa.Column('archived_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_by_user_id', sa.Integer(), nullable=False),
        sa.Column('updated_by_user_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['parish_id'], ['parishes.id']),
        sa.ForeignKeyConstraint(['configuration_id'], ['register_configurations.id']),
        sa.ForeignKeyConstraint(['department_id'], ['departments.id']),
        sa.ForeignKeyConstraint(['assigned_to_user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['updated_by_user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint(
            'configuration_id', 'registration_year', 'registration_number',
            name='uq_documents_register_year_number',
        ),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_documents_parish_id', 'documents', ['parish_id'])
    op.create_index('ix_documents_configuration_id', 'documents', ['configuration_id'])
    op.create_index('ix_documents_department_id', 'documents', ['department_id'])
    op.create_index('ix_documents_assigned_to_user_id', 'documents', ['assigned_to_user_id'])
    op.create_index('ix_documents_created_by_user_id', 'documents', ['created_by_user_id'])
    op.create_index('ix_documents_status', 'documents', ['status'])
    op.create_index('ix_documents_parish_status', 'documents', ['parish_id', 'status'])
    op.create_index('ix_documents_registration_date', 'documents', ['registration_date'])

    op.create_table('workflow_steps',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('document_id', sa.Integer(), nullable=False),
        sa.Column('from_user_id', sa.Integer(), nullable=True),
        sa.Column('to_user_id', sa.Integer(), nullable=True),
        sa.Column('to_department_id', sa.Integer(), nullable=True),
        sa.Column('step_status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('action', sa.String(length=16), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('resolution', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_by_user_id', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['document_id'], ['documents.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['from_user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['to_user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['to_department_id'], ['departments.id']),
        sa.ForeignKeyConstraint(['completed_by_user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_workflow_steps_document_id', 'workflow_steps', ['document_id'])
    op.create_index('ix_workflow_steps_to_department_id', 'workflow_steps', ['to_department_id'])
    op.create_index('ix_workflow_steps_document_status', 'workflow_steps', ['document_id', 'step_status'])
    op.create_index('ix_workflow_steps_to_user_status', 'workflow_steps', ['to_user_id', 'step_status'])


def downgrade():
    op.drop_table('workflow_steps')
    op.drop_table('documents')
    op.drop_table('register_counters')
    op.drop_table('register_configurations')
    op.drop_table('session_tokens')
    op.drop_table('department_members')
    op.drop_table('departments')
    op.drop_table('users')
    op.drop_table('parishes')
