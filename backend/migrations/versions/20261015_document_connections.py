"""Add document connections (replies, amendments, attachments, cross-references)

Revision ID: 20261015_document_connections
Revises: 20261001_initial
Create Date: 2026-10-15
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261015_document_connections"
down_revision = "20261001_initial"
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "document_connections",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("document_id", sa.Integer(), nullable=False),
        sa.Column("connected_document_id", sa.Integer(), nullable=False),
        sa.Column("connection_type", sa.String(16), nullable=False),
        sa.Column("created_by_user_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["document_id"], ["documents.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["connected_document_id"], ["documents.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["created_by_user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("document_id", "connected_document_id", name="uq_document_connections_pair"),
        sa.CheckConstraint("document_id <> connected_document_id", name="ck_document_connections_not_self"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("document_connections", schema=None) as batch_op:
        batch_op.create_index("ix_document_connections_document_id", ["document_id"], unique=False)
        batch_op.create_index("ix_document_connections_connected_document_id", ["connected_document_id"], unique=False)


def downgrade():
    op.drop_table("document_connections")
