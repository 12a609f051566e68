"""Initial schema: crm.contacts identity graph table.

Revision ID: 001
Revises:
Create Date: 2026-10-17

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute("CREATE SCHEMA IF NOT EXISTS crm")

    op.create_table(
        "contacts",
        sa.Column("id", sa.Integer, sa.Identity(always=False), primary_key=True),
        sa.Column("email", sa.Text, nullable=True),
        sa.Column("phone_number", sa.Text, nullable=True),
        sa.Column("linked_id", sa.Integer, sa.ForeignKey("crm.contacts.id"), nullable=True),
        sa.Column("link_precedence", sa.Text, nullable=False, server_default="primary"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("clock_timestamp()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("clock_timestamp()")),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "link_precedence IN ('primary', 'secondary')",
            name="ck_contact_link_precedence",
        ),
        sa.CheckConstraint(
            "email IS NOT NULL OR phone_number IS NOT NULL",
            name="ck_contact_has_identifier",
        ),
        sa.CheckConstraint(
            "(link_precedence = 'primary' AND linked_id IS NULL) OR "
            "(link_precedence = 'secondary' AND linked_id IS NOT NULL)",
            name="ck_contact_linked_id_matches_precedence",
        ),
        schema="crm",
    )
    op.create_index("ix_contacts_email", "contacts", ["email"], schema="crm")
    op.create_index("ix_contacts_phone_number", "contacts", ["phone_number"], schema="crm")
    op.create_index("ix_contacts_linked_id", "contacts", ["linked_id"], schema="crm")


def downgrade() -> None:
    op.drop_index("ix_contacts_linked_id", table_name="contacts", schema="crm")
    op.drop_index("ix_contacts_phone_number", table_name="contacts", schema="crm")
    op.drop_index("ix_contacts_email", table_name="contacts", schema="crm")
    op.drop_table("contacts", schema="crm")
