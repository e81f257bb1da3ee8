"""create_check_in_tables

Revision ID: 3f1c2a7b9d10
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "3f1c2a7b9d10"
down_revision = None
branch_labels = None
depends_on = None

ACTIVE_QR_CODE = sa.text("status IN ('GENERATED', 'SENT')")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.current_timestamp(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.current_timestamp(),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "guests",
        sa.Column("uuid", sa.Uuid(), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("first_name", sa.String(255), nullable=False),
        sa.Column("last_name", sa.String(255), nullable=False),
        sa.Column("company", sa.String(255), nullable=True),
        sa.Column("position", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("is_vip", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_companion", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
    )
    op.create_index("ix_guests_email", "guests", ["email"], unique=True)
    op.create_index("ix_guests_first_name", "guests", ["first_name"])
    op.create_index("ix_guests_last_name", "guests", ["last_name"])

    op.create_table(
        "events",
        sa.Column("uuid", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("location", sa.String(500), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("max_guests", sa.Integer(), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "event_memberships",
        sa.Column("uuid", sa.Uuid(), primary_key=True),
        sa.Column(
            "event_id", sa.Uuid(), sa.ForeignKey("events.uuid", ondelete="CASCADE"), nullable=False
        ),
        sa.Column(
            "guest_id", sa.Uuid(), sa.ForeignKey("guests.uuid", ondelete="CASCADE"), nullable=False
        ),
        *_timestamps(),
        sa.UniqueConstraint("event_id", "guest_id", name="uq_event_memberships_event_guest"),
    )
    op.create_index("ix_event_memberships_event_id", "event_memberships", ["event_id"])
    op.create_index("ix_event_memberships_guest_id", "event_memberships", ["guest_id"])

    op.create_table(
        "invitations",
        sa.Column("uuid", sa.Uuid(), primary_key=True),
        sa.Column(
            "guest_id", sa.Uuid(), sa.ForeignKey("guests.uuid", ondelete="CASCADE"), nullable=False
        ),
        sa.Column(
            "event_id", sa.Uuid(), sa.ForeignKey("events.uuid", ondelete="CASCADE"), nullable=False
        ),
        sa.Column(
            "type",
            sa.Enum("SAVE_THE_DATE", "INVITATION", "SURVEY", name="invitation_type_enum"),
            nullable=False,
        ),
        sa.Column(
            "status",
            sa.Enum("PENDING", "SENT", "OPENED", "RESPONDED", name="invitation_status_enum"),
            nullable=False,
        ),
        sa.Column(
            "response",
            sa.Enum("COMING", "NOT_COMING", "COMING_WITH_COMPANION", name="rsvp_response_enum"),
            nullable=True,
        ),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("opened_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("has_companion", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("companion_name", sa.String(255), nullable=True),
        sa.Column("companion_email", sa.String(255), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("guest_id", "event_id", "type", name="uq_invitations_guest_event_type"),
    )
    op.create_index("ix_invitations_guest_id", "invitations", ["guest_id"])
    op.create_index("ix_invitations_event_id", "invitations", ["event_id"])

    op.create_table(
        "qr_codes",
        sa.Column("uuid", sa.Uuid(), primary_key=True),
        sa.Column("code", sa.String(255), nullable=False),
        sa.Column("type", sa.Enum("REGULAR", "VIP", name="qr_code_type_enum"), nullable=False),
        sa.Column(
            "status",
            sa.Enum("GENERATED", "SENT", "USED", "EXPIRED", name="qr_code_status_enum"),
            nullable=False,
        ),
        sa.Column(
            "guest_id", sa.Uuid(), sa.ForeignKey("guests.uuid", ondelete="CASCADE"), nullable=False
        ),
        sa.Column(
            "event_id", sa.Uuid(), sa.ForeignKey("events.uuid", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("issued_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_qr_codes_code", "qr_codes", ["code"], unique=True)
    op.create_index("ix_qr_codes_status", "qr_codes", ["status"])
    op.create_index("ix_qr_codes_guest_id", "qr_codes", ["guest_id"])
    op.create_index("ix_qr_codes_event_id", "qr_codes", ["event_id"])
    # At most one active code per guest, event and type
    op.create_index(
        "uq_qr_codes_active_guest_event_type",
        "qr_codes",
        ["guest_id", "event_id", "type"],
        unique=True,
        postgresql_where=ACTIVE_QR_CODE,
        sqlite_where=ACTIVE_QR_CODE,
    )


def downgrade() -> None:
    op.drop_table("qr_codes")
    op.drop_table("invitations")
    op.drop_table("event_memberships")
    op.drop_table("events")
    op.drop_table("guests")

    # Postgres keeps enum types around after their tables are gone
    for enum_name in (
        "qr_code_status_enum",
        "qr_code_type_enum",
        "rsvp_response_enum",
        "invitation_status_enum",
        "invitation_type_enum",
    ):
        sa.Enum(name=enum_name).drop(op.get_bind(), checkfirst=True)
