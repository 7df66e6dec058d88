"""Initial schema for principals, sessions, roles, permissions, and audit."""

from __future__ import annotations
from typing import Union, Sequence

from alembic import op
import sqlalchemy as sa
from authcore.models.types import GUID, JSONType, UTCDateTime

# revision identifiers, used by Alembic.
revision: str = "0001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", UTCDateTime(), nullable=False),
        sa.Column("updated_at", UTCDateTime(), nullable=False),
    ]


def upgrade() -> None:
    """Initial schema for principals, sessions, roles, permissions, and audit."""
    session_status_ref = sa.Enum("ACTIVE", "REVOKED", "EXPIRED", name="auth_session_status", native_enum=False)
    assignment_status_ref = sa.Enum("ACTIVE", "REVOKED", name="role_assignment_status", native_enum=False)

    op.create_table(
        "principals",
        sa.Column("id", GUID(), nullable=False),
        sa.Column("username", sa.String(length=150), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("is_locked", sa.Boolean(), nullable=False),
        sa.Column("failed_attempts", sa.Integer(), nullable=False),
        sa.Column("email_verified", sa.Boolean(), nullable=False),
        sa.Column("last_login_at", UTCDateTime(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_principals")),
        sa.UniqueConstraint("username", name="uq_principals_username"),
    )

    op.create_table(
        "auth_sessions",
        sa.Column("id", GUID(), nullable=False),
        sa.Column("principal_id", GUID(), nullable=False),
        sa.Column("token_hash", sa.String(length=64), nullable=False),
        sa.Column("device_info", sa.String(length=255), nullable=True),
        sa.Column("ip_address", sa.String(length=45), nullable=True),
        sa.Column("issued_at", UTCDateTime(), nullable=False),
        sa.Column("expires_at", UTCDateTime(), nullable=False),
        sa.Column("status", session_status_ref, nullable=False),
        sa.Column("revoked_at", UTCDateTime(), nullable=True),
        sa.ForeignKeyConstraint(
            ["principal_id"],
            ["principals.id"],
            name=op.f("fk_auth_sessions_principal_id_principals"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_auth_sessions")),
        sa.UniqueConstraint("token_hash", name="uq_auth_sessions_token_hash"),
    )
    op.create_index("ix_auth_sessions_principal_status", "auth_sessions", ["principal_id", "status"], unique=False)
    op.create_index("ix_auth_sessions_expires_at", "auth_sessions", ["expires_at"], unique=False)

    op.create_table(
        "roles",
        sa.Column("id", GUID(), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("description", sa.String(length=512), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("display_order", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_roles")),
        sa.UniqueConstraint("name", name="uq_roles_name"),
    )

    op.create_table(
        "permissions",
        sa.Column("id", GUID(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("category", sa.String(length=120), nullable=True),
        sa.Column("description", sa.String(length=1024), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_permissions")),
        sa.UniqueConstraint("name", name="uq_permissions_name"),
    )
    op.create_index("ix_permissions_category", "permissions", ["category"], unique=False)

    op.create_table(
        "role_permissions",
        sa.Column("role_id", GUID(), nullable=False),
        sa.Column("permission_id", GUID(), nullable=False),
        sa.ForeignKeyConstraint(["role_id"], ["roles.id"], name=op.f("fk_role_permissions_role_id_roles"), ondelete="CASCADE"),
        sa.ForeignKeyConstraint(
            ["permission_id"],
            ["permissions.id"],
            name=op.f("fk_role_permissions_permission_id_permissions"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("role_id", "permission_id", name=op.f("pk_role_permissions")),
    )
    op.create_index("ix_role_permissions_permission", "role_permissions", ["permission_id"], unique=False)

    op.create_table(
        "role_hierarchy",
        sa.Column("parent_role_id", GUID(), nullable=False),
        sa.Column("child_role_id", GUID(), nullable=False),
        sa.Column("inheritance_level", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("parent_role_id <> child_role_id", name="ck_role_hierarchy_no_self_edge"),
        sa.ForeignKeyConstraint(
            ["parent_role_id"], ["roles.id"], name=op.f("fk_role_hierarchy_parent_role_id_roles"), ondelete="CASCADE"
        ),
        sa.ForeignKeyConstraint(
            ["child_role_id"], ["roles.id"], name=op.f("fk_role_hierarchy_child_role_id_roles"), ondelete="CASCADE"
        ),
        sa.PrimaryKeyConstraint("parent_role_id", "child_role_id", name=op.f("pk_role_hierarchy")),
    )
    op.create_index("ix_role_hierarchy_child", "role_hierarchy", ["child_role_id"], unique=False)

    op.create_table(
        "role_assignments",
        sa.Column("id", GUID(), nullable=False),
        sa.Column("principal_id", GUID(), nullable=False),
        sa.Column("role_id", GUID(), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("status", assignment_status_ref, nullable=False),
        sa.Column("assigned_by", GUID(), nullable=True),
        sa.Column("assigned_at", UTCDateTime(), nullable=False),
        sa.Column("notes", sa.String(length=1024), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["principal_id"],
            ["principals.id"],
            name=op.f("fk_role_assignments_principal_id_principals"),
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["role_id"], ["roles.id"], name=op.f("fk_role_assignments_role_id_roles"), ondelete="RESTRICT"
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_role_assignments")),
    )
    op.create_index("ix_role_assignments_principal", "role_assignments", ["principal_id"], unique=False)
    op.create_index("ix_role_assignments_role", "role_assignments", ["role_id"], unique=False)

    op.create_table(
        "audit_logs",
        sa.Column("id", GUID(), nullable=False),
        sa.Column("sequence", sa.BigInteger().with_variant(sa.Integer(), "sqlite"), nullable=False),
        sa.Column("previous_hash", sa.String(length=64), nullable=False),
        sa.Column("entry_hash", sa.String(length=64), nullable=False),
        sa.Column("hash_version", sa.Integer(), nullable=False),
        sa.Column("event_id", sa.String(length=64), nullable=False),
        sa.Column("source", sa.String(length=128), nullable=False),
        sa.Column("action_type", sa.String(length=120), nullable=False),
        sa.Column("performed_by", GUID(), nullable=True),
        sa.Column("target_role_id", GUID(), nullable=True),
        sa.Column("target_permission_id", GUID(), nullable=True),
        sa.Column("target_principal_id", GUID(), nullable=True),
        sa.Column("old_value", JSONType(), nullable=True),
        sa.Column("new_value", JSONType(), nullable=True),
        sa.Column("ip_address", sa.String(length=45), nullable=True),
        sa.Column("user_agent", sa.String(length=512), nullable=True),
        sa.Column("created_at", UTCDateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_audit_logs")),
        sa.UniqueConstraint("event_id", name="uq_audit_logs_event_id"),
    )
    op.create_index("ix_audit_logs_sequence", "audit_logs", ["sequence"], unique=True)
    op.create_index("ix_audit_logs_action_type", "audit_logs", ["action_type"], unique=False)
    op.create_index("ix_audit_logs_performed_by", "audit_logs", ["performed_by"], unique=False)
    op.create_index("ix_audit_logs_target_role", "audit_logs", ["target_role_id"], unique=False)
    op.create_index("ix_audit_logs_target_principal", "audit_logs", ["target_principal_id"], unique=False)


def downgrade() -> None:
    """Drop every table created by this revision."""
    op.drop_table("audit_logs")
    op.drop_table("role_assignments")
    op.drop_table("role_hierarchy")
    op.drop_table("role_permissions")
    op.drop_table("permissions")
    op.drop_table("roles")
    op.drop_table("auth_sessions")
    op.drop_table("principals")
