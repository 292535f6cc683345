from alembic import op
import sqlalchemy as sa

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None

lifecycle_state = sa.Enum("active", "trashed", name="lifecycle_state")


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=True),
        sa.Column("password_hash", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "sessions",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("user_id", sa.String(length=36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("refresh_token", sa.Text(), nullable=False, unique=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column("ip_address", sa.String(length=64), nullable=True),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
    )
    op.create_index("ix_sessions_user_id", "sessions", ["user_id"])

    op.create_table(
        "folders",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("parent_id", sa.String(length=36), sa.ForeignKey("folders.id", ondelete="CASCADE"), nullable=True),
        sa.Column("owner_id", sa.String(length=36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("is_starred", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("state", lifecycle_state, nullable=False, server_default="active"),
        sa.Column("trashed_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
    )
    op.create_index("ix_folders_state", "folders", ["state"])
    op.create_index("idx_folders_owner_parent", "folders", ["owner_id", "parent_id"])
    op.create_index("idx_folders_owner_state", "folders", ["owner_id", "state"])

    op.create_table(
        "assets",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("original_name", sa.String(length=255), nullable=False),
        sa.Column("mime_type", sa.String(length=255), nullable=False),
        sa.Column("size", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("storage_key", sa.Text(), nullable=False),
        sa.Column("thumbnail_key", sa.Text(), nullable=True),
        sa.Column("folder_id", sa.String(length=36), sa.ForeignKey("folders.id", ondelete="SET NULL"), nullable=True),
        sa.Column("owner_id", sa.String(length=36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("is_starred", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("state", lifecycle_state, nullable=False, server_default="active"),
        sa.Column("trashed_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.CheckConstraint("size >= 0", name="ck_assets_size_non_negative"),
    )
    op.create_index("ix_assets_state", "assets", ["state"])
    op.create_index("idx_assets_owner_folder", "assets", ["owner_id", "folder_id"])
    op.create_index("idx_assets_owner_state", "assets", ["owner_id", "state"])

    op.create_table(
        "storage_quotas",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("user_id", sa.String(length=36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True),
        sa.Column("quota_limit", sa.BigInteger(), nullable=False, server_default=str(5 * 1024 * 1024 * 1024)),
        sa.Column("used_storage", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
    )

    op.create_table(
        "recent_activity",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("user_id", sa.String(length=36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("asset_id", sa.String(length=36), sa.ForeignKey("assets.id", ondelete="CASCADE"), nullable=True),
        sa.Column("folder_id", sa.String(length=36), sa.ForeignKey("folders.id", ondelete="CASCADE"), nullable=True),
        sa.Column("item_type", sa.String(length=16), nullable=False),
        sa.Column("accessed_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
    )
    op.create_index("idx_recent_activity_user_accessed", "recent_activity", ["user_id", "accessed_at"])
    op.create_index("idx_recent_activity_user_asset", "recent_activity", ["user_id", "asset_id"])
    op.create_index("idx_recent_activity_user_folder", "recent_activity", ["user_id", "folder_id"])

    op.create_table(
        "shares",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("owner_id", sa.String(length=36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("folder_id", sa.String(length=36), sa.ForeignKey("folders.id", ondelete="CASCADE"), nullable=True),
        sa.Column("asset_id", sa.String(length=36), sa.ForeignKey("assets.id", ondelete="CASCADE"), nullable=True),
        sa.Column("share_type", sa.String(length=8), nullable=False),
        sa.Column("shared_with_user_id", sa.String(length=36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=True),
        sa.Column("shared_with_email", sa.String(length=320), nullable=True),
        sa.Column("permission", sa.String(length=8), nullable=False, server_default="view"),
        sa.Column("link_token", sa.String(length=128), nullable=True, unique=True),
        sa.Column("link_password", sa.Text(), nullable=True),
        sa.Column("expires_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.CheckConstraint("(folder_id IS NULL) <> (asset_id IS NULL)", name="ck_shares_exactly_one_item"),
    )
    op.create_index("idx_shares_asset_user", "shares", ["asset_id", "shared_with_user_id"])
    op.create_index("idx_shares_folder_user", "shares", ["folder_id", "shared_with_user_id"])
    op.create_index("idx_shares_owner_type", "shares", ["owner_id", "share_type"])


def downgrade() -> None:
    op.drop_table("shares")
    op.drop_table("recent_activity")
    op.drop_table("storage_quotas")
    op.drop_table("assets")
    op.drop_table("folders")
    lifecycle_state.drop(op.get_bind(), checkfirst=True)
    op.drop_table("sessions")
    op.drop_table("users")
