"""create brand login tables

Revision ID: a3f9c2d1e7b4
Revises:
Create Date: 2026-10-19 10:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "a3f9c2d1e7b4"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _table_exists(table_name: str) -> bool:
    inspector = sa.inspect(op.get_bind())
    try:
        return table_name in inspector.get_table_names()
    except Exception:
        return False


def upgrade() -> None:
    if not _table_exists("brand_accounts"):
        op.create_table(
            "brand_accounts",
            sa.Column("id", sa.String(length=36), primary_key=True),
            sa.Column("email", sa.String(length=255), nullable=False),
            sa.Column("slug", sa.String(length=100), nullable=False),
            sa.Column("display_name", sa.String(length=100), nullable=True),
            sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("bio", sa.Text(), nullable=True),
            sa.Column("cover_image_url", sa.String(length=500), nullable=True),
            sa.Column("card_color", sa.String(length=20), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
        op.create_index("ix_brand_accounts_email", "brand_accounts", ["email"], unique=True)
        op.create_index("ix_brand_accounts_slug", "brand_accounts", ["slug"], unique=True)

    if not _table_exists("brand_otps"):
        op.create_table(
            "brand_otps",
            sa.Column("id", sa.String(length=36), primary_key=True),
            sa.Column("email", sa.String(length=255), nullable=False),
            sa.Column("code_hash", sa.String(length=64), nullable=False),
            sa.Column("ip", sa.String(length=45), nullable=False, server_default=""),
            sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("expires_at", sa.DateTime(), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
        op.create_index("ix_brand_otps_email", "brand_otps", ["email"])
        op.create_index("ix_brand_otps_expires_at", "brand_otps", ["expires_at"])

    if not _table_exists("brand_login_nonces"):
        op.create_table(
            "brand_login_nonces",
            sa.Column("id", sa.String(length=36), primary_key=True),
            sa.Column("email", sa.String(length=255), nullable=False),
            sa.Column("nonce_hash", sa.String(length=64), nullable=False),
            sa.Column("expires_at", sa.DateTime(), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
        op.create_index("ix_brand_login_nonces_email", "brand_login_nonces", ["email"])
        op.create_index("ix_brand_login_nonces_nonce_hash", "brand_login_nonces", ["nonce_hash"], unique=True)
        op.create_index("ix_brand_login_nonces_expires_at", "brand_login_nonces", ["expires_at"])


def downgrade() -> None:
    op.drop_table("brand_login_nonces")
    op.drop_table("brand_otps")
    op.drop_table("brand_accounts")
