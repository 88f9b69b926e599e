"""create cards, collections and wishlist tables

Revision ID: 002
Revises: 001
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import ARRAY, ENUM, UUID

revision = "002"
down_revision = "001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    bind = op.get_bind()

    cardcondition = ENUM("NM", "LP", "MP", "HP", "DMG", name="cardcondition", create_type=False)
    cardcondition.create(bind, checkfirst=True)

    pricemode = ENUM("percentage", "fixed", name="pricemode", create_type=False)
    pricemode.create(bind, checkfirst=True)

    foilpreference = ENUM("any", "foil_only", "non_foil", name="foilpreference", create_type=False)
    foilpreference.create(bind, checkfirst=True)

    editionpreference = ENUM("any", "specific", name="editionpreference", create_type=False)
    editionpreference.create(bind, checkfirst=True)

    op.create_table(
        "cards",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("scryfall_id", sa.String(64), nullable=False, unique=True),
        sa.Column("oracle_id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("set_code", sa.String(10), nullable=False),
        sa.Column("set_name", sa.String(200), nullable=True),
        sa.Column("image_uri", sa.String(500), nullable=True),
        sa.Column("prices_usd", sa.Numeric(10, 2), nullable=True),
        sa.Column("prices_usd_foil", sa.Numeric(10, 2), nullable=True),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True),
            server_default=sa.func.now(), nullable=False,
        ),
    )
    op.create_index("ix_cards_oracle_id", "cards", ["oracle_id"])

    op.create_table(
        "collections",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "user_id", UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("card_id", UUID(as_uuid=True), sa.ForeignKey("cards.id"), nullable=False),
        sa.Column("quantity", sa.Integer(), server_default="1", nullable=False),
        sa.Column("condition", cardcondition, nullable=False),
        sa.Column("foil", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("price_mode", pricemode, server_default="percentage", nullable=False),
        sa.Column("price_percentage", sa.Numeric(6, 2), server_default="100", nullable=False),
        sa.Column("price_fixed", sa.Numeric(10, 2), nullable=True),
        sa.Column("is_paused", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True),
            server_default=sa.func.now(), nullable=False,
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True),
            server_default=sa.func.now(), nullable=False,
        ),
        sa.CheckConstraint("quantity > 0", name="ck_collections_quantity_positive"),
    )
    op.create_index("ix_collections_user_id", "collections", ["user_id"])

    op.create_table(
        "wishlist",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "user_id", UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("card_id", UUID(as_uuid=True), sa.ForeignKey("cards.id"), nullable=False),
        sa.Column("quantity", sa.Integer(), server_default="1", nullable=False),
        sa.Column("max_price", sa.Numeric(10, 2), nullable=True),
        sa.Column("min_condition", cardcondition, server_default="LP", nullable=False),
        sa.Column("foil_preference", foilpreference, server_default="any", nullable=False),
        sa.Column("edition_preference", editionpreference, server_default="any", nullable=False),
        sa.Column("specific_editions", ARRAY(sa.String(64)), server_default="{}", nullable=False),
        sa.Column(
            "created_at", sa.DateTime(timezone=True),
            server_default=sa.func.now(), nullable=False,
        ),
    )
    op.create_index("ix_wishlist_user_id", "wishlist", ["user_id"])


def downgrade() -> None:
    op.drop_index("ix_wishlist_user_id", table_name="wishlist")
    op.drop_table("wishlist")
    op.drop_index("ix_collections_user_id", table_name="collections")
    op.drop_table("collections")
    op.drop_index("ix_cards_oracle_id", table_name="cards")
    op.drop_table("cards")
    bind = op.get_bind()
    sa.Enum(name="editionpreference").drop(bind, checkfirst=True)
    sa.Enum(name="foilpreference").drop(bind, checkfirst=True)
    sa.Enum(name="pricemode").drop(bind, checkfirst=True)
    sa.Enum(name="cardcondition").drop(bind, checkfirst=True)
