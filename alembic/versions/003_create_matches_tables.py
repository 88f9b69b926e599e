"""create matches and match_cards tables

Revision ID: 003
Revises: 002
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import ENUM, UUID

revision = "003"
down_revision = "002"
branch_labels = None
depends_on = None


def upgrade() -> None:
    bind = op.get_bind()

    matchtype = ENUM("two_way", "one_way_buy", "one_way_sell", name="matchtype", create_type=False)
    matchtype.create(bind, checkfirst=True)

    matchstatus = ENUM(
        "active", "contacted", "requested", "confirmed",
        "completed", "cancelled", "dismissed",
        name="matchstatus", create_type=False,
    )
    matchstatus.create(bind, checkfirst=True)

    carddirection = ENUM("a_wants", "b_wants", name="carddirection", create_type=False)
    carddirection.create(bind, checkfirst=True)

    cardcondition = ENUM(name="cardcondition", create_type=False)

    op.create_table(
        "matches",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "user_a_id", UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "user_b_id", UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("match_type", matchtype, nullable=False),
        sa.Column("status", matchstatus, server_default="active", nullable=False),
        sa.Column("distance_km", sa.Float(), nullable=True),
        sa.Column("cards_a_wants_count", sa.Integer(), server_default="0", nullable=False),
        sa.Column("cards_b_wants_count", sa.Integer(), server_default="0", nullable=False),
        sa.Column("value_a_wants", sa.Numeric(12, 2), server_default="0", nullable=False),
        sa.Column("value_b_wants", sa.Numeric(12, 2), server_default="0", nullable=False),
        sa.Column("match_score", sa.Float(), server_default="0", nullable=False),
        sa.Column("has_price_warnings", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("is_user_modified", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("requested_by", UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("requested_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("escrow_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("user_a_completed", sa.Boolean(), nullable=True),
        sa.Column("user_b_completed", sa.Boolean(), nullable=True),
        sa.Column("has_conflict", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column(
            "created_at", sa.DateTime(timezone=True),
            server_default=sa.func.now(), nullable=False,
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True),
            server_default=sa.func.now(), nullable=False,
        ),
        sa.CheckConstraint("user_a_id <> user_b_id", name="ck_matches_distinct_users"),
        sa.UniqueConstraint("user_a_id", "user_b_id", name="uq_matches_user_pair"),
    )
    op.create_index("ix_matches_user_a_id", "matches", ["user_a_id"])
    op.create_index("ix_matches_user_b_id", "matches", ["user_b_id"])

    op.create_table(
        "match_cards",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "match_id", UUID(as_uuid=True),
            sa.ForeignKey("matches.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("direction", carddirection, nullable=False),
        sa.Column(
            "wishlist_id", UUID(as_uuid=True),
            sa.ForeignKey("wishlist.id", ondelete="SET NULL"), nullable=True,
        ),
        sa.Column(
            "collection_id", UUID(as_uuid=True),
            sa.ForeignKey("collections.id", ondelete="SET NULL"), nullable=True,
        ),
        sa.Column("card_id", UUID(as_uuid=True), sa.ForeignKey("cards.id"), nullable=False),
        sa.Column("card_name", sa.String(200), nullable=False),
        sa.Column("card_set_code", sa.String(10), nullable=True),
        sa.Column("card_image_uri", sa.String(500), nullable=True),
        sa.Column("asking_price", sa.Numeric(10, 2), nullable=True),
        sa.Column("max_price", sa.Numeric(10, 2), nullable=True),
        sa.Column("price_exceeds_max", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("collection_condition", cardcondition, nullable=False),
        sa.Column("wishlist_min_condition", cardcondition, nullable=False),
        sa.Column("is_foil", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("quantity_available", sa.Integer(), server_default="1", nullable=False),
        sa.Column("quantity_wanted", sa.Integer(), server_default="1", nullable=False),
        sa.Column("is_excluded", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("is_custom", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("added_by_user_id", UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=True),
    )
    op.create_index("ix_match_cards_match_id", "match_cards", ["match_id"])


def downgrade() -> None:
    op.drop_index("ix_match_cards_match_id", table_name="match_cards")
    op.drop_table("match_cards")
    op.drop_index("ix_matches_user_b_id", table_name="matches")
    op.drop_index("ix_matches_user_a_id", table_name="matches")
    op.drop_table("matches")
    bind = op.get_bind()
    sa.Enum(name="carddirection").drop(bind, checkfirst=True)
    sa.Enum(name="matchstatus").drop(bind, checkfirst=True)
    sa.Enum(name="matchtype").drop(bind, checkfirst=True)
