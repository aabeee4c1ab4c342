# alembic/versions/20260101_initial_marketplace_schema.py
from alembic import op
import sqlalchemy as sa

# --- revision identifiers ---
revision = "20260101_initial_marketplace_schema"
down_revision = None
branch_labels = None
depends_on = None

LISTING_STATUS = ("DRAFT", "ACTIVE", "SOLD", "EXPIRED")
CONDITION = ("NEW", "LIKE_NEW", "GOOD", "FAIR", "POOR")
OFFER_STATUS = ("PENDING", "ACCEPTED", "DECLINED", "WITHDRAWN")
TX_STATUS = (
    "OFFER_ACCEPTED", "PAYMENT_PENDING", "PAID", "SHIPPED",
    "DELIVERED", "COMPLETED", "DISPUTED", "CANCELLED",
)


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("password_hash", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "listings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("seller_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("price", sa.Float(), nullable=False),
        sa.Column("category", sa.String(), nullable=False),
        sa.Column("condition", sa.Enum(*CONDITION, name="listingcondition"), nullable=False),
        sa.Column("images", sa.JSON(), nullable=False),
        sa.Column("status", sa.Enum(*LISTING_STATUS, name="listingstatus"), nullable=False, server_default="ACTIVE"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("price >= 0", name="ck_listing_price_nonneg"),
    )
    op.create_index("ix_listings_id", "listings", ["id"])
    op.create_index("ix_listing_status_created", "listings", ["status", "created_at"])
    op.create_index("ix_listing_seller", "listings", ["seller_id"])
    op.create_index("ix_listing_category", "listings", ["category"])

    op.create_table(
        "offers",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("listing_id", sa.Integer(), sa.ForeignKey("listings.id"), nullable=False),
        sa.Column("buyer_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("amount", sa.Float(), nullable=False),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("status", sa.Enum(*OFFER_STATUS, name="offerstatus"), nullable=False, server_default="PENDING"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("amount >= 0", name="ck_offer_amount_nonneg"),
    )
    op.create_index("ix_offers_id", "offers", ["id"])
    op.create_index("ix_offer_listing_status", "offers", ["listing_id", "status"])
    op.create_index("ix_offer_buyer_created", "offers", ["buyer_id", "created_at"])

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("offer_id", sa.Integer(), sa.ForeignKey("offers.id"), nullable=False, unique=True),
        sa.Column("buyer_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("seller_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("status", sa.Enum(*TX_STATUS, name="transactionstatus"), nullable=False, server_default="OFFER_ACCEPTED"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_transactions_id", "transactions", ["id"])
    op.create_index("ix_tx_buyer_updated", "transactions", ["buyer_id", "updated_at"])
    op.create_index("ix_tx_seller_updated", "transactions", ["seller_id", "updated_at"])

    op.create_table(
        "user_notifications",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("meta", sa.JSON(), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_user_notifications_id", "user_notifications", ["id"])
    op.create_index("ix_user_notifications_user_id", "user_notifications", ["user_id"])
    op.create_index("ix_notif_user_read_created", "user_notifications", ["user_id", "is_read", "created_at"])


def downgrade() -> None:
    op.drop_table("user_notifications")
    op.drop_table("transactions")
    op.drop_table("offers")
    op.drop_table("listings")
    op.drop_table("users")
    for name in ("transactionstatus", "offerstatus", "listingstatus", "listingcondition"):
        sa.Enum(name=name).drop(op.get_bind(), checkfirst=True)
