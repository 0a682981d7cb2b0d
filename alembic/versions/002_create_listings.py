"""002: create listings table

Revision ID: 002
Revises: 001
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE listings (
            id                  VARCHAR(64)     PRIMARY KEY,
            seller_id           VARCHAR(64)     NOT NULL,
            title               VARCHAR(200)    NOT NULL,
            unit_price          BIGINT          NOT NULL,
            quantity_on_hand    INT             NOT NULL DEFAULT 0,
            unit                VARCHAR(20)     NOT NULL DEFAULT 'kg',
            status              VARCHAR(20)     NOT NULL DEFAULT 'active',
            discount_bps        INT             NOT NULL DEFAULT 0,
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_listings_unit_price   CHECK (unit_price > 0),
            CONSTRAINT ck_listings_on_hand      CHECK (quantity_on_hand >= 0),
            CONSTRAINT ck_listings_discount     CHECK (discount_bps >= 0 AND discount_bps < 10000),
            CONSTRAINT ck_listings_status       CHECK (status IN ('active', 'paused', 'sold_out'))
        );
    """)
    op.execute("CREATE INDEX idx_listings_seller ON listings (seller_id, status);")
    op.execute("""
        CREATE TRIGGER trg_listings_updated_at
            BEFORE UPDATE ON listings
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)
    op.execute("COMMENT ON TABLE listings IS 'Seller produce listings; quantity_on_hand excludes reserved stock';")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS listings CASCADE;")
