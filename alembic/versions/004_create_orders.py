"""004: create orders and order_items tables

Revision ID: 004
Revises: 003
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "004"
down_revision: Union[str, None] = "003"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE orders (
            id                  VARCHAR(64)     PRIMARY KEY,
            buyer_id            VARCHAR(64)     NOT NULL,
            total_amount        BIGINT          NOT NULL,
            currency            CHAR(3)         NOT NULL DEFAULT 'INR',
            shipping_address    JSONB           NOT NULL,
            payment_method      VARCHAR(20)     NOT NULL,
            status              VARCHAR(20)     NOT NULL DEFAULT 'pending_payment',
            payment_status      VARCHAR(20)     NOT NULL DEFAULT 'pending',
            cancel_reason       VARCHAR(200),
            gateway_order_id    VARCHAR(64),
            gateway_payment_id  VARCHAR(64),
            payment_signature   VARCHAR(128),
            gateway_refund_id   VARCHAR(64),
            version             INT             NOT NULL DEFAULT 0,
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            paid_at             TIMESTAMPTZ,
            cancelled_at        TIMESTAMPTZ,
            completed_at        TIMESTAMPTZ,
            CONSTRAINT uq_orders_gateway_order_id   UNIQUE (gateway_order_id),
            CONSTRAINT ck_orders_total_amount       CHECK (total_amount > 0),
            CONSTRAINT ck_orders_payment_method     CHECK (
                payment_method IN ('upi', 'card', 'netbanking', 'wallet')
            ),
            CONSTRAINT ck_orders_status             CHECK (
                status IN ('pending_payment', 'confirmed', 'completed', 'cancelled')
            ),
            CONSTRAINT ck_orders_payment_status     CHECK (
                payment_status IN ('pending', 'paid', 'refund_pending', 'refunded', 'failed')
            ),
            CONSTRAINT ck_orders_paid_has_payment   CHECK (
                payment_status NOT IN ('paid', 'refund_pending', 'refunded')
                OR gateway_payment_id IS NOT NULL
            ),
            CONSTRAINT ck_orders_refund_has_id      CHECK (
                payment_status <> 'refunded' OR gateway_refund_id IS NOT NULL
            )
        );
    """)
    op.execute("CREATE INDEX idx_orders_buyer ON orders (buyer_id, id DESC);")
    op.execute("""
        CREATE INDEX idx_orders_pending
        ON orders (updated_at)
        WHERE status = 'pending_payment';
    """)
    op.execute("""
        CREATE TRIGGER trg_orders_updated_at
            BEFORE UPDATE ON orders
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)

    op.execute("""
        CREATE TABLE order_items (
            order_id        VARCHAR(64)     NOT NULL REFERENCES orders (id) ON DELETE CASCADE,
            line_no         SMALLINT        NOT NULL,
            listing_id      VARCHAR(64)     NOT NULL REFERENCES listings (id),
            seller_id       VARCHAR(64)     NOT NULL,
            title           VARCHAR(200)    NOT NULL,
            quantity        INT             NOT NULL,
            unit_price      BIGINT          NOT NULL,
            line_total      BIGINT          NOT NULL,
            reservation_id  VARCHAR(64)     REFERENCES inventory_reservations (id),
            PRIMARY KEY (order_id, line_no),
            CONSTRAINT ck_order_items_quantity  CHECK (quantity > 0),
            CONSTRAINT ck_order_items_total     CHECK (line_total = unit_price * quantity)
        );
    """)
    op.execute("CREATE INDEX idx_order_items_seller ON order_items (seller_id, order_id);")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS order_items CASCADE;")
    op.execute("DROP TABLE IF EXISTS orders CASCADE;")
