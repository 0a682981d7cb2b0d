"""003: create inventory_reservations table

Revision ID: 003
Revises: 002
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "003"
down_revision: Union[str, None] = "002"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE inventory_reservations (
            id              VARCHAR(64)     PRIMARY KEY,
            listing_id      VARCHAR(64)     NOT NULL REFERENCES listings (id),
            order_id        VARCHAR(64),
            quantity        INT             NOT NULL,
            status          VARCHAR(20)     NOT NULL DEFAULT 'reserved',
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_reservations_quantity CHECK (quantity > 0),
            CONSTRAINT ck_reservations_status   CHECK (status IN ('reserved', 'released', 'committed'))
        );
    """)
    op.execute("CREATE INDEX idx_reservations_order ON inventory_reservations (order_id);")
    # Sweep scan: open holds never attached to an order
    op.execute("""
        CREATE INDEX idx_reservations_orphans
        ON inventory_reservations (created_at)
        WHERE status = 'reserved' AND order_id IS NULL;
    """)
    op.execute("""
        CREATE TRIGGER trg_reservations_updated_at
            BEFORE UPDATE ON inventory_reservations
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS inventory_reservations CASCADE;")
