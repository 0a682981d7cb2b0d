"""005: create order_events table

Revision ID: 005
Revises: 004
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "005"
down_revision: Union[str, None] = "004"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE order_events (
            id              BIGSERIAL       PRIMARY KEY,
            order_id        VARCHAR(64)     NOT NULL REFERENCES orders (id),
            event_type      VARCHAR(32)     NOT NULL,
            payload         JSONB           NOT NULL DEFAULT '{}'::jsonb,
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_order_events_type CHECK (event_type IN (
                'ORDER_CREATED', 'INTENT_CREATED', 'INTENT_FAILED',
                'PAYMENT_VERIFIED', 'PAYMENT_REJECTED', 'PAYMENT_LATE',
                'REFUND_REQUESTED', 'REFUND_ISSUED', 'REFUND_FAILED',
                'ORDER_CANCELLED', 'ORDER_COMPLETED'
            ))
        );
    """)
    op.execute("CREATE INDEX idx_order_events_order ON order_events (order_id, id);")
    op.execute("""
        CREATE TRIGGER trg_order_events_append_only
            BEFORE UPDATE OR DELETE ON order_events
            FOR EACH ROW EXECUTE FUNCTION fn_reject_mutation();
    """)
    op.execute("COMMENT ON TABLE order_events IS 'Append-only audit trail of order and payment transitions';")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS order_events CASCADE;")
