"""Persist bank-transfer settlements, initialization claims and deposit returns.

Revision ID: 002_transfers_and_deposits
Revises: 001_initial
Create Date: 2026-10-19

- payment_records: operator-recorded transfer figures for the manual
  gateway, and the claim timestamp taken while a gateway initialization
  is in flight
- bookings: when the security deposit went back to the guest
"""

from typing import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers
revision: str = "002_transfers_and_deposits"
down_revision: str = "001_initial"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.add_column("payment_records", sa.Column("initializing_since", sa.DateTime(timezone=True)))
    op.add_column("payment_records", sa.Column("received_amount", sa.Integer))
    op.add_column("payment_records", sa.Column("received_currency", sa.String(3)))
    op.add_column("payment_records", sa.Column("transfer_recorded_at", sa.DateTime(timezone=True)))
    op.add_column("payment_records", sa.Column("transfer_declined_at", sa.DateTime(timezone=True)))
    op.add_column("bookings", sa.Column("deposit_returned_at", sa.DateTime(timezone=True)))


def downgrade() -> None:
    op.drop_column("bookings", "deposit_returned_at")
    op.drop_column("payment_records", "transfer_declined_at")
    op.drop_column("payment_records", "transfer_recorded_at")
    op.drop_column("payment_records", "received_currency")
    op.drop_column("payment_records", "received_amount")
    op.drop_column("payment_records", "initializing_since")
