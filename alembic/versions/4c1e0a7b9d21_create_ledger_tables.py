"""create_ledger_tables

Revision ID: 4c1e0a7b9d21
Revises:
Create Date: 2024-01-15 10:12:03.418220

"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "4c1e0a7b9d21"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "compounds",
        sa.Column("id", sa.String(length=128), primary_key=True),
        sa.Column("lower_case_name", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("scale", sa.String(length=8), nullable=False),
        sa.CheckConstraint("scale IN ('g', 'ml')", name="ck_compounds_scale"),
        sa.UniqueConstraint("lower_case_name", name="uq_compounds_lower_case_name"),
    )

    op.create_table(
        "quantities",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("num_of_units", sa.Integer(), nullable=False),
        sa.Column("quantity_per_unit", sa.Integer(), nullable=False),
        sa.CheckConstraint("num_of_units > 0", name="ck_quantities_units_pos"),
        sa.CheckConstraint("quantity_per_unit > 0", name="ck_quantities_per_unit_pos"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "entries",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("type", sa.String(length=16), nullable=False),
        sa.Column("compound_id", sa.String(length=128), sa.ForeignKey("compounds.id"), nullable=False),
        sa.Column("date", sa.BigInteger(), nullable=False),
        sa.Column("remark", sa.Text(), nullable=True),
        sa.Column("voucher_no", sa.String(length=128), nullable=True),
        sa.Column("quantity_id", sa.Integer(), sa.ForeignKey("quantities.id"), nullable=False),
        sa.Column("net_stock", sa.BigInteger(), nullable=False),
        sa.CheckConstraint("type IN ('incoming', 'outgoing')", name="ck_entries_type"),
        sa.UniqueConstraint("quantity_id", name="uq_entries_quantity_id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_entries_compound_date_id", "entries", ["compound_id", "date", "id"])
    op.create_index("ix_entries_date", "entries", ["date"])


def downgrade() -> None:
    op.drop_index("ix_entries_date", table_name="entries")
    op.drop_index("ix_entries_compound_date_id", table_name="entries")
    op.drop_table("entries")
    op.drop_table("quantities")
    op.drop_table("compounds")
