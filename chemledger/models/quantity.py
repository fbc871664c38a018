# chemledger/models/quantity.py
from __future__ import annotations

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from chemledger.db.base import Base


class Quantity(Base):
    """单条流水的数量（与 Entry 一对一，随流水创建 / 原地修改 / 删除）。"""

    __tablename__ = "quantities"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    num_of_units: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    quantity_per_unit: Mapped[int] = mapped_column(sa.Integer, nullable=False)

    __table_args__ = (
        sa.CheckConstraint("num_of_units > 0", name="ck_quantities_units_pos"),
        sa.CheckConstraint("quantity_per_unit > 0", name="ck_quantities_per_unit_pos"),
        {"sqlite_autoincrement": True},
    )

    def __repr__(self) -> str:
        return f"<Quantity id={self.id} units={self.num_of_units} per_unit={self.quantity_per_unit}>"
