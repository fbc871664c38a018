# chemledger/models/entry.py
from __future__ import annotations

from typing import Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from chemledger.db.base import Base


class Entry(Base):
    """
    库存流水（一条入库 / 出库）：

    - date:      自然日本地零点的 epoch 秒；
    - id:        单调递增（sqlite AUTOINCREMENT），同日内按插入顺序定序；
    - net_stock: 缓存值 = 该化合物全部流水按 (date, id) 从 0 重放后、本条之后的余额。
    """

    __tablename__ = "entries"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    type: Mapped[str] = mapped_column(sa.String(16), nullable=False)
    compound_id: Mapped[str] = mapped_column(
        sa.String(128), sa.ForeignKey("compounds.id"), nullable=False
    )
    date: Mapped[int] = mapped_column(sa.BigInteger, nullable=False)
    remark: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True)
    voucher_no: Mapped[Optional[str]] = mapped_column(sa.String(128), nullable=True)
    quantity_id: Mapped[int] = mapped_column(
        sa.Integer, sa.ForeignKey("quantities.id"), nullable=False, unique=True
    )
    net_stock: Mapped[int] = mapped_column(sa.BigInteger, nullable=False, default=0)

    __table_args__ = (
        sa.CheckConstraint("type IN ('incoming', 'outgoing')", name="ck_entries_type"),
        sa.Index("ix_entries_compound_date_id", "compound_id", "date", "id"),
        sa.Index("ix_entries_date", "date"),
        {"sqlite_autoincrement": True},
    )

    def __repr__(self) -> str:
        return (
            f"<Entry id={self.id} {self.type} compound={self.compound_id} "
            f"date={self.date} net={self.net_stock}>"
        )
