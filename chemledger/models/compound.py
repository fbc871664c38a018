# chemledger/models/compound.py
from __future__ import annotations

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from chemledger.db.base import Base


class Compound(Base):
    """
    化合物主档：
    - id:              由名称推导的稳定主键（camelCase）
    - lower_case_name: 大小写无关的唯一键
    - scale:           g / ml
    被流水引用期间不得删除（entries.compound_id 外键）。
    """

    __tablename__ = "compounds"

    id: Mapped[str] = mapped_column(sa.String(128), primary_key=True)
    lower_case_name: Mapped[str] = mapped_column(sa.String(255), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    scale: Mapped[str] = mapped_column(sa.String(8), nullable=False)

    __table_args__ = (sa.CheckConstraint("scale IN ('g', 'ml')", name="ck_compounds_scale"),)

    def __repr__(self) -> str:
        return f"<Compound id={self.id!r} name={self.name!r} scale={self.scale}>"
