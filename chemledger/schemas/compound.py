# chemledger/schemas/compound.py
from __future__ import annotations

from typing import Optional

from pydantic import Field, field_validator, model_validator

from chemledger.models.enums import Scale
from chemledger.schemas.common import _Base, trim_text


class CompoundCreate(_Base):
    name: str = Field(min_length=1, max_length=128, description="化合物名称（大小写无关唯一）")
    scale: Scale = Field(description="计量刻度：g / ml")

    @field_validator("name", mode="before")
    @classmethod
    def _trim_text(cls, v):
        return trim_text(v)


class CompoundUpdate(_Base):
    """改名 / 改刻度；至少提供一项。"""

    name: Optional[str] = Field(default=None, min_length=1, max_length=128)
    scale: Optional[Scale] = None

    @field_validator("name", mode="before")
    @classmethod
    def _trim_text(cls, v):
        return trim_text(v)

    @model_validator(mode="after")
    def _at_least_one(self):
        if self.name is None and self.scale is None:
            raise ValueError("at least one of name / scale must be supplied")
        return self


class CompoundOut(_Base):
    id: str
    name: str
    scale: Scale


class CompoundStockOut(CompoundOut):
    """化合物 + 当前净库存（最后一条流水的 net_stock）。"""

    net_stock: int


class CompoundCreated(_Base):
    id: str


__all__ = [
    "CompoundCreate",
    "CompoundUpdate",
    "CompoundOut",
    "CompoundStockOut",
    "CompoundCreated",
]
