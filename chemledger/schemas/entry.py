# chemledger/schemas/entry.py
from __future__ import annotations

import datetime as dt
from typing import Annotated, Any, Dict, List, Optional

from pydantic import Field, field_validator, model_validator

from chemledger.models.enums import EntryType, Scale
from chemledger.schemas.common import _Base, not_in_future, parse_day, trim_text
from chemledger.services.ledger_types import EntryFilter, EntryPatch, NewEntry, Page
from chemledger.services.utils.day import epoch_to_day

PositiveInt = Annotated[int, Field(gt=0)]


# ========= 新增流水 =========
class EntryCreate(_Base):
    """
    新增流水：
    - compound_id 与 compound_name 二选一；
    - 首次入库可按名称自动登记化合物（此时需带 scale）；
    - date：YYYY-MM-DD，不得晚于今天。
    """

    type: EntryType
    date: dt.date
    num_of_units: PositiveInt
    quantity_per_unit: PositiveInt

    compound_id: Optional[str] = Field(default=None, max_length=128)
    compound_name: Optional[str] = Field(default=None, max_length=128)
    scale: Optional[Scale] = None

    remark: Optional[str] = Field(default=None, max_length=1024)
    voucher_no: Optional[str] = Field(default=None, max_length=128)

    @field_validator("date", mode="before")
    @classmethod
    def _parse_day(cls, v):
        return parse_day(v)

    @field_validator("date")
    @classmethod
    def _not_future(cls, v):
        return not_in_future(v)

    @field_validator("compound_id", "compound_name", "remark", "voucher_no", mode="before")
    @classmethod
    def _trim_text(cls, v):
        v = trim_text(v)
        return v or None

    @model_validator(mode="after")
    def _compound_ref(self):
        if not self.compound_id and not self.compound_name:
            raise ValueError("either compound_id or compound_name is required")
        return self

    def to_new_entry(self) -> NewEntry:
        return NewEntry(
            entry_type=self.type,
            date=self.date,
            num_of_units=self.num_of_units,
            quantity_per_unit=self.quantity_per_unit,
            compound_id=self.compound_id,
            compound_name=self.compound_name,
            scale=self.scale,
            remark=self.remark,
            voucher_no=self.voucher_no,
        )


# ========= 部分更新 =========
class EntryUpdate(_Base):
    """部分更新：只改提供的字段，至少提供一项。"""

    type: Optional[EntryType] = None
    compound_id: Optional[str] = Field(default=None, min_length=1, max_length=128)
    date: Optional[dt.date] = None
    num_of_units: Optional[PositiveInt] = None
    quantity_per_unit: Optional[PositiveInt] = None
    remark: Optional[str] = Field(default=None, max_length=1024)
    voucher_no: Optional[str] = Field(default=None, max_length=128)

    @field_validator("date", mode="before")
    @classmethod
    def _parse_day(cls, v):
        return parse_day(v)

    @field_validator("date")
    @classmethod
    def _not_future(cls, v):
        return not_in_future(v)

    @field_validator("compound_id", mode="before")
    @classmethod
    def _trim_text(cls, v):
        return trim_text(v)

    @model_validator(mode="after")
    def _at_least_one(self):
        if self.to_patch().is_empty():
            raise ValueError("at least one field must be supplied")
        return self

    def to_patch(self) -> EntryPatch:
        return EntryPatch(
            entry_type=self.type,
            compound_id=self.compound_id,
            date=self.date,
            num_of_units=self.num_of_units,
            quantity_per_unit=self.quantity_per_unit,
            remark=self.remark,
            voucher_no=self.voucher_no,
        )


# ========= 查询入参 =========
class EntryQuery(_Base):
    """
    流水查询过滤条件：
    - type：incoming / outgoing，留空 = 全部；
    - compound_id：精确化合物；
    - date_from / date_to：自然日闭区间；
    - latest_only：每个化合物只取最后一条（当前库存视图）。
    """

    type: Optional[EntryType] = None
    compound_id: Optional[str] = Field(default=None, max_length=128)
    date_from: Optional[dt.date] = None
    date_to: Optional[dt.date] = None
    latest_only: bool = False

    limit: Annotated[int, Field(ge=1, le=1000)] = 100
    offset: Annotated[int, Field(ge=0)] = 0

    @field_validator("date_from", "date_to", mode="before")
    @classmethod
    def _parse_day(cls, v):
        return parse_day(v or None)

    @field_validator("compound_id", mode="before")
    @classmethod
    def _trim_text(cls, v):
        return trim_text(v) or None

    @model_validator(mode="after")
    def _range(self):
        if self.date_from and self.date_to and self.date_from > self.date_to:
            raise ValueError("date_from must not be later than date_to")
        return self

    def to_filter(self) -> EntryFilter:
        return EntryFilter(
            entry_type=self.type,
            compound_id=self.compound_id,
            date_from=self.date_from,
            date_to=self.date_to,
            latest_only=self.latest_only,
        )

    def to_page(self) -> Page:
        return Page(limit=self.limit, offset=self.offset)


# ========= 出参 =========
class EntryOut(_Base):
    id: int
    type: EntryType
    date: dt.date
    compound_id: str
    compound_name: str
    scale: Scale
    num_of_units: int
    quantity_per_unit: int
    magnitude: int
    net_stock: int
    remark: Optional[str] = None
    voucher_no: Optional[str] = None

    @field_validator("date", mode="before")
    @classmethod
    def _epoch_to_day(cls, v):
        return epoch_to_day(v) if isinstance(v, int) else v


class EntryList(_Base):
    """
    流水查询结果：
    - total：符合过滤条件的总条数；
    - items：当前页（date DESC, id DESC）。
    """

    total: int
    items: List[EntryOut] = Field(default_factory=list)


class EntryCreated(_Base):
    id: int


class LedgerVerifyResult(_Base):
    ok: bool
    issues: List[Dict[str, Any]] = Field(default_factory=list)


__all__ = [
    "EntryCreate",
    "EntryUpdate",
    "EntryQuery",
    "EntryOut",
    "EntryList",
    "EntryCreated",
    "LedgerVerifyResult",
]
