# chemledger/services/ledger_types.py
# 服务层数据结构（与 HTTP schema 解耦）
from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import date
from typing import List, Optional

from chemledger.models.enums import EntryType, Scale


@dataclass(frozen=True)
class LedgerLine:
    """重算用的最小行：(date, id) 序 + 方向 + magnitude + 当前缓存值。"""

    id: int
    type: EntryType
    date: int
    magnitude: int
    net_stock: int

    @property
    def delta(self) -> int:
        return self.type.sign * self.magnitude


@dataclass(frozen=True)
class EntrySnapshot:
    """变更前读取的流水快照（用于决定重算起点）。"""

    id: int
    type: EntryType
    compound_id: str
    date: int
    quantity_id: int
    num_of_units: int
    quantity_per_unit: int
    remark: Optional[str]
    voucher_no: Optional[str]
    net_stock: int

    @property
    def magnitude(self) -> int:
        return self.num_of_units * self.quantity_per_unit


@dataclass(frozen=True)
class NewEntry:
    """
    新增流水入参：
    - compound_id 与 compound_name 二选一；
    - 仅按名称且首次入库时会自动登记化合物（需带 scale）。
    """

    entry_type: EntryType
    date: date
    num_of_units: int
    quantity_per_unit: int
    compound_id: Optional[str] = None
    compound_name: Optional[str] = None
    scale: Optional[Scale] = None
    remark: Optional[str] = None
    voucher_no: Optional[str] = None


@dataclass(frozen=True)
class EntryPatch:
    """部分更新：None 表示未提供，保持原值；每个提供的字段都独立生效。"""

    entry_type: Optional[EntryType] = None
    compound_id: Optional[str] = None
    date: Optional[date] = None
    num_of_units: Optional[int] = None
    quantity_per_unit: Optional[int] = None
    remark: Optional[str] = None
    voucher_no: Optional[str] = None

    def is_empty(self) -> bool:
        return all(getattr(self, f.name) is None for f in fields(self))


@dataclass(frozen=True)
class EntryFilter:
    entry_type: Optional[EntryType] = None
    compound_id: Optional[str] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    latest_only: bool = False


@dataclass(frozen=True)
class Page:
    limit: int = 100
    offset: int = 0


@dataclass(frozen=True)
class EntryRow:
    id: int
    type: EntryType
    date: int
    remark: Optional[str]
    voucher_no: Optional[str]
    net_stock: int
    compound_id: str
    compound_name: str
    scale: str
    num_of_units: int
    quantity_per_unit: int

    @property
    def magnitude(self) -> int:
        return self.num_of_units * self.quantity_per_unit


@dataclass(frozen=True)
class EntryPage:
    total: int
    rows: List[EntryRow] = field(default_factory=list)


@dataclass(frozen=True)
class RecalcResult:
    compound_id: str
    pivot: int
    baseline: int
    visited: int
    closing_balance: int


@dataclass(frozen=True)
class CompoundStock:
    id: str
    name: str
    scale: str
    net_stock: int
