# chemledger/models/enums.py
from __future__ import annotations

from enum import StrEnum


class EntryType(StrEnum):
    """
    流水方向（落入 entries.type）：

    - INCOMING  入库，净库存 + magnitude
    - OUTGOING  出库，净库存 - magnitude
    """

    INCOMING = "incoming"
    OUTGOING = "outgoing"

    @property
    def sign(self) -> int:
        return 1 if self is EntryType.INCOMING else -1


class Scale(StrEnum):
    """化合物计量刻度：质量（克）/ 体积（毫升）。"""

    G = "g"
    ML = "ml"
