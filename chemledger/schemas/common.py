# chemledger/schemas/common.py
from __future__ import annotations

import re
from datetime import date, datetime

from pydantic import BaseModel, ConfigDict

_DAY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class _Base(BaseModel):
    """
    通用基类：
    - from_attributes: 支持 ORM / dataclass 自动序列化；
    - extra = ignore: 忽略多余字段；
    - populate_by_name: 支持 alias。
    """

    model_config = ConfigDict(
        from_attributes=True,
        extra="ignore",
        populate_by_name=True,
    )


def parse_day(v):
    """入参日期：只接受 YYYY-MM-DD 字符串（或 date 本身）。"""
    if v is None or isinstance(v, date) and not isinstance(v, datetime):
        return v
    if isinstance(v, str) and _DAY_RE.match(v.strip()):
        return date.fromisoformat(v.strip())
    raise ValueError("date must be formatted as YYYY-MM-DD")


def not_in_future(v):
    if v is not None and v > date.today():
        raise ValueError("date must not be in the future")
    return v


def trim_text(v):
    return v.strip() if isinstance(v, str) else v
