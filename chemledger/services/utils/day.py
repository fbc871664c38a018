# chemledger/services/utils/day.py
from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Union


def day_to_epoch(d: Union[date, datetime]) -> int:
    """自然日 → 本地零点 epoch 秒（datetime 会先截到当天）。"""
    if isinstance(d, datetime):
        d = d.date()
    return int(datetime(d.year, d.month, d.day).timestamp())


def next_day_epoch(d: Union[date, datetime]) -> int:
    """次日本地零点，用作闭区间 date_to 的开上界。"""
    if isinstance(d, datetime):
        d = d.date()
    return day_to_epoch(d + timedelta(days=1))


def epoch_to_day(ts: int) -> date:
    return datetime.fromtimestamp(int(ts)).date()
