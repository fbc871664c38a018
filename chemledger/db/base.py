# chemledger/db/base.py
from __future__ import annotations

import importlib
import logging

from sqlalchemy.orm import DeclarativeBase, configure_mappers

log = logging.getLogger("chemledger.models")


class Base(DeclarativeBase):
    """全局唯一 ORM Base"""

    pass


_INITIALIZED: bool = False  # 防重复初始化

_MODEL_MODULES = (
    "chemledger.models.compound",
    "chemledger.models.quantity",
    "chemledger.models.entry",
)


def init_models(*, force: bool = False) -> None:
    """
    集中导入模型 + 固化关系映射：
      1) 显式导入全部模型（保证字符串关系目标类已注册）
      2) 统一 configure_mappers()
    """
    global _INITIALIZED
    if _INITIALIZED and not force:
        log.debug("init_models() called again; already initialized, skipping.")
        return

    for mod in _MODEL_MODULES:
        importlib.import_module(mod)

    configure_mappers()
    _INITIALIZED = True
    log.info("ORM models initialized & mappers configured (loaded %d modules)", len(_MODEL_MODULES))
