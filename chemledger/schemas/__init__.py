# chemledger/schemas/__init__.py
"""
本包保持“安静”：不做聚合导出，需要时请显式从具体模块导入，例如：
    from chemledger.schemas.entry import EntryCreate, EntryList
"""

__all__: list[str] = []
