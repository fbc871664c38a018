# chemledger/api/__init__.py
"""
API package bootstrap.

- 这里不做任何重导出
- 路由挂载由 `chemledger/main.py` 的 create_app 管理
"""

__all__ = []
