# chemledger/api/deps.py
# 服务实例挂在 app.state 上（create_app 时装配），路由只经由这些依赖取用
from __future__ import annotations

from fastapi import Request

from chemledger.services.compound_service import CompoundService
from chemledger.services.entry_query_service import EntryQueryService
from chemledger.services.entry_service import EntryService


def get_entry_service(request: Request) -> EntryService:
    return request.app.state.entry_service


def get_query_service(request: Request) -> EntryQueryService:
    return request.app.state.query_service


def get_compound_service(request: Request) -> CompoundService:
    return request.app.state.compound_service
