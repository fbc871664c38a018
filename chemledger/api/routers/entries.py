# chemledger/api/routers/entries.py
from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query, status

from chemledger.api.deps import get_entry_service, get_query_service
from chemledger.schemas.entry import (
    EntryCreate,
    EntryCreated,
    EntryList,
    EntryOut,
    EntryQuery,
    EntryUpdate,
)
from chemledger.services.entry_query_service import EntryQueryService
from chemledger.services.entry_service import EntryService

router = APIRouter(prefix="/entries", tags=["entries"])


@router.post("", response_model=EntryCreated, status_code=status.HTTP_201_CREATED)
async def insert_entry(
    payload: EntryCreate,
    svc: EntryService = Depends(get_entry_service),
) -> EntryCreated:
    """
    新增一条入库 / 出库流水：

    - 同一原子单元内写 quantity + entry，并从该日起重算该化合物的 net_stock；
    - 出库导致任一时点余额为负 → 409 INSUFFICIENT_STOCK，不落任何数据。
    """
    eid = await svc.insert_entry(payload.to_new_entry())
    return EntryCreated(id=eid)


@router.patch("/{entry_id}", status_code=status.HTTP_204_NO_CONTENT)
async def update_entry(
    entry_id: int,
    payload: EntryUpdate,
    svc: EntryService = Depends(get_entry_service),
) -> None:
    await svc.update_entry(entry_id, payload.to_patch())


@router.delete("/{entry_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_entry(
    entry_id: int,
    svc: EntryService = Depends(get_entry_service),
) -> None:
    await svc.delete_entry(entry_id)


@router.get("", response_model=EntryList)
async def query_entries(
    query: Annotated[EntryQuery, Query()],
    svc: EntryQueryService = Depends(get_query_service),
) -> EntryList:
    """
    查询流水明细：
    - 默认按 date 降序 + id 降序；
    - total 与当前页并发查询。
    """
    page = await svc.query_entries(query.to_filter(), query.to_page())
    return EntryList(
        total=page.total,
        items=[EntryOut.model_validate(r) for r in page.rows],
    )
