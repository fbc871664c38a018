# chemledger/api/routers/compounds.py
from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, status

from chemledger.api.deps import get_compound_service
from chemledger.schemas.compound import (
    CompoundCreate,
    CompoundCreated,
    CompoundOut,
    CompoundStockOut,
    CompoundUpdate,
)
from chemledger.services.compound_service import CompoundService

router = APIRouter(prefix="/compounds", tags=["compounds"])


@router.post("", response_model=CompoundCreated, status_code=status.HTTP_201_CREATED)
async def register_compound(
    payload: CompoundCreate,
    svc: CompoundService = Depends(get_compound_service),
) -> CompoundCreated:
    cid = await svc.register_compound(payload.name, payload.scale)
    return CompoundCreated(id=cid)


@router.get("", response_model=List[CompoundOut])
async def list_compounds(
    has_entries: bool = False,
    svc: CompoundService = Depends(get_compound_service),
) -> List[CompoundOut]:
    """按名称排序；has_entries=true 时只返回有流水的化合物。"""
    rows = await svc.list_compounds(has_entries=has_entries)
    return [CompoundOut.model_validate(c) for c in rows]


@router.get("/{compound_id}", response_model=CompoundStockOut)
async def get_compound(
    compound_id: str,
    svc: CompoundService = Depends(get_compound_service),
) -> CompoundStockOut:
    return CompoundStockOut.model_validate(await svc.get_compound(compound_id))


@router.patch("/{compound_id}", response_model=CompoundStockOut)
async def update_compound(
    compound_id: str,
    payload: CompoundUpdate,
    svc: CompoundService = Depends(get_compound_service),
) -> CompoundStockOut:
    await svc.update_compound(compound_id, name=payload.name, scale=payload.scale)
    return CompoundStockOut.model_validate(await svc.get_compound(compound_id))
