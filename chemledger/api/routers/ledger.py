# chemledger/api/routers/ledger.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from chemledger.db.session import get_session
from chemledger.schemas.entry import LedgerVerifyResult
from chemledger.services.ledger_replay_service import LedgerReplayService

router = APIRouter(prefix="/ledger", tags=["ledger"])


@router.get("/verify", response_model=LedgerVerifyResult)
async def verify_ledger(
    compound_id: Optional[str] = None,
    session: AsyncSession = Depends(get_session),
) -> LedgerVerifyResult:
    """从 0 重放流水并与存储的 net_stock 对账（只读）。"""
    issues = await LedgerReplayService.verify(session, compound_id=compound_id)
    return LedgerVerifyResult(ok=not issues, issues=issues)
