# chemledger/services/entry_query_service.py
from __future__ import annotations

import logging
from typing import List, Optional

from chemledger.core.concurrency import join_pair
from chemledger.db.session import Database
from chemledger.services.errors import ValidationFailedError
from chemledger.services.ledger_store import LedgerStore
from chemledger.services.ledger_types import EntryFilter, EntryPage, EntryRow, Page
from chemledger.services.retry import RetryPolicy, with_deadline, with_retry

log = logging.getLogger(__name__)

MAX_PAGE_SIZE = 1000


class EntryQueryService:
    """
    流水查询（total + 当前页）：

    COUNT 与取行各用一个独立 session 并发执行，各自带重试，
    在 join_pair 处汇合；任一侧失败即整体失败，另一侧结果丢弃。
    """

    def __init__(
        self,
        db: Database,
        *,
        policy: Optional[RetryPolicy] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self._db = db
        self._policy = policy or RetryPolicy()
        self._timeout = timeout

    async def query_entries(
        self,
        flt: Optional[EntryFilter] = None,
        page: Optional[Page] = None,
        *,
        timeout: Optional[float] = None,
    ) -> EntryPage:
        flt = flt or EntryFilter()
        page = page or Page()
        self._check(flt, page)

        async def _count() -> int:
            async with self._db.session_maker() as session:
                return await LedgerStore(session).count_entries(flt)

        async def _rows() -> List[EntryRow]:
            async with self._db.session_maker() as session:
                return await LedgerStore(session).fetch_entries(flt, page)

        total, rows = await with_deadline(
            join_pair(
                with_retry(_count, self._policy, label="count_entries"),
                with_retry(_rows, self._policy, label="fetch_entries"),
            ),
            self._timeout if timeout is None else timeout,
            label="query_entries",
        )
        log.debug("query_entries total=%s page_rows=%s", total, len(rows))
        return EntryPage(total=total, rows=rows)

    @staticmethod
    def _check(flt: EntryFilter, page: Page) -> None:
        if flt.date_from and flt.date_to and flt.date_from > flt.date_to:
            raise ValidationFailedError(
                "date_from must not be later than date_to",
                context={"date_from": flt.date_from.isoformat(), "date_to": flt.date_to.isoformat()},
            )
        if not 1 <= int(page.limit) <= MAX_PAGE_SIZE:
            raise ValidationFailedError(f"limit must be within 1..{MAX_PAGE_SIZE}", context={"limit": page.limit})
        if int(page.offset) < 0:
            raise ValidationFailedError("offset must be >= 0", context={"offset": page.offset})
