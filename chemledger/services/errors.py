# chemledger/services/errors.py
"""
台账错误分类（带标签的异常体系）：

    LedgerError(kind, code, message, context)
    |
    +-- ValidationFailedError      VALIDATION          入参非法（进入存储前拒绝）
    |   +-- CompoundExistsError                        名称（大小写无关）已存在
    +-- NotFoundError              NOT_FOUND           化合物 / 流水不存在
    +-- InsufficientStockError     INSUFFICIENT_STOCK  重放后某一步余额为负
    +-- StorageTransientError      STORAGE_TRANSIENT   锁超时 / 连接抖动，可重试
    |   +-- DeadlineExceededError                      调用方截止时间到（不重试）
    +-- StorageFatalError          STORAGE_FATAL       约束冲突 / 损坏，不重试

调用方按类型（或 .kind）捕获，不解析 message。
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any, Dict, Optional

from sqlalchemy.exc import DBAPIError, IntegrityError


class ErrorKind(StrEnum):
    VALIDATION = "VALIDATION"
    NOT_FOUND = "NOT_FOUND"
    INSUFFICIENT_STOCK = "INSUFFICIENT_STOCK"
    STORAGE_TRANSIENT = "STORAGE_TRANSIENT"
    STORAGE_FATAL = "STORAGE_FATAL"


class LedgerError(Exception):
    kind: ErrorKind = ErrorKind.STORAGE_FATAL
    code: str = "LEDGER_ERROR"

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        if code:
            self.code = code
        self.message = message
        self.context: Dict[str, Any] = dict(context or {})

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"kind": str(self.kind), "code": self.code, "message": self.message}
        if self.context:
            out["context"] = self.context
        return out


class ValidationFailedError(LedgerError):
    kind = ErrorKind.VALIDATION
    code = "VALIDATION_FAILED"


class CompoundExistsError(ValidationFailedError):
    code = "COMPOUND_ALREADY_EXISTS"

    def __init__(self, name: str) -> None:
        super().__init__(f"compound already exists: {name}", context={"name": name})


class NotFoundError(LedgerError):
    kind = ErrorKind.NOT_FOUND
    code = "NOT_FOUND"


class InsufficientStockError(LedgerError):
    kind = ErrorKind.INSUFFICIENT_STOCK
    code = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        *,
        compound_id: str,
        entry_id: int,
        date: int,
        balance: int,
    ) -> None:
        super().__init__(
            f"net stock of {compound_id} would drop to {balance} at entry {entry_id}",
            context={
                "compound_id": compound_id,
                "entry_id": entry_id,
                "date": date,
                "balance": balance,
            },
        )
        self.compound_id = compound_id
        self.entry_id = entry_id
        self.balance = balance


class StorageTransientError(LedgerError):
    kind = ErrorKind.STORAGE_TRANSIENT
    code = "STORAGE_TRANSIENT"


class DeadlineExceededError(StorageTransientError):
    code = "DEADLINE_EXCEEDED"


class StorageFatalError(LedgerError):
    kind = ErrorKind.STORAGE_FATAL
    code = "STORAGE_FATAL"


# ======================== 驱动错误归类 ========================

_TRANSIENT_MARKERS = (
    "database is locked",
    "database is busy",
    "lock timeout",
    "lock_timeout",
    "could not serialize",
    "serialization failure",
    "deadlock detected",
    "connection refused",
    "connection reset",
    "server closed the connection",
    "terminating connection",
)


def classify_db_error(exc: BaseException) -> LedgerError:
    """
    SQLAlchemy / DBAPI 异常 → 台账错误：
    - IntegrityError 一律 StorageFatal；
    - 断连（connection_invalidated）或消息命中锁 / 序列化 / 连接关键字 → StorageTransient；
    - 其余 StorageFatal。
    """
    if isinstance(exc, LedgerError):
        return exc

    msg = (str(exc) or "").lower()
    if isinstance(exc, IntegrityError):
        return StorageFatalError(f"constraint violation: {exc.orig}", context={"statement": exc.statement})

    if isinstance(exc, DBAPIError):
        if exc.connection_invalidated or any(m in msg for m in _TRANSIENT_MARKERS):
            return StorageTransientError(f"transient storage failure: {exc.orig}")

    return StorageFatalError(f"storage failure: {exc}")
