# chemledger/api/errors.py
from fastapi import Request
from fastapi.responses import JSONResponse

from chemledger.services.errors import CompoundExistsError, ErrorKind, LedgerError

_STATUS = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.INSUFFICIENT_STOCK: 409,
    ErrorKind.STORAGE_TRANSIENT: 503,
    ErrorKind.STORAGE_FATAL: 500,
}


def status_for(exc: LedgerError) -> int:
    if isinstance(exc, CompoundExistsError):
        return 409
    return _STATUS.get(exc.kind, 500)


def ledger_error_handler(_: Request, exc: LedgerError):
    return JSONResponse(
        status_code=status_for(exc),
        content={"error": {"code": exc.code, "message": exc.message, "context": exc.context}},
    )
