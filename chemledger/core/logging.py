# chemledger/core/logging.py
import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

# 第三方 logger 的默认级别（DEBUG 时全部放开）
_NOISY = {
    "sqlalchemy.engine": logging.WARNING,
    "aiosqlite": logging.WARNING,
    "uvicorn.access": logging.INFO,
}


def setup_logging(level: str = "INFO") -> None:
    """
    统一日志出口：根 logger 只挂一个 stdout handler（重复调用会替换而不是叠加）。
    业务模块一律 logging.getLogger(__name__)。
    """
    lvl = (level or "INFO").upper()
    root = logging.getLogger()
    root.setLevel(lvl)

    for h in list(root.handlers):
        root.removeHandler(h)

    out = logging.StreamHandler(sys.stdout)
    out.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(out)

    for name, quiet in _NOISY.items():
        logging.getLogger(name).setLevel(logging.DEBUG if lvl == "DEBUG" else quiet)
