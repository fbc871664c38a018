# chemledger/services/utils/naming.py
from __future__ import annotations


def compound_id_from_name(name: str) -> str:
    """'Acetic acid' → 'aceticAcid'（按空白分词，首词小写，其余首字母大写）。"""
    words = (name or "").split()
    if not words:
        raise ValueError("compound name must not be blank")
    head, *tail = words
    return head.lower() + "".join(w[:1].upper() + w[1:].lower() for w in tail)


def lower_case_name(name: str) -> str:
    """大小写无关唯一键：'Acetic  Acid' → 'acetic-acid'。"""
    words = (name or "").split()
    if not words:
        raise ValueError("compound name must not be blank")
    return "-".join(w.lower() for w in words)
