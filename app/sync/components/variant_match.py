# app/sync/components/variant_match.py
from __future__ import annotations

import re
import unicodedata
from typing import Any, Dict, Iterable, List, Optional

_SPLIT_RE = re.compile(r"[,|]")
_PAREN_RE = re.compile(r"[()]")
_WS_RE = re.compile(r"\s+")
_GROUP_RE = re.compile(r"\(([^)]+)\)")


def strip_accents(s: str) -> str:
    """Vietnamese-aware accent removal: 'Đỏ' -> 'Do'."""
    s = s.replace("Đ", "D").replace("đ", "d")
    decomposed = unicodedata.normalize("NFD", s)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def _norm_token(tok: str) -> str:
    t = strip_accents(tok.strip()).upper()
    t = _PAREN_RE.sub("", t)
    return _WS_RE.sub(" ", t).strip()


def normalize_descriptor(descriptor: str | None) -> List[str]:
    """
    Sorted comparison key of a variant descriptor.
      "Đỏ,S,1" -> ["1", "DO", "S"]
      "(Trắng | Đen)" -> ["DEN", "TRANG"]
    """
    if not descriptor:
        return []
    tokens = (_norm_token(p) for p in _SPLIT_RE.split(descriptor))
    return sorted(t for t in tokens if t)


def variants_match(a: str | None, b: str | None) -> bool:
    """Order-, case- and accent-insensitive equality of two descriptors."""
    if not a or not b or not a.strip() or not b.strip():
        return False
    ka, kb = normalize_descriptor(a), normalize_descriptor(b)
    if len(ka) != len(kb):
        return False
    return all(x == y for x, y in zip(ka, kb))


def find_matching_variant(
    descriptor: str | None,
    candidates: Iterable[Dict[str, Any]],
    key: str = "variant",
) -> Optional[Dict[str, Any]]:
    """First candidate row whose `key` column matches `descriptor`."""
    for row in candidates or []:
        if variants_match(row.get(key), descriptor):
            return row
    return None


def format_variant_for_display(variant: str | None) -> str:
    # "(1 | 2) (Nude | Nâu)" -> "1 | 2 | Nude | Nâu"; plain strings pass through
    if not variant or not variant.strip():
        return ""
    v = variant.strip()
    if "(" in v and ")" in v:
        values = [
            part.strip()
            for group in _GROUP_RE.findall(v)
            for part in group.split(" | ")
        ]
        return " | ".join(x for x in values if x)
    return v
