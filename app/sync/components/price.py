# app/sync/components/price.py
from __future__ import annotations

import logging
import math
import re
from typing import Any

from app.config import settings

logger = logging.getLogger("uvicorn.error")

# leading number of a string, like parseFloat: "12k" -> 12, " 1.5 " -> 1.5
_NUM_PREFIX_RE = re.compile(r"^\s*[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?")


def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def parse_price(value: Any) -> float | None:
    """
    Number or locale string ("1,5" / "1.5") -> float. None when nothing numeric
    can be read. Only the first comma is taken as the decimal separator.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return None if math.isnan(value) or math.isinf(value) else float(value)
    s = str(value).replace(",", ".", 1)
    m = _NUM_PREFIX_RE.match(s)
    if not m:
        return None
    return float(m.group(0))


def normalize_price(value: Any, scale: int | None = None) -> int:
    """
    Prices are typed in thousands; TPOS wants the full amount as an int.
      1.5 -> 1500, "1,5" -> 1500, "210" -> 210000
    Unreadable input becomes 0 (logged, never raised).
    """
    scale = settings.PRICE_SCALE if scale is None else scale
    parsed = parse_price(value)
    if parsed is None:
        logger.warning("[PRICE] invalid price value %r, defaulting to 0", value)
        return 0
    return _round_half_up(parsed * scale)
