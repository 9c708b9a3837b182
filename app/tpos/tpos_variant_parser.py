# app/tpos/tpos_variant_parser.py
# ---------------------------------------------------------
# Read the variant descriptor back out of a TPOS variant name.
#   "NTEST (Trắng, S, 29)"    -> "Trắng, S, 29"
#   "NTEST (FULLBOX) (35)"    -> "35"
# TPOS may put other parenthesized text before the values,
# so only the group closing the name counts.
# ---------------------------------------------------------
from __future__ import annotations

import logging
import re
from typing import Optional

logger = logging.getLogger("uvicorn.error")

_LAST_GROUP_RE = re.compile(r"\(([^()]+)\)\s*$")


def extract_variant_descriptor(name: str | None) -> Optional[str]:
    """
    Content of the parenthesized group at the very end of `name`,
    or None when the name does not end with one (unparseable).
    """
    if not name or not name.strip():
        return None
    m = _LAST_GROUP_RE.search(name)
    if not m:
        logger.warning("[PARSE] no trailing (...) group in variant name %r", name)
        return None
    value = m.group(1).strip()
    return value or None
