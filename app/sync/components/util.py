# app/sync/components/util.py
from __future__ import annotations

import inspect
from typing import Any, Iterable, List


async def maybe_await(x):
    if inspect.isawaitable(x):
        return await x
    return x


def dedupe_preserve_order(items: Iterable[Any]) -> List[Any]:
    seen = set()
    out = []
    for x in items or []:
        if x is None or x in seen:
            continue
        seen.add(x)
        out.append(x)
    return out


def clean_code(code: str | None) -> str:
    return (code or "").strip().upper()
