# app/sync/components/matrix.py
# --------------------------------------------------------------------------------------
# Variant matrix: expand selected attribute values into every sellable combination.
#   selection {attr_id: [value, ...]} + attributes (display_order) -> [VariantCombination]
# Odometer order: the last attribute group varies fastest.
# --------------------------------------------------------------------------------------
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Sequence, Tuple


@dataclass(frozen=True)
class VariantCombination:
    """One value per selected attribute, in attribute display order."""
    values: Tuple[Dict[str, Any], ...]

    @property
    def labels(self) -> List[str]:
        return [str(v.get("value") or "") for v in self.values]

    @property
    def storage_descriptor(self) -> str:
        # "29, S, Trắng"
        return ", ".join(self.labels)

    def display_name(self, code: str) -> str:
        # "NTEST (Trắng, S, 29)"
        return f"{code} ({', '.join(reversed(self.labels))})"


def _sort_attributes(attributes: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
    # stable: equal display_order keeps the caller's order
    return sorted(attributes or [], key=lambda a: a.get("display_order") or 0)


def _cartesian(groups: List[List[Dict[str, Any]]]) -> List[Tuple[Dict[str, Any], ...]]:
    if not groups:
        return []
    if len(groups) == 1:
        return [(v,) for v in groups[0]]
    first, rest = groups[0], _cartesian(groups[1:])
    return [(v,) + combo for v in first for combo in rest]


def generate_combinations(
    selection: Mapping[str, Sequence[Dict[str, Any]]],
    attributes: Sequence[Dict[str, Any]],
) -> List[VariantCombination]:
    """
    Cartesian product of the selected values, grouped by attribute in display order.
    Only attributes present in `selection` with at least one value participate.
    Duplicate values are not removed here; callers dedupe ids beforehand.
    """
    groups = [
        list(selection[a["id"]])
        for a in _sort_attributes(attributes)
        if selection.get(a["id"])
    ]
    return [VariantCombination(values=combo) for combo in _cartesian(groups)]


def group_selection(
    values: Sequence[Dict[str, Any]],
    attributes: Sequence[Dict[str, Any]],
) -> Dict[str, List[Dict[str, Any]]]:
    """
    Group AttributeValue rows by attribute_id. Keys follow attribute display order,
    values inside a group follow the catalog `sequence` (missing sequence sorts last).
    """
    by_attr: Dict[str, List[Dict[str, Any]]] = {}
    for v in values or []:
        by_attr.setdefault(v.get("attribute_id"), []).append(v)

    out: Dict[str, List[Dict[str, Any]]] = {}
    for attr in _sort_attributes(attributes):
        group = by_attr.get(attr["id"])
        if not group:
            continue
        out[attr["id"]] = sorted(
            group,
            key=lambda v: (v.get("sequence") is None, v.get("sequence") or 0),
        )
    return out


def summarize_parent_variant(descriptors: Sequence[str | None]) -> str:
    """
    Position-wise distinct tokens of the child descriptors:
      ["29, S, Trắng", "30, M, Đen"] -> "(29 | 30) (S | M) (Trắng | Đen)"
    Unparseable (None/empty) children are ignored.
    """
    rows = [[p.strip() for p in d.split(",")] for d in descriptors or [] if d and d.strip()]
    if not rows:
        return ""
    width = len(rows[0])
    grouped: List[List[str]] = [[] for _ in range(width)]
    for parts in rows:
        for i, part in enumerate(parts[:width]):
            if part and part not in grouped[i]:
                grouped[i].append(part)
    return " ".join(f"({' | '.join(g)})" for g in grouped if g)
