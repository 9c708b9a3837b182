from __future__ import annotations
from typing import Any, Dict, List, Mapping, Sequence

from app.sync.components.matrix import VariantCombination


def _attr_names(attributes: Sequence[Dict[str, Any]]) -> Dict[str, str]:
    return {a["id"]: a.get("name") or "" for a in attributes or []}


def build_attribute_lines(
    grouped: Mapping[str, Sequence[Dict[str, Any]]],
    attributes: Sequence[Dict[str, Any]],
) -> List[Dict[str, Any]]:
    """
    One TPOS AttributeLine per selected attribute, in the order of `grouped`
    (display order). The TPOS attribute id comes from the first value of the group.
      {"Attribute": {"Id": 1, "Name": "Size", ...}, "Values": [...], "AttributeId": 1}
    """
    names = _attr_names(attributes)
    lines: List[Dict[str, Any]] = []
    for attr_id, values in grouped.items():
        if not values:
            continue
        name = names.get(attr_id, "")
        tpos_attr_id = values[0].get("tpos_attribute_id")
        lines.append({
            "Attribute": {
                "Id": tpos_attr_id,
                "Name": name,
                "Code": name,
                "CreateVariant": True,
            },
            "Values": [
                {
                    "Id": v.get("tpos_id"),
                    "Name": v.get("value"),
                    "Code": v.get("code"),
                    "Sequence": v.get("sequence"),
                    "AttributeId": v.get("tpos_attribute_id"),
                    "AttributeName": name,
                    "NameGet": v.get("name_get"),
                    "DateCreated": None,
                }
                for v in values
            ],
            "AttributeId": tpos_attr_id,
        })
    return lines


def combination_attribute_values(
    combo: VariantCombination,
    attributes: Sequence[Dict[str, Any]],
) -> List[Dict[str, Any]]:
    """AttributeValues of one ProductVariant; keeps attribute order (not reversed)."""
    names = _attr_names(attributes)
    return [
        {
            "Id": v.get("tpos_id"),
            "Name": v.get("value"),
            "AttributeId": v.get("tpos_attribute_id"),
            "AttributeName": names.get(v.get("attribute_id"), ""),
            "NameGet": v.get("name_get"),
            "DateCreated": None,
        }
        for v in combo.values
    ]
