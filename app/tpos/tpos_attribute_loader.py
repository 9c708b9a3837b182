# app/tpos/tpos_attribute_loader.py
# --------------------------------------------------------------------------------------
# Import TPOS ProductAttributeValue exports into the local attribute catalog.
# Source: the OData JSON export ({"value": [...]}) or an Excel sheet with the same
# column names (Id, Name, Code, Sequence, AttributeId, AttributeName, NameGet).
# --------------------------------------------------------------------------------------

import json
import logging
import math
import os
import uuid
from typing import Any, Dict, List, Optional

import pandas as pd

from app.product_store import ProductStore

logger = logging.getLogger("uvicorn.error")

REQUIRED_COLUMNS = ("Id", "Name", "AttributeId", "AttributeName")


def _int_or_none(v: Any) -> Optional[int]:
    if v is None:
        return None
    if isinstance(v, float) and math.isnan(v):
        return None
    try:
        return int(v)
    except (TypeError, ValueError):
        return None


def _str_or_none(v: Any) -> Optional[str]:
    if v is None or (isinstance(v, float) and math.isnan(v)):
        return None
    s = str(v).strip()
    return s or None


def parse_tpos_attribute_json(data: Any) -> List[Dict[str, Any]]:
    if not isinstance(data, dict) or not isinstance(data.get("value"), list):
        raise ValueError("Invalid TPOS export: expected an object with a 'value' array")
    return list(data["value"])


def load_attribute_excel(filepath: str) -> List[Dict[str, Any]]:
    df = pd.read_excel(filepath, engine="openpyxl")
    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"Missing column(s) in {filepath}: {', '.join(missing)}")
    df = df.astype(object).where(pd.notnull(df), None)
    return df.to_dict(orient="records")


def read_tpos_attribute_file(filepath: str) -> List[Dict[str, Any]]:
    """Records from a .json export or an .xlsx sheet."""
    if not os.path.isfile(filepath):
        raise FileNotFoundError(f"File not found: {filepath}")
    ext = os.path.splitext(filepath)[1].lower()
    if ext in (".xlsx", ".xlsm", ".xls"):
        return load_attribute_excel(filepath)
    with open(filepath, encoding="utf-8") as fh:
        return parse_tpos_attribute_json(json.load(fh))


async def import_attribute_values(records: List[Dict[str, Any]], *, store: ProductStore) -> Dict[str, int]:
    """
    Create missing attributes (display_order 0) and insert values not yet present
    for their attribute. Existing values are left as they are.
    """
    attrs_by_name = {a["name"]: a for a in await store.list_attributes()}
    existing: Dict[str, set] = {}
    stats = {"imported": 0, "created_attributes": 0, "skipped": 0, "invalid": 0}

    for rec in records or []:
        attr_name = _str_or_none(rec.get("AttributeName"))
        value = _str_or_none(rec.get("Name"))
        if not attr_name or not value:
            stats["invalid"] += 1
            continue

        attr = attrs_by_name.get(attr_name)
        if attr is None:
            attr = {"id": uuid.uuid4().hex, "name": attr_name, "display_order": 0}
            await store.upsert("product_attributes", attr, "name")
            attrs_by_name[attr_name] = attr
            stats["created_attributes"] += 1
            logger.info("[ATTR] created attribute %s", attr_name)

        if attr["id"] not in existing:
            existing[attr["id"]] = {v["value"] for v in await store.values_for_attribute(attr["id"])}
        if value in existing[attr["id"]]:
            stats["skipped"] += 1
            continue

        sequence = _int_or_none(rec.get("Sequence")) or 0
        await store.upsert("product_attribute_values", {
            "id": uuid.uuid4().hex,
            "attribute_id": attr["id"],
            "value": value,
            "code": _str_or_none(rec.get("Code")),
            "tpos_id": _int_or_none(rec.get("Id")),
            "tpos_attribute_id": _int_or_none(rec.get("AttributeId")),
            "sequence": sequence,
            "name_get": _str_or_none(rec.get("NameGet")) or f"{attr_name}: {value}",
            "is_active": True,
        }, "id")
        existing[attr["id"]].add(value)
        stats["imported"] += 1

    logger.info("[ATTR] import done: %s", stats)
    return stats
