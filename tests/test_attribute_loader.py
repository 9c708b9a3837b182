import asyncio
import json

import pandas as pd
import pytest

from app.tpos.tpos_attribute_loader import (
    import_attribute_values,
    parse_tpos_attribute_json,
    read_tpos_attribute_file,
)
from conftest import ATTRIBUTES, VALUES, InMemoryStore

EXPORT = {
    "@odata.context": "https://tomato.tpos.vn/odata/$metadata#ProductAttributeValue",
    "value": [
        {"Id": 11, "Name": "S", "Code": "S", "Sequence": 1, "AttributeId": 1,
         "AttributeName": "Size Chữ", "NameGet": "Size Chữ: S"},
        {"Id": 13, "Name": "L", "Code": "L", "Sequence": 3, "AttributeId": 1,
         "AttributeName": "Size Chữ", "NameGet": None},
        {"Id": 40, "Name": "Cotton", "Code": "CT", "Sequence": None, "AttributeId": 9,
         "AttributeName": "Chất liệu"},
        {"Id": 41, "Name": "", "AttributeId": 9, "AttributeName": "Chất liệu"},
    ],
}


def test_parse_rejects_non_export():
    with pytest.raises(ValueError):
        parse_tpos_attribute_json({"data": []})
    assert len(parse_tpos_attribute_json(EXPORT)) == 4


def test_import_creates_attributes_and_skips_existing_values(tmp_path):
    path = tmp_path / "values.json"
    path.write_text(json.dumps(EXPORT, ensure_ascii=False), encoding="utf-8")
    store = InMemoryStore(ATTRIBUTES, VALUES)

    stats = asyncio.run(import_attribute_values(read_tpos_attribute_file(str(path)), store=store))
    assert stats == {"imported": 2, "created_attributes": 1, "skipped": 1, "invalid": 1}

    attrs = {a["name"]: a for a in store.tables["product_attributes"]}
    assert attrs["Chất liệu"]["display_order"] == 0

    values = {v["value"]: v for v in store.tables["product_attribute_values"]}
    assert values["L"]["attribute_id"] == "attr-size"
    assert values["L"]["tpos_id"] == 13 and values["L"]["tpos_attribute_id"] == 1
    assert values["L"]["name_get"] == "Size Chữ: L"
    assert values["Cotton"]["attribute_id"] == attrs["Chất liệu"]["id"]
    assert values["Cotton"]["sequence"] == 0


def test_import_twice_is_a_noop(tmp_path):
    store = InMemoryStore()
    records = parse_tpos_attribute_json(EXPORT)
    asyncio.run(import_attribute_values(records, store=store))
    again = asyncio.run(import_attribute_values(records, store=store))
    assert again["imported"] == 0 and again["created_attributes"] == 0
    assert again["skipped"] == 3


def test_excel_sheet(tmp_path):
    path = tmp_path / "values.xlsx"
    pd.DataFrame(EXPORT["value"][:3]).to_excel(path, index=False)
    records = read_tpos_attribute_file(str(path))
    assert [r["Name"] for r in records] == ["S", "L", "Cotton"]
    assert records[2]["Sequence"] is None

    stats = asyncio.run(import_attribute_values(records, store=InMemoryStore()))
    assert stats["imported"] == 3 and stats["created_attributes"] == 2


def test_excel_missing_columns(tmp_path):
    path = tmp_path / "bad.xlsx"
    pd.DataFrame([{"Name": "S"}]).to_excel(path, index=False)
    with pytest.raises(ValueError):
        read_tpos_attribute_file(str(path))


def test_missing_file():
    with pytest.raises(FileNotFoundError):
        read_tpos_attribute_file("/nonexistent/values.json")


def test_cli_usage():
    from app.scripts.import_attributes import main

    assert main([]) == 2
