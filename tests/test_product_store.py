import asyncio
from datetime import datetime, timedelta

import pytest
from sqlalchemy.ext.asyncio import create_async_engine

from app.db import create_tables
from app.product_store import SqlProductStore


def _with_store(tmp_path, fn):
    async def go():
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'store.db'}")
        try:
            await create_tables(engine)
            return await fn(SqlProductStore(engine))
        finally:
            await engine.dispose()
    return asyncio.run(go())


def test_attribute_catalog_reads(tmp_path):
    async def fn(store):
        await store.upsert("product_attributes", [
            {"id": "a-color", "name": "Màu", "display_order": 2},
            {"id": "a-size", "name": "Size Số", "display_order": 1},
        ], "id")
        await store.upsert("product_attribute_values", [
            {"id": "v2", "attribute_id": "a-size", "value": "30", "tpos_id": 2, "tpos_attribute_id": 4, "sequence": 2},
            {"id": "v1", "attribute_id": "a-size", "value": "29", "tpos_id": 1, "tpos_attribute_id": 4, "sequence": 1},
        ], "id")
        return (
            await store.list_attributes(),
            await store.list_attributes(["a-color"]),
            await store.list_attribute_values(["v1", "nope"]),
            await store.values_for_attribute("a-size"),
            await store.list_attribute_values([]),
        )

    attrs, only_color, values, by_attr, empty = _with_store(tmp_path, fn)
    assert [a["id"] for a in attrs] == ["a-size", "a-color"]
    assert [a["name"] for a in only_color] == ["Màu"]
    assert [v["value"] for v in values] == ["29"]
    assert [v["value"] for v in by_attr] == ["29", "30"]
    assert empty == []


def test_product_upsert_updates_by_code(tmp_path):
    async def fn(store):
        await store.upsert("products", {"product_code": "N1", "base_product_code": "N1",
                                        "product_name": "Áo", "selling_price": 1000}, "product_code")
        await store.upsert("products", {"product_code": "N1", "base_product_code": "N1",
                                        "product_name": "Áo mới", "selling_price": 2000}, "product_code")
        await store.upsert("products", [
            {"product_code": "N101", "base_product_code": "N1", "product_name": "N1 (Đỏ)", "variant": "Đỏ"},
            {"product_code": "N102", "base_product_code": "N1", "product_name": "N1 (Xanh)", "variant": "Xanh"},
        ], "product_code")
        return await store.get_product("N1"), await store.list_products("N1"), await store.get_product("X")

    parent, family, missing = _with_store(tmp_path, fn)
    assert parent["product_name"] == "Áo mới"
    assert parent["selling_price"] == 2000
    assert parent["updated_at"] is not None
    assert [p["product_code"] for p in family] == ["N1", "N101", "N102"]
    assert missing is None


def test_upsert_rejects_bad_input(tmp_path):
    async def fn(store):
        with pytest.raises(ValueError):
            await store.upsert("nope", {"id": 1}, "id")
        with pytest.raises(ValueError):
            await store.upsert("products", {"product_code": "A"}, "missing_col")
        with pytest.raises(ValueError):
            await store.upsert("products", [{"product_code": "A", "product_name": "a"},
                                            {"product_code": "B"}], "product_code")
        return await store.upsert("products", [], "product_code")

    assert _with_store(tmp_path, fn) == 0


def test_sync_item_status_rows(tmp_path):
    old = datetime.utcnow() - timedelta(minutes=10)

    async def fn(store):
        await store.upsert("sync_items", [
            {"id": "i1", "batch_key": "b", "position": 0, "product_code": "A", "product_name": "a",
             "status": "pending", "started_at": None},
            {"id": "i2", "batch_key": "b", "position": 1, "product_code": "B", "product_name": "b",
             "status": "processing", "started_at": old},
            {"id": "i3", "batch_key": "other", "position": 0, "product_code": "C", "product_name": "c",
             "status": "pending", "started_at": None},
        ], "id")
        stuck = await store.fail_stuck_items("b", datetime.utcnow() - timedelta(minutes=5), "Timeout")
        guarded = await store.update_sync_items(["i1", "i2"], {"status": "success"}, only_status="pending")
        await store.update_sync_items(["i2"], {"tpos_product_id": 7})
        claims = [
            await store.update_sync_items(["i3"], {"status": "processing"}, only_status=("pending", "failed"))
            for _ in range(2)
        ]
        return (
            stuck,
            guarded,
            claims,
            await store.get_item_statuses("b"),
            await store.list_sync_items("b", statuses=["failed"]),
            await store.list_sync_items("b", unsynced_only=True),
        )

    stuck, guarded, claims, statuses, failed, unsynced = _with_store(tmp_path, fn)
    assert stuck == 1
    assert guarded == 1
    assert claims == [1, 0]
    assert sorted((s["item_id"], s["status"], s["error_detail"]) for s in statuses) == [
        ("i1", "success", None),
        ("i2", "failed", "Timeout"),
    ]
    assert [r["id"] for r in failed] == ["i2"]
    assert failed[0]["completed_at"] is not None
    assert [r["id"] for r in unsynced] == ["i1"]
