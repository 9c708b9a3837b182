import json
import os
import tempfile
from datetime import datetime

# keep the app's default engine away from ./data during tests
os.environ.setdefault(
    "DATABASE_URL",
    f"sqlite+aiosqlite:///{os.path.join(tempfile.gettempdir(), 'tpos_sync_pytest.db')}",
)

import httpx
import pytest

from app.config import settings


class InMemoryStore:
    """Dict-backed ProductStore double."""

    def __init__(self, attributes=(), values=()):
        self.tables = {
            "product_attributes": [dict(a) for a in attributes],
            "product_attribute_values": [dict(v) for v in values],
            "products": [],
            "sync_items": [],
        }
        self.upsert_calls = []
        self.fail_upserts = False

    # attribute catalog
    async def list_attributes(self, ids=None):
        rows = self.tables["product_attributes"]
        if ids is not None:
            ids = set(ids)
            rows = [a for a in rows if a["id"] in ids]
        return sorted((dict(a) for a in rows), key=lambda a: a.get("display_order") or 0)

    async def list_attribute_values(self, ids):
        ids = set(ids)
        return [dict(v) for v in self.tables["product_attribute_values"] if v["id"] in ids]

    async def values_for_attribute(self, attribute_id):
        return [dict(v) for v in self.tables["product_attribute_values"] if v["attribute_id"] == attribute_id]

    # keyed upsert
    async def upsert(self, table, rows, conflict_key):
        if self.fail_upserts:
            raise RuntimeError("database unavailable")
        rows = [rows] if isinstance(rows, dict) else list(rows)
        self.upsert_calls.append((table, len(rows), conflict_key))
        tbl = self.tables[table]
        for r in rows:
            existing = next((x for x in tbl if x.get(conflict_key) == r[conflict_key]), None)
            if existing is not None:
                existing.update(r)
            else:
                tbl.append(dict(r))
        return len(rows)

    async def get_product(self, product_code):
        row = next((p for p in self.tables["products"] if p["product_code"] == product_code), None)
        return dict(row) if row else None

    async def list_products(self, base_product_code):
        return [dict(p) for p in self.tables["products"] if p.get("base_product_code") == base_product_code]

    # batch rows
    async def get_item_statuses(self, batch_key):
        return [
            {"item_id": r["id"], "status": r["status"], "error_detail": r.get("error")}
            for r in self.tables["sync_items"] if r["batch_key"] == batch_key
        ]

    async def list_sync_items(self, batch_key, statuses=None, unsynced_only=False):
        rows = [r for r in self.tables["sync_items"] if r["batch_key"] == batch_key]
        if statuses is not None:
            rows = [r for r in rows if r["status"] in statuses]
        if unsynced_only:
            rows = [r for r in rows if r.get("tpos_product_id") is None]
        return [dict(r) for r in sorted(rows, key=lambda r: r.get("position") or 0)]

    async def update_sync_items(self, ids, values, *, only_status=None):
        ids = set(ids)
        if isinstance(only_status, str):
            only_status = (only_status,)
        n = 0
        for r in self.tables["sync_items"]:
            if r["id"] in ids and (only_status is None or r["status"] in only_status):
                r.update(values)
                n += 1
        return n

    async def fail_stuck_items(self, batch_key, started_before, error):
        n = 0
        for r in self.tables["sync_items"]:
            if (r["batch_key"] == batch_key and r["status"] == "processing"
                    and r.get("started_at") and r["started_at"] < started_before):
                r.update(status="failed", error=error, completed_at=datetime.utcnow())
                n += 1
        return n


ATTRIBUTES = [
    {"id": "attr-color", "name": "Màu", "display_order": 2},
    {"id": "attr-size", "name": "Size Chữ", "display_order": 1},
]

VALUES = [
    {"id": "v-s", "attribute_id": "attr-size", "value": "S", "code": "S", "tpos_id": 11,
     "tpos_attribute_id": 1, "sequence": 1, "name_get": "Size Chữ: S"},
    {"id": "v-m", "attribute_id": "attr-size", "value": "M", "code": "M", "tpos_id": 12,
     "tpos_attribute_id": 1, "sequence": 2, "name_get": "Size Chữ: M"},
    {"id": "v-red", "attribute_id": "attr-color", "value": "Red", "code": "RED", "tpos_id": 21,
     "tpos_attribute_id": 3, "sequence": 1, "name_get": "Màu: Red"},
    {"id": "v-blue", "attribute_id": "attr-color", "value": "Blue", "code": "BLUE", "tpos_id": 22,
     "tpos_attribute_id": 3, "sequence": 2, "name_get": "Màu: Blue"},
]


class FakeTpos:
    """
    httpx.MockTransport handler standing in for TPOS (+ the image host).
    mode: "create" | "duplicate" | "error" | "rate_limit"
    """

    def __init__(self, mode="create", template_id=101):
        self.mode = mode
        self.template_id = template_id
        self.inserts = []
        self.image_gets = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            self.image_gets += 1
            return httpx.Response(200, content=b"\x89PNG-fake-image")

        payload = json.loads(request.content)
        self.inserts.append({"url": str(request.url), "headers": dict(request.headers), "payload": payload})
        if self.mode == "duplicate":
            return httpx.Response(400, text='{"error":{"message":"Mã sản phẩm đã tồn tại"}}')
        if self.mode == "rate_limit":
            return httpx.Response(429, text="Too Many Requests")
        if self.mode == "error":
            return httpx.Response(500, text="Internal Server Error")
        if self.mode == "create_then_duplicate" and len(self.inserts) > 1:
            return httpx.Response(400, text="Product already exists")

        code = payload["DefaultCode"]
        variants = [
            {
                "Id": 1000 + i,
                "DefaultCode": f"{code}{i + 1:02d}",
                "Name": v["Name"],
                "ProductTmplId": self.template_id,
                "PriceVariant": v["PriceVariant"],
                "QtyAvailable": 0,
                "VirtualAvailable": 0,
            }
            for i, v in enumerate(payload.get("ProductVariants") or [])
        ]
        return httpx.Response(200, json={
            "Id": self.template_id,
            "DefaultCode": code,
            "Name": payload["Name"],
            "ListPrice": payload["ListPrice"],
            "PurchasePrice": payload["PurchasePrice"],
            "QtyAvailable": 0,
            "VirtualAvailable": 0,
            "ProductVariants": variants,
        })


@pytest.fixture(autouse=True)
def _tpos_settings(monkeypatch):
    monkeypatch.setattr(settings, "TPOS_BEARER_TOKEN", "test-token")
    monkeypatch.setattr(settings, "TPOS_BASE_URL", "https://tpos.test")
    monkeypatch.setattr(settings, "IMAGE_FETCH_RETRY_DELAY", 0.0)
    monkeypatch.setattr(settings, "BATCH_RATE_LIMIT_DELAY", 0.0)


@pytest.fixture
def store():
    return InMemoryStore(ATTRIBUTES, VALUES)


@pytest.fixture
def fake_tpos():
    return FakeTpos()


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))
