import asyncio
import json

import httpx
import pytest

from app.sync.errors import ExternalCallError
from app.tpos.tpos_client import (
    DUPLICATE_SIGNATURES,
    insert_product_template,
    insert_template_url,
    is_duplicate_resource_error,
    tpos_headers,
)
from conftest import mock_client


@pytest.mark.parametrize("body", [
    '{"error":{"code":"","message":"Mã sản phẩm NTEST đã tồn tại"}}',
    "Product code already exists",
    "Đã có sản phẩm với mã vạch NTEST",
])
def test_duplicate_bodies_are_recognised(body):
    assert is_duplicate_resource_error(body, 400)


def test_duplicate_needs_status_400():
    assert not is_duplicate_resource_error("đã tồn tại", 500)
    assert not is_duplicate_resource_error("đã tồn tại", 200)


def test_other_400_is_not_duplicate():
    assert not is_duplicate_resource_error('{"error":"Giá bán không hợp lệ"}', 400)
    assert not is_duplicate_resource_error(None, 400)


def test_dict_body_is_searched():
    assert is_duplicate_resource_error({"message": "already exists"}, 400)
    assert len(DUPLICATE_SIGNATURES) == 3


def test_headers_and_url():
    h = tpos_headers("abc")
    assert h["Authorization"] == "Bearer abc"
    assert h["Tpos-Retailer"] == "1"
    assert insert_template_url() == (
        "https://tpos.test/odata/ProductTemplate/ODataService.InsertV2?$expand=ProductVariants,UOM,UOMPO"
    )


def _run(handler, payload=None):
    async def go():
        async with mock_client(handler) as client:
            return await insert_product_template(payload or {"DefaultCode": "NTEST"}, client=client)
    return asyncio.run(go())


def test_created():
    seen = {}

    def handler(request):
        seen["auth"] = request.headers["authorization"]
        seen["body"] = json.loads(request.content)
        seen["expand"] = request.url.params.get("$expand")
        return httpx.Response(200, json={"Id": 7, "ProductVariants": []})

    out = _run(handler)
    assert out == {"status": "created", "data": {"Id": 7, "ProductVariants": []}}
    assert seen["auth"] == "Bearer test-token"
    assert seen["body"] == {"DefaultCode": "NTEST"}
    assert seen["expand"] == "ProductVariants,UOM,UOMPO"


def test_duplicate_is_not_an_error():
    out = _run(lambda r: httpx.Response(400, text="Mã đã tồn tại"))
    assert out["status"] == "duplicate"


def test_other_failure_raises_with_status_and_body():
    with pytest.raises(ExternalCallError) as exc:
        _run(lambda r: httpx.Response(502, text="Bad Gateway"))
    assert exc.value.status_code == 502
    assert exc.value.body == "Bad Gateway"
    assert "502" in str(exc.value)


def test_rate_limit_flag():
    with pytest.raises(ExternalCallError) as exc:
        _run(lambda r: httpx.Response(429, text="slow down"))
    assert exc.value.rate_limited


def test_network_error_raises():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ExternalCallError) as exc:
        _run(handler)
    assert exc.value.status_code is None


def test_missing_token(monkeypatch):
    from app.config import settings
    monkeypatch.setattr(settings, "TPOS_BEARER_TOKEN", "")
    with pytest.raises(ExternalCallError):
        _run(lambda r: httpx.Response(200, json={}))
