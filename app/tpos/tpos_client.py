#==========================================================================================
# app/tpos/tpos_client.py
# TPOS (tomato.tpos.vn) OData interface used by the product sync.
#==========================================================================================
from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

import httpx

from app.config import settings
from app.sync.errors import ExternalCallError

logger = logging.getLogger("uvicorn.error")

INSERT_TEMPLATE_PATH = "/odata/ProductTemplate/ODataService.InsertV2"
INSERT_TEMPLATE_EXPAND = "ProductVariants,UOM,UOMPO"

# Error texts TPOS returns when the code/barcode is already taken.
# Edit here only; the sync logic goes through is_duplicate_resource_error().
DUPLICATE_SIGNATURES = (
    "đã tồn tại",
    "already exists",
    "Đã có sản phẩm với mã vạch",
)


def is_duplicate_resource_error(body: Any, status_code: int | None) -> bool:
    """True when a TPOS error response means "this product already exists"."""
    if status_code != 400 or body is None:
        return False
    if not isinstance(body, str):
        body = json.dumps(body, ensure_ascii=False)
    return any(sig in body for sig in DUPLICATE_SIGNATURES)


def tpos_headers(token: str | None = None) -> Dict[str, str]:
    token = token if token is not None else settings.TPOS_BEARER_TOKEN
    return {
        "Authorization": f"Bearer {token}",
        "Content-Type": "application/json",
        "Tpos-Retailer": "1",
    }


def insert_template_url() -> str:
    return f"{settings.TPOS_BASE_URL}{INSERT_TEMPLATE_PATH}?$expand={INSERT_TEMPLATE_EXPAND}"


async def _post(client: httpx.AsyncClient, url: str, payload: Dict[str, Any]) -> httpx.Response:
    return await client.post(url, headers=tpos_headers(), json=payload)


async def insert_product_template(
    payload: Dict[str, Any],
    *,
    client: Optional[httpx.AsyncClient] = None,
) -> Dict[str, Any]:
    """
    Create a ProductTemplate (+ ProductVariants) on TPOS.

    Returns:
        {"status": "created", "data": <template json>}
        {"status": "duplicate", "body": <error text>}
    Raises:
        ExternalCallError for network errors and any other non-2xx response.
    """
    if not settings.TPOS_BEARER_TOKEN:
        raise ExternalCallError("TPOS credentials not configured (TPOS_BEARER_TOKEN)")

    url = insert_template_url()
    code = payload.get("DefaultCode")
    try:
        if client is not None:
            resp = await _post(client, url, payload)
        else:
            async with httpx.AsyncClient(timeout=settings.TPOS_TIMEOUT, verify=settings.TPOS_VERIFY_SSL) as c:
                resp = await _post(c, url, payload)
    except httpx.HTTPError as e:
        logger.error("[TPOS] InsertV2 %s failed: %s", code, e)
        raise ExternalCallError(f"TPOS request failed: {e}") from e

    if resp.is_success:
        try:
            data = resp.json()
        except ValueError as e:
            raise ExternalCallError(
                "TPOS returned a non-JSON success body", status_code=resp.status_code, body=resp.text
            ) from e
        logger.info("[TPOS] created template %s id=%s variants=%d",
                    code, data.get("Id"), len(data.get("ProductVariants") or []))
        return {"status": "created", "data": data}

    body = resp.text
    if is_duplicate_resource_error(body, resp.status_code):
        logger.warning("[TPOS] ⚠️ product %s already exists on TPOS, treating as success", code)
        return {"status": "duplicate", "body": body}

    logger.error("[TPOS] InsertV2 %s -> %s: %s", code, resp.status_code, body)
    raise ExternalCallError(
        f"TPOS API error: {resp.status_code} - {body}", status_code=resp.status_code, body=body
    )
