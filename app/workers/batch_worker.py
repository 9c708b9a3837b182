# ---------------------------
# app/workers/batch_worker.py
# ---------------------------
# Background processor for a dispatched batch of products.
# Writes the per-item status rows (pending → processing → success|failed)
# that BatchProgressTracker polls.
import asyncio
import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import httpx

from app.config import settings
from app.models.audit_log import add_audit_entry
from app.product_store import ProductStore
from app.sync.components.util import clean_code
from app.sync.product_sync import sync_product_variants
from app.tpos.tpos_sync_models import SyncResult, VariantSyncRequest

logger = logging.getLogger("uvicorn.error")

RETRYABLE_STATUSES = ("pending", "failed")


def _raw_price(v: Any) -> Optional[str]:
    return None if v is None else str(v)


def _group_key(item: Dict[str, Any]) -> str:
    ids = sorted(str(i) for i in (item.get("selected_attribute_value_ids") or []))
    return f"{item.get('product_code')}|{','.join(ids)}"


def _group_items(items: List[Dict[str, Any]]) -> Dict[str, List[Dict[str, Any]]]:
    """Same code + same selection = one TPOS product; keeps first-seen (position) order."""
    groups: Dict[str, List[Dict[str, Any]]] = {}
    for it in items:
        groups.setdefault(_group_key(it), []).append(it)
    return groups


def _is_rate_limited(result: SyncResult) -> bool:
    return result.error_kind == "external" and result.rate_limited


# ---------------------------
# Dispatch
# ---------------------------

async def dispatch_batch(items: List[Any], *, store: ProductStore, batch_key: Optional[str] = None) -> Dict[str, Any]:
    """Persist the items as `pending` rows under a fresh batch key."""
    batch_key = batch_key or uuid.uuid4().hex
    rows = []
    for pos, raw in enumerate(items or []):
        req = raw if isinstance(raw, VariantSyncRequest) else VariantSyncRequest(**raw)
        rows.append({
            "id": uuid.uuid4().hex,
            "batch_key": batch_key,
            "position": pos,
            "product_code": req.base_product_code,
            "product_name": req.product_name,
            "purchase_price": _raw_price(req.purchase_price),
            "selling_price": _raw_price(req.selling_price),
            "product_images": list(req.product_images),
            "selected_attribute_value_ids": list(req.selected_attribute_value_ids),
            "supplier_name": req.supplier_name,
            "status": "pending",
        })
    if rows:
        await store.upsert("sync_items", rows, "id")
    logger.info("[BATCH] dispatched %s with %d item(s)", batch_key, len(rows))
    add_audit_entry("Batch Dispatched", "system", f"batch={batch_key} items={len(rows)}")
    return {"batch_key": batch_key, "expected": len(rows)}


# ---------------------------
# Processing
# ---------------------------

async def _sync_group(
    key: str,
    group: List[Dict[str, Any]],
    *,
    store: ProductStore,
    client: Optional[httpx.AsyncClient],
) -> Optional[SyncResult]:
    primary = group[0]
    ids = [it["id"] for it in group]
    # claim: rows another run already moved to processing are left alone
    claimed = await store.update_sync_items(
        ids,
        {"status": "processing", "started_at": datetime.utcnow(), "error": None},
        only_status=RETRYABLE_STATUSES,
    )
    if not claimed:
        logger.info("[BATCH] group %s already claimed by another run; skipping", key)
        return None
    logger.info("[BATCH] 🔄 processing group %s (%d item(s))", key, len(group))

    supplier = (primary.get("supplier_name") or "").strip().upper() or None
    retries = max(settings.BATCH_MAX_RETRIES, 1)
    result: Optional[SyncResult] = None
    for attempt in range(1, retries + 1):
        try:
            result = await sync_product_variants(
                clean_code(primary.get("product_code")),
                clean_code(primary.get("product_name")),
                primary.get("purchase_price"),
                primary.get("selling_price"),
                primary.get("product_images") or [],
                primary.get("selected_attribute_value_ids") or [],
                store=store,
                client=client,
                supplier_name=supplier,
            )
        except Exception as e:
            logger.exception("[BATCH] group %s crashed (attempt %d/%d)", key, attempt, retries)
            result = SyncResult(success=False, product_code=primary.get("product_code"),
                                error_kind="external", error_detail=str(e))

        if result.success or result.error_kind in ("validation", "reconciliation"):
            break
        if attempt < retries:
            if _is_rate_limited(result):
                wait = settings.BATCH_RATE_LIMIT_DELAY * attempt
                logger.warning("[BATCH] ⚠️ rate limit hit for %s, retrying in %.1fs", key, wait)
                await asyncio.sleep(wait)
            else:
                logger.warning("[BATCH] group %s failed (attempt %d/%d): %s",
                               key, attempt, retries, result.error_detail)

    now = datetime.utcnow()
    if result.success:
        await store.update_sync_items(
            ids,
            {"status": "success", "error": None, "completed_at": now, "tpos_product_id": result.parent_id},
            only_status="processing",
        )
        logger.info("[BATCH] ✅ group %s done (tpos_id=%s)", key, result.parent_id)
    else:
        values: Dict[str, Any] = {"status": "failed", "error": result.error_detail, "completed_at": now}
        # TPOS already holds the product; keep its id so a retry skips the group
        if result.error_kind == "reconciliation" and result.parent_id:
            values["tpos_product_id"] = result.parent_id
        await store.update_sync_items(ids, values, only_status="processing")
        logger.error("[BATCH] ❌ group %s failed: %s", key, result.error_detail)
    return result


async def process_batch(
    batch_key: str,
    *,
    store: ProductStore,
    client: Optional[httpx.AsyncClient] = None,
) -> Dict[str, Any]:
    """
    Sync every pending/failed item of a batch that has no TPOS id yet.
    Returns {total, succeeded, failed, skipped, errors:[{id, error}]}.
    Groups claimed by an overlapping run are counted as skipped.
    """
    cutoff = datetime.utcnow() - timedelta(minutes=settings.STUCK_ITEM_MINUTES)
    stuck = await store.fail_stuck_items(
        batch_key, cutoff, f"Timeout: processing took longer than {settings.STUCK_ITEM_MINUTES} minutes"
    )
    if stuck:
        logger.warning("[BATCH] %s: reset %d stuck item(s) to failed", batch_key, stuck)

    items = await store.list_sync_items(batch_key, statuses=RETRYABLE_STATUSES, unsynced_only=True)
    summary: Dict[str, Any] = {"total": len(items), "succeeded": 0, "failed": 0, "skipped": 0, "errors": []}
    if not items:
        logger.info("[BATCH] %s: nothing to process", batch_key)
        return summary

    groups = _group_items(items)
    sem = asyncio.Semaphore(max(settings.BATCH_MAX_CONCURRENT, 1))
    logger.info("[BATCH] 📦 %s: %d item(s) in %d group(s), concurrency=%d",
                batch_key, len(items), len(groups), settings.BATCH_MAX_CONCURRENT)

    async def _one(key: str, group: List[Dict[str, Any]]):
        async with sem:
            return group, await _sync_group(key, group, store=store, client=client)

    for group, result in await asyncio.gather(*[_one(k, g) for k, g in groups.items()]):
        if result is None:
            summary["skipped"] += len(group)
        elif result.success:
            summary["succeeded"] += len(group)
        else:
            summary["failed"] += len(group)
            summary["errors"].extend({"id": it["id"], "error": result.error_detail} for it in group)

    logger.info("[BATCH] %s complete: %s", batch_key,
                {k: summary[k] for k in ("total", "succeeded", "failed", "skipped")})
    add_audit_entry("Batch Processed", "system",
                    f"batch={batch_key} total={summary['total']} ok={summary['succeeded']} failed={summary['failed']}")
    return summary


async def reset_failed_items(batch_key: str, *, store: ProductStore) -> int:
    """Put failed items (still without a TPOS id) back to pending."""
    failed = await store.list_sync_items(batch_key, statuses=("failed",), unsynced_only=True)
    count = await store.update_sync_items(
        [it["id"] for it in failed],
        {"status": "pending", "error": None, "started_at": None, "completed_at": None},
        only_status="failed",
    )
    logger.info("[BATCH] %s: %d failed item(s) queued for retry", batch_key, count)
    return count


async def retry_failed_items(
    batch_key: str,
    *,
    store: ProductStore,
    client: Optional[httpx.AsyncClient] = None,
) -> Dict[str, Any]:
    await reset_failed_items(batch_key, store=store)
    return await process_batch(batch_key, store=store, client=client)
