#=======================================================================================
# app/routes.py
# FastAPI routes for product/variant → TPOS sync and batch progress.
#
# ✅ Canonical API lives under /api/*, all endpoints require HTTP Basic (admin)
#
# IMPORTANT: In main_app.py, include with NO extra prefix to avoid /api/api duplication:
#   from app.routes import router as api_router
#   app.include_router(api_router)   # <-- no prefix here
#=======================================================================================

import asyncio
import secrets
import time
from typing import Any, Dict, Optional, Set
import logging

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from app.config import settings
from app.models.audit_log import get_audit_log
from app.product_store import ProductStore, SqlProductStore
from app.sync.components.variant_match import find_matching_variant
from app.sync.errors import ValidationError
from app.sync.product_sync import preview_variants, sync_product_variants
from app.tpos.tpos_sync_models import BatchRequest, MatchRequest, PreviewRequest, VariantSyncRequest
from app.workers.batch_worker import dispatch_batch, process_batch, reset_failed_items
from app.workers.progress_tracker import BatchProgressTracker, ProgressSnapshot, TrackerResult

logger = logging.getLogger("uvicorn.error")

router = APIRouter(prefix="/api", tags=["TPOS Sync API"])

# ---------------------------
# HTTP Basic (admin)
# ---------------------------
security = HTTPBasic()

def verify_admin(credentials: HTTPBasicCredentials = Depends(security)):
    ok_user = secrets.compare_digest(credentials.username or "", settings.ADMIN_USER or "")
    ok_pass = secrets.compare_digest(credentials.password or "", settings.ADMIN_PASS or "")
    if not (ok_user and ok_pass):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Basic"},
        )

# ---------------------------
# Dependencies (overridden in tests)
# ---------------------------
_store: Optional[ProductStore] = None

def get_store() -> ProductStore:
    global _store
    if _store is None:
        _store = SqlProductStore()
    return _store

def get_tpos_client() -> Optional[httpx.AsyncClient]:
    # None → each TPOS call opens its own client
    return None

def _now_ts() -> int:
    return int(time.time())

# ---------------------------
# Batch registry (in-memory)
# ---------------------------
_BATCHES: Dict[str, Dict[str, Any]] = {}
_TRACKERS: Dict[str, BatchProgressTracker] = {}
_BATCHES_LOCK = asyncio.Lock()
_BATCHES_TTL_SECONDS = 60 * 60  # keep finished batches 1 hour
_WORKER_TASKS: Set[asyncio.Task] = set()  # strong refs until done


class _BatchObserver:
    """
    Mirrors tracker callbacks into the record the tracker was started with.
    A retry replaces _BATCHES[batch_key]; a superseded tracker only ever
    writes to its own, detached record.
    """

    def __init__(self, batch_key: str, rec: Dict[str, Any]):
        self.batch_key = batch_key
        self.rec = rec

    async def on_progress(self, snap: ProgressSnapshot):
        async with _BATCHES_LOCK:
            self.rec["progress"] = snap.to_dict()

    async def on_finished(self, result: TrackerResult):
        async with _BATCHES_LOCK:
            self.rec.update({
                "status": result.state.value,
                "finished": _now_ts(),
                "result": result.to_dict(),
            })
        logger.info("[BATCH][TRACK] %s → %s (%s)", self.batch_key, result.state.value, result.outcome)


def cancel_all_trackers() -> None:
    for tracker in list(_TRACKERS.values()):
        tracker.cancel()


async def _cleanup_batches_now():
    cutoff = _now_ts() - _BATCHES_TTL_SECONDS
    async with _BATCHES_LOCK:
        to_del = [k for k, rec in _BATCHES.items()
                  if rec.get("finished") and rec.get("finished") < cutoff]
        for k in to_del:
            _BATCHES.pop(k, None)
            _TRACKERS.pop(k, None)


async def _run_worker(
    batch_key: str, rec: Dict[str, Any], store: ProductStore, client: Optional[httpx.AsyncClient]
):
    try:
        summary = await process_batch(batch_key, store=store, client=client)
        async with _BATCHES_LOCK:
            rec["worker"] = summary
    except Exception as e:
        logger.exception("[BATCH][RUN] worker for %s crashed", batch_key)
        async with _BATCHES_LOCK:
            rec["worker_error"] = str(e)
    await _cleanup_batches_now()


async def _start_tracking(batch_key: str, expected: int, store: ProductStore, client, **extra) -> Dict[str, Any]:
    old = _TRACKERS.get(batch_key)
    if old is not None:
        old.cancel()
    rec = {
        "batch_key": batch_key,
        "expected": expected,
        "status": "running",
        "started": _now_ts(),
        "finished": None,
        "progress": None,
        "result": None,
        **extra,
    }
    tracker = BatchProgressTracker(batch_key, expected, store.get_item_statuses, _BatchObserver(batch_key, rec))
    async with _BATCHES_LOCK:
        _BATCHES[batch_key] = rec
        _TRACKERS[batch_key] = tracker

    # Fire and forget: worker mutates status rows, tracker watches them
    task = asyncio.create_task(_run_worker(batch_key, rec, store, client))
    _WORKER_TASKS.add(task)
    task.add_done_callback(_WORKER_TASKS.discard)
    tracker.start()
    return rec

# ----------------------------------------------------------------------
# Variants
# ----------------------------------------------------------------------

@router.post("/variants/preview", dependencies=[Depends(verify_admin)])
async def api_variants_preview(req: PreviewRequest, store: ProductStore = Depends(get_store)):
    """Expand a selection into combinations without calling TPOS."""
    try:
        result = await preview_variants(req.base_product_code, req.selected_attribute_value_ids, store=store)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return JSONResponse(content=result)


@router.post("/variants/sync", dependencies=[Depends(verify_admin)])
async def api_variants_sync(
    req: VariantSyncRequest,
    store: ProductStore = Depends(get_store),
    client: Optional[httpx.AsyncClient] = Depends(get_tpos_client),
):
    """
    Create one product (+ variants) on TPOS and store it locally (blocking).
    Failures come back as 200 with success=false and error_kind set.
    """
    result = await sync_product_variants(
        req.base_product_code,
        req.product_name,
        req.purchase_price,
        req.selling_price,
        req.product_images,
        req.selected_attribute_value_ids,
        store=store,
        client=client,
        supplier_name=req.supplier_name,
    )
    return JSONResponse(content=result.model_dump())


@router.post("/variants/match", dependencies=[Depends(verify_admin)])
async def api_variants_match(req: MatchRequest, store: ProductStore = Depends(get_store)):
    """
    Find the stored variant of a base product matching a free-typed descriptor.
    Falls back to an exact product_code hit.
    """
    code = req.base_product_code.strip()
    candidates = [p for p in await store.list_products(code) if p.get("variant")]
    matched = find_matching_variant(req.variant, candidates)
    match_type = "variant" if matched else None
    if matched is None:
        matched = await store.get_product(code)
        match_type = "exact_code" if matched else None

    content = {"base_product_code": code, "variant": req.variant, "match_type": match_type, "product": None}
    if matched:
        content["product"] = {k: matched.get(k) for k in ("product_code", "product_name", "variant", "tpos_product_id")}
    return JSONResponse(content=content)

# ----------------------------------------------------------------------
# Batches (non-blocking)
# ----------------------------------------------------------------------

@router.post("/batches", dependencies=[Depends(verify_admin)])
async def api_batches_create(
    req: BatchRequest,
    store: ProductStore = Depends(get_store),
    client: Optional[httpx.AsyncClient] = Depends(get_tpos_client),
):
    """
    Queue several products. Returns 202 { batch_key, expected };
    poll GET /api/batches/{batch_key} for progress.
    """
    info = await dispatch_batch(req.items, store=store)
    batch_key, expected = info["batch_key"], info["expected"]
    logger.info("[BATCH][REGISTER] %s (%d items)", batch_key, expected)
    await _start_tracking(batch_key, expected, store, client)
    return JSONResponse(
        status_code=202,
        content={"batch_key": batch_key, "expected": expected, "status": "running"},
        headers={"Location": f"/api/batches/{batch_key}"},
    )


@router.get("/batches/{batch_key}", dependencies=[Depends(verify_admin)])
async def api_batches_status(batch_key: str, store: ProductStore = Depends(get_store)):
    async with _BATCHES_LOCK:
        rec = _BATCHES.get(batch_key)
        rec = dict(rec) if rec else None
    if rec:
        return JSONResponse(content=rec)

    # not tracked by this process (restart / expired): report the stored rows
    rows = await store.get_item_statuses(batch_key)
    if not rows:
        raise HTTPException(status_code=404, detail="batch not found")
    success = sum(1 for r in rows if r.get("status") == "success")
    failed = sum(1 for r in rows if r.get("status") == "failed")
    return JSONResponse(content={
        "batch_key": batch_key,
        "expected": len(rows),
        "status": "untracked",
        "progress": {"completed": success + failed, "expected": len(rows), "success": success, "failed": failed},
        "items": rows,
    })


@router.post("/batches/{batch_key}/cancel", dependencies=[Depends(verify_admin)])
async def api_batches_cancel(batch_key: str):
    """Stop watching a batch. Items already sent to TPOS keep processing."""
    tracker = _TRACKERS.get(batch_key)
    if tracker is None:
        raise HTTPException(status_code=404, detail="batch not found")
    tracker.cancel()
    return JSONResponse(content={"ok": True, "batch_key": batch_key, "state": tracker.state.value})


@router.post("/batches/{batch_key}/retry", dependencies=[Depends(verify_admin)])
async def api_batches_retry(
    batch_key: str,
    store: ProductStore = Depends(get_store),
    client: Optional[httpx.AsyncClient] = Depends(get_tpos_client),
):
    """Re-drive only the failed items of a batch."""
    rows = await store.get_item_statuses(batch_key)
    if not rows:
        raise HTTPException(status_code=404, detail="batch not found")
    if any(r.get("status") in ("pending", "processing") for r in rows):
        raise HTTPException(status_code=409, detail="batch still running")

    retried = await reset_failed_items(batch_key, store=store)
    if not retried:
        return JSONResponse(content={"ok": True, "batch_key": batch_key, "retried": 0})
    await _start_tracking(batch_key, len(rows), store, client, retried=retried)
    return JSONResponse(
        status_code=202,
        content={"ok": True, "batch_key": batch_key, "retried": retried, "expected": len(rows)},
        headers={"Location": f"/api/batches/{batch_key}"},
    )

# ----------------------------------------------------------------------
# Audit
# ----------------------------------------------------------------------

@router.get("/audit", dependencies=[Depends(verify_admin)])
async def api_audit(product_code: Optional[str] = Query(None)):
    return JSONResponse(content={"entries": get_audit_log(product_code)})


@router.get("/health")
async def api_health():
    return {"ok": True}
