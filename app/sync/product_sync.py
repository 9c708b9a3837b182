# app/sync/product_sync.py
# =======================================================
# Product / Variant → TPOS Sync Orchestrator
# - Load selected attribute values (+ their attributes)
# - Expand the variant matrix (Cartesian product)
# - Prices (thousands → full amount), image → base64
# - One InsertV2 call for parent + all variants
# - Reconcile TPOS' answer into the local products table
# =======================================================
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import httpx

from app.models.audit_log import add_audit_entry
from app.product_store import ProductStore
from app.sync.components.attributes import build_attribute_lines
from app.sync.components.images import fetch_image_base64, first_image_url
from app.sync.components.matrix import (
    VariantCombination,
    generate_combinations,
    group_selection,
    summarize_parent_variant,
)
from app.sync.components.price import normalize_price
from app.sync.components.util import dedupe_preserve_order
from app.sync.components.variant_match import variants_match
from app.sync.errors import (
    ExternalCallError,
    ReconciliationError,
    ReferenceDataMissing,
    SyncError,
    ValidationError,
)
from app.tpos.tpos_client import insert_product_template
from app.tpos.tpos_payloads import build_product_template, build_variant_row
from app.tpos.tpos_sync_models import SyncResult
from app.tpos.tpos_variant_parser import extract_variant_descriptor

logger = logging.getLogger("uvicorn.error")


@dataclass
class VariantPlan:
    """Everything derived from the selection before TPOS is called."""
    code: str
    attributes: List[Dict[str, Any]] = field(default_factory=list)
    grouped: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)
    combinations: List[VariantCombination] = field(default_factory=list)

    @property
    def is_simple(self) -> bool:
        return not self.combinations


def _to_int(x: Any) -> int:
    try:
        return int(round(float(x or 0)))
    except (TypeError, ValueError):
        return 0


def _failure(code: str | None, err: SyncError, **extra) -> SyncResult:
    return SyncResult(
        success=False,
        product_code=code or None,
        error_kind=err.kind,
        error_detail=str(err),
        tpos_status_code=getattr(err, "status_code", None),
        rate_limited=getattr(err, "rate_limited", False),
        **extra,
    )


# ---------------------------
# Reference data
# ---------------------------

async def load_variant_plan(code: str, selected_value_ids: Sequence[str], *, store: ProductStore) -> VariantPlan:
    """
    Resolve the selected value ids and expand them. Every id must resolve;
    a partly resolvable selection would silently shrink the matrix.
    """
    plan = VariantPlan(code=code)
    ids = dedupe_preserve_order(selected_value_ids)
    if not ids:
        return plan

    values = await store.list_attribute_values(ids)
    found = {v["id"] for v in values}
    missing = [i for i in ids if i not in found]
    if missing:
        raise ReferenceDataMissing(missing)

    unlinked = [v.get("value") or v["id"] for v in values
                if v.get("tpos_id") is None or v.get("tpos_attribute_id") is None]
    if unlinked:
        raise ValidationError(f"Attribute values not linked to TPOS: {', '.join(map(str, unlinked))}")

    attr_ids = dedupe_preserve_order(v["attribute_id"] for v in values)
    attributes = await store.list_attributes(attr_ids)
    found_attrs = {a["id"] for a in attributes}
    missing_attrs = [a for a in attr_ids if a not in found_attrs]
    if missing_attrs:
        raise ReferenceDataMissing(missing_attrs, what="attributes")

    plan.attributes = attributes
    plan.grouped = group_selection(values, attributes)
    plan.combinations = generate_combinations(plan.grouped, attributes)
    logger.info("[SYNC] %s: %d attribute(s) → %d combination(s)",
                code, len(plan.grouped), len(plan.combinations))
    return plan


async def preview_variants(base_code: str, selected_value_ids: Sequence[str], *, store: ProductStore) -> Dict[str, Any]:
    """Dry-run of the matrix expansion; nothing leaves the process."""
    code = (base_code or "").strip()
    plan = await load_variant_plan(code, selected_value_ids, store=store)
    names = {a["id"]: a.get("name") for a in plan.attributes}
    return {
        "product_code": code,
        "variant_count": len(plan.combinations),
        "attributes": [
            {"name": names.get(aid), "values": [v.get("value") for v in vals]}
            for aid, vals in plan.grouped.items()
        ],
        "variants": [
            {"storage_descriptor": c.storage_descriptor, "display_name": c.display_name(code)}
            for c in plan.combinations
        ],
    }


# ---------------------------
# Reconciliation
# ---------------------------

def _parent_row(tpos: Dict[str, Any], code: str, images: List[str], supplier_name: Optional[str]) -> Dict[str, Any]:
    parent_code = tpos.get("DefaultCode") or code
    return {
        "product_code": parent_code,
        "base_product_code": parent_code,
        "tpos_product_id": tpos.get("Id"),
        "product_name": tpos.get("Name") or "",
        "selling_price": _to_int(tpos.get("ListPrice")),
        "purchase_price": _to_int(tpos.get("PurchasePrice")),
        "stock_quantity": _to_int(tpos.get("QtyAvailable")),
        "virtual_available": _to_int(tpos.get("VirtualAvailable")),
        "product_images": list(images),
        "supplier_name": supplier_name,
    }


def _child_rows(
    tpos: Dict[str, Any], parent_code: str, images: List[str], supplier_name: Optional[str]
) -> tuple[List[Dict[str, Any]], List[str]]:
    rows: List[Dict[str, Any]] = []
    unparsed: List[str] = []
    for v in tpos.get("ProductVariants") or []:
        name = v.get("Name") or ""
        descriptor = extract_variant_descriptor(name)
        if descriptor is None:
            unparsed.append(name or str(v.get("Id")))
        vcode = v.get("DefaultCode")
        if not vcode:
            logger.warning("[SYNC] TPOS variant id=%s (%s) has no DefaultCode; not stored", v.get("Id"), name)
            continue
        rows.append({
            "product_code": vcode,
            "base_product_code": parent_code,
            "productid_bienthe": v.get("Id"),
            "tpos_product_id": v.get("ProductTmplId") or tpos.get("Id"),
            "product_name": name,
            "variant": descriptor,
            "selling_price": _to_int(v.get("PriceVariant")),
            "purchase_price": _to_int(tpos.get("PurchasePrice")),
            "stock_quantity": _to_int(v.get("QtyAvailable")),
            "virtual_available": _to_int(v.get("VirtualAvailable")),
            "product_images": list(images),
            "supplier_name": supplier_name,
        })
    return rows, unparsed


async def _reconcile(
    tpos: Dict[str, Any],
    plan: VariantPlan,
    images: List[str],
    supplier_name: Optional[str],
    store: ProductStore,
) -> SyncResult:
    variants = tpos.get("ProductVariants") or []
    external_ids = {
        "tpos_product_id": tpos.get("Id"),
        "variant_ids": [v.get("Id") for v in variants],
    }
    parent = _parent_row(tpos, plan.code, images, supplier_name)
    children: List[Dict[str, Any]] = []
    unparsed: List[str] = []
    missing: List[str] = []

    if not plan.is_simple:
        children, unparsed = _child_rows(tpos, parent["product_code"], images, supplier_name)
        parent["variant"] = summarize_parent_variant([c["variant"] for c in children]) or None
        returned = [extract_variant_descriptor(v.get("Name")) for v in variants]
        missing = [
            c.storage_descriptor for c in plan.combinations
            if not any(variants_match(c.storage_descriptor, r) for r in returned)
        ]
        if missing:
            logger.warning("[SYNC] %s: %d requested variant(s) not confirmed by TPOS: %s",
                           plan.code, len(missing), missing)

    try:
        await store.upsert("products", parent, "product_code")
        if children:
            await store.upsert("products", children, "product_code")
    except Exception as e:
        logger.error("[SYNC] ❌ %s created on TPOS (id=%s) but local save failed: %s",
                     plan.code, tpos.get("Id"), e)
        raise ReconciliationError(f"Database save failed: {e}", external_ids=external_ids) from e

    return SyncResult(
        success=True,
        parent_id=tpos.get("Id"),
        product_code=parent["product_code"],
        variant_count=len(variants),
        parent_saved=1,
        children_saved=len(children),
        external_ids=external_ids,
        unparsed_variants=unparsed,
        missing_variants=missing,
    )


# ---------------------------
# Public entry point
# ---------------------------

async def sync_product_variants(
    base_code: str,
    name: str,
    purchase_price: Any,
    selling_price: Any,
    images: Optional[Sequence[str]] = None,
    selected_value_ids: Optional[Sequence[str]] = None,
    *,
    store: ProductStore,
    client: Optional[httpx.AsyncClient] = None,
    supplier_name: Optional[str] = None,
) -> SyncResult:
    """
    Create a product (and every variant of the selection) on TPOS, then mirror
    TPOS' answer into the local products table.

    Safe to re-drive: a second call for the same code gets TPOS' "already
    exists" answer, which is reported as success with already_exists=True and
    leaves local storage untouched.
    """
    code = (base_code or "").strip()
    name = (name or "").strip()
    images = [u for u in (images or []) if u]

    # 1-3: validation + reference data (no TPOS call on failure)
    try:
        if not code or not name:
            raise ValidationError("Missing required parameters: base_code and name")
        plan = await load_variant_plan(code, selected_value_ids or [], store=store)
    except ValidationError as e:
        logger.warning("[SYNC] %s rejected: %s", code or "<no code>", e)
        add_audit_entry("Sync Rejected", "system", str(e), product_code=code or None)
        return _failure(code, e)

    # 4: prices
    purchase = normalize_price(purchase_price)
    selling = normalize_price(selling_price)
    logger.info("[SYNC] 💰 %s prices: purchase %r → %d, selling %r → %d",
                code, purchase_price, purchase, selling_price, selling)

    # 5: image, fetched once for the whole payload
    image_b64 = await fetch_image_base64(first_image_url(images), client=client)

    variant_rows = [build_variant_row(code, c, plan.attributes, selling) for c in plan.combinations]
    payload = build_product_template(
        code=code,
        name=name,
        purchase_price=purchase,
        selling_price=selling,
        image_b64=image_b64,
        attribute_lines=build_attribute_lines(plan.grouped, plan.attributes),
        variants=variant_rows,
    )

    # 6: dispatch
    try:
        outcome = await insert_product_template(payload, client=client)
    except ExternalCallError as e:
        add_audit_entry("Sync Failed", "system", str(e), product_code=code)
        return _failure(code, e)

    if outcome["status"] == "duplicate":
        add_audit_entry("Sync Skipped", "system", "already exists on TPOS", product_code=code)
        return SyncResult(
            success=True,
            already_exists=True,
            product_code=code,
            variant_count=len(plan.combinations),
        )

    # 7: reconcile
    tpos = outcome["data"] or {}
    try:
        result = await _reconcile(tpos, plan, images, supplier_name, store)
    except ReconciliationError as e:
        add_audit_entry("Sync Reconciliation Failed", "system",
                        f"{e} external_ids={e.external_ids}", product_code=code)
        return _failure(code, e, parent_id=tpos.get("Id"), external_ids=e.external_ids)

    add_audit_entry(
        "Sync Completed", "system",
        f"tpos_id={result.parent_id} variants={result.variant_count} children_saved={result.children_saved}",
        product_code=code,
    )
    return result
