#===========================================================================
# app/product_store.py
# Local storage for attributes, products and batch status rows.
# Keyed upserts (insert-or-update by unique business code) over SQLAlchemy.
#===========================================================================

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Protocol, Union

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

from app.db import get_engine
from app.models.products import (
    Product,
    ProductAttribute,
    ProductAttributeValue,
    SyncItem,
)

logger = logging.getLogger("uvicorn.error")

_MODELS = {
    "products": Product,
    "product_attributes": ProductAttribute,
    "product_attribute_values": ProductAttributeValue,
    "sync_items": SyncItem,
}


class ProductStore(Protocol):
    """What the sync core needs from local storage."""

    async def list_attributes(self, ids: Optional[Iterable[str]] = None) -> List[Dict[str, Any]]: ...

    async def list_attribute_values(self, ids: Iterable[str]) -> List[Dict[str, Any]]: ...

    async def values_for_attribute(self, attribute_id: str) -> List[Dict[str, Any]]: ...

    async def upsert(self, table: str, rows: Dict[str, Any] | List[Dict[str, Any]], conflict_key: str) -> int: ...

    async def get_product(self, product_code: str) -> Optional[Dict[str, Any]]: ...

    async def list_products(self, base_product_code: str) -> List[Dict[str, Any]]: ...

    async def get_item_statuses(self, batch_key: str) -> List[Dict[str, Any]]: ...

    async def list_sync_items(
        self, batch_key: str, statuses: Optional[Iterable[str]] = None, unsynced_only: bool = False
    ) -> List[Dict[str, Any]]: ...

    async def update_sync_items(
        self, ids: Iterable[str], values: Dict[str, Any], *, only_status: Union[str, Iterable[str], None] = None
    ) -> int: ...

    async def fail_stuck_items(self, batch_key: str, started_before: datetime, error: str) -> int: ...


def _as_dict(obj) -> Dict[str, Any]:
    return {c.name: getattr(obj, c.name) for c in obj.__table__.columns}


def _dialect_insert(dialect_name: str):
    if dialect_name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
        return insert
    if dialect_name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
        return insert
    raise NotImplementedError(f"upsert not supported for dialect {dialect_name!r}")


class SqlProductStore:
    """ProductStore over an async SQLAlchemy engine (sqlite or postgresql)."""

    def __init__(self, engine: Optional[AsyncEngine] = None):
        self._engine = engine or get_engine()
        self._sessions = async_sessionmaker(self._engine, expire_on_commit=False)

    # ---- Attribute catalog (read-only for the sync core) ----

    async def list_attributes(self, ids: Optional[Iterable[str]] = None) -> List[Dict[str, Any]]:
        stmt = select(ProductAttribute).order_by(ProductAttribute.display_order, ProductAttribute.id)
        if ids is not None:
            stmt = stmt.where(ProductAttribute.id.in_(list(ids)))
        async with self._sessions() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [_as_dict(r) for r in rows]

    async def list_attribute_values(self, ids: Iterable[str]) -> List[Dict[str, Any]]:
        ids = list(ids)
        if not ids:
            return []
        stmt = select(ProductAttributeValue).where(ProductAttributeValue.id.in_(ids))
        async with self._sessions() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [_as_dict(r) for r in rows]

    async def values_for_attribute(self, attribute_id: str) -> List[Dict[str, Any]]:
        stmt = (
            select(ProductAttributeValue)
            .where(ProductAttributeValue.attribute_id == attribute_id)
            .order_by(ProductAttributeValue.sequence)
        )
        async with self._sessions() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [_as_dict(r) for r in rows]

    # ---- Keyed upsert ----

    async def upsert(self, table: str, rows: Dict[str, Any] | List[Dict[str, Any]], conflict_key: str) -> int:
        """
        Insert-or-update rows keyed by a unique column. Accepts a single row
        or a batch; every row in a batch must carry the same keys.
        """
        if isinstance(rows, dict):
            rows = [rows]
        if not rows:
            return 0
        model = _MODELS.get(table)
        if model is None:
            raise ValueError(f"unknown table {table!r}")
        tbl = model.__table__
        if conflict_key not in tbl.c:
            raise ValueError(f"{table}.{conflict_key} is not a column")
        keys = set(rows[0].keys())
        if any(set(r.keys()) != keys for r in rows):
            raise ValueError("all rows in a batch upsert must have the same columns")

        insert = _dialect_insert(self._engine.dialect.name)
        stmt = insert(tbl).values(rows)
        set_ = {
            k: stmt.excluded[k]
            for k in keys
            if k != conflict_key and not tbl.c[k].primary_key
        }
        # ON CONFLICT DO UPDATE does not fire column onupdate hooks
        if "updated_at" in tbl.c and "updated_at" not in set_:
            set_["updated_at"] = datetime.utcnow()
        if set_:
            stmt = stmt.on_conflict_do_update(index_elements=[conflict_key], set_=set_)
        else:
            stmt = stmt.on_conflict_do_nothing(index_elements=[conflict_key])

        async with self._sessions() as session:
            async with session.begin():
                await session.execute(stmt)
        logger.debug("[DB] upserted %d row(s) into %s on %s", len(rows), table, conflict_key)
        return len(rows)

    async def get_product(self, product_code: str) -> Optional[Dict[str, Any]]:
        stmt = select(Product).where(Product.product_code == product_code)
        async with self._sessions() as session:
            row = (await session.execute(stmt)).scalars().first()
        return _as_dict(row) if row else None

    async def list_products(self, base_product_code: str) -> List[Dict[str, Any]]:
        stmt = (
            select(Product)
            .where(Product.base_product_code == base_product_code)
            .order_by(Product.id)
        )
        async with self._sessions() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [_as_dict(r) for r in rows]

    # ---- Batch status rows ----

    async def get_item_statuses(self, batch_key: str) -> List[Dict[str, Any]]:
        stmt = select(SyncItem.id, SyncItem.status, SyncItem.error).where(SyncItem.batch_key == batch_key)
        async with self._sessions() as session:
            rows = (await session.execute(stmt)).all()
        return [{"item_id": r.id, "status": r.status, "error_detail": r.error} for r in rows]

    async def list_sync_items(
        self, batch_key: str, statuses: Optional[Iterable[str]] = None, unsynced_only: bool = False
    ) -> List[Dict[str, Any]]:
        stmt = select(SyncItem).where(SyncItem.batch_key == batch_key)
        if statuses is not None:
            stmt = stmt.where(SyncItem.status.in_(list(statuses)))
        if unsynced_only:
            stmt = stmt.where(SyncItem.tpos_product_id.is_(None))
        stmt = stmt.order_by(SyncItem.position)
        async with self._sessions() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [_as_dict(r) for r in rows]

    async def update_sync_items(
        self, ids: Iterable[str], values: Dict[str, Any], *, only_status: Union[str, Iterable[str], None] = None
    ) -> int:
        """Returns the number of rows changed; `only_status` guards on the current status."""
        ids = list(ids)
        if not ids:
            return 0
        stmt = update(SyncItem).where(SyncItem.id.in_(ids)).values(**values)
        if only_status is not None:
            if isinstance(only_status, str):
                only_status = (only_status,)
            stmt = stmt.where(SyncItem.status.in_(list(only_status)))
        async with self._sessions() as session:
            async with session.begin():
                res = await session.execute(stmt)
        return res.rowcount or 0

    async def fail_stuck_items(self, batch_key: str, started_before: datetime, error: str) -> int:
        stmt = (
            update(SyncItem)
            .where(SyncItem.batch_key == batch_key)
            .where(SyncItem.status == "processing")
            .where(SyncItem.started_at < started_before)
            .values(status="failed", error=error, completed_at=datetime.utcnow())
        )
        async with self._sessions() as session:
            async with session.begin():
                res = await session.execute(stmt)
        return res.rowcount or 0
