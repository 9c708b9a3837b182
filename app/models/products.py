# app/models/products.py
from __future__ import annotations
from datetime import datetime
from uuid import uuid4
from sqlalchemy import String, Integer, BigInteger, Boolean, DateTime, Text, JSON, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column
from app.db import Base


def _uuid() -> str:
    return uuid4().hex


class ProductAttribute(Base):
    __tablename__ = "product_attributes"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    display_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


class ProductAttributeValue(Base):
    __tablename__ = "product_attribute_values"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_uuid)
    attribute_id: Mapped[str] = mapped_column(ForeignKey("product_attributes.id"), index=True)
    value: Mapped[str] = mapped_column(String(255))
    code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    tpos_id: Mapped[int | None] = mapped_column(Integer, nullable=True)            # external value id
    tpos_attribute_id: Mapped[int | None] = mapped_column(Integer, nullable=True)  # external attribute id
    sequence: Mapped[int | None] = mapped_column(Integer, nullable=True)
    name_get: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class Product(Base):
    __tablename__ = "products"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    product_code: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    base_product_code: Mapped[str | None] = mapped_column(String(64), index=True, nullable=True)
    tpos_product_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)    # template id
    productid_bienthe: Mapped[int | None] = mapped_column(BigInteger, nullable=True)  # variant id
    product_name: Mapped[str] = mapped_column(String(512))
    variant: Mapped[str | None] = mapped_column(Text, nullable=True)
    selling_price: Mapped[int] = mapped_column(BigInteger, default=0)
    purchase_price: Mapped[int] = mapped_column(BigInteger, default=0)
    stock_quantity: Mapped[int] = mapped_column(Integer, default=0)
    virtual_available: Mapped[int] = mapped_column(Integer, default=0)
    product_images: Mapped[list | None] = mapped_column(JSON, nullable=True)
    supplier_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class SyncItem(Base):
    """One product row of a dispatched batch; status is written by the batch worker."""
    __tablename__ = "sync_items"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_uuid)
    batch_key: Mapped[str] = mapped_column(String(64), index=True)
    position: Mapped[int] = mapped_column(Integer, default=0)
    product_code: Mapped[str] = mapped_column(String(64))
    product_name: Mapped[str] = mapped_column(String(512))
    purchase_price: Mapped[str | None] = mapped_column(String(64), nullable=True)  # raw input
    selling_price: Mapped[str | None] = mapped_column(String(64), nullable=True)   # raw input
    product_images: Mapped[list | None] = mapped_column(JSON, nullable=True)
    selected_attribute_value_ids: Mapped[list | None] = mapped_column(JSON, nullable=True)
    supplier_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    tpos_product_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    status: Mapped[str] = mapped_column(String(32), default="pending", index=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
