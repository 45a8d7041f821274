"""Catalog models — products and their size/color variants."""

import uuid

from sqlalchemy import BigInteger, Column, ForeignKey, Index, Integer, String
from sqlalchemy.orm import relationship

from .base import Base, UTCDateTime, utcnow


def _uuid() -> str:
    return str(uuid.uuid4())


class Product(Base):
    __tablename__ = "products"
    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False)
    shopify_product_id = Column(BigInteger, index=True)
    created_at = Column(UTCDateTime, default=utcnow)

    variants = relationship("ProductVariant", back_populates="product")


class ProductVariant(Base):
    """One size/color combination — the unit SKU and stock are tracked at.

    sku_variant is expected to be unique but duplicates do occur (imports,
    overlapping syncs); consolidation_service merges them.
    """

    __tablename__ = "product_variants"
    id = Column(String(36), primary_key=True, default=_uuid)
    product_id = Column(
        String(36), ForeignKey("products.id", ondelete="CASCADE"), nullable=False
    )
    size = Column(String(50))
    color = Column(String(50))
    sku_variant = Column(String(255), index=True)
    stock_quantity = Column(Integer, nullable=False, default=0)
    shopify_variant_id = Column(BigInteger)
    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    product = relationship("Product", back_populates="variants")

    __table_args__ = (
        Index("ix_variant_product_size_color", "product_id", "size", "color"),
    )
