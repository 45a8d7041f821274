"""Orders and deliveries — the production-to-warehouse handoff."""

from sqlalchemy import Boolean, Column, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship

from .base import Base, UTCDateTime, utcnow


class Order(Base):
    __tablename__ = "orders"
    id = Column(Integer, primary_key=True)
    order_number = Column(String(100), nullable=False, unique=True)
    status = Column(String(50), default="pending")
    created_at = Column(UTCDateTime, default=utcnow)

    items = relationship("OrderItem", back_populates="order")


class OrderItem(Base):
    __tablename__ = "order_items"
    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False)
    product_variant_id = Column(
        String(36), ForeignKey("product_variants.id"), nullable=False, index=True
    )
    quantity = Column(Integer, nullable=False, default=0)
    created_at = Column(UTCDateTime, default=utcnow)

    order = relationship("Order", back_populates="items")


class Delivery(Base):
    """A batch of finished units handed over to the warehouse.

    sync_in_progress + last_sync_attempt form the per-delivery push lock.
    """

    __tablename__ = "deliveries"
    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id"))
    tracking_number = Column(String(100))
    status = Column(String(50), default="pending")
    synced_to_shopify = Column(Boolean, nullable=False, default=False)
    sync_in_progress = Column(Boolean, nullable=False, default=False)
    last_sync_attempt = Column(UTCDateTime)
    sync_attempts = Column(Integer, nullable=False, default=0)
    sync_error_message = Column(Text)
    created_at = Column(UTCDateTime, default=utcnow)

    items = relationship("DeliveryItem", back_populates="delivery")


class DeliveryItem(Base):
    """Approved units of one variant. synced_to_shopify guards against
    applying the same approval to Shopify stock twice."""

    __tablename__ = "delivery_items"
    id = Column(Integer, primary_key=True)
    delivery_id = Column(
        Integer, ForeignKey("deliveries.id", ondelete="CASCADE"), nullable=False
    )
    order_item_id = Column(Integer, ForeignKey("order_items.id"))
    product_variant_id = Column(String(36), ForeignKey("product_variants.id"), index=True)
    quantity_delivered = Column(Integer, nullable=False, default=0)
    quantity_approved = Column(Integer, nullable=False, default=0)
    synced_to_shopify = Column(Boolean, nullable=False, default=False)
    last_sync_attempt = Column(UTCDateTime)
    sync_attempt_count = Column(Integer, nullable=False, default=0)
    sync_error_message = Column(Text)
    created_at = Column(UTCDateTime, default=utcnow)

    delivery = relationship("Delivery", back_populates="items")
    variant = relationship("ProductVariant")

    __table_args__ = (
        Index("ix_delivery_items_delivery_synced", "delivery_id", "synced_to_shopify"),
    )
