"""Stock movements and daily sales metrics."""

from sqlalchemy import Column, Date, ForeignKey, Index, Integer, Numeric, String, Text

from .base import Base, UTCDateTime, utcnow


class InventoryReplenishment(Base):
    __tablename__ = "inventory_replenishment"
    id = Column(Integer, primary_key=True)
    product_variant_id = Column(
        String(36), ForeignKey("product_variants.id"), nullable=False, index=True
    )
    quantity = Column(Integer, nullable=False, default=0)
    status = Column(String(50), default="pending")
    notes = Column(Text)
    created_at = Column(UTCDateTime, default=utcnow)


class SalesMetric(Base):
    """Aggregated sales for one (date, variant).

    Exactly one row per pair is expected. There is no unique constraint:
    overlapping sync runs have produced duplicates, which
    duplication_service investigates and collapses.
    """

    __tablename__ = "sales_metrics"
    id = Column(Integer, primary_key=True)
    product_variant_id = Column(
        String(36), ForeignKey("product_variants.id"), nullable=False
    )
    metric_date = Column(Date, nullable=False)
    sales_quantity = Column(Integer, nullable=False, default=0)
    orders_count = Column(Integer, nullable=False, default=0)
    revenue = Column(Numeric(12, 2), default=0)
    created_at = Column(UTCDateTime, default=utcnow)

    __table_args__ = (
        Index("ix_sales_metrics_date_variant", "metric_date", "product_variant_id"),
    )
