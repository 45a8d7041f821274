"""Database models — re-exports all models.

Import from here:  from inventory_sync.models import ProductVariant, ...
Or from submodules: from inventory_sync.models.catalog import ProductVariant
"""

from .base import Base  # noqa: F401

# Catalog
from .catalog import Product, ProductVariant  # noqa: F401

# Orders & Deliveries
from .orders import Delivery, DeliveryItem, Order, OrderItem  # noqa: F401

# Stock & Sales
from .inventory import InventoryReplenishment, SalesMetric  # noqa: F401

# Sync
from .sync import SyncLog  # noqa: F401
