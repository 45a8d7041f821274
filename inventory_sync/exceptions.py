"""
exceptions.py — Error hierarchy for Shopify calls and sync operations.

Exception Hierarchy:
    ShopifyError (base)
    ├── ShopifyConfigError      - Store domain or token missing (fatal)
    ├── ShopifyConnectionError  - Network/timeout issues after retries
    └── ShopifyAPIError         - Remote returned an error status
        ├── ShopifyNotFoundError   - 404
        └── ShopifyRateLimitError  - 429 after the retry ceiling

    SyncError (base)
    ├── NotFoundError           - Local row (delivery, variant, sync log) missing
    ├── SkuConflictError        - Target SKU already used by another variant
    ├── SyncInProgressError     - Delivery locked by a concurrent push
    ├── InvalidSyncTransition   - Sync log status change not allowed
    └── ConsolidationError      - References still point at a variant about to be deleted

Routers translate these to HTTP status codes; per-item failures inside a
batch are never raised, they are recorded in the batch results.

Called by: connectors/, services/, routers/
Depends on: nothing
"""


class ShopifyError(Exception):
    """Base exception for all Shopify-related errors."""

    def __init__(self, message: str, details: str | None = None):
        self.message = message
        self.details = details
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message}: {self.details}"
        return self.message


class ShopifyConfigError(ShopifyError):
    """Credentials are missing; no request can be made."""


class ShopifyConnectionError(ShopifyError):
    """Network-related errors that survived every retry attempt."""


class ShopifyAPIError(ShopifyError):
    """Remote returned an error response. Check status_code for specifics."""

    def __init__(self, message: str, details: str | None = None, status_code: int | None = None):
        super().__init__(message, details)
        self.status_code = status_code


class ShopifyNotFoundError(ShopifyAPIError):
    def __init__(self, message: str, details: str | None = None):
        super().__init__(message, details, status_code=404)


class ShopifyRateLimitError(ShopifyAPIError):
    """Still throttled (429) once the attempt ceiling was reached."""

    def __init__(self, message: str, details: str | None = None, retry_after: float | None = None):
        super().__init__(message, details, status_code=429)
        self.retry_after = retry_after


class SyncError(Exception):
    """Base exception for local sync operations."""

    status_code = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NotFoundError(SyncError):
    status_code = 404


class SkuConflictError(SyncError):
    status_code = 409

    def __init__(self, message: str, conflicting_sku: str, conflicting_variant_id: int | None = None):
        super().__init__(message)
        self.conflicting_sku = conflicting_sku
        self.conflicting_variant_id = conflicting_variant_id


class SyncInProgressError(SyncError):
    status_code = 409


class InvalidSyncTransition(SyncError):
    status_code = 409


class ConsolidationError(SyncError):
    """Raised inside the merge transaction; the whole merge is rolled back."""

    status_code = 500
