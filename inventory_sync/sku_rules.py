"""
sku_rules.py — SKU classification shared by repair and consolidation.

An "artificial" SKU is one the platform or an earlier import generated
rather than one the workshop assigned. Repair replaces them on the remote
catalog; consolidation ranks variants holding them below real SKUs. Both
call is_artificial() so the two never disagree.

Business Rules:
- Empty / whitespace-only / missing SKU is artificial
- SHOPIFY-... and ID-... prefixes (any case) are artificial
- Pure digits of 13-20 characters are artificial (raw platform ids)
- A 10+ digit id followed by -V<digits> is artificial
- 10+ alphanumerics, a dash, then digits is artificial
- Everything else (e.g. "1001234", "SHIRT-RED-M") is real

Called by: services/sku_repair_service.py, services/consolidation_service.py,
           services/variant_sku_service.py
Depends on: nothing
"""

import re

_ARTIFICIAL_PATTERNS = (
    re.compile(r"^SHOPIFY-", re.IGNORECASE),
    re.compile(r"^ID-", re.IGNORECASE),
    re.compile(r"^\d{13,20}$"),
    re.compile(r"^\d{10,}-V\d+$"),
    re.compile(r"^[A-Za-z0-9]{10,}-\d+$"),
)


def is_artificial(sku: str | None) -> bool:
    """True when the SKU is empty or matches a generated-id pattern."""
    if sku is None:
        return True
    sku = sku.strip()
    if not sku:
        return True
    return any(p.match(sku) for p in _ARTIFICIAL_PATTERNS)


def is_numeric_sku(sku: str | None) -> bool:
    return bool(sku) and sku.strip().isdigit()


def normalize_attribute(value: str | None) -> str:
    """Grouping key for size/color: case- and whitespace-insensitive."""
    if not value:
        return ""
    return " ".join(value.split()).lower()
