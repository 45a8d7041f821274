"""Business logic — one module per sync operation."""
