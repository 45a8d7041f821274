"""Workshop inventory sync service: Shopify SKU repair, variant consolidation and stock push."""
