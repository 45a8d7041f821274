#!/usr/bin/env python3
"""Scheduled SKU repair — drive the batch to completion in bounded steps.

Each step is one invocation of repair_artificial_skus with its own DB
session and connector, exactly like a call to /functions/assign-shopify-skus.
The process id is carried between steps so the cursor saved in the sync
log is where the next step starts.

Usage:
    PYTHONPATH=. python scripts/run_sku_repair.py [--max-variants N] [--process-id ID]
                                                  [--max-steps N]

Exit code 0 when the batch completed or an operator stopped it, 1 on
failure, 2 when --max-steps ran out while the batch is still paused.
"""

import argparse
import asyncio
import logging
import os
import sys

# Must set up path before inventory_sync imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from inventory_sync.config import settings
from inventory_sync.connectors.catalog import CatalogWalker
from inventory_sync.connectors.shopify import ShopifyConnector
from inventory_sync.database import SessionLocal
from inventory_sync.exceptions import ShopifyError, SyncError
from inventory_sync.logging_config import setup_logging
from inventory_sync.services.sku_repair_service import repair_artificial_skus

log = logging.getLogger("run_sku_repair")


async def run_step(process_id: str | None, max_variants: int) -> dict:
    connector = ShopifyConnector.from_settings()
    db = SessionLocal()
    try:
        walker = CatalogWalker(connector, page_size=settings.catalog_page_size)
        return await repair_artificial_skus(
            db, walker, max_variants=max_variants, process_id=process_id
        )
    finally:
        db.close()
        await connector.aclose()


async def run(process_id: str | None, max_variants: int, max_steps: int) -> int:
    for step in range(1, max_steps + 1):
        result = await run_step(process_id, max_variants)
        process_id = result["process_id"]
        s = result["summary"]
        log.info(
            f"Step {step}: {result['status']} processed={s['processed']} "
            f"updated={s['updated']} errors={s['errors']}"
        )
        if result["status"] != "paused":
            return 0
        if result.get("stopped_by") == "operator":
            log.warning(f"Batch {process_id} was paused by an operator; not resuming")
            return 0
    log.warning(f"Stopped after {max_steps} steps; resume with --process-id {process_id}")
    return 2


def main():
    parser = argparse.ArgumentParser(description="Repair artificial Shopify SKUs")
    parser.add_argument("--max-variants", type=int, default=settings.sku_repair_batch_size,
                        help="Variants per step (checked between catalog pages)")
    parser.add_argument("--process-id", help="Resume an existing paused batch")
    parser.add_argument("--max-steps", type=int, default=50, help="Stop after this many steps")
    args = parser.parse_args()

    setup_logging()
    try:
        code = asyncio.run(run(args.process_id, args.max_variants, args.max_steps))
    except (ShopifyError, SyncError) as e:
        log.error(f"SKU repair aborted: {e}")
        code = 1
    sys.exit(code)


if __name__ == "__main__":
    main()
