#!/usr/bin/env python
"""Script to stamp the owning parent id onto legacy shared records.

Records written before ``parent_id`` became the owning key only carry the
connection they were written through. This script resolves each such
connection to its parent and writes ``parent_id`` onto the record.

Usage:
    python scripts/backfill_parent_ids.py

Requirements:
    - SUPABASE_URL, SUPABASE_SECRET_KEY and SUPABASE_SIGNING_KEY_JWK must be set

Note:
    - Records referencing an unknown connection are logged and skipped
"""

import asyncio
import logging
import sys
from pathlib import Path

# Add the project root to the path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.services.maintenance_service import MaintenanceService

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


async def main() -> None:
    """Main execution function."""
    updated = await MaintenanceService().backfill_parent_ids()

    for collection, count in updated.items():
        logger.info("%s: %d records", collection, count)
    logger.info("Done: %d records backfilled", sum(updated.values()))


if __name__ == "__main__":
    asyncio.run(main())
