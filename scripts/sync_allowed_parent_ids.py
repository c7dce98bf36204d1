#!/usr/bin/env python
"""Script to recompute every care provider's allowed parent list.

This script:
1. Reads every care provider profile
2. Collects the parents reachable through the provider's active connections
3. Writes the sorted list to ``allowed_parent_ids`` where it differs

Usage:
    python scripts/sync_allowed_parent_ids.py

Requirements:
    - SUPABASE_URL, SUPABASE_SECRET_KEY and SUPABASE_SIGNING_KEY_JWK must be set

Note:
    - Safe to re-run; providers already in sync are not written
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
    service = MaintenanceService()
    result = await service.sync_all_allowed_parent_ids()

    for provider_id, parent_ids in sorted(result.items()):
        logger.info("%s -> %d parents", provider_id, len(parent_ids))
    logger.info("Done: %d care providers", len(result))


if __name__ == "__main__":
    asyncio.run(main())
