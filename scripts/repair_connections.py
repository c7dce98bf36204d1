#!/usr/bin/env python
"""Script to repair cached connection membership on every profile.

This script:
1. Reconciles each profile's ``connection_ids``, legacy ``connection_id`` and
   ``primary_connection_id`` against the active connections
2. Recomputes care providers' ``allowed_parent_ids`` on the way
3. Recomputes stored day-of-week labels from record dates

Usage:
    python scripts/repair_connections.py

Requirements:
    - SUPABASE_URL, SUPABASE_SECRET_KEY and SUPABASE_SIGNING_KEY_JWK must be set
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

    profiles = await service.repair_all_connection_ids()
    labels = await service.normalize_day_of_week()

    logger.info("Done: %d profiles reconciled, %d day labels corrected", profiles, labels)


if __name__ == "__main__":
    asyncio.run(main())
