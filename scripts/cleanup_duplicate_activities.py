#!/usr/bin/env python
"""Script to drop repeated template activities from a child's schedule.

Usage:
    python scripts/cleanup_duplicate_activities.py <parent_id> <child_id> <date> [<date> ...]

Dates are ISO ``YYYY-MM-DD``. Activities not stamped by a template are
never removed.
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


async def main(parent_id: str, child_id: str, dates: list[str]) -> None:
    """Main execution function."""
    service = MaintenanceService()
    removed = 0
    for date in dates:
        removed += await service.cleanup_duplicate_activities(parent_id, child_id, date)
    logger.info("Done: %d duplicate activities removed over %d days", removed, len(dates))


if __name__ == "__main__":
    if len(sys.argv) < 4:
        print(__doc__)
        sys.exit(1)
    asyncio.run(main(sys.argv[1], sys.argv[2], sys.argv[3:]))
