"""Unit tests for MaintenanceService repair utilities."""

from typing import Any, Callable

import pytest

from src.core.store import DocumentStore
from src.models import Collections
from src.services.maintenance_service import MaintenanceService
from src.services.schedule_service import schedule_id


@pytest.fixture
def service() -> MaintenanceService:
    return MaintenanceService()


@pytest.mark.asyncio
async def test_backfill_parent_ids(
    service: MaintenanceService, connected_pair: Callable[..., Any], store: DocumentStore
) -> None:
    """Test that records tagged only with a connection get the owning key."""
    pair = await connected_pair()
    legacy = store.insert(Collections.MEDICATIONS, {"connection_id": pair["connection_id"]})
    orphan = store.insert(Collections.MEDICATIONS, {"connection_id": "gone"})

    updated = await service.backfill_parent_ids()

    assert updated[Collections.MEDICATIONS] == 1
    assert store.get(Collections.MEDICATIONS, legacy["id"])["parent_id"] == pair["parent_id"]
    assert "parent_id" not in store.get(Collections.MEDICATIONS, orphan["id"])
    assert (await service.backfill_parent_ids())[Collections.MEDICATIONS] == 0


@pytest.mark.asyncio
async def test_normalize_day_of_week(service: MaintenanceService, store: DocumentStore) -> None:
    store.insert(Collections.HANDOVER_NOTES, {"date": "2024-03-06", "day_of_week": "MON"})
    store.insert(Collections.DAILY_SCHEDULES, {"date": "2024-03-04", "day_of_week": "MON"})

    assert await service.normalize_day_of_week() == 1
    assert store.query(Collections.HANDOVER_NOTES)[0]["day_of_week"] == "WED"


@pytest.mark.asyncio
async def test_sync_all_allowed_parent_ids(
    service: MaintenanceService, connected_pair: Callable[..., Any], store: DocumentStore
) -> None:
    pair = await connected_pair()
    store.update(Collections.USERS, pair["provider_id"], {"allowed_parent_ids": ["stale"]})

    result = await service.sync_all_allowed_parent_ids()

    assert result == {pair["provider_id"]: [pair["parent_id"]]}


@pytest.mark.asyncio
async def test_repair_all_connection_ids(
    service: MaintenanceService, connected_pair: Callable[..., Any], store: DocumentStore
) -> None:
    pair = await connected_pair()
    store.update(Collections.USERS, pair["parent_id"], {"connection_ids": []})

    assert await service.repair_all_connection_ids() == 2
    assert store.get(Collections.USERS, pair["parent_id"])["connection_ids"] == [pair["connection_id"]]


@pytest.mark.asyncio
async def test_cleanup_duplicate_activities(service: MaintenanceService, store: DocumentStore) -> None:
    """Test that repeated template activities are dropped and manual ones kept."""
    doc_id = schedule_id("p1", "k1", "2024-03-04")
    store.set(
        Collections.DAILY_SCHEDULES,
        doc_id,
        {
            "parent_id": "p1",
            "child_id": "k1",
            "date": "2024-03-04",
            "childcare_activities": [
                {"id": "a", "description": "Daycare", "template_id": "t1"},
                {"id": "b", "description": "Daycare", "template_id": "t1"},
                {"id": "c", "description": "Manual"},
                {"id": "d", "description": "Manual"},
            ],
        },
    )

    assert await service.cleanup_duplicate_activities("p1", "k1", "2024-03-04") == 1
    kept = store.get(Collections.DAILY_SCHEDULES, doc_id)["childcare_activities"]
    assert [a["id"] for a in kept] == ["a", "c", "d"]
    assert await service.cleanup_duplicate_activities("p1", "k1", "2024-03-05") == 0
