import asyncio

from app.core.database.engine import AsyncSessionLocal
from app.features.access.defaults import ensure_default_rules
from app.features.access.service import SqlRuleStore
from app.features.pipeline.coordinator import MoveOutcome, StageCoordinator
from app.features.pipeline.schemas import DealCreate, DealUpdate
from app.features.pipeline.store import DealStore
from tests.utils.auth import auth_headers


PLANNER = auth_headers("Lead Planner", "planner-a")
ASSISTANT = auth_headers("Assistant", "assistant-b")


async def _seed(db) -> None:
    await ensure_default_rules(SqlRuleStore(db))


async def _create_deal(client, stage: str = "Live") -> dict:
    response = await client.post(
        "/deals",
        json={"title": "Annual Gala", "value": 25000, "stage": stage, "venue": "Grand Hall", "attendees": 120},
        headers=PLANNER,
    )
    assert response.status_code == 201
    return response.json()


async def test_change_acknowledge_scenario(client, db) -> None:
    await _seed(db)
    deal = await _create_deal(client)
    assert deal["change_log"] == []

    response = await client.put(f"/deals/{deal['id']}", json={"venue": "Rooftop"}, headers=PLANNER)
    assert response.status_code == 200
    updated = response.json()
    (entry,) = updated["change_log"]
    assert entry["changes"] == [{"field": "venue", "old_value": "Grand Hall", "new_value": "Rooftop"}]
    assert entry["acknowledged_by"] == ["planner-a"]
    assert updated["has_unseen_changes"] is False

    response = await client.get(f"/deals/{deal['id']}/unseen", headers=ASSISTANT)
    assert response.json() == {"deal_id": deal["id"], "has_unseen_changes": True, "unacknowledged": 1}

    response = await client.patch(f"/deals/{deal['id']}/acknowledge", headers=ASSISTANT)
    assert response.status_code == 200
    assert response.json()["has_unseen_changes"] is False
    assert set(response.json()["change_log"][0]["acknowledged_by"]) == {"planner-a", "assistant-b"}

    # Idempotent
    response = await client.patch(f"/deals/{deal['id']}/acknowledge", headers=ASSISTANT)
    assert response.json()["change_log"][0]["acknowledged_by"].count("assistant-b") == 1

    response = await client.get(f"/deals/{deal['id']}", headers=PLANNER)
    assert response.json()["has_unseen_changes"] is False


async def test_stage_move_appends_one_stage_entry(client, db) -> None:
    await _seed(db)
    deal = await _create_deal(client, stage="Processing")

    response = await client.patch(f"/deals/{deal['id']}/stage", json={"stage": "Live"}, headers=PLANNER)
    assert response.status_code == 200
    (entry,) = response.json()["change_log"]
    assert entry["changes"] == [{"field": "stage", "old_value": "Processing", "new_value": "Live"}]


async def test_untracked_or_unchanged_fields_append_nothing(client, db) -> None:
    await _seed(db)
    deal = await _create_deal(client)

    response = await client.put(
        f"/deals/{deal['id']}", json={"contact": "Dana", "venue": "Grand Hall", "value": 25000.0}, headers=PLANNER
    )
    assert response.json()["contact"] == "Dana"
    assert response.json()["change_log"] == []


async def test_deal_permissions_follow_rules(client, db) -> None:
    await _seed(db)
    deal = await _create_deal(client)

    response = await client.put(f"/deals/{deal['id']}", json={"venue": "Rooftop"}, headers=ASSISTANT)
    assert response.status_code == 403

    response = await client.delete(f"/deals/{deal['id']}", headers=PLANNER)
    assert response.status_code == 403

    response = await client.get("/deals", headers=auth_headers("Intern"))
    assert response.status_code == 403

    response = await client.delete(f"/deals/{deal['id']}", headers=auth_headers("Admin"))
    assert response.status_code == 200
    response = await client.get(f"/deals/{deal['id']}", headers=PLANNER)
    assert response.status_code == 404


async def test_required_fields_cannot_be_cleared(client, db) -> None:
    await _seed(db)
    deal = await _create_deal(client)
    response = await client.put(f"/deals/{deal['id']}", json={"stage": None}, headers=PLANNER)
    assert response.status_code == 400


async def test_stages_include_ad_hoc(client, db) -> None:
    await _seed(db)
    await _create_deal(client, stage="On Hold")
    response = await client.get("/deals/stages", headers=ASSISTANT)
    assert response.json() == ["Prospecting", "Processing", "Live", "Completed", "On Hold"]


async def test_concurrent_acknowledgments_commute(db) -> None:
    store = DealStore(db)
    deal = await store.create(DealCreate(title="Expo", value=10, stage="Live"), "a")
    await store.update(deal.id, DealUpdate(venue="Pier 9"), "a")
    await store.update(deal.id, DealUpdate(attendees=40), "c")

    async def ack(principal_id: str):
        async with AsyncSessionLocal() as session:
            return await DealStore(session).acknowledge(deal.id, principal_id)

    await asyncio.gather(ack("b"), ack("d"), ack("b"))

    final = await store.get(deal.id)
    for entry in final.change_log:
        assert {"b", "d"} <= set(entry.acknowledged_by)
        assert entry.acknowledged_by.count("b") == 1


async def test_coordinator_over_database_store(db) -> None:
    store = DealStore(db)
    deal = await store.create(DealCreate(title="Expo", value=10, stage="Prospecting"), "a")
    board = StageCoordinator(store.acting_as("a"), [deal])

    result = await board.move(deal.id, "Processing")

    assert result.outcome is MoveOutcome.APPLIED
    stored = await store.get(deal.id)
    assert stored.stage == "Processing"
    assert board.records[deal.id] == stored
    assert stored.change_log[0].changes[0].field == "stage"
