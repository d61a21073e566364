from datetime import timedelta

from app.features.access.defaults import ensure_default_rules
from app.features.access.service import SqlRuleStore
from app.features.users.auth import issue_token
from tests.utils.auth import auth_headers


async def _seed(db) -> None:
    await ensure_default_rules(SqlRuleStore(db))


async def _rule_id(client, headers, feature: str) -> str:
    response = await client.get("/access-rules", headers=headers)
    return next(rule["id"] for rule in response.json() if rule["feature"] == feature)


async def test_endpoints_require_bearer_token(client) -> None:
    response = await client.get("/access-rules")
    assert response.status_code in (401, 403)


async def test_invalid_and_expired_tokens_are_rejected(client) -> None:
    response = await client.get("/users/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401

    expired = issue_token("p-1", "Admin", expires_in=timedelta(seconds=-10))
    response = await client.get("/users/me", headers={"Authorization": f"Bearer {expired}"})
    assert response.status_code == 401
    assert response.json()["detail"] == "Token has expired"


async def test_me_resolves_role(client) -> None:
    response = await client.get("/users/me", headers=auth_headers("lead planner", "p-7", name="Robin"))
    assert response.status_code == 200
    body = response.json()
    assert body["id"] == "p-7"
    assert body["role"] == "Lead Planner"
    assert body["is_super"] is False


async def test_any_principal_can_list_rules(client, db) -> None:
    await _seed(db)
    response = await client.get("/access-rules", headers=auth_headers("Assistant"))
    assert response.status_code == 200
    features = {rule["feature"] for rule in response.json()}
    assert {"Leads", "Security Matrix", "Audit Logs"} <= features


async def test_admin_edits_rule_and_assistant_gains_write(client, db) -> None:
    await _seed(db)
    admin = auth_headers("Admin")
    assistant = auth_headers("Assistant")
    check = {"feature": "Leads", "action": "Write"}

    response = await client.post("/access-rules/check", json=check, headers=assistant)
    assert response.json()["allowed"] is False

    leads_id = await _rule_id(client, admin, "Leads")
    response = await client.put(f"/access-rules/{leads_id}", json={"assistant": ["Read", "Write"]}, headers=admin)
    assert response.status_code == 200
    assert response.json()["version"] == 2

    response = await client.post("/access-rules/check", json=check, headers=assistant)
    assert response.json() == {"allowed": True, "reason": "granted"}


async def test_non_admin_mutation_is_forbidden(client, db) -> None:
    await _seed(db)
    planner = auth_headers("Lead Planner")
    leads_id = await _rule_id(client, planner, "Leads")

    response = await client.put(f"/access-rules/{leads_id}", json={"assistant": []}, headers=planner)
    assert response.status_code == 403
    assert "Security Matrix" in response.json()["detail"]

    response = await client.delete(f"/access-rules/{leads_id}", headers=planner)
    assert response.status_code == 403


async def test_invalid_rule_is_rejected_before_saving(client, db) -> None:
    await _seed(db)
    admin = auth_headers("Admin")

    response = await client.post(
        "/access-rules",
        json={"feature": "Venues", "module": "Inventory", "available_actions": ["Read"], "assistant": ["Write"]},
        headers=admin,
    )
    assert response.status_code == 400

    response = await client.post("/access-rules", json={"feature": "  "}, headers=admin)
    assert response.status_code == 400

    response = await client.post("/access-rules", json={"feature": "Leads"}, headers=admin)
    assert response.status_code == 409


async def test_create_then_delete_rule(client, db) -> None:
    await _seed(db)
    admin = auth_headers("Admin")

    response = await client.post(
        "/access-rules",
        json={"feature": "Venues", "module": "Inventory", "available_actions": ["Read", "Write"], "lead_planner": ["Read"]},
        headers=admin,
    )
    assert response.status_code == 201
    rule_id = response.json()["id"]

    planner = auth_headers("Lead Planner")
    response = await client.post("/access-rules/check", json={"feature": "Venues"}, headers=planner)
    assert response.json()["allowed"] is True

    response = await client.delete(f"/access-rules/{rule_id}", headers=admin)
    assert response.status_code == 204

    response = await client.post("/access-rules/check", json={"feature": "Venues"}, headers=planner)
    assert response.json()["allowed"] is False


async def test_stale_version_returns_conflict(client, db) -> None:
    await _seed(db)
    admin = auth_headers("Admin")
    leads_id = await _rule_id(client, admin, "Leads")

    first = await client.put(f"/access-rules/{leads_id}", json={"assistant": [], "expected_version": 1}, headers=admin)
    assert first.status_code == 200
    second = await client.put(f"/access-rules/{leads_id}", json={"assistant": ["Read"], "expected_version": 1}, headers=admin)
    assert second.status_code == 409


async def test_bulk_save(client, db) -> None:
    await _seed(db)
    admin = auth_headers("Admin")
    leads_id = await _rule_id(client, admin, "Leads")
    contacts_id = await _rule_id(client, admin, "Contacts")

    response = await client.post(
        "/access-rules/bulk",
        json={"rules": [{"id": leads_id, "assistant": []}, {"id": contacts_id, "assistant": ["Read", "Write"]}]},
        headers=admin,
    )
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert len(body["saved"]) == 2
    assert body["failed"] == []


async def test_reset_and_audit_log(client, db) -> None:
    await _seed(db)
    admin = auth_headers("Admin", "admin-1")
    leads_id = await _rule_id(client, admin, "Leads")
    await client.delete(f"/access-rules/{leads_id}", headers=admin)

    response = await client.post("/access-rules/reset", headers=admin)
    assert response.status_code == 200
    assert "Leads" in {rule["feature"] for rule in response.json()}

    response = await client.get("/access-rules/audit-logs", headers=admin)
    assert response.status_code == 200
    actions = {entry["action"] for entry in response.json()["items"]}
    assert {"delete", "reset"} <= actions
    assert all(entry["user_id"] == "admin-1" for entry in response.json()["items"])

    response = await client.get("/access-rules/audit-logs", headers=auth_headers("Lead Planner"))
    assert response.status_code == 403


async def test_navigation_reflects_rules(client, db) -> None:
    await _seed(db)
    response = await client.get("/users/me/navigation", headers=auth_headers("Assistant"))
    assert response.status_code == 200
    items = {item["label"]: item for item in response.json()["items"]}

    assert items["Home"]["inert"] is False
    management = {child["label"]: child for child in items["Management"]["children"]}
    assert management["Access Control"]["inert"] is True
    assert management["Access Control"]["href"] is None
    assert items["Management"]["inert"] is False  # Account Settings is readable


async def test_last_modified(client, db) -> None:
    await _seed(db)
    admin = auth_headers("Admin", name="Morgan")
    leads_id = await _rule_id(client, admin, "Leads")
    await client.put(f"/access-rules/{leads_id}", json={"assistant": []}, headers=admin)

    response = await client.get("/access-rules/last-modified", headers=admin)
    assert response.status_code == 200
    assert response.json()["by"] in {"Morgan", "System"}
