import logging

import pytest

from app.features.access.evaluator import decide, evaluate
from app.features.access.schemas import PermissionRule
from app.features.access.types import Action, Principal, Role
from tests.utils.auth import principal


def _leads_rule(**grants) -> PermissionRule:
    # The Leads rule used throughout the evaluator scenarios.
    return PermissionRule(
        feature="Leads",
        module="Sales",
        available_actions=["Read", "Write", "Delete"],
        **grants,
    )


@pytest.mark.parametrize("feature", ["Leads", "Nonexistent", ""])
@pytest.mark.parametrize("action", ["Read", "Write", "Delete", "Export", "Approve"])
def test_admin_is_allowed_everything(feature, action) -> None:
    admin = principal("Admin")
    assert evaluate(admin, feature, action, []) is True
    assert evaluate(admin, feature, action, [_leads_rule()]) is True


@pytest.mark.parametrize("role", ["Lead Planner", "Assistant", "Intern"])
def test_missing_rule_denies_and_warns(role, caplog) -> None:
    caplog.set_level(logging.WARNING)
    decision = decide(principal(role), "Leads", Action.READ, [])
    assert decision.allowed is False
    assert "No access rule" in decision.reason
    assert any("No rule found" in record.message for record in caplog.records)


def test_assistant_write_scenario() -> None:
    assistant = principal("assistant")
    rules = [_leads_rule(assistant=["Read"])]
    assert evaluate(assistant, "Leads", "Read", rules) is True
    assert evaluate(assistant, "Leads", "Write", rules) is False

    rules = [_leads_rule(assistant=["Read", "Write"])]
    assert evaluate(assistant, "Leads", "Write", rules) is True


@pytest.mark.parametrize("role", ["Admin", "Assistant"])
def test_ended_session_is_denied(role) -> None:
    ended = principal(role).model_copy(update={"session_valid": False})
    decision = decide(ended, "Leads", "Read", [_leads_rule(assistant=["Read"])])
    assert decision.allowed is False
    assert decision.reason == "Session is no longer valid"


def test_deleting_rule_revokes_full_access() -> None:
    planner = principal("Lead Planner")
    rules = [_leads_rule(lead_planner=["Read", "Write", "Delete"])]
    assert evaluate(planner, "Leads", "Read", rules) is True

    rules = [rule for rule in rules if rule.feature != "Leads"]
    assert evaluate(planner, "Leads", "Read", rules) is False


@pytest.mark.parametrize("raw", ["lead planner", "Lead Planner", "LEAD_PLANNER", "leadPlanner", "lead-planner", "planner"])
def test_role_aliases_map_to_lead_planner(raw) -> None:
    assert Role.parse(raw) is Role.LEAD_PLANNER


def test_unknown_role_is_other_and_denied() -> None:
    intern = Principal.from_claims("p-1", "Intern")
    assert intern.role is Role.OTHER
    assert intern.role_label == "Intern"
    rules = [_leads_rule(admin=["Read"], lead_planner=["Read"], assistant=["Read"])]
    decision = decide(intern, "Leads", "Read", rules)
    assert decision.allowed is False
    assert "Intern" in decision.reason


def test_action_names_are_case_insensitive() -> None:
    rules = [_leads_rule(assistant=["Read"])]
    assert evaluate(principal("Assistant"), "Leads", "read", rules) is True
    assert evaluate(principal("Assistant"), "Leads", " READ ", rules) is True


def test_unknown_action_is_denied() -> None:
    rules = [_leads_rule(assistant=["Read"])]
    decision = decide(principal("Assistant"), "Leads", "Approve", rules)
    assert decision.allowed is False
    assert "Unknown action" in decision.reason


def test_evaluate_is_repeatable() -> None:
    assistant = principal("Assistant")
    rules = [_leads_rule(assistant=["Read"])]
    results = {evaluate(assistant, "Leads", "Read", rules) for _ in range(5)}
    assert results == {True}


def test_rule_rejects_grants_outside_available() -> None:
    with pytest.raises(ValueError):
        PermissionRule(feature="Audit Logs", available_actions=["Read"], assistant=["Read", "Write"])
