from app.features.access.gate import (
    GateState,
    Presentation,
    gate,
    guard_action,
    guard_link,
    restriction_tooltip,
)
from app.features.access.navigation import build_navigation
from app.features.access.schemas import PermissionRule
from tests.utils.auth import principal


RULES = [
    PermissionRule(feature="Leads", module="Sales", available_actions=["Read", "Write", "Delete"], assistant=["Read"]),
    PermissionRule(feature="Invoices", module="Inventory", available_actions=["Read", "Write"], lead_planner=["Read"]),
]


def _render() -> str:
    return "<leads-table>"


def test_pending_renders_nothing() -> None:
    for presentation in Presentation:
        outcome = gate(principal("Assistant"), "Leads", "Read", _render, None, presentation, fallback="x")
        assert outcome.state is GateState.PENDING
        assert outcome.renders is False


def test_allowed_renders_interactive_content() -> None:
    outcome = gate(principal("Assistant"), "Leads", "Read", _render, RULES)
    assert outcome.state is GateState.ALLOWED
    assert outcome.content == "<leads-table>"
    assert outcome.interactive is True


def test_denied_presentations() -> None:
    assistant = principal("Assistant")

    hidden = gate(assistant, "Leads", "Write", _render, RULES, Presentation.HIDE)
    assert hidden.state is GateState.HIDDEN
    assert hidden.renders is False

    disabled = gate(assistant, "Leads", "Write", _render, RULES, Presentation.DISABLE)
    assert disabled.state is GateState.DISABLED
    assert disabled.content == "<leads-table>"
    assert disabled.interactive is False and disabled.dimmed is True
    assert disabled.tooltip == restriction_tooltip("Leads", "Write")

    locked = gate(assistant, "Leads", "Write", _render, RULES, Presentation.LOCK)
    assert locked.state is GateState.LOCKED
    assert locked.locked is True and locked.interactive is False

    fallback = gate(assistant, "Leads", "Write", _render, RULES, Presentation.FALLBACK, fallback="<upgrade>")
    assert fallback.state is GateState.FALLBACK
    assert fallback.content == "<upgrade>"


def test_hidden_content_is_never_built() -> None:
    calls = []

    def render():
        calls.append(1)
        return "secret"

    gate(principal("Assistant"), "Invoices", "Read", render, RULES, Presentation.HIDE)
    assert calls == []


def test_restriction_tooltip_text() -> None:
    assert restriction_tooltip("Leads", "Write") == "Access Restricted: You need 'Write' permission for 'Leads'"


def test_guarded_action_suppresses_handler_when_denied() -> None:
    fired = []
    denied = guard_action(principal("Assistant"), "Leads", lambda: fired.append("x"), RULES)
    assert denied.enabled is False
    assert denied.tooltip == "You need 'Write' permission for 'Leads'"
    assert denied.trigger() is None
    assert fired == []

    allowed = guard_action(principal("Admin"), "Leads", lambda: fired.append("x") or "done", RULES)
    assert allowed.trigger() == "done"
    assert fired == ["x"]


def test_guarded_action_pending() -> None:
    pending = guard_action(principal("Assistant"), "Leads", lambda: None, None)
    assert pending.pending is True and pending.enabled is False


def test_guarded_link_stays_visible_but_inert() -> None:
    link = guard_link(principal("Assistant"), "Invoices", "Invoices", "/inventory/invoices", RULES)
    assert link.label == "Invoices"
    assert link.href is None
    assert link.inert is True and link.locked is True

    link = guard_link(principal("Assistant"), "Leads", "Leads", "/sales/leads", RULES)
    assert link.href == "/sales/leads"
    assert link.inert is False


def test_navigation_group_reachable_through_any_child() -> None:
    items = [
        {
            "label": "Sales",
            "children": [
                {"label": "Leads", "feature": "Leads", "href": "/sales/leads"},
                {"label": "Campaigns", "feature": "Campaigns", "href": "/sales/campaigns"},
            ],
        },
        {
            "label": "Inventory",
            "children": [{"label": "Invoices", "feature": "Invoices", "href": "/inventory/invoices"}],
        },
    ]
    sales, inventory = build_navigation(principal("Assistant"), RULES, items)

    assert sales.inert is False
    leads, campaigns = sales.children
    assert leads.href == "/sales/leads"
    assert campaigns.inert is True and campaigns.href is None

    assert inventory.inert is True and inventory.locked is True
    assert inventory.tooltip == "You need 'Read' permission for a 'Inventory' feature"


def test_default_navigation_for_admin_is_fully_open() -> None:
    entries = build_navigation(principal("Admin"), [])
    flat = [child for entry in entries for child in (entry.children or [entry])]
    assert flat
    assert all(not entry.inert for entry in flat)
