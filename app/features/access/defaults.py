"""
Factory default permission matrix and seeding.

An empty store is seeded with DEFAULT_RULES. A populated store only gets its
CRITICAL_FEATURES backfilled, so administrators can permanently delete the
optional rules.
"""
from typing import List

from app.features.access.schemas import PermissionRule
from app.utils import get_logger


log = get_logger(__name__)

R, W, D = "Read", "Write", "Delete"
RWD = [R, W, D]


def _rule(feature: str, module: str, lead_planner: list, assistant: list, available: list = RWD) -> PermissionRule:
    return PermissionRule(
        feature=feature,
        module=module,
        available_actions=available,
        admin=available,
        lead_planner=lead_planner,
        assistant=assistant,
    )


DEFAULT_RULES: List[PermissionRule] = [
    # Sales
    _rule("Leads", "Sales", [R, W], [R]),
    _rule("Contacts", "Sales", [R, W], [R]),
    _rule("Documents", "Sales", [R, W], [R]),
    _rule("Campaigns", "Sales", [R, W], [R]),
    _rule("Pipeline", "Sales", [R, W], [R]),
    # Activities
    _rule("Tasks", "Activities", [R, W], [R, W]),
    _rule("Meetings", "Activities", [R, W], [R, W]),
    _rule("Email", "Activities", [R, W], [R]),
    # Inventory
    _rule("Products", "Inventory", [R, W], [R]),
    _rule("Logistics Hub", "Inventory", [R, W], [R]),
    _rule("Orders", "Inventory", [R, W], [R]),
    _rule("Invoices", "Inventory", [R, W], []),
    _rule("Vendors", "Inventory", [R, W], [R]),
    # Management
    _rule("Account Settings", "Management", [R, W], [R, W], available=[R, W]),
    _rule("Security Matrix", "Management", [], [], available=[R, W]),
    _rule("Team", "Management", [R], []),
    _rule("Audit Logs", "Management", [], [], available=[R]),
    _rule("Settings", "Management", [], [], available=[R, W]),
    # General
    _rule("Dashboard", "General", [R], [R], available=[R]),
    _rule("Home", "General", [R], [R], available=[R]),
    _rule("Reports", "General", [R], []),
    _rule("Analytics", "General", [R], [R], available=[R]),
    _rule("My Requests", "General", [R, W], [R, W], available=[R, W]),
]

# Always restored when missing
CRITICAL_FEATURES = frozenset({
    "Dashboard", "Home", "Account Settings", "Reports", "Analytics", "My Requests", "Vendors",
})


async def ensure_default_rules(store) -> List[PermissionRule]:
    """
    Seed an empty store, or backfill missing critical rules.

    Args:
        store: A RuleStore (see app.features.access.service)

    Returns:
        Rules that were created
    """
    existing = {rule.feature for rule in await store.list()}
    if not existing:
        missing = DEFAULT_RULES
    else:
        missing = [
            rule for rule in DEFAULT_RULES
            if rule.feature in CRITICAL_FEATURES and rule.feature not in existing
        ]

    created = []
    for rule in missing:
        created.append(await store.create(rule, actor="System"))

    if created:
        log.info(f"Seeded {len(created)} access rules: {', '.join(r.feature for r in created)}")
    return created
