"""
Dashboard navigation manifest.

Every menu entry is gated on Read of the feature it opens. A group is
reachable when at least one of its children is; denied entries stay in the
manifest as inert, locked links so the menu shape does not change per role.
"""
from typing import Iterable, Optional

from app.features.access.gate import guard_link
from app.features.access.schemas import NavigationEntry, PermissionRule
from app.features.access.types import Action, Principal


# Entries with children are groups; leaves name the feature they open
NAVIGATION: list[dict] = [
    {"label": "Home", "feature": "Home", "href": "/home"},
    {"label": "Reports", "feature": "Reports", "href": "/reports"},
    {"label": "Analytics", "feature": "Analytics", "href": "/analytics"},
    {"label": "My Requests", "feature": "My Requests", "href": "/my-requests"},
    {
        "label": "Sales",
        "children": [
            {"label": "Leads", "feature": "Leads", "href": "/sales/leads"},
            {"label": "Contacts", "feature": "Contacts", "href": "/sales/contacts"},
            {"label": "Documents", "feature": "Documents", "href": "/sales/documents"},
            {"label": "Campaigns", "feature": "Campaigns", "href": "/sales/campaigns"},
            {"label": "Pipeline", "feature": "Pipeline", "href": "/sales/pipeline"},
        ],
    },
    {
        "label": "Activities",
        "children": [
            {"label": "Tasks", "feature": "Tasks", "href": "/activities/tasks"},
            {"label": "Meetings", "feature": "Meetings", "href": "/activities/meetings"},
            {"label": "Email", "feature": "Email", "href": "https://mail.google.com", "external": True},
        ],
    },
    {
        "label": "Inventory",
        "children": [
            {"label": "Products", "feature": "Products", "href": "/inventory/products"},
            {"label": "Orders", "feature": "Orders", "href": "/inventory/orders"},
            {"label": "Invoices", "feature": "Invoices", "href": "/inventory/invoices"},
            {"label": "Vendors", "feature": "Vendors", "href": "/inventory/vendors"},
        ],
    },
    {
        "label": "Management",
        "children": [
            {"label": "Account Settings", "feature": "Account Settings", "href": "/profile/settings"},
            {"label": "Access Control", "feature": "Security Matrix", "href": "/access/control"},
            {"label": "Audit Logs", "feature": "Audit Logs", "href": "/access/audit-logs"},
        ],
    },
]


def _leaf(principal: Principal, item: dict, rules: list[PermissionRule]) -> NavigationEntry:
    link = guard_link(principal, item["feature"], item["label"], item["href"], rules, Action.READ)
    return NavigationEntry(
        label=item["label"],
        feature=item["feature"],
        href=link.href,
        external=item.get("external", False),
        inert=link.inert,
        locked=link.locked,
        tooltip=link.tooltip,
    )


def build_navigation(
    principal: Principal,
    rules: Iterable[PermissionRule],
    items: Optional[list[dict]] = None,
) -> list[NavigationEntry]:
    """Resolve the navigation tree for a principal against the current rules."""
    rule_list = list(rules)
    entries = []
    for item in items if items is not None else NAVIGATION:
        if "children" not in item:
            entries.append(_leaf(principal, item, rule_list))
            continue

        children = [_leaf(principal, child, rule_list) for child in item["children"]]
        reachable = any(not child.inert for child in children)
        entries.append(
            NavigationEntry(
                label=item["label"],
                inert=not reachable,
                locked=not reachable,
                tooltip=None if reachable else f"You need 'Read' permission for a '{item['label']}' feature",
                children=children,
            )
        )
    return entries
