"""
Access evaluation.

evaluate()/decide() are the single source of truth for every access check in
the system: route dependencies, the gate helpers, the navigation manifest and
the rule administration service all call through here.

Rules:
1. A principal holding the super-role (Admin) is allowed everything. This is
   the only exception to deny-by-default and it bypasses rule lookup entirely.
2. A feature with no rule is denied. Missing configuration is the secure
   default, not an error; it is logged at warning level and never raised.
3. Otherwise the principal's role is mapped to its grant column on the rule
   and the action must be in that column.

Both functions are pure: no I/O, no caching, no ambient state. Callers pass
the principal and the current rule set in explicitly.
"""
from typing import Iterable, Optional, Union

from app.features.access.schemas import PermissionRule
from app.features.access.types import AccessDecision, Action, Principal
from app.utils import get_logger


log = get_logger(__name__)


def _find_rule(rules: Iterable[PermissionRule], feature: str) -> Optional[PermissionRule]:
    for rule in rules:
        if rule.feature == feature:
            return rule
    return None


def decide(
    principal: Principal,
    feature: str,
    action: Union[Action, str],
    rules: Iterable[PermissionRule],
) -> AccessDecision:
    """
    Decide whether principal may perform action on feature.

    Args:
        principal: Resolved caller
        feature: Feature name as it appears on the rule (e.g. "Leads")
        action: Action member or its name (case-insensitive)
        rules: Current rule set

    Returns:
        AccessDecision with the verdict and a short reason
    """
    if not principal.session_valid:
        log.debug(f"[RBAC] Session of {principal.id} is no longer valid - denied {action!r} on {feature!r}")
        return AccessDecision(allowed=False, reason="Session is no longer valid")

    if principal.is_super:
        return AccessDecision(allowed=True, reason="super-role override")

    try:
        wanted = Action(action)
    except ValueError:
        log.debug(f"Unknown action {action!r} requested on {feature!r} by {principal.id}")
        return AccessDecision(allowed=False, reason=f"Unknown action '{action}'")

    rule = _find_rule(rules, feature)
    if rule is None:
        log.warning(f"[RBAC] No rule found for feature {feature!r} - denied {wanted.value} to {principal.id}")
        return AccessDecision(allowed=False, reason=f"No access rule configured for '{feature}'")

    if wanted in rule.granted(principal.role):
        return AccessDecision(allowed=True, reason="granted")

    role_name = principal.role_label or principal.role.value
    log.debug(f"[RBAC] {role_name} denied {wanted.value!r} on {feature!r}")
    return AccessDecision(
        allowed=False,
        reason=f"Role '{role_name}' lacks '{wanted.value}' permission for '{feature}'",
    )


def evaluate(
    principal: Principal,
    feature: str,
    action: Union[Action, str],
    rules: Iterable[PermissionRule],
) -> bool:
    """Boolean form of decide()."""
    return decide(principal, feature, action, rules).allowed
