"""
Declarative access gates.

A gate wraps a unit of UI or behavior and resolves it to exactly one outcome
based on the evaluator's verdict. Rendering is left to the caller: the gate
only decides what to show and how (interactive, dimmed, locked, replaced).

While the rule set has not loaded yet (rules is None) every gate resolves to
PENDING and renders nothing, so a view never flashes a wrong allowed or denied
state during the initial fetch.

guard_action() and guard_link() are thin conveniences over the same
decide() call used everywhere else.
"""
from enum import Enum
from typing import Any, Callable, Iterable, Optional, Union
from pydantic import BaseModel, ConfigDict

from app.features.access.evaluator import decide
from app.features.access.schemas import PermissionRule
from app.features.access.types import Action, Principal


Rules = Optional[Iterable[PermissionRule]]


class Presentation(str, Enum):
    """How denied content is presented."""
    HIDE = "hide"
    DISABLE = "disable"
    LOCK = "lock"
    FALLBACK = "fallback"


class GateState(str, Enum):
    PENDING = "pending"
    ALLOWED = "allowed"
    HIDDEN = "hidden"
    DISABLED = "disabled"
    LOCKED = "locked"
    FALLBACK = "fallback"


class GateOutcome(BaseModel):
    """Resolved gate: what to render and whether it accepts interaction."""
    state: GateState
    content: Any = None
    interactive: bool = False
    dimmed: bool = False
    locked: bool = False
    tooltip: Optional[str] = None

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @property
    def renders(self) -> bool:
        return self.content is not None


def restriction_tooltip(feature: str, action: Union[Action, str]) -> str:
    name = action.value if isinstance(action, Action) else str(action)
    return f"Access Restricted: You need '{name}' permission for '{feature}'"


def gate(
    principal: Principal,
    feature: str,
    action: Union[Action, str],
    render_allowed: Callable[[], Any],
    rules: Rules,
    presentation: Presentation = Presentation.HIDE,
    fallback: Any = None,
) -> GateOutcome:
    """
    Resolve a gated unit.

    render_allowed is only called when the content is actually shown
    (allowed, disabled or locked); hidden and fallback outcomes never build it.
    HIDE still renders the fallback when one is supplied.
    """
    if rules is None:
        return GateOutcome(state=GateState.PENDING)

    if decide(principal, feature, action, rules).allowed:
        return GateOutcome(state=GateState.ALLOWED, content=render_allowed(), interactive=True)

    tooltip = restriction_tooltip(feature, action)
    if presentation is Presentation.DISABLE:
        return GateOutcome(
            state=GateState.DISABLED, content=render_allowed(), dimmed=True, tooltip=tooltip,
        )
    if presentation is Presentation.LOCK:
        return GateOutcome(
            state=GateState.LOCKED, content=render_allowed(), dimmed=True, locked=True, tooltip=tooltip,
        )
    if presentation is Presentation.FALLBACK:
        return GateOutcome(state=GateState.FALLBACK, content=fallback)
    if fallback is not None:
        return GateOutcome(state=GateState.FALLBACK, content=fallback)
    return GateOutcome(state=GateState.HIDDEN)


class GuardedAction(BaseModel):
    """A control whose handler only fires when the principal is allowed."""
    pending: bool = False
    enabled: bool
    locked: bool = False
    tooltip: Optional[str] = None
    handler: Optional[Callable[..., Any]] = None

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def trigger(self, *args, **kwargs) -> Any:
        """Invoke the handler if enabled; a disabled control does nothing."""
        if not self.enabled or self.handler is None:
            return None
        return self.handler(*args, **kwargs)


def guard_action(
    principal: Principal,
    feature: str,
    handler: Callable[..., Any],
    rules: Rules,
    action: Union[Action, str] = Action.WRITE,
) -> GuardedAction:
    """Wrap an action trigger (button, menu command) behind an access check."""
    if rules is None:
        return GuardedAction(pending=True, enabled=False)
    if decide(principal, feature, action, rules).allowed:
        return GuardedAction(enabled=True, handler=handler)
    name = action.value if isinstance(action, Action) else str(action)
    return GuardedAction(
        enabled=False,
        locked=True,
        tooltip=f"You need '{name}' permission for '{feature}'",
    )


class GuardedLink(BaseModel):
    """A navigation link; denied links stay visible but have no target."""
    label: str
    href: Optional[str] = None
    pending: bool = False
    inert: bool = False
    locked: bool = False
    tooltip: Optional[str] = None


def guard_link(
    principal: Principal,
    feature: str,
    label: str,
    href: str,
    rules: Rules,
    action: Union[Action, str] = Action.READ,
) -> GuardedLink:
    """Wrap a navigation affordance behind an access check."""
    if rules is None:
        return GuardedLink(label=label, pending=True, inert=True)
    if decide(principal, feature, action, rules).allowed:
        return GuardedLink(label=label, href=href)
    name = action.value if isinstance(action, Action) else str(action)
    return GuardedLink(
        label=label,
        inert=True,
        locked=True,
        tooltip=f"You need '{name}' permission for '{feature}'",
    )
