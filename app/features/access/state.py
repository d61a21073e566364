"""
Locally held rule set for consumers that evaluate without a round trip.

rules is None until the first fetch settles; gates treat that as pending.
When fetches overlap, only the most recently issued one is applied, so a slow
stale response can never overwrite a newer rule set. A failed first fetch
leaves an empty rule set, which denies everything except the super-role.
"""
from typing import Any, Awaitable, Callable, List, Optional, Union

from app.features.access.errors import StoreUnavailableError
from app.features.access.evaluator import evaluate
from app.features.access.gate import GateOutcome, Presentation, gate
from app.features.access.schemas import PermissionRule
from app.features.access.types import Action, Principal
from app.utils import get_logger


log = get_logger(__name__)

RuleFetch = Callable[[], Awaitable[List[PermissionRule]]]


class AccessRulesState:
    def __init__(self):
        self.rules: Optional[List[PermissionRule]] = None
        self.error: Optional[str] = None
        self._issued = 0

    @property
    def loaded(self) -> bool:
        return self.rules is not None

    async def refresh(self, fetch: RuleFetch) -> bool:
        """
        Run fetch and apply its result if no newer refresh was issued meanwhile.

        Returns:
            True if this call's result was applied
        """
        self._issued += 1
        token = self._issued

        try:
            rules = await fetch()
        except StoreUnavailableError as e:
            if token != self._issued:
                return False
            self.error = e.message
            if self.rules is None:
                log.error(f"Initial rule fetch failed, denying all access: {e.message}")
                self.rules = []
            else:
                log.error(f"Rule refresh failed, keeping last known rules: {e.message}")
            return False

        if token != self._issued:
            log.debug(f"Discarding superseded rule fetch #{token}")
            return False

        self.rules = list(rules)
        self.error = None
        return True

    def evaluate(self, principal: Principal, feature: str, action: Union[Action, str]) -> bool:
        if self.rules is None:
            return False
        return evaluate(principal, feature, action, self.rules)

    def gate(
        self,
        principal: Principal,
        feature: str,
        action: Union[Action, str],
        render_allowed: Callable[[], Any],
        presentation: Presentation = Presentation.HIDE,
        fallback: Any = None,
    ) -> GateOutcome:
        return gate(principal, feature, action, render_allowed, self.rules, presentation, fallback)
