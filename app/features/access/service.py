"""
Rule administration.

RuleAdministrationService is the only writer of the permission matrix. Every
mutation:
- requires the acting principal to hold Write on the rule-administration
  feature (config.RULE_ADMIN_FEATURE), checked through the evaluator against
  the rules as stored right now;
- validates the resulting rule (grants within available actions) before any
  persistence call;
- goes straight to the store. Nothing is cached; every read is authoritative
  as of its return.

Concurrent edits by two administrators are last-write-wins per rule unless
the caller sends expected_version, in which case a stale write is rejected
with RuleConflictError.
"""
from typing import List, Optional, Protocol
from pydantic import ValidationError
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import config
from app.features.access.errors import (
    PermissionDeniedError,
    RuleConflictError,
    RuleNotFoundError,
    RuleValidationError,
    StoreUnavailableError,
)
from app.features.access.evaluator import decide
from app.features.access.models import AccessRule
from app.features.access.schemas import (
    BulkSaveFailure,
    BulkSaveResponse,
    LastModified,
    PermissionRule,
    RuleBatchItem,
    RuleCreate,
    RuleUpdate,
)
from app.features.access.types import Action, Principal, Role, role_rule_key
from app.utils import get_logger


log = get_logger(__name__)

_RULE_FIELDS = ("module", "available_actions", "admin", "lead_planner", "assistant")


# ============================================================================
# Store
# ============================================================================

class RuleStore(Protocol):
    async def list(self) -> List[PermissionRule]: ...
    async def get(self, rule_id: str) -> Optional[PermissionRule]: ...
    async def get_by_feature(self, feature: str) -> Optional[PermissionRule]: ...
    async def create(self, rule: PermissionRule, actor: str) -> PermissionRule: ...
    async def update(
        self, rule_id: str, rule: PermissionRule, actor: str, expected_version: Optional[int] = None
    ) -> PermissionRule: ...
    async def delete(self, rule_id: str) -> None: ...
    async def replace_all(self, rules: List[PermissionRule], actor: str) -> List[PermissionRule]: ...


def _columns(rule: PermissionRule) -> dict:
    data = rule.model_dump(include=set(_RULE_FIELDS), mode="json")
    return data


class SqlRuleStore:
    """RuleStore over the access_rules table."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _fetch(self, rule_id: str) -> Optional[AccessRule]:
        stmt = (
            select(AccessRule)
            .where(AccessRule.id == rule_id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalars().first()

    async def list(self) -> List[PermissionRule]:
        try:
            result = await self.db.execute(
                select(AccessRule).order_by(AccessRule.module, AccessRule.feature)
            )
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"Failed to fetch access rules: {e}") from e
        return [PermissionRule.model_validate(row) for row in result.scalars().all()]

    async def get(self, rule_id: str) -> Optional[PermissionRule]:
        try:
            row = await self._fetch(rule_id)
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"Failed to fetch access rule: {e}") from e
        return PermissionRule.model_validate(row) if row else None

    async def get_by_feature(self, feature: str) -> Optional[PermissionRule]:
        try:
            result = await self.db.execute(select(AccessRule).where(AccessRule.feature == feature))
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"Failed to fetch access rule: {e}") from e
        row = result.scalars().first()
        return PermissionRule.model_validate(row) if row else None

    async def create(self, rule: PermissionRule, actor: str) -> PermissionRule:
        row = AccessRule(feature=rule.feature, updated_by=actor, version=1, **_columns(rule))
        self.db.add(row)
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise RuleConflictError(f"An access rule for '{rule.feature}' already exists") from e
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise StoreUnavailableError(f"Failed to save access rule: {e}") from e
        await self.db.refresh(row)
        return PermissionRule.model_validate(row)

    async def update(
        self, rule_id: str, rule: PermissionRule, actor: str, expected_version: Optional[int] = None
    ) -> PermissionRule:
        stmt = update(AccessRule).where(AccessRule.id == rule_id)
        if expected_version is not None:
            stmt = stmt.where(AccessRule.version == expected_version)
        stmt = stmt.values(
            updated_by=actor,
            version=AccessRule.version + 1,
            **_columns(rule),
        )
        try:
            result = await self.db.execute(stmt)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise StoreUnavailableError(f"Failed to save access rule: {e}") from e

        if result.rowcount == 0:
            if await self.get(rule_id) is None:
                raise RuleNotFoundError("Access rule not found")
            raise RuleConflictError(
                f"Access rule '{rule.feature}' was changed by someone else; reload and retry"
            )

        row = await self._fetch(rule_id)
        return PermissionRule.model_validate(row)

    async def delete(self, rule_id: str) -> None:
        try:
            await self.db.execute(delete(AccessRule).where(AccessRule.id == rule_id))
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise StoreUnavailableError(f"Failed to delete access rule: {e}") from e

    async def replace_all(self, rules: List[PermissionRule], actor: str) -> List[PermissionRule]:
        try:
            await self.db.execute(delete(AccessRule))
            self.db.add_all(
                AccessRule(feature=rule.feature, updated_by=actor, version=1, **_columns(rule))
                for rule in rules
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise StoreUnavailableError(f"Failed to restore access rules: {e}") from e
        return await self.list()


# ============================================================================
# Service
# ============================================================================

def _merge(existing: PermissionRule, patch: RuleUpdate) -> PermissionRule:
    """Apply a partial update and re-validate the whole rule."""
    data = existing.model_dump()
    data.update(patch.model_dump(include=set(_RULE_FIELDS), exclude_unset=True, exclude_none=True))
    try:
        return PermissionRule.model_validate(data)
    except ValidationError as e:
        raise RuleValidationError(_validation_message(e)) from e


def _validation_message(e: ValidationError) -> str:
    return "; ".join(err["msg"].removeprefix("Value error, ") for err in e.errors())


class RuleAdministrationService:
    """CRUD and bulk save over the permission matrix."""

    def __init__(self, store: RuleStore, admin_feature: str = config.RULE_ADMIN_FEATURE):
        self.store = store
        self.admin_feature = admin_feature

    async def list_rules(self) -> List[PermissionRule]:
        return await self.store.list()

    async def _require_admin(self, principal: Principal) -> None:
        rules = await self.store.list()
        decision = decide(principal, self.admin_feature, Action.WRITE, rules)
        if not decision.allowed:
            log.warning(f"SECURITY: {principal.id} attempted to modify access rules: {decision.reason}")
            raise PermissionDeniedError(
                f"Permission denied: 'Write' on '{self.admin_feature}' is required to manage access rules"
            )

    async def create_rule(self, principal: Principal, data: RuleCreate) -> PermissionRule:
        await self._require_admin(principal)
        try:
            rule = PermissionRule.model_validate(data.model_dump())
        except ValidationError as e:
            raise RuleValidationError(_validation_message(e)) from e

        if await self.store.get_by_feature(rule.feature) is not None:
            raise RuleConflictError(f"An access rule for '{rule.feature}' already exists")

        created = await self.store.create(rule, actor=principal.name or principal.id)
        log.info(f"Access rule created: {created.feature} ({created.module}) by {principal.id}")
        return created

    async def update_rule(self, principal: Principal, rule_id: str, patch: RuleUpdate) -> PermissionRule:
        await self._require_admin(principal)
        existing = await self.store.get(rule_id)
        if existing is None:
            raise RuleNotFoundError("Access rule not found")

        merged = _merge(existing, patch)
        updated = await self.store.update(
            rule_id, merged, actor=principal.name or principal.id, expected_version=patch.expected_version
        )
        log.info(f"Access rule updated: {updated.feature} v{updated.version} by {principal.id}")
        return updated

    async def bulk_save(self, principal: Principal, items: List[RuleBatchItem]) -> BulkSaveResponse:
        """
        Save a batch of modified rules.

        The whole batch is validated first; if any item is invalid or unknown,
        nothing is written. Writes then go rule by rule; a rule that fails to
        persist is listed in `failed` and the others still land.
        """
        await self._require_admin(principal)
        current = {rule.id: rule for rule in await self.store.list()}

        merged: list[tuple[RuleBatchItem, PermissionRule]] = []
        rejected: list[BulkSaveFailure] = []
        seen: set[str] = set()
        for item in items:
            existing = current.get(item.id)
            if existing is None:
                rejected.append(BulkSaveFailure(id=item.id, error="Access rule not found"))
                continue
            if item.id in seen:
                rejected.append(BulkSaveFailure(id=item.id, feature=existing.feature, error="Rule listed more than once in the batch"))
                continue
            seen.add(item.id)
            try:
                merged.append((item, _merge(existing, item)))
            except RuleValidationError as e:
                rejected.append(BulkSaveFailure(id=item.id, feature=existing.feature, error=e.message))

        if rejected:
            return BulkSaveResponse(
                success=False,
                message=f"No rules saved: {len(rejected)} of {len(items)} failed validation",
                failed=rejected,
            )

        saved: list[PermissionRule] = []
        failed: list[BulkSaveFailure] = []
        actor = principal.name or principal.id
        for item, rule in merged:
            try:
                saved.append(await self.store.update(item.id, rule, actor=actor, expected_version=item.expected_version))
            except (RuleConflictError, RuleNotFoundError, StoreUnavailableError) as e:
                log.warning(f"Bulk save failed for {rule.feature}: {e.message}")
                failed.append(BulkSaveFailure(id=item.id, feature=rule.feature, error=e.message))

        if failed:
            message = f"Saved {len(saved)} of {len(items)} rules; {len(failed)} failed"
        else:
            message = "All rules saved successfully"
        log.info(f"Bulk save by {principal.id}: {message}")
        return BulkSaveResponse(success=not failed, message=message, saved=saved, failed=failed)

    async def delete_rule(self, principal: Principal, rule_id: str) -> PermissionRule:
        """Delete a rule. Irreversible: access to the feature is revoked for every non-admin role."""
        await self._require_admin(principal)
        existing = await self.store.get(rule_id)
        if existing is None:
            raise RuleNotFoundError("Access rule not found")
        await self.store.delete(rule_id)
        log.info(f"Access rule deleted: {existing.feature} by {principal.id}")
        return existing

    async def reset_defaults(self, principal: Principal) -> List[PermissionRule]:
        """Replace the whole matrix with the factory defaults."""
        from app.features.access.defaults import DEFAULT_RULES

        await self._require_admin(principal)
        rules = await self.store.replace_all(DEFAULT_RULES, actor=principal.name or principal.id)
        log.info(f"Access rules reset to defaults by {principal.id}")
        return rules


# ============================================================================
# Matrix editing helpers
# ============================================================================

def toggle_grant(rule: PermissionRule, role: Role, action: Action) -> PermissionRule:
    """Flip one role/action cell of a rule, returning a new rule."""
    key = role_rule_key(role)
    if key is None:
        raise RuleValidationError(f"Role '{role.value}' has no grant column")
    if action not in rule.available_actions:
        raise RuleValidationError(f"'{action.value}' is not available on '{rule.feature}'")

    current = list(getattr(rule, key))
    if action in current:
        current.remove(action)
    else:
        current.append(action)
    return rule.model_copy(update={key: current})


def set_module_grants(
    rules: List[PermissionRule], module: str, role: Role, enable: bool
) -> List[PermissionRule]:
    """Grant every available action (or none) to a role across one module."""
    key = role_rule_key(role)
    if key is None:
        raise RuleValidationError(f"Role '{role.value}' has no grant column")
    return [
        rule.model_copy(update={key: list(rule.available_actions) if enable else []})
        if rule.module == module else rule
        for rule in rules
    ]


def last_modified(rules: List[PermissionRule]) -> LastModified:
    """Who touched the matrix most recently."""
    stamped = [rule for rule in rules if rule.updated_at is not None]
    if not stamped:
        return LastModified()
    latest = max(stamped, key=lambda rule: rule.updated_at)
    return LastModified(by=latest.updated_by or "System", at=latest.updated_at)
