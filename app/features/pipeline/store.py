"""
Deal persistence with a colocated change ledger.

update() writes the deal's new field values and its ledger entry in one
commit, so no reader ever sees one without the other. acknowledge() only
inserts (entry, principal) rows, which makes concurrent acknowledgments
commute.
"""
from typing import List
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.features.pipeline.errors import RecordNotFoundError, RecordStoreError
from app.features.pipeline.ledger import diff_fields
from app.features.pipeline.models import ChangeAcknowledgment, ChangeEntry, Deal
from app.features.pipeline.schemas import DealCreate, DealResponse, DealUpdate
from app.utils import get_logger


log = get_logger(__name__)

# A concurrent writer can take the same ledger position or acknowledgment row;
# one retry re-reads and resolves it
_ATTEMPTS = 2


class DealStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def _load(self, deal_id: str) -> Deal:
        stmt = (
            select(Deal)
            .where(Deal.id == deal_id)
            .execution_options(populate_existing=True)
        )
        try:
            result = await self.db.execute(stmt)
        except SQLAlchemyError as e:
            raise RecordStoreError(f"Failed to fetch deal: {e}") from e
        deal = result.scalars().first()
        if deal is None:
            raise RecordNotFoundError("Deal not found")
        return deal

    async def list(self) -> List[DealResponse]:
        try:
            result = await self.db.execute(select(Deal).order_by(Deal.created_at.desc(), Deal.id.desc()))
        except SQLAlchemyError as e:
            raise RecordStoreError(f"Failed to fetch deals: {e}") from e
        return [DealResponse.model_validate(deal) for deal in result.scalars().all()]

    async def get(self, deal_id: str) -> DealResponse:
        return DealResponse.model_validate(await self._load(deal_id))

    async def create(self, data: DealCreate, principal_id: str) -> DealResponse:
        deal = Deal(**data.model_dump(), created_by=principal_id)
        self.db.add(deal)
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise RecordStoreError(f"Failed to save deal: {e}") from e
        log.info(f"Deal created: {deal.id} ({deal.title!r}) by {principal_id}")
        return await self.get(deal.id)

    async def update(self, deal_id: str, patch: DealUpdate, principal_id: str) -> DealResponse:
        """
        Apply a partial update and append its ledger entry atomically.

        An update that changes no tracked field appends nothing.
        """
        values = patch.model_dump(exclude_unset=True)

        for attempt in range(_ATTEMPTS):
            deal = await self._load(deal_id)
            changes = diff_fields(deal, values)

            for field, value in values.items():
                setattr(deal, field, value)
            if changes:
                entry = ChangeEntry(
                    deal_id=deal.id,
                    position=len(deal.change_log),
                    modified_by=principal_id,
                    changes=[change.model_dump(mode="json") for change in changes],
                )
                entry.acknowledgments.append(ChangeAcknowledgment(principal_id=principal_id))
                deal.change_log.append(entry)

            try:
                await self.db.commit()
                break
            except IntegrityError as e:
                await self.db.rollback()
                if attempt + 1 == _ATTEMPTS:
                    raise RecordStoreError(f"Failed to save deal: {e}") from e
                log.debug(f"Ledger position taken on {deal_id}, retrying")
            except SQLAlchemyError as e:
                await self.db.rollback()
                raise RecordStoreError(f"Failed to save deal: {e}") from e

        if changes:
            log.info(
                f"Deal {deal_id} updated by {principal_id}: "
                + ", ".join(f"{c.field} {c.old_value!r} -> {c.new_value!r}" for c in changes)
            )
        return await self.get(deal_id)

    async def acknowledge(self, deal_id: str, principal_id: str) -> DealResponse:
        """Add principal to every ledger entry that lacks it."""
        for attempt in range(_ATTEMPTS):
            deal = await self._load(deal_id)
            pending = [entry for entry in deal.change_log if principal_id not in entry.acknowledged_by]
            if not pending:
                return DealResponse.model_validate(deal)

            self.db.add_all(ChangeAcknowledgment(entry_id=entry.id, principal_id=principal_id) for entry in pending)
            try:
                await self.db.commit()
                break
            except IntegrityError as e:
                await self.db.rollback()
                if attempt + 1 == _ATTEMPTS:
                    raise RecordStoreError(f"Failed to acknowledge changes: {e}") from e
            except SQLAlchemyError as e:
                await self.db.rollback()
                raise RecordStoreError(f"Failed to acknowledge changes: {e}") from e

        log.info(f"{principal_id} acknowledged {len(pending)} change(s) on deal {deal_id}")
        return await self.get(deal_id)

    async def delete(self, deal_id: str) -> None:
        deal = await self._load(deal_id)
        try:
            await self.db.delete(deal)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise RecordStoreError(f"Failed to delete deal: {e}") from e
        log.info(f"Deal deleted: {deal_id}")

    def acting_as(self, principal_id: str) -> "ActingDealStore":
        """Bind writes to a principal, for StageCoordinator and other record-store consumers."""
        return ActingDealStore(self, principal_id)


class ActingDealStore:
    def __init__(self, store: DealStore, principal_id: str):
        self.store = store
        self.principal_id = principal_id

    async def get(self, deal_id: str) -> DealResponse:
        return await self.store.get(deal_id)

    async def update(self, deal_id: str, patch: DealUpdate) -> DealResponse:
        return await self.store.update(deal_id, patch, self.principal_id)
