"""
Stage transition coordination for a board of deals.

Stages form a free graph: any stage may move to any other. A move is applied
to the local view first, then written to the record store, whose update
appends the ledger entry. The result is explicit:

- APPLIED: the store accepted the move; the local view holds the stored record
- REVERTED: the store write failed; the local view is back on the last state
  the store confirmed, and reason says why
- SUPERSEDED: a newer move of the same deal was issued while this one was in
  flight. Its response only touches the local view when it carries the
  store's latest state and no newer move is still pending

Local view and store are never left silently diverged.
"""
from enum import Enum
from typing import Dict, Iterable, List, Optional, Protocol
from pydantic import BaseModel

from app.core import config
from app.features.pipeline.errors import PipelineError
from app.features.pipeline.schemas import DealResponse, DealUpdate
from app.utils import get_logger


log = get_logger(__name__)


class RecordStore(Protocol):
    async def update(self, deal_id: str, patch: DealUpdate) -> DealResponse: ...


class MoveOutcome(str, Enum):
    APPLIED = "applied"
    REVERTED = "reverted"
    SUPERSEDED = "superseded"


class MoveResult(BaseModel):
    outcome: MoveOutcome
    deal_id: str
    from_stage: str
    to_stage: str
    reason: Optional[str] = None

    @property
    def applied(self) -> bool:
        return self.outcome is MoveOutcome.APPLIED


def board_stages(records: Iterable[DealResponse], canonical: Optional[List[str]] = None) -> List[str]:
    """Canonical stages in order, then any other stage seen in the data, in order of first appearance."""
    stages = list(config.CANONICAL_STAGES if canonical is None else canonical)
    for record in records:
        if record.stage not in stages:
            stages.append(record.stage)
    return stages


class StageCoordinator:
    def __init__(self, store: RecordStore, records: Iterable[DealResponse] = ()):
        self.store = store
        self.records: Dict[str, DealResponse] = {}
        self._confirmed: Dict[str, DealResponse] = {}
        self._issued: Dict[str, int] = {}
        self._settled: Dict[str, int] = {}
        self._counter = 0
        self.load(records)

    def load(self, records: Iterable[DealResponse]) -> None:
        """Replace the local view with records fresh from the store."""
        self.records = {record.id: record for record in records}
        self._confirmed = dict(self.records)
        self._issued = {}
        self._settled = {}

    def stages(self) -> List[str]:
        return board_stages(self.records.values())

    def board(self) -> Dict[str, List[DealResponse]]:
        """Local view grouped into columns, one per stage."""
        columns: Dict[str, List[DealResponse]] = {stage: [] for stage in self.stages()}
        for record in self.records.values():
            columns[record.stage].append(record)
        return columns

    async def move(self, deal_id: str, stage: str) -> MoveResult:
        """
        Move a deal to another stage.

        Raises:
            KeyError: deal_id is not on the board
        """
        current = self.records[deal_id]
        from_stage = current.stage
        if from_stage == stage:
            return MoveResult(outcome=MoveOutcome.APPLIED, deal_id=deal_id, from_stage=from_stage, to_stage=stage)

        self._counter += 1
        token = self._counter
        self._issued[deal_id] = token
        self.records[deal_id] = current.model_copy(update={"stage": stage})

        try:
            saved = await self.store.update(deal_id, DealUpdate(stage=stage))
        except PipelineError as e:
            if self._issued.get(deal_id) != token:
                return MoveResult(
                    outcome=MoveOutcome.SUPERSEDED, deal_id=deal_id, from_stage=from_stage, to_stage=stage,
                    reason=e.message,
                )
            self._settled[deal_id] = token
            self.records[deal_id] = self._confirmed[deal_id]
            log.warning(f"Stage move of {deal_id} to {stage!r} failed, reverted to {self.records[deal_id].stage!r}: {e.message}")
            return MoveResult(
                outcome=MoveOutcome.REVERTED, deal_id=deal_id, from_stage=from_stage, to_stage=stage,
                reason=e.message,
            )

        latest = self._confirm(deal_id, saved)
        if self._issued.get(deal_id) != token:
            # The newest move has already settled, so a later store state must reach the board
            if latest and self._settled.get(deal_id) == self._issued.get(deal_id):
                self.records[deal_id] = saved
                log.info(f"Late stage move of {deal_id} landed in the store, board now shows {saved.stage!r}")
                return MoveResult(
                    outcome=MoveOutcome.SUPERSEDED, deal_id=deal_id, from_stage=from_stage, to_stage=stage,
                    reason=f"An earlier move reached the store last; board resynced to '{saved.stage}'",
                )
            log.debug(f"Discarding superseded stage move of {deal_id} to {stage!r}")
            return MoveResult(outcome=MoveOutcome.SUPERSEDED, deal_id=deal_id, from_stage=from_stage, to_stage=stage)

        self._settled[deal_id] = token
        self.records[deal_id] = self._confirmed[deal_id]
        if not latest:
            return MoveResult(
                outcome=MoveOutcome.SUPERSEDED, deal_id=deal_id, from_stage=from_stage, to_stage=stage,
                reason=f"An earlier move reached the store last; board resynced to '{self.records[deal_id].stage}'",
            )
        return MoveResult(outcome=MoveOutcome.APPLIED, deal_id=deal_id, from_stage=from_stage, to_stage=stage)

    def _confirm(self, deal_id: str, saved: DealResponse) -> bool:
        """Keep saved as the confirmed record unless the store has already reported a later state."""
        known = self._confirmed.get(deal_id)
        # The ledger only grows, so the longer change log is the later store state
        if known is not None and len(saved.change_log) < len(known.change_log):
            return False
        self._confirmed[deal_id] = saved
        return True
