"""
Change ledger and acknowledgment tracking.

Pure functions over DealResponse records. The database store applies the
same rules inside a transaction; these are what viewers and the stage
coordinator use on records they already hold.

Rules:
- An update that changes at least one tracked field appends exactly one
  entry; the author is its first acknowledger.
- Entries are never removed or reordered. The only mutation is adding a
  principal to acknowledged_by, and each principal appears at most once.
- Unseen changes are only reported while the deal sits in an audited stage.
  Leaving the stage does not clear anything; coming back re-activates the
  check against whatever is still unacknowledged.
"""
from typing import Any, Iterable, List, Mapping, Optional
from fastapi.encoders import jsonable_encoder

from app.core import config
from app.features.pipeline.schemas import ChangeEntryResponse, DealResponse, FieldChange


TRACKED_FIELDS = ("title", "value", "stage", "event_date", "attendees", "venue")


def _read(current: Any, field: str) -> Any:
    if isinstance(current, Mapping):
        return current.get(field)
    return getattr(current, field, None)


def diff_fields(current: Any, patch: Mapping[str, Any]) -> List[FieldChange]:
    """
    Tracked-field differences between a record and a patch.

    Args:
        current: Record (model, schema or dict) before the update
        patch: Fields being written; fields absent from it are untouched

    Returns:
        One FieldChange per tracked field whose value actually changes,
        with values JSON-encoded
    """
    changes = []
    for field in TRACKED_FIELDS:
        if field not in patch:
            continue
        old = jsonable_encoder(_read(current, field))
        new = jsonable_encoder(patch[field])
        if old != new:
            changes.append(FieldChange(field=field, old_value=old, new_value=new))
    return changes


def append_change(record: DealResponse, changes: List[FieldChange], principal_id: str) -> DealResponse:
    """Return record with one new ledger entry for changes, or record itself if nothing changed."""
    if not changes:
        return record
    entry = ChangeEntryResponse(modified_by=principal_id, changes=changes, acknowledged_by=[principal_id])
    return record.model_copy(update={"change_log": [*record.change_log, entry]})


def apply_update(record: DealResponse, patch: Mapping[str, Any], principal_id: str) -> DealResponse:
    """Apply a patch and its ledger entry together."""
    changes = diff_fields(record, patch)
    updated = record.model_copy(update=dict(patch))
    return append_change(updated, changes, principal_id)


def unacknowledged(record: DealResponse, principal_id: str) -> List[ChangeEntryResponse]:
    return [entry for entry in record.change_log if principal_id not in entry.acknowledged_by]


def has_unseen_changes(
    record: DealResponse,
    principal_id: str,
    audited_stages: Optional[Iterable[str]] = None,
) -> bool:
    """True iff the deal is in an audited stage and some entry lacks principal's acknowledgment."""
    stages = config.AUDITED_STAGES if audited_stages is None else list(audited_stages)
    if record.stage not in stages:
        return False
    return bool(unacknowledged(record, principal_id))


def acknowledge(record: DealResponse, principal_id: str) -> DealResponse:
    """Mark every entry seen by principal. Idempotent."""
    if not unacknowledged(record, principal_id):
        return record
    entries = [
        entry if principal_id in entry.acknowledged_by
        else entry.model_copy(update={"acknowledged_by": [*entry.acknowledged_by, principal_id]})
        for entry in record.change_log
    ]
    return record.model_copy(update={"change_log": entries})
