"""
Deal and change ledger models.

A deal owns an append-only change log. Each ChangeEntry is written in the
same transaction as the deal update that produced it. Acknowledgments are
rows of their own keyed by (entry, principal), so two viewers acknowledging
at once never overwrite each other.
"""
from datetime import datetime
from typing import Any, Dict, List
from sqlalchemy import DateTime, Float, ForeignKey, Integer, JSON, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database.base import Base, TimestampMixin, generate_ulid


class Deal(Base, TimestampMixin):
    """
    Pipeline deal (an event being planned).

    Examples:
    - title="Annual Gala", value=25000, stage="Processing", venue="Grand Hall"
    """
    __tablename__ = "deals"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    value: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    stage: Mapped[str] = mapped_column(String(50), nullable=False, default="Prospecting", index=True)
    contact: Mapped[str | None] = mapped_column(String(255), nullable=True)
    event_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    attendees: Mapped[int | None] = mapped_column(Integer, nullable=True)
    venue: Mapped[str | None] = mapped_column(String(255), nullable=True)

    created_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

    change_log: Mapped[List["ChangeEntry"]] = relationship(
        back_populates="deal",
        order_by="ChangeEntry.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Deal(id={self.id}, title={self.title!r}, stage={self.stage!r})>"


class ChangeEntry(Base, TimestampMixin):
    """
    One ledger entry: the tracked fields a single update changed.

    changes holds [{"field", "old_value", "new_value"}, ...] with JSON-encoded values.
    """
    __tablename__ = "deal_change_entries"
    __table_args__ = (UniqueConstraint("deal_id", "position", name="uq_change_entry_position"),)

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    deal_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("deals.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # 0-based index within the deal's log
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    modified_by: Mapped[str] = mapped_column(String(255), nullable=False)
    changes: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)

    deal: Mapped[Deal] = relationship(back_populates="change_log")
    acknowledgments: Mapped[List["ChangeAcknowledgment"]] = relationship(
        back_populates="entry",
        order_by="ChangeAcknowledgment.created_at",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def acknowledged_by(self) -> List[str]:
        return [ack.principal_id for ack in self.acknowledgments]

    def __repr__(self) -> str:
        return f"<ChangeEntry(deal_id={self.deal_id}, position={self.position}, by={self.modified_by})>"


class ChangeAcknowledgment(Base, TimestampMixin):
    __tablename__ = "change_acknowledgments"

    entry_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("deal_change_entries.id", ondelete="CASCADE"), primary_key=True
    )
    principal_id: Mapped[str] = mapped_column(String(255), primary_key=True)

    entry: Mapped[ChangeEntry] = relationship(back_populates="acknowledgments")
