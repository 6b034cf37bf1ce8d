"""
Installment — one payment of a policy's premium schedule.
"""

from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, Date, ForeignKey, Integer, Numeric, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from policy_intake.db.models.base import Base, generate_uuid

if TYPE_CHECKING:
    from policy_intake.db.models.policy import Policy


class Installment(Base):
    """One row per installment, sequence unique within the policy."""

    __tablename__ = "installments"
    __table_args__ = (
        UniqueConstraint("policy_id", "sequence", name="uq_installments_policy_sequence"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=generate_uuid
    )
    policy_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("policies.id", ondelete="CASCADE"), nullable=False, index=True
    )

    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    amount: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    policy: Mapped[Policy] = relationship(back_populates="installments")

    def __repr__(self) -> str:
        return f"<Installment policy={self.policy_id} #{self.sequence} due={self.due_date}>"
