"""
CoverageLine — one coverage item listed on a policy.
"""

from __future__ import annotations

import uuid
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, Numeric, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from policy_intake.db.models.base import Base, generate_uuid

if TYPE_CHECKING:
    from policy_intake.db.models.policy import Policy


class CoverageLine(Base):
    __tablename__ = "coverage_lines"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=generate_uuid
    )
    policy_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("policies.id", ondelete="CASCADE"), nullable=False, index=True
    )

    description: Mapped[str] = mapped_column(Text, nullable=False)
    limit_amount: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)

    policy: Mapped[Policy] = relationship(back_populates="coverage_lines")
