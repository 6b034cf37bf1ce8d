"""
Policy — aggregate root for one insurance policy.

Natural key: (owner_id, policy_number), enforced by a unique constraint
so concurrent batches cannot store the same policy twice.
Installments and coverage lines are owned by the policy and replaced
whenever the policy is updated.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Integer,
    JSON,
    Numeric,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from policy_intake.db.models.base import Base, generate_uuid, utcnow

if TYPE_CHECKING:
    from policy_intake.db.models.coverage_line import CoverageLine
    from policy_intake.db.models.installment import Installment


class Policy(Base):
    """One row per (owner, policy number)."""

    __tablename__ = "policies"
    __table_args__ = (
        UniqueConstraint("owner_id", "policy_number", name="uq_policies_owner_policy_number"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=generate_uuid
    )
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    # ── Identity ─────────────────────────────
    policy_number: Mapped[str] = mapped_column(String(100), nullable=False)
    policy_number_is_placeholder: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    policy_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    policy_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # ── Parties ──────────────────────────────
    insured_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    insurer: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    broker: Mapped[str | None] = mapped_column(String(255), nullable=True)
    document_number: Mapped[str | None] = mapped_column(String(20), nullable=True, index=True)
    document_kind: Mapped[str | None] = mapped_column(String(10), nullable=True)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    state: Mapped[str | None] = mapped_column(String(50), nullable=True)

    # ── Financials ───────────────────────────
    premium: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    monthly_amount: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    installment_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    deductible: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    payment_method: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # ── Validity ─────────────────────────────
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    expiration_date: Mapped[date | None] = mapped_column(Date, nullable=True, index=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="current", index=True)

    # ── Vehicle ──────────────────────────────
    vehicle_brand: Mapped[str | None] = mapped_column(String(100), nullable=True)
    vehicle_model: Mapped[str | None] = mapped_column(String(255), nullable=True)
    vehicle_plate: Mapped[str | None] = mapped_column(String(20), nullable=True)
    vehicle_year: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # ── Provenance ───────────────────────────
    confidence: Mapped[str] = mapped_column(String(10), nullable=False, default="high")
    warnings: Mapped[list[Any]] = mapped_column(JSON, nullable=False, default=list)
    source_file: Mapped[str | None] = mapped_column(String(500), nullable=True)
    source_file_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    extracted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # ── Audit timestamps ─────────────────────
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    # ── Relationships ─────────────────────────
    installments: Mapped[list[Installment]] = relationship(
        back_populates="policy", cascade="all, delete-orphan", order_by="Installment.sequence"
    )
    coverage_lines: Mapped[list[CoverageLine]] = relationship(
        back_populates="policy", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Policy {self.id} owner={self.owner_id} number={self.policy_number} status={self.status}>"
