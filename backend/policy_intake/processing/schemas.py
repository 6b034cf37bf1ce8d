"""
Canonical policy schema — the single normalized shape every extracted
record is converted into, whatever layout the extraction service used.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from policy_intake.core.constants import Confidence, PolicyStatus


class Installment(BaseModel):
    """One payment of a policy's premium schedule."""

    sequence: int = Field(ge=1)
    amount: Decimal | None = None
    due_date: date | None = None
    is_paid: bool = False


class CoverageLine(BaseModel):
    """One coverage item listed on the policy."""

    description: str
    limit_amount: Decimal | None = None


class CanonicalPolicy(BaseModel):
    """
    Normalized insurance policy.

    Every document field is either copied from the extracted record or
    left as None.  ``policy_number`` is the only field that may be
    synthesized; ``policy_number_is_placeholder`` marks that case.
    """

    owner_id: str | None = None

    insured_name: str | None = None
    insurer: str | None = None
    policy_number: str
    policy_number_is_placeholder: bool = False
    policy_name: str | None = None
    policy_type: str | None = None
    category: str | None = None

    premium: Decimal | None = None
    monthly_amount: Decimal | None = None
    installment_count: int | None = None
    deductible: Decimal | None = None
    payment_method: str | None = None

    start_date: date | None = None
    expiration_date: date | None = None

    document_number: str | None = None
    document_kind: str | None = None
    email: str | None = None

    vehicle_brand: str | None = None
    vehicle_model: str | None = None
    vehicle_plate: str | None = None
    vehicle_year: int | None = None

    broker: str | None = None
    state: str | None = None

    status: PolicyStatus | None = None
    confidence: Confidence = Confidence.HIGH
    warnings: list[str] = Field(default_factory=list)

    source_file: str | None = None
    source_file_hash: str | None = None
    extracted_at: datetime | None = None

    installments: list[Installment] = Field(default_factory=list)
    coverages: list[CoverageLine] = Field(default_factory=list)

    @property
    def display_name(self) -> str:
        """Human label for notifications."""
        return self.insured_name or self.insurer or self.source_file or self.policy_number
