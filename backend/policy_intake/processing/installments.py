"""Installment schedule generation."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from dateutil.relativedelta import relativedelta

from policy_intake.processing.schemas import CanonicalPolicy, Installment


def generate_installments(
    count: int,
    amount: Decimal,
    first_due_date: date,
) -> list[Installment]:
    """
    ``count`` pending installments of ``amount``, one calendar month apart.

    Month arithmetic clamps to the last day of short months
    (Jan 31 → Feb 28 → Mar 31), always counted from the first due date.
    """
    return [
        Installment(
            sequence=n,
            amount=amount,
            due_date=first_due_date + relativedelta(months=n - 1),
            is_paid=False,
        )
        for n in range(1, count + 1)
    ]


def ensure_installments(policy: CanonicalPolicy) -> CanonicalPolicy:
    """
    Fill ``policy.installments`` when the document did not list them.

    A schedule is generated only when the declared count, the monthly
    amount and the effective date are all known.  An explicit schedule
    from the document is kept as is; if it is the only count available,
    the declared count is taken from it.
    """
    if policy.installments:
        if policy.installment_count is None:
            policy.installment_count = len(policy.installments)
        elif policy.installment_count != len(policy.installments):
            policy.warnings.append(
                f"declared installment_count {policy.installment_count} "
                f"differs from {len(policy.installments)} listed installments"
            )
        return policy

    if (
        policy.installment_count
        and policy.installment_count > 0
        and policy.monthly_amount
        and policy.monthly_amount > 0
        and policy.start_date is not None
    ):
        policy.installments = generate_installments(
            policy.installment_count,
            policy.monthly_amount,
            policy.start_date,
        )
    return policy
