"""Tests for installment schedule generation."""

from datetime import date
from decimal import Decimal

from policy_intake.processing.installments import ensure_installments, generate_installments
from policy_intake.processing.schemas import CanonicalPolicy, Installment


def _policy(**fields) -> CanonicalPolicy:
    return CanonicalPolicy(policy_number="APL-1", insurer="Porto Seguro", **fields)


class TestGenerateInstallments:
    def test_twelve_monthly_installments(self):
        rows = generate_installments(12, Decimal("100.00"), date(2025, 1, 10))

        assert len(rows) == 12
        assert [r.sequence for r in rows] == list(range(1, 13))
        assert all(r.amount == Decimal("100.00") for r in rows)
        assert all(r.is_paid is False for r in rows)
        assert [r.due_date for r in rows] == [date(2025, month, 10) for month in range(1, 13)]

    def test_month_end_is_clamped_from_first_due_date(self):
        rows = generate_installments(3, Decimal("50.00"), date(2025, 1, 31))
        assert [r.due_date for r in rows] == [date(2025, 1, 31), date(2025, 2, 28), date(2025, 3, 31)]

    def test_crosses_year(self):
        rows = generate_installments(2, Decimal("10.00"), date(2025, 12, 5))
        assert rows[1].due_date == date(2026, 1, 5)


class TestEnsureInstallments:
    def test_generates_when_everything_known(self):
        policy = ensure_installments(_policy(
            installment_count=4,
            monthly_amount=Decimal("25.00"),
            start_date=date(2025, 3, 1),
        ))
        assert len(policy.installments) == 4
        assert policy.installments[-1].due_date == date(2025, 6, 1)

    def test_no_start_date_no_schedule(self):
        policy = ensure_installments(_policy(installment_count=4, monthly_amount=Decimal("25.00")))
        assert policy.installments == []

    def test_no_monthly_amount_no_schedule(self):
        policy = ensure_installments(_policy(installment_count=4, start_date=date(2025, 3, 1)))
        assert policy.installments == []

    def test_zero_count_no_schedule(self):
        policy = ensure_installments(_policy(
            installment_count=0,
            monthly_amount=Decimal("25.00"),
            start_date=date(2025, 3, 1),
        ))
        assert policy.installments == []

    def test_explicit_schedule_is_kept(self):
        explicit = [
            Installment(sequence=1, amount=Decimal("80.00"), due_date=date(2025, 2, 1), is_paid=True),
            Installment(sequence=2, amount=Decimal("80.00"), due_date=date(2025, 3, 1)),
        ]
        policy = ensure_installments(_policy(
            monthly_amount=Decimal("100.00"),
            start_date=date(2025, 1, 1),
            installments=explicit,
        ))
        assert policy.installments == explicit
        assert policy.installment_count == 2

    def test_count_mismatch_warns(self):
        policy = ensure_installments(_policy(
            installment_count=10,
            installments=[Installment(sequence=1, amount=Decimal("80.00"))],
        ))
        assert len(policy.installments) == 1
        assert policy.installment_count == 10
        assert any("installment_count" in w for w in policy.warnings)
