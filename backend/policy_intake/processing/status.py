"""
Lifecycle status derivation from a policy's validity dates.

Year-boundary checks run before the day-offset checks so a policy that
missed renewal in a previous cycle (superseded) is told apart from one
that just lapsed (expired).
"""

from __future__ import annotations

from datetime import date

from policy_intake.core.config import settings
from policy_intake.core.constants import PolicyStatus


def derive_status(
    expiration_date: date | None,
    start_date: date | None = None,
    today: date | None = None,
) -> PolicyStatus:
    """
    Compute the lifecycle status.

    ``d`` is ``expiration_date - today`` in whole days:

        start year < this year and d < 0   → superseded
        expiration year < this year        → superseded
        d < -SUPERSEDED_AFTER_DAYS         → superseded
        d < 0                              → expired
        d <= EXPIRING_WINDOW_DAYS          → expiring
        otherwise                          → current

    A missing expiration date yields ``current``.
    """
    if expiration_date is None:
        return PolicyStatus.CURRENT

    today = today or date.today()
    days_left = (expiration_date - today).days

    if start_date is not None and start_date.year < today.year and days_left < 0:
        return PolicyStatus.SUPERSEDED
    if expiration_date.year < today.year:
        return PolicyStatus.SUPERSEDED
    if days_left < -settings.STATUS_SUPERSEDED_AFTER_DAYS:
        return PolicyStatus.SUPERSEDED
    if days_left < 0:
        return PolicyStatus.EXPIRED
    if days_left <= settings.STATUS_EXPIRING_WINDOW_DAYS:
        return PolicyStatus.EXPIRING
    return PolicyStatus.CURRENT
