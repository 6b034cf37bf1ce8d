"""
Models package — re-exports Base and all models.

Import models here so `Base.metadata` picks up every table.

When adding a new model:
    1. Create `policy_intake/db/models/<table_name>.py`
    2. Import it here
"""

from policy_intake.db.models.base import Base
from policy_intake.db.models.coverage_line import CoverageLine
from policy_intake.db.models.installment import Installment
from policy_intake.db.models.policy import Policy
from policy_intake.db.models.user import User

__all__ = [
    "Base",
    "CoverageLine",
    "Installment",
    "Policy",
    "User",
]
