"""
DeriveStatusStep — lifecycle status and installment schedule.

Both only depend on fields already on the canonical policy, so they
run together right before persistence.
"""

from __future__ import annotations

from policy_intake.pipeline.context import RecordContext, StepResult
from policy_intake.pipeline.step import PipelineStep
from policy_intake.processing.installments import ensure_installments
from policy_intake.processing.status import derive_status


class DeriveStatusStep(PipelineStep):
    """Set ``policy.status`` and fill a missing installment schedule."""

    name = "derive_status"
    description = "Derive lifecycle status and installment schedule"

    async def execute(self, ctx: RecordContext) -> StepResult:
        started_at = self._now()
        policy = ctx.policy

        policy.status = derive_status(
            policy.expiration_date,
            policy.start_date,
            today=ctx.now.date(),
        )
        ensure_installments(policy)

        return self._success(started_at, metadata={
            "status": policy.status.value,
            "installments": len(policy.installments),
        })
