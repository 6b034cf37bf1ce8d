"""
PersistPolicyStep — inserts or updates the policy aggregate via the
DuplicateDetector.  Retried on PersistenceError; each attempt is a
separate store transaction, so a retry never sees a half-written
aggregate.
"""

from __future__ import annotations

from policy_intake.pipeline.context import RecordContext, StepResult
from policy_intake.pipeline.errors import PersistenceError
from policy_intake.pipeline.step import PipelineStep
from policy_intake.validation.duplicate_detector import DuplicateDetector


class PersistPolicyStep(PipelineStep):
    """Natural-key upsert of the policy and its children."""

    name = "persist_policy"
    description = "Store the policy, replacing any duplicate"
    retryable = True
    retry_on = (PersistenceError,)

    def __init__(self, detector: DuplicateDetector, max_retries: int = 2) -> None:
        self.detector = detector
        self.max_retries = max_retries

    async def execute(self, ctx: RecordContext) -> StepResult:
        started_at = self._now()

        outcome = await self.detector.find_or_insert(ctx.owner_id, ctx.policy)
        ctx.policy_id = outcome.policy_id
        ctx.is_update = outcome.is_update

        return self._success(started_at, metadata={
            "policy_id": outcome.policy_id,
            "is_update": outcome.is_update,
        })
