"""
NormalizeRecordStep — converts the raw record into a CanonicalPolicy.

InvalidRecordError from the mapper propagates to the engine, which
turns it into a record failure.
"""

from __future__ import annotations

from policy_intake.core.logging import get_logger
from policy_intake.pipeline.context import RecordContext, StepResult
from policy_intake.pipeline.step import PipelineStep
from policy_intake.processing.mapper import normalize_record

logger = get_logger(__name__)


class NormalizeRecordStep(PipelineStep):
    """Classify the record shape and map it to the canonical schema."""

    name = "normalize_record"
    description = "Validate and normalize the extracted record"

    async def execute(self, ctx: RecordContext) -> StepResult:
        started_at = self._now()

        policy = normalize_record(
            ctx.raw,
            source_file=ctx.source_file,
            source_file_hash=ctx.source_file_hash,
            now=ctx.now,
        )
        policy.owner_id = ctx.owner_id
        ctx.policy = policy

        if policy.warnings:
            logger.warning(
                "Record normalized with warnings",
                batch_id=ctx.batch_id,
                record_index=ctx.index,
                warnings=policy.warnings,
            )

        return self._success(started_at, metadata={
            "policy_number": policy.policy_number,
            "placeholder_number": policy.policy_number_is_placeholder,
            "confidence": policy.confidence.value,
            "warnings": len(policy.warnings),
        })
