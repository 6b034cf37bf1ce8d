"""
ResolveIdentityStep — determines the owner of the record before any
data is normalized or stored.
"""

from __future__ import annotations

from policy_intake.pipeline.context import RecordContext, StepResult
from policy_intake.pipeline.step import PipelineStep
from policy_intake.validation.identity_resolver import IdentityResolver


class ResolveIdentityStep(PipelineStep):
    """Caller identity → record identity → email → document."""

    name = "resolve_identity"
    description = "Resolve the owner of the extracted record"

    def __init__(self, resolver: IdentityResolver) -> None:
        self.resolver = resolver

    async def execute(self, ctx: RecordContext) -> StepResult:
        started_at = self._now()
        ctx.owner_id = await self.resolver.resolve(
            ctx.raw,
            caller_identity=ctx.caller_identity,
            caller_email_hint=ctx.caller_email,
        )
        return self._success(started_at, metadata={"owner_id": ctx.owner_id})
