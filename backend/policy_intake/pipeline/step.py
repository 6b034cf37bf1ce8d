"""
PipelineStep — abstract base class for record steps.

Every step that a single extracted record goes through inherits from
this class.  The engine calls execute() and records timing, logging
and errors automatically.  Steps only implement the business logic and
raise a RecordError subclass when the record cannot continue.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any

from policy_intake.core.constants import StepStatus
from policy_intake.pipeline.context import RecordContext, StepResult


class PipelineStep(ABC):
    """
    Base class for every record step.

    Subclasses MUST implement:
        - name (str)          — unique identifier, e.g. "resolve_identity"
        - description (str)   — human-readable label for logs
        - execute(ctx)        — the actual business logic

    Subclasses MAY set:
        - retryable / max_retries — retried on the errors listed in
          ``retry_on`` with exponential backoff
    """

    name: str = "unnamed_step"
    description: str = "No description"
    retryable: bool = False
    max_retries: int = 1
    retry_on: tuple[type[Exception], ...] = ()

    @abstractmethod
    async def execute(self, ctx: RecordContext) -> StepResult:
        """
        Run the step's logic.  Must return a StepResult.

        Read from and write to `ctx` to pass data between steps.
        Raise a RecordError subclass on failure.
        """
        ...

    # ─── Helpers available to all steps ────────────────

    def _success(
        self,
        started_at: datetime,
        metadata: dict[str, Any] | None = None,
    ) -> StepResult:
        """Build a successful StepResult with timing."""
        now = datetime.now(timezone.utc)
        duration_ms = int((now - started_at).total_seconds() * 1000)
        return StepResult(
            step_name=self.name,
            status=StepStatus.COMPLETED,
            started_at=started_at,
            completed_at=now,
            duration_ms=duration_ms,
            metadata=metadata or {},
        )

    def _now(self) -> datetime:
        """UTC-aware now."""
        return datetime.now(timezone.utc)
