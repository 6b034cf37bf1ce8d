"""
Policy batch pipeline.

One extraction call per batch, then every extracted record runs through
the record steps (identity → canonical policy → status → persistence) with
per-step logging, retries and failure isolation.
"""

from policy_intake.pipeline.context import BatchResult, RecordContext, StepResult
from policy_intake.pipeline.engine import BatchOrchestrator
from policy_intake.pipeline.step import PipelineStep

__all__ = ["BatchOrchestrator", "BatchResult", "RecordContext", "PipelineStep", "StepResult"]
