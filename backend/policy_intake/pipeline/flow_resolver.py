"""
Record flow — the ordered step sequence every extracted record goes through,
and the wiring that builds a ready-to-run BatchOrchestrator.

    ResolveIdentityStep → NormalizeRecordStep → DeriveStatusStep → PersistPolicyStep

To add a step:
    1. Create it in pipeline/steps/
    2. Insert it in build_record_steps() below
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from policy_intake.core.config import settings
from policy_intake.pipeline.engine import BatchOrchestrator
from policy_intake.pipeline.ports import IdentityDirectory, PolicyStore
from policy_intake.pipeline.status_board import FileStatusBoard
from policy_intake.pipeline.step import PipelineStep
from policy_intake.pipeline.steps.derive_status import DeriveStatusStep
from policy_intake.pipeline.steps.normalize_record import NormalizeRecordStep
from policy_intake.pipeline.steps.persist_policy import PersistPolicyStep
from policy_intake.pipeline.steps.resolve_identity import ResolveIdentityStep
from policy_intake.processing.extraction_client import ExtractionClient, HttpExtractionClient
from policy_intake.repositories.store import SqlAlchemyIdentityDirectory, SqlAlchemyPolicyStore
from policy_intake.validation.duplicate_detector import DuplicateDetector
from policy_intake.validation.identity_resolver import IdentityResolver


def build_record_steps(
    directory: IdentityDirectory,
    store: PolicyStore,
    *,
    persist_retries: int | None = None,
) -> list[PipelineStep]:
    return [
        ResolveIdentityStep(IdentityResolver(directory)),
        NormalizeRecordStep(),
        DeriveStatusStep(),
        PersistPolicyStep(
            DuplicateDetector(store),
            max_retries=settings.RECORD_STEP_MAX_RETRIES if persist_retries is None else persist_retries,
        ),
    ]


def build_orchestrator(
    session_factory: async_sessionmaker[AsyncSession],
    *,
    board: FileStatusBoard | None = None,
    extraction_client: ExtractionClient | None = None,
) -> BatchOrchestrator:
    """Production wiring: SQL store and directory, HTTP extraction client."""
    return BatchOrchestrator(
        extraction_client=extraction_client or HttpExtractionClient.from_settings(),
        steps=build_record_steps(
            SqlAlchemyIdentityDirectory(session_factory),
            SqlAlchemyPolicyStore(session_factory),
        ),
        board=board,
    )
