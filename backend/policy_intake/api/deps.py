"""Shared dependencies for API routes."""

from __future__ import annotations

from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession

from policy_intake.db.session import async_session, get_db as _get_db
from policy_intake.pipeline.engine import BatchOrchestrator
from policy_intake.pipeline.flow_resolver import build_orchestrator
from policy_intake.pipeline.status_board import FileStatusBoard, status_board


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async DB session."""
    async for session in _get_db():
        yield session


def get_status_board() -> FileStatusBoard:
    """Process-wide file status board."""
    return status_board


def get_batch_orchestrator() -> BatchOrchestrator:
    """A fresh orchestrator (and store) per request."""
    return build_orchestrator(async_session, board=status_board)
