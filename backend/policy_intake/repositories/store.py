"""
SQLAlchemy adapters for the pipeline ports.

    SqlAlchemyPolicyStore        — PolicyStore over policies/installments/coverage_lines
    SqlAlchemyIdentityDirectory  — IdentityDirectory over users (+ policies for documents)

Both take an ``async_sessionmaker``; each store transaction uses its own
session and commits once, so one policy's writes land together or not
at all.
"""

from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Sequence

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from policy_intake.processing.schemas import CanonicalPolicy, CoverageLine, Installment
from policy_intake.repositories import policies as policy_repository
from policy_intake.repositories import users as user_repository

# CanonicalPolicy fields stored as policy columns
POLICY_COLUMNS = (
    "policy_number",
    "policy_number_is_placeholder",
    "policy_name",
    "policy_type",
    "category",
    "insured_name",
    "insurer",
    "broker",
    "document_number",
    "document_kind",
    "email",
    "state",
    "premium",
    "monthly_amount",
    "installment_count",
    "deductible",
    "payment_method",
    "start_date",
    "expiration_date",
    "vehicle_brand",
    "vehicle_model",
    "vehicle_plate",
    "vehicle_year",
    "source_file",
    "source_file_hash",
    "extracted_at",
)


def policy_columns(policy: CanonicalPolicy) -> dict[str, Any]:
    """CanonicalPolicy → column values for the policies table."""
    values = {name: getattr(policy, name) for name in POLICY_COLUMNS}
    values["status"] = policy.status.value if policy.status else "current"
    values["confidence"] = policy.confidence.value
    values["warnings"] = list(policy.warnings)
    return values


class SqlAlchemyPolicyStore:
    """
    PolicyStore backed by the async SQLAlchemy session factory.

    Holds the open transaction between calls, so use one instance per batch.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory
        self._session: AsyncSession | None = None

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        async with self._session_factory() as session:
            async with session.begin():
                self._session = session
                try:
                    yield
                finally:
                    self._session = None

    @asynccontextmanager
    async def _session_scope(self) -> AsyncIterator[AsyncSession]:
        """Current transaction's session, or a one-off transaction."""
        if self._session is not None:
            yield self._session
            return
        async with self._session_factory() as session:
            async with session.begin():
                yield session

    async def find_policy_by_natural_key(self, owner_id: str, policy_number: str) -> str | None:
        async with self._session_scope() as db:
            row = await policy_repository.get_policy_by_natural_key(db, owner_id, policy_number)
            return str(row.id) if row else None

    async def upsert_policy(self, owner_id: str, policy: CanonicalPolicy) -> str:
        async with self._session_scope() as db:
            columns = policy_columns(policy)
            row = await policy_repository.get_policy_by_natural_key(db, owner_id, policy.policy_number)
            if row is None:
                row = await policy_repository.create_policy(db, owner_id=owner_id, **columns)
            else:
                row = await policy_repository.update_policy(db, row, **columns)
            return str(row.id)

    async def replace_installments(self, policy_id: str, installments: Sequence[Installment]) -> None:
        async with self._session_scope() as db:
            await policy_repository.replace_installments(
                db,
                uuid.UUID(policy_id),
                (item.model_dump() for item in installments),
            )

    async def replace_coverage_lines(self, policy_id: str, coverages: Sequence[CoverageLine]) -> None:
        async with self._session_scope() as db:
            await policy_repository.replace_coverage_lines(
                db,
                uuid.UUID(policy_id),
                (item.model_dump() for item in coverages),
            )


class SqlAlchemyIdentityDirectory:
    """IdentityDirectory backed by the users and policies tables."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def find_identity_by_email(self, email: str) -> str | None:
        async with self._session_factory() as db:
            user = await user_repository.get_active_user_by_email(db, email)
            return str(user.id) if user else None

    async def find_identity_by_document(self, document_number: str) -> str | None:
        async with self._session_factory() as db:
            return await policy_repository.find_owner_by_document(db, document_number)
