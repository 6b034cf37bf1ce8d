"""
Collaborator interfaces the pipeline depends on.

The SQLAlchemy implementations live in ``policy_intake.repositories.store``;
tests substitute in-memory fakes.
"""

from __future__ import annotations

from contextlib import AbstractAsyncContextManager
from typing import Protocol, Sequence

from policy_intake.processing.schemas import CanonicalPolicy, CoverageLine, Installment


class IdentityDirectory(Protocol):
    """Looks up account identities outside the extracted record."""

    async def find_identity_by_email(self, email: str) -> str | None:
        ...

    async def find_identity_by_document(self, document_number: str) -> str | None:
        ...


class PolicyStore(Protocol):
    """
    Write contract for the policy aggregate.

    ``transaction()`` groups the writes of ONE policy: either all of
    them are applied or none.
    """

    def transaction(self) -> AbstractAsyncContextManager[None]:
        ...

    async def find_policy_by_natural_key(self, owner_id: str, policy_number: str) -> str | None:
        ...

    async def upsert_policy(self, owner_id: str, policy: CanonicalPolicy) -> str:
        ...

    async def replace_installments(self, policy_id: str, installments: Sequence[Installment]) -> None:
        ...

    async def replace_coverage_lines(self, policy_id: str, coverages: Sequence[CoverageLine]) -> None:
        ...
