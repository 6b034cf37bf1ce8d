"""
Duplicate detection by natural key (owner, policy number).

A match is updated in place (scalars replaced, children replaced) and
reported as an update; otherwise the aggregate is inserted.  Submitting
the same document twice therefore leaves one stored policy.
"""

from __future__ import annotations

from dataclasses import dataclass

from policy_intake.core.logging import get_logger
from policy_intake.pipeline.errors import PersistenceError
from policy_intake.pipeline.ports import PolicyStore
from policy_intake.processing.schemas import CanonicalPolicy

logger = get_logger(__name__)


@dataclass(frozen=True)
class UpsertOutcome:
    policy_id: str
    is_update: bool


class DuplicateDetector:
    """Insert-or-update against an injected PolicyStore."""

    def __init__(self, store: PolicyStore) -> None:
        self.store = store

    async def find_or_insert(self, owner_id: str, policy: CanonicalPolicy) -> UpsertOutcome:
        if not owner_id:
            raise PersistenceError("Refusing to store a policy without an owner")

        try:
            async with self.store.transaction():
                existing_id = await self.store.find_policy_by_natural_key(owner_id, policy.policy_number)
                policy_id = await self.store.upsert_policy(owner_id, policy)
                await self.store.replace_installments(policy_id, policy.installments)
                await self.store.replace_coverage_lines(policy_id, policy.coverages)
        except PersistenceError:
            raise
        except Exception as exc:
            raise PersistenceError(
                f"Could not store policy {policy.policy_number}: {exc}",
                details={"policy_number": policy.policy_number},
            ) from exc

        outcome = UpsertOutcome(policy_id=policy_id, is_update=existing_id is not None)
        logger.info(
            "Policy updated" if outcome.is_update else "Policy inserted",
            policy_id=policy_id,
            policy_number=policy.policy_number,
            installments=len(policy.installments),
            coverages=len(policy.coverages),
        )
        return outcome
