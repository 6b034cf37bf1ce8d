"""
Policy repository — data access for the policy aggregate
(policies, installments, coverage_lines).

Repository rules:
- Pure data-access logic only
- Every function receives AsyncSession explicitly
- Functions flush, but never commit
"""

from __future__ import annotations

import uuid
from typing import Any, Iterable

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from policy_intake.db.models.coverage_line import CoverageLine
from policy_intake.db.models.installment import Installment
from policy_intake.db.models.policy import Policy


async def get_policy_by_id(db: AsyncSession, policy_id: uuid.UUID) -> Policy | None:
    """Fetch a policy with its children."""
    stmt = (
        select(Policy)
        .where(Policy.id == policy_id)
        .options(selectinload(Policy.installments), selectinload(Policy.coverage_lines))
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def get_policy_by_natural_key(
    db: AsyncSession,
    owner_id: str,
    policy_number: str,
) -> Policy | None:
    """Exact match on (owner_id, policy_number)."""
    stmt = select(Policy).where(
        Policy.owner_id == owner_id,
        Policy.policy_number == policy_number,
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def create_policy(db: AsyncSession, *, owner_id: str, **fields: Any) -> Policy:
    """Insert a policy row."""
    policy = Policy(owner_id=owner_id, **fields)
    db.add(policy)
    await db.flush()
    return policy


async def update_policy(db: AsyncSession, policy: Policy, **fields: Any) -> Policy:
    """Replace scalar columns of an existing policy."""
    for key, value in fields.items():
        setattr(policy, key, value)
    await db.flush()
    return policy


async def replace_installments(
    db: AsyncSession,
    policy_id: uuid.UUID,
    rows: Iterable[dict[str, Any]],
) -> int:
    """Delete every installment of the policy, then insert ``rows``."""
    await db.execute(delete(Installment).where(Installment.policy_id == policy_id))
    count = 0
    for row in rows:
        db.add(Installment(policy_id=policy_id, **row))
        count += 1
    await db.flush()
    return count


async def replace_coverage_lines(
    db: AsyncSession,
    policy_id: uuid.UUID,
    rows: Iterable[dict[str, Any]],
) -> int:
    """Delete every coverage line of the policy, then insert ``rows``."""
    await db.execute(delete(CoverageLine).where(CoverageLine.policy_id == policy_id))
    count = 0
    for row in rows:
        db.add(CoverageLine(policy_id=policy_id, **row))
        count += 1
    await db.flush()
    return count


async def list_policies_for_owner(
    db: AsyncSession,
    owner_id: str,
    *,
    status: str | None = None,
    offset: int = 0,
    limit: int = 50,
) -> list[Policy]:
    """Policies of one owner with children, most recently updated first."""
    stmt = (
        select(Policy)
        .where(Policy.owner_id == owner_id)
        .options(selectinload(Policy.installments), selectinload(Policy.coverage_lines))
        .order_by(Policy.updated_at.desc())
    )
    if status is not None:
        stmt = stmt.where(Policy.status == status)
    stmt = stmt.offset(offset).limit(limit)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def find_owner_by_document(db: AsyncSession, document_number: str) -> str | None:
    """Owner of the most recently stored policy carrying this document number."""
    stmt = (
        select(Policy.owner_id)
        .where(Policy.document_number == document_number)
        .order_by(Policy.updated_at.desc())
        .limit(1)
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()
