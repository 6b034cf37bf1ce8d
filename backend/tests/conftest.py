"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import copy
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Sequence

import pytest

from policy_intake.pipeline.context import UploadedDocument
from policy_intake.pipeline.engine import BatchOrchestrator
from policy_intake.pipeline.flow_resolver import build_record_steps
from policy_intake.pipeline.status_board import FileStatusBoard
from policy_intake.processing.schemas import CanonicalPolicy, CoverageLine, Installment

FIXED_NOW = datetime(2025, 1, 15, 12, 0, 0, tzinfo=timezone.utc)
PDF_BYTES = b"%PDF-1.4\n1 0 obj <<>> endobj\ntrailer <<>>\n%%EOF"


# ═══════════════════════════════════════════════════════════
#  In-memory collaborators
# ═══════════════════════════════════════════════════════════

class InMemoryPolicyStore:
    """PolicyStore kept in dicts; a failed transaction restores the previous state."""

    def __init__(self) -> None:
        self.policies: dict[tuple[str, str], dict[str, Any]] = {}
        self.installments: dict[str, list[Installment]] = {}
        self.coverages: dict[str, list[CoverageLine]] = {}
        self.fail_upserts = 0
        self.transactions = 0

    @asynccontextmanager
    async def transaction(self):
        saved = copy.deepcopy((self.policies, self.installments, self.coverages))
        self.transactions += 1
        try:
            yield
        except Exception:
            self.policies, self.installments, self.coverages = saved
            raise

    async def find_policy_by_natural_key(self, owner_id: str, policy_number: str) -> str | None:
        row = self.policies.get((owner_id, policy_number))
        return row["id"] if row else None

    async def upsert_policy(self, owner_id: str, policy: CanonicalPolicy) -> str:
        if self.fail_upserts > 0:
            self.fail_upserts -= 1
            raise RuntimeError("connection reset by peer")
        key = (owner_id, policy.policy_number)
        existing = self.policies.get(key)
        policy_id = existing["id"] if existing else str(uuid.uuid4())
        self.policies[key] = {"id": policy_id, "policy": policy.model_copy(deep=True)}
        return policy_id

    async def replace_installments(self, policy_id: str, installments: Sequence[Installment]) -> None:
        self.installments[policy_id] = list(installments)

    async def replace_coverage_lines(self, policy_id: str, coverages: Sequence[CoverageLine]) -> None:
        self.coverages[policy_id] = list(coverages)


class FakeDirectory:
    """IdentityDirectory over two dicts."""

    def __init__(self, emails: dict[str, str] | None = None, documents: dict[str, str] | None = None) -> None:
        self.emails = emails or {}
        self.documents = documents or {}

    async def find_identity_by_email(self, email: str) -> str | None:
        return self.emails.get(email)

    async def find_identity_by_document(self, document_number: str) -> str | None:
        return self.documents.get(document_number)


class FakeExtractionClient:
    """Returns canned records, or raises ``error``."""

    def __init__(self, records: list[Any] | None = None, error: Exception | None = None) -> None:
        self.records = records or []
        self.error = error
        self.calls: list[dict[str, Any]] = []

    async def extract(self, documents, owner_hint=None):
        self.calls.append({"filenames": [d.filename for d in documents], "owner_hint": owner_hint})
        if self.error is not None:
            raise self.error
        return copy.deepcopy(self.records)


# ═══════════════════════════════════════════════════════════
#  Record / document builders
# ═══════════════════════════════════════════════════════════

def flat_record(**overrides: Any) -> dict[str, Any]:
    """A complete flat-shape record as the extraction service returns it."""
    record = {
        "segurado": "Maria Silva",
        "seguradora": "Porto Seguro",
        "numero_apolice": "APL-001",
        "tipo": "Auto",
        "premio": "R$ 1.200,00",
        "custo_mensal": "100,00",
        "parcelas": 12,
        "inicio": "2025-01-10",
        "fim": "2026-01-10",
        "email": "maria@example.com",
        "documento": "123.456.789-09",
    }
    record.update(overrides)
    return record


def make_documents(*names: str) -> list[UploadedDocument]:
    return [UploadedDocument(filename=name, content=PDF_BYTES + name.encode()) for name in names]


# ═══════════════════════════════════════════════════════════
#  Fixtures
# ═══════════════════════════════════════════════════════════

@pytest.fixture
def store() -> InMemoryPolicyStore:
    return InMemoryPolicyStore()


@pytest.fixture
def directory() -> FakeDirectory:
    return FakeDirectory(
        emails={"maria@example.com": "user-maria"},
        documents={"98765432100": "user-by-document"},
    )


@pytest.fixture
def board() -> FileStatusBoard:
    return FileStatusBoard()


@pytest.fixture
def make_orchestrator(store, directory, board):
    """Build an orchestrator over the in-memory collaborators."""

    def _make(extraction_client, *, persist_retries: int = 2) -> BatchOrchestrator:
        return BatchOrchestrator(
            extraction_client=extraction_client,
            steps=build_record_steps(directory, store, persist_retries=persist_retries),
            board=board,
            clock=lambda: FIXED_NOW,
            retry_backoff_seconds=0,
            clear_delay_success=0,
            clear_delay_failure=0,
        )

    return _make
