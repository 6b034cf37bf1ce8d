"""
Identity Resolver — decides which account owns an extracted record.

Strategies, first success wins:
    1. caller identity (authenticated submitter)
    2. identity embedded in the record (background extraction runs
       without a caller session)
    3. email lookup in the directory (caller hint, then record email)
    4. document number lookup against already stored policies

When the caller identity and the record's embedded identity are both
present and differ, the caller wins and the conflict is logged.
"""

from __future__ import annotations

from typing import Any

from policy_intake.core.logging import get_logger
from policy_intake.pipeline.errors import UnresolvedIdentityError
from policy_intake.pipeline.ports import IdentityDirectory
from policy_intake.processing import coercion

logger = get_logger(__name__)

EMBEDDED_IDENTITY_KEYS = ("user_id", "userId", "owner_id", "ownerId")
RECORD_EMAIL_KEYS = ("email", "email_segurado", "insured_email")
RECORD_DOCUMENT_KEYS = ("documento", "cpf_cnpj", "cpf", "cnpj", "document", "document_number")
NESTED_PARTY_KEYS = ("segurado", "insured")


def clean_identity(value: Any) -> str | None:
    """Non-empty identity string, or None ("null"/"undefined" count as empty)."""
    text = coercion.to_text(value)
    return text or None


def normalize_email(value: Any) -> str | None:
    text = coercion.to_text(value)
    if not text or "@" not in text:
        return None
    return text.lower()


def _record_value(record: dict[str, Any], keys: tuple[str, ...]) -> Any:
    value = coercion.pick(record, keys)
    if value is not None:
        return value
    for group_key in NESTED_PARTY_KEYS:
        group = coercion.unwrap(record.get(group_key))
        if isinstance(group, dict):
            value = coercion.pick(group, keys)
            if value is not None:
                return value
    return None


class IdentityResolver:
    """Resolve record ownership using an injected directory."""

    def __init__(self, directory: IdentityDirectory) -> None:
        self.directory = directory

    async def resolve(
        self,
        record: Any,
        caller_identity: str | None = None,
        caller_email_hint: str | None = None,
    ) -> str:
        record = record if isinstance(record, dict) else {}
        caller = clean_identity(caller_identity)
        embedded = clean_identity(coercion.pick(record, EMBEDDED_IDENTITY_KEYS))

        # ── 1. Caller ─────────────────────────────────
        if caller:
            if embedded and embedded != caller:
                logger.warning(
                    "Record claims a different owner than the caller; using caller",
                    caller_identity=caller,
                    record_identity=embedded,
                )
            return caller

        # ── 2. Embedded in record ─────────────────────
        if embedded:
            logger.debug("Identity taken from record", identity=embedded)
            return embedded

        # ── 3. Email lookup ───────────────────────────
        tried_emails: list[str] = []
        for email in (normalize_email(caller_email_hint), normalize_email(_record_value(record, RECORD_EMAIL_KEYS))):
            if email is None or email in tried_emails:
                continue
            tried_emails.append(email)
            identity = clean_identity(await self.directory.find_identity_by_email(email))
            if identity:
                logger.info("Identity resolved by email", email=email)
                return identity

        # ── 4. Document lookup ────────────────────────
        document = coercion.digits_only(_record_value(record, RECORD_DOCUMENT_KEYS))
        if document:
            identity = clean_identity(await self.directory.find_identity_by_document(document))
            if identity:
                logger.info("Identity resolved by document number")
                return identity

        raise UnresolvedIdentityError(
            "Could not determine the policy owner: no caller identity, no identity in the "
            "record, and no directory match by email or document",
            details={"emails_tried": tried_emails, "document_tried": bool(document)},
        )
