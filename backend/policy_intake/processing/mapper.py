"""
Canonical Policy Mapper — converts one extracted record into a CanonicalPolicy.

Each record shape (see format_detector) has its own pure conversion
function.  None of them invent data: a canonical field is either copied
(after coercion) from a source field or left empty.  The single
exception is the policy number, which is replaced by a flagged
placeholder when the document does not carry one.

Coercions that had to guess (money text with currency symbols,
unparseable dates, numbers embedded in text) are recorded as warnings
on the policy rather than failing the record.
"""

from __future__ import annotations

import secrets
from datetime import date, datetime, timezone
from decimal import Decimal
from pathlib import PurePath
from typing import Any

from policy_intake.core.config import settings
from policy_intake.core.constants import Confidence, DocumentKind
from policy_intake.core.logging import get_logger
from policy_intake.pipeline.errors import InvalidRecordError
from policy_intake.processing import coercion
from policy_intake.processing.coercion import pick
from policy_intake.processing.format_detector import (
    INSURED_NAME_KEYS,
    INSURER_KEYS,
    POLICY_NUMBER_KEYS,
    FlatRecord,
    StructuredRecord,
    UnrecognizedRecord,
    classify_record,
)
from policy_intake.processing.schemas import CanonicalPolicy, CoverageLine, Installment

logger = get_logger(__name__)

# ─── Field aliases (flat records and group members) ───
POLICY_NAME_KEYS = ("nome_apolice", "policy_name", "policyName")
POLICY_TYPE_KEYS = ("tipo", "tipo_seguro", "ramo", "type", "policy_type", "policyType")
CATEGORY_KEYS = ("categoria", "category")
PREMIUM_KEYS = ("premio", "premio_total", "premio_anual", "valor_premio", "premium", "annual_premium")
MONTHLY_KEYS = ("custo_mensal", "premio_mensal", "valor_parcela", "monthly_amount", "monthlyAmount", "monthly_premium")
INSTALLMENT_COUNT_KEYS = ("quantidade_parcelas", "num_parcelas", "parcelas", "installment_count", "installments_count")
DEDUCTIBLE_KEYS = ("franquia", "deductible")
PAYMENT_KEYS = ("forma_pagamento", "pagamento", "payment_method", "paymentMethod")
START_KEYS = ("inicio", "inicio_vigencia", "vigencia_inicio", "start_date", "startDate", "effective_date")
END_KEYS = ("fim", "fim_vigencia", "vigencia_fim", "end_date", "endDate", "expiration_date")
EXTRACTED_AT_KEYS = ("extraido_em", "extracted_at", "extractedAt")
DOCUMENT_KEYS = ("documento", "cpf_cnpj", "cpf", "cnpj", "document", "document_number")
DOCUMENT_KIND_KEYS = ("documento_tipo", "tipo_documento", "document_type", "document_kind")
EMAIL_KEYS = ("email", "email_segurado", "insured_email")
NAME_KEYS = ("nome", "name")
COMPANY_KEYS = ("empresa", "nome", "name")
BRAND_KEYS = ("marca", "brand")
VEHICLE_MODEL_KEYS = ("modelo_veiculo", "veiculo_modelo", "modelo", "vehicle_model", "model")
PLATE_KEYS = ("placa", "vehicle_plate", "plate")
VEHICLE_YEAR_KEYS = ("ano_modelo", "ano", "vehicle_year", "year")
BROKER_KEYS = ("corretora", "entidade", "broker")
STATE_KEYS = ("uf", "estado", "state")
COVERAGE_LIST_KEYS = ("coberturas", "coverages")
SCHEDULE_KEYS = ("parcelas_detalhadas", "installments", "parcelas")
DUE_DATE_LIST_KEYS = ("vencimentos_futuros", "vencimentos", "due_dates")
FINANCIAL_FIGURE_KEYS = PREMIUM_KEYS + MONTHLY_KEYS + ("valor_total", "valor", "total", "amount")

POLICY_TYPE_ALIASES: dict[str, str] = {
    "auto": "auto",
    "automóvel": "auto",
    "automovel": "auto",
    "veicular": "auto",
    "vida": "vida",
    "saúde": "saude",
    "saude": "saude",
    "residencial": "patrimonial",
    "patrimonial": "patrimonial",
    "empresarial": "empresarial",
}

PAID_MARKERS = {"paga", "pago", "paid", "quitada"}


# ═══════════════════════════════════════════════════════════
#  Field reader: collects coercion warnings
# ═══════════════════════════════════════════════════════════

class _FieldReader:
    """Reads aliased fields from a mapping, collecting coercion warnings."""

    def __init__(self) -> None:
        self.warnings: list[str] = []

    def note(self, warning: str | None) -> None:
        if warning:
            self.warnings.append(warning)

    def text(self, source: dict[str, Any], keys: tuple[str, ...]) -> str | None:
        return coercion.to_text(pick(source, keys))

    def money(self, source: dict[str, Any], keys: tuple[str, ...], name: str) -> Decimal | None:
        value, warning = coercion.to_money(pick(source, keys), name)
        self.note(warning)
        return value

    def date(self, source: dict[str, Any], keys: tuple[str, ...], name: str) -> date | None:
        value, warning = coercion.to_date(pick(source, keys), name)
        self.note(warning)
        return value

    def integer(self, source: dict[str, Any], keys: tuple[str, ...], name: str) -> int | None:
        raw = pick(source, keys)
        if isinstance(raw, list):
            return None
        value, warning = coercion.to_int(raw, name)
        self.note(warning)
        return value

    def items(self, source: dict[str, Any], keys: tuple[str, ...]) -> list[Any]:
        for key in keys:
            value = coercion.unwrap(source.get(key))
            if isinstance(value, list) and value:
                return value
        return []


# ═══════════════════════════════════════════════════════════
#  Shared helpers
# ═══════════════════════════════════════════════════════════

def placeholder_policy_number(now: datetime | None = None) -> str:
    """``PENDING-<yyyymmddHHMMSS>-<6 hex>``"""
    now = now or datetime.now(timezone.utc)
    return f"{settings.PLACEHOLDER_POLICY_PREFIX}-{now:%Y%m%d%H%M%S}-{secrets.token_hex(3).upper()}"


def normalize_policy_type(raw: str | None) -> str | None:
    if raw is None:
        return None
    key = raw.strip().lower()
    return POLICY_TYPE_ALIASES.get(key, key)


def _document_kind(explicit: str | None, digits: str | None) -> str | None:
    if explicit and explicit.strip().upper() in DocumentKind.__members__:
        return DocumentKind[explicit.strip().upper()].value
    if digits and len(digits) == 11:
        return DocumentKind.CPF.value
    if digits and len(digits) == 14:
        return DocumentKind.CNPJ.value
    return None


def _coverages(reader: _FieldReader, items: list[Any]) -> list[CoverageLine]:
    lines: list[CoverageLine] = []
    for item in items:
        item = coercion.unwrap(item)
        if isinstance(item, dict):
            description = reader.text(item, ("descricao", "description", "nome", "name", "cobertura"))
            if description is None:
                continue
            limit = reader.money(item, ("lmi", "limite", "limit", "limit_amount", "valor"), f"coverage '{description}'")
            lines.append(CoverageLine(description=description, limit_amount=limit))
        else:
            description = coercion.to_text(item)
            if description:
                lines.append(CoverageLine(description=description))
    return lines


def _schedule(
    reader: _FieldReader,
    items: list[Any],
    monthly_amount: Decimal | None,
) -> list[Installment]:
    """
    Build installments from an explicit source schedule.

    Entries are numbered by position.  Entries that are bare dates take
    the record's monthly amount.
    """
    installments: list[Installment] = []
    for position, item in enumerate(items, start=1):
        item = coercion.unwrap(item)
        if isinstance(item, dict):
            amount = reader.money(item, ("valor", "amount", "value_amount"), f"installment {position}")
            due = reader.date(item, ("data", "vencimento", "data_vencimento", "due_date", "date"), f"installment {position}")
            status = (reader.text(item, ("status", "situacao")) or "").lower()
            installments.append(Installment(
                sequence=len(installments) + 1,
                amount=amount if amount is not None else monthly_amount,
                due_date=due,
                is_paid=status in PAID_MARKERS,
            ))
        else:
            due, warning = coercion.to_date(item, f"installment {position}")
            reader.note(warning)
            if due is None:
                continue
            installments.append(Installment(sequence=len(installments) + 1, amount=monthly_amount, due_date=due))
    return installments


def _cross_check(policy: CanonicalPolicy) -> list[str]:
    """Consistency warnings between fields that were all present in the source."""
    warnings: list[str] = []
    if policy.start_date and policy.expiration_date and policy.start_date > policy.expiration_date:
        warnings.append("start_date is after expiration_date")

    if policy.premium and policy.monthly_amount and policy.installment_count:
        expected = policy.premium / policy.installment_count
        if expected > 0:
            deviation = abs(policy.monthly_amount - expected) / expected
            if deviation > Decimal(str(settings.MONTHLY_AMOUNT_TOLERANCE)):
                warnings.append(
                    f"monthly_amount {policy.monthly_amount} deviates from premium/installments ({expected:.2f})"
                )
    return warnings


def _require_party(insured_name: str | None, insurer: str | None) -> None:
    if insured_name is None and insurer is None:
        raise InvalidRecordError(
            "Record has neither insured name nor insurer name",
            reasons=["missing insured name", "missing insurer name"],
        )


# ═══════════════════════════════════════════════════════════
#  Per-shape converters
# ═══════════════════════════════════════════════════════════

def from_flat(record: FlatRecord, *, now: datetime) -> CanonicalPolicy:
    src = record.fields
    reader = _FieldReader()

    insured_name = reader.text(src, INSURED_NAME_KEYS)
    insurer = reader.text(src, INSURER_KEYS)
    _require_party(insured_name, insurer)

    monthly = reader.money(src, MONTHLY_KEYS, "monthly_amount")
    schedule_items = [i for i in reader.items(src, SCHEDULE_KEYS) if isinstance(coercion.unwrap(i), dict)]
    if not schedule_items:
        schedule_items = reader.items(src, DUE_DATE_LIST_KEYS)

    document = coercion.digits_only(pick(src, DOCUMENT_KEYS))
    policy_number = reader.text(src, POLICY_NUMBER_KEYS)

    return CanonicalPolicy(
        insured_name=insured_name,
        insurer=insurer,
        policy_number=policy_number or placeholder_policy_number(now),
        policy_number_is_placeholder=policy_number is None,
        policy_name=reader.text(src, POLICY_NAME_KEYS),
        policy_type=normalize_policy_type(reader.text(src, POLICY_TYPE_KEYS)),
        category=reader.text(src, CATEGORY_KEYS),
        premium=reader.money(src, PREMIUM_KEYS, "premium"),
        monthly_amount=monthly,
        installment_count=reader.integer(src, INSTALLMENT_COUNT_KEYS, "installment_count"),
        deductible=reader.money(src, DEDUCTIBLE_KEYS, "deductible"),
        payment_method=reader.text(src, PAYMENT_KEYS),
        start_date=reader.date(src, START_KEYS, "start_date"),
        expiration_date=reader.date(src, END_KEYS, "expiration_date"),
        document_number=document,
        document_kind=_document_kind(reader.text(src, DOCUMENT_KIND_KEYS), document),
        email=reader.text(src, EMAIL_KEYS),
        vehicle_brand=reader.text(src, BRAND_KEYS),
        vehicle_model=reader.text(src, VEHICLE_MODEL_KEYS),
        vehicle_plate=reader.text(src, PLATE_KEYS),
        vehicle_year=reader.integer(src, VEHICLE_YEAR_KEYS, "vehicle_year"),
        broker=reader.text(src, BROKER_KEYS),
        state=reader.text(src, STATE_KEYS),
        extracted_at=coercion.to_datetime(pick(src, EXTRACTED_AT_KEYS)) or now,
        installments=_schedule(reader, schedule_items, monthly),
        coverages=_coverages(reader, reader.items(src, COVERAGE_LIST_KEYS)),
        warnings=reader.warnings,
    )


def from_structured(record: StructuredRecord, *, now: datetime) -> CanonicalPolicy:
    reader = _FieldReader()
    general, insurer_group, financial = record.general, record.insurer, record.financial
    validity, insured, vehicle, extra = record.validity, record.insured, record.vehicle, record.extra

    insured_name = reader.text(insured, NAME_KEYS)
    insurer = reader.text(insurer_group, COMPANY_KEYS)
    _require_party(insured_name, insurer)

    monthly = reader.money(financial, MONTHLY_KEYS, "monthly_amount")
    schedule_items = reader.items(extra, SCHEDULE_KEYS) or reader.items(financial, SCHEDULE_KEYS)
    schedule_items = [i for i in schedule_items if isinstance(coercion.unwrap(i), dict)]

    coverages = _coverages(reader, reader.items(extra, COVERAGE_LIST_KEYS))
    if not coverages:
        single = reader.text(insurer_group, ("cobertura", "coverage"))
        if single:
            coverages = [CoverageLine(description=single)]

    document = coercion.digits_only(pick(insured, DOCUMENT_KEYS))
    policy_number = reader.text(general, POLICY_NUMBER_KEYS) or reader.text(extra, POLICY_NUMBER_KEYS)

    return CanonicalPolicy(
        insured_name=insured_name,
        insurer=insurer,
        policy_number=policy_number or placeholder_policy_number(now),
        policy_number_is_placeholder=policy_number is None,
        policy_name=reader.text(general, POLICY_NAME_KEYS),
        policy_type=normalize_policy_type(reader.text(general, POLICY_TYPE_KEYS)),
        category=reader.text(insurer_group, CATEGORY_KEYS),
        premium=reader.money(financial, PREMIUM_KEYS, "premium"),
        monthly_amount=monthly,
        installment_count=reader.integer(financial, INSTALLMENT_COUNT_KEYS, "installment_count"),
        deductible=reader.money(financial, DEDUCTIBLE_KEYS, "deductible"),
        payment_method=reader.text(financial, PAYMENT_KEYS),
        start_date=reader.date(validity, START_KEYS, "start_date"),
        expiration_date=reader.date(validity, END_KEYS, "expiration_date"),
        document_number=document,
        document_kind=_document_kind(reader.text(insured, DOCUMENT_KIND_KEYS), document),
        email=reader.text(insured, EMAIL_KEYS) or reader.text(extra, EMAIL_KEYS),
        vehicle_brand=reader.text(vehicle, BRAND_KEYS),
        vehicle_model=reader.text(vehicle, VEHICLE_MODEL_KEYS),
        vehicle_plate=reader.text(vehicle, PLATE_KEYS),
        vehicle_year=reader.integer(vehicle, VEHICLE_YEAR_KEYS, "vehicle_year"),
        broker=reader.text(insurer_group, BROKER_KEYS),
        state=reader.text(extra, STATE_KEYS),
        extracted_at=coercion.to_datetime(pick(validity, EXTRACTED_AT_KEYS)) or now,
        installments=_schedule(reader, schedule_items, monthly),
        coverages=coverages,
        warnings=reader.warnings,
    )


def _first_financial_figure(payload: Any, reader: _FieldReader) -> Decimal | None:
    """Depth-first search for the first parseable money field."""
    payload = coercion.unwrap(payload)
    if isinstance(payload, dict):
        amount = reader.money(payload, FINANCIAL_FIGURE_KEYS, "premium")
        if amount is not None:
            return amount
        for value in payload.values():
            amount = _first_financial_figure(value, reader)
            if amount is not None:
                return amount
    elif isinstance(payload, list):
        for value in payload:
            amount = _first_financial_figure(value, reader)
            if amount is not None:
                return amount
    return None


def from_unrecognized(
    record: UnrecognizedRecord,
    *,
    now: datetime,
    source_file: str | None,
) -> CanonicalPolicy:
    reader = _FieldReader()
    premium = _first_financial_figure(record.payload, reader)
    return CanonicalPolicy(
        policy_number=placeholder_policy_number(now),
        policy_number_is_placeholder=True,
        policy_name=PurePath(source_file).stem if source_file else None,
        premium=premium,
        extracted_at=now,
        confidence=Confidence.LOW,
        warnings=["unrecognized record shape; kept only source filename and financial figure", *reader.warnings],
    )


# ═══════════════════════════════════════════════════════════
#  Entry point
# ═══════════════════════════════════════════════════════════

def normalize_record(
    record: Any,
    *,
    source_file: str | None = None,
    source_file_hash: str | None = None,
    now: datetime | None = None,
) -> CanonicalPolicy:
    """
    Classify ``record`` and convert it to a CanonicalPolicy.

    Raises:
        InvalidRecordError: the record is not a mapping, is empty, or
            names neither the insured party nor the insurer.
    """
    now = now or datetime.now(timezone.utc)

    if not isinstance(record, dict):
        raise InvalidRecordError(
            f"Record is a {type(record).__name__}, expected an object",
            reasons=["record is not an object"],
        )
    if not record:
        raise InvalidRecordError("Record is empty", reasons=["record is empty"])

    classified = classify_record(record)
    if isinstance(classified, FlatRecord):
        policy = from_flat(classified, now=now)
    elif isinstance(classified, StructuredRecord):
        policy = from_structured(classified, now=now)
    else:
        policy = from_unrecognized(classified, now=now, source_file=source_file)

    policy.source_file = source_file
    policy.source_file_hash = source_file_hash
    policy.warnings.extend(_cross_check(policy))

    logger.debug(
        "Record normalized",
        shape=classified.shape,
        policy_number=policy.policy_number,
        placeholder=policy.policy_number_is_placeholder,
        warnings=len(policy.warnings),
    )
    return policy
