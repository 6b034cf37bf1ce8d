"""
Record Shape Detector — classifies an extracted record into one of the
known layouts so the mapper can dispatch to a dedicated converter.

Shapes (checked in this order):
    FLAT          — identity fields directly on the object
                    (``segurado``, ``seguradora``, ``numero_apolice`` …)
    STRUCTURED    — fields grouped under named sub-objects
                    (``informacoes_gerais``, ``vigencia`` …)
    UNRECOGNIZED  — anything else; mapped to a low-confidence record
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union

from policy_intake.core.constants import RecordShape
from policy_intake.processing.coercion import unwrap

# ─── Flat-shape aliases ───────────────────────────────
INSURED_NAME_KEYS = ("segurado", "nome_segurado", "insured_name", "insuredName", "insured")
INSURER_KEYS = ("seguradora", "insurer", "insurer_name", "insurerName", "companhia")
POLICY_NUMBER_KEYS = ("numero_apolice", "numeroApolice", "apolice", "policy_number", "policyNumber")

FLAT_PARTY_KEYS = INSURED_NAME_KEYS + INSURER_KEYS

# ─── Structured-shape groups ──────────────────────────
GENERAL_GROUP_KEYS = ("informacoes_gerais", "general_info", "generalInfo")
INSURER_GROUP_KEYS = ("seguradora", "insurer_info", "insurerInfo")
FINANCIAL_GROUP_KEYS = ("informacoes_financeiras", "financial_info", "financialInfo")
VALIDITY_GROUP_KEYS = ("vigencia", "validity")
INSURED_GROUP_KEYS = ("segurado", "insured")
VEHICLE_GROUP_KEYS = ("veiculo", "vehicle")

STRUCTURED_GROUP_KEYS = (
    GENERAL_GROUP_KEYS
    + INSURER_GROUP_KEYS
    + FINANCIAL_GROUP_KEYS
    + VALIDITY_GROUP_KEYS
    + INSURED_GROUP_KEYS
    + VEHICLE_GROUP_KEYS
)


@dataclass(frozen=True)
class FlatRecord:
    fields: dict[str, Any]
    shape: RecordShape = field(default=RecordShape.FLAT, init=False)


@dataclass(frozen=True)
class StructuredRecord:
    """Sub-groups are pulled out once here; missing groups are empty dicts."""

    general: dict[str, Any]
    insurer: dict[str, Any]
    financial: dict[str, Any]
    validity: dict[str, Any]
    insured: dict[str, Any]
    vehicle: dict[str, Any]
    extra: dict[str, Any]
    shape: RecordShape = field(default=RecordShape.STRUCTURED, init=False)


@dataclass(frozen=True)
class UnrecognizedRecord:
    payload: dict[str, Any]
    shape: RecordShape = field(default=RecordShape.UNRECOGNIZED, init=False)


ClassifiedRecord = Union[FlatRecord, StructuredRecord, UnrecognizedRecord]


def _is_scalar(value: Any) -> bool:
    value = unwrap(value)
    return value is not None and not isinstance(value, (dict, list))


def _group(record: dict[str, Any], keys: tuple[str, ...]) -> dict[str, Any]:
    for key in keys:
        value = unwrap(record.get(key))
        if isinstance(value, dict):
            return value
    return {}


def is_flat(record: dict[str, Any]) -> bool:
    """
    A top-level scalar party name makes the record flat.  A lone policy
    number only does when there are no structured groups to read from.
    """
    if any(_is_scalar(record.get(key)) for key in FLAT_PARTY_KEYS):
        return True
    return not is_structured(record) and any(_is_scalar(record.get(key)) for key in POLICY_NUMBER_KEYS)


def is_structured(record: dict[str, Any]) -> bool:
    return any(isinstance(unwrap(record.get(key)), dict) for key in STRUCTURED_GROUP_KEYS)


def classify_record(record: dict[str, Any]) -> ClassifiedRecord:
    """Return the tagged variant for ``record``."""
    if is_flat(record):
        return FlatRecord(fields=record)

    if is_structured(record):
        grouped = set(STRUCTURED_GROUP_KEYS)
        return StructuredRecord(
            general=_group(record, GENERAL_GROUP_KEYS),
            insurer=_group(record, INSURER_GROUP_KEYS),
            financial=_group(record, FINANCIAL_GROUP_KEYS),
            validity=_group(record, VALIDITY_GROUP_KEYS),
            insured=_group(record, INSURED_GROUP_KEYS),
            vehicle=_group(record, VEHICLE_GROUP_KEYS),
            extra={k: v for k, v in record.items() if k not in grouped},
        )

    return UnrecognizedRecord(payload=record)
