"""Tests for record shape detection and canonical mapping."""

import re
from datetime import date
from decimal import Decimal

import pytest

from conftest import FIXED_NOW, flat_record
from policy_intake.core.constants import Confidence, RecordShape
from policy_intake.pipeline.errors import InvalidRecordError
from policy_intake.processing.format_detector import classify_record
from policy_intake.processing.mapper import (
    normalize_policy_type,
    normalize_record,
    placeholder_policy_number,
)

PLACEHOLDER_PATTERN = re.compile(r"^PENDING-\d{14}-[0-9A-F]{6}$")


def structured_record() -> dict:
    return {
        "informacoes_gerais": {"numero_apolice": "STR-9", "nome_apolice": "Auto Premium", "tipo": "Automóvel"},
        "seguradora": {"empresa": "Allianz", "categoria": "Auto", "cobertura": "Compreensiva", "corretora": "Corretora X"},
        "informacoes_financeiras": {
            "premio_anual": "2.400,00",
            "premio_mensal": "200,00",
            "quantidade_parcelas": "12",
            "franquia": "3.500,00",
            "forma_pagamento": "Cartão",
        },
        "vigencia": {"inicio": "01/03/2025", "fim": "01/03/2026"},
        "segurado": {"nome": "João Souza", "cpf": "123.456.789-09", "email": "joao@example.com"},
        "veiculo": {"marca": "Toyota", "modelo": "Corolla", "placa": "ABC1D23", "ano_modelo": "2023"},
        "uf": "SP",
    }


class TestClassifyRecord:
    def test_flat(self):
        assert classify_record(flat_record()).shape == RecordShape.FLAT

    def test_wrapped_identity_is_flat(self):
        record = {"segurado": {"value": "Ana"}, "premio": "100"}
        assert classify_record(record).shape == RecordShape.FLAT

    def test_structured(self):
        classified = classify_record(structured_record())
        assert classified.shape == RecordShape.STRUCTURED
        assert classified.vehicle["placa"] == "ABC1D23"
        assert classified.extra == {"uf": "SP"}

    def test_unrecognized(self):
        assert classify_record({"foo": {"bar": 1}}).shape == RecordShape.UNRECOGNIZED

    def test_top_level_number_with_groups_is_structured(self):
        record = {"numero_apolice": "123", "segurado": {"nome": "Ana"}, "seguradora": {"empresa": "Porto"}}
        assert classify_record(record).shape == RecordShape.STRUCTURED

    def test_lone_number_is_flat(self):
        assert classify_record({"numero_apolice": "123", "premio": "10"}).shape == RecordShape.FLAT


class TestFlatMapping:
    def test_maps_every_field(self):
        policy = normalize_record(flat_record(), source_file="a.pdf", source_file_hash="abc", now=FIXED_NOW)

        assert policy.insured_name == "Maria Silva"
        assert policy.insurer == "Porto Seguro"
        assert policy.policy_number == "APL-001"
        assert policy.policy_number_is_placeholder is False
        assert policy.policy_type == "auto"
        assert policy.premium == Decimal("1200.00")
        assert policy.monthly_amount == Decimal("100.00")
        assert policy.installment_count == 12
        assert policy.start_date == date(2025, 1, 10)
        assert policy.expiration_date == date(2026, 1, 10)
        assert policy.document_number == "12345678909"
        assert policy.document_kind == "CPF"
        assert policy.email == "maria@example.com"
        assert policy.source_file == "a.pdf"
        assert policy.source_file_hash == "abc"
        assert policy.extracted_at == FIXED_NOW
        assert policy.confidence == Confidence.HIGH

    def test_currency_symbol_is_a_warning_not_a_failure(self):
        policy = normalize_record(flat_record(), now=FIXED_NOW)
        assert any(w.startswith("premium") for w in policy.warnings)

    def test_no_hallucination(self):
        record = {"segurado": "Ana Lima", "seguradora": "Tokio Marine", "numero_apolice": "X-1"}
        policy = normalize_record(record, now=FIXED_NOW)

        for field_name in (
            "policy_name", "policy_type", "category", "premium", "monthly_amount",
            "installment_count", "deductible", "payment_method", "start_date",
            "expiration_date", "document_number", "document_kind", "email",
            "vehicle_brand", "vehicle_model", "vehicle_plate", "vehicle_year",
            "broker", "state",
        ):
            assert getattr(policy, field_name) is None, field_name
        assert policy.installments == []
        assert policy.coverages == []

    def test_partial_expiration_is_not_completed(self):
        policy = normalize_record({"segurado": "Ana", "seguradora": "Porto", "fim": "10/2025"}, now=FIXED_NOW)
        assert policy.expiration_date is None
        assert policy.status is None
        assert any(w.startswith("expiration_date") for w in policy.warnings)

    def test_infinite_premium_is_a_warning(self):
        policy = normalize_record(flat_record(premio=float("inf")), now=FIXED_NOW)
        assert policy.premium is None
        assert any(w.startswith("premium") for w in policy.warnings)

    def test_wrapped_and_undefined_values(self):
        record = {
            "segurado": {"value": "Ana Lima"},
            "seguradora": {"_type": "undefined"},
            "numero_apolice": '"X-2"',
            "premio": "undefined",
        }
        policy = normalize_record(record, now=FIXED_NOW)
        assert policy.insured_name == "Ana Lima"
        assert policy.insurer is None
        assert policy.policy_number == "X-2"
        assert policy.premium is None

    def test_missing_number_gets_flagged_placeholder(self):
        record = flat_record()
        del record["numero_apolice"]
        policy = normalize_record(record, now=FIXED_NOW)

        assert policy.policy_number_is_placeholder is True
        assert PLACEHOLDER_PATTERN.match(policy.policy_number)
        assert policy.policy_number.startswith("PENDING-20250115120000-")

    def test_explicit_schedule(self):
        record = flat_record(parcelas_detalhadas=[
            {"valor": "150,00", "vencimento": "10/02/2025", "status": "Paga"},
            {"valor": "150,00", "vencimento": "10/03/2025"},
            {"vencimento": "10/04/2025"},
        ])
        policy = normalize_record(record, now=FIXED_NOW)

        assert [i.sequence for i in policy.installments] == [1, 2, 3]
        assert policy.installments[0].is_paid is True
        assert policy.installments[1].is_paid is False
        assert policy.installments[0].due_date == date(2025, 2, 10)
        assert policy.installments[2].amount == Decimal("100.00")

    def test_due_date_list(self):
        record = flat_record(vencimentos_futuros=["10/02/2025", "undefined", "10/03/2025"])
        policy = normalize_record(record, now=FIXED_NOW)
        assert [(i.sequence, i.due_date) for i in policy.installments] == [
            (1, date(2025, 2, 10)),
            (2, date(2025, 3, 10)),
        ]

    def test_coverages(self):
        record = flat_record(coberturas=[
            {"descricao": "Colisão", "lmi": "50.000,00"},
            "Roubo",
            {"lmi": "10,00"},
        ])
        policy = normalize_record(record, now=FIXED_NOW)
        assert [(c.description, c.limit_amount) for c in policy.coverages] == [
            ("Colisão", Decimal("50000.00")),
            ("Roubo", None),
        ]

    def test_cnpj_document(self):
        policy = normalize_record(flat_record(documento="12.345.678/0001-90"), now=FIXED_NOW)
        assert policy.document_kind == "CNPJ"


class TestStructuredMapping:
    def test_maps_groups(self):
        policy = normalize_record(structured_record(), source_file="b.pdf", now=FIXED_NOW)

        assert policy.policy_number == "STR-9"
        assert policy.policy_name == "Auto Premium"
        assert policy.policy_type == "auto"
        assert policy.insurer == "Allianz"
        assert policy.category == "Auto"
        assert policy.broker == "Corretora X"
        assert policy.insured_name == "João Souza"
        assert policy.document_kind == "CPF"
        assert policy.email == "joao@example.com"
        assert policy.premium == Decimal("2400.00")
        assert policy.monthly_amount == Decimal("200.00")
        assert policy.installment_count == 12
        assert policy.deductible == Decimal("3500.00")
        assert policy.payment_method == "Cartão"
        assert policy.start_date == date(2025, 3, 1)
        assert policy.expiration_date == date(2026, 3, 1)
        assert policy.vehicle_brand == "Toyota"
        assert policy.vehicle_model == "Corolla"
        assert policy.vehicle_plate == "ABC1D23"
        assert policy.vehicle_year == 2023
        assert policy.state == "SP"
        assert [c.description for c in policy.coverages] == ["Compreensiva"]
        assert policy.warnings == []

    def test_top_level_policy_number(self):
        record = {
            "numero_apolice": "123",
            "segurado": {"nome": "Ana"},
            "seguradora": {"empresa": "Porto"},
            "vigencia": {"inicio": "01/03/2025", "fim": "01/03/2026"},
        }
        policy = normalize_record(record, now=FIXED_NOW)

        assert policy.insured_name == "Ana"
        assert policy.insurer == "Porto"
        assert policy.policy_number == "123"
        assert policy.policy_number_is_placeholder is False
        assert policy.expiration_date == date(2026, 3, 1)

    def test_missing_groups_stay_empty(self):
        record = {"seguradora": {"empresa": "Allianz"}, "informacoes_gerais": {"numero_apolice": "S-1"}}
        policy = normalize_record(record, now=FIXED_NOW)
        assert policy.insurer == "Allianz"
        assert policy.insured_name is None
        assert policy.vehicle_plate is None
        assert policy.start_date is None


class TestUnrecognizedMapping:
    def test_low_confidence_record(self):
        record = {"pagina_1": {"tabela": [{"valor_total": "R$ 350,00"}]}, "texto": "ilegível"}
        policy = normalize_record(record, source_file="scan_001.pdf", now=FIXED_NOW)

        assert policy.confidence == Confidence.LOW
        assert policy.policy_number_is_placeholder is True
        assert policy.policy_name == "scan_001"
        assert policy.premium == Decimal("350.00")
        assert policy.insured_name is None
        assert policy.insurer is None
        assert policy.warnings


class TestInvalidRecords:
    @pytest.mark.parametrize("record", ["just text", 42, None, ["a"], {}])
    def test_not_an_object_or_empty(self, record):
        with pytest.raises(InvalidRecordError):
            normalize_record(record, now=FIXED_NOW)

    def test_no_party(self):
        with pytest.raises(InvalidRecordError) as exc_info:
            normalize_record({"numero_apolice": "X-1", "premio": "10"}, now=FIXED_NOW)
        assert exc_info.value.reasons


class TestCrossChecks:
    def test_start_after_end(self):
        policy = normalize_record(flat_record(inicio="2026-02-01"), now=FIXED_NOW)
        assert "start_date is after expiration_date" in policy.warnings

    def test_same_start_and_end_does_not_warn(self):
        policy = normalize_record(flat_record(inicio="10/01/2026"), now=FIXED_NOW)
        assert not any(w.startswith("start_date") for w in policy.warnings)

    def test_monthly_amount_deviation(self):
        policy = normalize_record(flat_record(custo_mensal="150,00"), now=FIXED_NOW)
        assert any(w.startswith("monthly_amount") for w in policy.warnings)

    def test_consistent_amounts_do_not_warn(self):
        policy = normalize_record(flat_record(premio="1200,00"), now=FIXED_NOW)
        assert policy.warnings == []


class TestHelpers:
    def test_placeholder_format(self):
        assert PLACEHOLDER_PATTERN.match(placeholder_policy_number(FIXED_NOW))

    def test_placeholders_are_unique(self):
        assert placeholder_policy_number(FIXED_NOW) != placeholder_policy_number(FIXED_NOW)

    @pytest.mark.parametrize(
        "raw, expected",
        [("Auto", "auto"), ("AUTOMÓVEL", "auto"), ("Residencial", "patrimonial"), ("Viagem", "viagem"), (None, None)],
    )
    def test_policy_type(self, raw, expected):
        assert normalize_policy_type(raw) == expected
