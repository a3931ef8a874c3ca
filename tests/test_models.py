"""Tests for the medication document models."""

import pytest
from pydantic import ValidationError

from conftest import make_document
from medication_viewer.models import (
    FilterOptions,
    MedicationRecord,
    ReasonSelected,
    StrengthDataSource,
    TermType,
)


def test_parses_full_document() -> None:
    record = MedicationRecord.model_validate(make_document("197318", ndcs=3, ingredient="atorvastatin"))

    assert record.id == "197318"
    assert record.tty == TermType.SCD
    assert record.conversion_values.data_source == StrengthDataSource.RXNSAT
    assert record.exemplars[0].reason_selected == ReasonSelected.MEDIAN
    assert record.ndc_link_count == 3
    assert record.classification.ingredient_name == "atorvastatin"
    assert record.safety is None
    assert not record.is_unmatched


def test_unmatched_prefix() -> None:
    record = MedicationRecord.model_validate(make_document("UNMATCHED_abc123"))
    assert record.is_unmatched
    assert record.classification.ingredient_rxcui is None


def test_unknown_term_type_tolerated() -> None:
    record = MedicationRecord.model_validate(make_document("1", tty="SCDG"))
    assert record.tty == "SCDG"


def test_missing_lists_default_to_empty() -> None:
    document = make_document("1")
    del document["exemplars"]
    document["classification"].pop("atc_codes")
    record = MedicationRecord.model_validate(document)
    assert record.exemplars == []
    assert record.classification.atc_codes == []


def test_blank_rxcui_rejected() -> None:
    with pytest.raises(ValidationError):
        MedicationRecord.model_validate(make_document(" "))


def test_to_document_omits_absent_optionals() -> None:
    document = MedicationRecord.model_validate(make_document("1")).to_document()
    assert "safety" not in document
    assert "created_at" not in document
    assert document["tty"] == "SCD"
    assert document["ndc_links"]["ndc11_preferred"] == ["00000000000"]
    assert set(document["pricing_stats"]) == {
        "min_unit_price", "median_unit_price", "max_unit_price", "pricing_unit",
        "price_per_ml", "price_per_mg", "ndc_count",
    }


def test_to_document_keeps_safety() -> None:
    source = make_document("1")
    source["safety"] = {
        "has_black_box_warning": True,
        "is_controlled_substance": True,
        "controlled_substance_schedule": "CII",
        "is_pim": True,
        "pim_triggers": ["age>65"],
    }
    document = MedicationRecord.model_validate(source).to_document()
    assert document["safety"]["controlled_substance_schedule"] == "CII"
    assert document["safety"]["pim_triggers"] == ["age>65"]


def test_filter_options_defaults() -> None:
    options = FilterOptions()
    assert options.search_query == ""
    assert options.match_filter.value == "either"
    assert options.form_filter.value == "either"
    assert options.min_ndc_count == 0
