"""
Data checks
Known medications looked up by RxCUI and compared field by field against
expected conversion, pricing, RxNorm and ATC values
"""

import time
from typing import Any, Callable, Dict, List, Optional
from loguru import logger
from pydantic import BaseModel, Field

from .exceptions import FetchError
from .models import MedicationRecord
from .query_adapter import MedicationQueryAdapter


class DataCheck(BaseModel):
    """Expected field values for one stored medication"""

    id: str = Field(..., description="Check id")
    category: str = Field(..., description="conversion, pricing, rxnorm or atc")
    rxcui: str = Field(..., description="RxCUI to look up")
    name: str = Field(..., description="Medication name, for display")
    description: str = Field("", description="What the check covers")
    expected: Dict[str, Any] = Field(..., description="Expected value per checked field")


class FieldResult(BaseModel):
    field: str
    expected: str
    actual: str
    passed: bool


class DataCheckResult(BaseModel):
    """Outcome of running one data check"""

    check: DataCheck
    status: str = Field(..., description="passed, failed or error")
    details: List[FieldResult] = Field(default_factory=list)
    error: Optional[str] = None
    duration: float = Field(0.0, description="Seconds spent on the lookup")


def _text(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _tty(record: MedicationRecord) -> str:
    return getattr(record.tty, "value", record.tty)


# Field name -> value read from the record
FIELD_GETTERS: Dict[str, Callable[[MedicationRecord], Any]] = {
    "is_liquid": lambda r: r.conversion_values.is_liquid,
    "strength_val": lambda r: r.conversion_values.strength_val,
    "strength_unit": lambda r: r.conversion_values.strength_unit,
    "package_size": lambda r: r.conversion_values.package_size,
    "package_unit": lambda r: r.conversion_values.package_unit,
    "pricing_unit": lambda r: r.pricing_stats.pricing_unit,
    "has_positive_median_price": lambda r: r.pricing_stats.median_unit_price > 0,
    "has_ndcs": lambda r: len(r.ndc_links.ndc11_all) > 0,
    "rxcui": lambda r: r.rxcui,
    "tty": _tty,
    "name_contains": lambda r: r.name,
    "atc_codes": lambda r: r.classification.atc_codes,
}


def check_field(record: MedicationRecord, field: str, expected: Any) -> FieldResult:
    """Compare one field of a record against its expected value"""
    actual = FIELD_GETTERS[field](record)

    if field == "name_contains":
        return FieldResult(field=field, expected=f'contains "{expected}"', actual=actual,
                           passed=expected.lower() in actual.lower())
    if field == "atc_codes":
        return FieldResult(field=field, expected=", ".join(expected), actual=", ".join(actual) or "none",
                           passed=all(code in actual for code in expected))

    return FieldResult(field=field, expected=_text(expected), actual=_text(actual),
                       passed=actual == expected)


def evaluate_data_check(check: DataCheck, record: MedicationRecord) -> List[FieldResult]:
    return [check_field(record, field, expected) for field, expected in check.expected.items()]


def _conversion(id, rxcui, name, description, is_liquid, strength_val, strength_unit):
    return DataCheck(id=id, category="conversion", rxcui=rxcui, name=name, description=description,
                     expected={"is_liquid": is_liquid, "strength_val": strength_val,
                               "strength_unit": strength_unit})


def _pricing(id, rxcui, name, description, pricing_unit):
    return DataCheck(id=id, category="pricing", rxcui=rxcui, name=name, description=description,
                     expected={"pricing_unit": pricing_unit, "has_positive_median_price": True,
                               "has_ndcs": True})


def _rxnorm(id, rxcui, name, name_contains):
    return DataCheck(id=id, category="rxnorm", rxcui=rxcui, name=name,
                     description=f"SCD - Semantic Clinical Drug for {name_contains}",
                     expected={"rxcui": rxcui, "tty": "SCD", "name_contains": name_contains})


def _atc(id, rxcui, name, code):
    return DataCheck(id=id, category="atc", rxcui=rxcui, name=name,
                     description=f"Should have ATC code {code}", expected={"atc_codes": [code]})


ACETAMINOPHEN = ('198440', 'Acetaminophen 500 MG Oral Tablet')
IBUPROFEN = ('310965', 'Ibuprofen 200 MG Oral Tablet')
AMOXICILLIN_CAP = ('308182', 'Amoxicillin 250 MG Oral Capsule')
AMOXICILLIN_SUSP = ('239191', 'Amoxicillin 50 MG/ML Oral Suspension')
METFORMIN = ('861007', 'Metformin Hydrochloride 500 MG Oral Tablet')
LISINOPRIL = ('314076', 'Lisinopril 10 MG Oral Tablet')
DIAZEPAM = ('197591', 'Diazepam 5 MG Oral Tablet')
OMEPRAZOLE = ('198051', 'Omeprazole 20 MG Delayed Release Oral Capsule')

DEFAULT_DATA_CHECKS: List[DataCheck] = [
    _conversion('conv-1', *ACETAMINOPHEN, 'Common OTC tablet - should be solid with 500mg strength',
                False, 500, 'MG'),
    _conversion('conv-2', *IBUPROFEN, 'Common NSAID tablet - should be solid with 200mg strength',
                False, 200, 'MG'),
    _conversion('conv-3', *AMOXICILLIN_CAP, 'Common antibiotic capsule - should be solid with 250mg strength',
                False, 250, 'MG'),
    _conversion('conv-4', *AMOXICILLIN_SUSP, 'Antibiotic suspension - should be LIQUID', True, 50, 'MG'),
    _conversion('conv-5', *METFORMIN, 'Diabetes medication tablet - should be solid with 500mg',
                False, 500, 'MG'),
    _conversion('conv-6', *LISINOPRIL, 'ACE inhibitor tablet - should be solid with 10mg', False, 10, 'MG'),
    _conversion('conv-7', *DIAZEPAM, 'Benzodiazepine tablet - should be solid with 5mg', False, 5, 'MG'),
    _conversion('conv-8', *OMEPRAZOLE, 'PPI capsule - should be solid with 20mg', False, 20, 'MG'),

    _pricing('price-1', *ACETAMINOPHEN, 'Should have EA pricing unit and valid prices', 'EA'),
    _pricing('price-2', *IBUPROFEN, 'Common OTC - should have EA unit and positive prices', 'EA'),
    _pricing('price-3', *AMOXICILLIN_SUSP, 'Liquid suspension - should have ML pricing unit', 'ML'),
    _pricing('price-4', *METFORMIN, 'Common diabetes med - should have EA unit', 'EA'),
    _pricing('price-5', *LISINOPRIL, 'ACE inhibitor tablet - should have EA pricing', 'EA'),
    _pricing('price-6', *OMEPRAZOLE, 'PPI capsule - should have EA pricing', 'EA'),
    _pricing('price-7', *AMOXICILLIN_CAP, 'Antibiotic capsule - should have EA pricing', 'EA'),

    _rxnorm('rxn-1', *ACETAMINOPHEN, 'acetaminophen'),
    _rxnorm('rxn-2', *AMOXICILLIN_CAP, 'amoxicillin'),
    _rxnorm('rxn-3', *IBUPROFEN, 'ibuprofen'),
    _rxnorm('rxn-4', *METFORMIN, 'metformin'),
    _rxnorm('rxn-5', *LISINOPRIL, 'lisinopril'),
    _rxnorm('rxn-6', *OMEPRAZOLE, 'omeprazole'),
    _rxnorm('rxn-7', *DIAZEPAM, 'diazepam'),
    _rxnorm('rxn-8', *AMOXICILLIN_SUSP, 'amoxicillin'),

    _atc('atc-1', *ACETAMINOPHEN, 'N02BE01'),
    _atc('atc-2', *METFORMIN, 'A10BA02'),
    _atc('atc-3', *IBUPROFEN, 'M01AE01'),
    _atc('atc-4', *AMOXICILLIN_CAP, 'J01CA04'),
    _atc('atc-5', *LISINOPRIL, 'C09AA03'),
    _atc('atc-6', *OMEPRAZOLE, 'A02BC01'),
    _atc('atc-7', *DIAZEPAM, 'N05BA01'),
    _atc('atc-8', *AMOXICILLIN_SUSP, 'J01CA04'),
]


async def run_data_check(adapter: MedicationQueryAdapter, check: DataCheck) -> DataCheckResult:
    start_time = time.time()
    try:
        record = await adapter.fetch_by_key(check.rxcui)
    except FetchError as e:
        logger.warning(f"Data check {check.id} errored: {e}")
        return DataCheckResult(check=check, status="error", error=str(e),
                               duration=time.time() - start_time)

    if record is None:
        return DataCheckResult(check=check, status="error",
                               error=f"Medication with RxCUI {check.rxcui} not found in database",
                               duration=time.time() - start_time)

    details = evaluate_data_check(check, record)
    status = "passed" if all(d.passed for d in details) else "failed"
    logger.debug(f"Data check {check.id} {status}")
    return DataCheckResult(check=check, status=status, details=details,
                           duration=time.time() - start_time)


async def run_data_checks(adapter: MedicationQueryAdapter,
                          checks: Optional[List[DataCheck]] = None) -> List[DataCheckResult]:
    """Run data checks one after another"""
    results = []
    for check in checks or DEFAULT_DATA_CHECKS:
        results.append(await run_data_check(adapter, check))
    passed = sum(1 for r in results if r.status == "passed")
    logger.info(f"Data checks: {passed}/{len(results)} passed")
    return results
