"""
Derived views over loaded medications: name cleaning, filtering, sorting,
statistics and display formatting
"""

import locale
import re
from loguru import logger
from typing import List, Optional

from .models import (
    FilterOptions,
    FormFilter,
    MatchFilter,
    MedicationRecord,
    SortDirection,
    SortField,
    SortOptions,
    ViewerStats,
)


_LEADING_TAG = re.compile(r'^\{\d+\s+')
_TRAILING_BRACE = re.compile(r'\}$')

EMPTY_NO_DATA = "no_data"
EMPTY_FILTERED_OUT = "filtered_out"

PLACEHOLDER = "—"


def clean_medication_name(name: Optional[str]) -> str:
    """
    Remove a leading RxNorm format tag such as "{1 " and its closing brace

    >>> clean_medication_name("{1 amoxicillin 250 MG Oral Capsule}")
    'amoxicillin 250 MG Oral Capsule'
    """
    if not name:
        return ""

    cleaned = _LEADING_TAG.sub('', name)
    if cleaned != name:
        cleaned = _TRAILING_BRACE.sub('', cleaned)

    return cleaned.strip()


def matches_filters(medication: MedicationRecord, filters: FilterOptions) -> bool:
    """True if the medication satisfies every enabled predicate"""
    if filters.search_query.strip():
        query = filters.search_query.lower()
        ingredient = medication.classification.ingredient_name or ""
        if not (
            query in clean_medication_name(medication.name).lower()
            or query in medication.rxcui.lower()
            or query in ingredient.lower()
        ):
            return False

    if filters.match_filter == MatchFilter.MATCHED and medication.is_unmatched:
        return False
    if filters.match_filter == MatchFilter.UNMATCHED and not medication.is_unmatched:
        return False

    is_liquid = medication.conversion_values.is_liquid
    if filters.form_filter == FormFilter.LIQUID and not is_liquid:
        return False
    if filters.form_filter == FormFilter.SOLID and is_liquid:
        return False

    if filters.min_ndc_count > 0 and medication.ndc_link_count < filters.min_ndc_count:
        return False

    return True


def filter_medications(medications: List[MedicationRecord], filters: FilterOptions) -> List[MedicationRecord]:
    return [m for m in medications if matches_filters(m, filters)]


def use_system_collation() -> None:
    """Sort names by the collation order of the user's locale"""
    try:
        locale.setlocale(locale.LC_COLLATE, "")
    except locale.Error as e:
        logger.warning(f"Falling back to the C collation order: {e}")


def _name_key(medication: MedicationRecord):
    cleaned = clean_medication_name(medication.name)
    return (locale.strxfrm(cleaned.casefold()), cleaned)


_SORT_KEYS = {
    SortField.NAME: _name_key,
    SortField.RXCUI: lambda m: m.rxcui,
    SortField.MEDIAN_PRICE: lambda m: m.pricing_stats.median_unit_price,
    SortField.NDC_COUNT: lambda m: m.ndc_link_count,
}


def sort_medications(medications: List[MedicationRecord], sort: SortOptions) -> List[MedicationRecord]:
    """Stable sort; equal keys keep their loaded order in both directions"""
    return sorted(
        medications,
        key=_SORT_KEYS[sort.field],
        reverse=sort.direction == SortDirection.DESC
    )


def visible_medications(medications: List[MedicationRecord], filters: FilterOptions,
                        sort: SortOptions) -> List[MedicationRecord]:
    return sort_medications(filter_medications(medications, filters), sort)


def compute_stats(medications: List[MedicationRecord], total: Optional[int]) -> ViewerStats:
    """
    Summary statistics for the loaded slice

    The average median price only covers records with a positive median
    price; unpriced records are left out rather than counted as zero.
    """
    matched = sum(1 for m in medications if not m.is_unmatched)
    liquids = sum(1 for m in medications if m.conversion_values.is_liquid)
    total_ndcs = sum(m.ndc_link_count for m in medications)

    prices = [m.pricing_stats.median_unit_price for m in medications
              if m.pricing_stats.median_unit_price > 0]
    avg_price = sum(prices) / len(prices) if prices else 0.0

    return ViewerStats(
        total=total,
        page_count=len(medications),
        matched=matched,
        unmatched=len(medications) - matched,
        liquids=liquids,
        solids=len(medications) - liquids,
        total_ndcs=total_ndcs,
        avg_median_price=avg_price
    )


def empty_state(medications: List[MedicationRecord], visible: List[MedicationRecord]) -> Optional[str]:
    """Why nothing is shown: no data loaded yet, or filters exclude everything"""
    if not medications:
        return EMPTY_NO_DATA
    if not visible:
        return EMPTY_FILTERED_OUT
    return None


def format_price(price: Optional[float], decimals: int = 2) -> str:
    if price is None or price != price:
        return PLACEHOLDER
    return f"${price:.{decimals}f}"


def format_number(num: Optional[float]) -> str:
    if num is None or num != num:
        return PLACEHOLDER
    return f"{num:,}"
