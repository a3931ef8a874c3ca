"""Shared fixtures: medication documents and an in-memory document store."""

from typing import Any, Dict, List, Optional, Tuple

import pytest

from medication_viewer.database import DocumentStore, QueryCursor
from medication_viewer.exceptions import AuthenticationError
from medication_viewer.query_adapter import MedicationQueryAdapter
from medication_viewer.viewer import MedicationViewer


def make_document(
    rxcui: str,
    name: Optional[str] = None,
    median: float = 1.0,
    is_liquid: bool = False,
    ndcs: int = 1,
    ingredient: Optional[str] = None,
    tty: str = "SCD",
) -> Dict[str, Any]:
    """Build a medication document as stored in the collection."""
    ndc_codes = [f"{i:011d}" for i in range(ndcs)]
    return {
        "rxcui": rxcui,
        "name": name or f"drug {rxcui} 10 MG Oral Tablet",
        "tty": tty,
        "pricing_stats": {
            "min_unit_price": median / 2,
            "median_unit_price": median,
            "max_unit_price": median * 2,
            "pricing_unit": "ML" if is_liquid else "EA",
            "price_per_ml": median if is_liquid else None,
            "price_per_mg": None,
            "ndc_count": ndcs,
        },
        "conversion_values": {
            "is_liquid": is_liquid,
            "package_size": 30,
            "package_unit": "ML" if is_liquid else "EA",
            "strength_val": 10,
            "strength_unit": "MG",
            "scdc_rxcui": None,
            "data_source": "RXNSAT",
        },
        "ndc_links": {"ndc11_all": ndc_codes, "ndc11_preferred": ndc_codes[:1]},
        "exemplars": [
            {
                "ndc11": "00071015523",
                "ndc_description": "DRUG 10MG TAB",
                "unit_price": median,
                "pricing_unit": "EA",
                "reason_selected": "median",
                "nadac_per_unit": median,
                "package_size": 90,
                "package_description": "90 TABLET in 1 BOTTLE",
            }
        ],
        "classification": {
            "ingredient_name": ingredient,
            "ingredient_rxcui": None,
            "atc_codes": [],
        },
        "dataset_versions": {
            "nadac_week": "2024-01-10",
            "rxnorm_version": "01022024",
            "fda_date": "2024-01-08",
        },
    }


def make_dataset(size: int) -> List[Dict[str, Any]]:
    return [make_document(f"R{i:04d}") for i in range(1, size + 1)]


class FakeDocumentStore(DocumentStore):
    """In-memory collection that records every round-trip."""

    def __init__(self, documents: List[Dict[str, Any]]):
        self.documents = sorted(documents, key=lambda d: d["rxcui"])
        self.page_queries: List[Optional[str]] = []
        self.count_calls = 0
        self.lookups: List[str] = []
        self.fail_queries = False
        self.fail_count = False
        self.fail_connect = False

    def connect(self) -> None:
        if self.fail_connect:
            raise AuthenticationError("anonymous sign-in disabled")

    def count(self) -> int:
        self.count_calls += 1
        if self.fail_count:
            raise ConnectionError("count aggregation unavailable")
        return len(self.documents)

    def query_page(self, limit: int, start_after: Optional[QueryCursor] = None) -> Tuple[List[Dict[str, Any]], Optional[QueryCursor]]:
        position = start_after._position if start_after is not None else None
        self.page_queries.append(position)
        if self.fail_queries:
            raise ConnectionError("network unreachable")

        remaining = [d for d in self.documents if position is None or d["rxcui"] > position]
        page = remaining[:limit]
        cursor = QueryCursor(page[-1]["rxcui"]) if page else None
        return [dict(d) for d in page], cursor

    def get_by_key(self, key: str) -> Optional[Dict[str, Any]]:
        self.lookups.append(key)
        if self.fail_queries:
            raise ConnectionError("network unreachable")
        return next((dict(d) for d in self.documents if d["rxcui"] == key), None)


@pytest.fixture
def store_250() -> FakeDocumentStore:
    return FakeDocumentStore(make_dataset(250))


@pytest.fixture
def viewer_250(store_250: FakeDocumentStore) -> MedicationViewer:
    return MedicationViewer(MedicationQueryAdapter(store_250), page_size=100)
