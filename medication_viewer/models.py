"""
Data models for medication documents and viewer state
"""

from enum import Enum
from typing import Optional, List, Dict, Any, Set, Union
from pydantic import BaseModel, Field, field_validator


# Reserved rxcui prefix for records that could not be linked to RxNorm
UNMATCHED_PREFIX = "UNMATCHED_"


class TermType(str, Enum):
    """RxNorm term types stored in the collection"""

    SCD = "SCD"    # Semantic Clinical Drug
    SBD = "SBD"    # Semantic Branded Drug
    GPCK = "GPCK"  # Generic Pack
    BPCK = "BPCK"  # Branded Pack


class StrengthDataSource(str, Enum):
    """How the strength value of a medication was derived"""

    RXNSAT = "RXNSAT"
    RXNREL = "RXNREL"
    FDA = "FDA"
    REGEX = "REGEX"
    UNKNOWN = "UNKNOWN"


class ReasonSelected(str, Enum):
    """Which point of the price distribution an exemplar represents"""

    MIN = "min"
    MEDIAN = "median"
    MAX = "max"


class PricingStats(BaseModel):
    """Pricing summary for a medication"""

    min_unit_price: float = Field(0.0, description="Minimum unit price")
    median_unit_price: float = Field(0.0, description="Median unit price")
    max_unit_price: float = Field(0.0, description="Maximum unit price")
    pricing_unit: str = Field("EA", description="Pricing unit (EA, ML, GM)")
    price_per_ml: Optional[float] = Field(None, description="Price normalized per mL")
    price_per_mg: Optional[float] = Field(None, description="Price normalized per mg")
    ndc_count: int = Field(0, description="Number of linked NDC codes")


class ConversionValues(BaseModel):
    """Form, package and strength descriptor used for unit conversions"""

    is_liquid: bool = Field(False, description="Liquid (True) or solid (False) form")
    package_size: Optional[float] = Field(None, description="Package size")
    package_unit: Optional[str] = Field(None, description="Package unit")
    strength_val: Optional[float] = Field(None, description="Strength value")
    strength_unit: Optional[str] = Field(None, description="Strength unit")
    scdc_rxcui: Optional[str] = Field(None, description="RxCUI of the clinical drug component")
    data_source: StrengthDataSource = Field(StrengthDataSource.UNKNOWN, description="Strength data source")


class NdcLinks(BaseModel):
    """11-digit NDC codes linked to a medication"""

    ndc11_all: List[str] = Field(default_factory=list, description="All linked NDC-11 codes")
    ndc11_preferred: List[str] = Field(default_factory=list, description="Preferred NDC-11 codes")


class Exemplar(BaseModel):
    """Evidence record pairing an NDC with the price it contributed"""

    ndc11: str = Field(..., description="NDC-11 code")
    ndc_description: str = Field("", description="NDC description")
    unit_price: float = Field(..., description="Unit price")
    pricing_unit: str = Field("EA", description="Pricing unit")
    reason_selected: ReasonSelected = Field(..., description="Why this exemplar was selected")
    nadac_per_unit: float = Field(0.0, description="NADAC price per unit")
    package_size: Optional[float] = Field(None, description="Package size")
    package_description: Optional[str] = Field(None, description="Package description")


class Classification(BaseModel):
    """Ingredient and therapeutic classification"""

    ingredient_name: Optional[str] = Field(None, description="Ingredient name")
    ingredient_rxcui: Optional[str] = Field(None, description="Ingredient RxCUI")
    atc_codes: List[str] = Field(default_factory=list, description="ATC classification codes")


class SafetyInfo(BaseModel):
    """Safety flags for a medication"""

    has_black_box_warning: bool = Field(False, description="FDA black box warning")
    is_controlled_substance: bool = Field(False, description="DEA controlled substance")
    controlled_substance_schedule: Optional[str] = Field(None, description="DEA schedule")
    is_pim: bool = Field(False, description="Potentially inappropriate in the elderly (Beers criteria)")
    pim_triggers: List[str] = Field(default_factory=list, description="Beers criteria triggers")


class DatasetVersions(BaseModel):
    """Versions of the source datasets the record was built from"""

    nadac_week: Optional[str] = Field(None, description="NADAC week")
    rxnorm_version: Optional[str] = Field(None, description="RxNorm release")
    fda_date: Optional[str] = Field(None, description="FDA NDC directory date")


class MedicationRecord(BaseModel):
    """One medication document, keyed by RxCUI"""

    rxcui: str = Field(..., description="RxNorm concept unique identifier")
    name: str = Field(..., description="Display name")
    tty: Union[TermType, str] = Field(..., description="Term type")
    pricing_stats: PricingStats = Field(default_factory=PricingStats, description="Pricing summary")
    conversion_values: ConversionValues = Field(default_factory=ConversionValues, description="Conversion values")
    ndc_links: NdcLinks = Field(default_factory=NdcLinks, description="Linked NDC codes")
    exemplars: List[Exemplar] = Field(default_factory=list, description="Price evidence records")
    classification: Classification = Field(default_factory=Classification, description="Classification")
    safety: Optional[SafetyInfo] = Field(None, description="Safety flags")
    dataset_versions: DatasetVersions = Field(default_factory=DatasetVersions, description="Dataset versions")
    created_at: Optional[str] = Field(None, description="Creation timestamp")
    updated_at: Optional[str] = Field(None, description="Last update timestamp")

    @field_validator('rxcui')
    @classmethod
    def validate_rxcui(cls, v):
        """Validate that the key is not blank"""
        if not v or not v.strip():
            raise ValueError('rxcui must not be empty')
        return v

    @property
    def id(self) -> str:
        return self.rxcui

    @property
    def is_unmatched(self) -> bool:
        return self.rxcui.startswith(UNMATCHED_PREFIX)

    @property
    def ndc_link_count(self) -> int:
        return len(self.ndc_links.ndc11_all)

    def to_document(self) -> Dict[str, Any]:
        """Return the JSON shape shown in the detail view"""
        document = self.model_dump(mode="json")
        for key in ("safety", "created_at", "updated_at"):
            if document.get(key) is None:
                document.pop(key, None)
        return document


class PageResult(BaseModel):
    """One page fetched from the document store"""

    records: List[MedicationRecord] = Field(default_factory=list, description="Records on the page")
    cursor: Optional[Any] = Field(None, description="Opaque cursor for resuming after this page")
    has_more: bool = Field(False, description="Whether another page is assumed to follow")


class MatchFilter(str, Enum):
    """Matched/unmatched exclusive filter"""

    EITHER = "either"
    MATCHED = "matched"
    UNMATCHED = "unmatched"


class FormFilter(str, Enum):
    """Liquid/solid exclusive filter"""

    EITHER = "either"
    LIQUID = "liquid"
    SOLID = "solid"


class SortField(str, Enum):
    NAME = "name"
    RXCUI = "rxcui"
    MEDIAN_PRICE = "median_price"
    NDC_COUNT = "ndc_count"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


class DisplayMode(str, Enum):
    CARDS = "cards"
    TABLE = "table"


class FilterOptions(BaseModel):
    """Active filter predicates"""

    search_query: str = Field("", description="Free-text search")
    match_filter: MatchFilter = Field(MatchFilter.EITHER, description="Matched/unmatched filter")
    form_filter: FormFilter = Field(FormFilter.EITHER, description="Liquid/solid filter")
    min_ndc_count: int = Field(0, description="Minimum linked NDC count, 0 disables")

    @field_validator('min_ndc_count')
    @classmethod
    def validate_min_ndc_count(cls, v):
        """Clamp negative counts to zero"""
        return max(0, v)


class SortOptions(BaseModel):
    """Active sort key and direction"""

    field: SortField = Field(SortField.NAME, description="Sort field")
    direction: SortDirection = Field(SortDirection.ASC, description="Sort direction")


class ViewerStats(BaseModel):
    """Summary statistics over the loaded slice"""

    total: Optional[int] = Field(None, description="Total records in the collection, None if unknown")
    page_count: int = Field(0, description="Records in the loaded slice")
    matched: int = Field(0, description="Records linked to RxNorm")
    unmatched: int = Field(0, description="Records not linked to RxNorm")
    liquids: int = Field(0, description="Liquid records")
    solids: int = Field(0, description="Solid records")
    total_ndcs: int = Field(0, description="Sum of linked NDC counts")
    avg_median_price: float = Field(0.0, description="Mean median price over priced records")


class ViewerState:
    """Mutable state of one browsing session"""

    def __init__(self, page_size: int):
        # Data
        self.medications: List[MedicationRecord] = []
        self.is_loading = False
        self.error: Optional[str] = None
        self.total_count: Optional[int] = None
        self.is_authenticated = False
        self.session_blocked = False

        # Bulk load
        self.is_loading_all = False
        self.loading_progress = 0
        self.all_loaded = False

        # Pagination
        self.current_page = 1
        self.page_size = page_size
        self.cursors: Dict[int, Any] = {}
        self.full_pages: Set[int] = set()  # cached pages that came back full
        self.has_more = True

        # Filters, sort and view
        self.filters = FilterOptions()
        self.sort = SortOptions()
        self.display_mode = DisplayMode.CARDS
        self.selected: Optional[MedicationRecord] = None


# Resolver API models

class ResolveRequest(BaseModel):
    """Single medication resolve request"""

    text: str = Field(..., description="Free-text medication description")
    route_hint: Optional[str] = Field(None, description="Route hint, e.g. ORAL")
    form_hint: Optional[str] = Field(None, description="Form hint, e.g. tablet")
    debug: Optional[bool] = Field(None, description="Return debugging candidates")
    allow_ingredient_only: Optional[bool] = Field(None, description="Allow ingredient-level matches")


class BatchResolveItem(BaseModel):
    """One item of a batch resolve request"""

    id: str = Field(..., description="Caller-assigned item id")
    text: str = Field(..., description="Free-text medication description")
    route_hint: Optional[str] = Field(None, description="Route hint")
    form_hint: Optional[str] = Field(None, description="Form hint")


class BatchResolveRequest(BaseModel):
    items: List[BatchResolveItem] = Field(..., description="Items to resolve")
    debug: Optional[bool] = Field(None, description="Return debugging candidates")


class TopCandidate(BaseModel):
    rxcui: str = Field(..., description="Candidate RxCUI")
    name: str = Field(..., description="Candidate name")
    tty: str = Field(..., description="Candidate term type")
    score: float = Field(..., description="Candidate score")


class ResolveResponse(BaseModel):
    """Resolver answer for one medication"""

    resolved: bool = Field(..., description="Whether the text resolved to a concept")
    rxcui: Optional[str] = Field(None, description="Resolved RxCUI")
    confidence: Optional[float] = Field(None, description="Confidence score (0-1)")
    matched_synonym: Optional[str] = Field(None, description="Synonym that matched")
    match_type: Optional[str] = Field(None, description="Type of match")
    reason: Optional[str] = Field(None, description="Reason when unresolved")
    top_candidates: Optional[List[TopCandidate]] = Field(None, description="Debug candidates")


class BatchResolveResult(ResolveResponse):
    id: str = Field(..., description="Item id from the request")


class BatchResolveResponse(BaseModel):
    results: List[BatchResolveResult] = Field(default_factory=list, description="Per-item results")
