"""
Medication Viewer
Session controller that owns the viewer state: pagination over the document
store, filters, sort, selection and derived views
"""

import math
from typing import List, Dict, Any, Optional, Callable
from loguru import logger

from .config import settings, is_store_configured
from .database import QueryCursor
from .exceptions import AuthenticationError, FetchError
from .models import (
    DisplayMode,
    FilterOptions,
    FormFilter,
    MatchFilter,
    MedicationRecord,
    PageResult,
    SortDirection,
    SortField,
    SortOptions,
    ViewerState,
    ViewerStats,
)
from .query_adapter import MedicationQueryAdapter
from . import views


Observer = Callable[["MedicationViewer"], None]


class PageOutOfRange(FetchError):
    """The requested page lies past the end of the collection"""


class MedicationViewer:
    """Controller for a single browsing session"""

    def __init__(self, adapter: MedicationQueryAdapter, page_size: int = settings.PAGE_SIZE):
        if page_size < 1:
            raise ValueError("page_size must be at least 1")
        self.adapter = adapter
        self.state = ViewerState(page_size=page_size)
        self._observers: List[Observer] = []

    # ============ OBSERVERS ============

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """
        Register a callback invoked after every state change

        Returns:
            A function that removes the callback again
        """
        self._observers.append(observer)

        def unsubscribe():
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def _notify(self):
        for observer in list(self._observers):
            try:
                observer(self)
            except Exception as e:
                logger.warning(f"Viewer observer failed: {e}")

    # ============ DERIVED VIEWS ============

    @property
    def medications(self) -> List[MedicationRecord]:
        return self.state.medications

    @property
    def filter_options(self) -> FilterOptions:
        return self.state.filters

    @property
    def sort_options(self) -> SortOptions:
        return self.state.sort

    @property
    def filtered_medications(self) -> List[MedicationRecord]:
        return views.filter_medications(self.state.medications, self.state.filters)

    @property
    def sorted_medications(self) -> List[MedicationRecord]:
        return views.sort_medications(self.filtered_medications, self.state.sort)

    @property
    def stats(self) -> ViewerStats:
        return views.compute_stats(self.state.medications, self.state.total_count)

    @property
    def total_pages(self) -> int:
        if not self.state.total_count:
            return 0
        return math.ceil(self.state.total_count / self.state.page_size)

    @property
    def can_go_prev(self) -> bool:
        return self.state.current_page > 1

    @property
    def can_go_next(self) -> bool:
        return self.state.has_more or self.state.current_page < self.total_pages

    @property
    def empty_state(self) -> Optional[str]:
        return views.empty_state(self.state.medications, self.sorted_medications)

    def snapshot(self) -> Dict[str, Any]:
        """Consistent view of the whole session for rendering"""
        visible = self.sorted_medications
        state = self.state
        return {
            "medications": [m.to_document() for m in visible],
            "empty_state": views.empty_state(state.medications, visible),
            "stats": self.stats.model_dump(),
            "pagination": {
                "current_page": state.current_page,
                "page_size": state.page_size,
                "total_pages": self.total_pages,
                "has_more": state.has_more,
                "can_go_prev": self.can_go_prev,
                "can_go_next": self.can_go_next,
                "cached_pages": sorted(state.cursors),
            },
            "filters": state.filters.model_dump(mode="json"),
            "sort": state.sort.model_dump(mode="json"),
            "display_mode": state.display_mode.value,
            "selected": state.selected.to_document() if state.selected else None,
            "is_loading": state.is_loading,
            "is_loading_all": state.is_loading_all,
            "loading_progress": state.loading_progress,
            "all_loaded": state.all_loaded,
            "is_authenticated": state.is_authenticated,
            "error": state.error,
        }

    # ============ LOADING ============

    async def initialize(self) -> None:
        """Open the read-only session and load the first page"""
        if not is_store_configured():
            self.state.error = "Document store is not configured. Please check your .env file."
            self._notify()
            return

        try:
            await self.adapter.connect()
        except AuthenticationError as e:
            logger.error(f"Authentication failed: {e}")
            self.state.error = str(e) or "Failed to authenticate"
            self.state.is_authenticated = False
            self.state.session_blocked = True
            self._notify()
            return

        self.state.is_authenticated = True
        self._notify()
        await self.load_page(1)

    def _can_start_load(self, operation: str) -> bool:
        if self.state.session_blocked:
            logger.warning(f"Rejected {operation}: session is not authenticated")
            return False
        if self.state.is_loading or self.state.is_loading_all:
            logger.warning(f"Rejected {operation}: a load is already in progress")
            return False
        return True

    async def load_page(self, page: int) -> bool:
        """
        Load a specific page of medications

        Args:
            page: 1-based page number

        Returns:
            False if the request was rejected (invalid page or a load in
            flight), True once an accepted load has finished or failed
        """
        if page < 1 or not self._can_start_load(f"load of page {page}"):
            return False

        self.state.is_loading = True
        self.state.error = None
        self._notify()

        try:
            count = await self.adapter.count()
            cursor = await self._cursor_before(page)
            result: PageResult = await self.adapter.fetch_page(self.state.page_size, cursor)
            if not result.records and page > 1 and page - 1 not in self.state.full_pages:
                raise PageOutOfRange(f"Page {page} is beyond the end of the collection")
        except FetchError as e:
            logger.error(f"Failed to load page {page}: {e}")
            self.state.error = str(e) or "Failed to load medications"
            self.state.is_loading = False
            self._notify()
            return True
        finally:
            self.state.is_loading = False

        state = self.state
        state.medications = result.records
        if count is not None:
            state.total_count = count
        state.has_more = result.has_more
        state.current_page = page
        state.all_loaded = False
        self._remember_page(page, result)
        logger.debug(f"Loaded page {page} ({len(result.records)} medications)")
        self._notify()
        return True

    def _remember_page(self, page: int, result: PageResult):
        if result.cursor is not None:
            self.state.cursors[page] = result.cursor
        if result.has_more:
            self.state.full_pages.add(page)
        else:
            self.state.full_pages.discard(page)

    async def _cursor_before(self, page: int) -> Optional[QueryCursor]:
        """
        Cursor that resumes right before `page`

        Uses the cached cursor of the previous page when present, otherwise
        walks forward from the closest cached page, caching each cursor it
        passes.
        """
        if page == 1:
            return None

        cursors = self.state.cursors
        if page - 1 in cursors:
            return cursors[page - 1]

        known = [index for index in cursors if index < page - 1]
        start = max(known) if known else 0
        cursor = cursors[start] if start else None

        for index in range(start + 1, page):
            logger.debug(f"Walking forward through page {index} to reach page {page}")
            result = await self.adapter.fetch_page(self.state.page_size, cursor)
            if result.cursor is None:
                raise PageOutOfRange(f"Page {page} is beyond the end of the collection")
            self._remember_page(index, result)
            cursor = result.cursor

        return cursor

    async def next_page(self) -> bool:
        if not self.can_go_next:
            return False
        return await self.load_page(self.state.current_page + 1)

    async def prev_page(self) -> bool:
        if not self.can_go_prev:
            return False
        return await self.load_page(self.state.current_page - 1)

    async def first_page(self) -> bool:
        return await self.load_page(1)

    async def refresh(self) -> bool:
        """Drop every cached cursor and reload the first page"""
        if not self._can_start_load("refresh"):
            return False
        self.state.cursors.clear()
        self.state.full_pages.clear()
        self.state.all_loaded = False
        logger.info("Cursor cache cleared, reloading first page")
        return await self.load_page(1)

    async def load_all(self) -> bool:
        """
        Load every medication into the session at once

        Returns:
            False if rejected because a load is in flight
        """
        if not self._can_start_load("bulk load"):
            return False

        self.state.is_loading_all = True
        self.state.loading_progress = 0
        self.state.error = None
        self._notify()

        def on_progress(loaded: int, total: Optional[int]):
            self.state.loading_progress = loaded
            if total is not None:
                self.state.total_count = total
            self._notify()

        try:
            medications = await self.adapter.fetch_all(on_progress)
        except FetchError as e:
            logger.error(f"Failed to load all medications: {e}")
            self.state.error = str(e) or "Failed to load all medications"
            self.state.is_loading_all = False
            self._notify()
            return True
        finally:
            self.state.is_loading_all = False

        state = self.state
        state.medications = medications
        state.total_count = len(medications)
        state.all_loaded = True
        state.current_page = 1
        state.has_more = False
        self._notify()
        return True

    async def lookup(self, rxcui: str) -> Optional[MedicationRecord]:
        """
        Look up one medication by RxCUI

        Returns:
            The medication, or None if no document has this RxCUI

        Raises:
            FetchError: If the lookup itself failed; the error is also
                recorded in the session state
        """
        try:
            return await self.adapter.fetch_by_key(rxcui)
        except FetchError as e:
            self.state.error = str(e)
            self._notify()
            raise

    # ============ FILTERS ============

    def set_search_query(self, query: str) -> None:
        self.state.filters = self.state.filters.model_copy(update={"search_query": query})
        self._notify()

    def _set_match_filter(self, value: MatchFilter) -> None:
        current = self.state.filters.match_filter
        new_value = MatchFilter.EITHER if current == value else value
        self.state.filters = self.state.filters.model_copy(update={"match_filter": new_value})
        self._notify()

    def _set_form_filter(self, value: FormFilter) -> None:
        current = self.state.filters.form_filter
        new_value = FormFilter.EITHER if current == value else value
        self.state.filters = self.state.filters.model_copy(update={"form_filter": new_value})
        self._notify()

    def toggle_matched_only(self) -> None:
        self._set_match_filter(MatchFilter.MATCHED)

    def toggle_unmatched_only(self) -> None:
        self._set_match_filter(MatchFilter.UNMATCHED)

    def toggle_liquids_only(self) -> None:
        self._set_form_filter(FormFilter.LIQUID)

    def toggle_solids_only(self) -> None:
        self._set_form_filter(FormFilter.SOLID)

    def set_min_ndc_count(self, count: int) -> None:
        self.state.filters = self.state.filters.model_copy(update={"min_ndc_count": max(0, count)})
        self._notify()

    def set_filters(self, filters: FilterOptions) -> None:
        self.state.filters = filters
        self._notify()

    def reset_filters(self) -> None:
        self.state.filters = FilterOptions()
        self._notify()

    # ============ SORT ============

    def set_sort_field(self, field: SortField) -> None:
        """Same field flips the direction, a new field starts ascending"""
        sort = self.state.sort
        if sort.field == field:
            direction = SortDirection.DESC if sort.direction == SortDirection.ASC else SortDirection.ASC
            self.state.sort = SortOptions(field=field, direction=direction)
        else:
            self.state.sort = SortOptions(field=field, direction=SortDirection.ASC)
        self._notify()

    def set_sort(self, sort: SortOptions) -> None:
        self.state.sort = sort
        self._notify()

    # ============ VIEW ============

    def set_display_mode(self, mode: DisplayMode) -> None:
        self.state.display_mode = mode
        self._notify()

    def open_detail(self, medication: MedicationRecord) -> None:
        self.state.selected = medication
        self._notify()

    def close_detail(self) -> None:
        self.state.selected = None
        self._notify()

    def clear_error(self) -> None:
        self.state.error = None
        self._notify()
