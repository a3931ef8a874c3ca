"""
Paginated Query Adapter
Turns the document store's "page after cursor" primitive into page fetches
"""

import asyncio
from typing import Optional, List, Callable, Any
from loguru import logger
from pydantic import ValidationError

from .config import settings
from .database import DocumentStore, QueryCursor
from .exceptions import AuthenticationError, FetchError
from .models import MedicationRecord, PageResult


ProgressCallback = Callable[[int, Optional[int]], None]


class MedicationQueryAdapter:
    """Async page-oriented access to the medications collection"""

    def __init__(self, store: DocumentStore):
        self.store = store

    async def _call(self, func: Callable, *args: Any) -> Any:
        """Run a blocking store call off the event loop"""
        return await asyncio.to_thread(func, *args)

    async def connect(self) -> None:
        """
        Bootstrap an anonymous read-only session

        Raises:
            AuthenticationError: If the store refuses the session
        """
        try:
            await self._call(self.store.connect)
        except AuthenticationError:
            raise
        except Exception as e:
            raise AuthenticationError(f"Failed to authenticate: {e}") from e

    async def count(self) -> Optional[int]:
        """
        Get the total number of medications in the collection

        Returns:
            The server-side count, or None if it is not available
        """
        try:
            return await self._call(self.store.count)
        except Exception as e:
            logger.warning(f"Medication count not available: {e}")
            return None

    async def fetch_page(self, page_size: int = settings.PAGE_SIZE,
                         cursor: Optional[QueryCursor] = None) -> PageResult:
        """
        Fetch up to `page_size` medications ordered by rxcui

        Args:
            page_size: Maximum number of records to return
            cursor: Cursor of the previous page, None for the first page

        Returns:
            PageResult with the records, the cursor to resume after them and
            whether another page is assumed to follow

        Raises:
            FetchError: If the store query fails or returns malformed documents
        """
        if page_size < 1:
            raise ValueError("page_size must be at least 1")

        try:
            documents, next_cursor = await self._call(self.store.query_page, page_size, cursor)
        except Exception as e:
            logger.error(f"Failed to fetch medications page: {e}")
            raise FetchError(f"Failed to load medications: {e}") from e

        records = self._to_records(documents)
        logger.debug(f"Fetched {len(records)} medications (page size {page_size})")

        return PageResult(
            records=records,
            cursor=next_cursor if records else None,
            has_more=len(records) == page_size
        )

    async def fetch_all(self, on_progress: Optional[ProgressCallback] = None,
                        page_size: int = settings.BULK_PAGE_SIZE) -> List[MedicationRecord]:
        """
        Fetch every medication by draining all pages in order

        Args:
            on_progress: Called with (loaded, total or None) after each page
            page_size: Records per round-trip

        Returns:
            All medication records
        """
        total = await self.count()
        medications: List[MedicationRecord] = []
        cursor = None
        has_more = True

        while has_more:
            result = await self.fetch_page(page_size, cursor)
            medications.extend(result.records)
            cursor = result.cursor
            has_more = result.has_more
            if on_progress:
                on_progress(len(medications), total)

        logger.info(f"Loaded all {len(medications)} medications")
        return medications

    async def fetch_by_key(self, rxcui: str) -> Optional[MedicationRecord]:
        """
        Fetch a single medication by its RxCUI

        Args:
            rxcui: Exact RxCUI to look up

        Returns:
            The medication, or None if no document has this RxCUI
        """
        try:
            document = await self._call(self.store.get_by_key, rxcui)
        except Exception as e:
            logger.error(f"Failed to look up medication {rxcui}: {e}")
            raise FetchError(f"Failed to look up medication {rxcui}: {e}") from e

        if document is None:
            return None
        return self._to_records([document])[0]

    def _to_records(self, documents: List[dict]) -> List[MedicationRecord]:
        try:
            return [MedicationRecord.model_validate(doc) for doc in documents]
        except ValidationError as e:
            logger.error(f"Malformed medication document: {e}")
            raise FetchError(f"Malformed medication document: {e}") from e
