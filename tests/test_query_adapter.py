"""Tests for the paginated query adapter."""

import asyncio

import pytest

from conftest import FakeDocumentStore, make_dataset, make_document
from medication_viewer.exceptions import AuthenticationError, FetchError
from medication_viewer.query_adapter import MedicationQueryAdapter


@pytest.fixture
def adapter(store_250: FakeDocumentStore) -> MedicationQueryAdapter:
    return MedicationQueryAdapter(store_250)


class TestFetchPage:
    def test_first_page(self, adapter: MedicationQueryAdapter) -> None:
        result = asyncio.run(adapter.fetch_page(100))
        assert len(result.records) == 100
        assert result.records[0].rxcui == "R0001"
        assert result.has_more is True
        assert result.cursor is not None

    def test_resume_after_cursor(self, adapter: MedicationQueryAdapter) -> None:
        async def run():
            first = await adapter.fetch_page(100)
            second = await adapter.fetch_page(100, first.cursor)
            third = await adapter.fetch_page(100, second.cursor)
            return first, second, third

        first, second, third = asyncio.run(run())
        assert second.records[0].rxcui == "R0101"
        assert len(third.records) == 50
        assert third.has_more is False

    def test_full_last_page_reports_more(self) -> None:
        adapter = MedicationQueryAdapter(FakeDocumentStore(make_dataset(200)))

        async def run():
            first = await adapter.fetch_page(100)
            second = await adapter.fetch_page(100, first.cursor)
            third = await adapter.fetch_page(100, second.cursor)
            return second, third

        second, third = asyncio.run(run())
        assert second.has_more is True
        assert third.records == []
        assert third.has_more is False
        assert third.cursor is None

    def test_invalid_page_size(self, adapter: MedicationQueryAdapter) -> None:
        with pytest.raises(ValueError):
            asyncio.run(adapter.fetch_page(0))

    def test_store_failure_raises_fetch_error(self, store_250: FakeDocumentStore,
                                              adapter: MedicationQueryAdapter) -> None:
        store_250.fail_queries = True
        with pytest.raises(FetchError, match="network unreachable"):
            asyncio.run(adapter.fetch_page(100))

    def test_malformed_document_raises_fetch_error(self) -> None:
        broken = make_document("1")
        del broken["name"]
        adapter = MedicationQueryAdapter(FakeDocumentStore([broken]))
        with pytest.raises(FetchError, match="Malformed"):
            asyncio.run(adapter.fetch_page(10))

    def test_deterministic(self, adapter: MedicationQueryAdapter) -> None:
        async def run():
            first = await adapter.fetch_page(100)
            a = await adapter.fetch_page(100, first.cursor)
            b = await adapter.fetch_page(100, first.cursor)
            return a, b

        a, b = asyncio.run(run())
        assert [m.rxcui for m in a.records] == [m.rxcui for m in b.records]


class TestCount:
    def test_count(self, adapter: MedicationQueryAdapter) -> None:
        assert asyncio.run(adapter.count()) == 250

    def test_count_failure_is_unknown(self, store_250: FakeDocumentStore,
                                      adapter: MedicationQueryAdapter) -> None:
        store_250.fail_count = True
        assert asyncio.run(adapter.count()) is None


class TestFetchAll:
    def test_drains_every_page_with_progress(self, store_250: FakeDocumentStore,
                                             adapter: MedicationQueryAdapter) -> None:
        progress = []
        records = asyncio.run(adapter.fetch_all(lambda loaded, total: progress.append((loaded, total)), page_size=100))

        assert len(records) == 250
        assert [m.rxcui for m in records] == sorted(m.rxcui for m in records)
        assert progress == [(100, 250), (200, 250), (250, 250)]
        assert len(store_250.page_queries) == 3

    def test_progress_with_unknown_total(self, store_250: FakeDocumentStore,
                                         adapter: MedicationQueryAdapter) -> None:
        store_250.fail_count = True
        progress = []
        asyncio.run(adapter.fetch_all(lambda loaded, total: progress.append(total), page_size=100))
        assert progress == [None, None, None]

    def test_failure_propagates(self, store_250: FakeDocumentStore,
                                adapter: MedicationQueryAdapter) -> None:
        store_250.fail_queries = True
        with pytest.raises(FetchError):
            asyncio.run(adapter.fetch_all())


class TestFetchByKey:
    def test_found(self, adapter: MedicationQueryAdapter) -> None:
        record = asyncio.run(adapter.fetch_by_key("R0042"))
        assert record is not None and record.rxcui == "R0042"

    def test_not_found_is_none(self, adapter: MedicationQueryAdapter) -> None:
        assert asyncio.run(adapter.fetch_by_key("INVALID")) is None

    def test_failure(self, store_250: FakeDocumentStore, adapter: MedicationQueryAdapter) -> None:
        store_250.fail_queries = True
        with pytest.raises(FetchError):
            asyncio.run(adapter.fetch_by_key("R0042"))


def test_connect_failure(store_250: FakeDocumentStore, adapter: MedicationQueryAdapter) -> None:
    store_250.fail_connect = True
    with pytest.raises(AuthenticationError):
        asyncio.run(adapter.connect())
