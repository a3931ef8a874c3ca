"""Tests for the FastAPI interface."""

import pytest
from fastapi.testclient import TestClient

from conftest import FakeDocumentStore, make_dataset, make_document
from medication_viewer import api
from medication_viewer.query_adapter import MedicationQueryAdapter
from medication_viewer.viewer import MedicationViewer


@pytest.fixture
def store() -> FakeDocumentStore:
    documents = make_dataset(250)
    documents.append(make_document("UNMATCHED_zz", name="mystery syrup", is_liquid=True, ndcs=3))
    return FakeDocumentStore(documents)


@pytest.fixture
def client(store: FakeDocumentStore, monkeypatch):
    viewer = MedicationViewer(MedicationQueryAdapter(store), page_size=100)
    monkeypatch.setattr(api, "viewer", viewer)
    with TestClient(api.app) as test_client:
        yield test_client


def test_startup_loads_first_page(client: TestClient) -> None:
    data = client.get("/view").json()
    assert len(data["medications"]) == 100
    assert data["pagination"]["current_page"] == 1
    assert data["pagination"]["total_pages"] == 3
    assert data["is_authenticated"] is True


def test_health(client: TestClient) -> None:
    data = client.get("/health").json()
    assert data["status"] == "healthy"
    assert data["total_count"] == 251


def test_page_navigation(client: TestClient) -> None:
    data = client.post("/pages/3").json()
    assert data["pagination"]["current_page"] == 3
    assert len(data["medications"]) == 51
    assert data["pagination"]["has_more"] is False

    data = client.post("/pages/prev").json()
    assert data["pagination"]["current_page"] == 2

    data = client.post("/pages/next").json()
    assert data["pagination"]["current_page"] == 3


def test_next_at_end_is_conflict(client: TestClient) -> None:
    client.post("/pages/3")
    assert client.post("/pages/next").status_code == 409


def test_invalid_page_is_conflict(client: TestClient) -> None:
    assert client.post("/pages/0").status_code == 409


def test_filters_and_toggle(client: TestClient) -> None:
    client.post("/pages/3")
    data = client.post("/filters/toggle/unmatched").json()
    assert [m["rxcui"] for m in data["medications"]] == ["UNMATCHED_zz"]
    assert data["filters"]["match_filter"] == "unmatched"

    data = client.post("/filters/toggle/matched").json()
    assert data["filters"]["match_filter"] == "matched"
    assert len(data["medications"]) == 50

    data = client.put("/filters", json={"search_query": "no such drug"}).json()
    assert data["empty_state"] == "filtered_out"

    data = client.post("/filters/reset").json()
    assert data["filters"]["search_query"] == ""
    assert len(data["medications"]) == 51


def test_unknown_toggle(client: TestClient) -> None:
    assert client.post("/filters/toggle/bogus").status_code == 404


def test_sort_toggle(client: TestClient) -> None:
    data = client.post("/sort/rxcui").json()
    assert data["sort"] == {"field": "rxcui", "direction": "asc"}
    assert data["medications"][0]["rxcui"] == "R0001"

    data = client.post("/sort/rxcui").json()
    assert data["sort"]["direction"] == "desc"
    assert data["medications"][0]["rxcui"] == "R0100"


def test_stats(client: TestClient) -> None:
    data = client.get("/stats").json()
    assert data["page_count"] == 100
    assert data["total"] == 251


def test_medication_detail(client: TestClient) -> None:
    response = client.get("/medications/UNMATCHED_zz")
    assert response.status_code == 200
    assert response.json()["conversion_values"]["is_liquid"] is True

    assert client.get("/medications/INVALID").status_code == 404


def test_missing_medication_is_404_despite_earlier_error(client: TestClient,
                                                         store: FakeDocumentStore) -> None:
    store.fail_queries = True
    client.post("/pages/2")
    store.fail_queries = False
    assert client.get("/view").json()["error"]

    response = client.get("/medications/does-not-exist")
    assert response.status_code == 404

    assert client.post("/selection/does-not-exist").status_code == 404


def test_failed_lookup_is_502(client: TestClient, store: FakeDocumentStore) -> None:
    store.fail_queries = True

    response = client.get("/medications/R0001")
    assert response.status_code == 502
    assert "network unreachable" in response.json()["detail"]

    assert client.post("/selection/INVALID").status_code == 502


def test_selection(client: TestClient) -> None:
    data = client.post("/selection/R0002").json()
    assert data["selected"]["rxcui"] == "R0002"

    data = client.delete("/selection").json()
    assert data["selected"] is None

    assert client.post("/selection/INVALID").status_code == 404


def test_error_banner(client: TestClient, store: FakeDocumentStore) -> None:
    store.fail_queries = True
    data = client.post("/pages/2").json()
    assert "network unreachable" in data["error"]
    assert data["pagination"]["current_page"] == 1

    data = client.delete("/error").json()
    assert data["error"] is None


def test_load_all_and_refresh(client: TestClient) -> None:
    data = client.post("/load-all").json()
    assert data["all_loaded"] is True
    assert len(data["medications"]) == 251

    data = client.post("/refresh").json()
    assert data["all_loaded"] is False
    assert data["pagination"]["cached_pages"] == [1]


def test_display_mode(client: TestClient) -> None:
    assert client.put("/display-mode/table").json()["display_mode"] == "table"
    assert client.put("/display-mode/grid").status_code == 422


def test_export(client: TestClient) -> None:
    client.post("/filters/toggle/liquids")
    client.post("/pages/3")

    data = client.get("/export", params={"format": "json"}).json()
    assert [m["rxcui"] for m in data] == ["UNMATCHED_zz"]

    response = client.get("/export", params={"format": "csv"})
    assert response.headers["content-type"].startswith("text/csv")
    assert "UNMATCHED_zz" in response.text

    assert client.get("/export", params={"format": "xml"}).status_code == 400
