from fastapi import status
from fastapi.testclient import TestClient

from ..router import get_cost_store, get_transaction_store

PIVOT_URL = "/api/v1/reports/pivot"
SCENARIO_PARAMS = {"from_date": "2024-01-01", "to_date": "2024-02-29"}


def _use_stores(app, transactions, costs):
    app.dependency_overrides[get_transaction_store] = lambda: transactions
    app.dependency_overrides[get_cost_store] = lambda: costs


def test_read_root(client: TestClient):
    response = client.get("/")
    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"message": "Welcome to the Sales Pivot API!"}


def test_get_pivot_report(client: TestClient, app_for_testing, scenario_rows,
                          transaction_store_factory, cost_store_factory):
    _use_stores(app_for_testing, transaction_store_factory(scenario_rows),
                cost_store_factory({"I1": 6.0, "I2": 4.0}))

    response = client.get(PIVOT_URL, params=SCENARIO_PARAMS)
    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert [p["period"] for p in data["periods"]] == ["2024-01", "2024-02"]
    assert [row["entity"] for row in data["rows"]] == ["C1", "C2"]
    assert [cell["amount"] for cell in data["rows"][0]["cells"]] == [100.0, -20.0]
    assert data["grand_total"] == 130.0
    assert data["rows"][0]["margin_percent"] == 40.0
    assert "item_quantities" not in data["matrix"]


def test_filters_reach_the_store(client: TestClient, app_for_testing, scenario_rows,
                                 transaction_store_factory, cost_store_factory):
    store = transaction_store_factory(scenario_rows)
    _use_stores(app_for_testing, store, cost_store_factory())

    response = client.get(PIVOT_URL, params={**SCENARIO_PARAMS, "dimension": "salesperson",
                                             "salesperson_code": "SP1", "entity_codes": ["B", "A"]})
    assert response.status_code == status.HTTP_200_OK
    predicate = store.predicates[0]
    assert predicate.dimension == "salesperson"
    assert predicate.filters == {"salesperson_code": "SP1"}
    assert predicate.entity_codes == ["A", "B"]


def test_repeated_request_is_served_from_cache(client: TestClient, app_for_testing, scenario_rows,
                                               transaction_store_factory, cost_store_factory):
    store = transaction_store_factory(scenario_rows)
    _use_stores(app_for_testing, store, cost_store_factory())

    first = client.get(PIVOT_URL, params=SCENARIO_PARAMS)
    second = client.get(PIVOT_URL, params=SCENARIO_PARAMS)
    assert first.json() == second.json()
    assert store.count_calls == 1

    client.get(PIVOT_URL, params={**SCENARIO_PARAMS, "refresh": True})
    assert store.count_calls == 2


def test_fetch_failure_returns_retryable_502(client: TestClient, app_for_testing, make_row,
                                             transaction_store_factory, cost_store_factory):
    rows = [make_row("C1", "2024-01-05", 1.0) for _ in range(1200)]
    _use_stores(app_for_testing, transaction_store_factory(rows, fail_offsets={800}), cost_store_factory())

    response = client.get(PIVOT_URL, params=SCENARIO_PARAMS)
    assert response.status_code == status.HTTP_502_BAD_GATEWAY
    data = response.json()
    assert data["error"] == "fetch_failed"
    assert data["retryable"] is True
    assert data["offset"] == 800
    assert data["limit"] == 400


def test_failed_report_is_not_cached(client: TestClient, app_for_testing, scenario_rows,
                                     transaction_store_factory, cost_store_factory):
    _use_stores(app_for_testing, transaction_store_factory(scenario_rows, fail_offsets={0}),
                cost_store_factory())
    assert client.get(PIVOT_URL, params=SCENARIO_PARAMS).status_code == status.HTTP_502_BAD_GATEWAY

    _use_stores(app_for_testing, transaction_store_factory(scenario_rows), cost_store_factory())
    assert client.get(PIVOT_URL, params=SCENARIO_PARAMS).status_code == status.HTTP_200_OK


def test_invalid_parameters_are_rejected(client: TestClient, app_for_testing,
                                         transaction_store_factory, cost_store_factory):
    store = transaction_store_factory([])
    _use_stores(app_for_testing, store, cost_store_factory())

    assert client.get(PIVOT_URL, params={**SCENARIO_PARAMS, "granularity": "day"}).status_code == 422
    assert client.get(PIVOT_URL, params={**SCENARIO_PARAMS, "sort_by": "period"}).status_code == 422
    assert client.get(PIVOT_URL, params={**SCENARIO_PARAMS, "sort_by": "period",
                                         "sort_period": "2023-12"}).status_code == 422
    assert client.get(PIVOT_URL, params={"from_date": "2024-01-01"}).status_code == 422
    assert store.count_calls == 0


def test_get_pivot_periods(client: TestClient):
    response = client.get(f"{PIVOT_URL}/periods", params={"from_date": "2023-12-25", "to_date": "2024-01-10",
                                                           "granularity": "week"})
    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["periods"] == ["2023-W52", "2024-W01", "2024-W02"]
    assert data["labels"][0] == "Week 52, 2023"
