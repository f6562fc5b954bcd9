import json
from datetime import datetime
from zoneinfo import ZoneInfo

import httpx
import pytest

from finance_tracker.models import Transaction, TransactionFilter, UserState
from finance_tracker.rest_storage import RestRepository
from finance_tracker.storage import StorageError


UTC = ZoneInfo("UTC")


class Recorder:
    def __init__(self, responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responses.pop(0)


def make_repo(*responses):
    recorder = Recorder(responses)
    repo = RestRepository("https://db.example.com/", "secret", UTC, transport=httpx.MockTransport(recorder))
    return repo, recorder


def test_get_transactions_builds_postgrest_query():
    repo, recorder = make_repo(
        httpx.Response(
            200,
            json=[
                {
                    "id": 5,
                    "user_id": 1,
                    "category_id": "c-food",
                    "amount": "-120.50",
                    "description": None,
                    "date": "2026-10-03T00:00:00+00:00",
                    "created_at": "2026-10-03T12:15:00Z",
                }
            ],
        )
    )
    flt = TransactionFilter(start_date=datetime(2026, 10, 1, tzinfo=UTC), end_date=datetime(2026, 10, 31, tzinfo=UTC))
    transactions = repo.get_transactions(1, flt)

    request = recorder.requests[0]
    assert request.url.path == "/rest/v1/transactions"
    assert request.headers["apikey"] == "secret"
    assert request.headers["Authorization"] == "Bearer secret"
    assert request.url.params.get_list("date") == ["gte.2026-10-01T00:00:00Z", "lte.2026-10-31T00:00:00Z"]
    assert request.url.params["user_id"] == "eq.1"
    assert request.url.params["order"] == "date.asc"

    assert transactions == [
        Transaction(
            id="5",
            user_id=1,
            category_id="c-food",
            amount=-120.5,
            description="",
            date=datetime(2026, 10, 3, tzinfo=UTC),
            created_at=datetime(2026, 10, 3, 12, 15, tzinfo=UTC),
        )
    ]


def test_limit_orders_newest_first():
    repo, recorder = make_repo(httpx.Response(200, json=[]))
    assert repo.get_transactions(1, TransactionFilter(limit=5)) == []
    params = recorder.requests[0].url.params
    assert params["order"] == "date.desc"
    assert params["limit"] == "5"


def test_server_error_becomes_storage_error():
    repo, _ = make_repo(httpx.Response(500, text="boom"))
    with pytest.raises(StorageError, match="status 500"):
        repo.get_categories(1)


def test_malformed_row_becomes_storage_error():
    repo, _ = make_repo(httpx.Response(200, json=[{"id": "c1"}]))
    with pytest.raises(StorageError):
        repo.get_categories(1)


def test_delete_reports_whether_a_row_was_removed():
    repo, recorder = make_repo(httpx.Response(200, json=[{"id": "t1"}]), httpx.Response(200, json=[]))
    assert repo.delete_transaction("t1", 1)
    assert not repo.delete_transaction("t1", 1)
    request = recorder.requests[0]
    assert request.method == "DELETE"
    assert request.headers["Prefer"] == "return=representation"
    assert request.url.params["id"] == "eq.t1"


def test_save_user_state_upserts():
    repo, recorder = make_repo(httpx.Response(201))
    repo.save_user_state(
        UserState(user_id=3, awaiting_action="amount", transaction_type="income", updated_at=datetime(2026, 10, 18, tzinfo=UTC))
    )
    request = recorder.requests[0]
    assert request.method == "POST"
    assert request.headers["Prefer"] == "resolution=merge-duplicates"
    body = json.loads(request.content)
    assert body["user_id"] == 3
    assert body["awaiting_action"] == "amount"
    assert body["pending_amount"] is None


def test_get_user_state_parses_row():
    repo, _ = make_repo(
        httpx.Response(
            200,
            json=[
                {
                    "user_id": 3,
                    "awaiting_action": "description",
                    "transaction_type": "expense",
                    "selected_category_id": "c-food",
                    "pending_amount": 99,
                    "updated_at": "2026-10-18T10:00:00+00:00",
                }
            ],
        )
    )
    state = repo.get_user_state(3)
    assert state.pending_amount == 99.0
    assert state.selected_category_id == "c-food"
    assert state.updated_at == datetime(2026, 10, 18, 10, tzinfo=UTC)


@pytest.mark.parametrize(
    "stamp, microsecond",
    [
        ("2026-10-18T12:34:56.1+00:00", 100000),
        ("2026-10-18T12:34:56.12+00:00", 120000),
        ("2026-10-18T12:34:56.12345+00:00", 123450),
        ("2026-10-18T15:34:56.123456+03:00", 123456),
    ],
)
def test_postgres_timestamps_with_short_fractions(stamp, microsecond):
    repo, _ = make_repo(
        httpx.Response(
            200,
            json=[
                {
                    "id": "t1",
                    "user_id": 1,
                    "category_id": None,
                    "amount": -10,
                    "description": "",
                    "date": "2026-10-18T00:00:00+00:00",
                    "created_at": stamp,
                }
            ],
        )
    )
    (transaction,) = repo.get_transactions(1)
    assert transaction.created_at == datetime(2026, 10, 18, 12, 34, 56, microsecond, tzinfo=UTC)
