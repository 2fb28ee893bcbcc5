"""Tests for the Cloudflare D1 REST backend.

The REST API is replaced by an httpx.MockTransport; no network access.
"""

import json
import logging
from typing import Any

import httpx
import pytest

from linkauth.backends.base import StatementShape, resolve_capabilities
from linkauth.backends.d1_adapter import D1HttpDatabase
from linkauth.backends.errors import D1QueryError, QueryFailed
from linkauth.backends.statement import StatementAdapter

_BASE_URL = "https://d1.test/client/v4"
_QUERY_PATH = "/client/v4/accounts/acct-1/d1/database/db-1/query"
_API_TOKEN = "d1-test-token"  # nosec B105


def _ok(results: list[dict[str, Any]]) -> dict[str, Any]:
    return {"success": True, "errors": [], "messages": [], "result": results}


def _envelope(rows: list[dict] | None = None, changes: int = 0, last_row_id: int | None = None) -> dict:
    return {
        "success": True,
        "results": rows or [],
        "meta": {"changes": changes, "last_row_id": last_row_id},
    }


class _Recorder:
    """MockTransport handler that records requests and replays a response."""

    def __init__(self, response: httpx.Response) -> None:
        self.response = response
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.response

    @property
    def bodies(self) -> list[dict[str, Any]]:
        return [json.loads(r.content) for r in self.requests]


def _database(recorder: _Recorder) -> D1HttpDatabase:
    client = httpx.AsyncClient(
        base_url=_BASE_URL, transport=httpx.MockTransport(recorder)
    )
    return D1HttpDatabase(
        account_id="acct-1",
        database_id="db-1",
        api_token=_API_TOKEN,
        client=client,
    )


class TestShape:
    """D1HttpDatabase exposes the CHAINED shape with a native batch."""

    def test_resolves_to_chained_with_native_batch(self):
        """Probing finds bind() on statements and batch() on the handle."""
        db = _database(_Recorder(httpx.Response(200, json=_ok([]))))
        caps = resolve_capabilities(db)
        assert caps.shape is StatementShape.CHAINED
        assert caps.native_batch is True

    def test_bind_returns_new_statement(self):
        """bind() leaves the prepared statement unbound."""
        db = _database(_Recorder(httpx.Response(200, json=_ok([]))))
        prepared = db.prepare("SELECT ?")
        bound = prepared.bind(1)
        assert prepared.params == ()
        assert bound.params == (1,)


class TestQuery:
    """Single-statement requests."""

    async def test_all_posts_sql_and_params_with_bearer_token(self):
        """Statements are POSTed to the query endpoint with auth."""
        recorder = _Recorder(httpx.Response(200, json=_ok([_envelope([{"id": "u1"}])])))
        db = _database(recorder)

        envelope = await db.prepare("SELECT * FROM users WHERE id = ?").bind("u1").all()

        assert envelope["results"] == [{"id": "u1"}]
        request = recorder.requests[0]
        assert request.method == "POST"
        assert request.url.path == _QUERY_PATH
        assert request.headers["Authorization"] == f"Bearer {_API_TOKEN}"
        assert recorder.bodies[0] == {
            "sql": "SELECT * FROM users WHERE id = ?",
            "params": ["u1"],
        }

    async def test_first_returns_none_for_no_rows(self):
        """first() on an empty result is None."""
        db = _database(_Recorder(httpx.Response(200, json=_ok([_envelope()]))))
        assert await db.prepare("SELECT 1 WHERE 0").first() is None

    async def test_adapter_maps_run_meta(self):
        """Through the adapter, run() meta becomes a RunResult."""
        recorder = _Recorder(
            httpx.Response(200, json=_ok([_envelope(changes=1, last_row_id=42)]))
        )
        result = await StatementAdapter(_database(recorder)).execute(
            "INSERT INTO t (v) VALUES (?)", ["x"]
        )
        assert result.changes == 1
        assert result.last_insert_id == 42


class TestBatch:
    """Native batch requests."""

    async def test_batch_sends_all_statements_in_one_request(self):
        """Every bound statement goes in a single POST body."""
        recorder = _Recorder(
            httpx.Response(200, json=_ok([_envelope(changes=1), _envelope(changes=2)]))
        )
        db = _database(recorder)

        results = await db.batch(
            [
                db.prepare("UPDATE a SET v = ?").bind(1),
                db.prepare("UPDATE b SET v = ?").bind(2),
            ]
        )

        assert len(recorder.requests) == 1
        assert recorder.bodies[0] == {
            "batch": [
                {"sql": "UPDATE a SET v = ?", "params": [1]},
                {"sql": "UPDATE b SET v = ?", "params": [2]},
            ]
        }
        assert [r["meta"]["changes"] for r in results] == [1, 2]


class TestErrors:
    """D1 failures become D1QueryError carrying the API message."""

    async def test_api_error_message_is_preserved(self):
        """The first error message from D1 is the exception text."""
        body = {
            "success": False,
            "errors": [{"code": 7500, "message": "UNIQUE constraint failed: users.email"}],
            "result": [],
        }
        db = _database(_Recorder(httpx.Response(400, json=body)))
        with pytest.raises(D1QueryError) as exc_info:
            await db.prepare("INSERT INTO users (email) VALUES (?)").bind("a@x.io").run()
        assert str(exc_info.value) == "UNIQUE constraint failed: users.email"
        assert exc_info.value.status_code == 400

    async def test_api_error_is_logged(self, caplog: pytest.LogCaptureFixture):
        """Rejected queries are logged with the HTTP status and message."""
        body = {"success": False, "errors": [{"code": 7500, "message": "no such table: x"}]}
        db = _database(_Recorder(httpx.Response(400, json=body)))
        with caplog.at_level(logging.WARNING, logger="linkauth.backends.d1_adapter"):
            with pytest.raises(D1QueryError):
                await db.prepare("SELECT * FROM x").all()
        assert "D1 query rejected (HTTP 400): no such table: x" in caplog.text

    async def test_adapter_wraps_api_error_in_query_failed(self):
        """Through the adapter, the uniqueness message survives intact."""
        body = {
            "success": False,
            "errors": [{"code": 7500, "message": "UNIQUE constraint failed: users.email"}],
        }
        adapter = StatementAdapter(_database(_Recorder(httpx.Response(400, json=body))))
        with pytest.raises(QueryFailed) as exc_info:
            await adapter.execute("INSERT INTO users (email) VALUES (?)", ["a@x.io"])
        assert exc_info.value.is_unique_violation is True

    async def test_non_json_response(self):
        """A non-JSON body raises D1QueryError with the HTTP status."""
        db = _database(_Recorder(httpx.Response(502, text="Bad Gateway")))
        with pytest.raises(D1QueryError) as exc_info:
            await db.prepare("SELECT 1").all()
        assert exc_info.value.status_code == 502

    async def test_failed_statement_envelope(self):
        """A per-statement success=false raises even when the call succeeded."""
        body = _ok([{"success": False, "error": "no such table: missing"}])
        db = _database(_Recorder(httpx.Response(200, json=body)))
        with pytest.raises(D1QueryError, match="no such table: missing"):
            await db.prepare("SELECT * FROM missing").all()

    async def test_transport_error(self):
        """Connection failures raise D1QueryError."""

        def _fail(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = httpx.AsyncClient(base_url=_BASE_URL, transport=httpx.MockTransport(_fail))
        db = D1HttpDatabase(
            account_id="acct-1", database_id="db-1", api_token=_API_TOKEN, client=client
        )
        with pytest.raises(D1QueryError, match="D1 request failed"):
            await db.prepare("SELECT 1").all()


class TestClose:
    """aclose() only closes clients the handle created."""

    async def test_injected_client_stays_open(self):
        """A caller-supplied client is left for the caller to close."""
        client = httpx.AsyncClient(
            base_url=_BASE_URL,
            transport=httpx.MockTransport(_Recorder(httpx.Response(200, json=_ok([])))),
        )
        db = D1HttpDatabase(
            account_id="acct-1", database_id="db-1", api_token=_API_TOKEN, client=client
        )
        await db.aclose()
        assert client.is_closed is False
        await client.aclose()
