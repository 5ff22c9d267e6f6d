"""Tests for the Firestore REST event store."""

import asyncio
import json
from datetime import datetime, timezone

import httpx
import pytest

from portfolio_analytics.core.firestore import (
    MAX_BATCH_WRITES,
    FirestoreEventStore,
    decode_document,
    decode_value,
    encode_fields,
    encode_value,
)
from portfolio_analytics.core.store import (
    QueryTimeoutError,
    StoreError,
    StoreUnavailableError,
    is_no_data_error,
)

RECEIVED = datetime(2025, 3, 10, 11, 0, tzinfo=timezone.utc)
DOCUMENTS_URL = "https://firestore.googleapis.com/v1/projects/demo/databases/(default)/documents"


def run_async(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


def make_store(handler) -> FirestoreEventStore:
    return FirestoreEventStore(
        project_id="demo",
        api_token="token-123",
        transport=httpx.MockTransport(handler),
    )


class TestValueCodec:
    """Test Firestore typed value encoding."""

    def test_scalars(self):
        assert encode_value("x") == {"stringValue": "x"}
        assert encode_value(True) == {"booleanValue": True}
        assert encode_value(3) == {"integerValue": "3"}
        assert encode_value(1.5) == {"doubleValue": 1.5}
        assert encode_value(None) == {"nullValue": None}

    def test_timestamp(self):
        assert encode_value(RECEIVED) == {"timestampValue": "2025-03-10T11:00:00Z"}
        assert decode_value({"timestampValue": "2025-03-10T11:00:00.123456789Z"}).microsecond == 123456

    def test_nested(self):
        fields = encode_fields({"utm": {"utm_source": "x"}, "tags": ["a", 1]})
        assert fields["utm"] == {"mapValue": {"fields": {"utm_source": {"stringValue": "x"}}}}
        assert fields["tags"] == {"arrayValue": {"values": [{"stringValue": "a"}, {"integerValue": "1"}]}}

    def test_decode_document(self):
        document = {
            "name": f"{DOCUMENTS_URL}/analytics_events/abc",
            "fields": {
                "path": {"stringValue": "/"},
                "inAppBrowserFlag": {"booleanValue": True},
                "count": {"integerValue": "4"},
                "utm": {"mapValue": {}},
                "empty": {"arrayValue": {}},
            },
        }
        decoded = decode_document(document)
        assert decoded == {
            "path": "/",
            "inAppBrowserFlag": True,
            "count": 4,
            "utm": {},
            "empty": [],
            "id": "abc",
        }


class TestRequests:
    """Test REST calls built by the store."""

    def test_append_posts_fields(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"name": f"{DOCUMENTS_URL}/analytics_events/new-id"})

        doc_id = run_async(make_store(handler).append({"path": "/", "serverReceivedAt": RECEIVED}))

        assert doc_id == "new-id"
        assert seen["url"].endswith("/documents/analytics_events")
        assert seen["auth"] == "Bearer token-123"
        assert seen["body"]["fields"]["serverReceivedAt"] == {"timestampValue": "2025-03-10T11:00:00Z"}

    def test_query_since(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=[
                {"document": {"name": "x/analytics_events/a", "fields": {"path": {"stringValue": "/"}}}},
                {"readTime": "2025-03-10T12:00:00Z"},
            ])

        results = run_async(make_store(handler).query_since("serverReceivedAt", RECEIVED))

        assert results == [{"path": "/", "id": "a"}]
        assert seen["url"].endswith("/documents:runQuery")
        query = seen["body"]["structuredQuery"]
        assert query["from"] == [{"collectionId": "analytics_events"}]
        assert query["where"]["fieldFilter"]["op"] == "GREATER_THAN_OR_EQUAL"
        assert query["where"]["fieldFilter"]["value"] == {"timestampValue": "2025-03-10T11:00:00Z"}
        assert query["orderBy"][0]["direction"] == "DESCENDING"

    def test_empty_query_result(self):
        def handler(request):
            return httpx.Response(200, json=[{"readTime": "2025-03-10T12:00:00Z"}])

        assert run_async(make_store(handler).query_since("dateBucket", "2025-03-01")) == []

    def test_delete_all_pages_and_batches(self):
        total = MAX_BATCH_WRITES + 20
        names = [f"{DOCUMENTS_URL}/analytics_events/d{i}" for i in range(total)]
        commits = []

        def handler(request):
            if request.method == "GET":
                token = request.url.params.get("pageToken")
                if token is None:
                    return httpx.Response(200, json={
                        "documents": [{"name": n} for n in names[:300]],
                        "nextPageToken": "page-2",
                    })
                return httpx.Response(200, json={"documents": [{"name": n} for n in names[300:]]})
            commits.append(json.loads(request.content)["writes"])
            return httpx.Response(200, json={})

        deleted = run_async(make_store(handler).delete_all())

        assert deleted == total
        assert [len(batch) for batch in commits] == [MAX_BATCH_WRITES, 20]
        assert commits[0][0] == {"delete": names[0]}

    def test_delete_all_empty_collection(self):
        def handler(request):
            return httpx.Response(200, json={})

        assert run_async(make_store(handler).delete_all()) == 0


class TestErrorMapping:
    """Test translation of HTTP failures into store errors."""

    def test_missing_index_is_no_data(self):
        def handler(request):
            return httpx.Response(400, json={"error": {
                "code": 400,
                "status": "FAILED_PRECONDITION",
                "message": "The query requires an index.",
            }})

        with pytest.raises(StoreError) as exc_info:
            run_async(make_store(handler).query_since("serverReceivedAt", RECEIVED))
        assert is_no_data_error(exc_info.value) is True
        assert exc_info.value.code == "FAILED_PRECONDITION"

    def test_error_entry_in_stream(self):
        def handler(request):
            return httpx.Response(200, json=[{"error": {"status": "NOT_FOUND", "message": "gone"}}])

        with pytest.raises(StoreError) as exc_info:
            run_async(make_store(handler).query_since("serverReceivedAt", RECEIVED))
        assert is_no_data_error(exc_info.value) is True

    def test_server_error_is_unavailable(self):
        def handler(request):
            return httpx.Response(503, text="Service Unavailable")

        with pytest.raises(StoreUnavailableError) as exc_info:
            run_async(make_store(handler).query_since("serverReceivedAt", RECEIVED))
        assert exc_info.value.status == 503
        assert is_no_data_error(exc_info.value) is False

    def test_throttling_is_unavailable(self):
        def handler(request):
            return httpx.Response(429, json={"error": {"code": 429, "status": "RESOURCE_EXHAUSTED", "message": "slow down"}})

        with pytest.raises(StoreUnavailableError):
            run_async(make_store(handler).ping())

    def test_permission_denied(self):
        def handler(request):
            return httpx.Response(403, json={"error": {"code": 403, "status": "PERMISSION_DENIED", "message": "no"}})

        with pytest.raises(StoreError) as exc_info:
            run_async(make_store(handler).ping())
        assert not isinstance(exc_info.value, StoreUnavailableError)
        assert is_no_data_error(exc_info.value) is False

    def test_network_failure(self):
        def handler(request):
            raise httpx.ConnectError("connection refused")

        with pytest.raises(StoreUnavailableError):
            run_async(make_store(handler).append({"path": "/"}))

    def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out")

        with pytest.raises(QueryTimeoutError):
            run_async(make_store(handler).query_since("serverReceivedAt", RECEIVED))
