"""
HTTP client for the Firestore REST API (v1).

Documents are sent and received as Firestore typed values
(``{"stringValue": ...}``, ``{"timestampValue": ...}``, ...);
``encode_value``/``decode_value`` translate to and from plain Python.
"""

import logging
from datetime import datetime
from typing import Any

import httpx

from ..timeutil import coerce_datetime
from .store import EventStore, QueryTimeoutError, StoreError, StoreUnavailableError

logger = logging.getLogger(__name__)

FIRESTORE_API = "https://firestore.googleapis.com/v1"

# Firestore caps a single commit at 500 writes
MAX_BATCH_WRITES = 500


# =============================================================================
# VALUE CODEC
# =============================================================================

def _format_timestamp(value: datetime) -> str:
    return coerce_datetime(value).isoformat().replace("+00:00", "Z")


def encode_value(value: Any) -> dict[str, Any]:
    """Encode a Python value as a Firestore typed value."""
    if value is None:
        return {"nullValue": None}
    if isinstance(value, bool):
        return {"booleanValue": value}
    if isinstance(value, int):
        return {"integerValue": str(value)}
    if isinstance(value, float):
        return {"doubleValue": value}
    if isinstance(value, datetime):
        return {"timestampValue": _format_timestamp(value)}
    if isinstance(value, str):
        return {"stringValue": value}
    if isinstance(value, dict):
        return {"mapValue": {"fields": encode_fields(value)}}
    if isinstance(value, (list, tuple)):
        return {"arrayValue": {"values": [encode_value(v) for v in value]}}
    return {"stringValue": str(value)}


def encode_fields(document: dict[str, Any]) -> dict[str, Any]:
    return {str(key): encode_value(value) for key, value in document.items()}


def decode_value(value: dict[str, Any]) -> Any:
    """Decode a Firestore typed value into a Python value."""
    if "nullValue" in value:
        return None
    if "booleanValue" in value:
        return bool(value["booleanValue"])
    if "integerValue" in value:
        return int(value["integerValue"])
    if "doubleValue" in value:
        return float(value["doubleValue"])
    if "timestampValue" in value:
        return coerce_datetime(value["timestampValue"])
    if "stringValue" in value:
        return value["stringValue"]
    if "mapValue" in value:
        return decode_fields(value["mapValue"].get("fields", {}))
    if "arrayValue" in value:
        return [decode_value(v) for v in value["arrayValue"].get("values", [])]
    if "referenceValue" in value:
        return value["referenceValue"]
    if "bytesValue" in value:
        return value["bytesValue"]
    if "geoPointValue" in value:
        return dict(value["geoPointValue"])
    return None


def decode_fields(fields: dict[str, Any]) -> dict[str, Any]:
    return {key: decode_value(value) for key, value in fields.items()}


def decode_document(document: dict[str, Any]) -> dict[str, Any]:
    """Decode a Firestore document resource, adding its id."""
    decoded = decode_fields(document.get("fields", {}))
    name = document.get("name", "")
    if name:
        decoded.setdefault("id", name.rsplit("/", 1)[-1])
    return decoded


# =============================================================================
# STORE
# =============================================================================

class FirestoreEventStore(EventStore):
    """Event store backed by a Firestore collection."""

    def __init__(
        self,
        project_id: str,
        api_token: str,
        collection: str = "analytics_events",
        database: str = "(default)",
        timeout: float = 30.0,
        base_url: str = FIRESTORE_API,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.project_id = project_id
        self.api_token = api_token
        self.collection = collection
        self.timeout = timeout
        self.database_path = f"projects/{project_id}/databases/{database}"
        self.documents_url = f"{base_url}/{self.database_path}/documents"
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def _request(
        self,
        method: str,
        url: str,
        json: Any = None,
        params: dict | None = None,
    ) -> Any:
        """Execute a REST call and return the decoded JSON body."""
        headers = {"Content-Type": "application/json"}
        if self.api_token:
            headers["Authorization"] = f"Bearer {self.api_token}"

        try:
            async with self._client() as client:
                response = await client.request(
                    method, url, headers=headers, json=json, params=params
                )
        except httpx.TimeoutException as e:
            raise QueryTimeoutError(f"Firestore request timed out: {e}") from e
        except httpx.HTTPError as e:
            raise StoreUnavailableError(f"Firestore unreachable: {e}") from e

        if response.status_code >= 400:
            raise _error_from_response(response)

        if not response.content:
            return {}
        data = response.json()

        # runQuery streams results as a list and may embed an error entry
        if isinstance(data, list):
            for item in data:
                if isinstance(item, dict) and "error" in item:
                    raise _error_from_body(item["error"], response.status_code)
        return data

    async def append(self, document: dict[str, Any]) -> str:
        data = await self._request(
            "POST",
            f"{self.documents_url}/{self.collection}",
            json={"fields": encode_fields(document)},
        )
        return data.get("name", "").rsplit("/", 1)[-1]

    async def query_since(
        self,
        field: str,
        cutoff: datetime | str,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        structured_query: dict[str, Any] = {
            "from": [{"collectionId": self.collection}],
            "where": {
                "fieldFilter": {
                    "field": {"fieldPath": field},
                    "op": "GREATER_THAN_OR_EQUAL",
                    "value": encode_value(cutoff),
                }
            },
            "orderBy": [{"field": {"fieldPath": field}, "direction": "DESCENDING"}],
        }
        if limit:
            structured_query["limit"] = limit

        data = await self._request(
            "POST",
            f"{self.documents_url}:runQuery",
            json={"structuredQuery": structured_query},
        )
        return [
            decode_document(item["document"])
            for item in data
            if isinstance(item, dict) and "document" in item
        ]

    async def _list_names(self) -> list[str]:
        names: list[str] = []
        page_token = None
        while True:
            params = {"pageSize": 300, "mask.fieldPaths": "__name__"}
            if page_token:
                params["pageToken"] = page_token
            data = await self._request(
                "GET", f"{self.documents_url}/{self.collection}", params=params
            )
            names.extend(doc["name"] for doc in data.get("documents", []) if "name" in doc)
            page_token = data.get("nextPageToken")
            if not page_token:
                return names

    async def delete_all(self) -> int:
        names = await self._list_names()
        for start in range(0, len(names), MAX_BATCH_WRITES):
            batch = names[start:start + MAX_BATCH_WRITES]
            await self._request(
                "POST",
                f"{self.documents_url}:commit",
                json={"writes": [{"delete": name} for name in batch]},
            )
        logger.info(f"Deleted {len(names)} documents from {self.collection}")
        return len(names)

    async def ping(self) -> None:
        await self._request(
            "GET", f"{self.documents_url}/{self.collection}", params={"pageSize": 1}
        )


def _error_from_body(error: Any, http_status: int) -> StoreError:
    if not isinstance(error, dict):
        error = {"message": str(error)}
    message = error.get("message") or "Firestore request failed"
    code = error.get("status")
    status = error.get("code") if isinstance(error.get("code"), int) else http_status
    if status >= 500 or status == 429 or code in ("UNAVAILABLE", "DEADLINE_EXCEEDED"):
        return StoreUnavailableError(message, status=status, code=code)
    return StoreError(message, status=status, code=code)


def _error_from_response(response: httpx.Response) -> StoreError:
    try:
        body = response.json()
    except ValueError:
        body = {}
    if isinstance(body, list) and body:
        body = body[0]
    error = body.get("error") if isinstance(body, dict) else None
    if error is None:
        error = {"message": f"Firestore returned HTTP {response.status_code}"}
    return _error_from_body(error, response.status_code)
