"""Tests for server-side enrichment of tracking payloads."""

from datetime import datetime, timezone

import pytest

from portfolio_analytics.ingest import (
    IP_HASH_LENGTH,
    InvalidPayloadError,
    build_event_document,
    client_ip,
    hash_ip,
)

RECEIVED = datetime(2025, 3, 10, 0, 30, tzinfo=timezone.utc)


def payload(**overrides):
    data = {
        "path": "/projects",
        "source": "linkedin",
        "eventName": "page_view",
        "timestamp": "2025-03-09T23:59:00+00:00",
        "visitorId": "v_1_abc",
        "sessionId": "s_1_def",
        "utm": {"utm_campaign": "q4"},
    }
    data.update(overrides)
    return data


class TestHashIp:
    """Test IP hashing."""

    def test_truncated_and_salted(self):
        hashed = hash_ip("203.0.113.9", "pepper")
        assert len(hashed) == IP_HASH_LENGTH
        assert hashed == hash_ip("203.0.113.9", "pepper")
        assert hashed != hash_ip("203.0.113.9", "salt")


class TestClientIp:
    """Test caller IP extraction."""

    def test_forwarded_for_first_hop(self):
        headers = {"x-forwarded-for": "203.0.113.9, 10.0.0.1"}
        assert client_ip(headers, "10.0.0.2") == "203.0.113.9"

    def test_real_ip(self):
        assert client_ip({"x-real-ip": "198.51.100.4"}, "10.0.0.2") == "198.51.100.4"

    def test_peer_fallback(self):
        assert client_ip({}, "10.0.0.2") == "10.0.0.2"
        assert client_ip({}, None) == "unknown"


class TestBuildEventDocument:
    """Test payload validation and enrichment."""

    def test_enriches_payload(self):
        headers = {"user-agent": "Mozilla/5.0 [LinkedInApp]", "x-forwarded-for": "203.0.113.9"}

        document = build_event_document(payload(), headers, None, "pepper", now=RECEIVED)

        assert document["serverReceivedAt"] == RECEIVED
        assert document["ipHash"] == hash_ip("203.0.113.9", "pepper")
        assert document["userAgent"] == "Mozilla/5.0 [LinkedInApp]"
        assert document["source"] == "linkedin"
        assert document["utm"] == {"utm_campaign": "q4"}

    def test_date_bucket_uses_client_time(self):
        document = build_event_document(payload(), {}, "10.0.0.1", "pepper", now=RECEIVED)
        assert document["dateBucket"] == "2025-03-09"

    def test_missing_timestamp_uses_receipt_time(self):
        data = payload()
        del data["timestamp"]
        document = build_event_document(data, {}, "10.0.0.1", "pepper", now=RECEIVED)
        assert document["dateBucket"] == "2025-03-10"
        assert document["timestamp"] == RECEIVED

    def test_epoch_millisecond_timestamp(self):
        ms = int(datetime(2025, 3, 8, 12, 0, tzinfo=timezone.utc).timestamp() * 1000)
        document = build_event_document(payload(timestamp=ms), {}, None, "pepper", now=RECEIVED)
        assert document["dateBucket"] == "2025-03-08"

    def test_client_cannot_set_server_fields(self):
        data = payload(serverReceivedAt="2020-01-01T00:00:00Z", ipHash="forged", ip="1.2.3.4", dateBucket="2020-01-01")
        document = build_event_document(data, {}, "10.0.0.1", "pepper", now=RECEIVED)
        assert document["serverReceivedAt"] == RECEIVED
        assert document["ipHash"] != "forged"
        assert document["dateBucket"] == "2025-03-09"
        assert "ip" not in document

    def test_extra_attributes_kept(self):
        document = build_event_document(
            payload(eventName="project_view", project="weather-app"), {}, None, "pepper", now=RECEIVED
        )
        assert document["project"] == "weather-app"

    def test_attribution_fields_not_validated(self):
        data = payload(utm="garbage", inAppBrowserFlag="yes", firstTouch=42)
        document = build_event_document(data, {}, None, "pepper", now=RECEIVED)
        assert document["utm"] == {}
        assert document["inAppBrowserFlag"] is True
        assert "firstTouch" not in document

    def test_missing_path_rejected(self):
        data = payload()
        del data["path"]
        with pytest.raises(InvalidPayloadError):
            build_event_document(data, {}, None, "pepper")

    def test_missing_source_rejected(self):
        with pytest.raises(InvalidPayloadError):
            build_event_document(payload(source=""), {}, None, "pepper")

    def test_non_object_rejected(self):
        with pytest.raises(InvalidPayloadError):
            build_event_document(["not", "an", "object"], {}, None, "pepper")
