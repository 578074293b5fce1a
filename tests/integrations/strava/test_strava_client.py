import datetime as dt

import httpx
import pytest

from coachsync.integrations.strava.client import StravaClient
from coachsync.integrations.strava.errors import ProviderResponseInvalid, RateLimited

AFTER = dt.datetime(2025, 1, 1, tzinfo=dt.UTC)


def _responder(*responses):
    """httpx.get replacement returning the given (status, body) pairs in order."""
    calls = []

    def mock_get(url, **kwargs):
        calls.append((url, kwargs))
        status, body = responses[min(len(calls), len(responses)) - 1]
        request = httpx.Request("GET", url)
        if isinstance(body, bytes):
            return httpx.Response(status, content=body, request=request)
        return httpx.Response(status, json=body, request=request)

    return mock_get, calls


def test_list_activities_handles_empty_response(monkeypatch):
    mock_get, calls = _responder((200, []))
    monkeypatch.setattr(httpx, "get", mock_get)

    activities = StravaClient("x").list_activities(after=AFTER)

    assert activities == []
    url, kwargs = calls[0]
    assert url.endswith("/athlete/activities")
    assert kwargs["params"] == {"after": int(AFTER.timestamp()), "per_page": 50, "page": 1}
    assert kwargs["headers"] == {"Authorization": "Bearer x"}


def test_list_activities_stops_on_short_page(monkeypatch):
    mock_get, calls = _responder((200, [{"id": 1}, {"id": 2}]), (200, [{"id": 3}]), (200, []))
    monkeypatch.setattr(httpx, "get", mock_get)

    activities = StravaClient("x").list_activities(after=AFTER, per_page=2, max_pages=5)

    assert [a["id"] for a in activities] == [1, 2, 3]
    assert len(calls) == 2


def test_list_activities_respects_max_pages(monkeypatch):
    mock_get, calls = _responder((200, [{"id": 1}, {"id": 2}]))
    monkeypatch.setattr(httpx, "get", mock_get)

    activities = StravaClient("x").list_activities(after=AFTER, per_page=2, max_pages=1)

    assert len(activities) == 2
    assert len(calls) == 1


def test_list_activities_rate_limited(monkeypatch):
    mock_get, _ = _responder((429, {"message": "Rate Limit Exceeded"}))
    monkeypatch.setattr(httpx, "get", mock_get)

    with pytest.raises(RateLimited):
        StravaClient("x").list_activities(after=AFTER)


def test_list_activities_non_array_body(monkeypatch):
    mock_get, _ = _responder((200, {"message": "oops"}))
    monkeypatch.setattr(httpx, "get", mock_get)

    with pytest.raises(ProviderResponseInvalid):
        StravaClient("x").list_activities(after=AFTER)


def test_error_status_is_invalid_response(monkeypatch):
    mock_get, _ = _responder((401, {"message": "Authorization Error"}))
    monkeypatch.setattr(httpx, "get", mock_get)

    with pytest.raises(ProviderResponseInvalid) as exc_info:
        StravaClient("x").list_activities(after=AFTER)

    assert exc_info.value.status_code == 401


def test_non_json_body_is_invalid_response(monkeypatch):
    mock_get, _ = _responder((200, b"<html>maintenance</html>"))
    monkeypatch.setattr(httpx, "get", mock_get)

    with pytest.raises(ProviderResponseInvalid):
        StravaClient("x").get_activity("42")


def test_get_activity_by_id(monkeypatch):
    mock_get, calls = _responder((200, {"id": 42, "name": "Lunch Ride"}))
    monkeypatch.setattr(httpx, "get", mock_get)

    activity = StravaClient("x", base_url="https://example.test/api/").get_activity("42")

    assert activity["name"] == "Lunch Ride"
    assert calls[0][0] == "https://example.test/api/activities/42"


def test_get_activity_non_object_body(monkeypatch):
    mock_get, _ = _responder((200, [1, 2]))
    monkeypatch.setattr(httpx, "get", mock_get)

    with pytest.raises(ProviderResponseInvalid):
        StravaClient("x").get_activity("42")
