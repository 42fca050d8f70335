import pytest
import requests

from conftest import FakeResp, FakeSession
from travel_wrapped.clients.http import JsonHttpClient, classify_response_status, extract_error
from travel_wrapped.clients.rate_limiter import RateLimiter
from travel_wrapped.errors import EnrichmentError, ErrorKind

URL = "https://example.test/reverse"


def _client(responses, *, max_retries=3, backoff_max=8.0, limiter=None):
    sleeps = []
    session = FakeSession(responses)
    client = JsonHttpClient(
        "geocoding",
        session=session,
        limiter=limiter or RateLimiter(0, sleep=sleeps.append),
        max_retries=max_retries,
        backoff_base=1.0,
        backoff_max=backoff_max,
        sleep=sleeps.append,
    )
    return client, session, sleeps


def test_ok_response_returns_json():
    client, session, sleeps = _client([FakeResp(200, {"city": "Paris"})])
    assert client.get_json(URL, {"lat": 1}) == {"city": "Paris"}
    assert session.calls == [(URL, {"lat": 1})]
    assert sleeps == []
    assert client.stats() == {"service": "geocoding", "requests": 1}


def test_server_error_retried_then_succeeds():
    client, session, sleeps = _client([FakeResp(503, None, text="busy"), FakeResp(200, [1])])
    assert client.get_json(URL) == [1]
    assert len(session.calls) == 2
    assert sleeps == [1.0]


def test_server_error_gives_up_after_max_retries():
    client, session, sleeps = _client([FakeResp(500, {"error": "down"})])
    with pytest.raises(EnrichmentError) as excinfo:
        client.get_json(URL)
    assert excinfo.value.kind is ErrorKind.HTTP_SERVER
    assert excinfo.value.status_code == 500
    assert "down" in str(excinfo.value)
    assert len(session.calls) == 3
    assert sleeps == [1.0, 2.0]


def test_client_error_not_retried():
    client, session, sleeps = _client([FakeResp(404, {"message": "nope"})])
    with pytest.raises(EnrichmentError) as excinfo:
        client.get_json(URL)
    assert excinfo.value.kind is ErrorKind.HTTP_CLIENT
    assert not excinfo.value.retryable
    assert len(session.calls) == 1
    assert sleeps == []


def test_client_error_after_retry_raised_without_further_attempts():
    client, session, sleeps = _client([FakeResp(503, None), FakeResp(404, {"error": "gone"})])
    with pytest.raises(EnrichmentError) as excinfo:
        client.get_json(URL)
    assert excinfo.value.kind is ErrorKind.HTTP_CLIENT
    assert excinfo.value.status_code == 404
    assert len(session.calls) == 2
    assert sleeps == [1.0]


def test_rate_limited_response_retried():
    client, session, _ = _client([FakeResp(429, None), FakeResp(200, {"ok": True})])
    assert client.get_json(URL) == {"ok": True}
    assert len(session.calls) == 2


def test_network_error_retried():
    client, session, _ = _client([requests.ConnectionError("reset"), FakeResp(200, {})])
    assert client.get_json(URL) == {}
    assert client.request_count == 2


def test_network_error_exhausted_is_tagged():
    client, _, _ = _client([requests.Timeout("slow")], max_retries=2)
    with pytest.raises(EnrichmentError) as excinfo:
        client.get_json(URL)
    assert excinfo.value.kind is ErrorKind.NETWORK
    assert excinfo.value.retryable


def test_undecodable_body_is_invalid_response():
    client, session, _ = _client([FakeResp(200, None, text="<html>")], max_retries=2)
    with pytest.raises(EnrichmentError) as excinfo:
        client.get_json(URL)
    assert excinfo.value.kind is ErrorKind.INVALID_RESPONSE
    assert len(session.calls) == 2


def test_backoff_capped():
    client, _, sleeps = _client([FakeResp(502, None)], max_retries=6, backoff_max=4.0)
    with pytest.raises(EnrichmentError):
        client.get_json(URL)
    assert sleeps == [1.0, 2.0, 4.0, 4.0, 4.0]


def test_every_attempt_goes_through_the_rate_limiter():
    limiter_sleeps = []
    limiter = RateLimiter(1.0, clock=lambda: 0.0, sleep=limiter_sleeps.append)
    client, session, _ = _client(
        [FakeResp(500, None), FakeResp(500, None), FakeResp(200, {})], limiter=limiter
    )
    client.get_json(URL)
    assert len(session.calls) == 3
    assert limiter_sleeps == [1.0, 2.0]


def test_classify_response_status():
    assert classify_response_status("weather", FakeResp(200, {})) == ("ok", None)
    action, error = classify_response_status("weather", FakeResp(429, None))
    assert action == "retry" and error.kind is ErrorKind.RATE_LIMITED
    action, error = classify_response_status("weather", FakeResp(400, None, text="bad"))
    assert action == "raise" and error.kind is ErrorKind.HTTP_CLIENT


def test_extract_error_prefers_json_then_text():
    assert extract_error(FakeResp(500, {"reason": "Invalid date"})) == "Invalid date"
    assert extract_error(FakeResp(500, None, text="  plain  ")) == "plain"
    assert extract_error(FakeResp(500, None)) is None
    long = extract_error(FakeResp(500, None, text="x" * 500))
    assert len(long) == 200 and long.endswith("...")
    assert extract_error(None) is None
