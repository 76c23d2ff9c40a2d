"""
Tests for the collaborator clients and caches.
"""

import asyncio
import pytest

import httpx

from booking_intake.core.autocab_client import AutocabClient, booking_id_of
from booking_intake.core.cache import NullCache, TTLCache, build_cache
from booking_intake.core.fireworks_client import FireworksClient, LLMNotConfigured
from booking_intake.core.geocoder import GoogleGeocoder
from booking_intake.core.http_client import RetryingHttpClient


def scripted_transport(responses, seen):
    """MockTransport replying with each response (or raising each exception) in turn."""
    queue = list(responses)

    def handler(request):
        seen.append(request)
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, Exception):
            raise item
        return item

    return httpx.MockTransport(handler)


def http_client(responses, seen):
    return RetryingHttpClient(
        base_url="https://collab.test",
        max_retries=2,
        backoff_seconds=0,
        transport=scripted_transport(responses, seen),
    )


class TestRetryingHttpClient:
    """Tests for the shared retry policy."""

    def test_retries_server_errors(self):
        """Test 5xx responses are retried until one succeeds."""
        seen = []
        client = http_client([httpx.Response(503), httpx.Response(503), httpx.Response(200)], seen)

        response = asyncio.run(client.request("GET", "/ping"))

        assert response.status_code == 200
        assert len(seen) == 3

    def test_returns_last_response_when_exhausted(self):
        """Test the final retryable response is handed back, not raised."""
        seen = []
        client = http_client([httpx.Response(503)], seen)

        response = asyncio.run(client.request("GET", "/ping"))

        assert response.status_code == 503
        assert len(seen) == 3

    def test_rate_limit_retried(self):
        """Test 429 counts as transient."""
        seen = []
        client = http_client([httpx.Response(429), httpx.Response(201)], seen)

        response = asyncio.run(client.request("POST", "/booking"))

        assert response.status_code == 201
        assert len(seen) == 2

    def test_client_errors_not_retried(self):
        """Test 4xx responses return immediately."""
        seen = []
        client = http_client([httpx.Response(400)], seen)

        response = asyncio.run(client.request("GET", "/ping"))

        assert response.status_code == 400
        assert len(seen) == 1

    def test_transport_error_reraised(self):
        """Test a persistent network failure surfaces after the retries."""
        seen = []
        client = http_client([httpx.ConnectError("refused")], seen)

        with pytest.raises(httpx.ConnectError):
            asyncio.run(client.request("GET", "/ping"))
        assert len(seen) == 3


class TestGoogleGeocoder:
    """Tests for GoogleGeocoder."""

    def test_geocode_ok(self):
        """Test the first result's location is returned."""
        seen = []
        body = {"status": "OK", "results": [{"geometry": {"location": {"lat": 51.2, "lng": 1.1}}}]}
        geocoder = GoogleGeocoder(
            api_key="maps-key",
            http=http_client([httpx.Response(200, json=body)], seen),
            url="https://collab.test/geocode/json",
        )

        coordinate = asyncio.run(geocoder.geocode("12 Rose Lane, Canterbury"))

        assert (coordinate.lat, coordinate.lng) == (51.2, 1.1)
        assert seen[0].url.params["address"] == "12 Rose Lane, Canterbury"
        assert seen[0].url.params["key"] == "maps-key"

    def test_geocode_zero_results(self):
        """Test an empty result set is None."""
        seen = []
        geocoder = GoogleGeocoder(
            api_key="maps-key",
            http=http_client([httpx.Response(200, json={"status": "ZERO_RESULTS", "results": []})], seen),
            url="https://collab.test/geocode/json",
        )

        assert asyncio.run(geocoder.geocode("Nowhere")) is None

    def test_geocode_without_key(self):
        """Test no request is made when no key is configured."""
        seen = []
        geocoder = GoogleGeocoder(api_key="", http=http_client([httpx.Response(200)], seen))

        assert asyncio.run(geocoder.geocode("12 Rose Lane")) is None
        assert seen == []


class TestAutocabClient:
    """Tests for the dispatch API client outside the workflow."""

    def client(self, responses, seen):
        return AutocabClient(
            api_key="test-key",
            base_url="https://autocab.test",
            transport=scripted_transport(responses, seen),
            backoff_seconds=0,
        )

    def test_subscription_key_header(self):
        """Test every call carries the subscription key."""
        seen = []
        asyncio.run(self.client([httpx.Response(200, json={"id": 1})], seen).get_booking("1"))

        assert seen[0].headers["Ocp-Apim-Subscription-Key"] == "test-key"

    def test_lookup_zone(self):
        """Test the zone attached to an address."""
        seen = []
        body = {"zone": {"id": 12, "name": "Dover Docks", "descriptor": "012"}}

        zone = asyncio.run(self.client([httpx.Response(200, json=body)], seen).lookup_zone("Dover"))

        assert zone.id == 12
        assert zone.name == "Dover Docks"
        assert seen[0].url.params["text"] == "Dover"

    def test_lookup_zone_failure(self):
        """Test a failed zone lookup is None."""
        seen = []
        zone = asyncio.run(self.client([httpx.Response(400)], seen).lookup_zone("Dover"))
        assert zone is None

    def test_booking_id_of(self):
        """Test ids are read from either field and stringified."""
        assert booking_id_of({"id": 42}) == "42"
        assert booking_id_of({"bookingId": "77"}) == "77"
        assert booking_id_of([]) is None


class TestFireworksClient:
    """Tests for FireworksClient."""

    def test_requires_api_key(self):
        """Test a completion without a key fails fast."""
        client = FireworksClient(api_key="")

        with pytest.raises(LLMNotConfigured):
            client.complete([{"role": "user", "content": "hi"}])

    def test_json_mode(self, mocker):
        """Test json_mode asks for a JSON object response."""
        client = FireworksClient(api_key="fw-key", model="test-model")
        client._client = mocker.MagicMock()
        completion = client._client.chat.completions.create
        completion.return_value.choices = [mocker.MagicMock()]
        completion.return_value.choices[0].message.content = '{"pickup": null}'

        text = client.complete([{"role": "user", "content": "hi"}], temperature=0.0)

        assert text == '{"pickup": null}'
        kwargs = completion.call_args.kwargs
        assert kwargs["model"] == "test-model"
        assert kwargs["temperature"] == 0.0
        assert kwargs["response_format"] == {"type": "json_object"}

    def test_plain_text_mode(self, mocker):
        """Test response_format is omitted outside json_mode."""
        client = FireworksClient(api_key="fw-key")
        client._client = mocker.MagicMock()
        completion = client._client.chat.completions.create
        completion.return_value.choices = [mocker.MagicMock()]
        completion.return_value.choices[0].message.content = "hello"

        client.complete([{"role": "user", "content": "hi"}], json_mode=False)

        assert "response_format" not in completion.call_args.kwargs


class TestCaches:
    """Tests for the lookup caches."""

    def test_ttl_expiry(self):
        """Test entries vanish once their TTL has passed."""
        now = [100.0]
        cache = TTLCache(60, clock=lambda: now[0])

        cache.set("Dover", 12)
        now[0] = 159.0
        assert cache.get("Dover") == 12
        now[0] = 161.0
        assert cache.get("Dover") is None
        assert len(cache) == 0

    def test_null_cache(self):
        """Test NullCache never returns what was set."""
        cache = NullCache()
        cache.set("Dover", 12)
        assert cache.get("Dover") is None

    def test_build_cache(self):
        """Test a TTL cache is only built for a positive TTL."""
        assert isinstance(build_cache(0), NullCache)
        assert isinstance(build_cache(300), TTLCache)
