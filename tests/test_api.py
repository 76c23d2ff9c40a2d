"""
Tests for the API endpoints.
"""

import json
import pytest
from fastapi.testclient import TestClient

from booking_intake.api import routes
from booking_intake.api.routes import get_pipeline
from booking_intake.core.geocoder import GoogleGeocoder
from booking_intake.main import app
from booking_intake.pipeline.orchestrator import BookingPipeline


@pytest.fixture
def pipeline(fake_autocab, mock_llm, fixed_clock):
    return BookingPipeline(
        autocab=fake_autocab.client(),
        geocoder=GoogleGeocoder(api_key=""),
        llm_client=mock_llm,
        clock=fixed_clock,
    )


@pytest.fixture
def client(pipeline):
    """Create test client with fake collaborators."""
    app.dependency_overrides[get_pipeline] = lambda: pipeline
    yield TestClient(app)
    app.dependency_overrides.clear()


SUBMIT_BODY = {
    "data": {
        "date": "15/07/2025",
        "time": "09:30",
        "pickup": "12 Rose Lane, Canterbury, CT1 2SJ",
        "destination": "Dover Cruise Terminal, Dover, CT17 9DQ",
        "customerName": "Margaret Thompson",
        "customerPhone": "+447700900123",
        "passengers": 2,
        "jobNumber": "4471203",
    }
}


class TestHealthEndpoint:
    """Tests for health check endpoint."""

    def test_health_check_structure(self, client):
        """Test health endpoint returns expected structure."""
        response = client.get("/health")
        assert response.status_code == 200

        data = response.json()
        assert "status" in data
        assert "version" in data
        assert "autocab_configured" in data
        assert "fireworks_configured" in data
        assert "timestamp" in data

    def test_root_endpoint(self, client):
        """Test root endpoint."""
        response = client.get("/")
        assert response.status_code == 200

        data = response.json()
        assert data["name"] == "Booking Intake API"
        assert "docs" in data


class TestEmailEndpoints:
    """Tests for email extraction and processing."""

    def test_extract_requires_content(self, client):
        """Test that email_content is required."""
        response = client.post("/api/emails/extract", json={})
        assert response.status_code == 422

    def test_extract(self, client, fake_autocab, sample_email_multi_stop):
        """Test extraction returns the camelCase record."""
        response = client.post("/api/emails/extract", json={"email_content": sample_email_multi_stop})
        assert response.status_code == 200

        data = response.json()
        assert data["success"] is True
        assert data["data"]["jobNumber"] == "4471203"
        assert data["data"]["via1"] == "4 Mill Road, Sturry, CT2 0AF"
        assert fake_autocab.requests == []

    def test_process(self, client, sample_email_multi_stop):
        """Test an email is booked end to end."""
        response = client.post("/api/emails/process", json={"email_content": sample_email_multi_stop})
        assert response.status_code == 200

        data = response.json()
        assert data["success"] is True
        assert data["status"] == "Succeeded"
        assert data["booking_id"] == "900001"

    def test_process_duplicate(self, client, fake_autocab, sample_email_multi_stop):
        """Test an already-booked job returns 409."""
        fake_autocab.search_results = [{"id": 555, "yourReferences": {"yourReference1": "4471203"}}]

        response = client.post("/api/emails/process", json={"email_content": sample_email_multi_stop})

        assert response.status_code == 409
        assert response.json()["booking_id"] == "555"

    def test_process_incomplete_email(self, client):
        """Test an email without stops is reported without an API call."""
        response = client.post("/api/emails/process", json={"email_content": "Please call me back"})
        assert response.status_code == 200

        data = response.json()
        assert data["success"] is False
        assert data["errors"] == ["Missing required fields: pickup, destination"]


class TestChatEndpoint:
    """Tests for conversational extraction."""

    def test_chat_extract(self, client, mock_llm):
        """Test a chat turn returns the missing fields and next question."""
        mock_llm.complete.side_effect = ['{"pickup": "Rose Lane", "date": "today", "time": "14:30"}', "{}"]

        response = client.post(
            "/api/chat/extract",
            json={"message": "From Rose Lane", "history": [{"role": "user", "content": "Hi"}]},
        )
        assert response.status_code == 200

        data = response.json()
        assert data["data"]["pickup"] == "Rose Lane"
        assert data["missingFields"][0] == "pickup"
        assert "house number" in data["nextQuestion"]

    def test_chat_runs_off_event_loop(self, client, mock_llm, mocker):
        """Test the blocking LLM call is handed to the threadpool."""
        spy = mocker.patch.object(routes, "run_in_threadpool", wraps=routes.run_in_threadpool)
        mock_llm.complete.side_effect = ['{"pickup": "Rose Lane"}', "{}"]

        response = client.post("/api/chat/extract", json={"message": "From Rose Lane"})

        assert response.status_code == 200
        assert spy.call_count == 1
        assert spy.call_args.args[1] == "From Rose Lane"

    def test_chat_requires_message(self, client):
        """Test an empty message is rejected."""
        response = client.post("/api/chat/extract", json={"message": ""})
        assert response.status_code == 422


class TestSubmitEndpoint:
    """Tests for booking submission."""

    def test_submit_creates_booking(self, client, fake_autocab):
        """Test a complete record is created."""
        response = client.post("/api/bookings/submit", json=SUBMIT_BODY)
        assert response.status_code == 200

        data = response.json()
        assert data["status"] == "Succeeded"
        assert data["bookingId"] == "900001"
        created = json.loads(fake_autocab.calls("POST", "/booking/v1/booking")[0].content)
        assert created["name"] == "Margaret Thompson"

    def test_submit_duplicate(self, client, fake_autocab):
        """Test a duplicate job number returns 409 with the existing booking."""
        fake_autocab.search_results = [{"id": 555, "yourReferences": {"yourReference1": "4471203"}}]

        response = client.post("/api/bookings/submit", json=SUBMIT_BODY)

        assert response.status_code == 409
        assert response.json()["existingBooking"]["id"] == 555

    def test_submit_force_create(self, client, fake_autocab):
        """Test force_create books despite the duplicate."""
        fake_autocab.search_results = [{"id": 555, "yourReferences": {"yourReference1": "4471203"}}]

        response = client.post("/api/bookings/submit", json=dict(SUBMIT_BODY, force_create=True))

        assert response.status_code == 200

    def test_submit_failure(self, client, fake_autocab):
        """Test a rejected create returns 502."""
        fake_autocab.create_statuses = [400]

        response = client.post("/api/bookings/submit", json=SUBMIT_BODY)

        assert response.status_code == 502
        assert response.json()["httpStatus"] == 400

    def test_submit_missing_destination(self, client):
        """Test a record without a destination returns 422."""
        body = {"data": {"pickup": "12 Rose Lane, Canterbury, CT1 2SJ"}}

        response = client.post("/api/bookings/submit", json=body)

        assert response.status_code == 422
        assert "destination" in response.json()["detail"]
