"""
Tests for conversational booking capture with a scripted LLM.
"""

import json
import pytest

from booking_intake.pipeline.models import REQUIRED_FIELDS, ChatMessage, ExtractionAttempt
from booking_intake.pipeline.steps.conversational_extractor import (
    ConversationalExtractorStep,
    infer_vehicle_type,
    is_complete_address,
)
from booking_intake.prompts import FALLBACK_QUESTION


COMPLETE_BOOKING = {
    "pickup": "21 East Street, Canterbury, CT1 1ED",
    "destination": "University of Kent, Canterbury, CT2 7NZ",
    "customerName": "John Smith",
    "phone": "07700900123",
    "date": "tomorrow",
    "time": "3pm",
    "passengers": 2,
    "luggage": None,
    "vehicle": "",
}


@pytest.fixture
def extractor(mock_llm, fixed_clock):
    return ConversationalExtractorStep(mock_llm, clock=fixed_clock)


class TestHelpers:
    """Tests for vehicle and address helpers."""

    def test_infer_vehicle_type(self):
        """Test passenger counts map to the smallest suitable vehicle."""
        assert infer_vehicle_type(1) == "Saloon"
        assert infer_vehicle_type(4) == "Estate"
        assert infer_vehicle_type(7) == "MPV"
        assert infer_vehicle_type(12) == "Large MPV"

    def test_complete_address_needs_comma_and_postcode(self):
        """Test chat addresses must be complete to count."""
        assert is_complete_address("21 East Street, Canterbury, CT1 1ED")
        assert not is_complete_address("East Street")
        assert not is_complete_address("21 East Street, Canterbury")


class TestConversationalExtractor:
    """Tests for ConversationalExtractorStep."""

    def test_complete_booking(self, extractor, mock_llm):
        """Test a complete conversation yields the booking summary."""
        mock_llm.complete.side_effect = [json.dumps(COMPLETE_BOOKING), "{}"]

        turn = extractor.extract_incremental("Book me a taxi tomorrow at 3pm")

        assert turn.attempt == ExtractionAttempt.PRIMARY
        assert turn.data.date == "15/07/2025"
        assert turn.data.time == "15:00"
        assert turn.data.customer_phone == "+447700900123"
        assert turn.data.vehicle_type == "Saloon"
        assert turn.missing_fields == []
        assert turn.next_question.startswith("Perfect!")
        assert mock_llm.complete.call_count == 2

    def test_history_replayed(self, extractor, mock_llm):
        """Test earlier messages are sent along with the new one."""
        mock_llm.complete.side_effect = [json.dumps(COMPLETE_BOOKING), "{}"]
        history = [
            ChatMessage(role="user", content="I need a cab tomorrow"),
            ChatMessage(role="assistant", content="What time would you like the pickup?"),
        ]

        extractor.extract_incremental("3pm please", history)

        messages = mock_llm.complete.call_args_list[0].args[0]
        assert messages[0]["role"] == "system"
        assert [m["content"] for m in messages[1:]] == [
            "I need a cab tomorrow",
            "What time would you like the pickup?",
            "3pm please",
        ]

    def test_strict_retry_after_non_json(self, extractor, mock_llm):
        """Test a prose reply triggers the strict JSON prompt."""
        mock_llm.complete.side_effect = [
            "Sure! I can help with that booking.",
            json.dumps(COMPLETE_BOOKING),
            "{}",
        ]

        turn = extractor.extract_incremental("Book me a taxi")

        assert turn.attempt == ExtractionAttempt.STRICT_RETRY
        assert turn.data.customer_name == "John Smith"
        assert mock_llm.complete.call_count == 3
        strict_messages = mock_llm.complete.call_args_list[1].args[0]
        assert "RESPOND WITH ONLY JSON" in strict_messages[0]["content"]

    def test_fallback_when_llm_unavailable(self, extractor, mock_llm):
        """Test repeated failures return the fixed fallback question."""
        mock_llm.complete.side_effect = RuntimeError("LLM unavailable")

        turn = extractor.extract_incremental("Book me a taxi")

        assert turn.attempt == ExtractionAttempt.FALLBACK
        assert turn.missing_fields == list(REQUIRED_FIELDS)
        assert turn.next_question == FALLBACK_QUESTION
        assert turn.data.pickup is None
        assert mock_llm.complete.call_count == 2

    def test_empty_llm_reply_falls_back(self, extractor, mock_llm):
        """Test a client returning None is treated as a parse failure."""
        mock_llm.complete.return_value = None

        turn = extractor.extract_incremental("Book me a taxi")

        assert turn.attempt == ExtractionAttempt.FALLBACK
        assert turn.next_question == FALLBACK_QUESTION
        assert mock_llm.complete.call_count == 2

    def test_house_number_question(self, extractor, mock_llm):
        """Test a bare street name asks for the house number and postcode."""
        mock_llm.complete.side_effect = [
            json.dumps({"pickup": "Rose Lane", "date": "today", "time": "14:30"}),
            "{}",
        ]

        turn = extractor.extract_incremental("From Rose Lane at half two today")

        assert turn.data.date == "14/07/2025"
        assert turn.missing_fields == ["pickup", "destination", "customerName", "phone", "vehicle"]
        assert turn.next_question == "What's the house number and postcode for the pickup at Rose Lane?"

    def test_postcode_question(self, extractor, mock_llm):
        """Test an address with a comma but no postcode asks for the postcode."""
        mock_llm.complete.side_effect = [
            json.dumps({"pickup": "12 Rose Lane, Canterbury", "date": "today", "time": "14:30"}),
            "{}",
        ]

        turn = extractor.extract_incremental("From 12 Rose Lane, Canterbury at half two")

        assert turn.next_question == "Could you give me the postcode for the pickup at 12 Rose Lane, Canterbury?"

    def test_verification_corrects_date(self, extractor, mock_llm):
        """Test the verification pass overrides a wrong date."""
        booking = dict(COMPLETE_BOOKING, date="16/07/2025")
        mock_llm.complete.side_effect = [json.dumps(booking), json.dumps({"date": "15/07/2025", "time": ""})]

        turn = extractor.extract_incremental("Tomorrow at 3pm")

        assert turn.data.date == "15/07/2025"
        assert turn.data.time == "15:00"

    def test_same_day_request_defaults_date(self, extractor, mock_llm):
        """Test urgent requests are dated today when the LLM gives no date."""
        mock_llm.complete.side_effect = [json.dumps({"time": "", "date": ""}), "{}"]

        turn = extractor.extract_incremental("I need a taxi asap")

        assert turn.data.date == "14/07/2025"

    def test_vehicle_follows_passenger_count(self, extractor, mock_llm):
        """Test a named vehicle too small for the party is replaced."""
        booking = dict(COMPLETE_BOOKING, passengers=5, vehicle="Saloon")
        mock_llm.complete.side_effect = [json.dumps(booking), "{}"]

        turn = extractor.extract_incremental("Five of us please")

        assert turn.data.vehicle_type == "Estate"

    def test_named_vehicle_kept_when_large_enough(self, extractor, mock_llm):
        """Test a standard vehicle big enough for the party is kept."""
        booking = dict(COMPLETE_BOOKING, passengers=2, vehicle="mpv")
        mock_llm.complete.side_effect = [json.dumps(booking), "{}"]

        turn = extractor.extract_incremental("Two of us, an MPV please")

        assert turn.data.vehicle_type == "MPV"

    def test_vehicle_missing_without_passengers(self, extractor, mock_llm):
        """Test the vehicle question is asked until passengers are known."""
        booking = dict(COMPLETE_BOOKING, passengers=None, vehicle="Estate")
        mock_llm.complete.side_effect = [json.dumps(booking), "{}"]

        turn = extractor.extract_incremental("An estate please")

        assert turn.data.vehicle_type is None
        assert turn.missing_fields == ["vehicle"]
        assert turn.next_question == "How many passengers will be traveling?"
