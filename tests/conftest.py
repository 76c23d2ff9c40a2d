"""
Pytest configuration and fixtures.
"""

import json
import pytest
from datetime import datetime
from pathlib import Path
import sys

import httpx

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from booking_intake.core.autocab_client import AutocabClient
from booking_intake.pipeline.models import Coordinate, ExtractedJobData, ResolvedAddress, Zone
from booking_intake.pipeline.steps.address_normalizer import parse_address_parts


FIXED_NOW = datetime(2025, 7, 14, 10, 17, 45)


@pytest.fixture
def fixed_clock():
    """UK wall clock frozen at Monday 14 July 2025 10:17:45."""
    return lambda: FIXED_NOW


@pytest.fixture
def sample_email_multi_stop():
    """Account job with two pick-ups and a drop-off."""
    return """
JOB NUMBER: 4471203
Date: 15 July 2025
1ST PICK UP: 09:30
ACCOUNT: SGH-SAGA
VEHICLE TYPE: MPV
TOTAL LUGGAGE: 3
Job Price: £185.00
Total Price: £222.00

Pick up 09:30
ADDRESS: 12 Rose Lane, Canterbury, CT1 2SJ
PASSENGERS: 2
NAME: Margaret Thompson | PHONE: 07700900123
MOBILITY AIDS: Walking stick

Pick up 09:50
ADDRESS: 4 Mill Road, Sturry, CT2 0AF
PASSENGERS: 4
NAME: David Wilson PHONE: 01227 555123 / 07700900456

Drop Off 11:15
ADDRESS: Dover Cruise Terminal, Dover, CT17 9DQ
FLIGHT/SHIP: Ventura
"""


@pytest.fixture
def sample_email_out_of_order():
    """Stop sections listed out of chronological order."""
    return """
JOB NUMBER: 5520118
Date: 3 August 2025

Pick up 10:05
ADDRESS: 7 Beach Street, Herne Bay, CT6 5PT
PASSENGERS: 1
NAME: Alan Brooks PHONE: 07700900777

Pick up 09:40
ADDRESS: 22 London Road, Canterbury, CT2 8LR
PASSENGERS: 3
NAME: Susan Clarke PHONE: 07700900888

Drop Off 11:15
ADDRESS: Gatwick Airport South Terminal, Horley, RH6 0NP
"""


@pytest.fixture
def sample_email_simple():
    """Single-journey email without stop sections."""
    return """
Booking request

Customer name: Peter Hughes
Phone: 01304 555010
Collection address: 10 Queen Street, Deal, CT14 6EY
Destination: Ashford International Station, Ashford, TN24 8PL
Date: 2nd September 2025
time: 14:45
2 passengers, 2 suitcases
"""


@pytest.fixture
def sample_record():
    """Extracted record for the multi-stop sample email."""
    return ExtractedJobData(
        date="15/07/2025",
        time="09:30",
        pickup="12 Rose Lane, Canterbury, CT1 2SJ",
        pickup_note="Margaret Thompson - +447700900123",
        via1="4 Mill Road, Sturry, CT2 0AF",
        via1_note="David Wilson - +441227555123, +447700900456",
        destination="Dover Cruise Terminal, Dover, CT17 9DQ",
        customer_name="David Wilson",
        customer_phone="+447700900123, +447700900456, +441227555123",
        customer_account="SGH-SAGA",
        passengers=6,
        luggage=3,
        vehicle_type="MPV",
        price="185.00",
        job_number="4471203",
        driver_notes="Vehicle: MPV, Passengers: 6, Luggage: 3",
    )


def resolve(text: str) -> ResolvedAddress:
    parts = parse_address_parts(text)
    return ResolvedAddress(
        text=text,
        house=parts.house,
        street=parts.street,
        town=parts.town,
        postcode=parts.postcode,
        coordinate=Coordinate(lat=51.28, lng=1.08),
        zone=Zone(id=7, name="Canterbury Center", descriptor="001"),
    )


@pytest.fixture
def resolved_for():
    """Build the resolved-address map for a record without collaborators."""
    def _resolved(record: ExtractedJobData):
        return {key: resolve(address) for key, address, _ in record.stops()}
    return _resolved


class FakeAutocab:
    """Scripted AUTOCAB booking API served through httpx.MockTransport."""

    def __init__(self):
        self.requests = []
        self.search_results = []
        self.search_statuses = []
        self.bookings = {}
        self.get_status = None
        self.create_statuses = []
        self.update_statuses = []
        self.next_id = 900001
        self.zone = {"id": 7, "name": "Canterbury Center", "descriptor": "001"}

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path == "/booking/v1/search":
            status = self.search_statuses.pop(0) if self.search_statuses else 200
            if status != 200:
                return httpx.Response(status, text="search unavailable")
            return httpx.Response(200, json={"bookings": self.search_results})

        if path == "/booking/v1/addressFromText":
            return httpx.Response(200, json={"zone": self.zone})

        if path == "/booking/v1/booking" and request.method == "POST":
            status = self.create_statuses.pop(0) if self.create_statuses else 200
            if status != 200:
                return httpx.Response(status, text="E" * 300)
            booking_id = self.next_id
            self.next_id += 1
            self.bookings[str(booking_id)] = dict(json.loads(request.content), id=booking_id)
            return httpx.Response(200, json={"id": booking_id})

        if path.startswith("/booking/v1/booking/"):
            booking_id = path.rsplit("/", 1)[-1]
            if request.method == "GET":
                if self.get_status:
                    return httpx.Response(self.get_status, text="forbidden")
                if booking_id not in self.bookings:
                    return httpx.Response(404)
                return httpx.Response(200, json=self.bookings[booking_id])
            if request.method == "POST":
                status = self.update_statuses.pop(0) if self.update_statuses else 200
                if status != 200:
                    return httpx.Response(status, text=f"update rejected {status}")
                self.bookings[booking_id] = dict(json.loads(request.content), id=int(booking_id))
                return httpx.Response(200, json=self.bookings[booking_id])
            if request.method == "DELETE":
                self.bookings.pop(booking_id, None)
                return httpx.Response(200)

        return httpx.Response(404)

    def calls(self, method: str, path: str):
        """Requests matching a method and exact path."""
        return [r for r in self.requests if r.method == method and r.url.path == path]

    def client(self) -> AutocabClient:
        return AutocabClient(
            api_key="test-key",
            base_url="https://autocab.test",
            transport=httpx.MockTransport(self.handler),
            backoff_seconds=0,
        )


@pytest.fixture
def fake_autocab():
    """AUTOCAB API fake with no bookings."""
    return FakeAutocab()


@pytest.fixture
def mock_llm(mocker):
    """Text-completion client whose replies are set per test via side_effect."""
    client = mocker.MagicMock()
    client.complete.return_value = "{}"
    return client
