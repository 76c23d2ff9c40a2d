"""
Pydantic models for the booking intake pipeline.
These models define the data structures passed between pipeline steps.

Attributes are snake_case; JSON aliases are camelCase so the records
serialise the way the dispatch system and the front end expect.
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field, field_serializer, model_validator
from pydantic.alias_generators import to_camel


VIA_KEYS = ("via1", "via2", "via3", "via4", "via5")
STOP_KEYS = ("pickup",) + VIA_KEYS + ("destination",)

# Required by the conversational flow, in the order they are asked for
REQUIRED_FIELDS = ("date", "time", "pickup", "destination", "customerName", "phone", "vehicle")


class CamelModel(BaseModel):
    """Base model serialising to camelCase while accepting either name."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Coordinate(CamelModel):
    lat: float
    lng: float


class Zone(CamelModel):
    """Dispatch area attached to an address by the external system."""
    id: int
    name: str
    descriptor: str = ""


class AddressParts(CamelModel):
    """Components parsed out of a free-text UK address."""
    house: str = ""
    street: str = ""
    town: str = ""
    postcode: str = ""


class ResolvedAddress(CamelModel):
    """An address with coordinate and zone, ready for a booking payload."""
    text: str
    house: str = ""
    street: str = ""
    town: str = ""
    postcode: str = ""
    coordinate: Coordinate
    zone: Zone

    def to_dispatch_address(self) -> Dict[str, Any]:
        """Render in the shape the dispatch booking API accepts."""
        return {
            "bookingPriority": 0,
            "coordinate": {
                "latitude": self.coordinate.lat,
                "longitude": self.coordinate.lng,
                "isEmpty": False,
            },
            "id": -1,
            "isCustom": False,
            "postCode": self.postcode,
            "source": "UserTyped",
            "street": self.street,
            "text": self.text,
            "town": self.town,
            "house": self.house,
            "zone": {
                "id": self.zone.id,
                "name": self.zone.name,
                "descriptor": self.zone.descriptor,
            },
            "zoneId": self.zone.id,
        }


class ExtractedJobData(CamelModel):
    """Canonical booking record produced by the email and chat extractors."""
    date: Optional[str] = Field(default=None, description="Pickup date as DD/MM/YYYY")
    time: Optional[str] = Field(default=None, description="Pickup time as HH:MM")

    pickup: Optional[str] = None
    via1: Optional[str] = None
    via2: Optional[str] = None
    via3: Optional[str] = None
    via4: Optional[str] = None
    via5: Optional[str] = None
    destination: Optional[str] = None

    pickup_note: Optional[str] = Field(default=None, description="'Name - phone1, phone2' for the pickup stop")
    via1_note: Optional[str] = None
    via2_note: Optional[str] = None
    via3_note: Optional[str] = None
    via4_note: Optional[str] = None
    via5_note: Optional[str] = None
    destination_note: Optional[str] = None

    customer_name: Optional[str] = None
    customer_phone: Optional[str] = Field(default=None, description="Comma-joined +44 numbers")
    customer_reference: Optional[str] = None
    customer_account: Optional[str] = None

    passengers: Optional[int] = Field(default=None, ge=1)
    luggage: Optional[int] = Field(default=None, ge=0)
    vehicle_type: Optional[str] = None
    mobility_aids: Optional[str] = None
    flight_ship: Optional[str] = None

    price: Optional[str] = Field(default=None, description="Decimal string, e.g. '185.00'")
    job_number: Optional[str] = None
    driver_notes: Optional[str] = None

    warnings: List[str] = Field(default_factory=list, description="Data-quality issues found while extracting")

    @model_validator(mode="after")
    def check_stop_order(self) -> "ExtractedJobData":
        gap = False
        for key in VIA_KEYS:
            if not getattr(self, key):
                gap = True
            elif gap:
                raise ValueError(f"{key} is set but an earlier via point is empty")
        if not self.destination and any(getattr(self, key) for key in VIA_KEYS):
            raise ValueError("via points require a destination")
        return self

    @property
    def effective_vehicle_type(self) -> str:
        return self.vehicle_type or "Saloon"

    def stops(self) -> List[Tuple[str, str, Optional[str]]]:
        """Present stops in visit order as (stop_key, address, note)."""
        return [
            (key, getattr(self, key), getattr(self, f"{key}_note"))
            for key in STOP_KEYS
            if getattr(self, key)
        ]

    def notes_in_order(self) -> List[Tuple[str, Optional[str]]]:
        return [(key, getattr(self, f"{key}_note")) for key in STOP_KEYS]


# =============================================================================
# Dispatch submission
# =============================================================================

class StopType(str, Enum):
    PICKUP = "Pickup"
    VIA = "Via"
    DESTINATION = "Destination"


class StopPayload(CamelModel):
    address: ResolvedAddress
    note: str = ""
    passenger_details_index: Optional[int] = None
    type: StopType

    @field_serializer("address")
    def serialize_address(self, address: ResolvedAddress) -> Dict[str, Any]:
        return address.to_dispatch_address()


class PassengerDetail(CamelModel):
    name: str
    telephone_number: str = ""
    email: str = ""
    special_requirements: str = ""


class PricingBlock(CamelModel):
    """Manual price override sent in admin mode."""
    price: float
    cost: float
    fare: float
    cash_amount: float
    is_manual: bool = True
    is_locked: bool = True
    pricing_tariff: str = "ADMIN MODE - Manual Price Override"
    waiting_time: float = 0
    waiting_time_free: float = 0
    waiting_time_chargeable: float = 0
    gratuity_amount: float = 0
    waiting_time_cost: float = 0
    waiting_time_price: float = 0
    loyalty_card_cost: float = 0
    extra_cost: float = 0
    payment_fee: float = 0
    booking_fee: float = 0
    cash_account_fee: float = 0
    kickback_fee_commission: float = 0
    driver_commission_fee: float = 0
    service_charge_fee: float = 0
    account_amount: float = 0
    card_amount: float = 0


class YourReferences(CamelModel):
    your_reference1: str = ""
    your_reference2: str = ""


class BookingSubmission(CamelModel):
    """Payload for one create or update call on the dispatch system."""
    pickup_due_time: str = Field(description="UK wall-clock time, YYYY-MM-DDTHH:MM:00.000")
    pickup: StopPayload
    vias: List[StopPayload] = Field(default_factory=list)
    destination: StopPayload
    passengers: int = 1
    luggage: int = 0
    name: str = ""
    telephone_number: str = ""
    extra_passenger_details: List[PassengerDetail] = Field(default_factory=list)
    your_references: YourReferences = Field(default_factory=YourReferences)
    driver_note: str = ""
    office_note: str = ""
    customer_id: int
    payment_method: str = "Cash"
    payment_type: str = "Cash"
    our_reference: str = ""
    company: str = ""
    priority: int = 5
    pricing: Optional[PricingBlock] = None
    row_version: Optional[Any] = Field(default=None, description="Concurrency token echoed from a fetched booking")
    preserved_fields: Dict[str, Any] = Field(default_factory=dict, exclude=True)

    def to_payload(self) -> Dict[str, Any]:
        """JSON body for the dispatch API, layered over any preserved fields."""
        payload = dict(self.preserved_fields)
        body = self.model_dump(by_alias=True, mode="json")
        for optional in ("pricing", "rowVersion"):
            if body.get(optional) is None:
                body.pop(optional, None)
        payload.update(body)
        return payload


# =============================================================================
# Submission workflow
# =============================================================================

class WorkflowState(str, Enum):
    NEW = "New"
    SEARCHING = "Searching"
    CREATING = "Creating"
    UPDATING = "Updating"
    SUCCEEDED = "Succeeded"
    DUPLICATE_DETECTED = "DuplicateDetected"
    FAILED = "Failed"


class SubmissionStatus(str, Enum):
    SUCCEEDED = "Succeeded"
    DUPLICATE_DETECTED = "DuplicateDetected"
    FAILED = "Failed"


class GroupResult(CamelModel):
    """Outcome of one passenger-group sub-booking."""
    passengers: int
    success: bool
    booking_id: Optional[str] = None
    http_status: Optional[int] = None
    error_body: Optional[str] = None


class SubmissionResult(CamelModel):
    status: SubmissionStatus
    booking_id: Optional[str] = None
    original_booking_id: Optional[str] = None
    booking_id_changed: bool = False
    existing_booking: Optional[Dict[str, Any]] = None
    http_status: Optional[int] = None
    error_body: Optional[str] = None
    overridden: bool = False
    group_results: List[GroupResult] = Field(default_factory=list)
    state_history: List[WorkflowState] = Field(default_factory=list)
    message: str = ""

    @property
    def succeeded(self) -> bool:
        return self.status == SubmissionStatus.SUCCEEDED


# =============================================================================
# Conversational extraction
# =============================================================================

class ChatMessage(CamelModel):
    role: str = Field(description="'user' or 'assistant'")
    content: str


class ExtractionAttempt(str, Enum):
    PRIMARY = "primary"
    STRICT_RETRY = "strict_retry"
    FALLBACK = "fallback"


class ConversationTurn(CamelModel):
    data: ExtractedJobData
    missing_fields: List[str] = Field(default_factory=list)
    next_question: str
    attempt: ExtractionAttempt = ExtractionAttempt.PRIMARY


# =============================================================================
# Pipeline result
# =============================================================================

class PipelineMetrics(BaseModel):
    """Processing metrics."""
    total_duration_seconds: float
    step_durations: Dict[str, float] = Field(default_factory=dict)
    collaborator_calls: int = 0
    sub_bookings: int = 0


class PipelineResult(BaseModel):
    """Complete result of processing one booking email."""
    success: bool
    extracted: Optional[ExtractedJobData] = None
    submission: Optional[BookingSubmission] = None
    submission_result: Optional[SubmissionResult] = None
    metrics: Optional[PipelineMetrics] = None
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
