"""
Booking Intake

Turns account-job emails and chat conversations into bookings on an
external taxi dispatch system:
- Rule-based extraction of stops, passengers, phones and prices from email text
- Fireworks AI (Llama 3.3 70B) for conversational booking capture
- Address and zone resolution against Google geocoding and AUTOCAB
- Duplicate-safe create/update workflow for the AUTOCAB booking API
"""

__version__ = "1.0.0"
