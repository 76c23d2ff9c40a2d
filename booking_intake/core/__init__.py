"""
Collaborator clients for the booking intake system.
"""

from .autocab_client import get_autocab_client, AutocabClient, AutocabApiError
from .fireworks_client import get_fireworks_client, FireworksClient, LLMNotConfigured
from .geocoder import get_geocoder, GoogleGeocoder
