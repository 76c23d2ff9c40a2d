"""
API layer for booking intake.
"""

from .routes import router, get_pipeline
from .schemas import EmailRequest, ChatRequest, SubmitRequest, HealthResponse

__all__ = [
    "router",
    "get_pipeline",
    "EmailRequest",
    "ChatRequest",
    "SubmitRequest",
    "HealthResponse",
]
