import json
import re
import logging
from typing import Optional

logger = logging.getLogger(__name__)

WRAPPER_KEYS = ("booking", "response", "data")


def extract_json_object(text: str) -> Optional[dict]:
    """
    Extract the outermost JSON object from an LLM response.
    Handles markdown code blocks and stray prose around the object.
    Returns None when no object can be decoded.
    """
    if not text:
        return None

    clean_text = text
    if "```" in text:
        match = re.search(r"```(?:json)?\s*(\{.*\})\s*```", text, re.DOTALL | re.IGNORECASE)
        if match:
            clean_text = match.group(1)

    start_idx = clean_text.find("{")
    end_idx = clean_text.rfind("}")
    if start_idx == -1 or end_idx <= start_idx:
        return None

    try:
        data = json.loads(clean_text[start_idx:end_idx + 1])
    except json.JSONDecodeError as e:
        logger.warning(f"JSON extraction failed: {e}")
        return None

    if not isinstance(data, dict):
        return None
    return unwrap_response(data)


def unwrap_response(data: dict) -> dict:
    """Flatten a single {'booking': {...}} style wrapper."""
    if len(data) == 1:
        key = next(iter(data))
        if key in WRAPPER_KEYS and isinstance(data[key], dict):
            return data[key]
    return data
