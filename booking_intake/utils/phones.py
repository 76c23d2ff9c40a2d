"""
UK phone number normalisation shared by the extractors and payload builder.
"""

import re
from typing import Iterable, List, Optional

NON_DIGITS = re.compile(r"\D")
UK_PREFIXES = ("07", "01", "02")


def to_national(value: str) -> Optional[str]:
    """
    Normalise to an 11-digit national number (07..., 01..., 02...).

    Ten-digit numbers starting 7, 1 or 2 have lost their leading zero
    in the source and get it back. Returns None for anything else.
    """
    digits = NON_DIGITS.sub("", value or "")
    if len(digits) == 12 and digits.startswith("44"):
        digits = "0" + digits[2:]
    if len(digits) == 10 and digits[0] in "712":
        digits = "0" + digits
    if len(digits) == 11 and digits.startswith(UK_PREFIXES):
        return digits
    return None


def to_international(value: str) -> Optional[str]:
    national = to_national(value)
    return "+44" + national[1:] if national else None


def is_mobile(national: str) -> bool:
    return national.startswith("07")


def prioritise(numbers: Iterable[str], limit: int = 3) -> List[str]:
    """Deduplicate national numbers, mobiles first, capped at limit."""
    mobiles: List[str] = []
    landlines: List[str] = []
    for number in numbers:
        if number in mobiles or number in landlines:
            continue
        (mobiles if is_mobile(number) else landlines).append(number)
    return (mobiles + landlines)[:limit]
