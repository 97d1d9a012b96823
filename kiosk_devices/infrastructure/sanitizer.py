"""
Card data sanitization for logging.

The device layer only calls mask() and hash_data(); nothing here is
part of the payment protocols themselves.
"""

import re
from typing import Final

from Crypto.Hash import SHA256


VISIBLE_DIGITS: Final[int] = 4
_CARD_NUMBER = re.compile(r"\b\d(?:[ -]?\d){12,18}\b")


def mask(card_number: str) -> str:
    """
    Mask a card number, keeping only the last four digits.

    Args:
        card_number: Card number, with or without separators.

    Returns:
        Masked card number, e.g. '************1234'.
    """
    digits = re.sub(r"\D", "", card_number or "")
    if len(digits) <= VISIBLE_DIGITS:
        return "*" * len(digits)
    return "*" * (len(digits) - VISIBLE_DIGITS) + digits[-VISIBLE_DIGITS:]


def hash_data(data: str) -> str:
    """SHA-256 hex digest of data, for correlating log lines without content."""
    return SHA256.new(data.encode("utf-8")).hexdigest()


def sanitize(text: str) -> str:
    """Mask every card-number-like digit run in free text."""
    return _CARD_NUMBER.sub(lambda m: mask(m.group(0)), text or "")
