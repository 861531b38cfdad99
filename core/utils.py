import math
import time
import re
from typing import Optional, Union

from email_reply_parser import EmailReplyParser

# Digits with an optional decimal part, optionally prefixed with a currency marker.
# Matches "€1850", "EUR 1,850", "1850.50"
PRICE_MENTION_PATTERN = re.compile(r'(?:€|EUR)?\s*(\d+(?:[.,]\d+)?)', re.IGNORECASE)


def parse_numeric_value(text: Union[str, int, float, None]) -> Optional[float]:
    """
    Parses a numeric value out of a string like "€1,850 EUR" or "500 km".

    Everything except digits, commas and periods is dropped, commas are
    treated as thousands separators. Returns None instead of raising.
    """
    if text is None or isinstance(text, bool):
        return None

    if isinstance(text, (int, float)):
        value = float(text)
        return None if math.isnan(value) else value

    cleaned = re.sub(r'[^\d.,]', '', str(text))
    without_commas = cleaned.replace(',', '')
    if not without_commas:
        return None

    # Leading decimal only, same as a lenient parseFloat: "1.850.00" -> 1.85
    match = re.match(r'\d+(?:\.\d*)?|\.\d+', without_commas)
    if not match:
        return None

    try:
        return float(match.group(0))
    except (ValueError, TypeError):
        return None


def extract_price_mention(text: Optional[str]) -> Optional[float]:
    """Best-effort first price mentioned in a free-text message."""
    if not text:
        return None

    match = PRICE_MENTION_PATTERN.search(text)
    if not match:
        return None

    return parse_numeric_value(match.group(1))


def visible_reply_text(text: Optional[str]) -> str:
    """Drop quoted history and signatures from an email reply body."""
    if not text:
        return ""

    visible = EmailReplyParser.parse_reply(text)
    return visible.strip() if visible and visible.strip() else text.strip()


def format_price(value: Optional[float], currency: str = "EUR") -> Optional[str]:
    if value is None:
        return None
    return f"{value:.2f} {currency}"


def now_ms() -> int:
    """Milliseconds since epoch, the timestamp unit used by the negotiation store."""
    return int(time.time() * 1000)
