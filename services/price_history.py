"""
Counterparty price history.

Walks the initial request, the counter offers and the message log of a
negotiation and returns the prices the other side has put on the table,
oldest first, with consecutive repeats collapsed.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

from constant.enum import MessageSender, PriceSource, is_counterparty_sender, sender_role
from core.utils import extract_price_mention, parse_numeric_value
from schemas.negotiation import NegotiationSnapshot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PricePoint:
    value: float
    timestamp: float
    source: PriceSource
    origin: str = ""  # sender or proposer


def get_counterparty_price_history(negotiation: NegotiationSnapshot) -> List[PricePoint]:
    prices: List[PricePoint] = []

    initial_price = parse_numeric_value(negotiation.initial_request.price)
    if initial_price is not None:
        prices.append(PricePoint(initial_price, negotiation.created_at, PriceSource.INITIAL, "initial"))

    for offer in negotiation.counter_offers:
        if sender_role(offer.proposed_by) in (MessageSender.USER, MessageSender.AGENT):
            continue
        price = parse_numeric_value(offer.price)
        if price is not None:
            prices.append(PricePoint(price, offer.timestamp, PriceSource.COUNTER_OFFER, offer.proposed_by))

    for message in negotiation.messages:
        if not is_counterparty_sender(message.sender):
            continue
        price = extract_price_mention(message.content)
        if price is not None:
            prices.append(PricePoint(price, message.timestamp, PriceSource.MESSAGE, message.sender))

    # sorted() is stable, so same-timestamp entries keep initial/offer/message order
    prices = sorted(prices, key=lambda p: p.timestamp)

    unique_prices = [
        price for index, price in enumerate(prices)
        if index == 0 or price.value != prices[index - 1].value
    ]

    logger.info("Counterparty Price History (Sorted, Unique):")
    for point in unique_prices:
        when = datetime.fromtimestamp(point.timestamp / 1000, tz=timezone.utc).isoformat()
        logger.info(f"  - {when}: {point.value} (Source: {point.source.value}-{point.origin})")

    return unique_prices


def last_counterparty_price(negotiation: NegotiationSnapshot) -> Optional[PricePoint]:
    """Most recent price from the other side, excluding the initial request price."""
    history = [p for p in get_counterparty_price_history(negotiation) if p.source != PriceSource.INITIAL]
    return history[-1] if history else None
