import logging
import math
from typing import Optional, Union

from config import AppConfig
from core.exceptions import TargetPriceError
from core.utils import format_price, parse_numeric_value
from schemas.negotiation import TargetPriceInfo

logger = logging.getLogger(__name__)

Number = Union[str, int, float, None]


def _positive_finite(value: Optional[float]) -> bool:
    return value is not None and math.isfinite(value) and value > 0


def calculate_target_price(distance: Number, rate_per_km: Number) -> TargetPriceInfo:
    """
    Minimum acceptable total price for the trip.

    Args:
        distance: Trip distance, a number or a string such as "500 km"
        rate_per_km: Target rate per distance unit

    Returns:
        TargetPriceInfo with target_total = distance * rate_per_km

    Raises:
        TargetPriceError: distance or rate missing, non-numeric or not positive
    """
    rate = parse_numeric_value(rate_per_km)
    if not _positive_finite(rate):
        raise TargetPriceError(f"Invalid target price per km ({rate_per_km}).")

    parsed_distance = parse_numeric_value(distance)
    if not _positive_finite(parsed_distance):
        raise TargetPriceError(
            f"Invalid or missing distance ({distance or 'Not provided'}). "
            "Agent cannot calculate target price.")

    target_total = parsed_distance * rate
    logger.info(f"Calculated target price: {target_total} ({parsed_distance} x {rate})")

    return TargetPriceInfo(
        target_total=target_total,
        target_total_str=format_price(target_total, AppConfig.CURRENCY),
        target_per_km=rate
    )


def calculate_price_per_km(price: Number, distance: Number) -> Optional[float]:
    """Price divided by distance, None when either side is missing or distance is zero."""
    parsed_price = parse_numeric_value(price)
    parsed_distance = parse_numeric_value(distance)

    if parsed_price is None or not parsed_distance:
        logger.info(f"Invalid price calculation inputs: price={parsed_price}, distance={parsed_distance}")
        return None

    return parsed_price / parsed_distance


def should_negotiate_up(current_price: Optional[float], target_price: Optional[float]) -> bool:
    """
    We sell the transport: keep pushing the price up while it is below target.

    Missing prices default to up, an unknown price is treated as under-priced.
    """
    if current_price is None or target_price is None:
        logger.info(
            f"Cannot determine negotiation direction. current={current_price}, target={target_price}. Defaulting to UP.")
        return True

    return target_price > current_price
