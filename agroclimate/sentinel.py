# ABOUTME: Recognises provider missing-data encodings and physically implausible values.
# ABOUTME: Every raw provider number passes through validate() before it reaches a domain record.

import logging
import math
from enum import Enum

logger = logging.getLogger(__name__)

# NASA POWER fill value for unavailable data.
SENTINEL = -999.0
SENTINEL_FLOOR = -998.0
SENTINEL_CEILING = 9999.0


class FieldKind(str, Enum):
    TEMPERATURE = "temperature"
    PRECIPITATION = "precipitation"
    SOIL_MOISTURE = "soil_moisture"
    SOLAR_RADIATION = "solar_radiation"
    HUMIDITY = "humidity"
    EVAPOTRANSPIRATION = "evapotranspiration"


# (lower inclusive, upper, upper inclusive)
PLAUSIBLE_RANGES: dict[FieldKind, tuple[float, float, bool]] = {
    FieldKind.TEMPERATURE: (-50.0, 60.0, True),
    FieldKind.PRECIPITATION: (0.0, 1000.0, False),
    FieldKind.SOIL_MOISTURE: (0.0, 1.0, True),
    FieldKind.SOLAR_RADIATION: (0.0, 50.0, True),
    FieldKind.HUMIDITY: (0.0, 100.0, True),
    FieldKind.EVAPOTRANSPIRATION: (0.0, 30.0, True),
}


def validate(value, field: FieldKind) -> float | None:
    """Return the value as a float, or None if it is missing, a sentinel, or out of range."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        logger.debug("Rejecting non-numeric %s value %r", field.value, value)
        return None

    if not math.isfinite(number):
        logger.debug("Rejecting non-finite %s value %r", field.value, value)
        return None
    if number == SENTINEL or number <= SENTINEL_FLOOR or number >= SENTINEL_CEILING:
        logger.debug("Rejecting %s sentinel %s", field.value, number)
        return None

    low, high, high_inclusive = PLAUSIBLE_RANGES[field]
    too_high = number > high if high_inclusive else number >= high
    if number < low or too_high:
        logger.debug("Rejecting implausible %s value %s", field.value, number)
        return None
    return number
