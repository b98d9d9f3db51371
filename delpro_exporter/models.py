"""
Milking Session Model

Defines the milking-session record read from DelPro, the label set derived
from it and the decoding of the teat bitfields.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

# Live mode looks back this far from the (lagged) current time
DEFAULT_LOOKBACK_WINDOW = timedelta(hours=24)
# Voluntary-session data lands in the database a few minutes after EndTime
LIVE_MODE_DELAY = timedelta(minutes=5)
DEFAULT_HISTORICAL_LOOKBACK_DAYS = 30

UNKNOWN_LACTATION = "unknown"
NO_TEATS = "none"

BASE_LABEL_NAMES = (
    "animal_number",
    "animal_name",
    "animal_reg_no",
    "breed",
    "milk_device_id",
    "destination",
    "lactation",
)

BREED_TRANSLATIONS = {
    "Holstein Friesian": "Holstein",
    "Montbeliard": "Montbéliarde",
    "Swedish Red-and-White": "Rouge Suédoise",
    "Cross Breed": "Croisée",
    "Unknown Breed": "Race Inconnue",
}


class Teat(Enum):
    """Teat positions as stored in the DelPro incomplete/kickoff bitfields."""

    LEFT_FRONT = 1
    RIGHT_FRONT = 2
    LEFT_REAR = 4
    RIGHT_REAR = 8

    @property
    def label(self) -> str:
        return self.name.lower()


# Decoding order is fixed so that the concatenated teats label is stable
TEAT_ORDER = (Teat.LEFT_FRONT, Teat.RIGHT_FRONT, Teat.LEFT_REAR, Teat.RIGHT_REAR)


def decode_teats(bitfield: Optional[int]) -> List[str]:
    """
    Decode a teat bitfield into the affected teat names.

    Args:
        bitfield: 4-bit teat field, or None when DelPro has no value

    Returns:
        Teat names in front-left, front-right, rear-left, rear-right order
    """
    if not bitfield:
        return []

    return [teat.label for teat in TEAT_ORDER if bitfield & teat.value]


def teats_label(bitfield: Optional[int]) -> str:
    """Comma-joined affected teats, or "none" when no bit is set."""
    teats = decode_teats(bitfield)
    if not teats:
        return NO_TEATS
    return ",".join(teats)


def sanitize_label_value(value: Optional[str]) -> str:
    """Remove characters that would break a Prometheus label value."""
    if value is None:
        return ""

    for char in ('"', "\\", "\n", "\r"):
        value = value.replace(char, "")
    return value


def translate_breed(breed_name: str) -> str:
    """Translate a DelPro breed name to its French display name."""
    return BREED_TRANSLATIONS.get(breed_name, breed_name)


@dataclass
class MilkingRecord:
    """
    One completed milking session for one animal on one device.

    Label values are expected to be sanitized by the record source before the
    record is built. Optional fields are None when DelPro has no value, and
    every metric derived from them must be skipped in that case.
    """

    oid: int
    animal_number: str
    animal_name: str
    animal_reg_no: str
    breed_name: str
    device_id: str
    destination_name: str
    yield_liters: float
    begin_time: datetime
    end_time: datetime
    lactation_number: Optional[int] = None
    days_in_lactation: Optional[int] = None
    conductivity: Optional[int] = None
    duration: Optional[int] = None
    somatic_cell_count: Optional[int] = None
    incomplete: Optional[int] = None
    kickoff: Optional[int] = None

    @property
    def lactation(self) -> str:
        if self.lactation_number is None:
            return UNKNOWN_LACTATION
        return str(self.lactation_number)

    @property
    def end_timestamp(self) -> float:
        """End time as epoch seconds."""
        return self.end_time.timestamp()

    def label_values(self) -> Tuple[str, ...]:
        """Base label values, ordered as BASE_LABEL_NAMES."""
        return (
            self.animal_number,
            self.animal_name,
            self.animal_reg_no,
            self.breed_name,
            self.device_id,
            self.destination_name,
            self.lactation,
        )

    def labels(self) -> Dict[str, str]:
        return dict(zip(BASE_LABEL_NAMES, self.label_values()))

    def label_key(self) -> str:
        """
        Deterministic label string identifying the series of this record.

        Two records with the same key accumulate onto the same counters.
        """
        return ",".join(
            f'{name}="{value}"' for name, value in zip(BASE_LABEL_NAMES, self.label_values())
        )
