"""
Permissive target-flight filter

Flight numbers are written with and without leading zeros depending on the
sender (``EK0160`` in PNRGOV, ``EK160`` in some API feeds), so a message
is kept when any of several loose comparisons succeeds.
"""

import re
from typing import Iterable, List, Optional, Tuple
from loguru import logger

from .models import LogicalMessage


DESIGNATOR_PATTERN = re.compile(r'^([A-Z]{2,3}|[A-Z]\d|\d[A-Z])(\d{1,5}[A-Z]?)$')


def split_designator(flight: str) -> Tuple[str, str]:
    """
    Split a flight designator into airline and number

    Args:
        flight: e.g. ``EK0160``

    Returns:
        ``("EK", "0160")``, or ``("", flight)`` when it does not look like a designator
    """
    flight = (flight or "").strip().upper()
    match = DESIGNATOR_PATTERN.match(flight)
    if not match:
        return "", flight
    return match.group(1), match.group(2)


def normalize_number(number: str) -> str:
    stripped = number.lstrip("0")
    return stripped or ("0" if number else "")


def normalize_flight(flight: str) -> str:
    """``EK0160`` and ``EK160`` both normalize to ``EK160``"""
    airline, number = split_designator(flight)
    return f"{airline}{normalize_number(number)}"


class FlightMatcher:
    """Decides whether a message belongs to the target flight"""

    def __init__(self, target_flight: Optional[str]):
        self.target = (target_flight or "").strip().upper()
        self.target_airline, self.target_number = split_designator(self.target)

    @property
    def active(self) -> bool:
        return bool(self.target)

    def _candidates(self, message: LogicalMessage) -> List[str]:
        candidates = [message.flight_token]
        facts = message.flight_facts
        if facts is not None:
            candidates.append(facts.full_flight_number)
            candidates.append(f"{facts.airline_code}{facts.flight_number}")
        return [c.strip().upper() for c in candidates if c and c.strip()]

    def matches_designator(self, flight: str) -> bool:
        """Compare one flight designator with the target"""
        flight = (flight or "").strip().upper()
        if not flight:
            return False
        if flight == self.target:
            return True
        if normalize_flight(flight) == normalize_flight(self.target):
            return True
        if flight in self.target or self.target in flight:
            return True

        airline, number = split_designator(flight)
        target_number = normalize_number(self.target_number)
        if airline and airline == self.target_airline and target_number:
            return target_number in number
        return False

    def matches(self, message: LogicalMessage) -> bool:
        """
        Check a message against the target flight

        Args:
            message: Message with its flight token and facts

        Returns:
            True when no target is set or any comparison succeeds
        """
        if not self.active:
            return True

        for candidate in self._candidates(message):
            if self.matches_designator(candidate):
                return True

        if self.target in message.raw_block.upper():
            logger.debug(f"Flight {self.target} matched on raw text of message {message.message_reference}")
            return True
        return False

    def filter(self, messages: Iterable[LogicalMessage]) -> List[LogicalMessage]:
        return [m for m in messages if self.matches(m)]


def matches_target_flight(message: LogicalMessage, target_flight: Optional[str]) -> bool:
    return FlightMatcher(target_flight).matches(message)
