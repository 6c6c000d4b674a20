"""
Passenger reconciliation between input and output populations
"""

import re
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple
from loguru import logger

from .flight_matcher import normalize_flight
from .models import FlightComparison, FlightFacts, MatchingStrategy, PassengerFacts, ReconciliationResult


NON_WORD = re.compile(r'[\s\W_]+')
NAME_TOKEN_SPLIT = re.compile(r'[\s/,.\-]+')
NO_DOCUMENT = "NODOC"
NO_BIRTH_DATE = "NODOB"

KeyFunction = Callable[[PassengerFacts], str]


def normalize(value: Optional[str]) -> str:
    """Strip whitespace and non-word characters, then upper-case"""
    if not value:
        return ""
    return NON_WORD.sub("", value).upper()


def name_tokens(name: str) -> List[str]:
    """Sorted, upper-cased, punctuation-free tokens of a name"""
    tokens = [normalize(t) for t in NAME_TOKEN_SPLIT.split(name or "")]
    return sorted(t for t in tokens if t)


def pnr_and_name_key(passenger: PassengerFacts) -> str:
    return f"{normalize(passenger.locator)}|{normalize(passenger.display_name)}"


def name_doc_dob_key(passenger: PassengerFacts) -> str:
    document = normalize(passenger.document_number) or NO_DOCUMENT
    birth_date = normalize(passenger.date_or_key_field) or NO_BIRTH_DATE
    return f"{' '.join(name_tokens(passenger.display_name))}|{document}|{birth_date}"


class PassengerReconciler:
    """
    Compares passenger populations under a matching strategy
    """

    def __init__(self, strategy: MatchingStrategy = MatchingStrategy.PNR_AND_NAME,
                 custom_key: Optional[KeyFunction] = None):
        """
        Initialize the reconciler

        Args:
            strategy: Identity scheme used for keys
            custom_key: Key function used by the CUSTOM strategy; CUSTOM
                without one falls back to PNR_AND_NAME
        """
        self.strategy = MatchingStrategy(strategy)
        self.custom_key = custom_key

    def register_custom_key(self, key_function: KeyFunction) -> None:
        self.custom_key = key_function

    def identity_key(self, passenger: PassengerFacts) -> str:
        if self.strategy == MatchingStrategy.NAME_DOC_DOB:
            return name_doc_dob_key(passenger)
        if self.strategy == MatchingStrategy.CUSTOM and self.custom_key is not None:
            return self.custom_key(passenger)
        return pnr_and_name_key(passenger)

    def deduplicate(self, sightings: Iterable[PassengerFacts]) -> Tuple[List[PassengerFacts], Set[str], int]:
        """
        Collapse sightings sharing an identity key

        Args:
            sightings: Raw passenger sightings in log order

        Returns:
            (unique passengers in first-seen order, keys seen more than once, total sightings)
        """
        unique: Dict[str, PassengerFacts] = {}
        duplicates: Set[str] = set()
        total = 0

        for sighting in sightings:
            total += 1
            key = self.identity_key(sighting)
            existing = unique.get(key)
            if existing is None:
                passenger = sighting.copy(deep=True)
                passenger.identity_key = key
                passenger.occurrence_count = 1
                unique[key] = passenger
                continue

            duplicates.add(key)
            existing.occurrence_count += 1
            for tag in sighting.source_tags:
                if tag not in existing.source_tags:
                    existing.source_tags.append(tag)
            for leg in sighting.legs:
                if leg not in existing.legs:
                    existing.legs.append(leg)
            if not existing.document_number and sighting.document_number:
                existing.document_number = sighting.document_number
                existing.document_type = sighting.document_type

        return list(unique.values()), duplicates, total

    @staticmethod
    def _pnr_keys(population: List[PassengerFacts]) -> Set[str]:
        return {normalize(p.locator) for p in population if normalize(p.locator)}

    def reconcile(self, input_sightings: Iterable[PassengerFacts], output_sightings: Iterable[PassengerFacts],
                  input_flight: Optional[FlightFacts] = None,
                  output_flight: Optional[FlightFacts] = None) -> ReconciliationResult:
        """
        Reconcile input against output passengers

        Args:
            input_sightings: Passengers seen on the inbound side
            output_sightings: Passengers seen on the outbound side
            input_flight: Flight facts of the inbound messages
            output_flight: Flight facts of the outbound messages

        Returns:
            ReconciliationResult with processed, dropped, added and duplicate key sets
        """
        input_population, input_duplicates, input_total = self.deduplicate(input_sightings)
        output_population, output_duplicates, output_total = self.deduplicate(output_sightings)

        input_keys = {p.identity_key for p in input_population}
        output_keys = {p.identity_key for p in output_population}
        input_pnrs = self._pnr_keys(input_population)
        output_pnrs = self._pnr_keys(output_population)

        result = ReconciliationResult(
            strategy=self.strategy,
            input_population=input_population,
            output_population=output_population,
            processed_keys=input_keys & output_keys,
            dropped_keys=input_keys - output_keys,
            added_keys=output_keys - input_keys,
            duplicate_keys=input_duplicates | output_duplicates,
            processed_pnr_keys=input_pnrs & output_pnrs,
            dropped_pnr_keys=input_pnrs - output_pnrs,
            added_pnr_keys=output_pnrs - input_pnrs,
            total_input_sightings=input_total,
            total_output_sightings=output_total,
            flight_comparison=compare_flights(input_flight, output_flight),
        )

        logger.info(f"Reconciled with {self.strategy.value}: {len(result.processed_keys)} processed, "
                    f"{len(result.dropped_keys)} dropped, {len(result.added_keys)} added, "
                    f"{len(result.duplicate_keys)} duplicate")
        return result


def compare_flights(input_flight: Optional[FlightFacts], output_flight: Optional[FlightFacts]) -> FlightComparison:
    """Compare flight number, route and departure of the input and output flights"""
    if input_flight is None or output_flight is None:
        differences = []
        if input_flight is None:
            differences.append("No input flight details")
        if output_flight is None:
            differences.append("No output flight details")
        return FlightComparison(input_flight=input_flight, output_flight=output_flight,
                                is_match=False, differences=differences)

    same_flight = normalize_flight(input_flight.full_flight_number) == normalize_flight(output_flight.full_flight_number)
    checks = (
        ("Flight number", input_flight.full_flight_number, output_flight.full_flight_number, same_flight),
        ("Route", input_flight.route, output_flight.route, None),
        ("Departure date", input_flight.departure_date, output_flight.departure_date, None),
        ("Departure time", input_flight.departure_time, output_flight.departure_time, None),
    )
    differences = [f"{label}: {a or '-'} vs {b or '-'}"
                   for label, a, b, same in checks if not (same if same is not None else a == b)]
    return FlightComparison(input_flight=input_flight, output_flight=output_flight,
                            is_match=not differences, differences=differences)
