"""
Passenger sighting extraction for PNRGOV and API (PAXLST) messages
"""

import re
from typing import List, Optional
from loguru import logger

from .config import AuditConfig
from .diagnostics import Diagnostics
from .extractors import extract
from .models import MessageFamily, PassengerFacts, Segment


PASSENGER_NAD_QUALIFIERS = ("FL", "DDU")
CREW_NAD_QUALIFIERS = ("FM", "DDT")
VALID_DOCUMENT_TYPES = ("P", "V", "IP")
RCI_SEARCH_WINDOW = 10
COMPANY_ID_PATTERN = re.compile(r'^[A-Z0-9]{1,3}$')
RESERVATION_PATTERN = re.compile(r'^[A-Z0-9]+$')
MAX_RESERVATION_LENGTH = 20


def describe_leg(segment: Segment) -> Optional[str]:
    """Short ``EK0160 OSL-DXB 29/08/25`` description of a TVL leg"""
    facts = extract(segment, MessageFamily.PNRGOV) if segment.tag == 'TVL' else None
    if facts is None:
        return None
    return " ".join(part for part in (facts.full_flight_number, facts.route, facts.departure_date) if part)


class PassengerExtractor:
    """
    Builds passenger sightings from the segments of one message
    """

    def __init__(self, config: Optional[AuditConfig] = None, diagnostics: Optional[Diagnostics] = None):
        """
        Initialize the extractor

        Args:
            config: Audit configuration supplying BGM and DTM codes
            diagnostics: Sink receiving validation warnings
        """
        self.config = config or AuditConfig()
        self.diagnostics = diagnostics if diagnostics is not None else Diagnostics()

    def sightings(self, segments: List[Segment], family: MessageFamily, source_tag: str = "") -> List[PassengerFacts]:
        """
        Extract passenger sightings for a message family

        Args:
            segments: Segments of one (assembled) message
            family: Family deciding how passengers are recognized
            source_tag: Label recorded on each sighting

        Returns:
            Sightings in message order
        """
        if family == MessageFamily.PNRGOV:
            self.validate_pnrgov(segments, source_tag)
            return self.pnrgov_sightings(segments, source_tag)
        if family == MessageFamily.API:
            return self.api_sightings(segments, source_tag)
        return []

    @staticmethod
    def split_pnr_blocks(segments: List[Segment]) -> List[List[Segment]]:
        """Split message segments into PNR blocks, each starting at an SRC segment"""
        blocks: List[List[Segment]] = []
        for segment in segments:
            if segment.tag == 'SRC':
                blocks.append([])
            elif blocks:
                blocks[-1].append(segment)
        return blocks

    def pnrgov_sightings(self, segments: List[Segment], source_tag: str = "") -> List[PassengerFacts]:
        sightings: List[PassengerFacts] = []

        for number, block in enumerate(self.split_pnr_blocks(segments), start=1):
            locator = ""
            block_legs: List[str] = []
            passengers: List[PassengerFacts] = []

            for segment in block:
                if segment.tag == 'RCI' and not locator:
                    rci = extract(segment, MessageFamily.PNRGOV)
                    locator = rci.locator if rci else ""
                elif segment.tag == 'TIF':
                    name = extract(segment, MessageFamily.PNRGOV)
                    if name:
                        passengers.append(PassengerFacts(display_name=name, source_tags=[source_tag]))
                elif segment.tag == 'TVL':
                    leg = describe_leg(segment)
                    if not leg:
                        continue
                    if passengers:
                        passengers[-1].legs.append(leg)
                    else:
                        block_legs.append(leg)

            locator = locator or f"NO-RLOC-{number}"
            for passenger in passengers:
                passenger.locator = locator
                if not passenger.legs:
                    passenger.legs = list(block_legs)
            sightings.extend(passengers)

        logger.debug(f"PNRGOV {source_tag}: {len(sightings)} passenger sighting(s)")
        return sightings

    def validate_pnrgov(self, segments: List[Segment], source_tag: str = "") -> List[str]:
        """
        Check SRC/RCI structure of a PNRGOV message

        Returns:
            Warnings raised, also recorded on the diagnostics sink
        """
        warnings: List[str] = []
        tags = [s.tag for s in segments]
        has_passengers = 'TIF' in tags

        if has_passengers and 'SRC' not in tags:
            warnings.append("Missing SRC segment in PNRGOV message with passengers")
        if 'SRC' in tags and 'RCI' not in tags:
            warnings.append("Missing RCI segment in PNRGOV message")

        for index, segment in enumerate(segments):
            if segment.tag == 'SRC':
                window = tags[index + 1:index + 1 + RCI_SEARCH_WINDOW]
                if 'RCI' in tags and 'RCI' not in window:
                    warnings.append(f"SRC at segment {index + 1} not followed by RCI within {RCI_SEARCH_WINDOW} segments")
            elif segment.tag == 'RCI':
                warnings.extend(self._validate_rci(segment, index))

        for warning in warnings:
            self.diagnostics.warning(warning, source_tag or None)
        return warnings

    @staticmethod
    def _validate_rci(segment: Segment, index: int) -> List[str]:
        warnings = []
        rci = extract(segment, MessageFamily.PNRGOV)
        company = rci.company if rci else ""
        reservation = rci.locator if rci else ""

        if not COMPANY_ID_PATTERN.match(company.upper()):
            warnings.append(f"RCI at segment {index + 1} has invalid company id '{company}'")
        if not reservation:
            warnings.append(f"RCI at segment {index + 1} has no reservation number")
        elif len(reservation) > MAX_RESERVATION_LENGTH:
            warnings.append(f"RCI at segment {index + 1} reservation number longer than {MAX_RESERVATION_LENGTH}")
        elif not RESERVATION_PATTERN.match(reservation.upper()):
            warnings.append(f"RCI at segment {index + 1} reservation number '{reservation}' is not alphanumeric")
        return warnings

    @staticmethod
    def _is_named_party(segment: Segment) -> bool:
        return len([c for c in segment.element(3) if c.strip()]) >= 2

    def api_sightings(self, segments: List[Segment], source_tag: str = "") -> List[PassengerFacts]:
        """
        Extract API passengers (or crew) from NAD/DOC/DTM groups

        The BGM document code decides whether passenger or crew NAD
        qualifiers are expected. Only the first DOC of a party is used.
        """
        record_is_passenger = True
        for segment in segments:
            if segment.tag == 'BGM':
                kind = extract(segment, MessageFamily.API, passenger_code=self.config.passenger_bgm_code,
                               crew_code=self.config.crew_bgm_code)
                record_is_passenger = kind is not False
                break
        valid_qualifiers = PASSENGER_NAD_QUALIFIERS if record_is_passenger else CREW_NAD_QUALIFIERS

        sightings: List[PassengerFacts] = []
        current: Optional[PassengerFacts] = None

        def flush():
            if current is None:
                return
            if not current.document_number and not current.date_or_key_field:
                self.diagnostics.warning(f"{current.display_name}: Missing DOC and/or DTM", source_tag or None)
            sightings.append(current)

        for segment in segments:
            if segment.tag == 'NAD':
                if not self._is_named_party(segment):
                    continue
                nad = extract(segment, MessageFamily.API)
                if nad is None:
                    continue
                flush()
                current = None
                if nad.qualifier not in valid_qualifiers:
                    self.diagnostics.warning(f"Invalid NAD Segment Found - {nad.qualifier}:{nad.name}",
                                             source_tag or None)
                    continue
                current = PassengerFacts(display_name=nad.name, source_tags=[source_tag])
            elif current is None:
                continue
            elif segment.tag == 'DTM':
                dtm = extract(segment, MessageFamily.API)
                if dtm and dtm[0] == self.config.dtm_birth_code:
                    current.date_or_key_field = dtm[1]
            elif segment.tag == 'DOC' and not current.document_number:
                doc = extract(segment, MessageFamily.API)
                if doc is None:
                    continue
                current.document_type = doc.document_type
                current.document_number = doc.document_number
                if doc.document_type not in VALID_DOCUMENT_TYPES:
                    self.diagnostics.warning(f"Invalid DOC type found - {doc.document_type}:{doc.document_number} "
                                             f"for {current.display_name}", source_tag or None)
        flush()

        logger.debug(f"API {source_tag}: {len(sightings)} {'passenger' if record_is_passenger else 'crew'} sighting(s)")
        return sightings
