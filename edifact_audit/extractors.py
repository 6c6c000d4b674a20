"""
Segment semantic extractors

Pure functions turning one tokenized ``Segment`` into a typed fact. They
never raise on malformed input: a segment that cannot be read yields
``None`` and a DEBUG log line. A per-family grammar table decides which
tags a message family carries and how its flight facts are assembled.
"""

import functools
from typing import Callable, Dict, List, NamedTuple, Optional, Tuple
from loguru import logger

from .models import Direction, FlightFacts, MessageFamily, Segment
from .exceptions import SegmentExtractionError


class UnhDetails(NamedTuple):
    message_reference: str
    message_type: str
    flight_token: str
    part_number: int
    part_indicator: Optional[str]
    is_final: bool


class RciDetails(NamedTuple):
    company: str
    locator: str


class NadDetails(NamedTuple):
    qualifier: str
    name: str


class DocDetails(NamedTuple):
    document_type: str
    document_number: str


# Field layout per tag, positions counted after the tag. TIF is absent: its
# surname sits in the first non-empty element, wherever that is.
SEGMENT_LAYOUTS: Dict[str, Tuple[str, ...]] = {
    'UNH': ('message_reference', 'message_identifier', 'common_access_reference', 'transfer_status'),
    'TVL': ('date_time', 'origin_port', 'dest_port', 'airline', 'flight_number'),
    'RCI': ('reservation_control',),
    'BGM': ('document_code',),
    'TDT': ('transport_stage', 'flight_id'),
    'LOC': ('qualifier', 'port'),
    'DTM': ('qualifier_value',),
    'NAD': ('qualifier', 'identification', 'name_and_address', 'party_name'),
    'DOC': ('document_type', 'document_number'),
}

FAMILY_GRAMMAR: Dict[MessageFamily, Tuple[str, ...]] = {
    MessageFamily.PNRGOV: ('UNH', 'TVL', 'TIF', 'RCI'),
    MessageFamily.API: ('UNH', 'BGM', 'TDT', 'LOC', 'DTM', 'NAD', 'DOC'),
    MessageFamily.UNKNOWN: ('UNH',),
}


def tolerant(func: Callable) -> Callable:
    """Turn extraction failures into ``None``"""
    @functools.wraps(func)
    def wrapper(segment: Optional[Segment], *args, **kwargs):
        if segment is None:
            return None
        try:
            return func(segment, *args, **kwargs)
        except (SegmentExtractionError, IndexError, ValueError) as e:
            logger.debug(f"{func.__name__} skipped segment '{segment}': {e}")
            return None
    return wrapper


def _require_tag(segment: Segment, tag: str) -> None:
    if segment.tag != tag:
        raise SegmentExtractionError(f"expected {tag} segment, got {segment.tag or '<empty>'}")


def field_position(tag: str, name: str) -> int:
    """Position of the layout field ``name`` in a ``tag`` segment"""
    layout = SEGMENT_LAYOUTS.get(tag, ())
    if name not in layout:
        raise SegmentExtractionError(f"{tag} layout has no field {name}")
    return layout.index(name)


def field_element(segment: Segment, name: str, offset: int = 0) -> Tuple[str, ...]:
    return segment.element(field_position(segment.tag, name) + offset)


def field_value(segment: Segment, name: str, sub_index: int = 0, offset: int = 0) -> str:
    """Stripped sub-element of a layout field, shifted by ``offset`` positions"""
    return segment.component(field_position(segment.tag, name) + offset, sub_index).strip()


def format_date(value: str, year_first: bool = False) -> str:
    """
    Format a six digit date as dd/mm/yy

    Args:
        value: ``ddmmyy`` (PNRGOV) or ``yymmdd`` (API) digits
        year_first: True when ``value`` is ``yymmdd``

    Returns:
        Formatted date, or the raw value when it is not six digits
    """
    value = value.strip()
    if len(value) != 6 or not value.isdigit():
        return value
    if year_first:
        return f"{value[4:6]}/{value[2:4]}/{value[0:2]}"
    return f"{value[0:2]}/{value[2:4]}/{value[4:6]}"


def format_time(value: str) -> str:
    value = value.strip()
    if len(value) != 4 or not value.isdigit():
        return value
    return f"{value[0:2]}:{value[2:4]}"


@tolerant
def extract_tvl(segment: Segment) -> Optional[FlightFacts]:
    """
    Read flight facts from a TVL segment

    Layout is ``date_time+origin+destination+airline+flight_number``; a
    leading empty element shifts every position by one.
    """
    _require_tag(segment, 'TVL')
    shift = 1 if segment.has_leading_empty else 0
    if len(segment.elements) <= shift:
        raise SegmentExtractionError("TVL has no elements")

    date_time = field_element(segment, 'date_time', shift)
    airline = field_value(segment, 'airline', offset=shift)
    flight_number = field_value(segment, 'flight_number', offset=shift)
    if not airline and not flight_number:
        raise SegmentExtractionError("TVL carries no flight designator")

    return FlightFacts(
        airline_code=airline,
        flight_number=flight_number,
        origin_port=field_value(segment, 'origin_port', offset=shift),
        dest_port=field_value(segment, 'dest_port', offset=shift),
        departure_date=format_date(date_time[0]) if len(date_time) > 0 else "",
        departure_time=format_time(date_time[1]) if len(date_time) > 1 else "",
        arrival_date=format_date(date_time[2]) if len(date_time) > 2 else "",
        arrival_time=format_time(date_time[3]) if len(date_time) > 3 else "",
    )


@tolerant
def extract_tif(segment: Segment) -> Optional[str]:
    """Passenger display name ``SURNAME/GIVEN`` (or ``SURNAME``) from a TIF segment"""
    _require_tag(segment, 'TIF')
    surname_index = next((i for i, e in enumerate(segment.elements) if e and e[0].strip()), None)
    if surname_index is None:
        raise SegmentExtractionError("TIF has no surname")

    surname = segment.component(surname_index).strip()
    given = segment.component(surname_index, 1).strip()
    if not given:
        given = segment.component(surname_index + 1).strip()
    return f"{surname}/{given}" if given else surname


def _parse_part(part_info: Tuple[str, ...], direction: Direction) -> Tuple[int, Optional[str], bool]:
    if not part_info or not part_info[0].strip():
        return 1, None, True

    number_text = part_info[0].strip()
    try:
        part_number = int(number_text)
    except ValueError:
        logger.debug(f"Unreadable UNH part number '{number_text}', assuming part 1")
        part_number = 1

    indicator = part_info[1].strip().upper() if len(part_info) > 1 else ""
    if indicator in ("C", "F"):
        return part_number, indicator, indicator == "F"

    # Bare number: outbound messages are never split
    if direction == Direction.OUTPUT or part_number == 1:
        return part_number, "F", True
    return part_number, "C", False


@tolerant
def extract_unh(segment: Segment, direction: Direction = Direction.INPUT) -> Optional[UnhDetails]:
    """
    Read message header details from a UNH segment

    Args:
        segment: Tokenized UNH segment
        direction: Side the message was logged on; a bare part number on
            an OUTPUT message is always final

    Returns:
        UnhDetails or None when the segment has no reference
    """
    _require_tag(segment, 'UNH')
    reference = field_value(segment, 'message_reference')
    if not reference:
        raise SegmentExtractionError("UNH has no message reference")

    message_type = field_value(segment, 'message_identifier')
    flight_token = ""
    if detect_family(message_type) == MessageFamily.PNRGOV:
        flight_token = field_value(segment, 'common_access_reference').split("/")[0].strip()

    part_number, indicator, is_final = _parse_part(field_element(segment, 'transfer_status'), direction)
    return UnhDetails(reference, message_type, flight_token, part_number, indicator, is_final)


@tolerant
def extract_bgm(segment: Segment, passenger_code: str = "745", crew_code: str = "250") -> Optional[bool]:
    """True for a passenger list, False for a crew list, None for other documents"""
    _require_tag(segment, 'BGM')
    code = field_value(segment, 'document_code')
    if code == passenger_code:
        return True
    if code == crew_code:
        return False
    return None


@tolerant
def extract_tdt(segment: Segment) -> Optional[str]:
    _require_tag(segment, 'TDT')
    flight_id = field_value(segment, 'flight_id')
    return flight_id or None


@tolerant
def extract_loc(segment: Segment) -> Optional[Tuple[str, str]]:
    _require_tag(segment, 'LOC')
    qualifier = field_value(segment, 'qualifier')
    port = field_value(segment, 'port')
    if not qualifier or not port:
        raise SegmentExtractionError("LOC needs a qualifier and a port")
    return qualifier, port


@tolerant
def extract_dtm(segment: Segment) -> Optional[Tuple[str, str]]:
    _require_tag(segment, 'DTM')
    qualifier = field_value(segment, 'qualifier_value', 0)
    value = field_value(segment, 'qualifier_value', 1)
    if not qualifier or not value:
        raise SegmentExtractionError("DTM needs a qualifier and a value")
    return qualifier, value


@tolerant
def extract_rci(segment: Segment) -> Optional[RciDetails]:
    """Company id and reservation number of the first RCI element"""
    _require_tag(segment, 'RCI')
    return RciDetails(field_value(segment, 'reservation_control', 0),
                      field_value(segment, 'reservation_control', 1))


@tolerant
def extract_nad(segment: Segment) -> Optional[NadDetails]:
    """Party qualifier and a name built from at most three name parts"""
    _require_tag(segment, 'NAD')
    qualifier = field_value(segment, 'qualifier')
    if not qualifier:
        raise SegmentExtractionError("NAD has no party qualifier")

    name_element = field_element(segment, 'party_name')
    if not any(c.strip() for c in name_element):
        # Some senders put the name right after the qualifier
        name_element = next((e for e in segment.elements[1:] if any(c.strip() for c in e)), ())
    parts = [c.strip() for c in name_element[:3] if c.strip()]
    if not parts:
        raise SegmentExtractionError("NAD has no name")
    return NadDetails(qualifier, " ".join(" ".join(parts).split()))


@tolerant
def extract_doc(segment: Segment) -> Optional[DocDetails]:
    _require_tag(segment, 'DOC')
    document_type = field_value(segment, 'document_type')
    document_number = field_value(segment, 'document_number')
    if not document_type:
        raise SegmentExtractionError("DOC has no document type")
    return DocDetails(document_type, document_number)


EXTRACTORS: Dict[str, Callable] = {
    'UNH': extract_unh,
    'TVL': extract_tvl,
    'TIF': extract_tif,
    'RCI': extract_rci,
    'BGM': extract_bgm,
    'TDT': extract_tdt,
    'LOC': extract_loc,
    'DTM': extract_dtm,
    'NAD': extract_nad,
    'DOC': extract_doc,
}


def detect_family(message_type: str) -> MessageFamily:
    """Message family from the UNH message identifier (e.g. ``PNRGOV:11:1:IA``)"""
    identifier = (message_type or "").split(":")[0].strip().upper()
    if identifier == MessageFamily.PNRGOV.value:
        return MessageFamily.PNRGOV
    if identifier == MessageFamily.API.value:
        return MessageFamily.API
    return MessageFamily.UNKNOWN


def extract(segment: Segment, family: MessageFamily, **kwargs):
    """Dispatch ``segment`` to its extractor if the family's grammar carries the tag"""
    if segment.tag not in FAMILY_GRAMMAR.get(family, ()):
        return None
    return EXTRACTORS[segment.tag](segment, **kwargs)


def _pnrgov_flight_facts(segments: List[Segment]) -> Optional[FlightFacts]:
    # Message-level TVL precedes the first SRC; later ones are passenger legs
    for segment in segments:
        if segment.tag == 'SRC':
            break
        facts = extract(segment, MessageFamily.PNRGOV) if segment.tag == 'TVL' else None
        if facts is not None:
            return facts
    return None


def _api_flight_facts(segments: List[Segment], config=None) -> Optional[FlightFacts]:
    bgm_codes = {
        'passenger_code': getattr(config, 'passenger_bgm_code', "745"),
        'crew_code': getattr(config, 'crew_bgm_code', "250"),
    }
    departure_loc = getattr(config, 'loc_departure_code', "125")
    arrival_loc = getattr(config, 'loc_arrival_code', "87")
    departure_dtm = getattr(config, 'dtm_departure_code', "189")
    arrival_dtm = getattr(config, 'dtm_arrival_code', "232")
    fields: Dict[str, object] = {}

    for segment in segments:
        if segment.tag == 'NAD':
            # Flight details are in the header group before the first party
            break
        value = extract(segment, MessageFamily.API, **(bgm_codes if segment.tag == 'BGM' else {}))
        if segment.tag == 'BGM':
            fields['is_passenger_data'] = value
        elif value is None:
            continue
        elif segment.tag == 'TDT' and 'full_flight_number' not in fields:
            fields['full_flight_number'] = value
            fields['airline_code'] = value[:2]
            fields['flight_number'] = value[2:]
        elif segment.tag == 'LOC':
            qualifier, port = value
            if qualifier == departure_loc:
                fields.setdefault('origin_port', port)
            elif qualifier == arrival_loc:
                fields.setdefault('dest_port', port)
        elif segment.tag == 'DTM':
            qualifier, stamp = value
            if qualifier in (departure_dtm, arrival_dtm) and len(stamp) >= 6:
                prefix = 'departure' if qualifier == departure_dtm else 'arrival'
                fields.setdefault(f'{prefix}_date', format_date(stamp[:6], year_first=True))
                if len(stamp) >= 10:
                    fields.setdefault(f'{prefix}_time', format_time(stamp[6:10]))

    if 'full_flight_number' not in fields and 'origin_port' not in fields:
        return None
    return FlightFacts(**fields)


def build_flight_facts(segments: List[Segment], family: MessageFamily, config=None) -> Optional[FlightFacts]:
    """
    Assemble the flight facts of one message

    Args:
        segments: Tokenized segments of the message
        family: Message family selecting the grammar rows used
        config: Optional AuditConfig supplying the segment codes

    Returns:
        FlightFacts or None when the message names no flight
    """
    if family == MessageFamily.PNRGOV:
        return _pnrgov_flight_facts(segments)
    if family == MessageFamily.API:
        return _api_flight_facts(segments, config)
    return None
