"""
Data models for the EDIFACT audit engine
"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Set, Tuple
from pydantic import BaseModel, Field, validator
import pandas as pd


class Direction(str, Enum):
    """Which side of the business-rules processor a message was seen on"""
    INPUT = "INPUT"
    OUTPUT = "OUTPUT"


class MessageFamily(str, Enum):
    """EDIFACT message family carried by a block"""
    PNRGOV = "PNRGOV"
    API = "PAXLST"
    UNKNOWN = "UNKNOWN"


class MatchingStrategy(str, Enum):
    """How two passenger sightings are judged to be the same person"""
    PNR_AND_NAME = "PNR_AND_NAME"
    NAME_DOC_DOB = "NAME_DOC_DOB"
    CUSTOM = "CUSTOM"


class Separators(BaseModel):
    """Service characters declared by a UNA header (or the IATA defaults)"""

    sub_element: str = ":"
    element: str = "+"
    decimal: str = "."
    release: str = "?"
    reserved: str = "*"
    terminator: str = "'"
    una_present: bool = False

    class Config:
        frozen = True

    @validator('sub_element', 'element', 'decimal', 'release', 'reserved', 'terminator')
    def single_character(cls, v):
        if not isinstance(v, str) or len(v) != 1:
            raise ValueError(f"separator must be a single character, got {v!r}")
        return v

    @validator('terminator')
    def distinct_delimiters(cls, v, values):
        element = values.get('element')
        sub_element = values.get('sub_element')
        if v in (element, sub_element) or (element is not None and element == sub_element):
            raise ValueError("terminator, element and sub-element separators must differ")
        return v

    def as_tuple(self) -> Tuple[str, str, str, str, str, str]:
        return (self.sub_element, self.element, self.decimal,
                self.release, self.reserved, self.terminator)

    # Equality covers the declared characters only, not how they were found
    def __eq__(self, other):
        if not isinstance(other, Separators):
            return NotImplemented
        return self.as_tuple() == other.as_tuple()

    def __hash__(self):
        return hash(self.as_tuple())


class Segment(BaseModel):
    """One tokenized EDIFACT segment: a tag plus elements of sub-elements"""

    tag: str
    elements: Tuple[Tuple[str, ...], ...] = ()

    class Config:
        frozen = True

    def element(self, index: int) -> Tuple[str, ...]:
        """Return the sub-elements at ``index`` or an empty tuple"""
        if 0 <= index < len(self.elements):
            return self.elements[index]
        return ()

    def component(self, index: int, sub_index: int = 0) -> str:
        """Return one sub-element value or an empty string"""
        element = self.element(index)
        if 0 <= sub_index < len(element):
            return element[sub_index]
        return ""

    @property
    def has_leading_empty(self) -> bool:
        return bool(self.elements) and self.elements[0] == ("",)

    def __str__(self) -> str:
        """Unescaped values joined with the default separators, for log lines only"""
        return self.tag + "".join("+" + ":".join(e) for e in self.elements)


class FlightFacts(BaseModel):
    """Flight identity and schedule taken from TVL (PNRGOV) or TDT/LOC/DTM (API)"""

    airline_code: str = ""
    flight_number: str = ""
    full_flight_number: str = ""
    origin_port: str = ""
    dest_port: str = ""
    departure_date: str = ""
    departure_time: str = ""
    arrival_date: str = ""
    arrival_time: str = ""
    is_passenger_data: Optional[bool] = None

    class Config:
        frozen = True

    @validator('full_flight_number', always=True)
    def build_full_flight_number(cls, v, values):
        if v:
            return v
        return f"{values.get('airline_code', '')}{values.get('flight_number', '')}"

    @property
    def route(self) -> str:
        if not self.origin_port and not self.dest_port:
            return ""
        return f"{self.origin_port}-{self.dest_port}"

    @property
    def departure(self) -> str:
        return f"{self.departure_date} {self.departure_time}".strip()

    @property
    def arrival(self) -> str:
        return f"{self.arrival_date} {self.arrival_time}".strip()


class PassengerFacts(BaseModel):
    """A passenger sighting, or a deduplicated passenger once reconciled"""

    display_name: str = ""
    document_number: str = ""
    document_type: str = ""
    # Date of birth for API sightings; PNRGOV sightings carry the locator instead
    date_or_key_field: str = ""
    locator: str = ""
    legs: List[str] = Field(default_factory=list)
    source_tags: List[str] = Field(default_factory=list)
    occurrence_count: int = 1
    identity_key: str = ""

    @property
    def source_tag(self) -> str:
        return ", ".join(self.source_tags)

    def as_row(self) -> Dict[str, object]:
        return {
            'name': self.display_name,
            'locator': self.locator,
            'document': self.document_number,
            'document_type': self.document_type,
            'date_of_birth': self.date_or_key_field,
            'legs': " ".join(self.legs),
            'source': self.source_tag,
            'count': self.occurrence_count,
            'identity_key': self.identity_key,
        }


class LogBlock(BaseModel):
    """A candidate EDIFACT block cut out of a log entry"""

    text: str
    direction: Direction = Direction.INPUT
    timestamp: Optional[str] = None
    timestamp_dt: Optional[datetime] = None
    trace_id: Optional[str] = None
    source: str = ""
    strategy: str = ""


class LogicalMessage(BaseModel):
    """One transmitted part of an EDIFACT message with its extracted facts"""

    message_reference: str = ""
    part_number: int = 1
    part_indicator: Optional[str] = None
    is_final: bool = True
    direction: Direction = Direction.INPUT
    family: MessageFamily = MessageFamily.UNKNOWN
    message_type: str = ""
    flight_token: str = ""
    flight_facts: Optional[FlightFacts] = None
    segments: List[Segment] = Field(default_factory=list)
    raw_block: str = ""
    timestamp: Optional[str] = None
    timestamp_dt: Optional[datetime] = None
    trace_id: Optional[str] = None
    source: str = ""

    @validator('is_final', always=True)
    def final_follows_indicator(cls, v, values):
        indicator = values.get('part_indicator')
        if indicator == "F":
            return True
        if indicator == "C":
            return False
        return v

    @property
    def flight_number(self) -> str:
        """Flight identifier preferred for filtering and grouping"""
        if self.flight_token:
            return self.flight_token
        if self.flight_facts is not None:
            return self.flight_facts.full_flight_number
        return ""

    @property
    def is_multipart(self) -> bool:
        if self.direction == Direction.OUTPUT:
            return False
        return self.part_number > 1 or not self.is_final

    def dedup_key(self) -> str:
        return f"{self.message_reference}_{self.part_number}_{self.flight_number}_{self.direction.value}"


class MultipartGroup(BaseModel):
    """All parts seen for one message reference"""

    message_reference: str
    scope: str = ""
    direction: Optional[Direction] = None
    parts: Dict[int, LogicalMessage] = Field(default_factory=dict)
    has_first: bool = False
    has_final: bool = False

    def add_part(self, message: LogicalMessage) -> None:
        """Add a part; flags only ever move from False to True"""
        self.parts.setdefault(message.part_number, message)
        if self.direction is None:
            self.direction = message.direction
        if message.part_number == 1:
            self.has_first = True
        if message.part_indicator == "F" or (message.part_indicator is None and message.is_final):
            self.has_final = True

    @property
    def is_complete(self) -> bool:
        return self.has_first and self.has_final

    @property
    def highest_part(self) -> int:
        return max(self.parts) if self.parts else 0

    def missing_parts(self) -> List[int]:
        return [n for n in range(1, self.highest_part + 1) if n not in self.parts]

    def sorted_parts(self) -> List[LogicalMessage]:
        return [self.parts[n] for n in sorted(self.parts)]

    def assembled_text(self) -> str:
        return "\n".join(part.raw_block for part in self.sorted_parts())

    def report(self) -> Dict[str, object]:
        return {
            'message_reference': self.message_reference,
            'scope': self.scope,
            'direction': self.direction.value if self.direction else None,
            'parts': sorted(self.parts),
            'has_first': self.has_first,
            'has_final': self.has_final,
            'complete': self.is_complete,
            'missing_parts': self.missing_parts(),
        }


class FlightComparison(BaseModel):
    """Input versus output flight facts"""

    input_flight: Optional[FlightFacts] = None
    output_flight: Optional[FlightFacts] = None
    is_match: bool = False
    differences: List[str] = Field(default_factory=list)


class ReconciliationResult(BaseModel):
    """Passenger populations and the key sets derived from comparing them"""

    strategy: MatchingStrategy = MatchingStrategy.PNR_AND_NAME
    input_population: List[PassengerFacts] = Field(default_factory=list)
    output_population: List[PassengerFacts] = Field(default_factory=list)
    processed_keys: Set[str] = Field(default_factory=set)
    dropped_keys: Set[str] = Field(default_factory=set)
    added_keys: Set[str] = Field(default_factory=set)
    duplicate_keys: Set[str] = Field(default_factory=set)
    processed_pnr_keys: Set[str] = Field(default_factory=set)
    dropped_pnr_keys: Set[str] = Field(default_factory=set)
    added_pnr_keys: Set[str] = Field(default_factory=set)
    total_input_sightings: int = 0
    total_output_sightings: int = 0
    flight_comparison: FlightComparison = Field(default_factory=FlightComparison)

    def _select(self, population: List[PassengerFacts], keys: Set[str]) -> List[PassengerFacts]:
        return [p for p in population if p.identity_key in keys]

    @property
    def processed_passengers(self) -> List[PassengerFacts]:
        return self._select(self.input_population, self.processed_keys)

    @property
    def dropped_passengers(self) -> List[PassengerFacts]:
        return self._select(self.input_population, self.dropped_keys)

    @property
    def added_passengers(self) -> List[PassengerFacts]:
        return self._select(self.output_population, self.added_keys)

    def _repeated(self, population: List[PassengerFacts]) -> List[PassengerFacts]:
        return [p for p in self._select(population, self.duplicate_keys) if p.occurrence_count > 1]

    @property
    def input_duplicates(self) -> List[PassengerFacts]:
        return self._repeated(self.input_population)

    @property
    def output_duplicates(self) -> List[PassengerFacts]:
        return self._repeated(self.output_population)

    @property
    def duplicate_passengers(self) -> List[PassengerFacts]:
        """Passengers seen more than once on either side, input side first"""
        return self.input_duplicates + self.output_duplicates

    def counts(self) -> Dict[str, int]:
        return {
            'input_sightings': self.total_input_sightings,
            'output_sightings': self.total_output_sightings,
            'input_passengers': len(self.input_population),
            'output_passengers': len(self.output_population),
            'processed': len(self.processed_keys),
            'dropped': len(self.dropped_keys),
            'added': len(self.added_keys),
            'duplicates': len(self.duplicate_keys),
            'processed_pnrs': len(self.processed_pnr_keys),
            'dropped_pnrs': len(self.dropped_pnr_keys),
            'added_pnrs': len(self.added_pnr_keys),
        }


class AuditResult(BaseModel):
    """Complete result of one audit pass over a log directory or file"""

    reconciliation: ReconciliationResult = Field(default_factory=ReconciliationResult)
    messages: List[LogicalMessage] = Field(default_factory=list)
    multipart_groups: List[MultipartGroup] = Field(default_factory=list)
    processed_files: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    infos: List[str] = Field(default_factory=list)
    processed_at: datetime = Field(default_factory=datetime.now)
    processing_time_ms: Optional[int] = None

    def passengers(self, category: str) -> List[PassengerFacts]:
        """
        Passenger rows for one category

        Args:
            category: input, output, processed, dropped, added, duplicate,
                input_duplicate or output_duplicate

        Returns:
            Deduplicated passengers of that category
        """
        rec = self.reconciliation
        categories = {
            'input': rec.input_population,
            'output': rec.output_population,
            'processed': rec.processed_passengers,
            'dropped': rec.dropped_passengers,
            'added': rec.added_passengers,
            'duplicate': rec.duplicate_passengers,
            'input_duplicate': rec.input_duplicates,
            'output_duplicate': rec.output_duplicates,
        }
        if category not in categories:
            raise KeyError(f"Unknown passenger category: {category}")
        return categories[category]

    def to_dataframe(self, category: str = 'input') -> pd.DataFrame:
        columns = list(PassengerFacts().as_row().keys())
        if category == 'duplicate':
            rec = self.reconciliation
            rows = [dict(p.as_row(), side=Direction.INPUT.value) for p in rec.input_duplicates]
            rows += [dict(p.as_row(), side=Direction.OUTPUT.value) for p in rec.output_duplicates]
            return pd.DataFrame(rows, columns=columns + ['side'])
        rows = [p.as_row() for p in self.passengers(category)]
        return pd.DataFrame(rows, columns=columns)

    def completeness_report(self) -> List[Dict[str, object]]:
        return [group.report() for group in self.multipart_groups]

    def summary(self) -> Dict[str, int]:
        summary = self.reconciliation.counts()
        summary['messages'] = len(self.messages)
        summary['multipart_groups'] = len(self.multipart_groups)
        summary['incomplete_groups'] = sum(1 for g in self.multipart_groups if not g.is_complete)
        summary['warnings'] = len(self.warnings)
        summary['errors'] = len(self.errors)
        return summary
