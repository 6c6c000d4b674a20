"""
Log block extraction

Cuts candidate EDIFACT blocks out of noisy multi-threaded log text. Each log
entry is tried against an ordered list of pure strategies (text -> block
list); the first one that finds anything wins. Blocks are tagged with the
direction, timestamp and trace id of the entry they came from.
"""

import re
from typing import Callable, List, Optional, Tuple
from datetime import datetime
from dateutil import parser as date_parser
from loguru import logger

from .config import AuditConfig
from .diagnostics import Diagnostics
from .exceptions import BlockExtractionError
from .models import Direction, LogBlock


ENTRY_START = re.compile(r'(?m)^(?=\d{4}-\d{2}-\d{2}|INFO\s|DEBUG\s|WARN\s|WARNING\s|ERROR\s|TRACE\s)')
TIMESTAMP_PATTERN = re.compile(r'\[(\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2},\d{3})\]')
TRACE_ID_PATTERN = re.compile(r'\[trace\.id:([^\]]+)\]')
# UNA as a standalone tag followed by six service characters (the reserved one may be a space)
UNA_START = re.compile(r'(?<![A-Za-z0-9])UNA(?=[^\sA-Za-z0-9]{4}[^\r\n][^\sA-Za-z0-9])')
MESSAGE_BODY_MARKER = "Message body ["
MESSAGE_BODY_PATTERN = re.compile(r'Message body \[(.*)\]', re.DOTALL)
SEGMENT_LINE = re.compile(r'^[A-Z]{3}[^A-Za-z0-9\s]')

OPENING_TAGS = ('UNA', 'UNB', 'UNG', 'UNH')
KNOWN_TAGS = (
    'UNA', 'UNB', 'UNG', 'UNH', 'BGM', 'NAD', 'COM', 'TDT', 'LOC', 'DTM', 'TIF', 'TVL',
    'RCI', 'MSG', 'ORG', 'EQN', 'SRC', 'DOC', 'ATT', 'GEI', 'FTI', 'IFT', 'REF', 'SSR',
    'TKT', 'MON', 'PTK', 'TXD', 'FOP', 'PRS', 'DAT', 'ABI', 'CNT', 'EBD', 'APD',
    'UNT', 'UNE', 'UNZ',
)
DEFAULT_ELEMENT_SEPARATOR = '+'
FRAMING_PREFIXES = ('$STX$',)
FRAMING_SUFFIXES = ('$ETX$', ']')


def _clean_payload(text: str) -> str:
    text = text.strip()
    for prefix in FRAMING_PREFIXES:
        if text.startswith(prefix):
            text = text[len(prefix):].lstrip()
    changed = True
    while changed:
        changed = False
        for suffix in FRAMING_SUFFIXES:
            if text.endswith(suffix):
                text = text[:-len(suffix)].rstrip()
                changed = True
    return text


def una_capture(text: str) -> List[str]:
    """Capture from each ``UNA`` header greedily to the next ``UNA`` or the end"""
    starts = [m.start() for m in UNA_START.finditer(text)]
    blocks = []
    for i, start in enumerate(starts):
        end = starts[i + 1] if i + 1 < len(starts) else len(text)
        block = _clean_payload(text[start:end])
        if block:
            blocks.append(block)
    return blocks


def message_body(text: str) -> List[str]:
    """Take the bracketed ``Message body [...]`` payload when it holds an interchange"""
    match = MESSAGE_BODY_PATTERN.search(text)
    if not match:
        if MESSAGE_BODY_MARKER in text:
            raise BlockExtractionError("Message body has no closing bracket")
        return []
    payload = _clean_payload(match.group(1))
    if not any(tag in payload for tag in OPENING_TAGS):
        return []
    return [payload]


def _strip_framing(line: str) -> str:
    line = line.strip()
    for prefix in FRAMING_PREFIXES:
        if line.startswith(prefix):
            line = line[len(prefix):].lstrip()
    return line


def line_scan(text: str) -> List[str]:
    """
    Heuristic line scan

    A line starting with an opening tag opens a block; segment lines or lines
    holding the element separator extend it; any other non-blank line closes it.
    The element separator is ``+`` unless the block's UNA line declared another.
    """
    blocks: List[str] = []
    current: List[str] = []
    element = DEFAULT_ELEMENT_SEPARATOR

    def close():
        if current:
            block = _clean_payload("\n".join(current))
            if block:
                blocks.append(block)
            current.clear()

    for raw_line in text.splitlines():
        line = _strip_framing(raw_line)
        if not line:
            continue
        if line.startswith(OPENING_TAGS) and SEGMENT_LINE.match(line):
            # UNA and UNB start a new interchange unless UNB directly follows its UNA
            follows_una = len(current) == 1 and current[0].startswith('UNA')
            if line.startswith('UNA') or (line.startswith('UNB') and not follows_una):
                close()
                element = line[4] if line.startswith('UNA') and len(line) > 4 else DEFAULT_ELEMENT_SEPARATOR
            current.append(line)
        elif current and (line[:3] in KNOWN_TAGS or element in line):
            current.append(line)
        else:
            close()
    close()
    return blocks


Strategy = Callable[[str], List[str]]

DEFAULT_STRATEGIES: List[Tuple[str, Strategy]] = [
    ('una_capture', una_capture),
    ('message_body', message_body),
    ('line_scan', line_scan),
]


def parse_timestamp(raw: Optional[str]) -> Optional[datetime]:
    """Parse a ``2025-08-28T12:35:09,873`` log timestamp"""
    if not raw:
        return None
    try:
        return date_parser.isoparse(raw.replace(",", "."))
    except (ValueError, OverflowError) as e:
        logger.debug(f"Unparseable log timestamp '{raw}': {e}")
        return None


class LogBlockExtractor:
    """
    Extracts tagged EDIFACT blocks from log text
    """

    def __init__(self, config: Optional[AuditConfig] = None, diagnostics: Optional[Diagnostics] = None,
                 strategies: Optional[List[Tuple[str, Strategy]]] = None):
        """
        Initialize the extractor

        Args:
            config: Audit configuration supplying the direction and thematic markers
            diagnostics: Sink receiving warnings for missed thematic entries
            strategies: Ordered (name, strategy) pairs; the defaults when omitted
        """
        self.config = config or AuditConfig()
        self.diagnostics = diagnostics if diagnostics is not None else Diagnostics()
        self.strategies = strategies or DEFAULT_STRATEGIES
        self.logger = logger

    @staticmethod
    def split_entries(text: str) -> List[str]:
        """Split log text into entries at each leading date or level marker"""
        if not text:
            return []
        return [entry for entry in ENTRY_START.split(text) if entry.strip()]

    @staticmethod
    def marker_hits(header: str, markers: List[str]) -> int:
        """Count markers found in ``header`` as whole words (``sent`` never matches ``present``)"""
        return sum(1 for marker in markers
                   if marker and re.search(rf'(?<![A-Za-z0-9]){re.escape(marker)}(?![A-Za-z0-9])', header))

    def infer_direction(self, header: str) -> Direction:
        """
        Infer the side of the business-rules processor an entry was logged on

        Args:
            header: Log entry text outside the EDIFACT payload

        Returns:
            OUTPUT when only outbound markers are present, INPUT otherwise
        """
        output_hits = self.marker_hits(header, self.config.output_markers)
        input_hits = self.marker_hits(header, self.config.input_markers)
        if output_hits and not input_hits:
            return Direction.OUTPUT
        if output_hits and input_hits:
            self.logger.debug(f"Entry carries both inbound and outbound markers, treated as {Direction.INPUT.value}")
        return Direction.INPUT

    def _run_strategies(self, entry: str) -> Tuple[str, List[str]]:
        for name, strategy in self.strategies:
            try:
                blocks = strategy(entry)
            except BlockExtractionError as e:
                self.logger.debug(f"Strategy {name} gave up: {e}")
                continue
            if blocks:
                return name, blocks
        return "", []

    @staticmethod
    def _header_text(entry: str, blocks: List[str]) -> str:
        header = entry
        for block in blocks:
            if block in header:
                header = header.replace(block, " ")
                continue
            for line in block.splitlines():
                if line.strip():
                    header = header.replace(line.strip(), " ")
        return header

    def extract_entry(self, entry: str, source: str = "", index: int = 0) -> List[LogBlock]:
        """
        Extract the blocks of one log entry

        Args:
            entry: One log entry, header line plus any payload lines
            source: File the entry was read from
            index: Entry position, used in diagnostics

        Returns:
            Tagged blocks in the order they appear
        """
        strategy, texts = self._run_strategies(entry)
        if not texts:
            if any(marker in entry for marker in self.config.thematic_markers):
                self.diagnostics.warning(f"Entry {index + 1} mentions a message family but holds no EDIFACT block",
                                         source or None)
            return []

        header = self._header_text(entry, texts)
        timestamp_match = TIMESTAMP_PATTERN.search(header)
        trace_match = TRACE_ID_PATTERN.search(header)
        timestamp = timestamp_match.group(1) if timestamp_match else None
        direction = self.infer_direction(header)

        self.logger.debug(f"Entry {index + 1}: {len(texts)} block(s) via {strategy}, direction {direction.value}")
        return [
            LogBlock(
                text=text,
                direction=direction,
                timestamp=timestamp,
                timestamp_dt=parse_timestamp(timestamp),
                trace_id=trace_match.group(1).strip() if trace_match else None,
                source=source,
                strategy=strategy,
            )
            for text in texts
        ]

    def extract(self, text: str, source: str = "") -> List[LogBlock]:
        """
        Extract every block from a log text

        Args:
            text: Whole log file content
            source: File name recorded on each block

        Returns:
            Blocks in file order
        """
        blocks: List[LogBlock] = []
        for index, entry in enumerate(self.split_entries(text)):
            blocks.extend(self.extract_entry(entry, source, index))
        self.logger.info(f"Extracted {len(blocks)} block(s) from {source or 'text'}")
        return blocks
