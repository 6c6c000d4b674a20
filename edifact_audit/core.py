"""
Core audit engine implementation
"""

import time
from pathlib import Path
from typing import Dict, List, Optional, Union
from loguru import logger

from .block_extractor import LogBlockExtractor
from .config import AuditConfig
from .diagnostics import Diagnostics
from .exceptions import ConfigurationError, LogReadError, ValidationError
from .extractors import build_flight_facts, detect_family, extract_unh
from .flight_matcher import FlightMatcher
from .models import AuditResult, Direction, FlightFacts, LogBlock, LogicalMessage, MultipartGroup, Segment
from .multipart import MultipartAssembler, group_segments
from .passengers import PassengerExtractor
from .reconciler import KeyFunction, PassengerReconciler
from .separators import SeparatorResolver, describe
from .tokenizer import SegmentTokenizer


ENVELOPE_TAGS = ('UNA', 'UNB', 'UNG', 'UNE', 'UNZ')


def get_engine_version() -> str:
    """Get the current audit engine version"""
    return "1.0.0"


class AuditEngine:
    """
    Main audit engine: reads logs, extracts EDIFACT messages and reconciles
    the passengers seen on the input and output side of a flight
    """

    def __init__(self, config: Optional[AuditConfig] = None, diagnostics: Optional[Diagnostics] = None,
                 custom_key: Optional[KeyFunction] = None):
        """
        Initialize the audit engine

        Args:
            config: Audit configuration; defaults when omitted
            diagnostics: Sink collecting warnings, errors and infos; a fresh one per audit when omitted
            custom_key: Identity key function for the CUSTOM matching strategy
        """
        if config is not None and not isinstance(config, AuditConfig):
            raise ConfigurationError(f"config must be an AuditConfig, got {type(config).__name__}")
        self.config = config or AuditConfig()
        self._injected_diagnostics = diagnostics
        self.diagnostics = diagnostics if diagnostics is not None else Diagnostics()
        self.custom_key = custom_key

        # Configure logging
        logger.remove()
        if self.config.enable_logging:
            logger.add(
                lambda msg: print(msg, end=""),
                level=self.config.log_level.upper(),
                format="<green>{time:HH:mm:ss}</green> | <level>{level}</level> | {message}"
            )

        logger.info(f"Audit engine {get_engine_version()} initialized "
                    f"(strategy {self.config.matching_strategy.value}, strict {self.config.strict_validation})")

    def _fresh_diagnostics(self) -> None:
        if self._injected_diagnostics is None:
            self.diagnostics = Diagnostics()

    def list_log_files(self, path: Union[str, Path]) -> List[Path]:
        """
        List the log files to audit

        Args:
            path: A log file or a directory of log files

        Returns:
            Files in sorted order; a missing path is recorded as an error
        """
        path = Path(path)
        if path.is_file():
            return [path]
        if not path.is_dir():
            self.diagnostics.error(f"Log path not found: {path}")
            return []

        files = set()
        for pattern in self.config.log_file_patterns:
            files.update(p for p in path.glob(pattern) if p.is_file())
        if not files:
            self.diagnostics.warning(f"No log files matching {self.config.log_file_patterns} in {path}")
        return sorted(files)

    @staticmethod
    def read_log(path: Path) -> str:
        """Read a log file as UTF-8, falling back to Latin-1 for 8-bit logs"""
        try:
            return path.read_text(encoding='utf-8')
        except UnicodeDecodeError:
            logger.debug(f"{path.name} is not UTF-8, reading as Latin-1")
            try:
                return path.read_text(encoding='latin-1')
            except OSError as e:
                raise LogReadError(f"Cannot read {path}: {e}") from e
        except OSError as e:
            raise LogReadError(f"Cannot read {path}: {e}") from e

    @staticmethod
    def message_spans(segments: List[Segment]) -> List[List[int]]:
        """Segment positions of each UNH..UNT message in an interchange"""
        spans: List[List[int]] = []
        current: Optional[List[int]] = None
        for index, segment in enumerate(segments):
            if segment.tag == 'UNH':
                current = [index]
                spans.append(current)
            elif current is not None and segment.tag not in ENVELOPE_TAGS:
                current.append(index)
                if segment.tag == 'UNT':
                    current = None
        return spans

    @classmethod
    def split_messages(cls, segments: List[Segment]) -> List[List[Segment]]:
        """Split an interchange into UNH..UNT message segment lists"""
        return [[segments[i] for i in span] for span in cls.message_spans(segments)]

    def validate_envelope(self, segments: List[Segment], source: str = "") -> None:
        """
        Compare the UNB and UNZ interchange control references

        A mismatch is an error in strict mode and a warning otherwise.
        """
        unb = next((s for s in segments if s.tag == 'UNB'), None)
        unz = next((s for s in segments if s.tag == 'UNZ'), None)
        if unb is None or unz is None:
            missing = " and ".join(tag for tag, seg in (('UNB', unb), ('UNZ', unz)) if seg is None)
            self.diagnostics.warning(f"Interchange without {missing} segment", source or None)
            return

        unb_reference = unb.component(4).strip()
        unz_reference = unz.component(1).strip()
        if unb_reference == unz_reference:
            return

        mismatch = ValidationError(f"Interchange reference mismatch: UNB {unb_reference} vs UNZ {unz_reference}")
        if self.config.strict_validation:
            self.diagnostics.error(str(mismatch), source or None)
        else:
            self.diagnostics.warning(str(mismatch), source or None)

    def build_messages(self, block: LogBlock) -> List[LogicalMessage]:
        """
        Turn one log block into logical messages

        Args:
            block: Extracted block with its log metadata

        Returns:
            One LogicalMessage per UNH found in the block
        """
        separators = SeparatorResolver(self.config.una_search_lines).resolve(block.text)
        if self.config.verbosity.upper() == 'DEBUG':
            logger.debug(f"Separators for block in {block.source}: {describe(separators)}")

        tokenizer = SegmentTokenizer(separators)
        raw_segments = tokenizer.split_segments(block.text)
        segments = [tokenizer.tokenize_segment(s) for s in raw_segments]
        spans = self.message_spans(segments)
        if not spans:
            logger.debug(f"Block from {block.source} has no UNH segment, skipped")
            return []
        self.validate_envelope(segments, block.source)

        messages = []
        for span in spans:
            chunk = [segments[i] for i in span]
            unh = extract_unh(chunk[0], direction=block.direction)
            if unh is None:
                self.diagnostics.warning(f"Unreadable UNH segment '{raw_segments[span[0]]}'", block.source or None)
                continue

            family = detect_family(unh.message_type)
            # Original segment text keeps the block's own separators and release characters
            raw = block.text if len(spans) == 1 else "\n".join(
                f"{raw_segments[i]}{separators.terminator}" for i in span)
            messages.append(LogicalMessage(
                message_reference=unh.message_reference,
                part_number=unh.part_number,
                part_indicator=unh.part_indicator,
                is_final=unh.is_final,
                direction=block.direction,
                family=family,
                message_type=unh.message_type,
                flight_token=unh.flight_token,
                flight_facts=build_flight_facts(chunk, family, self.config),
                segments=chunk,
                raw_block=raw,
                timestamp=block.timestamp,
                timestamp_dt=block.timestamp_dt,
                trace_id=block.trace_id,
                source=block.source,
            ))
        return messages

    @staticmethod
    def deduplicate_messages(messages: List[LogicalMessage]) -> List[LogicalMessage]:
        """Keep the first copy of each (reference, part, flight, direction)"""
        seen: Dict[str, LogicalMessage] = {}
        for message in messages:
            key = message.dedup_key()
            if key in seen:
                logger.debug(f"Duplicate message {key} in {message.source}, already seen in {seen[key].source}")
                continue
            seen[key] = message
        return list(seen.values())

    @staticmethod
    def _first_flight(groups: List[MultipartGroup], direction: Direction) -> Optional[FlightFacts]:
        for group in groups:
            if group.direction != direction:
                continue
            for part in group.sorted_parts():
                if part.flight_facts is not None:
                    return part.flight_facts
        return None

    def _process_blocks(self, blocks: List[LogBlock], result: AuditResult) -> AuditResult:
        messages: List[LogicalMessage] = []
        for block in blocks:
            messages.extend(self.build_messages(block))

        unique = self.deduplicate_messages(messages)
        if len(unique) < len(messages):
            self.diagnostics.info(f"Removed {len(messages) - len(unique)} duplicate message(s)")

        matcher = FlightMatcher(self.config.target_flight)
        selected = matcher.filter(unique)
        if matcher.active:
            self.diagnostics.info(f"{len(selected)} of {len(unique)} message(s) match flight {matcher.target}")

        groups = MultipartAssembler(self.diagnostics).assemble(selected)

        extractor = PassengerExtractor(self.config, self.diagnostics)
        sightings: Dict[Direction, List] = {Direction.INPUT: [], Direction.OUTPUT: []}
        for group in groups:
            first = group.sorted_parts()[0]
            source_tag = f"{first.source}#{group.message_reference}" if first.source else group.message_reference
            sightings[group.direction].extend(
                extractor.sightings(group_segments(group), first.family, source_tag))

        reconciler = PassengerReconciler(self.config.matching_strategy, self.custom_key)
        reconciliation = reconciler.reconcile(
            sightings[Direction.INPUT], sightings[Direction.OUTPUT],
            self._first_flight(groups, Direction.INPUT), self._first_flight(groups, Direction.OUTPUT))

        if self.config.verbosity.upper() in ('DETAILED', 'DEBUG'):
            for group in groups:
                logger.info(f"Group {group.message_reference}: {group.report()}")

        result.reconciliation = reconciliation
        result.messages = selected
        result.multipart_groups = groups
        return result

    def _finish(self, result: AuditResult, started: float) -> AuditResult:
        result.warnings = list(self.diagnostics.warnings)
        result.errors = list(self.diagnostics.errors)
        result.infos = list(self.diagnostics.infos)
        result.processing_time_ms = int((time.time() - started) * 1000)
        logger.info(f"Audit completed: {result.summary()}")
        return result

    def audit(self, path: Union[str, Path]) -> AuditResult:
        """
        Audit a log file or a directory of log files

        Args:
            path: Log file or directory

        Returns:
            AuditResult; unreadable files are reported as errors and skipped
        """
        if path is None or (isinstance(path, str) and not path.strip()):
            raise ConfigurationError("A log file or directory path is required")

        started = time.time()
        self._fresh_diagnostics()
        result = AuditResult()
        block_extractor = LogBlockExtractor(self.config, self.diagnostics)

        blocks: List[LogBlock] = []
        for log_file in self.list_log_files(path):
            try:
                text = self.read_log(log_file)
            except LogReadError as e:
                self.diagnostics.error(str(e), log_file.name)
                continue
            blocks.extend(block_extractor.extract(text, source=log_file.name))
            result.processed_files.append(str(log_file))

        self._process_blocks(blocks, result)
        return self._finish(result, started)

    def audit_text(self, text: str, source: str = "text") -> AuditResult:
        """Audit log text already in memory"""
        started = time.time()
        self._fresh_diagnostics()
        result = AuditResult()
        blocks = LogBlockExtractor(self.config, self.diagnostics).extract(text or "", source=source)
        self._process_blocks(blocks, result)
        return self._finish(result, started)
