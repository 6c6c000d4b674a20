"""
Multipart message assembly
"""

from typing import Dict, Iterable, List, Optional, Tuple
from loguru import logger

from .diagnostics import Diagnostics
from .exceptions import IncompleteMultipartError
from .flight_matcher import normalize_flight
from .models import LogicalMessage, MultipartGroup, Segment


class MultipartAssembler:
    """
    Folds logical messages into groups keyed by message reference

    References are scoped by flight and direction so that two flights (or the
    inbound and outbound copy) reusing a reference never share a group.
    """

    def __init__(self, diagnostics: Optional[Diagnostics] = None):
        self.diagnostics = diagnostics if diagnostics is not None else Diagnostics()
        self.groups: Dict[Tuple[str, str, str], MultipartGroup] = {}

    @staticmethod
    def group_key(message: LogicalMessage) -> Tuple[str, str, str]:
        return (message.message_reference, normalize_flight(message.flight_number), message.direction.value)

    def add(self, message: LogicalMessage) -> MultipartGroup:
        """Add one message part, creating its group on first sight"""
        key = self.group_key(message)
        group = self.groups.get(key)
        if group is None:
            group = MultipartGroup(message_reference=message.message_reference,
                                   scope=message.flight_number)
            self.groups[key] = group
        if message.part_number in group.parts:
            logger.debug(f"Part {message.part_number} of {message.message_reference} already seen, keeping first copy")
        group.add_part(message)
        return group

    def assemble(self, messages: Iterable[LogicalMessage]) -> List[MultipartGroup]:
        """
        Group messages and report incomplete groups

        Args:
            messages: Logical messages in log order

        Returns:
            Every group in order of first appearance, complete or not
        """
        for message in messages:
            self.add(message)

        groups = list(self.groups.values())
        for group in groups:
            try:
                self.assembled_message(group)
            except IncompleteMultipartError as e:
                self.diagnostics.warning(str(e))
                continue
            if group.missing_parts():
                self.diagnostics.warning(
                    f"Multipart message {group.message_reference} has gaps: missing parts {group.missing_parts()}")
        logger.info(f"Assembled {len(groups)} message group(s), "
                    f"{sum(1 for g in groups if not g.is_complete)} incomplete")
        return groups

    @classmethod
    def assembled_message(cls, group: MultipartGroup) -> str:
        """
        Concatenate the parts of a complete group

        Raises:
            IncompleteMultipartError: if the first or final part is missing
        """
        if not group.is_complete:
            raise IncompleteMultipartError(cls.describe_incomplete(group))
        return group.assembled_text()

    @staticmethod
    def describe_incomplete(group: MultipartGroup) -> str:
        reasons = []
        if not group.has_first:
            reasons.append("first part missing")
        if not group.has_final:
            reasons.append("final part missing")
        if group.missing_parts():
            reasons.append(f"missing parts {group.missing_parts()}")
        scope = f" for {group.scope}" if group.scope else ""
        return (f"Incomplete multipart message {group.message_reference}{scope}: "
                f"{', '.join(reasons)} (parts seen {sorted(group.parts)})")

    def reset(self) -> None:
        self.groups = {}


def group_segments(group: MultipartGroup) -> List[Segment]:
    """Segments of every part in part order"""
    segments: List[Segment] = []
    for part in group.sorted_parts():
        segments.extend(part.segments)
    return segments
