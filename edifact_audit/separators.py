"""
UNA separator resolution

Each EDIFACT block may declare its own service characters in a UNA header.
The resolver reads them from the first lines of a block and never fails: a
missing or malformed header yields the IATA defaults.
"""

from typing import Optional
from loguru import logger

from .models import Separators
from .exceptions import SeparatorResolutionError


DEFAULT_SEPARATORS = Separators()
MAX_UNA_LINES = 8
UNA_BODY_LENGTH = 6
SHORT_UNA_MIN_LENGTH = 5
PAD_CHARACTER = "'"


def generate_una(separators: Separators) -> str:
    """Render the UNA header declaring ``separators``"""
    return "UNA" + "".join(separators.as_tuple())


def describe(separators: Separators) -> str:
    """Human readable separator summary for diagnostics"""
    names = ("SubElement", "Element", "Decimal", "Release", "Reserved", "Terminator")
    parts = [f"{name}='{char}' (ASCII {ord(char)})" for name, char in zip(names, separators.as_tuple())]
    return ", ".join(parts) + f" | {generate_una(separators)}"


class SeparatorResolver:
    """
    Resolves the separators for one block of EDIFACT text
    """

    def __init__(self, max_lines: int = MAX_UNA_LINES):
        """
        Initialize the resolver

        Args:
            max_lines: Number of leading lines searched for the UNA header
        """
        self.max_lines = max_lines

    def resolve(self, content: Optional[str]) -> Separators:
        """
        Resolve separators for a block

        Args:
            content: Block text, starting at or near its UNA/UNB header

        Returns:
            Separators declared by the block, or the defaults
        """
        if content is None or not content.strip():
            return DEFAULT_SEPARATORS

        head = self._leading_lines(content)
        try:
            una_index = head.find("UNA")
            if una_index == -1:
                return self._from_unb(head)
            return self._from_una(head, una_index + 3)
        except SeparatorResolutionError as e:
            logger.debug(f"Separator resolution fell back to defaults: {e}")
            return DEFAULT_SEPARATORS

    def _leading_lines(self, content: str) -> str:
        lines = content.replace("\r\n", "\n").replace("\r", "\n").split("\n")
        return "\n".join(lines[:self.max_lines])

    def _from_una(self, head: str, start: int) -> Separators:
        if start >= len(head):
            raise SeparatorResolutionError("UNA header has no body")

        candidate = head[start:start + UNA_BODY_LENGTH]
        line_break = min((i for i in (candidate.find("\n"), candidate.find("\r")) if i >= 0), default=-1)

        if line_break >= 0:
            # Short legacy header such as "UNA:+.?'" ending the line
            return self._padded(candidate[:line_break])

        if len(candidate) == UNA_BODY_LENGTH and self._is_valid_body(candidate, head, start + UNA_BODY_LENGTH):
            separators = self._build(candidate, una_present=True)
            if separators is not None:
                return separators

        unb_index = head.find("UNB", start)
        if unb_index > start:
            return self._padded(head[start:unb_index][:UNA_BODY_LENGTH])

        raise SeparatorResolutionError(f"Unusable UNA body {candidate!r}")

    def _padded(self, available: str) -> Separators:
        if len(available) < SHORT_UNA_MIN_LENGTH:
            raise SeparatorResolutionError(f"Too few UNA characters: {available!r}")
        separators = self._build(available.ljust(UNA_BODY_LENGTH, PAD_CHARACTER), una_present=True)
        if separators is None:
            raise SeparatorResolutionError(f"Inconsistent UNA characters: {available!r}")
        return separators

    @staticmethod
    def _is_valid_body(body: str, head: str, next_pos: int) -> bool:
        for char in body:
            if ord(char) < 32 and char not in ("\n", "\r"):
                return False
        if next_pos >= len(head):
            return True
        following = head[next_pos:next_pos + 3]
        return following.startswith("UNB") or "\n" in following or "\r" in following

    @staticmethod
    def _build(chars: str, una_present: bool) -> Optional[Separators]:
        try:
            return Separators(
                sub_element=chars[0],
                element=chars[1],
                decimal=chars[2],
                release=chars[3],
                reserved=chars[4],
                terminator=chars[5],
                una_present=una_present,
            )
        except ValueError:
            return None

    def _from_unb(self, head: str) -> Separators:
        """Infer element separator and terminator from a UNB header when no UNA exists"""
        unb_index = head.find("UNB")
        if unb_index == -1 or unb_index + 3 >= len(head):
            return DEFAULT_SEPARATORS

        element = head[unb_index + 3]
        if element.isalnum() or element.isspace():
            return DEFAULT_SEPARATORS

        line_end = head.find("\n", unb_index)
        unb_line = (head[unb_index:] if line_end == -1 else head[unb_index:line_end]).rstrip()
        terminator = unb_line[-1] if unb_line else DEFAULT_SEPARATORS.terminator
        if terminator.isalnum() or terminator == element:
            terminator = DEFAULT_SEPARATORS.terminator

        chars = DEFAULT_SEPARATORS.sub_element + element + "".join(DEFAULT_SEPARATORS.as_tuple()[2:5]) + terminator
        separators = self._build(chars, una_present=False)
        return separators if separators is not None else DEFAULT_SEPARATORS


def resolve_separators(content: Optional[str], max_lines: int = MAX_UNA_LINES) -> Separators:
    """Resolve the separators of one block with a fresh resolver"""
    return SeparatorResolver(max_lines).resolve(content)
