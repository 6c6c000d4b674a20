"""
Segment tokenizer

Splits EDIFACT text into segments, elements and sub-elements with the
separators resolved for that block. Escaped separators stay inside their
value until the final sub-element split, where the release character is
removed.
"""

from typing import List, Optional, Tuple

from .models import Segment, Separators
from .separators import DEFAULT_SEPARATORS


UNA_HEADER_LENGTH = 9


class SegmentTokenizer:
    """Release-aware splitter bound to one block's separators"""

    def __init__(self, separators: Optional[Separators] = None):
        self.separators = separators or DEFAULT_SEPARATORS

    def _split(self, text: str, delimiter: str) -> List[str]:
        """Split on ``delimiter`` ignoring occurrences escaped by the release character"""
        release = self.separators.release
        parts: List[str] = []
        current: List[str] = []
        escaped = False
        for char in text:
            if escaped:
                current.append(char)
                escaped = False
            elif char == release:
                current.append(char)
                escaped = True
            elif char == delimiter:
                parts.append("".join(current))
                current = []
            else:
                current.append(char)
        parts.append("".join(current))
        return parts

    def _unescape(self, value: str) -> str:
        release = self.separators.release
        if release not in value:
            return value
        out: List[str] = []
        escaped = False
        for char in value:
            if char == release and not escaped:
                escaped = True
                continue
            out.append(char)
            escaped = False
        return "".join(out)

    def split_segments(self, text: str) -> List[str]:
        """
        Split a block into raw segment strings

        Args:
            text: EDIFACT block text

        Returns:
            Non-empty segment strings with surrounding whitespace removed
        """
        if not text:
            return []
        una, text = self._split_una(text)
        segments = [una] if una else []
        for raw in self._split(text, self.separators.terminator):
            raw = raw.strip()
            if raw:
                segments.append(raw)
        return segments

    @staticmethod
    def _split_una(text: str) -> Tuple[str, str]:
        """Cut a leading UNA header off; its body is read literally, not tokenized"""
        stripped = text.lstrip()
        if not stripped.startswith("UNA"):
            return "", text
        unb = stripped.find("UNB", 3, UNA_HEADER_LENGTH + 4)
        end = unb if unb != -1 else min(len(stripped), UNA_HEADER_LENGTH)
        return stripped[:end].strip(), stripped[end:]

    def split_elements(self, segment_text: str) -> List[str]:
        """Split one segment on the element separator, keeping a leading empty element"""
        return self._split(segment_text, self.separators.element)

    def split_components(self, element_text: str) -> List[str]:
        """Split one element on the sub-element separator and unescape the values"""
        return [self._unescape(c) for c in self._split(element_text, self.separators.sub_element)]

    def tokenize_segment(self, segment_text: str) -> Segment:
        if segment_text.startswith("UNA") and len(segment_text) <= UNA_HEADER_LENGTH:
            return Segment(tag="UNA", elements=((segment_text[3:],),))
        elements = self.split_elements(segment_text)
        tag = self._unescape(elements[0]).strip()
        return Segment(
            tag=tag,
            elements=tuple(tuple(self.split_components(e)) for e in elements[1:]),
        )

    def tokenize(self, text: str) -> List[Segment]:
        """
        Tokenize a whole block

        Args:
            text: EDIFACT block text

        Returns:
            Segments in transmission order; empty input yields no segments
        """
        return [self.tokenize_segment(s) for s in self.split_segments(text)]


def tokenize(text: str, separators: Optional[Separators] = None) -> List[Segment]:
    """Tokenize ``text`` with ``separators`` (defaults when omitted)"""
    return SegmentTokenizer(separators).tokenize(text)
