"""
Collected, leveled diagnostics

Components report through a ``Diagnostics`` instance instead of printing. Every
entry is kept for the caller and forwarded to loguru.
"""

from typing import List, NamedTuple, Optional
from loguru import logger


LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


class DiagnosticEntry(NamedTuple):
    level: str
    message: str
    source: Optional[str] = None


class Diagnostics:
    """Injectable sink of leveled diagnostic messages"""

    def __init__(self, forward_to_logger: bool = True):
        self.entries: List[DiagnosticEntry] = []
        self.forward_to_logger = forward_to_logger

    def add(self, level: str, message: str, source: Optional[str] = None) -> None:
        level = level.upper()
        if level not in LEVELS:
            raise ValueError(f"Unknown diagnostic level: {level}")
        self.entries.append(DiagnosticEntry(level, message, source))
        if self.forward_to_logger:
            text = f"[{source}] {message}" if source else message
            logger.log(level, text)

    def debug(self, message: str, source: Optional[str] = None) -> None:
        self.add("DEBUG", message, source)

    def info(self, message: str, source: Optional[str] = None) -> None:
        self.add("INFO", message, source)

    def warning(self, message: str, source: Optional[str] = None) -> None:
        self.add("WARNING", message, source)

    def error(self, message: str, source: Optional[str] = None) -> None:
        self.add("ERROR", message, source)

    def messages(self, level: str) -> List[str]:
        level = level.upper()
        return [e.message for e in self.entries if e.level == level]

    @property
    def warnings(self) -> List[str]:
        return self.messages("WARNING")

    @property
    def errors(self) -> List[str]:
        return self.messages("ERROR")

    @property
    def infos(self) -> List[str]:
        return self.messages("INFO")

    def extend(self, other: "Diagnostics") -> None:
        """Append another sink's entries without re-logging them"""
        self.entries.extend(other.entries)

    def clear(self) -> None:
        self.entries.clear()

    def __len__(self) -> int:
        return len(self.entries)
