"""
EDIFACT Audit Engine

Reads application logs, extracts PNRGOV and API (PAXLST) messages and
reconciles the passengers seen on the input and output side of a flight.
"""

__version__ = "1.0.0"
__author__ = "Audit Engine Team"

from .core import AuditEngine
from .config import AuditConfig, ConfigManager, load_config
from .diagnostics import Diagnostics
from .models import (
    AuditResult, Direction, FlightFacts, LogicalMessage, MatchingStrategy, MessageFamily,
    MultipartGroup, PassengerFacts, ReconciliationResult, Segment, Separators,
)
from .separators import SeparatorResolver, generate_una, resolve_separators
from .tokenizer import SegmentTokenizer
from .block_extractor import LogBlockExtractor
from .multipart import MultipartAssembler
from .reconciler import PassengerReconciler
from .exceptions import AuditEngineError, ConfigurationError, LogReadError, ValidationError

__all__ = [
    "AuditEngine",
    "AuditConfig",
    "ConfigManager",
    "load_config",
    "Diagnostics",
    "AuditResult",
    "Direction",
    "FlightFacts",
    "LogicalMessage",
    "MatchingStrategy",
    "MessageFamily",
    "MultipartGroup",
    "PassengerFacts",
    "ReconciliationResult",
    "Segment",
    "Separators",
    "SeparatorResolver",
    "generate_una",
    "resolve_separators",
    "SegmentTokenizer",
    "LogBlockExtractor",
    "MultipartAssembler",
    "PassengerReconciler",
    "AuditEngineError",
    "ConfigurationError",
    "LogReadError",
    "ValidationError",
]
