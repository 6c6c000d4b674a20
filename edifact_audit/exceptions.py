"""
Custom exceptions for the EDIFACT audit engine
"""


class AuditEngineError(Exception):
    """Base exception for all audit engine errors"""
    pass


class ConfigurationError(AuditEngineError):
    """Raised when the engine is configured or called incorrectly"""
    pass


class SeparatorResolutionError(AuditEngineError):
    """Raised when a UNA header cannot be interpreted"""
    pass


class SegmentExtractionError(AuditEngineError):
    """Raised when a typed segment cannot be extracted"""
    pass


class BlockExtractionError(AuditEngineError):
    """Raised by an extraction strategy when a payload it recognises is malformed"""
    pass


class IncompleteMultipartError(AuditEngineError):
    """Raised when a multipart group lacks its first or final part"""
    pass


class LogReadError(AuditEngineError):
    """Raised when a log file cannot be read"""
    pass


class ValidationError(AuditEngineError):
    """Raised when interchange envelope validation fails in strict mode"""
    pass
