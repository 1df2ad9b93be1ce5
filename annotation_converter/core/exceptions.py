#!/usr/bin/env python3

"""
Custom exceptions for the annotation converter.

Every error that can reach the command-line layer is one of these, so it can
be reported as a structured issue (kind + context) instead of a traceback.
"""

from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    """Structured error kinds surfaced in conversion reports."""
    MALFORMED_RECORD = 'MalformedRecord'
    MISSING_PARENT = 'MissingParent'
    STRUCTURAL_CONFLICT = 'StructuralConflict'
    UNSUPPORTED_FEATURE = 'UnsupportedFeature'


class ConversionError(Exception):
    """Base exception for all converter errors."""
    kind: Optional[ErrorKind] = None

    def __init__(self, message: str, entity_id: str = "", line_number: int = 0,
                 raw_line: str = ""):
        super().__init__(message)
        self.message = message
        self.entity_id = entity_id
        self.line_number = line_number
        self.raw_line = raw_line

    def __str__(self):
        if self.line_number:
            return f"line {self.line_number}: {self.message}"
        return self.message


class MalformedRecordError(ConversionError):
    """A line violates the syntax or coordinate rules of its format."""
    kind = ErrorKind.MALFORMED_RECORD

    def __init__(self, message: str, line_number: int = 0, raw_line: str = ""):
        super().__init__(message, line_number=line_number, raw_line=raw_line)


class MissingParentError(ConversionError):
    """A transcript or exon references a gene or transcript never seen."""
    kind = ErrorKind.MISSING_PARENT

    def __init__(self, message: str, entity_id: str = "", parent_id: str = "",
                 line_number: int = 0, raw_line: str = ""):
        super().__init__(message, entity_id, line_number, raw_line)
        self.parent_id = parent_id


class StructuralConflictError(ConversionError):
    """Records disagree with each other or break a model invariant."""
    kind = ErrorKind.STRUCTURAL_CONFLICT

    def __str__(self):
        text = super().__str__()
        if self.entity_id and not self.line_number:
            return f"{self.entity_id}: {text}"
        return text


class UnsupportedFeatureError(ConversionError):
    """A record cannot be represented in the target format."""
    kind = ErrorKind.UNSUPPORTED_FEATURE

    def __init__(self, message: str, feature_type: str = "", entity_id: str = "",
                 line_number: int = 0):
        super().__init__(message, entity_id, line_number)
        self.feature_type = feature_type


class SerializationError(ConversionError):
    """Writing the output failed; the partial output is invalid."""
    pass


class ConfigurationError(ConversionError):
    """Error in converter configuration."""
    pass


class MemoryLimitError(ConversionError):
    """Memory usage exceeded limits."""

    def __init__(self, message: str, current_usage: float, limit: float):
        super().__init__(message)
        self.current_usage = current_usage
        self.limit = limit

    def __str__(self):
        return f"Memory error: {self.message} (current: {self.current_usage:.1f}MB, limit: {self.limit:.1f}MB)"
