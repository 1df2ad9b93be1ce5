#!/usr/bin/env python3

"""
Core module for the annotation converter.

Contains the coordinate primitives, the annotation model and its builder,
exception types, configuration, the format readers and writers, and the
conversion pipeline.
"""

from .coordinates import Interval, Strand
from .data_structures import AnnotationModel, Gene, Transcript, Exon, Feature
from .builder import ModelBuilder
from .exceptions import (
    ErrorKind, ConversionError, MalformedRecordError, MissingParentError,
    StructuralConflictError, UnsupportedFeatureError, SerializationError,
    ConfigurationError, MemoryLimitError
)
from .config import ConversionConfig, load_config
from .report import ConversionReport, Issue, Severity

__all__ = [
    'Interval', 'Strand',
    'AnnotationModel', 'Gene', 'Transcript', 'Exon', 'Feature', 'ModelBuilder',
    'ErrorKind', 'ConversionError', 'MalformedRecordError', 'MissingParentError',
    'StructuralConflictError', 'UnsupportedFeatureError', 'SerializationError',
    'ConfigurationError', 'MemoryLimitError',
    'ConversionConfig', 'load_config',
    'ConversionReport', 'Issue', 'Severity'
]
