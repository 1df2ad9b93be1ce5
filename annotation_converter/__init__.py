#!/usr/bin/env python3

"""
Gene Annotation Converter

Lossless conversion and structural validation of gene annotations between
GFF3, GTF and refFlat.

Every input is parsed into one canonical model (genes own transcripts,
transcripts own exons, 1-based inclusive coordinates), validated, and
written back out in a deterministic order. Problems are collected as
structured issues instead of stopping at the first bad line.

Modules:
- core: Coordinates, model, readers, validator, writers and pipeline
- utils: Performance monitoring
- tests: Unit and end-to-end test suite
"""

__version__ = "1.0.0"
__author__ = "Annotation Converter Team"

# Import main components for easy access
from .core.coordinates import Interval, Strand
from .core.data_structures import AnnotationModel, Gene, Transcript, Exon, Feature
from .core.exceptions import (
    ErrorKind, ConversionError, MalformedRecordError, MissingParentError,
    StructuralConflictError, UnsupportedFeatureError, SerializationError,
    ConfigurationError, MemoryLimitError
)
from .core.config import ConversionConfig, load_config
from .core.report import ConversionReport, Issue, Severity
from .core.parsers import detect_format
from .core.pipeline import ConversionPipeline, convert, validate

__all__ = [
    # Main pipeline
    'ConversionPipeline', 'convert', 'validate', 'detect_format',
    # Data structures
    'Interval', 'Strand', 'AnnotationModel', 'Gene', 'Transcript', 'Exon', 'Feature',
    # Reports and exceptions
    'ConversionReport', 'Issue', 'Severity', 'ErrorKind',
    'ConversionError', 'MalformedRecordError', 'MissingParentError',
    'StructuralConflictError', 'UnsupportedFeatureError', 'SerializationError',
    'ConfigurationError', 'MemoryLimitError',
    # Configuration
    'ConversionConfig', 'load_config'
]
