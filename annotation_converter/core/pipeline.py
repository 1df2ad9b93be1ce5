#!/usr/bin/env python3

"""
Main pipeline class for annotation conversion.

Runs the phases read -> finalize -> validate -> write under the performance
monitor and gathers everything that happened into a ConversionReport.
"""

import logging
from typing import Iterable, Optional, TextIO

from .builder import ModelBuilder
from .config import ConversionConfig
from .data_structures import AnnotationModel
from .exceptions import (
    MalformedRecordError, MissingParentError, SerializationError, StructuralConflictError,
    UnsupportedFeatureError
)
from .parsers import SUPPORTED_FORMATS, get_reader
from .report import ConversionReport, Issue, Severity
from .validators import ModelValidator
from .writers import get_writer
from ..utils.performance_monitor import PerformanceMonitor


class ConversionPipeline:
    """Coordinates reading, validation and writing of one annotation file."""

    def __init__(self, config: Optional[ConversionConfig] = None):
        self.config = config or ConversionConfig()
        self.monitor = PerformanceMonitor(
            memory_limit_mb=self.config.memory_limit_mb,
            enabled=self.config.enable_memory_monitoring)
        self.model: Optional[AnnotationModel] = None

    def convert(self, input_stream: Iterable[str], input_format: str,
                output_stream: TextIO, output_format: str) -> ConversionReport:
        """
        Convert an annotation stream from one format to another.

        Nothing is written when reading aborted or when the model has
        unresolved errors after validation.

        Raises:
            SerializationError: the output stream failed part way through.
            MemoryLimitError: resident memory exceeded memory_limit_mb.
        """
        _check_format(output_format)
        report = ConversionReport(input_format=input_format, output_format=output_format)
        logging.info(f"Converting {input_format} to {output_format}")

        model = self._load(input_stream, input_format, report)
        if model is None:
            return self._finish(report)

        if report.has_errors:
            logging.error(f"{len(report.errors)} unresolved error(s); output not written")
            return self._finish(report)

        with self.monitor.phase_context("write") as metrics:
            writer = get_writer(output_format, self.config)
            try:
                report.extend(writer.write(model, output_stream))
            except UnsupportedFeatureError as e:
                report.issues.append(Issue.from_error(e, Severity.ERROR))
                report.aborted = True
                logging.error(f"Write aborted: {e}")
                return self._finish(report)
            except SerializationError:
                logging.error("Serialization failed; output is incomplete")
                raise
            metrics.operations_count = model.transcript_count
            report.written = True

        return self._finish(report)

    def validate(self, input_stream: Iterable[str], input_format: str) -> ConversionReport:
        """Read, finalize and validate without writing anything."""
        report = ConversionReport(input_format=input_format)
        logging.info(f"Validating {input_format} input")
        self._load(input_stream, input_format, report)
        return self._finish(report)

    def _load(self, input_stream: Iterable[str], input_format: str,
              report: ConversionReport) -> Optional[AnnotationModel]:
        """Read, finalize and validate; returns None when reading aborted."""
        _check_format(input_format)
        reader = get_reader(input_format, self.config, self.monitor)

        with self.monitor.phase_context("read") as metrics:
            try:
                result = reader.read(input_stream)
            except (MalformedRecordError, StructuralConflictError, MissingParentError) as e:
                # The reader already recorded the issue before re-raising.
                report.extend(reader.issues)
                report.aborted = True
                logging.error(f"Reading aborted at {e}")
                return None
            metrics.operations_count = result.records_read
        report.extend(result.issues)

        with self.monitor.phase_context("finalize"):
            model = self._finalize(result.builder, report)
        if model is None:
            return None

        report.gene_count = model.gene_count
        report.transcript_count = model.transcript_count
        report.exon_count = model.exon_count
        report.feature_count = model.feature_count

        with self.monitor.phase_context("validate") as metrics:
            report.extend(ModelValidator(self.config).validate(model))
            metrics.operations_count = model.transcript_count

        self.model = model
        return model

    @staticmethod
    def _finalize(builder: ModelBuilder, report: ConversionReport) -> Optional[AnnotationModel]:
        try:
            return builder.finalize()
        except StructuralConflictError as e:
            report.issues.append(Issue.from_error(e, Severity.ERROR))
            report.aborted = True
            logging.error(f"Could not build annotation model: {e}")
            return None

    def _finish(self, report: ConversionReport) -> ConversionReport:
        report.performance = self.monitor.get_performance_summary()
        if self.config.debug_mode:
            self.monitor.log_performance_report()
        logging.info(f"Finished with {len(report.errors)} error(s) and "
                     f"{len(report.warnings)} warning(s)")
        return report


def _check_format(name: str) -> None:
    if name not in SUPPORTED_FORMATS:
        raise ValueError(f"Unsupported format {name!r}; expected one of "
                         f"{', '.join(SUPPORTED_FORMATS)}")


def convert(input_stream: Iterable[str], input_format: str, output_stream: TextIO,
            output_format: str, options: Optional[ConversionConfig] = None) -> ConversionReport:
    """Convert ``input_stream`` to ``output_format``; see ConversionPipeline.convert."""
    return ConversionPipeline(options).convert(input_stream, input_format,
                                               output_stream, output_format)


def validate(input_stream: Iterable[str], input_format: str,
             options: Optional[ConversionConfig] = None) -> ConversionReport:
    """Validate ``input_stream`` without producing output."""
    return ConversionPipeline(options).validate(input_stream, input_format)
