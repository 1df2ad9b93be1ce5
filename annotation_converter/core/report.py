#!/usr/bin/env python3

"""
Structured issues and the conversion report handed to the CLI layer.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .exceptions import ConversionError, ErrorKind


class Severity(Enum):
    WARNING = 'warning'
    ERROR = 'error'


@dataclass
class Issue:
    """A single problem found while reading, validating or writing."""
    kind: ErrorKind
    severity: Severity
    message: str
    line_number: int = 0
    raw_line: str = ""
    entity_id: str = ""

    @classmethod
    def from_error(cls, error: ConversionError, severity: Severity) -> 'Issue':
        """Turn a raised converter error into a collected issue."""
        return cls(
            kind=error.kind or ErrorKind.STRUCTURAL_CONFLICT,
            severity=severity,
            message=error.message,
            line_number=error.line_number,
            raw_line=error.raw_line,
            entity_id=error.entity_id,
        )

    @property
    def is_error(self) -> bool:
        return self.severity is Severity.ERROR

    def __str__(self):
        parts = [f"[{self.severity.value}] {self.kind.value}"]
        if self.line_number:
            parts.append(f"line {self.line_number}")
        if self.entity_id:
            parts.append(self.entity_id)
        return f"{' '.join(parts)}: {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kind': self.kind.value,
            'severity': self.severity.value,
            'message': self.message,
            'line_number': self.line_number,
            'raw_line': self.raw_line,
            'entity_id': self.entity_id,
        }


@dataclass
class ConversionReport:
    """Outcome of a conversion or validation run."""
    input_format: str
    output_format: Optional[str] = None
    gene_count: int = 0
    transcript_count: int = 0
    exon_count: int = 0
    feature_count: int = 0
    issues: List[Issue] = field(default_factory=list)
    aborted: bool = False
    written: bool = False
    performance: Dict[str, Any] = field(default_factory=dict)

    @property
    def errors(self) -> List[Issue]:
        return [issue for issue in self.issues if issue.is_error]

    @property
    def warnings(self) -> List[Issue]:
        return [issue for issue in self.issues if not issue.is_error]

    @property
    def has_errors(self) -> bool:
        return any(issue.is_error for issue in self.issues)

    @property
    def success(self) -> bool:
        """True when nothing unresolved is left and the run was not aborted."""
        return not self.aborted and not self.has_errors

    def extend(self, issues: List[Issue]) -> None:
        self.issues.extend(issues)

    def summary(self, max_issues: int = 20) -> str:
        """Human-readable summary for standard error."""
        target = f" -> {self.output_format}" if self.output_format else ""
        lines = [
            f"{self.input_format}{target}: {self.gene_count:,} genes, "
            f"{self.transcript_count:,} transcripts, {self.exon_count:,} exons, "
            f"{self.feature_count:,} other features",
            f"{len(self.errors)} error(s), {len(self.warnings)} warning(s)",
        ]
        if self.aborted:
            lines.append("Conversion aborted; no output was written")
        elif self.output_format and not self.written:
            lines.append("Output was not written because of unresolved errors")

        # Errors first, then warnings.
        ordered = self.errors + self.warnings
        for issue in ordered[:max_issues]:
            lines.append(f"  {issue}")
        if len(ordered) > max_issues:
            lines.append(f"  ... and {len(ordered) - max_issues} more")
        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'input_format': self.input_format,
            'output_format': self.output_format,
            'gene_count': self.gene_count,
            'transcript_count': self.transcript_count,
            'exon_count': self.exon_count,
            'feature_count': self.feature_count,
            'aborted': self.aborted,
            'written': self.written,
            'error_count': len(self.errors),
            'warning_count': len(self.warnings),
            'issues': [issue.to_dict() for issue in self.issues],
            'performance': self.performance,
        }
